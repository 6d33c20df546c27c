"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from furby_gateway.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_commission(
    payer_id: str,
    beneficiary_id: str,
    level: int,
    kind: str,
    amount_cents: int,
) -> None:
    """Log a referral commission payout"""
    logging.info(
        "Referral commission paid",
        extra={
            "payer_id": payer_id,
            "beneficiary_id": beneficiary_id,
            "referral_level": level,
            "commission_kind": kind,
            "amount_cents": amount_cents,
        },
    )


def log_pix_event(event: str, transaction_id: str, user_id: str, amount_cents: int, **fields: Any) -> None:
    """Log a PIX lifecycle transition"""
    logging.info(
        f"PIX {event}",
        extra={
            "step": f"pix_{event}",
            "transaction_id": transaction_id,
            "user_id": user_id,
            "amount_cents": amount_cents,
            **fields,
        },
    )


def log_sweep(job: str, duration_ms: float, **counters: int) -> None:
    """Log the outcome of a scheduled sweep"""
    logging.info(
        "Sweep completed",
        extra={"job": job, "duration_ms": duration_ms, **counters},
    )
