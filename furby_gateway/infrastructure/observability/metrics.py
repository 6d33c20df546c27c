"""Prometheus metrics for ledger flows, scheduled sweeps and provider calls"""

from prometheus_client import Counter, Histogram

# PIX metrics
pix_transaction_counter = Counter(
    "furby_pix_transactions_total",
    "PIX transactions by type and resulting status",
    ["type", "status"],  # deposit | withdrawal ; pending | processing | completed | failed | cancelled | expired
)

pix_amount_counter = Counter(
    "furby_pix_amount_cents_total",
    "Settled PIX volume in cents",
    ["type"],
)

# Investment metrics
investment_counter = Counter(
    "furby_investments_total",
    "Investment lifecycle events",
    ["event"],  # created | cancelled | completed | daily_return
)

# Commission metrics
commission_counter = Counter(
    "furby_referral_commissions_total",
    "Referral commissions paid",
    ["kind", "level"],
)

commission_failure_counter = Counter(
    "furby_referral_commission_failures_total",
    "Referral commission levels that failed to pay",
)

# Sweep metrics
sweep_duration_histogram = Histogram(
    "furby_sweep_duration_seconds",
    "Scheduled sweep duration",
    ["job"],
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0],
)

sweep_item_failure_counter = Counter(
    "furby_sweep_item_failures_total",
    "Items that failed inside a scheduled sweep",
    ["job"],
)

# Payment provider metrics
provider_failure_counter = Counter(
    "furby_payment_provider_failures_total",
    "Failed payment provider calls",
    ["operation"],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_pix(type_: str, status: str, amount_cents: int = 0) -> None:
    """Count a PIX transition and, when completed, its settled volume"""
    pix_transaction_counter.labels(type=type_, status=status).inc()
    if status == "completed" and amount_cents > 0:
        pix_amount_counter.labels(type=type_).inc(amount_cents)


def record_commission(kind: str, level: int) -> None:
    commission_counter.labels(kind=kind, level=str(level)).inc()
