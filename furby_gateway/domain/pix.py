"""PIX payment payload (BR Code) generation and key validation"""

import re
import secrets
import time
from furby_gateway.domain.models import PixKeyType

GUI_PIX = "br.gov.bcb.pix"
CURRENCY_BRL = "986"
COUNTRY_CODE = "BR"
MAX_TXID_LENGTH = 25

BASE36_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_RANDOM_KEY_RE = re.compile(r"^[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}$", re.IGNORECASE)


def _tlv(tag: str, value: str) -> str:
    return f"{tag}{len(value):02d}{value}"


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def crc16_ccitt(data: str) -> str:
    """CRC16-CCITT (poly 0x1021, init 0xFFFF) as 4 uppercase hex digits"""
    crc = 0xFFFF
    for byte in data.encode("utf-8"):
        crc ^= byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ 0x1021) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return f"{crc:04X}"


def generate_txid(prefix: str = "FURBY") -> str:
    """One-time alphanumeric transaction id, at most 25 characters"""
    stamp = to_base36(int(time.time() * 1000))
    return (prefix + stamp + secrets.token_hex(4).upper())[:MAX_TXID_LENGTH]


def generate_end_to_end_id() -> str:
    return "E" + str(int(time.time() * 1000)) + secrets.token_hex(8).upper()


def build_pix_payload(
    pix_key: str,
    amount_cents: int,
    txid: str,
    merchant_name: str,
    merchant_city: str,
) -> str:
    """
    Build a dynamic BR Code (EMV QRCPS) payload for a PIX charge.

    Layout: format indicator, initiation method (12 = single use), merchant
    account with GUI and key, category 0000, currency 986, amount, country,
    merchant name (25 chars) and city (15 chars), txid in the additional data
    field, then the CRC16 of everything up to and including "6304".
    """
    amount = f"{amount_cents // 100}.{amount_cents % 100:02d}"
    merchant_account = _tlv("00", GUI_PIX) + _tlv("01", pix_key)

    payload = "".join(
        [
            _tlv("00", "01"),
            _tlv("01", "12"),
            _tlv("26", merchant_account),
            _tlv("52", "0000"),
            _tlv("53", CURRENCY_BRL),
            _tlv("54", amount),
            _tlv("58", COUNTRY_CODE),
            _tlv("59", merchant_name[:25]),
            _tlv("60", merchant_city[:15]),
            _tlv("62", _tlv("05", txid[:MAX_TXID_LENGTH])),
        ]
    )
    payload += "6304"
    return payload + crc16_ccitt(payload)


def validate_pix_key(key: str, key_type: PixKeyType) -> bool:
    """Check a PIX key against the format of its declared type"""
    if not key:
        return False
    digits = re.sub(r"\D", "", key)
    if key_type == PixKeyType.CPF:
        return len(digits) == 11
    if key_type == PixKeyType.EMAIL:
        return bool(_EMAIL_RE.match(key))
    if key_type == PixKeyType.PHONE:
        return 10 <= len(digits) <= 11 or (key.startswith("+55") and 12 <= len(digits) <= 13)
    if key_type == PixKeyType.RANDOM:
        return bool(_RANDOM_KEY_RE.match(key))
    return False


def withdrawal_fee(amount_cents: int, fee_bps: int = 100, min_fee_cents: int = 200) -> int:
    """Withdrawal fee: percentage of the amount with a floor"""
    return max(amount_cents * fee_bps // 10_000, min_fee_cents)
