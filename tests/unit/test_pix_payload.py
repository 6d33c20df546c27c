"""Unit tests for BR Code payloads, PIX key validation and fees"""

import pytest
from furby_gateway.domain.models import PixKeyType
from furby_gateway.domain.pix import (
    MAX_TXID_LENGTH,
    build_pix_payload,
    crc16_ccitt,
    generate_txid,
    to_base36,
    validate_pix_key,
    withdrawal_fee,
)


def test_crc16_check_value():
    """Standard CRC-16/CCITT-FALSE check value"""
    assert crc16_ccitt("123456789") == "29B1"


def test_crc16_is_four_uppercase_hex_digits():
    checksum = crc16_ccitt("")
    assert checksum == "FFFF"


def test_payload_structure():
    payload = build_pix_payload(
        "3f1c2a9e-8b7d-4c6e-9a5f-1d2e3c4b5a69",
        12_345,
        "FURBYTEST123",
        "Furby Investimentos",
        "SAO PAULO",
    )

    assert payload.startswith("000201" + "010212")
    assert "0014br.gov.bcb.pix" in payload
    assert "5303986" in payload
    assert "5406123.45" in payload
    assert "5802BR" in payload
    assert "5919Furby Investimentos" in payload
    assert "6009SAO PAULO" in payload
    assert "62160512FURBYTEST123" in payload


def test_payload_ends_with_valid_crc():
    payload = build_pix_payload("user@example.com", 100, "FURBYABC", "Furby", "SAO PAULO")

    body, checksum = payload[:-4], payload[-4:]
    assert body.endswith("6304")
    assert checksum == crc16_ccitt(body)


def test_payload_truncates_merchant_fields():
    payload = build_pix_payload(
        "user@example.com", 100, "FURBYABC", "A" * 40, "B" * 30
    )

    assert "5925" + "A" * 25 in payload
    assert "6015" + "B" * 15 in payload


def test_generate_txid_is_bounded_and_unique():
    ids = {generate_txid() for _ in range(50)}

    assert len(ids) == 50
    assert all(len(txid) <= MAX_TXID_LENGTH and txid.isalnum() for txid in ids)
    assert all(txid.startswith("FURBY") for txid in ids)


def test_to_base36():
    assert to_base36(0) == "0"
    assert to_base36(35) == "Z"
    assert to_base36(36) == "10"


@pytest.mark.parametrize(
    "key, key_type, valid",
    [
        ("123.456.789-09", PixKeyType.CPF, True),
        ("1234567890", PixKeyType.CPF, False),
        ("maria@example.com", PixKeyType.EMAIL, True),
        ("maria@", PixKeyType.EMAIL, False),
        ("11987654321", PixKeyType.PHONE, True),
        ("+5511987654321", PixKeyType.PHONE, True),
        ("123", PixKeyType.PHONE, False),
        ("3f1c2a9e-8b7d-4c6e-9a5f-1d2e3c4b5a69", PixKeyType.RANDOM, True),
        ("not-a-uuid", PixKeyType.RANDOM, False),
        ("", PixKeyType.EMAIL, False),
    ],
)
def test_validate_pix_key(key, key_type, valid):
    assert validate_pix_key(key, key_type) is valid


def test_withdrawal_fee_has_floor():
    assert withdrawal_fee(10_000) == 200
    assert withdrawal_fee(20_000) == 200
    assert withdrawal_fee(50_000) == 500
