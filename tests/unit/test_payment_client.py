"""Unit tests for payment provider clients"""

import json
import httpx
import pytest

from furby_gateway.domain.exceptions import ExternalProviderError
from furby_gateway.domain.models import PixKeyType, ProviderStatus
from furby_gateway.domain.pix import crc16_ccitt
from furby_gateway.infrastructure.clients.payments import AsaasClient, SandboxPixProvider


def _client(handler) -> AsaasClient:
    return AsaasClient(
        base_url="https://asaas.test/api/v3",
        api_key="test-key",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


async def test_create_charge_flow():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        assert request.headers["access_token"] == "test-key"
        if request.url.path.endswith("/customers"):
            return httpx.Response(200, json={"id": "cus_1"})
        if request.url.path.endswith("/payments"):
            body = json.loads(request.content)
            assert body["customer"] == "cus_1"
            assert body["billingType"] == "PIX"
            assert body["value"] == 123.45
            assert body["externalReference"] == "FURBYTX1"
            return httpx.Response(200, json={"id": "pay_1", "status": "PENDING"})
        return httpx.Response(200, json={"payload": "000201...6304ABCD", "encodedImage": "..."})

    charge = await _client(handler).create_charge("FURBYTX1", 12_345, "Deposit", "Clara", "clara@example.com")

    assert charge.provider_id == "pay_1"
    assert charge.payload == "000201...6304ABCD"
    assert seen == [
        ("POST", "/api/v3/customers"),
        ("POST", "/api/v3/payments"),
        ("GET", "/api/v3/payments/pay_1/pixQrCode"),
    ]


async def test_create_charge_missing_fields_is_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={})

    with pytest.raises(ExternalProviderError):
        await _client(handler).create_charge("FURBYTX1", 100, "Deposit", "Clara", "clara@example.com")


async def test_http_error_maps_to_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"errors": [{"code": "internal"}]})

    with pytest.raises(ExternalProviderError, match="500"):
        await _client(handler).get_payment_status("pay_1")


async def test_timeout_maps_to_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(ExternalProviderError, match="timeout"):
        await _client(handler).get_transfer_status("tr_1")


async def test_invalid_json_maps_to_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>maintenance</html>")

    with pytest.raises(ExternalProviderError):
        await _client(handler).get_payment_status("pay_1")


@pytest.mark.parametrize(
    "asaas_status, expected",
    [
        ("RECEIVED", ProviderStatus.CONFIRMED),
        ("CONFIRMED", ProviderStatus.CONFIRMED),
        ("PENDING", ProviderStatus.PENDING),
        ("REFUNDED", ProviderStatus.FAILED),
    ],
)
async def test_payment_status_mapping(asaas_status, expected):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "pay_1", "status": asaas_status})

    assert await _client(handler).get_payment_status("pay_1") == expected


async def test_create_transfer_sends_key_type():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["pixAddressKeyType"] == "EVP"
        assert body["value"] == 297.0
        return httpx.Response(200, json={"id": "tr_9", "status": "PENDING"})

    transfer_id = await _client(handler).create_transfer(
        "FURBYTX2", 29_700, "3f1c2a9e-8b7d-4c6e-9a5f-1d2e3c4b5a69", PixKeyType.RANDOM, "Withdrawal"
    )

    assert transfer_id == "tr_9"


async def test_sandbox_builds_valid_br_code_and_scripted_outcomes():
    provider = SandboxPixProvider(pix_key="3f1c2a9e-8b7d-4c6e-9a5f-1d2e3c4b5a69")

    charge = await provider.create_charge("FURBYTX3", 5_000, "Deposit", "Clara", "clara@example.com")

    assert charge.provider_id == "sandbox_FURBYTX3"
    assert charge.payload[-4:] == crc16_ccitt(charge.payload[:-4])
    assert await provider.get_payment_status(charge.provider_id) == ProviderStatus.PENDING

    provider.set_outcome(charge.provider_id, ProviderStatus.CONFIRMED)
    assert await provider.get_payment_status(charge.provider_id) == ProviderStatus.CONFIRMED
