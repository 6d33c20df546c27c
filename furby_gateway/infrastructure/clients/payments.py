"""Payment provider clients for PIX charges and transfers"""

from datetime import date, timedelta
from typing import Dict, Protocol
import httpx

from furby_gateway.config import settings
from furby_gateway.domain.exceptions import ExternalProviderError
from furby_gateway.domain.models import PixCharge, PixKeyType, ProviderStatus
from furby_gateway.domain.pix import build_pix_payload
from furby_gateway.infrastructure.observability.metrics import provider_failure_counter


class PaymentProvider(Protocol):
    """Capability to create PIX charges/transfers and report their confirmation"""

    async def create_charge(
        self, txid: str, amount_cents: int, description: str, payer_name: str, payer_email: str
    ) -> PixCharge: ...

    async def create_transfer(
        self, txid: str, amount_cents: int, pix_key: str, pix_key_type: PixKeyType, description: str
    ) -> str: ...

    async def get_payment_status(self, provider_id: str) -> ProviderStatus: ...

    async def get_transfer_status(self, provider_id: str) -> ProviderStatus: ...


_ASAAS_PAYMENT_STATUS = {
    "RECEIVED": ProviderStatus.CONFIRMED,
    "CONFIRMED": ProviderStatus.CONFIRMED,
    "RECEIVED_IN_CASH": ProviderStatus.CONFIRMED,
    "REFUNDED": ProviderStatus.FAILED,
    "REFUND_REQUESTED": ProviderStatus.FAILED,
    "CHARGEBACK_REQUESTED": ProviderStatus.FAILED,
}

_ASAAS_TRANSFER_STATUS = {
    "DONE": ProviderStatus.CONFIRMED,
    "FAILED": ProviderStatus.FAILED,
    "CANCELLED": ProviderStatus.FAILED,
}

_ASAAS_KEY_TYPES = {
    PixKeyType.CPF: "CPF",
    PixKeyType.EMAIL: "EMAIL",
    PixKeyType.PHONE: "PHONE",
    PixKeyType.RANDOM: "EVP",
}


def _to_reais(amount_cents: int) -> float:
    return round(amount_cents / 100, 2)


class AsaasClient:
    """Client for the Asaas REST API (charges, transfers, status lookups)"""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.asaas_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.asaas_api_key
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"Content-Type": "application/json", "access_token": self.api_key},
            transport=self.transport,
        )

    async def _request(self, operation: str, method: str, path: str, **kwargs) -> Dict:
        """
        Perform one API call and decode the JSON body.

        Raises:
            ExternalProviderError: On timeout, network failure, HTTP error or
                invalid response body
        """
        async with self._client() as client:
            try:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
                return response.json()

            except httpx.TimeoutException as e:
                provider_failure_counter.labels(operation=operation).inc()
                raise ExternalProviderError(f"Asaas timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                provider_failure_counter.labels(operation=operation).inc()
                raise ExternalProviderError(f"Asaas error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                provider_failure_counter.labels(operation=operation).inc()
                raise ExternalProviderError(f"Asaas unreachable: {e}") from e
            except ValueError as e:
                provider_failure_counter.labels(operation=operation).inc()
                raise ExternalProviderError(f"Invalid response from Asaas: {e}") from e

    async def create_charge(
        self, txid: str, amount_cents: int, description: str, payer_name: str, payer_email: str
    ) -> PixCharge:
        """Register the payer, create a PIX charge and fetch its copy-and-paste payload"""
        try:
            customer = await self._request(
                "create_customer", "POST", "/customers", json={"name": payer_name, "email": payer_email}
            )
            payment = await self._request(
                "create_charge",
                "POST",
                "/payments",
                json={
                    "customer": customer["id"],
                    "billingType": "PIX",
                    "value": _to_reais(amount_cents),
                    "dueDate": (date.today() + timedelta(days=1)).isoformat(),
                    "description": description,
                    "externalReference": txid,
                },
            )
            qr = await self._request("get_qr_code", "GET", f"/payments/{payment['id']}/pixQrCode")
            return PixCharge(provider_id=payment["id"], payload=qr["payload"])
        except KeyError as e:
            raise ExternalProviderError(f"Invalid charge data from Asaas: missing {e}") from e

    async def create_transfer(
        self, txid: str, amount_cents: int, pix_key: str, pix_key_type: PixKeyType, description: str
    ) -> str:
        transfer = await self._request(
            "create_transfer",
            "POST",
            "/transfers",
            json={
                "value": _to_reais(amount_cents),
                "operationType": "PIX",
                "pixAddressKey": pix_key,
                "pixAddressKeyType": _ASAAS_KEY_TYPES[pix_key_type],
                "description": description,
                "externalReference": txid,
            },
        )
        try:
            return transfer["id"]
        except KeyError as e:
            raise ExternalProviderError("Invalid transfer data from Asaas: missing id") from e

    async def get_payment_status(self, provider_id: str) -> ProviderStatus:
        payment = await self._request("get_payment", "GET", f"/payments/{provider_id}")
        return _ASAAS_PAYMENT_STATUS.get(payment.get("status", ""), ProviderStatus.PENDING)

    async def get_transfer_status(self, provider_id: str) -> ProviderStatus:
        transfer = await self._request("get_transfer", "GET", f"/transfers/{provider_id}")
        return _ASAAS_TRANSFER_STATUS.get(transfer.get("status", ""), ProviderStatus.PENDING)


class SandboxPixProvider:
    """
    Deterministic provider for local runs and tests.

    Charges carry a locally built BR Code. Every charge or transfer stays
    pending until an outcome is scripted with ``set_outcome``.
    """

    def __init__(self, pix_key: str | None = None):
        self.pix_key = pix_key or settings.pix_company_key
        self.outcomes: Dict[str, ProviderStatus] = {}

    def set_outcome(self, provider_id: str, status: ProviderStatus) -> None:
        self.outcomes[provider_id] = status

    async def create_charge(
        self, txid: str, amount_cents: int, description: str, payer_name: str, payer_email: str
    ) -> PixCharge:
        payload = build_pix_payload(
            self.pix_key,
            amount_cents,
            txid,
            settings.pix_merchant_name,
            settings.pix_merchant_city,
        )
        return PixCharge(provider_id=f"sandbox_{txid}", payload=payload)

    async def create_transfer(
        self, txid: str, amount_cents: int, pix_key: str, pix_key_type: PixKeyType, description: str
    ) -> str:
        return f"sandbox_tr_{txid}"

    async def get_payment_status(self, provider_id: str) -> ProviderStatus:
        return self.outcomes.get(provider_id, ProviderStatus.PENDING)

    async def get_transfer_status(self, provider_id: str) -> ProviderStatus:
        return self.outcomes.get(provider_id, ProviderStatus.PENDING)


def build_payment_provider() -> PaymentProvider:
    """Provider selected by the ``payment_provider`` setting"""
    if settings.payment_provider == "asaas":
        return AsaasClient()
    return SandboxPixProvider()
