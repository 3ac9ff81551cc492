"""Payment gateway adapter.

``PaymentGateway`` is the seam the escrow and wallet services call; the
production implementation talks to the Flutterwave v3 REST API. Amounts
cross this boundary in minor units and are converted to major units only
on the wire.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol

import httpx

from gigescrow.config import settings
from gigescrow.errors import GatewayError

logger = logging.getLogger(__name__)


@dataclass
class ChargeResult:
    payment_link: str
    tx_ref: str
    provider_tx_id: str | None = None


@dataclass
class TransferResult:
    provider_transfer_id: str
    reference: str
    raw: dict = field(default_factory=dict)


@dataclass
class Customer:
    email: str
    name: str


class PaymentGateway(Protocol):
    async def create_charge(
        self,
        amount: int,
        currency: str,
        customer: Customer,
        metadata: dict,
        tx_ref: str,
        description: str,
    ) -> ChargeResult: ...

    async def create_transfer(
        self,
        amount: int,
        currency: str,
        destination: dict,
        reference: str,
        beneficiary_name: str,
    ) -> TransferResult: ...


def _to_major_units(amount: int) -> float:
    return float(Decimal(amount) / Decimal(100))


class FlutterwaveGateway:
    """Flutterwave v3: hosted payment links for charges, bank transfers for payouts."""

    def __init__(self, secret_key: str, api_url: str, timeout: int) -> None:
        self.secret_key = secret_key
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    async def _post(self, path: str, payload: dict) -> dict:
        if not self.secret_key:
            raise GatewayError("Payment gateway is not configured on this server")

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                resp = await client.post(
                    f"{self.api_url}{path}",
                    headers={
                        "Authorization": f"Bearer {self.secret_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
            except httpx.TimeoutException:
                logger.error("Flutterwave %s timed out", path)
                raise GatewayError("Payment gateway timed out")
            except httpx.RequestError as e:
                logger.error("Flutterwave %s request failed: %s", path, e)
                raise GatewayError("Failed to reach payment gateway")

        try:
            data = resp.json()
        except ValueError:
            logger.error("Flutterwave %s returned %d with non-JSON body: %s",
                         path, resp.status_code, resp.text[:500])
            raise GatewayError(f"Payment gateway error (status {resp.status_code})")

        if resp.status_code >= 400 or data.get("status") != "success":
            message = data.get("message") or f"status {resp.status_code}"
            logger.error("Flutterwave %s rejected request: %s", path, message)
            raise GatewayError(f"Payment gateway rejected request: {message}")

        return data.get("data") or {}

    async def create_charge(
        self,
        amount: int,
        currency: str,
        customer: Customer,
        metadata: dict,
        tx_ref: str,
        description: str,
    ) -> ChargeResult:
        data = await self._post("/payments", {
            "tx_ref": tx_ref,
            "amount": _to_major_units(amount),
            "currency": currency,
            "redirect_url": settings.payment_redirect_url,
            "customer": {"email": customer.email, "name": customer.name},
            "customizations": {"title": "Job Payment", "description": description},
            "meta": metadata,
        })
        link = data.get("link")
        if not link:
            raise GatewayError("Payment gateway did not return a payment link")
        provider_id = data.get("id")
        return ChargeResult(
            payment_link=link,
            tx_ref=tx_ref,
            provider_tx_id=str(provider_id) if provider_id is not None else None,
        )

    async def create_transfer(
        self,
        amount: int,
        currency: str,
        destination: dict,
        reference: str,
        beneficiary_name: str,
    ) -> TransferResult:
        data = await self._post("/transfers", {
            "account_bank": destination["account_bank"],
            "account_number": destination["account_number"],
            "amount": _to_major_units(amount),
            "currency": currency,
            "narration": "Payout withdrawal",
            "reference": reference,
            "beneficiary_name": beneficiary_name,
        })
        return TransferResult(
            provider_transfer_id=str(data.get("id", "")),
            reference=data.get("reference") or reference,
            raw=data,
        )


def get_payment_gateway() -> PaymentGateway:
    return FlutterwaveGateway(
        secret_key=settings.flutterwave_secret_key,
        api_url=settings.flutterwave_api_url,
        timeout=settings.gateway_timeout_seconds,
    )
