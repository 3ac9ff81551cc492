"""Inbound payment-gateway webhooks.

Flutterwave sends the secret hash configured on its dashboard verbatim in
the ``verif-hash`` header; it is compared in constant time before the body
is trusted. Events are dispatched to the escrow and wallet services, both of
which are idempotent, so gateway retries are safe.
"""

import hmac
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from gigescrow.config import settings
from gigescrow.errors import AuthenticationError
from gigescrow.schemas.payment import GatewayEvent
from gigescrow.services.email import EmailSender
from gigescrow.services.escrow import confirm_escrow
from gigescrow.services.wallet import settle_payout

logger = logging.getLogger(__name__)

CHARGE_SUCCESS_STATUSES = {"successful"}
CHARGE_FAILURE_STATUSES = {"failed"}
TRANSFER_SUCCESS_STATUSES = {"SUCCESSFUL"}
TRANSFER_FAILURE_STATUSES = {"FAILED"}


def verify_webhook_signature(received: str | None, secret_hash: str | None = None) -> None:
    """Raise ``AuthenticationError`` unless the header matches the secret hash."""
    if secret_hash is None:
        secret_hash = settings.flutterwave_webhook_secret_hash
    if not secret_hash:
        logger.error("Webhook secret hash is not configured; rejecting webhook")
        raise AuthenticationError("Webhook verification is not configured")
    if not received or not hmac.compare_digest(received.encode(), secret_hash.encode()):
        logger.warning("Rejected webhook with invalid verif-hash")
        raise AuthenticationError("Invalid webhook signature")


async def handle_gateway_event(
    db: AsyncSession, sender: EmailSender, event: GatewayEvent
) -> str:
    """Apply a verified gateway event. Returns a short acknowledgement message."""
    data = event.data
    provider_id = str(data.id) if data.id is not None else None

    if event.event in ("charge.completed", "charge.failed"):
        if not data.tx_ref:
            logger.warning("Ignoring %s event without tx_ref", event.event)
            return "Ignored: missing tx_ref"
        status = "failed" if event.event == "charge.failed" else (data.status or "").lower()
        if status not in CHARGE_SUCCESS_STATUSES | CHARGE_FAILURE_STATUSES:
            logger.warning("Ignoring charge %s with status %s", data.tx_ref, data.status)
            return f"Ignored: charge status {data.status}"
        succeeded = status in CHARGE_SUCCESS_STATUSES
        transaction = await confirm_escrow(db, sender, data.tx_ref, succeeded, provider_id)
        return f"Escrow {transaction.status.value}"

    if event.event in ("transfer.completed", "transfer.failed"):
        status = "FAILED" if event.event == "transfer.failed" else (data.status or "").upper()
        if not data.reference:
            logger.warning("Ignoring transfer event without reference")
            return "Ignored: missing reference"
        if status not in TRANSFER_SUCCESS_STATUSES | TRANSFER_FAILURE_STATUSES:
            logger.warning("Ignoring transfer %s with status %s", data.reference, data.status)
            return f"Ignored: transfer status {data.status}"
        transaction = await settle_payout(
            db,
            data.reference,
            succeeded=status in TRANSFER_SUCCESS_STATUSES,
            metadata={"flutterwave_transfer_id": provider_id, "transfer_status": status},
        )
        return f"Payout {transaction.status.value}"

    logger.warning("Ignoring unhandled webhook event %s", event.event)
    return f"Ignored event {event.event}"
