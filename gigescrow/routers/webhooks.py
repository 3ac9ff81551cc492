"""Payment gateway webhook receiver."""

import logging

import pydantic
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from gigescrow.database import get_db
from gigescrow.errors import ValidationError
from gigescrow.schemas.payment import GatewayEvent, WebhookAck
from gigescrow.services.email import EmailSender, get_email_sender
from gigescrow.services.webhooks import handle_gateway_event, verify_webhook_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/flutterwave", response_model=WebhookAck)
async def flutterwave_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
) -> WebhookAck:
    """Charge and transfer events from Flutterwave.

    The ``verif-hash`` header is checked before the body is parsed.
    """
    verify_webhook_signature(request.headers.get("verif-hash"))

    try:
        event = GatewayEvent.model_validate_json(await request.body())
    except pydantic.ValidationError as e:
        logger.warning("Malformed webhook payload: %s", e.errors()[:3])
        raise ValidationError("Malformed webhook payload")

    logger.info("Webhook received: event=%s", event.event)
    message = await handle_gateway_event(db, sender, event)
    return WebhookAck(success=True, message=message)
