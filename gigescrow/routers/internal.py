"""Scheduler-facing endpoints, authenticated with the shared cron secret."""

import hmac

from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from gigescrow.config import settings
from gigescrow.database import get_db
from gigescrow.errors import AuthenticationError
from gigescrow.schemas.dispute import SweepResponse
from gigescrow.services import disputes as dispute_service
from gigescrow.services.email import EmailSender, get_email_sender

router = APIRouter(prefix="/internal", tags=["internal"])


def verify_cron_secret(x_cron_secret: str | None = Header(None)) -> None:
    if not settings.cron_secret:
        raise AuthenticationError("Cron secret is not configured")
    if not x_cron_secret or not hmac.compare_digest(
        x_cron_secret.encode(), settings.cron_secret.encode()
    ):
        raise AuthenticationError("Invalid cron secret")


@router.post("/disputes/escalate", response_model=SweepResponse, dependencies=[Depends(verify_cron_secret)])
async def escalate_disputes(
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
) -> SweepResponse:
    """Escalate disputes left open past the escalation window."""
    result = await dispute_service.run_escalation_sweep(db, sender)
    return SweepResponse(escalated=result.escalated, dispute_ids=result.dispute_ids)
