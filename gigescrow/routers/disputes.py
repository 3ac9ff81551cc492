"""Dispute endpoints for contract parties."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from gigescrow.auth.middleware import AuthenticatedUser, verify_request
from gigescrow.auth.rate_limit import check_rate_limit
from gigescrow.database import get_db
from gigescrow.schemas.dispute import DisputeCreate, DisputeResponse
from gigescrow.services import disputes as dispute_service
from gigescrow.services.email import EmailSender, get_email_sender

router = APIRouter(tags=["disputes"])


@router.post(
    "/contracts/{contract_id}/disputes",
    response_model=DisputeResponse,
    status_code=201,
    dependencies=[Depends(check_rate_limit)],
)
async def raise_dispute(
    contract_id: uuid.UUID,
    data: DisputeCreate,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
) -> DisputeResponse:
    dispute = await dispute_service.raise_dispute(db, sender, contract_id, auth.user, data.reason)
    return DisputeResponse.model_validate(dispute)
