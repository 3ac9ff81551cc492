"""Admin endpoints: manual payment verification, dispute handling, role grants."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from gigescrow.auth.middleware import AuthenticatedUser, require_admin
from gigescrow.auth.rate_limit import check_rate_limit
from gigescrow.database import get_db
from gigescrow.models.dispute import DisputeStatus
from gigescrow.models.user import AppRole
from gigescrow.schemas.dispute import (
    DisputeResolveRequest,
    DisputeResponse,
    EscalateRequest,
    EscalationResponse,
)
from gigescrow.schemas.payment import ProofResponse, ProofVerifyRequest
from gigescrow.schemas.user import RoleGrant, UserResponse
from gigescrow.services import disputes as dispute_service
from gigescrow.services import proofs as proof_service
from gigescrow.services import user as user_service
from gigescrow.services.email import EmailSender, get_email_sender

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(check_rate_limit)])


# --- Manual payments ---


@router.get("/payments/proofs", response_model=list[ProofResponse])
async def list_pending_proofs(
    auth: AuthenticatedUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[ProofResponse]:
    proofs = await proof_service.list_pending_proofs(db)
    return [ProofResponse.model_validate(p) for p in proofs]


@router.post("/payments/proofs/{proof_id}/verify", response_model=ProofResponse)
async def verify_payment_proof(
    proof_id: uuid.UUID,
    data: ProofVerifyRequest,
    auth: AuthenticatedUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
) -> ProofResponse:
    """Approve (escrow completed) or reject (escrow failed) a manual transfer."""
    proof = await proof_service.verify_proof(
        db, sender, proof_id, auth.user_id, data.approved, data.notes,
    )
    return ProofResponse.model_validate(proof)


# --- Disputes ---


@router.get("/disputes", response_model=list[DisputeResponse])
async def list_disputes(
    status: DisputeStatus | None = None,
    auth: AuthenticatedUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[DisputeResponse]:
    disputes = await dispute_service.list_disputes(db, status)
    return [DisputeResponse.model_validate(d) for d in disputes]


@router.get("/disputes/{dispute_id}/escalations", response_model=list[EscalationResponse])
async def list_escalations(
    dispute_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[EscalationResponse]:
    await dispute_service.get_dispute(db, dispute_id)
    escalations = await dispute_service.list_escalations(db, dispute_id)
    return [EscalationResponse.model_validate(e) for e in escalations]


@router.post("/disputes/{dispute_id}/escalate", response_model=EscalationResponse, status_code=201)
async def escalate_dispute(
    dispute_id: uuid.UUID,
    data: EscalateRequest,
    auth: AuthenticatedUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
) -> EscalationResponse:
    escalation = await dispute_service.escalate_dispute(
        db, sender, dispute_id, auth.user, data.escalated_to, data.notes,
    )
    return EscalationResponse.model_validate(escalation)


@router.post("/disputes/{dispute_id}/resolve", response_model=DisputeResponse)
async def resolve_dispute(
    dispute_id: uuid.UUID,
    data: DisputeResolveRequest,
    auth: AuthenticatedUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
) -> DisputeResponse:
    dispute = await dispute_service.resolve_dispute(
        db, sender, dispute_id, data.resolution, auth.user_id,
    )
    return DisputeResponse.model_validate(dispute)


# --- Roles ---


@router.post("/users/{user_id}/roles", response_model=UserResponse)
async def grant_role(
    user_id: uuid.UUID,
    data: RoleGrant,
    auth: AuthenticatedUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    user = await user_service.grant_role(db, user_id, AppRole(data.role))
    return UserResponse.model_validate(user)
