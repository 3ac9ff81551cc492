"""Escrow payment endpoints: initialize, release, manual proofs, lookups."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from gigescrow.auth.middleware import AuthenticatedUser, verify_request
from gigescrow.auth.rate_limit import check_rate_limit
from gigescrow.database import get_db
from gigescrow.schemas.payment import (
    EscrowInitRequest,
    EscrowInitResponse,
    ProofResponse,
    ProofSubmitRequest,
    ReleaseRequest,
    ReleaseResponse,
    TransactionResponse,
)
from gigescrow.services import escrow as escrow_service
from gigescrow.services import proofs as proof_service
from gigescrow.services.email import EmailSender, get_email_sender
from gigescrow.services.gateway import PaymentGateway, get_payment_gateway

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/escrow", response_model=EscrowInitResponse, status_code=201, dependencies=[Depends(check_rate_limit)])
async def initialize_escrow(
    data: EscrowInitRequest,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> EscrowInitResponse:
    """Employer starts paying a job into escrow through the hosted payment page."""
    transaction, payment_link = await escrow_service.initialize_escrow(
        db, gateway, data.job_id, data.amount, data.currency, data.description, auth.user,
    )
    return EscrowInitResponse(
        transaction_id=transaction.transaction_id,
        payment_link=payment_link,
        external_reference=transaction.external_reference,
        amount=transaction.amount,
        platform_fee=transaction.platform_fee,
        net_amount=transaction.net_amount,
        currency=transaction.currency,
    )


@router.post(
    "/escrow/manual",
    response_model=EscrowInitResponse,
    status_code=201,
    dependencies=[Depends(check_rate_limit)],
)
async def initialize_manual_escrow(
    data: EscrowInitRequest,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> EscrowInitResponse:
    """Employer pays by bank transfer; upload a proof to /payments/proofs afterwards."""
    transaction = await escrow_service.initialize_manual_escrow(
        db, data.job_id, data.amount, data.currency, data.description, auth.user,
    )
    return EscrowInitResponse(
        transaction_id=transaction.transaction_id,
        payment_link=None,
        external_reference=transaction.external_reference,
        amount=transaction.amount,
        platform_fee=transaction.platform_fee,
        net_amount=transaction.net_amount,
        currency=transaction.currency,
        message="Transfer the amount and submit a payment proof for verification.",
    )


@router.post("/release", response_model=ReleaseResponse, dependencies=[Depends(check_rate_limit)])
async def release_escrow(
    data: ReleaseRequest,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
) -> ReleaseResponse:
    """Employer approves the work and releases the escrowed funds to the talent."""
    release = await escrow_service.release_escrow(
        db, sender, data.job_id, data.application_id, auth.user_id,
    )
    return ReleaseResponse(
        transaction_id=release.transaction_id,
        amount_released=release.net_amount,
        platform_fee=release.platform_fee,
        currency=release.currency,
        talent_id=release.to_user_id,
    )


@router.post("/proofs", response_model=ProofResponse, status_code=201, dependencies=[Depends(check_rate_limit)])
async def submit_payment_proof(
    data: ProofSubmitRequest,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
) -> ProofResponse:
    proof = await proof_service.submit_proof(
        db, sender, data.transaction_id, auth.user, data.proof_url, data.bank_details, data.notes,
    )
    return ProofResponse.model_validate(proof)


@router.get(
    "/transactions/{transaction_id}",
    response_model=TransactionResponse,
    dependencies=[Depends(check_rate_limit)],
)
async def get_transaction(
    transaction_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    transaction = await escrow_service.get_transaction(db, transaction_id, auth.user_id)
    return TransactionResponse.model_validate(transaction)
