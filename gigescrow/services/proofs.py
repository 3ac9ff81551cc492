"""Manual bank-transfer payments: proof submission and admin verification."""

import logging
import uuid
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gigescrow.config import settings
from gigescrow.errors import NotFoundError, PreconditionError
from gigescrow.models.transaction import (
    PaymentProof,
    PaymentProvider,
    ProofStatus,
    Transaction,
    TransactionStatus,
)
from gigescrow.models.user import User
from gigescrow.services.email import EmailSender
from gigescrow.services.escrow import mark_escrow_funded
from gigescrow.services.notifications import notify
from gigescrow.services.user import get_user

logger = logging.getLogger(__name__)


async def submit_proof(
    db: AsyncSession,
    sender: EmailSender,
    transaction_id: uuid.UUID,
    payer: User,
    proof_url: str,
    bank_details: str | None,
    notes: str | None,
) -> PaymentProof:
    result = await db.execute(
        select(Transaction).where(
            Transaction.transaction_id == transaction_id,
            Transaction.from_user_id == payer.user_id,
            Transaction.payment_provider == PaymentProvider.MANUAL_TRANSFER,
        )
    )
    transaction = result.scalar_one_or_none()
    if transaction is None:
        raise NotFoundError("Transaction not found")
    if transaction.status != TransactionStatus.PENDING:
        raise PreconditionError(
            f"Transaction is not awaiting payment, currently {transaction.status.value}"
        )

    proof = PaymentProof(
        proof_id=uuid.uuid4(),
        transaction_id=transaction_id,
        user_id=payer.user_id,
        proof_url=proof_url,
        bank_details=bank_details,
        notes=notes,
    )
    db.add(proof)
    await db.commit()
    await db.refresh(proof)

    logger.info("Payment proof %s submitted for transaction %s", proof.proof_id, transaction_id)

    await notify(
        sender, settings.admin_notification_email, "payment_proof_submitted",
        amount=transaction.amount, currency=transaction.currency,
        transaction_id=str(transaction_id), proof_url=proof_url,
    )
    return proof


async def verify_proof(
    db: AsyncSession,
    sender: EmailSender,
    proof_id: uuid.UUID,
    admin_id: uuid.UUID,
    approved: bool,
    notes: str | None = None,
) -> PaymentProof:
    """Admin decision on a manual transfer.

    Approval completes the escrow (and advances the job as a gateway
    confirmation would); rejection fails it. A proof is decided once.
    """
    result = await db.execute(
        select(PaymentProof).where(PaymentProof.proof_id == proof_id).with_for_update()
    )
    proof = result.scalar_one_or_none()
    if proof is None:
        raise NotFoundError("Payment proof not found")
    if proof.status != ProofStatus.PENDING:
        raise PreconditionError(f"Payment proof already {proof.status.value}")

    result = await db.execute(
        select(Transaction)
        .where(Transaction.transaction_id == proof.transaction_id)
        .with_for_update()
    )
    transaction = result.scalar_one()
    if transaction.is_terminal:
        raise PreconditionError(f"Transaction already {transaction.status.value}")

    now = datetime.now(UTC)
    proof.verified_by = admin_id
    proof.verified_at = now
    metadata = {
        **(transaction.payment_metadata or {}),
        "verified_by": str(admin_id),
        "verified_at": now.isoformat(),
        "admin_notes": notes,
    }
    metadata.pop("awaiting_proof", None)

    if approved:
        proof.status = ProofStatus.VERIFIED
        transaction.status = TransactionStatus.COMPLETED
        await mark_escrow_funded(db, transaction)
    else:
        proof.status = ProofStatus.REJECTED
        transaction.status = TransactionStatus.FAILED
        metadata["rejection_reason"] = notes
    transaction.payment_metadata = metadata

    await db.commit()
    await db.refresh(proof)

    logger.info(
        "Payment proof %s %s by admin %s (transaction %s)",
        proof_id, proof.status.value, admin_id, transaction.transaction_id,
    )

    payer = await get_user(db, transaction.from_user_id)
    await notify(
        sender, payer.email, "payment_verified" if approved else "payment_rejected",
        user_name=payer.full_name, amount=transaction.amount, currency=transaction.currency,
        transaction_id=str(transaction.transaction_id), reason=notes,
    )
    return proof


async def list_pending_proofs(db: AsyncSession) -> list[PaymentProof]:
    result = await db.execute(
        select(PaymentProof)
        .where(PaymentProof.status == ProofStatus.PENDING)
        .order_by(PaymentProof.created_at.asc())
    )
    return list(result.scalars().all())
