"""Escrow business logic: initialize, confirm and release job payments.

Lifecycle of an ``escrow`` transaction:

    pending --(gateway success / proof approved)--> completed
    pending --(gateway failure / proof rejected)--> failed

A ``completed`` escrow can be released exactly once; the release credits the
talent's wallet with the escrow's net amount.
"""

import logging
import time
import uuid
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gigescrow.config import settings
from gigescrow.errors import (
    AuthorizationError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from gigescrow.models.job import (
    ApplicationStatus,
    Contract,
    ContractStatus,
    Job,
    JobStatus,
)
from gigescrow.models.transaction import (
    PaymentProvider,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from gigescrow.models.user import User
from gigescrow.services.email import EmailSender
from gigescrow.services.fees import FeeBreakdown, calculate_platform_fee
from gigescrow.services.gateway import Customer, PaymentGateway
from gigescrow.services.job import get_application, get_job
from gigescrow.services.notifications import notify
from gigescrow.services.user import get_user
from gigescrow.services.wallet import check_wallet_currency, credit_wallet

logger = logging.getLogger(__name__)


async def _validate_escrow_request(
    db: AsyncSession, job_id: uuid.UUID, amount: int, currency: str, payer: User
) -> tuple[Job, str, FeeBreakdown]:
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero")
    currency = currency.upper()
    if currency not in settings.normalized_currencies:
        raise ValidationError(f"Unsupported currency: {currency}")

    job = await get_job(db, job_id)
    if job.employer_id != payer.user_id:
        raise AuthorizationError("Only the job's employer can fund its escrow")

    # Pending or failed attempts may be retried; a secured escrow may not be doubled
    funded = await db.execute(
        select(Transaction.transaction_id).where(
            Transaction.job_id == job_id,
            Transaction.type == TransactionType.ESCROW,
            Transaction.status == TransactionStatus.COMPLETED,
        )
    )
    if funded.first() is not None:
        raise PreconditionError("This job already has a completed escrow payment")

    return job, currency, calculate_platform_fee(amount)


async def initialize_escrow(
    db: AsyncSession,
    gateway: PaymentGateway,
    job_id: uuid.UUID,
    amount: int,
    currency: str,
    description: str,
    payer: User,
) -> tuple[Transaction, str]:
    """Open a hosted payment for a job and record a pending escrow.

    The gateway is called before anything is written: if it fails, no
    transaction exists. Returns (transaction, payment_link).
    """
    job, currency, fees = await _validate_escrow_request(db, job_id, amount, currency, payer)

    tx_ref = f"job-{job_id}-{int(time.time() * 1000)}"
    charge = await gateway.create_charge(
        amount=amount,
        currency=currency,
        customer=Customer(email=payer.email, name=payer.full_name),
        metadata={
            "job_id": str(job_id),
            "payer_id": str(payer.user_id),
            "platform_fee": fees.platform_fee,
            "net_amount": fees.net_amount,
        },
        tx_ref=tx_ref,
        description=description or f"Payment for: {job.title}",
    )

    transaction = Transaction(
        transaction_id=uuid.uuid4(),
        job_id=job_id,
        from_user_id=payer.user_id,
        amount=fees.amount,
        platform_fee=fees.platform_fee,
        net_amount=fees.net_amount,
        currency=currency,
        type=TransactionType.ESCROW,
        status=TransactionStatus.PENDING,
        external_reference=charge.tx_ref,
        payment_provider=PaymentProvider.FLUTTERWAVE,
        description=description or f"Payment for: {job.title}",
        payment_metadata={
            "payment_link": charge.payment_link,
            "flutterwave_tx_id": charge.provider_tx_id,
        },
    )
    db.add(transaction)
    await db.commit()
    await db.refresh(transaction)

    logger.info(
        "Escrow %s initialized for job %s: amount=%d fee=%d net=%d %s",
        transaction.transaction_id, job_id, fees.amount, fees.platform_fee,
        fees.net_amount, currency,
    )
    return transaction, charge.payment_link


async def initialize_manual_escrow(
    db: AsyncSession,
    job_id: uuid.UUID,
    amount: int,
    currency: str,
    description: str,
    payer: User,
) -> Transaction:
    """Record a pending escrow to be paid by bank transfer and proven later."""
    job, currency, fees = await _validate_escrow_request(db, job_id, amount, currency, payer)

    transaction = Transaction(
        transaction_id=uuid.uuid4(),
        job_id=job_id,
        from_user_id=payer.user_id,
        amount=fees.amount,
        platform_fee=fees.platform_fee,
        net_amount=fees.net_amount,
        currency=currency,
        type=TransactionType.ESCROW,
        status=TransactionStatus.PENDING,
        external_reference=f"manual-{uuid.uuid4()}",
        payment_provider=PaymentProvider.MANUAL_TRANSFER,
        description=description or f"Manual payment for: {job.title}",
        payment_metadata={"awaiting_proof": True},
    )
    db.add(transaction)
    await db.commit()
    await db.refresh(transaction)

    logger.info(
        "Manual escrow %s initialized for job %s: amount=%d %s",
        transaction.transaction_id, job_id, fees.amount, currency,
    )
    return transaction


async def mark_escrow_funded(db: AsyncSession, transaction: Transaction) -> None:
    """Advance the job once its escrow is secured. Does not commit."""
    if transaction.job_id is None:
        return
    job = await get_job(db, transaction.job_id)
    if job.status == JobStatus.OPEN:
        job.status = JobStatus.IN_PROGRESS
        logger.info("Job %s moved to in_progress after escrow %s", job.job_id,
                    transaction.transaction_id)


async def confirm_escrow(
    db: AsyncSession,
    sender: EmailSender,
    external_reference: str,
    succeeded: bool,
    provider_payment_id: str | None = None,
) -> Transaction:
    """Apply the gateway's verdict on a pending escrow.

    Replays for a transaction that is already completed or failed return it
    unchanged, with no email and no job transition.
    """
    result = await db.execute(
        select(Transaction)
        .where(
            Transaction.external_reference == external_reference,
            Transaction.type == TransactionType.ESCROW,
        )
        .with_for_update()
    )
    transaction = result.scalar_one_or_none()
    if transaction is None:
        raise NotFoundError("Transaction not found")
    if transaction.is_terminal:
        logger.info(
            "Escrow %s already %s, ignoring replay",
            external_reference, transaction.status.value,
        )
        return transaction

    if not succeeded:
        transaction.status = TransactionStatus.FAILED
        await db.commit()
        await db.refresh(transaction)
        logger.info("Escrow %s failed at the gateway", transaction.transaction_id)
        return transaction

    transaction.status = TransactionStatus.COMPLETED
    transaction.payment_metadata = {
        **(transaction.payment_metadata or {}),
        "flutterwave_payment_id": provider_payment_id,
        "completed_at": datetime.now(UTC).isoformat(),
    }
    await mark_escrow_funded(db, transaction)
    await db.commit()
    await db.refresh(transaction)

    logger.info(
        "Escrow %s confirmed: %d %s held for job %s",
        transaction.transaction_id, transaction.amount, transaction.currency,
        transaction.job_id,
    )

    payer = await get_user(db, transaction.from_user_id)
    job = await get_job(db, transaction.job_id)
    await notify(
        sender, payer.email, "payment",
        user_name=payer.full_name, job_title=job.title,
        amount=transaction.amount, currency=transaction.currency,
        transaction_id=str(transaction.transaction_id),
    )
    return transaction


async def release_escrow(
    db: AsyncSession,
    sender: EmailSender,
    job_id: uuid.UUID,
    application_id: uuid.UUID,
    requester_id: uuid.UUID,
) -> Transaction:
    """Release a job's completed escrow to the accepted talent.

    The release row, wallet credit and job/application/contract completion
    are committed together. A job can be released once: any release that
    has not failed blocks another.
    """
    job = await get_job(db, job_id)
    if job.employer_id != requester_id:
        raise AuthorizationError("Only the job's employer can release payment")

    application = await get_application(db, application_id, job_id)

    result = await db.execute(
        select(Transaction)
        .where(
            Transaction.job_id == job_id,
            Transaction.type == TransactionType.ESCROW,
            Transaction.status == TransactionStatus.COMPLETED,
        )
        .order_by(Transaction.created_at.desc())
        .limit(1)
        .with_for_update()
    )
    escrow = result.scalar_one_or_none()
    if escrow is None:
        raise PreconditionError("No completed escrow payment found for this job")

    existing = await db.execute(
        select(Transaction.transaction_id).where(
            Transaction.job_id == job_id,
            Transaction.type == TransactionType.RELEASE,
            Transaction.status != TransactionStatus.FAILED,
        )
    )
    if existing.first() is not None:
        raise PreconditionError("Payment has already been released for this job")

    if application.status != ApplicationStatus.ACCEPTED:
        raise PreconditionError("Payment can only be released to an accepted application")
    contract_result = await db.execute(
        select(Contract).where(
            Contract.application_id == application_id,
            Contract.status == ContractStatus.ACTIVE,
        )
    )
    contract = contract_result.scalar_one_or_none()
    if contract is None:
        raise PreconditionError("No active contract for this application")

    talent_id = application.applicant_id
    await check_wallet_currency(db, talent_id, escrow.currency)

    release = Transaction(
        transaction_id=uuid.uuid4(),
        job_id=job_id,
        from_user_id=requester_id,
        to_user_id=talent_id,
        amount=escrow.amount,
        platform_fee=escrow.platform_fee,
        net_amount=escrow.net_amount,
        currency=escrow.currency,
        type=TransactionType.RELEASE,
        status=TransactionStatus.COMPLETED,
        payment_provider=escrow.payment_provider,
        description=f"Payment released for: {job.title}",
        payment_metadata={
            "escrow_transaction_id": str(escrow.transaction_id),
            "application_id": str(application_id),
            "released_at": datetime.now(UTC).isoformat(),
        },
    )
    db.add(release)
    await credit_wallet(db, talent_id, escrow.net_amount, escrow.currency)

    application.status = ApplicationStatus.COMPLETED
    job.status = JobStatus.COMPLETED
    contract.status = ContractStatus.COMPLETED

    await db.commit()
    await db.refresh(release)

    logger.info(
        "Escrow %s released to talent %s: net=%d fee=%d %s",
        escrow.transaction_id, talent_id, release.net_amount, release.platform_fee,
        release.currency,
    )

    talent = await get_user(db, talent_id)
    await notify(
        sender, talent.email, "release",
        user_name=talent.full_name, job_title=job.title,
        amount=release.net_amount, currency=release.currency,
        transaction_id=str(release.transaction_id),
    )
    return release


async def get_transaction(
    db: AsyncSession, transaction_id: uuid.UUID, viewer_id: uuid.UUID
) -> Transaction:
    """Fetch a transaction visible to one of its parties."""
    result = await db.execute(
        select(Transaction).where(Transaction.transaction_id == transaction_id)
    )
    transaction = result.scalar_one_or_none()
    if transaction is None or viewer_id not in (transaction.from_user_id, transaction.to_user_id):
        raise NotFoundError("Transaction not found")
    return transaction
