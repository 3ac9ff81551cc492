"""Wallet service: balance credits/debits, payouts, payout settlement, history."""

import logging
import time
import uuid
from datetime import UTC, datetime

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gigescrow.config import settings
from gigescrow.errors import InsufficientFundsError, NotFoundError, ValidationError
from gigescrow.models.transaction import (
    PaymentProvider,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from gigescrow.models.user import User
from gigescrow.models.wallet import Wallet
from gigescrow.services.email import EmailSender
from gigescrow.services.gateway import PaymentGateway
from gigescrow.services.notifications import notify

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Balance helpers
# ---------------------------------------------------------------------------


async def get_wallet(db: AsyncSession, user_id: uuid.UUID) -> Wallet:
    result = await db.execute(select(Wallet).where(Wallet.user_id == user_id))
    wallet = result.scalar_one_or_none()
    if wallet is None:
        raise NotFoundError("Wallet not found")
    return wallet


async def check_wallet_currency(db: AsyncSession, user_id: uuid.UUID, currency: str) -> None:
    """Raise if the user already holds a wallet in another currency."""
    result = await db.execute(select(Wallet.currency).where(Wallet.user_id == user_id))
    existing = result.scalar_one_or_none()
    if existing is not None and existing != currency:
        raise ValidationError(
            f"Wallet currency is {existing}; cannot credit {currency} without conversion"
        )


async def credit_wallet(
    db: AsyncSession, user_id: uuid.UUID, delta: int, currency: str
) -> None:
    """Add ``delta`` to the user's balance, creating the wallet if absent.

    Single ``balance = balance + delta`` UPDATE so concurrent credits for the
    same user never lose an update. The wallet's currency must match; no
    conversion is performed. Does not commit.
    """
    result = await db.execute(
        update(Wallet)
        .where(Wallet.user_id == user_id, Wallet.currency == currency)
        .values(balance=Wallet.balance + delta, updated_at=datetime.now(UTC))
    )
    if result.rowcount == 0:
        await check_wallet_currency(db, user_id, currency)
        db.add(Wallet(wallet_id=uuid.uuid4(), user_id=user_id, balance=delta, currency=currency))
        await db.flush()
        logger.info("Created wallet for user %s with opening balance %d %s", user_id, delta, currency)


async def debit_wallet(db: AsyncSession, user_id: uuid.UUID, amount: int) -> None:
    """Subtract ``amount`` only if the balance covers it. Does not commit."""
    result = await db.execute(
        update(Wallet)
        .where(Wallet.user_id == user_id, Wallet.balance >= amount)
        .values(balance=Wallet.balance - amount, updated_at=datetime.now(UTC))
    )
    if result.rowcount == 0:
        raise InsufficientFundsError("Insufficient balance")


# ---------------------------------------------------------------------------
# Payouts
# ---------------------------------------------------------------------------


async def withdraw_payout(
    db: AsyncSession,
    gateway: PaymentGateway,
    sender: EmailSender,
    user: User,
    amount: int,
    account_number: str,
    account_bank: str,
    currency: str,
) -> tuple[Transaction, int]:
    """Transfer ``amount`` from the user's wallet to a bank account.

    The balance check happens before the gateway is called; a gateway failure
    leaves the wallet untouched. On success the wallet is debited at once and
    a pending payout transaction records the transfer reference until the
    gateway settles it. Returns (transaction, new_balance).
    """
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero")
    currency = currency.upper()
    if currency not in settings.normalized_currencies:
        raise ValidationError(f"Unsupported currency: {currency}")

    # Lock the wallet row for the whole sequence so payouts for one user serialize
    result = await db.execute(
        select(Wallet).where(Wallet.user_id == user.user_id).with_for_update()
    )
    wallet = result.scalar_one_or_none()
    if wallet is None:
        raise NotFoundError("Wallet not found")
    if wallet.currency != currency:
        raise ValidationError(
            f"Wallet currency is {wallet.currency}; payouts in {currency} are not supported"
        )
    if amount > wallet.balance:
        raise InsufficientFundsError(
            f"Insufficient balance: {wallet.balance} < {amount}"
        )

    reference = f"payout-{user.user_id}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"
    transfer = await gateway.create_transfer(
        amount=amount,
        currency=currency,
        destination={"account_number": account_number, "account_bank": account_bank},
        reference=reference,
        beneficiary_name=user.full_name,
    )

    transaction = Transaction(
        transaction_id=uuid.uuid4(),
        from_user_id=user.user_id,
        amount=amount,
        platform_fee=0,
        net_amount=amount,
        currency=currency,
        type=TransactionType.PAYOUT,
        status=TransactionStatus.PENDING,
        external_reference=transfer.reference,
        payment_provider=PaymentProvider.FLUTTERWAVE,
        description="Withdrawal to bank account",
        payment_metadata={
            "transfer_id": transfer.provider_transfer_id,
            "account_number": account_number,
            "account_bank": account_bank,
        },
    )
    db.add(transaction)
    await debit_wallet(db, user.user_id, amount)
    await db.commit()
    await db.refresh(wallet)

    logger.info(
        "Payout %s initiated: user=%s amount=%d %s reference=%s",
        transaction.transaction_id, user.user_id, amount, currency, transfer.reference,
    )

    await notify(
        sender, user.email, "payout",
        user_name=user.full_name, amount=amount, currency=currency,
        transaction_id=str(transaction.transaction_id),
    )
    return transaction, wallet.balance


async def settle_payout(
    db: AsyncSession, reference: str, succeeded: bool, metadata: dict | None = None
) -> Transaction:
    """Finalize a pending payout from the gateway's transfer event.

    A failed transfer is reversed with a compensating credit. Replays for a
    payout that is already completed or failed change nothing.
    """
    result = await db.execute(
        select(Transaction)
        .where(
            Transaction.external_reference == reference,
            Transaction.type == TransactionType.PAYOUT,
        )
        .with_for_update()
    )
    transaction = result.scalar_one_or_none()
    if transaction is None:
        raise NotFoundError("Payout transaction not found")
    if transaction.is_terminal:
        logger.info("Payout %s already %s, ignoring replay", reference, transaction.status.value)
        return transaction

    now = datetime.now(UTC).isoformat()
    if succeeded:
        transaction.status = TransactionStatus.COMPLETED
        transaction.payment_metadata = {
            **(transaction.payment_metadata or {}), **(metadata or {}), "completed_at": now,
        }
    else:
        transaction.status = TransactionStatus.FAILED
        transaction.payment_metadata = {
            **(transaction.payment_metadata or {}), **(metadata or {}), "reversed_at": now,
        }
        await credit_wallet(db, transaction.from_user_id, transaction.amount, transaction.currency)

    await db.commit()
    await db.refresh(transaction)

    logger.info(
        "Payout %s settled as %s (amount=%d)",
        reference, transaction.status.value, transaction.amount,
    )
    return transaction


# ---------------------------------------------------------------------------
# Transaction history
# ---------------------------------------------------------------------------


async def get_transaction_history(
    db: AsyncSession, user_id: uuid.UUID
) -> list[Transaction]:
    result = await db.execute(
        select(Transaction)
        .where(or_(Transaction.from_user_id == user_id, Transaction.to_user_id == user_id))
        .order_by(Transaction.created_at.desc())
        .limit(100)
    )
    return list(result.scalars().all())
