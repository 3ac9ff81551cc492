"""Wallet endpoints: balance, payouts, transaction history."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from gigescrow.auth.middleware import AuthenticatedUser, verify_request
from gigescrow.auth.rate_limit import check_rate_limit
from gigescrow.database import get_db
from gigescrow.schemas.payment import TransactionResponse
from gigescrow.schemas.wallet import (
    PayoutRequest,
    PayoutResponse,
    TransactionHistoryResponse,
    WalletResponse,
)
from gigescrow.services import wallet as wallet_service
from gigescrow.services.email import EmailSender, get_email_sender
from gigescrow.services.gateway import PaymentGateway, get_payment_gateway

router = APIRouter(prefix="/wallet", tags=["wallet"])


@router.get("", response_model=WalletResponse, dependencies=[Depends(check_rate_limit)])
async def get_wallet(
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> WalletResponse:
    wallet = await wallet_service.get_wallet(db, auth.user_id)
    return WalletResponse.model_validate(wallet)


@router.post("/withdraw", response_model=PayoutResponse, status_code=201, dependencies=[Depends(check_rate_limit)])
async def withdraw(
    data: PayoutRequest,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    sender: EmailSender = Depends(get_email_sender),
) -> PayoutResponse:
    """Withdraw to a bank account. The amount leaves the balance immediately."""
    transaction, balance = await wallet_service.withdraw_payout(
        db, gateway, sender, auth.user,
        data.amount, data.account_number, data.account_bank, data.currency,
    )
    return PayoutResponse(
        transaction_id=transaction.transaction_id,
        amount=transaction.amount,
        currency=transaction.currency,
        status=transaction.status.value,
        reference=transaction.external_reference,
        balance=balance,
    )


@router.get("/transactions", response_model=TransactionHistoryResponse, dependencies=[Depends(check_rate_limit)])
async def get_transactions(
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> TransactionHistoryResponse:
    """Most recent 100 transactions the user paid or received."""
    transactions = await wallet_service.get_transaction_history(db, auth.user_id)
    return TransactionHistoryResponse(
        transactions=[TransactionResponse.model_validate(t) for t in transactions],
    )
