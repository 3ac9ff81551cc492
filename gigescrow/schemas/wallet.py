"""Pydantic v2 schemas for wallet balance and payouts."""

import re
import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gigescrow.schemas.payment import TransactionResponse

_ACCOUNT_NUMBER_RE = re.compile(r"^[0-9]{6,20}$")


class WalletResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: uuid.UUID
    balance: int
    currency: str
    updated_at: datetime


class PayoutRequest(BaseModel):
    amount: int = Field(..., description="Amount in minor units")
    account_number: str = Field(..., min_length=6, max_length=20)
    account_bank: str = Field(..., min_length=2, max_length=16, description="Bank code")
    currency: str = Field(..., min_length=3, max_length=3)

    @field_validator("account_number")
    @classmethod
    def validate_account_number(cls, v: str) -> str:
        if not _ACCOUNT_NUMBER_RE.match(v):
            raise ValueError("account_number must be 6-20 digits")
        return v

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class PayoutResponse(BaseModel):
    transaction_id: uuid.UUID
    amount: int
    currency: str
    status: str
    reference: str
    balance: int


class TransactionHistoryResponse(BaseModel):
    transactions: list[TransactionResponse]
