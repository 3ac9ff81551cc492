"""Pydantic v2 schemas for escrow payments, manual proofs and gateway webhooks.

Money fields are integer minor units. Range checks on amounts and currency
support are enforced by the escrow service so every caller (HTTP or not)
gets the same ``ValidationError``.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _enum_value(v: object) -> str:
    return v.value if hasattr(v, "value") else str(v)


class EscrowInitRequest(BaseModel):
    job_id: uuid.UUID
    amount: int = Field(..., description="Amount in minor units")
    currency: str = Field(..., min_length=1, max_length=8)
    description: str = Field("", max_length=1024)


class EscrowInitResponse(BaseModel):
    transaction_id: uuid.UUID
    payment_link: str | None
    external_reference: str
    amount: int
    platform_fee: int
    net_amount: int
    currency: str
    message: str | None = None


class ReleaseRequest(BaseModel):
    job_id: uuid.UUID
    application_id: uuid.UUID


class ReleaseResponse(BaseModel):
    transaction_id: uuid.UUID
    amount_released: int
    platform_fee: int
    currency: str
    talent_id: uuid.UUID


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    transaction_id: uuid.UUID
    job_id: uuid.UUID | None
    from_user_id: uuid.UUID | None
    to_user_id: uuid.UUID | None
    amount: int
    platform_fee: int
    net_amount: int
    currency: str
    type: str
    status: str
    external_reference: str | None
    payment_provider: str
    description: str | None
    payment_metadata: dict | None
    created_at: datetime
    updated_at: datetime

    @field_validator("type", "status", "payment_provider", mode="before")
    @classmethod
    def serialize_enum(cls, v: object) -> str:
        return _enum_value(v)


class ProofSubmitRequest(BaseModel):
    transaction_id: uuid.UUID
    proof_url: str = Field(..., min_length=1, max_length=2048)
    bank_details: str | None = Field(None, max_length=2048)
    notes: str | None = Field(None, max_length=4096)


class ProofVerifyRequest(BaseModel):
    approved: bool
    notes: str | None = Field(None, max_length=4096)


class ProofResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    proof_id: uuid.UUID
    transaction_id: uuid.UUID
    user_id: uuid.UUID
    proof_url: str
    bank_details: str | None
    notes: str | None
    status: str
    verified_by: uuid.UUID | None
    verified_at: datetime | None
    created_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def serialize_status(cls, v: object) -> str:
        return _enum_value(v)


class GatewayEventData(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int | str | None = None
    tx_ref: str | None = None
    reference: str | None = None
    status: str | None = None


class GatewayEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    event: str
    data: GatewayEventData


class WebhookAck(BaseModel):
    success: bool = True
    message: str
