"""Pydantic v2 schemas for disputes and escalations."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DisputeCreate(BaseModel):
    reason: str = Field(..., min_length=1, max_length=4096)


class DisputeResolveRequest(BaseModel):
    resolution: str = Field(..., min_length=1, max_length=10_000)


class EscalateRequest(BaseModel):
    escalated_to: uuid.UUID | None = None
    notes: str | None = Field(None, max_length=4096)


class EscalationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    escalation_id: uuid.UUID
    dispute_id: uuid.UUID
    escalated_to: uuid.UUID
    escalation_notes: str | None
    escalated_at: datetime
    resolved_at: datetime | None


class DisputeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    dispute_id: uuid.UUID
    contract_id: uuid.UUID
    raised_by: uuid.UUID
    reason: str
    status: str
    resolution: str | None
    resolved_at: datetime | None
    created_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def serialize_status(cls, v: object) -> str:
        return v.value if hasattr(v, "value") else str(v)


class SweepResponse(BaseModel):
    escalated: int
    dispute_ids: list[uuid.UUID]
