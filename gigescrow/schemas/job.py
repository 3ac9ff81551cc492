"""Pydantic v2 schemas for jobs, applications and contracts."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _enum_value(v: object) -> str:
    return v.value if hasattr(v, "value") else str(v)


class JobCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=256)
    description: str | None = Field(None, max_length=10_000)
    budget: int | None = Field(None, gt=0, description="Budget in minor units")
    currency: str = Field("NGN", min_length=3, max_length=3)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class JobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    job_id: uuid.UUID
    employer_id: uuid.UUID
    title: str
    description: str | None
    budget: int | None
    currency: str
    status: str
    created_at: datetime
    updated_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def serialize_status(cls, v: object) -> str:
        return _enum_value(v)


class ApplicationCreate(BaseModel):
    cover_letter: str | None = Field(None, max_length=10_000)


class ApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    application_id: uuid.UUID
    job_id: uuid.UUID
    applicant_id: uuid.UUID
    cover_letter: str | None
    status: str
    created_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def serialize_status(cls, v: object) -> str:
        return _enum_value(v)


class ContractResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    contract_id: uuid.UUID
    job_id: uuid.UUID
    application_id: uuid.UUID
    employer_id: uuid.UUID
    talent_id: uuid.UUID
    status: str
    created_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def serialize_status(cls, v: object) -> str:
        return _enum_value(v)
