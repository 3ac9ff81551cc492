"""Pydantic v2 schemas for user registration."""

import re
import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

_HEX_KEY_RE = re.compile(r"^[0-9a-fA-F]{64}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

SELF_ASSIGNABLE_ROLES = {"talent", "employer"}


class UserCreate(BaseModel):
    public_key: str = Field(..., max_length=128, description="Ed25519 public key (hex)")
    email: str = Field(..., max_length=320)
    full_name: str = Field(..., min_length=1, max_length=128)
    roles: list[str] = Field(default_factory=lambda: ["talent"], min_length=1, max_length=2)

    @field_validator("public_key")
    @classmethod
    def validate_public_key(cls, v: str) -> str:
        if not _HEX_KEY_RE.match(v):
            raise ValueError("public_key must be 64 hex characters")
        return v.lower()

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if not _EMAIL_RE.match(v):
            raise ValueError("Invalid email address")
        return v.lower()

    @field_validator("roles")
    @classmethod
    def validate_roles(cls, v: list[str]) -> list[str]:
        for role in v:
            if role not in SELF_ASSIGNABLE_ROLES:
                raise ValueError(f"Role '{role}' cannot be self-assigned")
        return sorted(set(v))


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: uuid.UUID
    email: str
    full_name: str
    status: str
    roles: list[str]
    created_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def serialize_status(cls, v: object) -> str:
        return v.value if hasattr(v, "value") else str(v)

    @field_validator("roles", mode="before")
    @classmethod
    def serialize_roles(cls, v: object) -> list[str]:
        return sorted(
            r.role.value if hasattr(r, "role") else str(r)
            for r in (v or [])
        )


class RoleGrant(BaseModel):
    role: str

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str) -> str:
        if v not in {"talent", "employer", "admin"}:
            raise ValueError(f"Unknown role '{v}'")
        return v
