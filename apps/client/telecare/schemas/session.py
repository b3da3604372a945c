"""Schemas for authentication and the signed-in user."""
from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UserRole(str, enum.Enum):
    PATIENT = "patient"
    PROFESSIONAL = "professional"


class User(BaseModel):
    """Signed-in user; profile fields the client does not know pass through."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    name: str
    email: str | None = None
    role: UserRole = Field(default=UserRole.PATIENT, alias="user_type")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        """Backends hand out numeric ids; participants are tracked as strings."""

        return str(value) if isinstance(value, int) else value


class Session(BaseModel):
    token: str
    user: User


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    email: str
    password: str
    user_type: UserRole = UserRole.PATIENT


class SessionView(BaseModel):
    authenticated: bool
    user: User | None = None
