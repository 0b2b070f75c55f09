from __future__ import annotations

from pydantic import EmailStr, Field, field_validator

from app.schemas.common import CamelModel


def _validate_password_strength(v: str) -> str:
    if len(v) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not any(c.isdigit() for c in v):
        raise ValueError("Password must contain at least one digit")
    return v


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str
    first_name: str = Field("", max_length=100)
    last_name: str = Field("", max_length=100)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _validate_password_strength(v)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class TokenResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"
    user: dict | None = None
