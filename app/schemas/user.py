"""
Schemas para User.
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from app.models.user import UserRole


def _strip_or_none(v: str | None) -> str | None:
    if v is None:
        return None
    v = str(v).strip()
    return v or None


class UserBase(BaseModel):
    login: str = Field(..., min_length=1, max_length=100)
    full_name: str | None = Field(None, max_length=200)
    role: UserRole = UserRole.DOCTOR
    telegram_id: str | None = Field(None, max_length=32)

    @field_validator("login")
    @classmethod
    def strip_login(cls, v: str) -> str:
        cleaned = v.strip()
        if not cleaned:
            raise ValueError("El login es obligatorio")
        return cleaned

    @field_validator("full_name", "telegram_id")
    @classmethod
    def strip_optional(cls, v: str | None) -> str | None:
        return _strip_or_none(v)


class UserCreate(UserBase):
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("password")
    @classmethod
    def strip_password(cls, v: str) -> str:
        cleaned = v.strip()
        if not cleaned:
            raise ValueError("La contraseña es obligatoria")
        return cleaned


class UserUpdate(BaseModel):
    """Campos ausentes o vacíos conservan el valor actual."""
    login: str | None = Field(None, max_length=100)
    full_name: str | None = Field(None, max_length=200)
    role: UserRole | None = None
    telegram_id: str | None = Field(None, max_length=32)
    password: str | None = Field(None, max_length=128)

    @field_validator("login", "full_name", "telegram_id", "password")
    @classmethod
    def strip_optional(cls, v: str | None) -> str | None:
        return _strip_or_none(v)


class UserResponse(BaseModel):
    id: int
    login: str
    full_name: str | None = None
    role: UserRole
    telegram_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}
