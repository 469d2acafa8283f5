"""
Schemas de autenticación: login y token.
"""

from pydantic import BaseModel, Field

from app.schemas.user import UserResponse


# ── Login ────────────────────────────────────────────
class LoginRequest(BaseModel):
    login: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
