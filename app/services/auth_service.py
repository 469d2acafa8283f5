"""
Servicio de autenticación: login con login + contraseña.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import create_access_token
from app.core.exceptions import CredentialsException
from app.core.security import verify_password
from app.schemas.auth import LoginRequest, LoginResponse
from app.schemas.user import UserResponse
from app.services.user_service import find_user_by_login

logger = logging.getLogger(__name__)


async def login(db: AsyncSession, data: LoginRequest) -> LoginResponse:
    """Verifica credenciales y emite un access token."""
    user = await find_user_by_login(db, data.login.strip())

    if not user:
        logger.warning("Login fallido: usuario no encontrado login=%s", data.login)
        raise CredentialsException("Login o contraseña incorrectos")

    if not verify_password(data.password, user.password_hash):
        logger.warning("Login fallido: contraseña incorrecta user_id=%s", user.id)
        raise CredentialsException("Login o contraseña incorrectos")

    access_token = create_access_token(user.id, user.role.value)
    return LoginResponse(
        access_token=access_token,
        user=UserResponse.model_validate(user),
    )
