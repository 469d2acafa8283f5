"""
Servicio de usuarios: gestión por el administrador, vínculo con Telegram
y creación del administrador inicial.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.exceptions import (
    ConflictException,
    NotFoundException,
    SelfDeleteRejectedException,
)
from app.core.security import hash_password
from app.models.user import User, UserRole
from app.schemas.user import UserCreate, UserUpdate

settings = get_settings()
logger = logging.getLogger(__name__)


async def list_users(db: AsyncSession) -> list[User]:
    result = await db.execute(select(User).order_by(User.id.asc()))
    return list(result.scalars().all())


async def get_user_or_404(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundException("Usuario")
    return user


async def find_user_by_login(db: AsyncSession, login: str) -> User | None:
    result = await db.execute(select(User).where(User.login == login))
    return result.scalar_one_or_none()


async def find_user_by_telegram_id(db: AsyncSession, telegram_id: str | int) -> User | None:
    """Usuario vinculado a un ID de Telegram (None si no hay vínculo)."""
    result = await db.execute(
        select(User).where(User.telegram_id == str(telegram_id)).limit(1)
    )
    return result.scalar_one_or_none()


async def create_user(db: AsyncSession, data: UserCreate) -> User:
    if await find_user_by_login(db, data.login):
        raise ConflictException("Ya existe un usuario con ese login")

    user = User(
        login=data.login,
        password_hash=hash_password(data.password),
        full_name=data.full_name,
        role=data.role,
        telegram_id=data.telegram_id,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("Usuario %s creado (%s)", user.login, user.role.value)
    return user


async def update_user(db: AsyncSession, user_id: int, data: UserUpdate) -> User:
    """Actualización parcial; la contraseña solo cambia si se envía."""
    user = await get_user_or_404(db, user_id)

    if data.login and data.login != user.login:
        if await find_user_by_login(db, data.login):
            raise ConflictException("Ya existe un usuario con ese login")
        user.login = data.login
    if data.full_name is not None:
        user.full_name = data.full_name
    if data.role is not None:
        user.role = data.role
    if data.telegram_id is not None:
        user.telegram_id = data.telegram_id
    if data.password:
        user.password_hash = hash_password(data.password)

    await db.commit()
    await db.refresh(user)
    return user


async def delete_user(db: AsyncSession, user_id: int, current_user: User) -> None:
    """Elimina un usuario. Nadie puede eliminarse a sí mismo."""
    user = await get_user_or_404(db, user_id)
    if user.id == current_user.id:
        raise SelfDeleteRejectedException()

    await db.delete(user)
    await db.commit()
    logger.info("Usuario %s eliminado por %s", user.login, current_user.login)


async def ensure_admin_user(
    db: AsyncSession,
    login: str | None = None,
    password: str | None = None,
) -> User:
    """
    Garantiza que exista el administrador inicial.
    Si ya existe, se le restablecen la contraseña y el rol admin.
    """
    admin_login = login or settings.ADMIN_LOGIN
    password_hash = hash_password(password or settings.ADMIN_PASSWORD)

    user = await find_user_by_login(db, admin_login)
    if user:
        user.password_hash = password_hash
        user.role = UserRole.ADMIN
    else:
        user = User(
            login=admin_login,
            password_hash=password_hash,
            full_name="Administrador principal",
            role=UserRole.ADMIN,
        )
        db.add(user)

    await db.commit()
    await db.refresh(user)
    logger.info('Administrador "%s" listo', admin_login)
    return user
