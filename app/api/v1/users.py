"""
Endpoints de gestión de usuarios (solo administradores).
Incluye el vínculo con Telegram (`telegram_id`) de cada médico.
"""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import require_role
from app.database import get_db
from app.models.user import User, UserRole
from app.schemas.user import UserCreate, UserResponse, UserUpdate
from app.services import user_service

router = APIRouter()

admin_only = require_role(UserRole.ADMIN)


@router.get("", response_model=list[UserResponse])
async def list_users(
    user: User = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.list_users(db)


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    data: UserCreate,
    user: User = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    """Crea un usuario. Login duplicado → 409."""
    return await user_service.create_user(db, data)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    user: User = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.get_user_or_404(db, user_id)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    data: UserUpdate,
    user: User = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    """
    Actualiza un usuario. Los campos vacíos conservan el valor actual;
    la contraseña solo cambia si se envía una nueva.
    """
    return await user_service.update_user(db, user_id, data)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int,
    user: User = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    """Elimina un usuario. Un administrador no puede eliminarse a sí mismo."""
    await user_service.delete_user(db, user_id, current_user=user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
