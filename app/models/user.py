"""
Modelo User — Médicos y administradores del servicio de radioterapia.
"""

import enum
from datetime import datetime

from sqlalchemy import String, DateTime, Enum, Integer, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class UserRole(str, enum.Enum):
    """Roles del sistema. Solo admin gestiona usuarios."""
    DOCTOR = "doctor"
    ADMIN = "admin"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # ── Datos de acceso ──────────────────────────────
    login: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False, index=True
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, values_callable=lambda e: [x.value for x in e]),
        nullable=False, default=UserRole.DOCTOR,
    )

    full_name: Mapped[str | None] = mapped_column(String(200))
    telegram_id: Mapped[str | None] = mapped_column(
        String(32), index=True,
        comment="ID de Telegram vinculado (para atribuir cambios hechos desde el bot)"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @property
    def display_name(self) -> str:
        return self.full_name or self.login

    def __repr__(self) -> str:
        return f"<User {self.login} ({self.role.value})>"
