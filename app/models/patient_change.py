"""
Modelo PatientChange — Registro INMUTABLE de cambios sobre cartas de pacientes.
INSERT-only. El `id` autoincremental es el ordinal del registro: crece
estrictamente en todo el registro (no por paciente) y sirve como marca de
agua para calcular cambios no leídos.
"""

import enum
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class ChangeSource(str, enum.Enum):
    """Canal de origen del cambio."""
    WEB_CREATE = "web-create"
    WEB_EDIT = "web-edit"
    BOT = "bot"


class PatientChange(Base):
    __tablename__ = "patient_changes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"),
        comment="Autor del cambio (null si el ID de Telegram no está vinculado)"
    )

    source: Mapped[str | None] = mapped_column(
        String(20), comment="web-create, web-edit, bot"
    )
    description: Mapped[str | None] = mapped_column(Text)

    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<PatientChange #{self.id} {self.source} on patient {self.patient_id}>"
