"""
Modelo Patient — Carta de tratamiento de radioterapia (carta de RT).
`id` es la clave interna; `patient_id` es el identificador público
secuencial que ven los médicos.
"""

from datetime import date, datetime

from sqlalchemy import Date, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base

DEFAULT_PATIENT_STATUS = "on_treatment"


class Patient(Base):
    __tablename__ = "patients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patient_id: Mapped[str] = mapped_column(
        String(32), unique=True, nullable=False, index=True,
        comment="Identificador público; inmutable una vez asignado"
    )

    # ── Datos demográficos ───────────────────────────
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    birth_date: Mapped[date | None] = mapped_column(Date)
    region: Mapped[str | None] = mapped_column(String(200))

    # ── Datos clínicos ───────────────────────────────
    diagnosis: Mapped[str | None] = mapped_column(Text)
    topometry: Mapped[str | None] = mapped_column(Text)
    method_gray: Mapped[float | None] = mapped_column(
        Float, comment="Valor numérico opaco (se muestra como 'metodología')"
    )

    # ── Narrativa clínica ────────────────────────────
    diary: Mapped[str | None] = mapped_column(Text)
    complaints: Mapped[str | None] = mapped_column(Text)
    prescriptions: Mapped[str | None] = mapped_column(Text)
    discharge_summary: Mapped[str | None] = mapped_column(Text)
    complications: Mapped[str | None] = mapped_column(Text)

    # ── Estado ───────────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=DEFAULT_PATIENT_STATUS,
        server_default=DEFAULT_PATIENT_STATUS,
    )

    created_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL")
    )
    updated_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<Patient {self.patient_id} {self.full_name}>"
