"""
Modelo PatientView — Marca de agua por (paciente, usuario): el último
cambio que el usuario ya vio. Ausencia de fila equivale a 0.
"""

from sqlalchemy import ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class PatientView(Base):
    __tablename__ = "patient_views"
    __table_args__ = (
        UniqueConstraint("patient_id", "user_id", name="uq_patient_view_patient_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    last_seen_change_id: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )

    def __repr__(self) -> str:
        return (
            f"<PatientView patient={self.patient_id} user={self.user_id} "
            f"seen={self.last_seen_change_id}>"
        )
