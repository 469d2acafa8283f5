"""
Modelos SQLAlchemy — exportar todos para que Alembic los detecte.
"""

from app.models.user import User, UserRole
from app.models.patient import Patient
from app.models.patient_change import ChangeSource, PatientChange
from app.models.patient_view import PatientView

__all__ = [
    "User",
    "UserRole",
    "Patient",
    "ChangeSource",
    "PatientChange",
    "PatientView",
]
