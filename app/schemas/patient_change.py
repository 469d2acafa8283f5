"""
Schemas del registro de cambios y marcas de lectura.
"""

from datetime import datetime

from pydantic import BaseModel


class LastChangeInfo(BaseModel):
    """Firma del último cambio (pie de la carta)."""
    id: int
    changed_at: datetime | None = None
    source: str | None = None
    user_name: str | None = None


class PatientChangeResponse(BaseModel):
    id: int
    patient_id: int
    user_id: int | None = None
    source: str | None = None
    description: str | None = None
    changed_at: datetime | None = None

    model_config = {"from_attributes": True}


class PatientViewResponse(BaseModel):
    patient_id: int
    user_id: int
    last_seen_change_id: int
    has_unread: bool
