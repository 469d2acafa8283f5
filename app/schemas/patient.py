"""
Schemas para Patient.
`PatientUpdate` declara todos los campos como opcionales: un campo ausente
conserva el valor guardado (merge parcial campo a campo).
"""

from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator

from app.schemas.patient_change import LastChangeInfo


class PatientBase(BaseModel):
    full_name: str = Field(..., max_length=200)
    birth_date: date | None = None
    region: str | None = Field(None, max_length=200)
    diagnosis: str | None = None
    topometry: str | None = None
    method_gray: float | None = Field(
        None, description="Valor numérico opaco ('metodología')"
    )
    diary: str | None = None
    complaints: str | None = None
    prescriptions: str | None = None
    discharge_summary: str | None = None
    complications: str | None = None
    status: str | None = Field(None, max_length=50)

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v: str) -> str:
        cleaned = v.strip()
        if not cleaned:
            raise ValueError("El nombre del paciente es obligatorio")
        return cleaned


class PatientCreate(PatientBase):
    pass


class PatientUpdate(BaseModel):
    # Se acepta para compatibilidad con el formulario, pero nunca se escribe
    patient_id: str | None = None
    full_name: str | None = Field(None, max_length=200)
    birth_date: date | None = None
    region: str | None = Field(None, max_length=200)
    diagnosis: str | None = None
    topometry: str | None = None
    method_gray: float | None = None
    diary: str | None = None
    complaints: str | None = None
    prescriptions: str | None = None
    discharge_summary: str | None = None
    complications: str | None = None
    status: str | None = Field(None, max_length=50)

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v: str | None) -> str | None:
        if v is None:
            return v
        cleaned = v.strip()
        if not cleaned:
            raise ValueError("El nombre del paciente no puede quedar vacío")
        return cleaned


class PatientResponse(BaseModel):
    id: int
    patient_id: str
    full_name: str
    birth_date: date | None = None
    region: str | None = None
    diagnosis: str | None = None
    topometry: str | None = None
    method_gray: float | None = None
    diary: str | None = None
    complaints: str | None = None
    prescriptions: str | None = None
    discharge_summary: str | None = None
    complications: str | None = None
    status: str
    created_by: int | None = None
    updated_by: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class PatientDetailResponse(PatientResponse):
    """Detalle de la carta con la firma del último cambio."""
    last_change: LastChangeInfo | None = None


class PatientListItem(BaseModel):
    """Fila del listado con el estado de lectura del usuario actual."""
    id: int
    patient_id: str
    full_name: str
    birth_date: date | None = None
    region: str | None = None
    diagnosis: str | None = None
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_change_id: int | None = None
    last_change_at: datetime | None = None
    last_seen_change_id: int = 0
    has_unread: bool = False

    model_config = {"from_attributes": True}


class NextPatientIdResponse(BaseModel):
    patient_id: str


class MarkSeenRequest(BaseModel):
    last_seen_change_id: int | None = Field(None, ge=0)
