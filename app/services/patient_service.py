"""
Servicio de pacientes: CRUD de cartas de RT con registro de cambios,
marcas de lectura y avisos por Telegram.

Las ediciones son un merge parcial campo a campo: un campo ausente (o None)
conserva el valor guardado. Así, dos médicos que editan campos distintos
al mismo tiempo no se pisan; sobre el mismo campo gana el último commit.
"""

import logging
import re
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundException, ValidationException
from app.models.patient import DEFAULT_PATIENT_STATUS, Patient
from app.models.patient_change import ChangeSource, PatientChange
from app.models.patient_view import PatientView
from app.models.user import User
from app.schemas.patient import (
    PatientCreate,
    PatientDetailResponse,
    PatientListItem,
    PatientUpdate,
)
from app.services import change_service, notification_service

logger = logging.getLogger(__name__)

_NUMERIC_ID = re.compile(r"[0-9]+")
MIN_PATIENT_ID_BASE = 999
_CREATE_ATTEMPTS = 3

# Campos que admite el merge parcial (patient_id nunca se reescribe)
MERGEABLE_FIELDS: tuple[str, ...] = (
    "full_name",
    "birth_date",
    "region",
    "diagnosis",
    "topometry",
    "method_gray",
    "diary",
    "complaints",
    "prescriptions",
    "discharge_summary",
    "complications",
    "status",
    "updated_by",
)

# Campos donde un None explícito borra el valor guardado
CLEARABLE_FIELDS: frozenset[str] = frozenset({"method_gray"})

# Campos que el bot puede parchear por identificador público
BOT_PATCHABLE_FIELDS: frozenset[str] = frozenset({
    "diary",
    "complaints",
    "prescriptions",
    "discharge_summary",
    "complications",
    "method_gray",
    "status",
    "updated_by",
})


# ── Merge parcial ────────────────────────────────────


def merge_patient_fields(current: Patient, patch: dict[str, Any]) -> dict[str, Any]:
    """
    Combina el parche con los valores actuales: "valor nuevo si viene,
    si no el guardado". Compartido por la edición web y el parche del bot.
    """
    merged: dict[str, Any] = {}
    for field in MERGEABLE_FIELDS:
        if field in CLEARABLE_FIELDS and field in patch:
            merged[field] = patch[field]
            continue
        value = patch.get(field)
        merged[field] = value if value is not None else getattr(current, field)
    return merged


def _apply_merged(patient: Patient, merged: dict[str, Any]) -> None:
    for field, value in merged.items():
        if getattr(patient, field) != value:
            setattr(patient, field, value)


# ── Identificador público ────────────────────────────


async def generate_next_patient_id(db: AsyncSession) -> str:
    """
    Siguiente identificador secuencial: máximo de los IDs puramente
    numéricos (los manuales/legados se ignoran), con piso en 999, + 1.
    Garantiza al menos 4 dígitos.
    """
    result = await db.execute(select(Patient.patient_id))
    numeric = [
        int(pid) for pid in result.scalars().all()
        if pid and _NUMERIC_ID.fullmatch(pid)
    ]
    max_num = max(numeric, default=0)
    return str(max(max_num, MIN_PATIENT_ID_BASE) + 1)


# ── Lecturas ─────────────────────────────────────────


async def get_patient_by_row_id(db: AsyncSession, row_id: int) -> Patient | None:
    return await db.get(Patient, row_id)


async def get_patient_by_patient_id(db: AsyncSession, patient_id: str) -> Patient | None:
    result = await db.execute(
        select(Patient).where(Patient.patient_id == str(patient_id).strip())
    )
    return result.scalar_one_or_none()


async def get_patient_or_404(db: AsyncSession, row_id: int) -> Patient:
    patient = await get_patient_by_row_id(db, row_id)
    if patient is None:
        raise NotFoundException("Paciente")
    return patient


async def open_patient(db: AsyncSession, patient: Patient, user: User) -> PatientDetailResponse:
    """Detalle para un usuario: marca los cambios como vistos."""
    await change_service.mark_patient_seen(db, patient.id, user.id)
    last_change = await change_service.get_last_change_info(db, patient.id)
    detail = PatientDetailResponse.model_validate(patient)
    detail.last_change = last_change
    return detail


async def list_patients_for_user(db: AsyncSession, user_id: int) -> list[PatientListItem]:
    """
    Listado con estado de lectura del usuario en una sola consulta:
    último cambio, marca del usuario (0 si nunca abrió la carta) y
    has_unread = hay cambios y el último supera la marca.
    """
    last_change_id = func.max(PatientChange.id).label("last_change_id")
    last_change_at = func.max(PatientChange.changed_at).label("last_change_at")
    last_seen = func.coalesce(PatientView.last_seen_change_id, 0).label("last_seen_change_id")

    query = (
        select(
            Patient.id,
            Patient.patient_id,
            Patient.full_name,
            Patient.birth_date,
            Patient.region,
            Patient.diagnosis,
            Patient.status,
            Patient.created_at,
            Patient.updated_at,
            last_change_id,
            last_change_at,
            last_seen,
        )
        .outerjoin(PatientChange, PatientChange.patient_id == Patient.id)
        .outerjoin(
            PatientView,
            (PatientView.patient_id == Patient.id) & (PatientView.user_id == user_id),
        )
        .group_by(Patient.id, PatientView.last_seen_change_id)
        .order_by(Patient.created_at.desc(), Patient.id.desc())
    )

    result = await db.execute(query)
    items = []
    for row in result.mappings().all():
        data = dict(row)
        data["has_unread"] = (
            data["last_change_id"] is not None
            and data["last_change_id"] > data["last_seen_change_id"]
        )
        items.append(PatientListItem.model_validate(data))
    return items


# ── Escrituras base ──────────────────────────────────


async def insert_patient(db: AsyncSession, data: PatientCreate, user_id: int | None) -> Patient:
    """
    Inserta la carta con un identificador nuevo. Si otro alta concurrente
    tomó el mismo identificador, se recalcula.
    """
    full_name = (data.full_name or "").strip()
    if not full_name:
        raise ValidationException("El nombre del paciente es obligatorio")

    values = data.model_dump(exclude={"full_name", "status"})

    attempt = 0
    while True:
        attempt += 1
        public_id = await generate_next_patient_id(db)
        patient = Patient(
            patient_id=public_id,
            full_name=full_name,
            status=data.status or DEFAULT_PATIENT_STATUS,
            created_by=user_id,
            updated_by=user_id,
            **values,
        )
        db.add(patient)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            if attempt == _CREATE_ATTEMPTS:
                raise
            logger.warning("patient_id %s ya tomado, reintentando", public_id)
            continue
        await db.refresh(patient)
        return patient


async def apply_patch(db: AsyncSession, patient: Patient, patch: dict[str, Any]) -> Patient:
    """Merge parcial + commit."""
    _apply_merged(patient, merge_patient_fields(patient, patch))
    await db.commit()
    await db.refresh(patient)
    return patient


async def patch_patient_fields_by_patient_id(
    db: AsyncSession,
    patient_id: str,
    fields: dict[str, Any],
) -> Patient | None:
    """
    Actualiza campos sueltos por identificador público (usado por el bot).
    Retorna None si el paciente no existe.
    """
    unknown = set(fields) - BOT_PATCHABLE_FIELDS
    if unknown:
        raise ValidationException(f"Campos no editables: {', '.join(sorted(unknown))}")

    patient = await get_patient_by_patient_id(db, patient_id)
    if patient is None:
        return None
    return await apply_patch(db, patient, fields)


async def _refresh_after_failed_log(db: AsyncSession, patient: Patient, change_id: int | None) -> None:
    # El rollback del registro fallido expira la instancia
    if change_id is None:
        await db.refresh(patient)


# ── Flujos del panel web ─────────────────────────────


async def create_patient(db: AsyncSession, user: User, data: PatientCreate) -> Patient:
    """
    Crea la carta, registra el cambio 'web-create', la marca como vista
    para su autor y avisa al personal.
    """
    user_id, actor = user.id, user.display_name
    patient = await insert_patient(db, data, user_id)

    change_id = await change_service.record_change_safely(
        db, patient.id, user_id, ChangeSource.WEB_CREATE,
        "Creación de la carta del paciente",
    )
    await _refresh_after_failed_log(db, patient, change_id)
    await change_service.mark_patient_seen(db, patient.id, user_id, change_id)

    notification_service.notify_all(
        notification_service.build_patient_created_message(
            patient.patient_id, patient.full_name, actor
        )
    )
    logger.info("Carta %s creada por %s", patient.patient_id, actor)
    return patient


async def update_patient(
    db: AsyncSession,
    row_id: int,
    user: User,
    data: PatientUpdate,
) -> Patient:
    """
    Edición parcial desde el panel web. Paciente inexistente → 404 sin
    registro de cambio.
    """
    user_id, actor = user.id, user.display_name
    patient = await get_patient_or_404(db, row_id)

    patch = data.model_dump(exclude_unset=True, exclude={"patient_id"})
    patch["updated_by"] = user_id
    patient = await apply_patch(db, patient, patch)

    change_id = await change_service.record_change_safely(
        db, patient.id, user_id, ChangeSource.WEB_EDIT,
        "Edición en el panel web",
    )
    await _refresh_after_failed_log(db, patient, change_id)
    await change_service.mark_patient_seen(db, patient.id, user_id)

    notification_service.notify_all(
        notification_service.build_patient_updated_message(
            patient.patient_id, patient.full_name, actor
        )
    )
    return patient


async def delete_patient(db: AsyncSession, row_id: int, user: User) -> None:
    """
    Eliminación definitiva. patient_changes y patient_views se borran en
    cascada por FK.
    """
    patient = await get_patient_or_404(db, row_id)
    patient_id, full_name = patient.patient_id, patient.full_name

    await db.delete(patient)
    await db.commit()

    notification_service.notify_all(
        notification_service.build_patient_deleted_message(
            patient_id, full_name, user.display_name
        )
    )
    logger.info("Carta %s eliminada por %s", patient_id, user.login)
