"""
Servicio del registro de cambios y marcas de lectura.

- patient_changes: INSERT-only, un registro por mutación de la carta.
- patient_views: última marca vista por (paciente, usuario), con upsert
  atómico (INSERT ... ON CONFLICT DO UPDATE).

Un paciente tiene cambios no leídos para un usuario cuando el último
ordinal del registro es mayor que su marca (0 si nunca lo abrió).
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.patient_change import ChangeSource, PatientChange
from app.models.patient_view import PatientView
from app.models.user import User
from app.schemas.patient_change import LastChangeInfo

logger = logging.getLogger(__name__)


# ── Registro de cambios ──────────────────────────────


async def record_change(
    db: AsyncSession,
    patient_row_id: int,
    user_id: int | None,
    source: ChangeSource | str | None,
    description: str | None = None,
) -> int:
    """Inserta un cambio y retorna su ordinal (id autoincremental)."""
    if isinstance(source, ChangeSource):
        source = source.value
    entry = PatientChange(
        patient_id=patient_row_id,
        user_id=user_id or None,
        source=source or None,
        description=description or None,
    )
    db.add(entry)
    await db.flush()
    change_id = entry.id
    await db.commit()
    return change_id


async def record_change_safely(
    db: AsyncSession,
    patient_row_id: int,
    user_id: int | None,
    source: ChangeSource | str | None,
    description: str | None = None,
) -> int | None:
    """
    Registra el cambio después de una mutación ya confirmada.
    Si el INSERT falla, la mutación se mantiene: se revierte solo el
    registro y se deja un warning.
    """
    try:
        return await record_change(db, patient_row_id, user_id, source, description)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.warning(
            "No se pudo registrar el cambio del paciente %s (%s): %s",
            patient_row_id, source, exc,
        )
        return None


async def get_latest_change_id(db: AsyncSession, patient_row_id: int) -> int:
    """Máximo ordinal del paciente (0 si no tiene cambios)."""
    result = await db.execute(
        select(func.max(PatientChange.id)).where(
            PatientChange.patient_id == patient_row_id
        )
    )
    return result.scalar() or 0


async def get_last_change_info(
    db: AsyncSession, patient_row_id: int
) -> LastChangeInfo | None:
    """Último cambio con el nombre de su autor."""
    result = await db.execute(
        select(PatientChange, User.full_name, User.login)
        .outerjoin(User, User.id == PatientChange.user_id)
        .where(PatientChange.patient_id == patient_row_id)
        .order_by(PatientChange.id.desc())
        .limit(1)
    )
    row = result.first()
    if row is None:
        return None

    change, full_name, login = row
    return LastChangeInfo(
        id=change.id,
        changed_at=change.changed_at,
        source=change.source,
        user_name=full_name or login or None,
    )


async def list_changes(
    db: AsyncSession, patient_row_id: int, limit: int = 50
) -> list[PatientChange]:
    """Historial de cambios del paciente, del más reciente al más antiguo."""
    result = await db.execute(
        select(PatientChange)
        .where(PatientChange.patient_id == patient_row_id)
        .order_by(PatientChange.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


# ── Marcas de lectura ────────────────────────────────


def _view_upsert(dialect_name: str, values: dict):
    """INSERT ... ON CONFLICT (patient_id, user_id) DO UPDATE según el dialecto."""
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        from sqlalchemy.dialects.sqlite import insert

    stmt = insert(PatientView).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=[PatientView.patient_id, PatientView.user_id],
        set_={"last_seen_change_id": stmt.excluded.last_seen_change_id},
    )


async def mark_patient_seen(
    db: AsyncSession,
    patient_row_id: int,
    user_id: int,
    last_seen_change_id: int | None = None,
) -> int:
    """
    Marca que el usuario vio los cambios del paciente.
    Sin `last_seen_change_id` se toma el máximo actual del registro.
    Sobrescribe la marca tal cual (no aplica máximo).
    """
    change_id = last_seen_change_id
    if not change_id:
        change_id = await get_latest_change_id(db, patient_row_id)

    stmt = _view_upsert(
        db.get_bind().dialect.name,
        {
            "patient_id": patient_row_id,
            "user_id": user_id,
            "last_seen_change_id": change_id,
        },
    )
    await db.execute(stmt)
    await db.commit()
    return change_id


async def get_last_seen_change_id(
    db: AsyncSession, patient_row_id: int, user_id: int
) -> int:
    result = await db.execute(
        select(PatientView.last_seen_change_id).where(
            PatientView.patient_id == patient_row_id,
            PatientView.user_id == user_id,
        )
    )
    return result.scalar() or 0


async def has_unread(db: AsyncSession, patient_row_id: int, user_id: int) -> bool:
    latest = await get_latest_change_id(db, patient_row_id)
    if not latest:
        return False
    return latest > await get_last_seen_change_id(db, patient_row_id, user_id)
