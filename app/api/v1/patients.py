"""
Endpoints de cartas de pacientes de radioterapia.
"""

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.core.exceptions import NotFoundException
from app.database import get_db
from app.models.user import User
from app.schemas.patient import (
    MarkSeenRequest,
    NextPatientIdResponse,
    PatientCreate,
    PatientDetailResponse,
    PatientListItem,
    PatientResponse,
    PatientUpdate,
)
from app.schemas.patient_change import PatientChangeResponse, PatientViewResponse
from app.services import change_service, patient_service

router = APIRouter()


@router.get("", response_model=list[PatientListItem])
async def list_patients(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Lista todas las cartas, de la más reciente a la más antigua.
    `has_unread` indica si hay cambios que el usuario aún no vio.
    """
    return await patient_service.list_patients_for_user(db, user.id)


@router.get("/next-id", response_model=NextPatientIdResponse)
async def next_patient_id(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """ID público que recibiría la próxima carta creada."""
    return NextPatientIdResponse(
        patient_id=await patient_service.generate_next_patient_id(db)
    )


@router.get("/by-public-id/{patient_id}", response_model=PatientDetailResponse)
async def get_patient_by_public_id(
    patient_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Busca por ID público (el que usa el bot). Marca la carta como vista."""
    patient = await patient_service.get_patient_by_patient_id(db, patient_id)
    if patient is None:
        raise NotFoundException("Paciente")
    return await patient_service.open_patient(db, patient, user)


@router.post("", response_model=PatientResponse, status_code=201)
async def create_patient(
    data: PatientCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Crea una carta nueva con el siguiente ID público disponible.
    Se avisa a todo el personal por Telegram.
    """
    return await patient_service.create_patient(db, user=user, data=data)


@router.get("/{id}", response_model=PatientDetailResponse)
async def get_patient(
    id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Detalle de la carta con su último cambio. Marca la carta como vista."""
    patient = await patient_service.get_patient_or_404(db, id)
    return await patient_service.open_patient(db, patient, user)


@router.put("/{id}", response_model=PatientResponse)
async def update_patient(
    id: int,
    data: PatientUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Actualiza la carta. Solo se modifican los campos enviados con valor;
    el ID público no se puede cambiar.
    """
    return await patient_service.update_patient(db, row_id=id, user=user, data=data)


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_patient(
    id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Elimina la carta junto con su historial de cambios y marcas."""
    await patient_service.delete_patient(db, row_id=id, user=user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{id}/changes", response_model=list[PatientChangeResponse])
async def list_patient_changes(
    id: int,
    limit: int = Query(50, ge=1, le=500),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Historial de cambios de la carta, del más reciente al más antiguo."""
    patient = await patient_service.get_patient_or_404(db, id)
    return await change_service.list_changes(db, patient.id, limit=limit)


@router.post("/{id}/seen", response_model=PatientViewResponse)
async def mark_patient_seen(
    id: int,
    data: MarkSeenRequest | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Marca la carta como vista por el usuario. Sin `last_seen_change_id`
    se toma el último cambio registrado.
    """
    patient = await patient_service.get_patient_or_404(db, id)
    requested = data.last_seen_change_id if data else None
    seen = await change_service.mark_patient_seen(db, patient.id, user.id, requested)
    return PatientViewResponse(
        patient_id=patient.id,
        user_id=user.id,
        last_seen_change_id=seen,
        has_unread=await change_service.has_unread(db, patient.id, user.id),
    )
