"""
Tests del servicio de pacientes: IDs públicos, merge parcial, listado
con no leídos y eliminación en cascada.
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import NotFoundException, ValidationException
from app.models.patient import Patient
from app.models.patient_change import ChangeSource, PatientChange
from app.models.patient_view import PatientView
from app.schemas.patient import PatientCreate, PatientUpdate
from app.services import change_service, patient_service


async def _add_raw_patient(db, patient_id: str, full_name: str = "Paciente") -> Patient:
    patient = Patient(patient_id=patient_id, full_name=full_name)
    db.add(patient)
    await db.commit()
    await db.refresh(patient)
    return patient


# ── ID público ───────────────────────────────────────


async def test_next_patient_id_on_empty_table(db_session):
    assert await patient_service.generate_next_patient_id(db_session) == "1000"


async def test_next_patient_id_ignores_non_numeric_and_floors_at_999(db_session):
    for pid in ("1000", "7", "abc"):
        await _add_raw_patient(db_session, pid)

    assert await patient_service.generate_next_patient_id(db_session) == "1001"


async def test_next_patient_id_ignores_mixed_ids(db_session):
    await _add_raw_patient(db_session, "5000-A")
    await _add_raw_patient(db_session, "12")

    assert await patient_service.generate_next_patient_id(db_session) == "1000"


async def test_create_assigns_sequential_ids(db_session, doctor):
    first = await patient_service.create_patient(
        db_session, doctor, PatientCreate(full_name="Ana Torres")
    )
    second = await patient_service.create_patient(
        db_session, doctor, PatientCreate(full_name="Luis Rojas")
    )

    assert first.patient_id == "1000"
    assert second.patient_id == "1001"
    assert first.status == "on_treatment"


async def test_insert_rejects_blank_name(db_session, doctor):
    data = PatientCreate.model_construct(full_name="   ")
    with pytest.raises(ValidationException):
        await patient_service.insert_patient(db_session, data, doctor.id)

    count = await db_session.scalar(select(func.count()).select_from(Patient))
    assert count == 0


# ── Merge parcial ────────────────────────────────────


def test_merge_keeps_stored_values_for_absent_fields():
    current = Patient(
        patient_id="1000", full_name="Ana", diary="día 1", complaints="náuseas",
        method_gray=2.0, status="on_treatment",
    )

    merged = patient_service.merge_patient_fields(current, {"diary": "día 2", "complaints": None})

    assert merged["diary"] == "día 2"
    assert merged["complaints"] == "náuseas"
    assert merged["full_name"] == "Ana"
    assert merged["method_gray"] == 2.0
    assert "patient_id" not in merged


def test_merge_explicit_null_clears_method_gray():
    current = Patient(patient_id="1000", full_name="Ana", method_gray=2.5)

    merged = patient_service.merge_patient_fields(current, {"method_gray": None})

    assert merged["method_gray"] is None


async def test_same_patch_twice_is_idempotent(db_session, doctor):
    patient = await patient_service.create_patient(
        db_session, doctor, PatientCreate(full_name="Ana Torres", diary="inicio")
    )
    patch = PatientUpdate(diary="fracción 3", region="Lima")

    await patient_service.update_patient(db_session, patient.id, doctor, patch)
    once = {f: getattr(patient, f) for f in patient_service.MERGEABLE_FIELDS}
    await patient_service.update_patient(db_session, patient.id, doctor, patch)
    twice = {f: getattr(patient, f) for f in patient_service.MERGEABLE_FIELDS}

    assert once == twice
    assert patient.diary == "fracción 3"
    assert patient.full_name == "Ana Torres"


async def test_update_never_rewrites_public_id(db_session, doctor):
    patient = await patient_service.create_patient(
        db_session, doctor, PatientCreate(full_name="Ana Torres")
    )

    await patient_service.update_patient(
        db_session, patient.id, doctor, PatientUpdate(patient_id="9999", complaints="dolor")
    )

    assert patient.patient_id == "1000"
    assert patient.complaints == "dolor"


async def test_update_missing_patient_raises_without_ledger_entry(db_session, doctor):
    with pytest.raises(NotFoundException):
        await patient_service.update_patient(
            db_session, 404, doctor, PatientUpdate(diary="x")
        )

    count = await db_session.scalar(select(func.count()).select_from(PatientChange))
    assert count == 0


async def test_bot_patch_by_public_id(db_session, doctor):
    await patient_service.create_patient(db_session, doctor, PatientCreate(full_name="Ana"))

    patient = await patient_service.patch_patient_fields_by_patient_id(
        db_session, " 1000 ", {"complaints": "fiebre"}
    )

    assert patient is not None
    assert patient.complaints == "fiebre"
    assert await patient_service.patch_patient_fields_by_patient_id(
        db_session, "5555", {"complaints": "fiebre"}
    ) is None


async def test_bot_patch_rejects_non_editable_fields(db_session):
    with pytest.raises(ValidationException):
        await patient_service.patch_patient_fields_by_patient_id(
            db_session, "1000", {"full_name": "Otro"}
        )


# ── Registro de cambios en los flujos ────────────────


async def test_create_logs_change_and_marks_seen_for_author(db_session, doctor):
    doctor_id = doctor.id
    patient = await patient_service.create_patient(
        db_session, doctor, PatientCreate(full_name="Ana Torres")
    )

    changes = await change_service.list_changes(db_session, patient.id)
    assert len(changes) == 1
    assert changes[0].source == ChangeSource.WEB_CREATE.value
    assert changes[0].user_id == doctor_id
    assert await change_service.get_last_seen_change_id(
        db_session, patient.id, doctor_id
    ) == changes[0].id


async def test_ledger_failure_keeps_the_mutation(db_session, doctor, monkeypatch, caplog):
    async def _broken_record_change(*args, **kwargs):
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(change_service, "record_change", _broken_record_change)

    patient = await patient_service.create_patient(
        db_session, doctor, PatientCreate(full_name="Ana Torres")
    )
    row_id = patient.id

    stored = await db_session.get(Patient, row_id)
    assert stored is not None
    assert stored.full_name == "Ana Torres"
    count = await db_session.scalar(select(func.count()).select_from(PatientChange))
    assert count == 0
    assert "No se pudo registrar el cambio" in caplog.text


# ── Listado con no leídos ────────────────────────────


async def test_list_flags_unread_for_other_users_only(db_session, doctor, other_doctor):
    doctor_id, other_id = doctor.id, other_doctor.id
    await patient_service.create_patient(
        db_session, doctor, PatientCreate(full_name="Ana Torres")
    )

    for_author = await patient_service.list_patients_for_user(db_session, doctor_id)
    for_other = await patient_service.list_patients_for_user(db_session, other_id)

    assert for_author[0].has_unread is False
    assert for_other[0].has_unread is True
    assert for_other[0].last_seen_change_id == 0
    assert for_other[0].last_change_id == for_author[0].last_change_id


async def test_open_patient_clears_unread(db_session, doctor, other_doctor):
    other_id = other_doctor.id
    patient = await patient_service.create_patient(
        db_session, doctor, PatientCreate(full_name="Ana Torres")
    )

    detail = await patient_service.open_patient(db_session, patient, other_doctor)

    assert detail.last_change is not None
    assert detail.last_change.user_name == "Dra. Pérez"
    items = await patient_service.list_patients_for_user(db_session, other_id)
    assert items[0].has_unread is False


async def test_list_without_changes_is_never_unread(db_session, doctor):
    await _add_raw_patient(db_session, "1000")

    items = await patient_service.list_patients_for_user(db_session, doctor.id)

    assert items[0].last_change_id is None
    assert items[0].has_unread is False


async def test_list_orders_newest_first(db_session, doctor):
    await patient_service.create_patient(db_session, doctor, PatientCreate(full_name="Primero"))
    await patient_service.create_patient(db_session, doctor, PatientCreate(full_name="Segundo"))

    items = await patient_service.list_patients_for_user(db_session, doctor.id)

    assert [i.full_name for i in items] == ["Segundo", "Primero"]


# ── Eliminación ──────────────────────────────────────


async def test_delete_cascades_changes_and_views(db_session, doctor, other_doctor):
    patient = await patient_service.create_patient(
        db_session, doctor, PatientCreate(full_name="Ana Torres")
    )
    await patient_service.open_patient(db_session, patient, other_doctor)
    row_id = patient.id

    await patient_service.delete_patient(db_session, row_id, doctor)

    assert await db_session.get(Patient, row_id) is None
    changes = await db_session.scalar(
        select(func.count()).select_from(PatientChange).where(PatientChange.patient_id == row_id)
    )
    views = await db_session.scalar(
        select(func.count()).select_from(PatientView).where(PatientView.patient_id == row_id)
    )
    assert changes == 0
    assert views == 0


async def test_delete_missing_patient_raises(db_session, doctor):
    with pytest.raises(NotFoundException):
        await patient_service.delete_patient(db_session, 12345, doctor)
