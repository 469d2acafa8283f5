"""
Tests del bot de Telegram: sesiones de edición, allow-list y botones.
"""

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy import select

from app.models.patient import Patient
from app.models.patient_change import PatientChange
from app.schemas.patient import PatientCreate
from app.services import change_service, patient_service, telegram_service
from app.services.bot_service import (
    ACCESS_RESTRICTED_TEXT,
    BotService,
    EditSessionStore,
    format_patient_card,
    patient_actions_keyboard,
)

FIXED_NOW = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


def _message(text: str, from_id: int = 111, username: str | None = "perez") -> dict:
    sender = {"id": from_id, "first_name": "Ana"}
    if username:
        sender["username"] = username
    return {
        "update_id": 1,
        "message": {
            "message_id": 10,
            "chat": {"id": from_id, "type": "private"},
            "from": sender,
            "text": text,
        },
    }


def _callback(data: str, from_id: int = 111) -> dict:
    return {
        "update_id": 2,
        "callback_query": {
            "id": "cbq-1",
            "from": {"id": from_id, "first_name": "Ana"},
            "message": {"message_id": 42, "chat": {"id": from_id}, "text": "carta"},
            "data": data,
        },
    }


@pytest.fixture
def bot() -> BotService:
    return BotService(
        sessions=EditSessionStore(clock=lambda: FIXED_NOW),
        allowed_ids=["111", "222"],
    )


@pytest_asyncio.fixture
async def patient(db_session, admin_user):
    return await patient_service.create_patient(
        db_session, admin_user, PatientCreate(full_name="Ana Torres", diagnosis="C50.9")
    )


# ── Sesiones ─────────────────────────────────────────


def test_session_store_uses_injected_clock():
    store = EditSessionStore(clock=lambda: FIXED_NOW)

    session = store.start(111, "diary", "Diario", "1000")

    assert session.started_at == FIXED_NOW
    assert "111" in store
    assert store.get("111") is session
    assert store.pop(111) is session
    assert store.get(111) is None
    assert len(store) == 0


def test_injected_empty_store_is_kept():
    store = EditSessionStore(clock=lambda: FIXED_NOW)

    service = BotService(sessions=store, allowed_ids=["111"])

    assert service.sessions is store


# ── Flujo de edición ─────────────────────────────────


async def test_edit_session_scenario(bot, db_session, doctor, patient, fake_telegram):
    doctor_id, row_id = doctor.id, patient.id

    await bot.handle_update(db_session, _message("/update_complaints 1000"))

    session = bot.sessions.get(111)
    assert session is not None
    assert (session.field, session.patient_id) == ("complaints", "1000")
    assert session.started_at == FIXED_NOW
    prompt = fake_telegram.texts_for(111)[-1]
    assert "Quejas" in prompt
    assert "Ana Torres" in prompt
    assert "—" in prompt

    await bot.handle_update(db_session, _message("fever"))

    assert bot.sessions.get(111) is None
    refreshed = await patient_service.get_patient_by_patient_id(db_session, "1000")
    assert refreshed.complaints == "fever"
    assert refreshed.diagnosis == "C50.9"

    last = await change_service.get_last_change_info(db_session, row_id)
    change = await db_session.get(PatientChange, last.id)
    assert change.source == "bot"
    assert change.description == "complaints"
    assert change.user_id == doctor_id
    assert await change_service.get_last_seen_change_id(db_session, row_id, doctor_id) == last.id
    assert "actualizado" in fake_telegram.texts_for(111)[-1]

    await bot.handle_update(db_session, _message("/cancel"))

    assert fake_telegram.texts_for(111)[-1] == "No hay edición activa para cancelar."


async def test_cancel_discards_pending_edit(bot, db_session, patient, fake_telegram):
    await bot.handle_update(db_session, _message("/update_diary 1000"))

    await bot.handle_update(db_session, _message("/cancel"))

    assert bot.sessions.get(111) is None
    assert fake_telegram.texts_for(111)[-1] == "Edición cancelada."
    refreshed = await patient_service.get_patient_by_patient_id(db_session, "1000")
    assert refreshed.diary is None


async def test_command_without_id_replies_usage(bot, db_session, fake_telegram):
    await bot.handle_update(db_session, _message("/update_discharge"))

    assert bot.sessions.get(111) is None
    assert "/update_discharge 12345" in fake_telegram.texts_for(111)[-1]


async def test_edit_unknown_patient_stays_idle(bot, db_session, fake_telegram):
    await bot.handle_update(db_session, _message("/update_diary 9999"))

    assert bot.sessions.get(111) is None
    assert "no encontrado" in fake_telegram.texts_for(111)[-1]


async def test_edit_from_unlinked_chat_logs_change_without_author(bot, db_session, patient, fake_telegram):
    row_id = patient.id

    await bot.handle_update(db_session, _message("/update_diary 1000", from_id=222))
    await bot.handle_update(db_session, _message("fracción 5/25", from_id=222))

    result = await db_session.execute(
        select(PatientChange).where(PatientChange.patient_id == row_id)
        .order_by(PatientChange.id.desc()).limit(1)
    )
    change = result.scalar_one()
    assert change.source == "bot"
    assert change.user_id is None


async def test_bot_edit_notifies_roster(bot, db_session, patient, fake_telegram, telegram_roster, drain_notifications):
    await bot.handle_update(db_session, _message("/update_diary 1000"))
    await bot.handle_update(db_session, _message("fracción 2"))
    await drain_notifications()

    notices = [m for m in fake_telegram.sent if "Actualización desde el bot" in m["text"]]
    assert sorted(m["chat_id"] for m in notices) == telegram_roster
    assert "@perez" in notices[0]["text"]


async def test_failed_confirmation_still_notifies_roster(
    bot, db_session, patient, fake_telegram, telegram_roster, drain_notifications, caplog
):
    await bot.handle_update(db_session, _message("/update_diary 1000"))
    # el chat del editor deja de aceptar mensajes antes de la confirmación
    fake_telegram.failing_chats.add("111")

    await bot.handle_update(db_session, _message("fracción 3"))
    await drain_notifications()

    refreshed = await patient_service.get_patient_by_patient_id(db_session, "1000")
    assert refreshed.diary == "fracción 3"
    notices = [m for m in fake_telegram.sent if "Actualización desde el bot" in m["text"]]
    assert sorted(m["chat_id"] for m in notices) == ["222", "333"]
    assert "No se pudo confirmar la edición de 1000" in caplog.text


# ── Consulta de cartas ───────────────────────────────


async def test_plain_text_shows_card_and_marks_seen(bot, db_session, doctor, patient, fake_telegram):
    doctor_id, row_id = doctor.id, patient.id
    assert await change_service.has_unread(db_session, row_id, doctor_id) is True

    await bot.handle_update(db_session, _message("1000"))

    reply = fake_telegram.sent[-1]
    assert "Ana Torres" in reply["text"]
    assert reply["reply_markup"] == patient_actions_keyboard("1000")
    assert await change_service.has_unread(db_session, row_id, doctor_id) is False


async def test_plain_text_unknown_id(bot, db_session, fake_telegram):
    await bot.handle_update(db_session, _message("4242"))

    assert "no encontrado" in fake_telegram.texts_for(111)[-1]


async def test_unknown_id_with_markdown_stays_outside_bold(bot, db_session, fake_telegram):
    await bot.handle_update(db_session, _message("hola *x"))

    text = fake_telegram.texts_for(111)[-1]
    assert "hola \\*x" in text
    assert "*hola" not in text
    assert text.count("*") == 1


async def test_start_lists_commands(bot, db_session, fake_telegram):
    await bot.handle_update(db_session, _message("/start"))

    text = fake_telegram.texts_for(111)[-1]
    for command in ("/update_diary", "/update_complaints", "/update_prescriptions",
                    "/update_discharge", "/update_complications", "/cancel"):
        assert command in text


# ── Allow-list ───────────────────────────────────────


async def test_unknown_sender_is_rejected(bot, db_session, patient, fake_telegram):
    await bot.handle_update(db_session, _message("/update_diary 1000", from_id=999))

    assert fake_telegram.texts_for(999) == [ACCESS_RESTRICTED_TEXT]
    assert bot.sessions.get(999) is None


async def test_unknown_sender_callback_is_rejected(bot, db_session, patient, fake_telegram):
    await bot.handle_update(db_session, _callback("edit:diary:1000", from_id=999))

    assert fake_telegram.texts_for(999) == [ACCESS_RESTRICTED_TEXT]
    assert bot.sessions.get(999) is None


# ── Botones inline ───────────────────────────────────


async def test_edit_button_starts_session(bot, db_session, patient, fake_telegram):
    await bot.handle_update(db_session, _callback("edit:discharge_summary:1000"))

    session = bot.sessions.get(111)
    assert session.field == "discharge_summary"
    assert session.label == "Epicrisis de alta"
    assert fake_telegram.answered == ["cbq-1"]


async def test_show_button_edits_card_in_place(bot, db_session, patient, fake_telegram):
    await bot.handle_update(db_session, _callback("show:1000"))

    edited = fake_telegram.edited[-1]
    assert edited["message_id"] == 42
    assert edited["text"] == format_patient_card(patient)
    assert fake_telegram.answered == ["cbq-1"]


async def test_show_button_ignores_message_not_modified(bot, db_session, patient, fake_telegram, monkeypatch):
    async def _not_modified(*args, **kwargs):
        raise telegram_service.TelegramError(
            "Bad Request: message is not modified: specified new message content "
            "and reply markup are exactly the same", 400,
        )

    monkeypatch.setattr(telegram_service, "edit_message_text", _not_modified)

    await bot.handle_update(db_session, _callback("show:1000"))

    assert fake_telegram.answered == ["cbq-1"]


def test_card_escapes_markdown_and_fills_empty_sections():
    card = format_patient_card(
        Patient(patient_id="1000", full_name="Ana_Torres", method_gray=2.0, diary="día *1*")
    )

    assert "Ana\\_Torres" in card
    assert "día \\*1\\*" in card
    assert "2.0" in card
    assert card.count("—") >= 4
    assert "*Ana" not in card
