"""
Bot de Telegram de radioterapia.

Cada chat autorizado puede:
- enviar el ID público de un paciente para ver su carta resumida;
- editar un campo de texto con /update_<campo> ID (o con los botones de la
  carta) y luego enviar el nuevo valor en un solo mensaje;
- cancelar la edición en curso con /cancel.

Estado por chat:
    Idle --[/update_<campo> ID | edit:<campo>:<ID>]--> AwaitingValue
    AwaitingValue --[texto]--> Idle   (parche + registro + aviso)
    AwaitingValue --[/cancel]--> Idle

Las sesiones de edición viven en memoria del proceso: un reinicio las
descarta y el usuario debe volver a iniciar la edición.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models.patient import Patient
from app.models.patient_change import ChangeSource
from app.services import (
    change_service,
    notification_service,
    patient_service,
    telegram_service,
    user_service,
)
from app.services.telegram_service import TelegramError, escape_markdown

settings = get_settings()
logger = logging.getLogger(__name__)

# Campo editable → etiqueta visible
FIELD_LABELS: dict[str, str] = {
    "diary": "Diario del curso de RT",
    "complaints": "Quejas",
    "prescriptions": "Prescripciones",
    "discharge_summary": "Epicrisis de alta",
    "complications": "Complicaciones",
}

# Comando → campo
UPDATE_COMMANDS: dict[str, str] = {
    "/update_diary": "diary",
    "/update_complaints": "complaints",
    "/update_prescriptions": "prescriptions",
    "/update_discharge": "discharge_summary",
    "/update_complications": "complications",
}

EMPTY_VALUE = "—"

ACCESS_RESTRICTED_TEXT = (
    "El acceso al bot de radioterapia está restringido. "
    "Contacte al administrador."
)

WELCOME_TEXT = (
    "👋 Bienvenido al bot de radioterapia.\n"
    "Envíe el *ID del paciente* (como en el panel web) para ver la carta "
    "resumida del curso de RT: diario, quejas, prescripciones, epicrisis y "
    "complicaciones.\n\n"
    "Para modificar datos use los comandos:\n"
    "• `/update_diary ID` — diario de RT\n"
    "• `/update_complaints ID` — quejas\n"
    "• `/update_prescriptions ID` — prescripciones\n"
    "• `/update_discharge ID` — epicrisis de alta\n"
    "• `/update_complications ID` — complicaciones\n"
    "El comando `/cancel` sale del modo edición."
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Sesiones de edición ──────────────────────────────


@dataclass
class EditSession:
    field: str
    label: str
    patient_id: str
    started_at: datetime


class EditSessionStore:
    """Ediciones en curso por chat (AwaitingValue). Sin entrada = Idle."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock
        self._sessions: dict[str, EditSession] = {}

    def get(self, chat_id: str | int) -> EditSession | None:
        return self._sessions.get(str(chat_id))

    def start(self, chat_id: str | int, field: str, label: str, patient_id: str) -> EditSession:
        session = EditSession(
            field=field,
            label=label,
            patient_id=patient_id,
            started_at=self._clock(),
        )
        self._sessions[str(chat_id)] = session
        return session

    def pop(self, chat_id: str | int) -> EditSession | None:
        return self._sessions.pop(str(chat_id), None)

    def __contains__(self, chat_id: object) -> bool:
        return str(chat_id) in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


# ── Presentación ─────────────────────────────────────


def format_patient_card(patient: Patient) -> str:
    """Carta resumida del paciente en Markdown de Telegram."""
    lines = [f"🧾 *Carta de RT* — ID: {escape_markdown(patient.patient_id)}"]
    if patient.full_name:
        lines.append(f"👤 Paciente: {escape_markdown(patient.full_name)}")
    if patient.diagnosis:
        lines.append(f"🎯 Diagnóstico: {escape_markdown(patient.diagnosis)}")
    if patient.method_gray is not None:
        lines.append(f"📡 Método: {escape_markdown(patient.method_gray)}")
    lines.append("")

    sections = [
        ("📘", "Diario", patient.diary),
        ("😣", "Quejas", patient.complaints),
        ("💊", "Prescripciones", patient.prescriptions),
        ("📄", "Epicrisis", patient.discharge_summary),
        ("⚠️", "Complicaciones", patient.complications),
    ]
    for icon, title, value in sections:
        lines.append(f"{icon} *{title}:*")
        lines.append(escape_markdown(value) if value else EMPTY_VALUE)
        lines.append("")

    return "\n".join(lines).rstrip()


def patient_actions_keyboard(patient_id: str) -> dict:
    """Teclado inline bajo la carta: refrescar y editar cada campo."""

    def button(text: str, data: str) -> dict:
        return {"text": text, "callback_data": data}

    return {
        "inline_keyboard": [
            [button("🔄 Actualizar carta", f"show:{patient_id}")],
            [
                button("✏️ Diario", f"edit:diary:{patient_id}"),
                button("😣 Quejas", f"edit:complaints:{patient_id}"),
            ],
            [button("💊 Prescripciones", f"edit:prescriptions:{patient_id}")],
            [button("📄 Epicrisis", f"edit:discharge_summary:{patient_id}")],
            [button("⚠️ Complicaciones", f"edit:complications:{patient_id}")],
        ]
    }


def _not_found_text(patient_id: str) -> str:
    return f"Paciente con ID {escape_markdown(patient_id)} no encontrado en la base de RT."


def _telegram_handle(sender: dict) -> str:
    if sender.get("username"):
        return f"@{sender['username']}"
    return str(sender.get("first_name") or sender.get("id") or "desconocido")


# ── Servicio ─────────────────────────────────────────


class BotService:
    """Procesa updates de Telegram (webhook o long polling)."""

    def __init__(
        self,
        sessions: EditSessionStore | None = None,
        allowed_ids: list[str] | None = None,
    ):
        self.sessions = sessions if sessions is not None else EditSessionStore()
        self._allowed_ids = allowed_ids

    @property
    def allowed_ids(self) -> set[str]:
        if self._allowed_ids is not None:
            return {str(i) for i in self._allowed_ids}
        return set(settings.telegram_allowed_ids)

    def is_allowed(self, telegram_id: Any) -> bool:
        return telegram_id is not None and str(telegram_id) in self.allowed_ids

    async def handle_update(self, db: AsyncSession, update: dict) -> None:
        if "callback_query" in update:
            await self._handle_callback(db, update["callback_query"])
            return

        message = update.get("message")
        if not message or "text" not in message:
            return

        chat_id = message["chat"]["id"]
        sender = message.get("from") or {}
        if not self.is_allowed(sender.get("id")):
            logger.info("Update rechazado de telegram_id=%s", sender.get("id"))
            await self._reply(chat_id, ACCESS_RESTRICTED_TEXT, parse_mode=None)
            return

        text = message["text"].strip()
        if text.startswith("/"):
            await self._handle_command(db, chat_id, text)
        else:
            await self._handle_text(db, chat_id, sender, text)

    # ── Comandos ─────────────────────────────────────

    async def _handle_command(self, db: AsyncSession, chat_id: int, text: str) -> None:
        parts = text.split()
        # /comando@NombreDelBot en grupos
        command = parts[0].split("@", 1)[0].lower()

        if command == "/start":
            await self._reply(chat_id, WELCOME_TEXT)
        elif command == "/cancel":
            if self.sessions.pop(chat_id):
                await self._reply(chat_id, "Edición cancelada.", parse_mode=None)
            else:
                await self._reply(chat_id, "No hay edición activa para cancelar.", parse_mode=None)
        elif command in UPDATE_COMMANDS:
            field = UPDATE_COMMANDS[command]
            if len(parts) < 2:
                await self._reply(
                    chat_id,
                    f"Indique el ID del paciente después del comando.\nEjemplo: {command} 12345",
                    parse_mode=None,
                )
                return
            await self.begin_edit(db, chat_id, parts[1], field)

    async def begin_edit(self, db: AsyncSession, chat_id: int, patient_id: str, field: str) -> None:
        """Idle → AwaitingValue si el paciente existe."""
        patient = await patient_service.get_patient_by_patient_id(db, patient_id)
        if patient is None:
            await self._reply(chat_id, _not_found_text(patient_id))
            return

        label = FIELD_LABELS.get(field, field)
        self.sessions.start(chat_id, field, label, patient.patient_id)

        lines = [f'Editando el campo "{label}" del paciente ID {patient.patient_id}.']
        if patient.full_name:
            lines.append(f"Paciente: {patient.full_name}")
        lines.append(f"Valor actual:\n{getattr(patient, field) or EMPTY_VALUE}")
        lines.append("")
        lines.append("Envíe el nuevo texto en un solo mensaje.")
        lines.append("El comando /cancel cancela la edición.")
        await self._reply(chat_id, "\n".join(lines), parse_mode=None)

    # ── Texto libre ──────────────────────────────────

    async def _handle_text(self, db: AsyncSession, chat_id: int, sender: dict, text: str) -> None:
        session = self.sessions.pop(chat_id)
        if session:
            await self._apply_edit(db, chat_id, sender, session, text)
            return

        patient = await patient_service.get_patient_by_patient_id(db, text)
        if patient is None:
            await self._reply(chat_id, _not_found_text(text))
            return

        card, keyboard = format_patient_card(patient), patient_actions_keyboard(patient.patient_id)
        await self._mark_seen_for_sender(db, patient.id, sender)
        await self._reply(chat_id, card, reply_markup=keyboard)

    async def _apply_edit(
        self,
        db: AsyncSession,
        chat_id: int,
        sender: dict,
        session: EditSession,
        value: str,
    ) -> None:
        """AwaitingValue → Idle: parche, registro, marca de lectura y aviso."""
        linked = await user_service.find_user_by_telegram_id(db, sender.get("id"))
        user_id = linked.id if linked else None

        patch: dict[str, Any] = {session.field: value, "updated_by": user_id}
        patient = await patient_service.patch_patient_fields_by_patient_id(
            db, session.patient_id, patch
        )
        if patient is None:
            await self._reply(chat_id, _not_found_text(session.patient_id))
            return

        row_id, full_name = patient.id, patient.full_name
        await change_service.record_change_safely(
            db, row_id, user_id, ChangeSource.BOT, session.field
        )
        if user_id:
            await change_service.mark_patient_seen(db, row_id, user_id)

        notification_service.notify_all(
            notification_service.build_bot_field_updated_message(
                session.label, session.patient_id, _telegram_handle(sender)
            )
        )
        logger.info(
            "Campo %s de %s actualizado desde Telegram por %s",
            session.field, session.patient_id, sender.get("id"),
        )

        confirm = f'Campo "{session.label}" del paciente ID {session.patient_id} actualizado.'
        if full_name:
            confirm += f"\nPaciente: {full_name}"
        try:
            await self._reply(chat_id, confirm, parse_mode=None)
        except TelegramError as e:
            # El cambio ya está guardado y difundido
            logger.warning(
                "No se pudo confirmar la edición de %s a %s: %s",
                session.patient_id, chat_id, e,
            )

    # ── Botones inline ───────────────────────────────

    async def _handle_callback(self, db: AsyncSession, query: dict) -> None:
        sender = query.get("from") or {}
        message = query.get("message") or {}
        chat_id = (message.get("chat") or {}).get("id", sender.get("id"))
        data = query.get("data") or ""

        if not self.is_allowed(sender.get("id")):
            await self._answer_callback(query["id"])
            await self._reply(chat_id, ACCESS_RESTRICTED_TEXT, parse_mode=None)
            return

        if data.startswith("show:"):
            patient_id = data[len("show:"):]
            patient = await patient_service.get_patient_by_patient_id(db, patient_id)
            if patient is None:
                await self._safe_edit(chat_id, message.get("message_id"), _not_found_text(patient_id))
            else:
                card = format_patient_card(patient)
                keyboard = patient_actions_keyboard(patient.patient_id)
                await self._mark_seen_for_sender(db, patient.id, sender)
                await self._safe_edit(chat_id, message.get("message_id"), card, keyboard)
        elif data.startswith("edit:"):
            # edit:<campo>:<ID>
            _, field, patient_id = (data.split(":", 2) + ["", ""])[:3]
            if field in FIELD_LABELS and patient_id:
                await self.begin_edit(db, chat_id, patient_id, field)

        await self._answer_callback(query["id"])

    # ── Utilidades ───────────────────────────────────

    async def _mark_seen_for_sender(self, db: AsyncSession, patient_row_id: int, sender: dict) -> None:
        linked = await user_service.find_user_by_telegram_id(db, sender.get("id"))
        if linked:
            await change_service.mark_patient_seen(db, patient_row_id, linked.id)

    async def _reply(
        self,
        chat_id: int,
        text: str,
        parse_mode: str | None = "Markdown",
        reply_markup: dict | None = None,
    ) -> None:
        await telegram_service.send_message(
            chat_id, text, parse_mode=parse_mode, reply_markup=reply_markup
        )

    async def _safe_edit(
        self,
        chat_id: int,
        message_id: int | None,
        text: str,
        reply_markup: dict | None = None,
    ) -> None:
        """Edita el mensaje de la carta; ignora 'message is not modified'."""
        if message_id is None:
            await self._reply(chat_id, text, reply_markup=reply_markup)
            return
        try:
            await telegram_service.edit_message_text(
                chat_id, message_id, text, reply_markup=reply_markup
            )
        except TelegramError as e:
            if "message is not modified" not in e.message:
                raise

    async def _answer_callback(self, callback_query_id: str) -> None:
        try:
            await telegram_service.answer_callback_query(callback_query_id)
        except TelegramError as e:
            logger.debug(f"answerCallbackQuery falló: {e}")
