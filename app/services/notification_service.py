"""
Avisos al personal vía Telegram.

Cada mutación de una carta (creación, edición web o desde el bot,
eliminación) se difunde a todos los chats del roster TELEGRAM_ALLOWED_IDS.
El envío es "fire-and-forget": una tarea por destinatario, cada una con su
propio manejo de errores. Un fallo se registra en el log y no afecta al
resto de destinatarios ni a la petición que originó el aviso. Sin reintentos.
"""

import asyncio
import logging

import httpx

from app.config import get_settings
from app.services import telegram_service
from app.services.telegram_service import TelegramError, escape_markdown

settings = get_settings()
logger = logging.getLogger(__name__)

# Referencias a tareas en curso para que el GC no las cancele
_background_tasks: set[asyncio.Task] = set()


async def deliver(chat_id: str, text: str) -> bool:
    """Entrega a un destinatario. Nunca propaga errores de envío."""
    try:
        await telegram_service.send_message(chat_id, text)
    except (TelegramError, httpx.HTTPError) as e:
        logger.error(f"Error enviando aviso a {chat_id}: {e}")
        return False
    return True


def notify_all(text: str) -> list[asyncio.Task]:
    """
    Programa el envío de `text` a cada destinatario del roster y retorna
    de inmediato. Debe llamarse dentro de un event loop en ejecución.

    Returns:
        Las tareas creadas (vacío si el bot no está configurado o si el
        envío se delega a Celery).
    """
    recipients = settings.telegram_allowed_ids
    if not telegram_service.is_configured() or not recipients:
        return []

    if settings.NOTIFY_VIA_CELERY:
        from app.tasks.notification_tasks import send_notification_task

        for chat_id in recipients:
            try:
                send_notification_task.delay(chat_id, text)
            except Exception as e:
                # Broker caído: el aviso se pierde, la operación no
                logger.error(f"No se pudo encolar aviso para {chat_id}: {e}")
        return []

    tasks = []
    for chat_id in recipients:
        task = asyncio.create_task(deliver(chat_id, text))
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)
        tasks.append(task)
    return tasks


# ── Mensajes predefinidos ────────────────────────────

def build_patient_created_message(patient_id: str, full_name: str, actor: str) -> str:
    return (
        "🧾 *Nueva carta de RT creada*\n"
        f"ID: {escape_markdown(patient_id)}\n"
        f"Paciente: {escape_markdown(full_name)}\n"
        f"Usuario: {escape_markdown(actor)}"
    )


def build_patient_updated_message(patient_id: str, full_name: str, actor: str) -> str:
    return (
        "♻️ *Carta de RT actualizada*\n"
        f"ID: {escape_markdown(patient_id)}\n"
        f"Paciente: {escape_markdown(full_name)}\n"
        f"Usuario: {escape_markdown(actor)}"
    )


def build_patient_deleted_message(patient_id: str, full_name: str | None, actor: str) -> str:
    return (
        "🗑 *Carta de RT eliminada*\n"
        f"ID: {escape_markdown(patient_id)}\n"
        f"Paciente: {escape_markdown(full_name or '')}\n"
        f"Usuario: {escape_markdown(actor)}"
    )


def build_bot_field_updated_message(label: str, patient_id: str, telegram_user: str) -> str:
    return (
        "✏️ *Actualización desde el bot*\n"
        f"Campo: {escape_markdown(label)}\n"
        f"ID: {escape_markdown(patient_id)}\n"
        f"Usuario de Telegram: {escape_markdown(telegram_user)}"
    )
