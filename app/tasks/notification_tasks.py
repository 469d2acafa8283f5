"""
Tareas Celery para avisos de Telegram.
Una tarea por destinatario; sin reintentos (un aviso fallido se registra
en el log y se descarta).
"""

import asyncio
import logging

from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="notifications.send", max_retries=0, ignore_result=True)
def send_notification_task(chat_id: str, text: str) -> bool:
    """Entrega un aviso a un chat del roster."""
    from app.services.notification_service import deliver

    delivered = asyncio.run(deliver(chat_id, text))
    if delivered:
        logger.info(f"Aviso entregado a {chat_id}")
    return delivered
