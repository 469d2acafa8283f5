"""
Webhook de Telegram.
Telegram reenvía cada update del bot a este endpoint (ver setWebhook).
"""

import logging

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.exceptions import ForbiddenException
from app.database import get_db
from app.services.bot_service import BotService

settings = get_settings()
logger = logging.getLogger(__name__)

router = APIRouter()

# Una instancia por proceso: guarda las sesiones de edición en memoria
bot_service = BotService()


@router.post("/webhook")
async def telegram_webhook(
    request: Request,
    x_telegram_bot_api_secret_token: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
):
    """
    Recibe un update de Telegram. Siempre responde 200 una vez aceptado,
    aunque el procesamiento falle, para que Telegram no lo reenvíe.
    """
    if (
        settings.TELEGRAM_WEBHOOK_SECRET
        and x_telegram_bot_api_secret_token != settings.TELEGRAM_WEBHOOK_SECRET
    ):
        raise ForbiddenException("Token secreto del webhook inválido")

    update = await request.json()
    try:
        await bot_service.handle_update(db, update)
    except Exception as e:
        await db.rollback()
        logger.error(
            "Error procesando update %s de Telegram: %s",
            update.get("update_id"), e, exc_info=True,
        )
    return {"ok": True}
