"""
Bot de Telegram en modo long polling (sin webhook).

Uso:
    python scripts/run_bot_polling.py

Útil en desarrollo o en servidores sin URL pública. Elimina el webhook
registrado (Telegram no permite getUpdates con un webhook activo) y
procesa cada update con su propia sesión de base de datos.
"""

import asyncio
import logging
import sys
from pathlib import Path

# Agregar el directorio raíz al path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.config import get_settings  # noqa: E402
from app.database import async_session_factory, init_models  # noqa: E402
from app.services import telegram_service, user_service  # noqa: E402
from app.services.bot_service import BotService  # noqa: E402
from app.services.telegram_service import TelegramError  # noqa: E402

settings = get_settings()
logger = logging.getLogger("radonco.bot")

RETRY_DELAY_SECONDS = 5


async def process_update(bot: BotService, update: dict) -> None:
    async with async_session_factory() as db:
        try:
            await bot.handle_update(db, update)
        except Exception as e:
            await db.rollback()
            logger.error(
                "Error procesando update %s: %s", update.get("update_id"), e,
                exc_info=True,
            )


async def main() -> None:
    if not telegram_service.is_configured():
        logger.error("TELEGRAM_BOT_TOKEN no configurado")
        sys.exit(1)

    if settings.DB_AUTO_CREATE:
        await init_models()
    async with async_session_factory() as db:
        await user_service.ensure_admin_user(db)

    await telegram_service.delete_webhook()
    bot = BotService()
    offset: int | None = None
    logger.info("🤖 Bot de radioterapia escuchando (long polling)")

    while True:
        try:
            updates = await telegram_service.get_updates(offset=offset)
        except TelegramError as e:
            logger.warning(f"getUpdates falló: {e}. Reintentando en {RETRY_DELAY_SECONDS}s")
            await asyncio.sleep(RETRY_DELAY_SECONDS)
            continue

        for update in updates:
            offset = update["update_id"] + 1
            await process_update(bot, update)


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("🛑 Bot detenido")
