"""
Punto de entrada de la aplicación FastAPI.
Configura CORS, logging, el administrador inicial y monta los routers.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.router import api_v1_router
from app.config import get_settings
from app.database import async_session_factory, init_models
from app.services import telegram_service, user_service
from app.services.telegram_service import TelegramError

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifecycle ────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Eventos de inicio y cierre de la aplicación."""
    # Startup
    logger.info("🚀 %s iniciando en modo %s", settings.APP_NAME, settings.APP_ENV)

    if settings.DB_AUTO_CREATE:
        await init_models()

    async with async_session_factory() as db:
        await user_service.ensure_admin_user(db)

    if telegram_service.is_configured() and settings.TELEGRAM_WEBHOOK_URL:
        try:
            await telegram_service.set_webhook(
                settings.TELEGRAM_WEBHOOK_URL,
                secret_token=settings.TELEGRAM_WEBHOOK_SECRET or None,
            )
        except TelegramError as e:
            logger.error(f"No se pudo registrar el webhook de Telegram: {e}")
    elif not telegram_service.is_configured():
        logger.warning("TELEGRAM_BOT_TOKEN no configurado: bot y avisos desactivados")

    yield
    # Shutdown
    logger.info("🛑 %s cerrando...", settings.APP_NAME)


# ── App ──────────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    description="API de cartas de pacientes de radioterapia con bot de Telegram",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Global Exception Handler ────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Captura excepciones no manejadas para evitar exponer detalles internos."""
    logger.error(f"Error no manejado en {request.url.path}: {exc}", exc_info=exc)
    if settings.DEBUG:
        # En desarrollo, mostrar detalles
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": str(exc), "type": type(exc).__name__},
        )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Error interno del servidor"},
    )


# ── Routers ──────────────────────────────────────────
app.include_router(api_v1_router, prefix=settings.API_V1_PREFIX)


# ── Health Check ─────────────────────────────────────
@app.get("/health", tags=["Health"])
async def health_check():
    """Endpoint de health check para monitoreo."""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": "0.1.0",
        "environment": settings.APP_ENV,
        "bot_configured": telegram_service.is_configured(),
    }
