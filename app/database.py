"""
Configuración de base de datos con SQLAlchemy 2.0 async.
Soporta PostgreSQL (asyncpg) y SQLite (aiosqlite).
"""

from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import get_settings

settings = get_settings()


# ── SQLite: activar claves foráneas ──────────────────
def enable_sqlite_foreign_keys(async_engine: AsyncEngine) -> None:
    """
    SQLite ignora ON DELETE CASCADE si no se activa el PRAGMA
    en cada conexión nueva.
    """

    @event.listens_for(async_engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# ── Engine async ─────────────────────────────────────
_engine_kwargs: dict = {"echo": False, "pool_pre_ping": True}
if not settings.is_sqlite:
    _engine_kwargs.update(pool_size=20, max_overflow=10)

engine = create_async_engine(settings.DATABASE_URL, **_engine_kwargs)

if settings.is_sqlite:
    enable_sqlite_foreign_keys(engine)

# ── Session factory ──────────────────────────────────
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base declarativa ─────────────────────────────────
class Base(DeclarativeBase):
    pass


async def init_models() -> None:
    """Crea las tablas que falten (entornos sin Alembic)."""
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ── Dependency: sesión de DB ─────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency de FastAPI que provee una sesión de base de datos.
    Los servicios confirman sus propias escrituras; aquí se confirma lo
    que quede pendiente y se revierte ante cualquier error.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
