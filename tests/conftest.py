"""
Fixtures compartidas para Pytest.
Configura base de datos de test, clientes HTTP y un Telegram falso.
"""

import asyncio
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.auth.jwt import create_access_token
from app.config import get_settings
from app.core.security import hash_password
from app.database import Base, enable_sqlite_foreign_keys, get_db
from app.main import app
from app.models.user import User, UserRole
from app.services import notification_service, telegram_service

settings = get_settings()


# ── Engine de test: un archivo SQLite por test ───────
@pytest_asyncio.fixture
async def test_engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,
    )
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provee una sesión de DB de test."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Cliente HTTP de test que usa la DB de test."""

    async def _get_test_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_test_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Telegram falso ───────────────────────────────────
class FakeTelegram:
    """Registra las llamadas salientes a la Bot API."""

    def __init__(self):
        self.sent: list[dict] = []
        self.edited: list[dict] = []
        self.answered: list[str] = []
        self.failing_chats: set[str] = set()

    async def send_message(self, chat_id, text, parse_mode="Markdown", reply_markup=None):
        if str(chat_id) in self.failing_chats:
            raise telegram_service.TelegramError("Forbidden: bot was blocked by the user", 403)
        self.sent.append({
            "chat_id": str(chat_id),
            "text": text,
            "parse_mode": parse_mode,
            "reply_markup": reply_markup,
        })
        return {"message_id": len(self.sent)}

    async def edit_message_text(self, chat_id, message_id, text, parse_mode="Markdown", reply_markup=None):
        self.edited.append({
            "chat_id": str(chat_id),
            "message_id": message_id,
            "text": text,
            "reply_markup": reply_markup,
        })
        return True

    async def answer_callback_query(self, callback_query_id, text=None):
        self.answered.append(callback_query_id)
        return True

    def texts_for(self, chat_id) -> list[str]:
        return [m["text"] for m in self.sent if m["chat_id"] == str(chat_id)]


@pytest.fixture(autouse=True)
def fake_telegram(monkeypatch) -> FakeTelegram:
    """Nunca se llama a Telegram real. Por defecto el bot no está configurado."""
    fake = FakeTelegram()
    monkeypatch.setattr(telegram_service, "send_message", fake.send_message)
    monkeypatch.setattr(telegram_service, "edit_message_text", fake.edit_message_text)
    monkeypatch.setattr(telegram_service, "answer_callback_query", fake.answer_callback_query)
    monkeypatch.setattr(settings, "TELEGRAM_BOT_TOKEN", "")
    monkeypatch.setattr(settings, "TELEGRAM_ALLOWED_IDS", "")
    monkeypatch.setattr(settings, "TELEGRAM_WEBHOOK_SECRET", "")
    monkeypatch.setattr(settings, "NOTIFY_VIA_CELERY", False)
    return fake


@pytest.fixture
def telegram_roster(monkeypatch):
    """Activa el bot con un roster de tres chats."""
    monkeypatch.setattr(settings, "TELEGRAM_BOT_TOKEN", "123456:TEST")
    monkeypatch.setattr(settings, "TELEGRAM_ALLOWED_IDS", "111,222,333")
    return ["111", "222", "333"]


@pytest.fixture
def drain_notifications():
    """Espera los avisos fire-and-forget pendientes."""

    async def _drain() -> None:
        pending = list(notification_service._background_tasks)
        if pending:
            await asyncio.gather(*pending)

    return _drain


# ── Usuarios ─────────────────────────────────────────
async def _create_user(
    db: AsyncSession,
    login: str,
    role: UserRole,
    full_name: str | None = None,
    telegram_id: str | None = None,
) -> User:
    user = User(
        login=login,
        password_hash=hash_password("secret123"),
        role=role,
        full_name=full_name,
        telegram_id=telegram_id,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "admin", UserRole.ADMIN, "Admin Test")


@pytest_asyncio.fixture
async def doctor(db_session: AsyncSession) -> User:
    """Médico vinculado al chat de Telegram 111."""
    return await _create_user(
        db_session, "dr.perez", UserRole.DOCTOR, "Dra. Pérez", telegram_id="111"
    )


@pytest_asyncio.fixture
async def other_doctor(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "dr.gomez", UserRole.DOCTOR, "Dr. Gómez")


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict[str, str]:
        token = create_access_token(user.id, user.role.value)
        return {"Authorization": f"Bearer {token}"}

    return _headers
