"""
Cliente mínimo de la Telegram Bot API vía httpx.

Métodos usados por el bot y por los avisos:
sendMessage, editMessageText, answerCallbackQuery, getUpdates, setWebhook.

Docs: https://core.telegram.org/bots/api
"""

import logging
import re
from typing import Any

import httpx

from app.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

_MARKDOWN_SPECIAL = re.compile(r"([_*`\[])")


class TelegramError(Exception):
    """Error de comunicación con la Telegram Bot API."""

    def __init__(self, message: str, error_code: int | None = None):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


def is_configured() -> bool:
    return bool(settings.TELEGRAM_BOT_TOKEN)


def escape_markdown(value: Any) -> str:
    """Escapa caracteres especiales del Markdown clásico de Telegram."""
    return _MARKDOWN_SPECIAL.sub(r"\\\1", str(value))


async def _api_call(method: str, payload: dict, timeout: float = 10.0) -> Any:
    """
    Ejecuta un método de la Bot API.
    Retorna el campo 'result' de la respuesta.
    """
    if not is_configured():
        raise TelegramError("TELEGRAM_BOT_TOKEN no configurado")

    url = f"{settings.TELEGRAM_API_URL}/bot{settings.TELEGRAM_BOT_TOKEN}/{method}"

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(url, json=payload)
    except httpx.TimeoutException:
        raise TelegramError(f"Timeout al llamar a Telegram ({method})")
    except httpx.RequestError as exc:
        raise TelegramError(f"Error de conexión con Telegram ({method}): {exc}")

    try:
        body = response.json()
    except ValueError:
        raise TelegramError(
            f"Respuesta inválida de Telegram ({method}) — status {response.status_code}",
            error_code=response.status_code,
        )

    if not body.get("ok"):
        raise TelegramError(
            body.get("description") or f"Telegram respondió con error ({method})",
            error_code=body.get("error_code"),
        )

    return body.get("result")


async def send_message(
    chat_id: str | int,
    text: str,
    parse_mode: str | None = "Markdown",
    reply_markup: dict | None = None,
) -> dict:
    payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
    if parse_mode:
        payload["parse_mode"] = parse_mode
    if reply_markup:
        payload["reply_markup"] = reply_markup
    return await _api_call("sendMessage", payload)


async def edit_message_text(
    chat_id: str | int,
    message_id: int,
    text: str,
    parse_mode: str | None = "Markdown",
    reply_markup: dict | None = None,
) -> dict | bool:
    payload: dict[str, Any] = {
        "chat_id": chat_id,
        "message_id": message_id,
        "text": text,
    }
    if parse_mode:
        payload["parse_mode"] = parse_mode
    if reply_markup:
        payload["reply_markup"] = reply_markup
    return await _api_call("editMessageText", payload)


async def answer_callback_query(callback_query_id: str, text: str | None = None) -> bool:
    payload: dict[str, Any] = {"callback_query_id": callback_query_id}
    if text:
        payload["text"] = text
    return await _api_call("answerCallbackQuery", payload)


async def get_updates(offset: int | None = None, timeout: int = 30) -> list[dict]:
    """Long polling: espera hasta `timeout` segundos por updates nuevos."""
    payload: dict[str, Any] = {
        "timeout": timeout,
        "allowed_updates": ["message", "callback_query"],
    }
    if offset is not None:
        payload["offset"] = offset
    return await _api_call("getUpdates", payload, timeout=timeout + 10)


async def set_webhook(url: str, secret_token: str | None = None) -> bool:
    payload: dict[str, Any] = {
        "url": url,
        "allowed_updates": ["message", "callback_query"],
    }
    if secret_token:
        payload["secret_token"] = secret_token
    result = await _api_call("setWebhook", payload)
    logger.info("Webhook de Telegram configurado en %s", url)
    return result


async def delete_webhook() -> bool:
    return await _api_call("deleteWebhook", {})
