"""Telegram Bot API calls that never raise into the handlers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from aiogram.exceptions import (
    TelegramAPIError,
    TelegramBadRequest,
    TelegramForbiddenError,
    TelegramRetryAfter,
)
from aiogram.types import BufferedInputFile, Message

P = ParamSpec("P")
T = TypeVar("T")

# Telegram rejects longer text messages.
MESSAGE_LIMIT = 4096

logger = logging.getLogger(__name__)


async def safe_api_call(
    label: str,
    func: Callable[P, Awaitable[T]],
    *args: P.args,
    retries: int = 3,
    **kwargs: P.kwargs,
) -> T | None:
    """Run a Bot API call, sleeping through flood control and logging other failures."""
    attempt = 0
    while True:
        try:
            return await func(*args, **kwargs)
        except TelegramRetryAfter as exc:
            attempt += 1
            retry_after = getattr(exc, "retry_after", None)
            if attempt >= retries:
                logger.warning("Telegram call '%s' gave up after %s attempts (retry_after=%s)", label, attempt, retry_after)
                return None
            delay = float(retry_after or 1.0)
            logger.info("Telegram call '%s' rate limited, retrying in %.1f s (%s/%s)", label, delay, attempt, retries)
            await asyncio.sleep(delay)
        except TelegramForbiddenError:
            logger.info("Telegram call '%s' forbidden, the bot is probably blocked", label)
            return None
        except TelegramBadRequest as exc:
            text = str(exc)
            if "message is not modified" in text.lower():
                logger.debug("Telegram call '%s' skipped, content unchanged", label)
            else:
                logger.warning("Telegram call '%s' bad request: %s", label, text)
            return None
        except TelegramAPIError as exc:
            logger.error("Telegram call '%s' failed: %s", label, exc, exc_info=True)
            return None


def split_text(text: str, limit: int = MESSAGE_LIMIT) -> list[str]:
    """Split ``text`` on line boundaries into chunks no longer than ``limit``."""
    if len(text) <= limit:
        return [text]
    chunks: list[str] = []
    current = ""
    for line in text.split("\n"):
        while len(line) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:limit])
            line = line[limit:]
        candidate = f"{current}\n{line}" if current else line
        if len(candidate) > limit:
            chunks.append(current)
            current = line
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


async def safe_message_answer(message: Message | None, text: str, **kwargs) -> bool:
    """Answer ``message``, splitting long text into several messages."""
    if not message:
        return False
    sent = True
    for chunk in split_text(text or "-"):
        sent = (await safe_api_call("message.answer", message.answer, chunk, **kwargs)) is not None and sent
    return sent


async def safe_answer_document(message: Message | None, content: bytes, file_name: str, caption: str | None = None) -> bool:
    if not message:
        return False
    document = BufferedInputFile(content, filename=file_name)
    return (
        await safe_api_call("message.answer_document", message.answer_document, document, caption=caption)
    ) is not None
