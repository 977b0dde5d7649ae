"""Telegram implementation of :class:`~stream_relay.renderer.MessageSink`."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from telegram import Bot
from telegram.error import BadRequest, RetryAfter, TelegramError

from .renderer import CommitOutcome, CommitResult

logger = logging.getLogger(__name__)

_NOT_MODIFIED = "message is not modified"
_NOT_FOUND = "message to edit not found"


class TelegramMessageSink:
    """Create and edit messages in a single chat."""

    def __init__(self, bot: Bot, chat_id: int) -> None:
        self.bot = bot
        self.chat_id = chat_id

    async def create(self, text: str) -> int:
        message = await self.bot.send_message(chat_id=self.chat_id, text=text)
        return message.message_id

    async def reply(self, text: str) -> None:
        await self.bot.send_message(chat_id=self.chat_id, text=text)

    async def update(self, handle: int, text: str) -> CommitResult:
        try:
            await self.bot.edit_message_text(text=text, chat_id=self.chat_id, message_id=handle)
        except RetryAfter as exc:
            return CommitResult(CommitOutcome.RATE_LIMITED, retry_after=_seconds(exc.retry_after), detail=str(exc))
        except BadRequest as exc:
            message = str(exc).lower()
            if _NOT_MODIFIED in message:
                return CommitResult(CommitOutcome.NOT_MODIFIED, detail=str(exc))
            if _NOT_FOUND in message:
                return CommitResult(CommitOutcome.NOT_FOUND, detail=str(exc))
            return CommitResult(CommitOutcome.OTHER_ERROR, detail=str(exc))
        except TelegramError as exc:
            return CommitResult(CommitOutcome.OTHER_ERROR, detail=str(exc))

        logger.debug("Edited message %s in chat %s", handle, self.chat_id)
        return CommitResult(CommitOutcome.OK)


def _seconds(value: object) -> Optional[float]:
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, (int, float)):
        return float(value)
    return None
