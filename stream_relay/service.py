"""High level orchestration: history, placeholder message, streaming and persistence."""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol

from .config import BotConfig
from .files import Attachment, attachment_part, user_content
from .llm_client import ChatLLMClient
from .renderer import CommitOutcome, CommitResult, StreamRenderer
from .state import UserStateStore

logger = logging.getLogger(__name__)

EMPTY_RESPONSE_MARKER = "[Empty response from model]"

Downloader = Callable[[str], Awaitable[bytes]]


class ReplySink(Protocol):
    async def create(self, text: str) -> Any:
        ...

    async def update(self, handle: Any, text: str) -> CommitResult:
        ...

    async def reply(self, text: str) -> None:
        ...


class ChatService:
    """Core chat engine shared by the Telegram handlers and the HTTP surface."""

    def __init__(
        self,
        config: Optional[BotConfig] = None,
        *,
        client: Optional[ChatLLMClient] = None,
        store: Optional[UserStateStore] = None,
    ) -> None:
        self.config = config or BotConfig()
        self.client = client or ChatLLMClient(self.config.llm)
        self.store = store or UserStateStore(self.config)

    async def respond(
        self,
        sink: ReplySink,
        user_id: int,
        prompt: str,
        *,
        attachment: Optional[Attachment] = None,
        download: Optional[Downloader] = None,
    ) -> Optional[str]:
        """Stream the model's answer to ``prompt`` into a new message.

        Returns the final answer text (possibly empty), or ``None`` when the
        request failed and an error notice was shown instead.
        """
        if attachment is None:
            self.store.add_message(user_id, "user", prompt)
            placeholder = self.config.render.placeholder
            subject = "your request"
        else:
            self.store.add_message(user_id, "user", f"{prompt}\n[{attachment.label} received, processing...]")
            placeholder = f"Analysing {attachment.label}..."
            subject = attachment.label

        model_id = self.store.model_id(user_id)
        history = self.store.get(user_id).history[:-1]
        handle = None
        try:
            handle = await sink.create(placeholder)
            content: Any = prompt
            if attachment is not None:
                if download is None:
                    raise ValueError("download is required when an attachment is given")
                data = await download(attachment.file_id)
                content = user_content(prompt, [attachment_part(attachment, data)])

            messages = history + [{"role": "user", "content": content}]
            source = await self.client.astream(messages, model_id)
            renderer = StreamRenderer(sink, dataclasses.replace(self.config.render, placeholder=placeholder))
            final_text = await renderer.render(handle, source)
        except Exception as exc:
            logger.exception("Failed to answer user %s (model %s)", user_id, model_id)
            self.store.pop_pending_user_message(user_id)
            await self._show_error(
                sink,
                handle,
                f"An error occurred while processing {subject}. Model: {model_id}. Error: {exc}",
            )
            return None

        if final_text:
            self.store.add_message(user_id, "assistant", final_text)
            return final_text

        logger.warning("Model %s returned an empty answer for user %s", model_id, user_id)
        self.store.add_message(user_id, "assistant", EMPTY_RESPONSE_MARKER)
        notice = "Could not get a response from the model." if attachment is None else f"Could not analyse {subject}."
        result = await sink.update(handle, notice)
        if result.outcome not in (CommitOutcome.OK, CommitOutcome.NOT_MODIFIED, CommitOutcome.NOT_FOUND):
            logger.error("Failed to show empty-answer notice: %s", result.detail)
        return final_text

    async def _show_error(self, sink: ReplySink, handle: Any, text: str) -> None:
        if handle is not None:
            result = await sink.update(handle, text)
            if result.outcome in (CommitOutcome.OK, CommitOutcome.NOT_MODIFIED):
                return
            logger.error("Failed to show error notice in message %s: %s", handle, result.detail)
            if result.outcome is CommitOutcome.NOT_FOUND:
                return
        await sink.reply(text)
