"""Attachment download and encoding for multimodal requests."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from telegram import Bot

logger = logging.getLogger(__name__)

_AUDIO_FORMATS = {
    "audio/ogg": "ogg",
    "audio/mpeg": "mp3",
    "audio/wav": "wav",
}


@dataclass
class Attachment:
    """A file the user sent alongside (or instead of) a text prompt."""

    file_id: str
    mime_type: str
    kind: str
    file_name: str = ""

    @property
    def label(self) -> str:
        return f"{self.kind} {self.file_name}".strip()


async def download_file(bot: Bot, file_id: str) -> bytes:
    telegram_file = await bot.get_file(file_id)
    data = await telegram_file.download_as_bytearray()
    logger.debug("Downloaded file %s (%d bytes)", file_id, len(data))
    return bytes(data)


def attachment_part(attachment: Attachment, data: bytes) -> Dict[str, Any]:
    """Return a chat-completions content part carrying ``data``."""
    encoded = base64.b64encode(data).decode("ascii")
    mime_type = attachment.mime_type
    if mime_type.startswith("image/"):
        return {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}"}}
    if mime_type in _AUDIO_FORMATS:
        return {"type": "input_audio", "input_audio": {"data": encoded, "format": _AUDIO_FORMATS[mime_type]}}
    return {
        "type": "file",
        "file": {
            "filename": attachment.file_name or attachment.kind,
            "file_data": f"data:{mime_type};base64,{encoded}",
        },
    }


def user_content(prompt: str, parts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [{"type": "text", "text": prompt}, *parts]


def is_supported(mime_type: str, supported: List[str]) -> bool:
    return bool(mime_type) and mime_type in supported
