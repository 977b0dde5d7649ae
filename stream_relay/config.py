"""Configuration objects for the relay bot."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Set

logger = logging.getLogger(__name__)

# Command key (without the leading slash) -> model id sent to the endpoint.
DEFAULT_MODELS: Dict[str, str] = {
    "gemini15flash": "gemini-1.5-flash",
    "gemini20flash": "gemini-2.0-flash",
    "gemini20flashlite": "gemini-2.0-flash-lite",
    "gemini25proexp0325": "gemini-2.5-pro-exp-03-25",
}
DEFAULT_MODEL_KEY = "gemini20flash"

SUPPORTED_MIME_TYPES: List[str] = [
    "text/plain",
    "application/pdf",
    "image/png",
    "image/jpeg",
    "text/csv",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "audio/mpeg",
    "audio/ogg",
    "audio/wav",
]


@dataclass
class ChatLLMConfig:
    """LLM connection details."""

    endpoint: str = "https://generativelanguage.googleapis.com/v1beta/openai/chat/completions"
    api_key: Optional[str] = None
    request_timeout: int = 60


@dataclass
class RenderConfig:
    """Controls how streamed output is projected onto a chat message."""

    throttle_interval_ms: int = 1500
    placeholder: str = "..."
    error_marker: str = "\n\n[Error while streaming the response]"

    @property
    def throttle_interval(self) -> float:
        return self.throttle_interval_ms / 1000.0


@dataclass
class BotConfig:
    """Runtime controls for the Telegram front-end."""

    bot_token: str = ""
    allowed_user_ids: Set[int] = field(default_factory=set)
    llm: ChatLLMConfig = field(default_factory=ChatLLMConfig)
    render: RenderConfig = field(default_factory=RenderConfig)
    models: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_MODELS))
    default_model_key: str = DEFAULT_MODEL_KEY
    max_history_messages: int = 0
    supported_mime_types: List[str] = field(default_factory=lambda: list(SUPPORTED_MIME_TYPES))
    webhook_url: Optional[str] = None
    webhook_secret: Optional[str] = None
    crash_state_path: str = ".crash_state.json"

    @property
    def default_model_id(self) -> str:
        return self.models.get(self.default_model_key) or next(iter(self.models.values()), "gemini-1.5-flash")

    def resolve_model_id(self, model_key: Optional[str]) -> str:
        """Map a command key to a model id, falling back to the default model."""
        if model_key and model_key in self.models:
            return self.models[model_key]
        return self.default_model_id

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "BotConfig":
        env = os.environ if environ is None else environ
        config = cls(
            bot_token=env.get("BOT_TOKEN", ""),
            allowed_user_ids=parse_allowed_user_ids(env.get("ALLOWED_USER_IDS", "")),
            webhook_url=env.get("WEBHOOK_URL") or None,
            webhook_secret=env.get("WEBHOOK_SECRET") or None,
        )
        config.llm.api_key = env.get("API_KEY") or None
        if env.get("LLM_ENDPOINT"):
            config.llm.endpoint = env["LLM_ENDPOINT"]
        if env.get("EDIT_THROTTLE_MS"):
            config.render.throttle_interval_ms = _parse_int(env["EDIT_THROTTLE_MS"], "EDIT_THROTTLE_MS")
        if env.get("MAX_HISTORY_MESSAGES"):
            config.max_history_messages = _parse_int(env["MAX_HISTORY_MESSAGES"], "MAX_HISTORY_MESSAGES")
        return config


def parse_allowed_user_ids(raw: str) -> Set[int]:
    """Parse a comma separated id list, ignoring blanks and non-integers."""
    ids: Set[int] = set()
    for part in (raw or "").split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.add(int(part))
        except ValueError:
            logger.warning("Ignoring invalid user id in ALLOWED_USER_IDS: %r", part)
    if not ids:
        logger.warning("ALLOWED_USER_IDS is empty; the bot will not answer anyone")
    return ids


def _parse_int(value: str, name: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc
    if parsed < 0:
        raise ValueError(f"{name} must not be negative")
    return parsed
