"""Telegram front-end that streams chat-completion answers into editable messages.

The interesting part is :mod:`stream_relay.renderer`, which projects a live
stream of text fragments onto one rate-limited chat message.  The rest wires
it to Telegram (``stream_relay.handlers``, ``stream_relay.sink``), to an
OpenAI-compatible generation endpoint (``stream_relay.llm_client``) and to
per-user conversation state (``stream_relay.state``).
"""

from .config import BotConfig, ChatLLMConfig, RenderConfig
from .renderer import CommitOutcome, CommitResult, MessageSink, RenderSession, StreamRenderer
from .service import ChatService

__all__ = [
    "BotConfig",
    "ChatLLMConfig",
    "RenderConfig",
    "CommitOutcome",
    "CommitResult",
    "MessageSink",
    "RenderSession",
    "StreamRenderer",
    "ChatService",
]
