"""In-memory conversation history and model selection per user."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import BotConfig

logger = logging.getLogger(__name__)


@dataclass
class UserState:
    user_id: int
    model_key: str
    history: List[Dict[str, Any]] = field(default_factory=list)
    updated_at: float = field(default_factory=time.time)


class UserStateStore:
    """Holds one :class:`UserState` per Telegram user."""

    def __init__(self, config: BotConfig) -> None:
        self.config = config
        self._states: Dict[int, UserState] = {}

    def get(self, user_id: int) -> UserState:
        state = self._states.get(user_id)
        if state is None:
            state = UserState(user_id=user_id, model_key=self.config.default_model_key)
            self._states[user_id] = state
        return state

    def model_id(self, user_id: int) -> str:
        return self.config.resolve_model_id(self.get(user_id).model_key)

    def clear_history(self, user_id: int) -> None:
        """Forget the conversation but keep the selected model."""
        state = self.get(user_id)
        state.history = []
        state.updated_at = time.time()
        logger.info("Cleared history for user %s", user_id)

    def add_message(self, user_id: int, role: str, content: Any) -> None:
        state = self.get(user_id)
        state.history.append({"role": role, "content": content})
        limit = self.config.max_history_messages
        if limit and len(state.history) > limit:
            state.history = state.history[-limit:]
        state.updated_at = time.time()

    def pop_pending_user_message(self, user_id: int) -> None:
        """Drop the trailing user turn after a request that produced no answer."""
        state = self.get(user_id)
        if state.history and state.history[-1].get("role") == "user":
            state.history.pop()

    def set_model(self, user_id: int, model_key: str) -> Optional[str]:
        """Switch the user's model; return the model id, or ``None`` for unknown keys."""
        key = model_key[1:] if model_key.startswith("/") else model_key
        model_id = self.config.models.get(key)
        if not model_id:
            logger.warning("Rejected unknown model key %r for user %s", key, user_id)
            return None
        state = self.get(user_id)
        state.model_key = key
        logger.info("User %s switched to model %s (/%s)", user_id, model_id, key)
        return model_id

    def reset_model(self, user_id: int) -> None:
        self.get(user_id).model_key = self.config.default_model_key

    def snapshot(self, user_id: int) -> Dict[str, object]:
        state = self._states.get(user_id)
        if state is None:
            raise ValueError(f"No conversation found for user {user_id}")
        return {
            "user_id": state.user_id,
            "model_key": state.model_key,
            "model_id": self.config.resolve_model_id(state.model_key),
            "messages": list(state.history),
            "updated_at": state.updated_at,
        }
