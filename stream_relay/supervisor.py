"""Exit-code policy for crashes, for use under an external process manager.

A crash exits with code 1 so the process manager restarts the bot.  After
``max_consecutive`` crashes, each within ``window_seconds`` of the previous
one, the bot exits with code 0 instead so the restarts stop.  The counter
survives restarts in a small JSON file.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Callable, Dict

logger = logging.getLogger(__name__)

EXIT_RESTART = 1
EXIT_GIVE_UP = 0


class CrashTracker:
    def __init__(
        self,
        state_path: str,
        *,
        max_consecutive: int = 5,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.state_path = Path(state_path)
        self.max_consecutive = max_consecutive
        self.window_seconds = window_seconds
        self.clock = clock

    def _load(self) -> Dict[str, float]:
        if not self.state_path.exists():
            return {"count": 0, "last_crash": 0.0}
        try:
            with self.state_path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError):
            logger.warning("Unreadable crash state at %s; starting from zero", self.state_path, exc_info=True)
            return {"count": 0, "last_crash": 0.0}
        if not isinstance(data, dict):
            logger.warning("Crash state at %s is not an object; starting from zero", self.state_path)
            return {"count": 0, "last_crash": 0.0}
        try:
            return {"count": int(data.get("count", 0)), "last_crash": float(data.get("last_crash", 0.0))}
        except (TypeError, ValueError):
            logger.warning("Malformed crash state at %s; starting from zero", self.state_path)
            return {"count": 0, "last_crash": 0.0}

    def _save(self, state: Dict[str, float]) -> None:
        with self.state_path.open("w", encoding="utf-8") as f:
            json.dump(state, f)

    def record_crash(self, error: BaseException, origin: str) -> int:
        """Record a crash and return the exit code the process should use."""
        logger.critical("Critical error (%s)", origin, exc_info=error)
        state = self._load()
        now = self.clock()
        if now - state["last_crash"] > self.window_seconds:
            state["count"] = 0
        state["count"] += 1
        state["last_crash"] = now
        self._save(state)

        logger.critical("Consecutive crash count: %d/%d", state["count"], self.max_consecutive)
        if state["count"] >= self.max_consecutive:
            logger.critical("Crash limit reached; exiting with code %d so the bot is not restarted", EXIT_GIVE_UP)
            return EXIT_GIVE_UP
        logger.critical("Exiting with code %d for a restart", EXIT_RESTART)
        return EXIT_RESTART

    def reset(self) -> None:
        """Forget earlier crashes after a successful start."""
        if self.state_path.exists():
            self._save({"count": 0, "last_crash": 0.0})
