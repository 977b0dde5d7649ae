"""Project a live stream of text fragments onto a single editable chat message.

The remote message may only be edited so often, so fragments are coalesced:
at most one edit is scheduled or in flight per message, an edit fires no
sooner than the throttle interval after the previous successful one, and it
always carries the latest accumulated text.  When the stream ends a final
edit is forced so the visible message converges to the full answer.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, Optional, Protocol

from .config import RenderConfig

logger = logging.getLogger(__name__)


class CommitOutcome(enum.Enum):
    OK = "ok"
    RATE_LIMITED = "rate_limited"
    NOT_MODIFIED = "not_modified"
    NOT_FOUND = "not_found"
    OTHER_ERROR = "other_error"


@dataclass(frozen=True)
class CommitResult:
    outcome: CommitOutcome
    retry_after: Optional[float] = None
    detail: str = ""


class MessageSink(Protocol):
    """A remote message that can be created once and edited afterwards."""

    async def create(self, text: str) -> Any:
        ...

    async def update(self, handle: Any, text: str) -> CommitResult:
        ...


class CommitState(enum.Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    COMMITTING = "committing"
    # Last attempt was rate limited; the next fragment (or the final flush) retries.
    BACKOFF = "backoff"


@dataclass
class RenderSession:
    handle: Any
    last_committed_text: str
    last_commit_at: float = field(default_factory=time.monotonic)
    accumulated_text: str = ""
    state: CommitState = CommitState.IDLE
    terminal: bool = False
    not_before: float = 0.0
    timer: Optional["asyncio.Task[None]"] = None
    commits: int = 0

    @property
    def final_text(self) -> str:
        return self.accumulated_text.strip()


class StreamRenderer:
    """Stream fragments into a message through a :class:`MessageSink`."""

    def __init__(self, sink: MessageSink, config: Optional[RenderConfig] = None) -> None:
        self.sink = sink
        self.config = config or RenderConfig()

    async def render(self, handle: Any, source: AsyncIterable[str]) -> str:
        """Consume ``source`` into the message ``handle`` and return the trimmed text."""
        session = await self.run(handle, source)
        return session.final_text

    async def run(self, handle: Any, source: AsyncIterable[str]) -> RenderSession:
        session = RenderSession(handle=handle, last_committed_text=self.config.placeholder)
        try:
            try:
                async for fragment in source:
                    if not fragment:
                        continue
                    session.accumulated_text += fragment
                    if not session.terminal and session.state in (CommitState.IDLE, CommitState.BACKOFF):
                        self._schedule(session)
            except Exception:
                logger.exception("Fragment source failed for message %s", session.handle)
                session.accumulated_text += self.config.error_marker
                await self._flush(session)
                return session

            await self._flush(session)
            return session
        finally:
            if session.timer is not None and not session.timer.done():
                session.timer.cancel()

    def _schedule(self, session: RenderSession) -> None:
        now = time.monotonic()
        delay = max(
            0.0,
            self.config.throttle_interval - (now - session.last_commit_at),
            session.not_before - now,
        )
        session.state = CommitState.SCHEDULED
        session.timer = asyncio.ensure_future(self._fire_after(session, delay))

    async def _fire_after(self, session: RenderSession, delay: float) -> None:
        await asyncio.sleep(delay)
        await self._attempt(session)

    async def _flush(self, session: RenderSession) -> None:
        """Settle any scheduled or in-flight edit, then make one last synchronous attempt."""
        timer, session.timer = session.timer, None
        if timer is not None and not timer.done():
            if session.state is CommitState.SCHEDULED:
                timer.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await timer
                session.state = CommitState.IDLE
            else:
                await timer

        if session.terminal:
            logger.debug("Message %s is gone; skipping final edit", session.handle)
            return
        await self._attempt(session)

    async def _attempt(self, session: RenderSession) -> None:
        text = session.final_text
        if session.terminal or not text or text == session.last_committed_text:
            session.state = CommitState.IDLE
            return

        session.state = CommitState.COMMITTING
        try:
            result = await self.sink.update(session.handle, text)
        except Exception as exc:
            logger.exception("Unexpected failure editing message %s", session.handle)
            result = CommitResult(CommitOutcome.OTHER_ERROR, detail=str(exc))

        outcome = result.outcome
        if outcome in (CommitOutcome.OK, CommitOutcome.NOT_MODIFIED):
            if outcome is CommitOutcome.NOT_MODIFIED:
                logger.debug("Message %s already shows this text", session.handle)
            session.last_committed_text = text
            session.last_commit_at = time.monotonic()
            session.commits += 1
            session.state = CommitState.IDLE
        elif outcome is CommitOutcome.RATE_LIMITED:
            logger.warning(
                "Rate limited editing message %s (retry after %s); the next update will retry",
                session.handle,
                result.retry_after,
            )
            if result.retry_after:
                session.not_before = time.monotonic() + result.retry_after
            session.state = CommitState.BACKOFF
        elif outcome is CommitOutcome.NOT_FOUND:
            logger.error("Message %s no longer exists; no further edits", session.handle)
            session.terminal = True
            session.state = CommitState.IDLE
        else:
            logger.error("Failed to edit message %s: %s", session.handle, result.detail)
            session.state = CommitState.IDLE
