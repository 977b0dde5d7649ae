import asyncio
import time

import pytest

from stream_relay.renderer import CommitOutcome, CommitResult


class FakeSink:
    """Records edits; replays queued results, then succeeds."""

    def __init__(self, results=None, *, update_delay=0.0):
        self.results = list(results or [])
        self.update_delay = update_delay
        self.created = []
        self.updates = []
        self.replies = []
        self.commit_times = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def create(self, text):
        self.created.append(text)
        return 100 + len(self.created)

    async def update(self, handle, text):
        self.updates.append(text)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.update_delay:
                await asyncio.sleep(self.update_delay)
        finally:
            self.in_flight -= 1
        result = self.results.pop(0) if self.results else CommitResult(CommitOutcome.OK)
        if isinstance(result, Exception):
            raise result
        if result.outcome in (CommitOutcome.OK, CommitOutcome.NOT_MODIFIED):
            self.commit_times.append(time.monotonic())
        return result

    async def reply(self, text):
        self.replies.append(text)


@pytest.fixture
def sink_factory():
    return FakeSink
