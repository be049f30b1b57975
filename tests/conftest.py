"""Shared test fixtures and configuration.

Points the data directory at a throwaway location before any livevote
modules are imported, so importing the app never touches real data.
"""

import os
import tempfile
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

# Set env vars BEFORE any livevote imports happen.
# pytest loads conftest.py before test modules, so this runs first.
os.environ.setdefault("LIVEVOTE_DATA_DIR", tempfile.mkdtemp(prefix="livevote-test-"))

from livevote import config  # noqa: E402
from livevote.models import RatingRecord  # noqa: E402
from livevote.storage import UnknownParticipantError  # noqa: E402


@pytest.fixture(autouse=True)
def data_dir(tmp_path, monkeypatch):
    """Give every test its own data directory and user config file."""
    monkeypatch.setattr(config, "DATA_BASE_DIR", str(tmp_path))
    monkeypatch.setattr(config, "USER_CONFIG_FILE", str(tmp_path / "user_config.json"))
    return tmp_path


class FakeTimer:
    """Timer handle returned by FakeScheduler."""

    def __init__(self, when: float, callback: Callable[..., Any], args: tuple) -> None:
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual clock. Timers fire only when the test calls ``advance``."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: list[FakeTimer] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> FakeTimer:
        timer = FakeTimer(self.now + delay, callback, args)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due timers in order."""
        target = self.now + seconds
        while True:
            due = [t for t in self.pending if t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.now = timer.when
            timer.fired = True
            timer.callback(*timer.args)
        self.now = target


class FakeRepository:
    """In-memory VoteRepository with call counting and failure switches."""

    def __init__(self, group=None, names: dict[str, str] | None = None) -> None:
        self.group = group
        self.names = dict(names or {})
        self.ratings: dict[str, list[RatingRecord]] = defaultdict(list)
        self.fetch_calls = 0
        self.fetch_error: Exception | None = None
        self._clock = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def add(self, group_id: str, rating: int, participant_id: str | None = None) -> RatingRecord:
        """Store a rating and return its record, as an insert would."""
        self._clock += timedelta(seconds=1)
        record = RatingRecord(
            id=f"r{sum(len(v) for v in self.ratings.values()) + 1}",
            group_id=group_id,
            rating=rating,
            submitted_at=self._clock,
            participant_id=participant_id,
        )
        self.ratings[group_id].append(record)
        return record

    async def resolve_active_group(self, day):
        return self.group

    async def fetch_ratings(self, group_id: str) -> list[RatingRecord]:
        self.fetch_calls += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        return list(self.ratings[group_id])

    async def resolve_participant_name(self, participant_id: str) -> str:
        if participant_id not in self.names:
            raise UnknownParticipantError(participant_id)
        return self.names[participant_id]


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository(names={"e1": "Alice", "e2": "Budi", "e3": "Citra"})
