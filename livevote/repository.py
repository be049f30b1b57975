"""VoteRepository adapter over the JSON storage module."""

from datetime import date
from types import ModuleType
from typing import Sequence

from .models import PerformanceUnit, RatingRecord


class StorageRepository:
    """Serves the board's reads from ``livevote.storage``.

    Args:
        storage: Storage module (defaults to livevote.storage). Injectable for testing.
    """

    def __init__(self, storage: ModuleType | None = None) -> None:
        if storage is None:
            from . import storage as _storage
            storage = _storage
        self.storage = storage

    async def resolve_active_group(self, day: date) -> PerformanceUnit | None:
        return self.storage.get_scheduled_group(day)

    async def fetch_ratings(self, group_id: str) -> Sequence[RatingRecord]:
        return self.storage.list_votes(group_id)

    async def resolve_participant_name(self, participant_id: str) -> str:
        return self.storage.resolve_participant_name(participant_id)
