"""Port definitions for the collaborators the live board consumes."""

from datetime import date
from typing import Callable, Protocol, Sequence

from .models import DisplayFrame, PerformanceUnit, RatingRecord

Display = Callable[[DisplayFrame], None]
OnInsert = Callable[[RatingRecord], None]


class VoteRepository(Protocol):
    """Read side of the persistence collaborator."""

    async def resolve_active_group(self, day: date) -> PerformanceUnit | None:
        """Return the group scheduled for a day, if any."""

    async def fetch_ratings(self, group_id: str) -> Sequence[RatingRecord]:
        """Return every rating record currently stored for a group."""

    async def resolve_participant_name(self, participant_id: str) -> str:
        """Return a participant's display name, raising when unknown."""


class Subscription(Protocol):
    """Handle for an open change-feed subscription."""

    def close(self) -> None:
        """Stop delivery. Calling it again has no effect."""


class ChangeFeedSource(Protocol):
    """Push source of rating insert notifications."""

    def subscribe(self, group_id: str, on_insert: OnInsert) -> Subscription:
        """Deliver inserts for one group to the callback until closed."""
