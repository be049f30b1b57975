"""Domain models for the live vote board."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class Direction(str, Enum):
    """Trend of the average relative to the value shown before."""

    INCREASING = "increasing"
    DECREASING = "decreasing"
    UNCHANGED = "unchanged"


class RevealPhase(str, Enum):
    """Phases of a reveal session."""

    IDLE = "idle"
    SUSPENSE = "suspense"
    REVEALING = "revealing"


class EqualAveragePolicy(str, Enum):
    """Direction to report when a refresh lands on the same average."""

    UNCHANGED = "unchanged"
    INCREASING = "increasing"


@dataclass(frozen=True)
class PerformanceUnit:
    """A scheduled group being rated."""

    id: str
    name: str
    theme: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name, "theme": self.theme}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PerformanceUnit":
        return cls(id=data["id"], name=data["name"], theme=data.get("theme", ""))


@dataclass(frozen=True)
class RatingRecord:
    """A single persisted rating submission."""

    id: str
    group_id: str
    rating: int
    submitted_at: datetime
    participant_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "group_id": self.group_id,
            "participant_id": self.participant_id,
            "rating": self.rating,
            "submitted_at": self.submitted_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RatingRecord":
        return cls(
            id=data["id"],
            group_id=data["group_id"],
            rating=int(data["rating"]),
            submitted_at=datetime.fromisoformat(data["submitted_at"]),
            participant_id=data.get("participant_id"),
        )


@dataclass(frozen=True)
class AggregateState:
    """Aggregate of every known rating for one group.

    Rebuilt from the full record set on each refresh. ``average`` is
    ``sum / count`` to one decimal with halves rounded up, or ``0.0`` when
    there are no ratings. ``previous_displayed_average`` is the average this
    state puts on the board, so it always equals ``average`` once computed and
    becomes the baseline the next refresh derives its direction from. It is
    None only on the empty state that precedes the first computation.
    """

    group_id: str
    count: int = 0
    sum: int = 0
    average: float = 0.0
    previous_displayed_average: float | None = None
    direction: Direction = Direction.UNCHANGED

    @classmethod
    def empty(cls, group_id: str) -> "AggregateState":
        return cls(group_id=group_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "group_id": self.group_id,
            "count": self.count,
            "sum": self.sum,
            "average": self.average,
            "previous_displayed_average": self.previous_displayed_average,
            "direction": self.direction.value,
        }


@dataclass
class RevealSession:
    """One in-flight reveal, owned by the sequencer.

    The timer and task handles belong to this session alone so that
    superseding or tearing it down cancels everything it scheduled.
    """

    session_id: int
    participant_name: str
    phase: RevealPhase = RevealPhase.SUSPENSE
    suspense_deadline: float = 0.0
    suspense_timer: Any = None
    refresh_task: Any = None
    label_timer: Any = None


@dataclass(frozen=True)
class DisplayFrame:
    """Everything the presentation layer needs to render the board."""

    group: PerformanceUnit | None
    average: float = 0.0
    count: int = 0
    direction: Direction = Direction.UNCHANGED
    suspense_active: bool = False
    pending_participant_name: str | None = None
    animate_from: float | None = None
    animation_duration: float = 0.0
    phase: RevealPhase = RevealPhase.IDLE

    def to_dict(self) -> dict[str, Any]:
        return {
            "group": self.group.to_dict() if self.group else None,
            "average": self.average,
            "count": self.count,
            "direction": self.direction.value,
            "suspense_active": self.suspense_active,
            "pending_participant_name": self.pending_participant_name,
            "animate_from": self.animate_from,
            "animation_duration": self.animation_duration,
            "phase": self.phase.value,
        }
