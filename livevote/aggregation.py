"""Aggregate computation for a group's ratings.

Every refresh re-reads the complete record set and recomputes from scratch.
Nothing is patched incrementally, so a missed or duplicated notification can
never skew the count or the average.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from .models import AggregateState, Direction, EqualAveragePolicy, RatingRecord
from .ports import VoteRepository
from .telemetry import trace_span

logger = logging.getLogger(__name__)


def resolve_direction(
    new_average: float,
    previous_average: float | None,
    policy: EqualAveragePolicy = EqualAveragePolicy.UNCHANGED,
) -> Direction:
    """
    Derive the trend of a new average against the one shown before.

    Args:
        new_average: Freshly computed average
        previous_average: Average displayed before, or None on the first computation
        policy: Direction to report when both averages are equal

    Returns:
        Direction of the change; the first computation is always UNCHANGED
    """
    if previous_average is None:
        return Direction.UNCHANGED
    if new_average > previous_average:
        return Direction.INCREASING
    if new_average < previous_average:
        return Direction.DECREASING
    if policy == EqualAveragePolicy.INCREASING:
        return Direction.INCREASING
    return Direction.UNCHANGED


def round_average(total: int, count: int) -> float:
    """Average to one decimal, halves rounded up (17 / 4 shows 4.3)."""
    if count == 0:
        return 0.0
    average = Decimal(total) / Decimal(count)
    return float(average.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def compute_aggregate(
    group_id: str,
    records: Iterable[RatingRecord],
    previous_displayed_average: float | None = None,
    policy: EqualAveragePolicy = EqualAveragePolicy.UNCHANGED,
) -> AggregateState:
    """
    Compute count, sum, average and direction from a full record set.

    The returned state remembers its own average as the displayed value that
    the next computation compares against.

    Args:
        group_id: Group the records belong to
        records: Every rating record currently known for the group
        previous_displayed_average: Average shown before this computation
        policy: Tie-break for equal averages

    Returns:
        A new AggregateState
    """
    ratings = [record.rating for record in records]
    count = len(ratings)
    total = sum(ratings)
    average = round_average(total, count)

    return AggregateState(
        group_id=group_id,
        count=count,
        sum=total,
        average=average,
        previous_displayed_average=average,
        direction=resolve_direction(average, previous_displayed_average, policy),
    )


class AggregationEngine:
    """Owns the authoritative AggregateState of each active group."""

    def __init__(
        self,
        repository: VoteRepository,
        policy: EqualAveragePolicy = EqualAveragePolicy.UNCHANGED,
    ) -> None:
        self.repository = repository
        self.policy = policy
        self._states: dict[str, AggregateState] = {}

    def state(self, group_id: str) -> AggregateState | None:
        return self._states.get(group_id)

    def discard(self, group_id: str) -> None:
        """Forget a group's state when it stops being active."""
        self._states.pop(group_id, None)

    async def refresh(self, group_id: str) -> AggregateState:
        """
        Re-fetch every rating for a group and rebuild its aggregate.

        Fetch errors propagate and leave the stored state untouched.

        Args:
            group_id: Group to refresh

        Returns:
            The new AggregateState
        """
        with trace_span("aggregate.refresh", group_id) as span:
            records = await self.repository.fetch_ratings(group_id)

            previous = self._states.get(group_id)
            previous_average = previous.previous_displayed_average if previous else None

            state = compute_aggregate(group_id, records, previous_average, self.policy)
            self._states[group_id] = state

            span.set_attributes({
                "count": state.count,
                "average": state.average,
                "direction": state.direction.value,
            })

        logger.debug(
            "Refreshed aggregate. GroupId: %s, Count: %d, Average: %.1f, Direction: %s",
            group_id, state.count, state.average, state.direction.value,
        )
        return state
