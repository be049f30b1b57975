"""Tests for aggregate computation and the aggregation engine."""

import pytest

from livevote.aggregation import (
    AggregationEngine,
    compute_aggregate,
    resolve_direction,
    round_average,
)
from livevote.models import AggregateState, Direction, EqualAveragePolicy


# ---------------------------------------------------------------------------
# resolve_direction
# ---------------------------------------------------------------------------

class TestResolveDirection:
    """Tests for resolve_direction."""

    def test_first_computation_is_unchanged(self):
        """No previous average means no trend."""
        assert resolve_direction(8.0, None) == Direction.UNCHANGED

    def test_higher_average_is_increasing(self):
        assert resolve_direction(8.0, 6.0) == Direction.INCREASING

    def test_lower_average_is_decreasing(self):
        assert resolve_direction(6.0, 8.0) == Direction.DECREASING

    def test_equal_average_defaults_to_unchanged(self):
        """Ties report unchanged under the default policy."""
        assert resolve_direction(7.5, 7.5) == Direction.UNCHANGED

    def test_equal_average_increasing_policy(self):
        """Ties report increasing when the policy asks for it."""
        assert resolve_direction(7.5, 7.5, EqualAveragePolicy.INCREASING) == Direction.INCREASING

    def test_zero_previous_counts_as_a_value(self):
        """A previous average of 0.0 is a real baseline, not a missing one."""
        assert resolve_direction(8.0, 0.0) == Direction.INCREASING


# ---------------------------------------------------------------------------
# compute_aggregate
# ---------------------------------------------------------------------------

class TestComputeAggregate:
    """Tests for compute_aggregate."""

    def test_empty_set(self, repository):
        """No ratings gives zero count and a 0.0 average."""
        state = compute_aggregate("g1", [])
        assert state.count == 0
        assert state.sum == 0
        assert state.average == 0.0
        assert state.direction == Direction.UNCHANGED

    def test_average_rounds_to_one_decimal(self, repository):
        """23 / 3 displays as 7.7."""
        records = [repository.add("g1", r) for r in (7, 8, 8)]
        state = compute_aggregate("g1", records)
        assert state.count == 3
        assert state.sum == 23
        assert state.average == 7.7

    def test_exact_half_rounds_up(self, repository):
        """17 / 4 is 4.25 and displays as 4.3, not the even 4.2."""
        records = [repository.add("g1", r) for r in (4, 4, 4, 5)]
        state = compute_aggregate("g1", records)
        assert state.sum == 17
        assert state.average == 4.3

    def test_round_average_halves(self):
        assert round_average(5, 2) == 2.5
        assert round_average(1, 8) == 0.1
        assert round_average(0, 0) == 0.0

    def test_remembers_own_average_as_displayed(self, repository):
        """The next comparison baseline is the average just computed."""
        records = [repository.add("g1", 9)]
        state = compute_aggregate("g1", records, previous_displayed_average=5.0)
        assert state.previous_displayed_average == 9.0
        assert state.direction == Direction.INCREASING

    def test_direction_against_previous(self, repository):
        records = [repository.add("g1", r) for r in (8, 4)]
        state = compute_aggregate("g1", records, previous_displayed_average=8.0)
        assert state.average == 6.0
        assert state.direction == Direction.DECREASING


# ---------------------------------------------------------------------------
# AggregationEngine
# ---------------------------------------------------------------------------

class TestAggregationEngine:
    """Tests for AggregationEngine.refresh."""

    @pytest.mark.asyncio
    async def test_refresh_reads_full_record_set(self, repository):
        """Every refresh recomputes from all stored ratings."""
        engine = AggregationEngine(repository)
        repository.add("g1", 8)
        repository.add("g1", 6)

        state = await engine.refresh("g1")

        assert state.count == 2
        assert state.average == 7.0
        assert engine.state("g1") == state

    @pytest.mark.asyncio
    async def test_direction_tracks_displayed_average(self, repository):
        """Direction compares against the previous refresh's average."""
        engine = AggregationEngine(repository)

        baseline = await engine.refresh("g1")
        assert baseline.direction == Direction.UNCHANGED

        repository.add("g1", 8)
        first = await engine.refresh("g1")
        assert first.average == 8.0
        assert first.direction == Direction.INCREASING

        repository.add("g1", 4)
        second = await engine.refresh("g1")
        assert second.average == 6.0
        assert second.direction == Direction.DECREASING

    @pytest.mark.asyncio
    async def test_displayed_average_is_the_new_average(self, repository):
        """After a refresh the stored baseline is the average now on the board."""
        engine = AggregationEngine(repository)
        assert AggregateState.empty("g1").previous_displayed_average is None

        repository.add("g1", 8)
        first = await engine.refresh("g1")
        repository.add("g1", 5)
        second = await engine.refresh("g1")

        assert first.previous_displayed_average == 8.0
        assert second.to_dict()["previous_displayed_average"] == 6.5
        assert second.to_dict()["average"] == 6.5
        assert second.direction == Direction.DECREASING

    @pytest.mark.asyncio
    async def test_repeated_refresh_is_idempotent(self, repository):
        """Two refreshes over an unchanged set produce identical states."""
        engine = AggregationEngine(repository)
        repository.add("g1", 8)
        await engine.refresh("g1")

        first = await engine.refresh("g1")
        second = await engine.refresh("g1")

        assert first == second
        assert second.direction == Direction.UNCHANGED

    @pytest.mark.asyncio
    async def test_equal_average_policy_applies(self, repository):
        """A new vote that keeps the average equal follows the engine policy."""
        engine = AggregationEngine(repository, EqualAveragePolicy.INCREASING)
        repository.add("g1", 8)
        await engine.refresh("g1")

        repository.add("g1", 8)
        state = await engine.refresh("g1")

        assert state.count == 2
        assert state.direction == Direction.INCREASING

    @pytest.mark.asyncio
    async def test_fetch_error_leaves_state_untouched(self, repository):
        """A failed refresh propagates and keeps the last good state."""
        engine = AggregationEngine(repository)
        repository.add("g1", 8)
        good = await engine.refresh("g1")

        repository.fetch_error = RuntimeError("database unavailable")
        with pytest.raises(RuntimeError):
            await engine.refresh("g1")

        assert engine.state("g1") == good

    @pytest.mark.asyncio
    async def test_discard_forgets_group(self, repository):
        engine = AggregationEngine(repository)
        await engine.refresh("g1")

        engine.discard("g1")
        engine.discard("g1")

        assert engine.state("g1") is None

    def test_empty_state(self):
        state = AggregateState.empty("g1")
        assert state.previous_displayed_average is None
        assert state.to_dict()["direction"] == "unchanged"
