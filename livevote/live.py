"""Live board controller: group lifecycle and frame fan-out.

The board owns one reveal sequencer and one feed subscription for the group
active today. Switching groups or unmounting tears both down before anything
new is created, so no timer, task or callback from an old group can reach
the display.
"""

import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Any

from .aggregation import AggregationEngine
from .config import RevealTimings, get_equal_average_policy, get_reveal_timings
from .feed import ChangeFeedListener, SubscriptionError
from .logging_config import set_active_group
from .models import AggregateState, DisplayFrame, EqualAveragePolicy, PerformanceUnit
from .ports import ChangeFeedSource, VoteRepository
from .scheduler import Scheduler
from .sequencer import RevealSequencer

logger = logging.getLogger(__name__)


def today_utc() -> date:
    """Today's date in UTC, the calendar the schedule is keyed on."""
    return datetime.now(timezone.utc).date()


class LiveBoard:
    """Mounts the display for today's group and keeps it in sync."""

    def __init__(
        self,
        repository: VoteRepository,
        feed: ChangeFeedSource,
        *,
        timings: RevealTimings | None = None,
        scheduler: Scheduler | None = None,
        policy: EqualAveragePolicy | None = None,
    ) -> None:
        self.repository = repository
        self.feed = feed
        self._timings = timings
        self._scheduler = scheduler
        self._policy = policy
        self._engine: AggregationEngine | None = None
        self._sequencer: RevealSequencer | None = None
        self._listener: ChangeFeedListener | None = None
        self._group: PerformanceUnit | None = None
        self._frame = DisplayFrame(group=None)
        self._queues: set[asyncio.Queue] = set()

    @property
    def group(self) -> PerformanceUnit | None:
        return self._group

    @property
    def sequencer(self) -> RevealSequencer | None:
        return self._sequencer

    @property
    def is_listening(self) -> bool:
        return self._listener is not None and self._listener.is_listening

    async def mount(self, today: date | None = None) -> None:
        """Resolve today's group and start displaying it."""
        group = await self.repository.resolve_active_group(today or today_utc())
        await self.activate(group)

    async def check_active_group(self, today: date | None = None) -> bool:
        """
        Re-resolve today's group and switch to it if it changed.

        Returns:
            True if the active group changed
        """
        group = await self.repository.resolve_active_group(today or today_utc())
        if _group_id(group) == _group_id(self._group):
            return False
        await self.activate(group)
        return True

    async def watch_active_group(self, interval: float) -> None:
        """Poll the schedule until cancelled. Resolver errors are logged and retried next tick."""
        while True:
            await asyncio.sleep(interval)
            try:
                await self.check_active_group()
            except SubscriptionError:
                # Already logged by activate; board stays idle for this group.
                continue
            except Exception:
                logger.exception("Failed to check active group")

    async def activate(self, group: PerformanceUnit | None) -> None:
        """
        Make a group the active one, tearing down the previous group first.

        Raises:
            SubscriptionError: The change feed could not be opened. The board
                shows the group's baseline and stays idle until the next
                group change or remount.
        """
        if self.is_listening and _group_id(group) == _group_id(self._group):
            return

        # Read settings before teardown; if this raises, the current group keeps running.
        timings = self._timings or get_reveal_timings()
        policy = self._policy or get_equal_average_policy()

        await self._deactivate()
        self._group = group
        set_active_group(group.id if group else None)

        if group is None:
            logger.info("No group scheduled, showing waiting screen")
            self._publish(DisplayFrame(group=None))
            return

        engine = AggregationEngine(self.repository, policy)

        try:
            baseline = await engine.refresh(group.id)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Baseline refresh failed, starting from empty. GroupId: %s", group.id)
            baseline = AggregateState.empty(group.id)

        sequencer = RevealSequencer(
            group,
            engine,
            self.repository.resolve_participant_name,
            self._publish,
            initial=baseline,
            timings=timings,
            scheduler=self._scheduler,
        )
        self._engine = engine
        self._sequencer = sequencer
        self._publish(sequencer.current_frame())

        listener = ChangeFeedListener(self.feed, sequencer.on_notification)
        try:
            listener.listen(group.id)
        except SubscriptionError:
            logger.error("Live updates unavailable for group. GroupId: %s", group.id)
            sequencer.close()
            raise
        self._listener = listener

        logger.info(
            "Activated group. GroupId: %s, Name: %s, Count: %d, Average: %.1f",
            group.id, group.name, baseline.count, baseline.average,
        )

    async def unmount(self) -> None:
        """Stop everything for the current group."""
        await self._deactivate()
        self._group = None
        set_active_group(None)

    async def _deactivate(self) -> None:
        listener, self._listener = self._listener, None
        sequencer, self._sequencer = self._sequencer, None
        engine, self._engine = self._engine, None

        if listener is not None:
            listener.close()
        if sequencer is not None:
            await sequencer.aclose()
        if engine is not None and self._group is not None:
            engine.discard(self._group.id)
        if sequencer is not None:
            logger.info("Deactivated group. GroupId: %s", sequencer.group.id)

    async def __aenter__(self) -> "LiveBoard":
        await self.mount()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.unmount()

    def snapshot(self) -> DisplayFrame:
        """Latest frame sent to the display."""
        return self._frame

    def attach(self) -> asyncio.Queue:
        """Register a display; it receives every frame published from now on."""
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.add(queue)
        return queue

    def detach(self, queue: asyncio.Queue) -> None:
        self._queues.discard(queue)

    @property
    def display_count(self) -> int:
        return len(self._queues)

    def _publish(self, frame: DisplayFrame) -> None:
        self._frame = frame
        for queue in list(self._queues):
            queue.put_nowait(frame)


def _group_id(group: PerformanceUnit | None) -> str | None:
    return group.id if group else None
