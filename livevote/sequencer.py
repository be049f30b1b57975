"""Reveal sequencing for incoming votes.

Each accepted notification opens a reveal session that walks
``suspense -> revealing -> idle``:

1. suspense: the voter's name is shown while the numbers stay hidden, and a
   suspense timer is armed.
2. revealing: on expiry the aggregate is refreshed from the full record set
   and the board is told to count up (or down) to the new average.
3. idle: after the label-clear delay the voter's name is removed; the
   numbers stay settled.

A notification arriving while a session is active supersedes it. The old
session's timers and its pending refresh are cancelled together and the
suspense window restarts, so a burst of votes collapses into exactly one
refresh. The refresh always reads the full record set, so the coalesced
votes are all counted.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Coroutine

from . import config
from .aggregation import AggregationEngine
from .config import ANONYMOUS_PARTICIPANT, MAX_RATING, REVEAL_START_OFFSET, RevealTimings
from .logging_config import log_context
from .models import (
    AggregateState,
    Direction,
    DisplayFrame,
    PerformanceUnit,
    RatingRecord,
    RevealPhase,
    RevealSession,
)
from .ports import Display
from .scheduler import LoopScheduler, Scheduler
from .telemetry import trace_span

logger = logging.getLogger(__name__)

NameResolver = Callable[[str], Awaitable[str]]


def reveal_start_value(state: AggregateState, offset: float = REVEAL_START_OFFSET) -> float | None:
    """
    Pick the value a reveal animation starts from.

    Increasing averages start below the new value and decreasing ones above
    it, so the transition reads as a climb or a fall. Unchanged averages are
    not animated.

    Returns:
        Start value, or None when no animation should run
    """
    if state.direction == Direction.INCREASING:
        return round(max(0.0, state.average - offset), 1)
    if state.direction == Direction.DECREASING:
        return round(min(float(MAX_RATING), state.average + offset), 1)
    return None


class RevealSequencer:
    """Drives reveal sessions for one active group.

    All state is touched from the event loop only. Timers are scheduled
    through ``scheduler`` and every spawned task is tracked, so ``close()``
    leaves nothing behind.
    """

    def __init__(
        self,
        group: PerformanceUnit,
        engine: AggregationEngine,
        resolve_name: NameResolver,
        display: Display,
        *,
        initial: AggregateState | None = None,
        timings: RevealTimings | None = None,
        scheduler: Scheduler | None = None,
        name_lookup_timeout: float | None = None,
    ) -> None:
        self.group = group
        self.engine = engine
        self.timings = timings or config.get_reveal_timings()
        self._resolve_name = resolve_name
        self._display = display
        self._scheduler = scheduler or LoopScheduler()
        self._name_lookup_timeout = (
            name_lookup_timeout if name_lookup_timeout is not None else config.NAME_LOOKUP_TIMEOUT
        )
        self._aggregate = initial or AggregateState.empty(group.id)
        self._session: RevealSession | None = None
        self._arrivals = 0
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def phase(self) -> RevealPhase:
        return self._session.phase if self._session else RevealPhase.IDLE

    @property
    def session(self) -> RevealSession | None:
        return self._session

    @property
    def aggregate(self) -> AggregateState:
        """Last successfully computed aggregate."""
        return self._aggregate

    @property
    def closed(self) -> bool:
        return self._closed

    def on_notification(self, record: RatingRecord) -> None:
        """Change-feed callback; hands the record to ``notify`` on the loop."""
        if self._closed:
            return
        self._spawn(self.notify(record))

    async def notify(self, record: RatingRecord) -> None:
        """
        Start a reveal session for a new vote, superseding any active one.

        Args:
            record: The rating record announced by the change feed
        """
        if self._closed:
            return

        self._arrivals += 1
        ticket = self._arrivals

        name = await self._lookup_name(record)

        if self._closed:
            return
        if ticket != self._arrivals:
            logger.debug(
                "Dropping notification superseded during name lookup. GroupId: %s, RecordId: %s",
                self.group.id, record.id,
            )
            return

        self._start_session(ticket, name)

    def current_frame(self) -> DisplayFrame:
        """Frame describing what the board should show right now."""
        session = self._session
        return self._frame(
            suspense_active=session is not None and session.phase == RevealPhase.SUSPENSE,
            name=session.participant_name if session else None,
            phase=session.phase if session else RevealPhase.IDLE,
        )

    def close(self) -> None:
        """Cancel every pending timer and task. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True

        if self._session is not None:
            self._cancel_session(self._session)
            self._session = None

        for task in list(self._tasks):
            task.cancel()

        logger.debug("Closed reveal sequencer. GroupId: %s", self.group.id)

    async def aclose(self) -> None:
        """Close and wait for cancelled tasks to finish unwinding."""
        self.close()
        await self.settle()

    async def settle(self) -> None:
        """Wait until no spawned task is running."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def _lookup_name(self, record: RatingRecord) -> str:
        if not record.participant_id:
            logger.info(
                "Vote carries no participant reference. GroupId: %s, RecordId: %s",
                self.group.id, record.id,
            )
            return ANONYMOUS_PARTICIPANT

        try:
            return await asyncio.wait_for(
                self._resolve_name(record.participant_id),
                timeout=self._name_lookup_timeout,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(
                "Participant name lookup failed, showing anonymous. ParticipantId: %s, Error: %r",
                record.participant_id, e,
            )
            return ANONYMOUS_PARTICIPANT

    def _start_session(self, ticket: int, name: str) -> None:
        previous = self._session
        if previous is not None:
            superseded_phase = previous.phase
            self._cancel_session(previous)
            logger.info(
                "Superseded reveal session. GroupId: %s, SessionId: %d, Phase: %s",
                self.group.id, previous.session_id, superseded_phase.value,
            )

        delay = self.timings.suspense_delay
        session = RevealSession(
            session_id=ticket,
            participant_name=name,
            phase=RevealPhase.SUSPENSE,
            suspense_deadline=self._scheduler.time() + delay,
        )
        session.suspense_timer = self._scheduler.call_later(
            delay, self._on_suspense_elapsed, session
        )
        self._session = session

        logger.info(
            "Reveal suspense started. GroupId: %s, SessionId: %d, Participant: %s",
            self.group.id, session.session_id, name,
        )
        self._publish(self._frame(suspense_active=True, name=name, phase=RevealPhase.SUSPENSE))

    def _on_suspense_elapsed(self, session: RevealSession) -> None:
        session.suspense_timer = None
        if self._closed or session is not self._session:
            return
        session.phase = RevealPhase.REVEALING
        session.refresh_task = self._spawn(self._reveal(session))

    async def _reveal(self, session: RevealSession) -> None:
        with log_context(session_id=session.session_id), trace_span(
            "reveal", self.group.id, session_id=session.session_id
        ) as span:
            try:
                state = await self.engine.refresh(self.group.id)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(
                    "Aggregate refresh failed, keeping last good values. GroupId: %s, SessionId: %d",
                    self.group.id, session.session_id,
                )
                state = None
            finally:
                session.refresh_task = None
            span.set_attributes({"refreshed": state is not None})

        if self._closed or session is not self._session:
            return

        if state is None:
            frame = self._frame(name=session.participant_name, phase=RevealPhase.REVEALING)
        else:
            self._aggregate = state
            frame = self._frame(
                name=session.participant_name,
                phase=RevealPhase.REVEALING,
                animate_from=reveal_start_value(state),
                direction=state.direction,
            )
            logger.info(
                "Revealed aggregate. GroupId: %s, SessionId: %d, Count: %d, Average: %.1f, Direction: %s",
                self.group.id, session.session_id, state.count, state.average, state.direction.value,
            )

        session.label_timer = self._scheduler.call_later(
            self.timings.label_clear_delay, self._on_label_clear, session
        )
        self._publish(frame)

    def _on_label_clear(self, session: RevealSession) -> None:
        session.label_timer = None
        if self._closed or session is not self._session:
            return
        session.phase = RevealPhase.IDLE
        self._session = None
        self._publish(self._frame())

    def _cancel_session(self, session: RevealSession) -> None:
        for attr in ("suspense_timer", "label_timer", "refresh_task"):
            handle = getattr(session, attr)
            if handle is not None:
                handle.cancel()
                setattr(session, attr, None)
        session.phase = RevealPhase.IDLE

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _frame(
        self,
        *,
        suspense_active: bool = False,
        name: str | None = None,
        phase: RevealPhase = RevealPhase.IDLE,
        animate_from: float | None = None,
        direction: Direction = Direction.UNCHANGED,
    ) -> DisplayFrame:
        return DisplayFrame(
            group=self.group,
            average=self._aggregate.average,
            count=self._aggregate.count,
            direction=direction,
            suspense_active=suspense_active,
            pending_participant_name=name,
            animate_from=animate_from,
            animation_duration=self.timings.reveal_duration if animate_from is not None else 0.0,
            phase=phase,
        )

    def _publish(self, frame: DisplayFrame) -> None:
        try:
            self._display(frame)
        except Exception:
            logger.exception("Display rejected frame. GroupId: %s", self.group.id)
