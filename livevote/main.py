"""FastAPI backend for the live vote board."""

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from . import config, storage
from .config import (
    MAX_RATING,
    MIN_RATING,
    get_equal_average_policy,
    get_reveal_timings,
    reload_config,
    update_reveal_timings,
)
from .feed import ChangeFeed, SubscriptionError
from .live import LiveBoard, today_utc
from .logging_config import set_correlation_id, setup_logging
from .models import DisplayFrame
from .repository import StorageRepository
from .shutdown import shutdown_coordinator
from .telemetry import instrument_fastapi, setup_telemetry
from .version import get_build_info, uptime_seconds

logger = logging.getLogger(__name__)

# Seconds between SSE keepalive comments on an idle live stream
LIVE_KEEPALIVE_SECONDS = 15.0

feed = ChangeFeed()
board = LiveBoard(StorageRepository(), feed)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Mount the board for today's group and tear it down on shutdown."""
    setup_logging()

    try:
        await board.mount()
    except SubscriptionError:
        logger.error("Board mounted without live updates")
    except Exception:
        logger.exception("Failed to mount board, will retry on next schedule check")

    watch_task = asyncio.create_task(board.watch_active_group(config.GROUP_POLL_INTERVAL))
    try:
        yield
    finally:
        shutdown_coordinator.initiate_shutdown()
        watch_task.cancel()
        try:
            await watch_task
        except asyncio.CancelledError:
            pass
        await board.unmount()


app = FastAPI(title="Live Vote Board API", lifespan=lifespan)

# Enable CORS for local development (when running a frontend separately)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_telemetry()
instrument_fastapi(app)


@app.middleware("http")
async def correlation_id_middleware(request: Request, call_next):
    """Tag each request's log lines with a correlation id."""
    correlation_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    set_correlation_id(correlation_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = correlation_id
    return response


class SubmitVoteRequest(BaseModel):
    """Request to submit a rating for today's group."""
    participant_id: str = Field(..., min_length=1)
    rating: int = Field(..., ge=MIN_RATING, le=MAX_RATING)


class UpdateTimingsRequest(BaseModel):
    """Request to override reveal timings."""
    suspense_delay: Optional[float] = Field(default=None, ge=0)
    reveal_duration: Optional[float] = Field(default=None, ge=0)
    label_clear_delay: Optional[float] = Field(default=None, ge=0)


class EmployeeName(BaseModel):
    """Employee entry for the voting form."""
    id: str
    name: str


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": "Live Vote Board API"}


@app.get("/api/version")
async def get_version():
    """Get build and version information."""
    return {**get_build_info().to_dict(), "uptime_seconds": uptime_seconds()}


@app.get("/api/config")
async def get_config():
    """Get the reveal configuration in effect."""
    return {
        "reveal_timings": get_reveal_timings().to_dict(),
        "equal_average_policy": get_equal_average_policy().value,
        "group_poll_interval": config.GROUP_POLL_INTERVAL,
        "rating_range": {"min": MIN_RATING, "max": MAX_RATING},
    }


@app.post("/api/config")
async def update_config(request: UpdateTimingsRequest):
    """Override reveal timings. Applies from the next group activation."""
    timings = update_reveal_timings(
        suspense_delay=request.suspense_delay,
        reveal_duration=request.reveal_duration,
        label_clear_delay=request.label_clear_delay,
    )
    return {"status": "ok", "reveal_timings": timings.to_dict()}


@app.post("/api/config/reload")
async def reload_config_endpoint():
    """Reload configuration from .env and config files."""
    return reload_config()


@app.get("/api/groups/active")
async def get_active_group():
    """Get the group scheduled for today."""
    group = storage.get_scheduled_group(today_utc())
    return {"group": group.to_dict() if group else None}


@app.get("/api/employees", response_model=List[EmployeeName])
async def list_employee_names():
    """List employee names for the voting form, ordered by name."""
    return [{"id": e["id"], "name": e["name"]} for e in storage.list_employees()]


@app.post("/api/votes", status_code=201)
async def submit_vote(request: SubmitVoteRequest) -> Dict[str, Any]:
    """Store a vote for today's group and announce it on the change feed."""
    group = storage.get_scheduled_group(today_utc())
    if group is None:
        raise HTTPException(status_code=400, detail="No group scheduled for today")

    try:
        record = storage.add_vote(group.id, request.participant_id, request.rating)
    except storage.VoteRejected as e:
        raise HTTPException(status_code=400, detail=str(e))

    delivered = feed.publish(record)
    logger.info(
        "Vote submitted. GroupId: %s, RecordId: %s, Rating: %d, Subscribers: %d",
        group.id, record.id, record.rating, delivered,
    )
    return record.to_dict()


@app.get("/api/groups/active/voters")
async def list_active_group_voters():
    """List who has voted for today's group, newest first."""
    group = storage.get_scheduled_group(today_utc())
    if group is None:
        return {"group": None, "voters": []}
    return {"group": group.to_dict(), "voters": storage.list_voter_names(group.id)}


@app.get("/api/voters/pending")
async def list_pending_voters():
    """List employees who have not voted today."""
    pending = storage.list_pending_employees(today_utc())
    return {"pending": [e["name"] for e in pending]}


@app.get("/api/live/state")
async def get_live_state():
    """Get the frame currently shown on the board."""
    return board.snapshot().to_dict()


def _frame_event(frame: DisplayFrame) -> str:
    return f"data: {json.dumps({'type': 'frame', 'data': frame.to_dict()})}\n\n"


@app.get("/api/live/stream")
async def stream_live_board():
    """Stream board frames as Server-Sent Events.

    The current frame is sent first, then every frame the sequencer publishes.
    """
    async def live_event_generator():
        queue = board.attach()
        try:
            with shutdown_coordinator.display_connected():
                yield _frame_event(board.snapshot())
                while True:
                    frame = await shutdown_coordinator.next_frame(queue, LIVE_KEEPALIVE_SECONDS)
                    if shutdown_coordinator.is_shutting_down:
                        yield shutdown_coordinator.goodbye_event()
                        return
                    if frame is None:
                        yield ": keepalive\n\n"
                        continue
                    yield _frame_event(frame)
        finally:
            board.detach(queue)

    return StreamingResponse(
        live_event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
