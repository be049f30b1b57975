"""API client for the live vote scoreboard."""

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import httpx


@dataclass
class BoardFrame:
    """One frame of the live board as sent by the server."""

    group_name: str | None
    group_theme: str
    average: float
    count: int
    direction: str
    suspense_active: bool
    pending_participant_name: str | None
    animate_from: float | None
    animation_duration: float

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BoardFrame":
        group = data.get("group") or {}
        return cls(
            group_name=group.get("name"),
            group_theme=group.get("theme", ""),
            average=float(data.get("average", 0.0)),
            count=int(data.get("count", 0)),
            direction=data.get("direction", "unchanged"),
            suspense_active=bool(data.get("suspense_active", False)),
            pending_participant_name=data.get("pending_participant_name"),
            animate_from=data.get("animate_from"),
            animation_duration=float(data.get("animation_duration", 0.0)),
        )


class LiveVoteAPI:
    """Client for the live vote board API."""

    def __init__(
        self,
        base_url: str = "http://localhost:8001",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.client = httpx.AsyncClient(base_url=base_url, timeout=None, transport=transport)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def get_state(self) -> BoardFrame:
        """Get the frame currently on the board."""
        response = await self.client.get("/api/live/state")
        response.raise_for_status()
        return BoardFrame.from_dict(response.json())

    async def stream_frames(self) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        """Follow the live stream.

        Yields tuples of (event_type, event_data). Keepalive comments and
        malformed lines are skipped.
        """
        async with self.client.stream("GET", "/api/live/stream") as response:
            response.raise_for_status()
            async for line in response.aiter_lines():
                if line.startswith("data: "):
                    data = line[6:]
                    try:
                        event = json.loads(data)
                        yield event.get("type", "unknown"), event
                    except json.JSONDecodeError:
                        continue
