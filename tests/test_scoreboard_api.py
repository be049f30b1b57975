"""Tests for the scoreboard's API client."""

import json

import httpx
import pytest

from scoreboard.api import BoardFrame, LiveVoteAPI

FRAME = {
    "group": {"id": "g1", "name": "The Harmonics", "theme": "Jazz night"},
    "average": 8.0,
    "count": 1,
    "direction": "increasing",
    "suspense_active": False,
    "pending_participant_name": "Alice",
    "animate_from": 7.0,
    "animation_duration": 1.5,
    "phase": "revealing",
}


def make_api(handler) -> LiveVoteAPI:
    return LiveVoteAPI("http://board.test", transport=httpx.MockTransport(handler))


class TestBoardFrame:
    """Tests for BoardFrame.from_dict."""

    def test_parses_full_frame(self):
        frame = BoardFrame.from_dict(FRAME)
        assert frame.group_name == "The Harmonics"
        assert frame.group_theme == "Jazz night"
        assert frame.animate_from == 7.0

    def test_waiting_frame(self):
        frame = BoardFrame.from_dict({"group": None, "average": 0.0, "count": 0})
        assert frame.group_name is None
        assert frame.suspense_active is False


class TestLiveVoteAPI:
    """Tests for LiveVoteAPI."""

    @pytest.mark.asyncio
    async def test_get_state(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/live/state"
            return httpx.Response(200, json=FRAME)

        api = make_api(handler)
        try:
            frame = await api.get_state()
        finally:
            await api.close()

        assert frame.average == 8.0
        assert frame.pending_participant_name == "Alice"

    @pytest.mark.asyncio
    async def test_stream_skips_keepalives_and_bad_lines(self):
        body = (
            f"data: {json.dumps({'type': 'frame', 'data': FRAME})}\n\n"
            ": keepalive\n\n"
            "data: {not json\n\n"
            f"data: {json.dumps({'type': 'server_shutdown', 'message': 'bye'})}\n\n"
        )

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/live/stream"
            return httpx.Response(200, text=body, headers={"Content-Type": "text/event-stream"})

        api = make_api(handler)
        try:
            events = [event async for event in api.stream_frames()]
        finally:
            await api.close()

        assert [event_type for event_type, _ in events] == ["frame", "server_shutdown"]
        assert events[0][1]["data"]["average"] == 8.0
