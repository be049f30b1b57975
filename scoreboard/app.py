"""Live Vote Scoreboard - terminal display for the live vote board."""

import asyncio
from typing import Any

from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.reactive import reactive
from textual.widgets import Footer, Header, Label, Static

from .api import BoardFrame, LiveVoteAPI

# Default API URL
DEFAULT_API_URL = "http://localhost:8001"

# Seconds to wait before reconnecting a dropped stream
RECONNECT_DELAY = 3.0

WAITING_MESSAGE = "Please wait for the next performance"

DIRECTION_ARROWS = {
    "increasing": "▲",
    "decreasing": "▼",
    "unchanged": "",
}


class ScoreValue(Static):
    """The big average number. Shows ``?.?`` while a vote is in suspense."""

    value: reactive[float] = reactive(0.0)
    obscured: reactive[bool] = reactive(False)

    def render(self) -> str:
        if self.obscured:
            return "?.?"
        return f"{self.value:.1f}"

    def show(self, frame: BoardFrame) -> None:
        """Update the number for a new frame, animating when asked to."""
        self.obscured = frame.suspense_active
        if frame.suspense_active:
            return
        if frame.animate_from is not None and frame.animation_duration > 0:
            self.value = frame.animate_from
            self.animate(
                "value",
                value=frame.average,
                duration=frame.animation_duration,
                easing="out_cubic",
            )
        else:
            self.value = frame.average


class ScoreboardTUI(App):
    """Live Vote Scoreboard Terminal User Interface."""

    CSS = """
    #board {
        align: center middle;
        height: 1fr;
    }

    #group-name {
        width: 100%;
        text-align: center;
        text-style: bold;
        color: $accent;
    }

    #group-theme {
        width: 100%;
        text-align: center;
        color: $text-muted;
    }

    #score {
        width: 100%;
        height: 5;
        content-align: center middle;
        text-style: bold;
        background: $surface;
        border: heavy $primary;
    }

    #score.suspense {
        border: heavy $warning;
        color: $warning;
    }

    #direction {
        width: 100%;
        text-align: center;
    }

    #direction.increasing {
        color: $success;
    }

    #direction.decreasing {
        color: $error;
    }

    #vote-count, #voter {
        width: 100%;
        text-align: center;
    }

    #voter {
        color: $warning;
        text-style: italic;
    }
    """

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit"),
        Binding("r", "reconnect", "Reconnect"),
    ]

    # Reactive state
    is_connected: reactive[bool] = reactive(False)

    def __init__(self, api_url: str = DEFAULT_API_URL, api: LiveVoteAPI | None = None) -> None:
        super().__init__()
        self.api = api or LiveVoteAPI(api_url)
        self.frame: BoardFrame | None = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Vertical(id="board"):
            yield Label(WAITING_MESSAGE, id="group-name")
            yield Label("", id="group-theme")
            yield ScoreValue(id="score")
            yield Label("", id="direction")
            yield Label("", id="vote-count")
            yield Label("", id="voter")
        yield Footer()

    async def on_mount(self) -> None:
        """Start following the board when the app mounts."""
        self.follow_board()

    async def on_unmount(self) -> None:
        """Cleanup when app unmounts."""
        await self.api.close()

    def watch_is_connected(self, connected: bool) -> None:
        self.sub_title = "live" if connected else "connecting..."

    def show_frame(self, frame: BoardFrame) -> None:
        """Render one board frame."""
        self.frame = frame

        name = self.query_one("#group-name", Label)
        theme = self.query_one("#group-theme", Label)
        if frame.group_name is None:
            name.update(WAITING_MESSAGE)
            theme.update("")
        else:
            name.update(frame.group_name)
            theme.update(frame.group_theme)

        score = self.query_one("#score", ScoreValue)
        score.set_class(frame.suspense_active, "suspense")
        score.show(frame)

        direction = self.query_one("#direction", Label)
        direction.set_class(frame.direction == "increasing", "increasing")
        direction.set_class(frame.direction == "decreasing", "decreasing")
        direction.update("" if frame.suspense_active else DIRECTION_ARROWS.get(frame.direction, ""))

        self.query_one("#vote-count", Label).update(
            "" if frame.group_name is None else f"{frame.count} votes"
        )

        voter = frame.pending_participant_name
        self.query_one("#voter", Label).update(f"{voter} just voted!" if voter else "")

    def handle_event(self, event_type: str, event: dict[str, Any]) -> bool:
        """Apply one stream event. Returns False when the stream should end."""
        if event_type == "frame":
            self.show_frame(BoardFrame.from_dict(event.get("data", {})))
        elif event_type == "server_shutdown":
            self.notify(event.get("message", "Server shutting down"), severity="warning")
            return False
        return True

    async def follow_stream(self) -> None:
        """Paint the board's current frame, then apply stream events until the stream ends."""
        self.show_frame(await self.api.get_state())
        async for event_type, event in self.api.stream_frames():
            self.is_connected = True
            if not self.handle_event(event_type, event):
                break

    @work(exclusive=True)
    async def follow_board(self) -> None:
        """Follow the live stream, reconnecting when it drops."""
        while True:
            try:
                await self.follow_stream()
            except Exception as e:
                self.notify(f"Connection lost: {e}", severity="error")
            finally:
                self.is_connected = False
            await asyncio.sleep(RECONNECT_DELAY)

    def action_reconnect(self) -> None:
        """Drop the current stream and connect again."""
        self.follow_board()


def main() -> None:
    """Run the scoreboard app."""
    import argparse

    parser = argparse.ArgumentParser(description="Live Vote Scoreboard")
    parser.add_argument(
        "--api-url",
        default=DEFAULT_API_URL,
        help=f"API base URL (default: {DEFAULT_API_URL})",
    )
    args = parser.parse_args()

    app = ScoreboardTUI(api_url=args.api_url)
    app.run()


if __name__ == "__main__":
    main()
