"""Rich Live display for streaming replies and design previews.

Renders the accumulated reply as it grows, plus a short activity log,
driven by StreamEventEmitter events.
"""

from __future__ import annotations

import json
import time
from collections import deque
from collections.abc import Callable
from typing import Any

from rich.console import Console, Group
from rich.live import Live
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from ledgerstream.events import EventType, StreamEvent, StreamEventEmitter
from ledgerstream.schemas.streaming import StreamState

_STATE_MARKUP: dict[StreamState, str] = {
    StreamState.IDLE: "[dim]○ idle[/dim]",
    StreamState.STREAMING: "[bold cyan]◉ streaming[/bold cyan]",
    StreamState.COMPLETED: "[bold green]● completed[/bold green]",
    StreamState.FAILED: "[bold red]✗ failed[/bold red]",
}


class StreamingReplyDisplay:
    """Live panel showing one conversation's reply as it streams in.

    Use as a context manager and attach() it to the emitter that the
    controller and reconciler publish to. The reply text is rebuilt from
    chunk deltas.
    """

    def __init__(self, console: Console, conversation_id: str) -> None:
        self._console = console
        self._conversation_id = conversation_id
        self._start_time = time.monotonic()
        self._state = StreamState.IDLE
        self._accumulated = ""
        self._frame_count = 0
        self._error: str | None = None
        self._activity_log: deque[tuple[float, str]] = deque(maxlen=8)
        self._live: Live | None = None

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def accumulated(self) -> str:
        return self._accumulated

    def __enter__(self) -> StreamingReplyDisplay:
        self._start_time = time.monotonic()
        self._live = Live(
            self._build(),
            console=self._console,
            refresh_per_second=8,
            transient=True,
        )
        self._live.__enter__()
        return self

    def __exit__(self, *args: object) -> None:
        if self._live:
            self._live.__exit__(*args)
            self._live = None

    def attach(self, emitter: StreamEventEmitter) -> Callable[[], None]:
        """Follow this conversation's events; returns the unsubscribe callable."""

        def _handle(event: StreamEvent) -> None:
            self.handle_event(event)
            self._refresh()

        return emitter.subscribe(_handle, conversation_id=self._conversation_id)

    # ── Event handling ────────────────────────────────────────────

    def handle_event(self, event: StreamEvent) -> None:
        etype = event.type
        data = event.data

        if etype == EventType.STREAM_STARTED:
            self._state = StreamState.STREAMING
            self._accumulated = ""
            self._frame_count = 0
            self._error = None
            self._log("Stream started")

        elif etype == EventType.CHUNK_RECEIVED:
            self._accumulated += data.get("delta", "")
            self._frame_count = data.get("frame_count", self._frame_count)

        elif etype == EventType.ENTRY_COMMITTED:
            role = data.get("role", "?")
            self._log(f"Committed [bold]{escape(role)}[/bold] entry")

        elif etype == EventType.STREAM_COMPLETED:
            self._state = StreamState.COMPLETED
            self._frame_count = data.get("frame_count", self._frame_count)
            self._log(f"[green]Completed[/green] ({self._frame_count} frames)")

        elif etype == EventType.STREAM_FAILED:
            self._state = StreamState.FAILED
            self._error = data.get("reason", "Unknown error")
            self._log(f"[red]Failed:[/red] {escape(self._error)}")

        elif etype == EventType.STREAM_CANCELLED:
            self._state = StreamState.IDLE
            self._accumulated = ""
            self._log("[yellow]Cancelled[/yellow]")

    def _log(self, message: str) -> None:
        elapsed = time.monotonic() - self._start_time
        self._activity_log.append((elapsed, message))

    def _refresh(self) -> None:
        if self._live:
            self._live.update(self._build())

    # ── Rendering ─────────────────────────────────────────────────

    def _build(self) -> Group:
        return Group(self._build_reply_panel(), self._build_activity_text())

    def _build_reply_panel(self) -> Panel:
        status = _STATE_MARKUP[self._state]
        title = f"[bold blue]Conversation {self._conversation_id}[/bold blue] {status}"
        if self._accumulated:
            body: Any = Text(self._accumulated)
        else:
            body = Text("Waiting for reply...", style="dim", justify="center")
        return Panel(
            body,
            title=title,
            subtitle=f"[dim]{self._frame_count} frames[/dim]",
            border_style="red" if self._state is StreamState.FAILED else "blue",
        )

    def _build_activity_text(self) -> Text:
        text = Text()
        for elapsed, message in self._activity_log:
            minutes = int(elapsed // 60)
            seconds = int(elapsed % 60)
            text.append(f"  {minutes:02d}:{seconds:02d}  ", style="dim")
            text.append_text(Text.from_markup(message))
            text.append("\n")
        return text


def render_reply(console: Console, content: str, frame_count: int) -> None:
    """Print a completed reply as Markdown in a panel."""
    console.print(Panel(
        Markdown(content) if content.strip() else Text("(empty reply)", style="dim"),
        title="[bold green]Reply[/bold green]",
        subtitle=f"[dim]{frame_count} frames[/dim]",
        border_style="green",
    ))


def render_preview(console: Console, session_id: str, preview: dict[str, Any]) -> None:
    """Print a design preview as a key/value table, nested values as JSON."""
    table = Table(title=f"Design Preview: {session_id}", show_header=False, show_lines=True)
    table.add_column("Field", style="bold")
    table.add_column("Value")

    for key, value in preview.items():
        if isinstance(value, (dict, list)):
            rendered: Any = Syntax(
                json.dumps(value, indent=2, ensure_ascii=False),
                "json",
                theme="monokai",
                word_wrap=True,
            )
        else:
            rendered = Text(str(value))
        table.add_row(str(key), rendered)

    console.print(table)
