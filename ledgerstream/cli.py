"""ledgerstream CLI - Typer + Rich terminal interface.

Commands: chat, preview, messages, config.
All output is Rich-powered with color-coded panels and tables.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from ledgerstream import __version__
from ledgerstream.errors import ConfigError
from ledgerstream.schemas.config import EngineConfig
from ledgerstream.schemas.streaming import StreamState
from ledgerstream.settings import load_engine_config, load_env

# Load ~/.ledgerstream/.env and .env on startup
load_env()

console = Console()

# ── App and sub-apps ─────────────────────────────────────────────

app = typer.Typer(
    name="ledgerstream",
    help="Stream chat replies and design previews into a conversation ledger.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

messages_app = typer.Typer(
    name="messages",
    help="Query committed conversation entries.",
    no_args_is_help=True,
)
app.add_typer(messages_app, name="messages")

config_app = typer.Typer(
    name="config",
    help="Show engine configuration.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")


# ── Version callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"ledgerstream {__version__}")
        raise typer.Exit()


# ── App Callback ────────────────────────────────────────────────


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Log engine activity to stderr.",
    ),
) -> None:
    """ledgerstream: streaming conversation ingestion."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )


# ── Helpers ──────────────────────────────────────────────────────

def _load_config() -> EngineConfig:
    """Load engine config, exit on error."""
    try:
        return load_engine_config()
    except (FileNotFoundError, ConfigError) as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None


@asynccontextmanager
async def _open_store(config: EngineConfig) -> AsyncIterator:
    """Yield the configured message store, closing its database after use."""
    from ledgerstream.persistence.database import close_db, init_db
    from ledgerstream.persistence.store import InMemoryMessageStore, SqliteMessageStore

    if not config.persist_messages:
        yield InMemoryMessageStore()
        return

    db = await init_db(config.message_db_path)
    try:
        yield SqliteMessageStore(db)
    finally:
        await close_db(db)


_ROLE_STYLES = {
    "user": "cyan",
    "assistant": "green",
    "system": "magenta",
}


# ── ledgerstream chat ────────────────────────────────────────────

@app.command()
def chat(
    session_id: str = typer.Argument(..., help="Backend design session ID"),
    message: str = typer.Argument(..., help="Message to send"),
) -> None:
    """Send a message and stream the reply live."""
    from ledgerstream.cli_display import StreamingReplyDisplay, render_reply
    from ledgerstream.client import ConversationClient
    from ledgerstream.events import StreamEventEmitter
    from ledgerstream.streaming.reconciler import SessionReconciler

    config = _load_config()
    emitter = StreamEventEmitter()

    async def _chat():
        async with _open_store(config) as store:
            reconciler = SessionReconciler(store, emitter=emitter)
            async with ConversationClient(config, reconciler, emitter=emitter) as client:
                with StreamingReplyDisplay(console, session_id) as display:
                    display.attach(emitter)
                    return await client.stream_message(session_id, message)

    try:
        snapshot = asyncio.run(_chat())
    except KeyboardInterrupt:
        console.print("[yellow]Stream cancelled.[/yellow]")
        raise typer.Exit(1) from None

    if snapshot.state is StreamState.FAILED:
        console.print(
            f"[red]Stream failed ({snapshot.error_kind}):[/red] {escape(snapshot.error or '')}"
        )
        if snapshot.accumulated:
            console.print(f"[dim]Partial reply ({len(snapshot.accumulated)} chars) not saved.[/dim]")
        raise typer.Exit(1)

    if not snapshot.state.is_terminal:
        console.print("[yellow]Stream cancelled.[/yellow]")
        raise typer.Exit(1)
    render_reply(console, snapshot.accumulated, snapshot.frame_count)


# ── ledgerstream preview ─────────────────────────────────────────

@app.command()
def preview(
    session_id: str = typer.Argument(..., help="Backend design session ID"),
    once: bool = typer.Option(
        False, "--once",
        help="Fetch the current preview and exit instead of following updates.",
    ),
) -> None:
    """Show a session's design preview, following live updates."""
    import httpx

    from ledgerstream.cli_display import render_preview
    from ledgerstream.client import ConversationClient
    from ledgerstream.events import EventType, StreamEventEmitter
    from ledgerstream.persistence.store import InMemoryMessageStore
    from ledgerstream.streaming.reconciler import SessionReconciler

    config = _load_config()
    emitter = StreamEventEmitter()

    def _on_event(event) -> None:
        if event.type == EventType.PREVIEW_UPDATED:
            render_preview(console, session_id, event.data["preview"])

    emitter.subscribe(_on_event, conversation_id=session_id)

    async def _fetch():
        reconciler = SessionReconciler(InMemoryMessageStore())
        async with ConversationClient(config, reconciler) as client:
            return await client.fetch_preview(session_id)

    async def _follow():
        reconciler = SessionReconciler(InMemoryMessageStore())
        async with ConversationClient(config, reconciler, emitter=emitter) as client:
            tracker = client.preview_tracker(session_id)
            await tracker.follow()
            return tracker

    if once:
        try:
            render_preview(console, session_id, asyncio.run(_fetch()))
        except httpx.HTTPError as e:
            console.print(f"[red]Could not load preview:[/red] {e}")
            raise typer.Exit(1) from None
        return

    try:
        tracker = asyncio.run(_follow())
    except KeyboardInterrupt:
        console.print("[dim]Stopped following preview.[/dim]")
        return

    if tracker.anomalies:
        console.print(f"[yellow]Skipped {tracker.anomalies} malformed update(s).[/yellow]")
    if tracker.error:
        detail = f" ({escape(tracker.error_detail)})" if tracker.error_detail else ""
        console.print(f"[red]Preview stream ended:[/red] {escape(tracker.error)}{detail}")
        raise typer.Exit(1)
    console.print("[dim]Preview stream closed.[/dim]")


# ── ledgerstream messages ────────────────────────────────────────

@messages_app.command("list")
def messages_list(
    session_id: str = typer.Argument(None, help="Conversation ID (omit to list conversations)"),
) -> None:
    """Show committed entries for a conversation."""
    config = _load_config()

    async def _list():
        async with _open_store(config) as store:
            if session_id is None:
                return [
                    (conversation_id, await store.count_entries(conversation_id))
                    for conversation_id in await store.list_conversations()
                ]
            return await store.list_entries(session_id)

    rows = asyncio.run(_list())

    if not rows:
        console.print("[dim]No entries found.[/dim]")
        return

    if session_id is None:
        title = f"Conversations ({len(rows)})"
        table = Table(title=title, min_width=len(title) + 4)
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Entries", justify="right")
        for conversation_id, count in rows:
            table.add_row(conversation_id, str(count))
        console.print(table)
        return

    title = f"Conversation {session_id} ({len(rows)} entries)"
    table = Table(title=title, min_width=len(title) + 4)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Role")
    table.add_column("Content", max_width=60)
    table.add_column("Created", style="dim")

    for i, entry in enumerate(rows, 1):
        role = entry.role.value
        content = entry.content.replace("\n", " ")
        if len(content) > 60:
            content = content[:60] + "..."
        table.add_row(
            str(i),
            Text(role, style=_ROLE_STYLES.get(role, "white")),
            Text(content) if content else Text("(empty)", style="dim"),
            entry.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        )

    console.print(table)


@messages_app.command("export")
def messages_export(
    session_id: str = typer.Argument(..., help="Conversation ID"),
    fmt: str = typer.Option(
        "markdown", "--format", "-f",
        help="Export format: json or markdown",
    ),
) -> None:
    """Export a conversation as JSON or Markdown."""
    from ledgerstream.persistence.export import export_json, export_markdown

    if fmt not in ("json", "markdown"):
        console.print(f"[red]Invalid format:[/red] '{fmt}'. Choose json or markdown.")
        raise typer.Exit(1)

    config = _load_config()

    async def _get():
        async with _open_store(config) as store:
            return await store.list_entries(session_id)

    entries = asyncio.run(_get())

    if not entries:
        console.print(f"[red]Conversation not found:[/red] {session_id}")
        raise typer.Exit(1)

    if fmt == "json":
        console.print(export_json(entries), markup=False, highlight=False)
    else:
        console.print(export_markdown(session_id, entries), markup=False, highlight=False)


# ── ledgerstream config ──────────────────────────────────────────

@config_app.command("show")
def config_show() -> None:
    """Show current engine configuration."""
    config = _load_config()

    table = Table(title="Engine Configuration", show_header=False, show_lines=True)
    table.add_column("Setting", style="bold")
    table.add_column("Value")

    table.add_row("API Base", config.api_base)
    table.add_row("Connect Timeout", f"{config.connect_timeout}s")
    table.add_row(
        "Read Timeout",
        f"{config.read_timeout}s" if config.read_timeout is not None else "none",
    )
    table.add_row("Persist Messages", str(config.persist_messages))
    table.add_row("Message DB Path", config.message_db_path)
    table.add_row("Responder Role", config.responder_role.value)

    console.print(table)
