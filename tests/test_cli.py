"""Tests for the CLI interface.

Covers every command via CliRunner, with the backend simulated by
httpx.MockTransport and message history in a temporary SQLite file.
"""

from __future__ import annotations

import json
from unittest.mock import patch

import httpx
import pytest
from typer.testing import CliRunner

from ledgerstream import __version__
from ledgerstream.cli import app
from ledgerstream.errors import ConfigError
from ledgerstream.schemas.config import EngineConfig

# NO_COLOR=1 prevents Rich from injecting ANSI codes inside option names,
# which breaks substring matching in CI (headless, no TTY).
# COLUMNS=200 prevents wrapping that could split a flag across lines.
runner = CliRunner(env={"NO_COLOR": "1", "COLUMNS": "200"})

_LOAD_CONFIG = "ledgerstream.cli.load_engine_config"
_HTTP_CLIENT = "ledgerstream.client.build_http_client"


# ── Factories ──────────────────────────────────────────────────────


@pytest.fixture
def config(tmp_path) -> EngineConfig:
    return EngineConfig(message_db_path=str(tmp_path / "messages.db"))


def _backend(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path.endswith("/messages/stream"):
        return httpx.Response(200, content=b"data: Added a \n\ndata: skylight.\n\n")
    if path.endswith("/preview/stream"):
        return httpx.Response(200, content=b'data: {"title": "Sunlit Loft"}\n\n')
    if path.endswith("/preview"):
        return httpx.Response(200, json={"title": "Loft", "rooms": ["kitchen", "study"]})
    return httpx.Response(404)


def _http_factory(handler):
    return lambda config: httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _invoke(config: EngineConfig, args: list[str], handler=_backend):
    with (
        patch(_LOAD_CONFIG, return_value=config),
        patch(_HTTP_CLIENT, side_effect=_http_factory(handler)),
    ):
        return runner.invoke(app, args)


# ── Global options ────────────────────────────────────────────────


class TestGlobalOptions:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"ledgerstream {__version__}" in result.output

    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("chat", "preview", "messages", "config"):
            assert command in result.output
        assert "--verbose" in result.output


# ── ledgerstream chat ─────────────────────────────────────────────


class TestChat:
    def test_streams_reply_and_persists(self, config):
        result = _invoke(config, ["chat", "7", "Brighten the loft"])
        assert result.exit_code == 0, result.output
        assert "Added a skylight." in result.output

        listed = _invoke(config, ["messages", "list", "7"])
        assert listed.exit_code == 0
        assert "Brighten the loft" in listed.output
        assert "Added a skylight." in listed.output
        assert "assistant" in listed.output

    def test_backend_failure_exits_1(self, config):
        result = _invoke(config, ["chat", "7", "hi"], handler=lambda r: httpx.Response(500))
        assert result.exit_code == 1
        assert "Stream failed (start)" in result.output
        assert "HTTP 500" in result.output

    def test_in_memory_store_when_not_persisting(self, tmp_path):
        config = EngineConfig(
            persist_messages=False,
            message_db_path=str(tmp_path / "unused.db"),
        )
        result = _invoke(config, ["chat", "7", "hi"])
        assert result.exit_code == 0
        assert not (tmp_path / "unused.db").exists()


# ── ledgerstream preview ──────────────────────────────────────────


class TestPreview:
    def test_once(self, config):
        result = _invoke(config, ["preview", "s1", "--once"])
        assert result.exit_code == 0
        assert "Design Preview: s1" in result.output
        assert "Loft" in result.output
        assert "kitchen" in result.output

    def test_once_backend_error(self, config):
        result = _invoke(config, ["preview", "s1", "--once"], handler=lambda r: httpx.Response(404))
        assert result.exit_code == 1
        assert "Could not load preview" in result.output

    def test_follow_until_closed(self, config):
        result = _invoke(config, ["preview", "s1"])
        assert result.exit_code == 0
        assert "Sunlit Loft" in result.output
        assert "Preview stream closed" in result.output

    def test_follow_reports_connection_error(self, config):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/preview/stream"):
                return httpx.Response(503)
            return _backend(request)

        result = _invoke(config, ["preview", "s1"], handler=handler)
        assert result.exit_code == 1
        assert "Preview stream ended: Connection lost" in result.output
        assert "HTTP 503" in result.output


# ── ledgerstream messages ─────────────────────────────────────────


class TestMessages:
    def test_list_empty(self, config):
        result = _invoke(config, ["messages", "list", "nobody"])
        assert result.exit_code == 0
        assert "No entries found" in result.output

    def test_list_conversations(self, config):
        _invoke(config, ["chat", "7", "first"])
        _invoke(config, ["chat", "9", "second"])
        result = _invoke(config, ["messages", "list"])
        assert result.exit_code == 0
        assert "Conversations (2)" in result.output
        assert "Entries" in result.output

    def test_list_entries_title(self, config):
        _invoke(config, ["chat", "7", "first"])
        result = _invoke(config, ["messages", "list", "7"])
        assert result.exit_code == 0
        assert "Conversation 7 (2 entries)" in result.output

    def test_export_json(self, config):
        _invoke(config, ["chat", "7", "Brighten the loft"])
        result = _invoke(config, ["messages", "export", "7", "--format", "json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [d["role"] for d in data] == ["user", "assistant"]
        assert data[1]["content"] == "Added a skylight."

    def test_export_markdown(self, config):
        _invoke(config, ["chat", "7", "Brighten the loft"])
        result = _invoke(config, ["messages", "export", "7"])
        assert result.exit_code == 0
        assert "# Conversation: 7" in result.output
        assert "## Assistant" in result.output

    def test_export_unknown_conversation(self, config):
        result = _invoke(config, ["messages", "export", "missing"])
        assert result.exit_code == 1
        assert "Conversation not found" in result.output

    def test_export_invalid_format(self, config):
        result = _invoke(config, ["messages", "export", "7", "--format", "xml"])
        assert result.exit_code == 1
        assert "Invalid format" in result.output


# ── ledgerstream config ───────────────────────────────────────────


class TestConfig:
    def test_config_show(self):
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "Engine Configuration" in result.output
        assert "10.0s" in result.output
        assert "assistant" in result.output

    def test_config_error_exits_1(self):
        with patch(_LOAD_CONFIG, side_effect=ConfigError("bad table")):
            result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 1
        assert "Error loading config" in result.output
