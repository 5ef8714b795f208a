"""Tests for streaming and message schemas."""

from __future__ import annotations

import pydantic
import pytest

from ledgerstream.schemas.config import EngineConfig
from ledgerstream.schemas.messages import CommittedEntry, Role, StreamFailure
from ledgerstream.schemas.streaming import StreamChunk, StreamSnapshot, StreamState


class TestStreamChunk:
    def test_basic(self):
        chunk = StreamChunk(delta="hello", accumulated="hello", frame_count=1)
        assert chunk.delta == "hello"
        assert chunk.accumulated == "hello"
        assert chunk.frame_count == 1
        assert chunk.is_complete is False

    def test_complete(self):
        chunk = StreamChunk(
            delta="",
            accumulated="full content",
            frame_count=10,
            is_complete=True,
        )
        assert chunk.is_complete is True
        assert chunk.delta == ""

    def test_frame_count_non_negative(self):
        with pytest.raises(pydantic.ValidationError):
            StreamChunk(delta="x", accumulated="x", frame_count=-1)


class TestStreamState:
    def test_terminal_states(self):
        assert StreamState.COMPLETED.is_terminal
        assert StreamState.FAILED.is_terminal
        assert not StreamState.IDLE.is_terminal
        assert not StreamState.STREAMING.is_terminal


class TestStreamSnapshot:
    def test_defaults(self):
        snapshot = StreamSnapshot(conversation_id="c1")
        assert snapshot.state is StreamState.IDLE
        assert snapshot.accumulated == ""
        assert snapshot.error is None

    def test_frozen(self):
        snapshot = StreamSnapshot(conversation_id="c1")
        with pytest.raises(pydantic.ValidationError):
            snapshot.accumulated = "changed"


class TestCommittedEntry:
    def test_generated_fields(self):
        a = CommittedEntry(conversation_id="c1", role=Role.USER)
        b = CommittedEntry(conversation_id="c1", role=Role.USER)
        assert a.entry_id != b.entry_id
        assert a.content == ""
        assert a.created_at.tzinfo is not None

    def test_role_from_string(self):
        entry = CommittedEntry(conversation_id="c1", role="assistant")
        assert entry.role is Role.ASSISTANT

    def test_frozen(self):
        entry = CommittedEntry(conversation_id="c1", role=Role.USER, content="x")
        with pytest.raises(pydantic.ValidationError):
            entry.content = "y"


class TestStreamFailure:
    def test_partial_length_non_negative(self):
        with pytest.raises(pydantic.ValidationError):
            StreamFailure(conversation_id="c1", kind="start", reason="x", partial_length=-1)


class TestEngineConfig:
    def test_defaults(self):
        config = EngineConfig()
        assert config.connect_timeout == 10.0
        assert config.read_timeout is None
        assert config.persist_messages is True
        assert config.responder_role is Role.ASSISTANT

    def test_connect_timeout_positive(self):
        with pytest.raises(pydantic.ValidationError):
            EngineConfig(connect_timeout=0)
