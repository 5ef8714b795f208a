"""Streaming schemas for live stream state.

Defines the StreamState machine values, the StreamSnapshot value object
returned by the controller on every update, and the StreamChunk used to
publish incremental output to the display layer.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class StreamState(StrEnum):
    """Lifecycle state of a single stream attempt."""

    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (StreamState.COMPLETED, StreamState.FAILED)


class StreamSnapshot(BaseModel):
    """Point-in-time view of a conversation's stream."""

    model_config = ConfigDict(frozen=True)

    conversation_id: str = Field(description="Conversation the stream belongs to")
    state: StreamState = Field(default=StreamState.IDLE, description="Current state")
    accumulated: str = Field(default="", description="Accumulated result so far")
    frame_count: int = Field(default=0, ge=0, description="Frames with a payload so far")
    chunk_count: int = Field(default=0, ge=0, description="Transport chunks consumed so far")
    error: str | None = Field(default=None, description="Failure reason when failed")
    error_kind: str | None = Field(
        default=None, description="Failure kind: 'start', 'mid_stream' or 'transport'",
    )


class StreamChunk(BaseModel):
    """A single payload contribution published while streaming."""

    delta: str = Field(description="Payload text contributed by this frame")
    accumulated: str = Field(description="Full text accumulated so far")
    frame_count: int = Field(ge=0, description="Running count of payload frames")
    is_complete: bool = Field(
        default=False, description="True on the final chunk"
    )
