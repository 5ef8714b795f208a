"""Message schemas for committed conversation history.

Defines the author roles and the immutable CommittedEntry written to the
message store once a stream resolves, plus the StreamFailure record kept
by the reconciler when it does not.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Role(StrEnum):
    """Author of a committed conversation entry."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class CommittedEntry(BaseModel):
    """Immutable record appended to the message store.

    User entries are committed before the transport call is issued so the
    input survives a failed stream. Responder entries are committed only
    when the stream completes.
    """

    model_config = ConfigDict(frozen=True)

    entry_id: str = Field(
        default_factory=lambda: uuid.uuid4().hex,
        description="Unique entry identifier",
    )
    conversation_id: str = Field(description="Conversation (session) the entry belongs to")
    role: Role = Field(description="Author role")
    content: str = Field(default="", description="Full message content")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the entry was committed",
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict, description="Free-form entry metadata",
    )


class StreamFailure(BaseModel):
    """User-visible record of a stream attempt that did not complete."""

    conversation_id: str = Field(description="Conversation the stream belonged to")
    kind: str = Field(description="Failure kind: 'start', 'mid_stream' or 'transport'")
    reason: str = Field(description="Human-readable failure reason")
    partial_length: int = Field(
        default=0, ge=0,
        description="Characters accumulated before the failure (discarded)",
    )
    occurred_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the failure was recorded",
    )
