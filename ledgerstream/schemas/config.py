"""Engine configuration schema."""

from __future__ import annotations

from pydantic import BaseModel, Field

from ledgerstream.schemas.messages import Role


class EngineConfig(BaseModel):
    """Settings for the HTTP client facade, stores, and CLI."""

    api_base: str = Field(
        default="http://localhost:8080/api/v1",
        description="Base URL of the design-session backend API",
    )
    connect_timeout: float = Field(
        default=10.0, gt=0, description="Seconds allowed for the initial connection",
    )
    read_timeout: float | None = Field(
        default=None,
        description="Seconds allowed between reads (None = wait indefinitely)",
    )
    persist_messages: bool = Field(
        default=True,
        description="Whether to persist committed entries to SQLite",
    )
    message_db_path: str = Field(
        default="~/.ledgerstream/messages.db",
        description="Path to the message database file",
    )
    responder_role: Role = Field(
        default=Role.ASSISTANT,
        description="Role recorded for completed stream entries",
    )
