"""ledgerstream schema definitions.

All Pydantic v2 models used by the streaming engine, stores, and CLI.
"""

from ledgerstream.schemas.config import EngineConfig
from ledgerstream.schemas.messages import CommittedEntry, Role, StreamFailure
from ledgerstream.schemas.streaming import (
    StreamChunk,
    StreamSnapshot,
    StreamState,
)

__all__ = [
    "CommittedEntry",
    "EngineConfig",
    "Role",
    "StreamChunk",
    "StreamFailure",
    "StreamSnapshot",
    "StreamState",
]
