"""Exception hierarchy for the streaming ingestion engine.

Transport failures end a stream attempt in the ``failed`` state. Frame
anomalies are absorbed by the parser and never change stream state.
"""

from __future__ import annotations


class LedgerstreamError(Exception):
    """Base exception for all application-specific errors."""


class TransportError(LedgerstreamError):
    """A failure of the underlying delivery mechanism."""

    kind = "transport"

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class TransportStartFailure(TransportError):
    """The initial connection or handshake did not succeed."""

    kind = "start"

    def __init__(self, reason: str, *, status_code: int | None = None) -> None:
        super().__init__(reason)
        self.status_code = status_code


class TransportMidStreamFailure(TransportError):
    """The connection dropped after the stream had opened."""

    kind = "mid_stream"


class FrameDecodeAnomaly(LedgerstreamError):
    """A malformed field line or an undecodable payload inside a frame."""


class ReentrantStreamStart(LedgerstreamError):
    """A stream was started while another one is still active."""


class ConfigError(LedgerstreamError):
    """The engine configuration file is structurally invalid."""
