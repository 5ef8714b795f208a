"""Frame parser for the server-sent event wire encoding.

Turns a growing text buffer into complete frames plus a residual tail
that has not seen its terminating boundary yet. Pure functions only: the
caller owns the buffer and feeds the residual back in with the next chunk.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from ledgerstream.errors import FrameDecodeAnomaly

logger = logging.getLogger(__name__)

# Blank line terminating a frame
BOUNDARY = "\n\n"

DATA_PREFIX = "data:"


@dataclass(frozen=True)
class Frame:
    """One boundary-delimited unit of the wire encoding."""

    raw: str
    data_lines: tuple[str, ...] = ()
    anomalies: int = 0

    @property
    def payload(self) -> str | None:
        """Data lines joined by newlines, or None for frames without data."""
        if not self.data_lines:
            return None
        return "\n".join(self.data_lines)


def parse_frame(raw: str) -> Frame:
    """Parse a complete frame into its data lines.

    Lines starting with ``data:`` lose that prefix and at most one following
    space; further leading whitespace is content. Comments (leading ``:``)
    and other ``field: value`` lines are ignored. A non-blank line with no
    colon at all is malformed: it is counted as an anomaly and skipped, and
    the rest of the frame is still processed.
    """
    data_lines: list[str] = []
    anomalies = 0
    for line in raw.split("\n"):
        if line.startswith(DATA_PREFIX):
            value = line[len(DATA_PREFIX):]
            if value.startswith(" "):
                value = value[1:]
            data_lines.append(value)
        elif not line or ":" in line:
            continue
        else:
            anomalies += 1
            logger.debug("Skipping malformed field line: %r", line[:80])
    return Frame(raw=raw, data_lines=tuple(data_lines), anomalies=anomalies)


def split_frames(buffer: str) -> tuple[list[Frame], str]:
    """Extract every complete frame from ``buffer``.

    Args:
        buffer: Residual from the previous call with the new chunk appended.

    Returns:
        Tuple of (complete frames in wire order, residual buffer). The
        residual is empty when the buffer ends exactly on a boundary, and
        holds any half-received boundary token otherwise.
    """
    # CRLF streams frame the same way once normalised. A trailing "\r"
    # stays in the residual until its "\n" arrives.
    segments = buffer.replace("\r\n", "\n").split(BOUNDARY)
    residual = segments.pop()
    return [parse_frame(segment) for segment in segments], residual


def extract_payloads(buffer: str) -> tuple[list[str], str]:
    """Like split_frames(), but return only the payloads of data frames."""
    frames, residual = split_frames(buffer)
    payloads = [frame.payload for frame in frames if frame.payload is not None]
    return payloads, residual


def decode_json_payload(payload: str) -> Any:
    """Decode a JSON payload carried by a frame.

    Raises:
        FrameDecodeAnomaly: If the payload is not valid JSON.
    """
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        raise FrameDecodeAnomaly(f"Invalid JSON payload: {e}") from e
