"""Live design preview tracking over a push channel.

The backend pushes a full JSON design preview on every change. The tracker
keeps the latest one that decoded cleanly; malformed payloads are skipped
and the previous preview stays visible.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ledgerstream.errors import FrameDecodeAnomaly, TransportError
from ledgerstream.events import EventType, StreamEventEmitter
from ledgerstream.streaming.parser import decode_json_payload, extract_payloads
from ledgerstream.streaming.transport import PushChannel, PushTransport

logger = logging.getLogger(__name__)

PreviewLoader = Callable[[], Awaitable[dict[str, Any]]]


class PreviewTracker:
    """Follows a session's design preview stream.

    Acts as the StreamSink of its own PushTransport. Previews replace each
    other rather than accumulate. Any channel failure, before or after
    open, sets ``error`` to "Connection lost"; the transport's own reason
    is kept in ``error_detail``.
    """

    def __init__(
        self,
        session_id: str,
        channel: PushChannel,
        *,
        initial_loader: PreviewLoader | None = None,
        emitter: StreamEventEmitter | None = None,
    ) -> None:
        self.session_id = session_id
        self.preview: dict[str, Any] | None = None
        self.loading = False
        self.error: str | None = None
        self.error_detail: str | None = None
        self.anomalies = 0
        self.updates = 0
        self._channel = channel
        self._initial_loader = initial_loader
        self._emitter = emitter
        self._buffer = ""
        self._transport: PushTransport | None = None
        self._finished = False

    @property
    def connected(self) -> bool:
        """Whether the channel is open and still delivering."""
        return (
            self._transport is not None
            and self._transport.opened
            and not self._transport.closed
            and not self._finished
        )

    async def follow(self) -> None:
        """Load the initial preview, then apply pushed updates until the
        channel closes, fails, or disconnect() is called."""
        self.error = None
        self.error_detail = None
        self._finished = False
        self._buffer = ""

        if self._initial_loader is not None:
            self.loading = True
            try:
                await self._apply(await self._initial_loader())
            except Exception as e:
                # The push stream can still recover the preview
                logger.warning("Initial preview load failed: %s", e)
                self.error = str(e)[:200]
            finally:
                self.loading = False

        self._transport = PushTransport(self._channel)
        await self._transport.run(self)

    def disconnect(self) -> None:
        """Close the channel and stop applying updates."""
        if self._transport is not None:
            self._transport.close()
        self._finished = True

    # ── StreamSink ───────────────────────────────────────────────

    async def deliver(self, chunk: str) -> None:
        payloads, self._buffer = extract_payloads(self._buffer + chunk)
        for payload in payloads:
            try:
                value = decode_json_payload(payload)
            except FrameDecodeAnomaly as e:
                self.anomalies += 1
                logger.warning("Skipping preview update: %s", e)
                continue
            if not isinstance(value, dict):
                self.anomalies += 1
                logger.warning("Skipping non-object preview update")
                continue
            await self._apply(value)

    async def on_complete(self) -> None:
        self._finished = True
        logger.info("Preview stream closed for session %s", self.session_id)

    async def on_transport_error(self, cause: TransportError) -> None:
        self._finished = True
        self.error = "Connection lost"
        self.error_detail = cause.reason

    async def _apply(self, preview: dict[str, Any]) -> None:
        self.preview = preview
        self.error = None
        self.error_detail = None
        self.updates += 1
        if self._emitter:
            await self._emitter.emit(
                EventType.PREVIEW_UPDATED,
                self.session_id,
                preview=preview,
            )
