"""HTTP client facade for the design-session backend.

Wires the streaming engine to the backend's endpoints:

    POST {api_base}/sessions/{id}/messages/stream   chat reply (pull)
    GET  {api_base}/sessions/{id}/preview           initial design preview
    GET  {api_base}/sessions/{id}/preview/stream    preview updates (push)

One StreamController is kept per conversation, which enforces the
single-active-stream rule across calls.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ledgerstream.events import StreamEventEmitter
from ledgerstream.preview import PreviewTracker
from ledgerstream.schemas.config import EngineConfig
from ledgerstream.schemas.streaming import StreamSnapshot
from ledgerstream.streaming.controller import ChunkCallback, StreamController
from ledgerstream.streaming.reconciler import SessionReconciler
from ledgerstream.streaming.transport import EventSourceChannel, HttpPullTransport

logger = logging.getLogger(__name__)


def build_http_client(config: EngineConfig) -> httpx.AsyncClient:
    """Create an AsyncClient honouring the configured timeouts.

    The read timeout defaults to None: a stream may stay silent
    indefinitely until cancelled.
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(config.connect_timeout, read=config.read_timeout),
    )


class ConversationClient:
    """Streams chat replies and design previews for backend sessions."""

    def __init__(
        self,
        config: EngineConfig,
        reconciler: SessionReconciler,
        *,
        emitter: StreamEventEmitter | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._reconciler = reconciler
        self._emitter = emitter
        self._owns_http = http_client is None
        self._http = http_client or build_http_client(config)
        self._controllers: dict[str, StreamController] = {}

    async def __aenter__(self) -> ConversationClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Cancel active streams and close the HTTP client if we own it."""
        for controller in self._controllers.values():
            controller.cancel()
        if self._owns_http:
            await self._http.aclose()

    def _url(self, session_id: str, suffix: str) -> str:
        return f"{self._config.api_base.rstrip('/')}/sessions/{session_id}/{suffix}"

    def controller(self, session_id: str | int) -> StreamController:
        """Return the conversation's controller, creating it on first use."""
        key = str(session_id)
        if key not in self._controllers:
            self._controllers[key] = StreamController(
                self._reconciler,
                key,
                emitter=self._emitter,
                responder_role=self._config.responder_role,
            )
        return self._controllers[key]

    async def stream_message(
        self,
        session_id: str | int,
        content: str,
        *,
        on_chunk: ChunkCallback | None = None,
    ) -> StreamSnapshot:
        """Send a user message and stream the reply into the store.

        Returns:
            The terminal snapshot: ``completed`` with the full reply,
            ``failed`` with the reason, or ``idle`` if cancelled.

        Raises:
            ReentrantStreamStart: If the session already has an active stream.
        """
        controller = self.controller(session_id)
        transport = HttpPullTransport(
            self._http,
            "POST",
            self._url(controller.conversation_id, "messages/stream"),
            json={"content": content},
        )
        return await controller.start(transport, user_input=content, on_chunk=on_chunk)

    def cancel(self, session_id: str | int) -> bool:
        """Stop consuming the session's active stream, if any."""
        controller = self._controllers.get(str(session_id))
        return controller.cancel() if controller else False

    async def fetch_preview(self, session_id: str | int) -> dict[str, Any]:
        """Fetch the current design preview snapshot.

        Raises:
            httpx.HTTPStatusError: On a non-2xx response.
        """
        response = await self._http.get(self._url(str(session_id), "preview"))
        response.raise_for_status()
        return response.json()

    def preview_tracker(self, session_id: str | int) -> PreviewTracker:
        """Build a tracker that loads the current preview, then follows updates."""
        key = str(session_id)

        async def _load() -> dict[str, Any]:
            return await self.fetch_preview(key)

        return PreviewTracker(
            key,
            EventSourceChannel(self._http, self._url(key, "preview/stream")),
            initial_loader=_load,
            emitter=self._emitter,
        )
