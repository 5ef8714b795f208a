"""Stream session controller: one active stream per conversation.

Drives a TransportAdapter through the frame parser into an accumulated
result, and exposes the lifecycle as an explicit state machine:

    idle -> streaming -> completed | failed
    streaming -> idle        (cancel)

Buffer and accumulated result are owned exclusively by the controller
for the lifetime of one attempt. Every attempt gets a generation number;
callbacks from an adapter whose generation is no longer current are
ignored, so a still-open adapter cannot mutate state after cancel().
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from ledgerstream.errors import ReentrantStreamStart, TransportError
from ledgerstream.events import EventType, StreamEventEmitter
from ledgerstream.schemas.messages import Role
from ledgerstream.schemas.streaming import StreamChunk, StreamSnapshot, StreamState
from ledgerstream.streaming.parser import split_frames
from ledgerstream.streaming.reconciler import SessionReconciler
from ledgerstream.streaming.transport import TransportAdapter

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[StreamChunk], Any]


class _AttemptSink:
    """StreamSink bound to a single stream attempt."""

    def __init__(self, controller: StreamController, generation: int) -> None:
        self._controller = controller
        self._generation = generation

    async def deliver(self, chunk: str) -> None:
        await self._controller._handle_chunk(self._generation, chunk)

    async def on_complete(self) -> None:
        await self._controller._handle_complete(self._generation)

    async def on_transport_error(self, cause: TransportError) -> None:
        await self._controller._handle_error(self._generation, cause)


class StreamController:
    """Owns the single active stream of one conversation.

    Consumers hold the controller explicitly and read ``snapshot`` (or
    subscribe via the emitter / on_chunk callback) for live updates.
    """

    def __init__(
        self,
        reconciler: SessionReconciler,
        conversation_id: str,
        *,
        emitter: StreamEventEmitter | None = None,
        responder_role: Role = Role.ASSISTANT,
    ) -> None:
        self._reconciler = reconciler
        self._conversation_id = conversation_id
        self._emitter = emitter
        self._responder_role = responder_role

        self._state = StreamState.IDLE
        self._buffer = ""
        self._accumulated = ""
        self._frame_count = 0
        self._chunk_count = 0
        self._error: str | None = None
        self._error_kind: str | None = None

        self._generation = 0
        self._transport: TransportAdapter | None = None
        self._task: asyncio.Task | None = None
        self._on_chunk: ChunkCallback | None = None
        self._idle = asyncio.Event()
        self._idle.set()

    # ── State ────────────────────────────────────────────────────

    @property
    def conversation_id(self) -> str:
        return self._conversation_id

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def is_streaming(self) -> bool:
        return self._state is StreamState.STREAMING

    @property
    def snapshot(self) -> StreamSnapshot:
        """Immutable view of the current stream state."""
        return StreamSnapshot(
            conversation_id=self._conversation_id,
            state=self._state,
            accumulated=self._accumulated,
            frame_count=self._frame_count,
            chunk_count=self._chunk_count,
            error=self._error,
            error_kind=self._error_kind,
        )

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(
        self,
        transport: TransportAdapter,
        *,
        user_input: str | None = None,
        metadata: dict[str, Any] | None = None,
        on_chunk: ChunkCallback | None = None,
    ) -> StreamSnapshot:
        """Run one stream attempt to a terminal state and return its snapshot.

        When ``user_input`` is given it is committed as a user entry before
        the transport is started, so the input stays visible even if the
        stream fails. Transport failures end in ``failed`` and are returned,
        not raised. A local cancel() returns the ``idle`` snapshot.

        Raises:
            ReentrantStreamStart: If a stream is already active; the
                active stream is left untouched.
        """
        if self._state is StreamState.STREAMING:
            raise ReentrantStreamStart(
                f"Conversation {self._conversation_id} already has an active stream"
            )

        self._generation += 1
        generation = self._generation
        self._reset()
        self._state = StreamState.STREAMING
        self._transport = transport
        self._on_chunk = on_chunk
        self._idle.clear()

        logger.info("Stream started for conversation %s", self._conversation_id)
        await self._emit(EventType.STREAM_STARTED)

        try:
            if user_input is not None:
                await self._reconciler.commit(
                    self._conversation_id, Role.USER, user_input, metadata,
                )
            if not self._is_current(generation):
                await self._emit_cancelled()
                return self.snapshot

            self._task = asyncio.create_task(transport.run(_AttemptSink(self, generation)))
            await self._task
        except asyncio.CancelledError:
            if self._is_current(generation):
                # Cancelled from outside: release the transport, then propagate
                self._abort()
                raise
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            await self._emit_cancelled()
            return self.snapshot
        except Exception as e:
            if self._is_current(generation):
                self._state = StreamState.FAILED
                self._error = str(e)[:200] or type(e).__name__
                self._error_kind = "internal"
                self._release()
            raise

        if self._is_current(generation):
            # The transport was closed underneath us without a terminal callback
            logger.warning(
                "Transport for conversation %s stopped without completing",
                self._conversation_id,
            )
            self._abort()
            await self._emit_cancelled()
        elif self._generation != generation:
            await self._emit_cancelled()
        return self.snapshot

    def cancel(self) -> bool:
        """Stop consuming the active stream.

        Resets local state to ``idle`` immediately and asks the transport to
        stop delivering and release its connection. Entries already committed
        are left alone, and the backend is not told to stop generating.

        Returns:
            True if a stream was cancelled, False if none was active.
        """
        if self._state is not StreamState.STREAMING:
            return False
        logger.info("Stream cancelled for conversation %s", self._conversation_id)
        self._abort()
        return True

    async def wait_idle(self) -> None:
        """Wait until no stream is active."""
        await self._idle.wait()

    # ── Transport callbacks ──────────────────────────────────────

    async def _handle_chunk(self, generation: int, chunk: str) -> None:
        if not self._is_current(generation):
            logger.debug("Ignoring chunk from a cancelled stream")
            return

        self._chunk_count += 1
        frames, self._buffer = split_frames(self._buffer + chunk)
        for frame in frames:
            payload = frame.payload
            if payload is None:
                continue
            self._accumulated += payload
            self._frame_count += 1
            await self._publish(StreamChunk(
                delta=payload,
                accumulated=self._accumulated,
                frame_count=self._frame_count,
            ))
            # A listener may have cancelled mid-chunk
            if not self._is_current(generation):
                return

    async def _handle_complete(self, generation: int) -> None:
        if not self._is_current(generation):
            return
        if self._buffer.strip():
            logger.debug(
                "Discarding %d chars of unterminated trailing frame", len(self._buffer),
            )

        await self._reconciler.commit(
            self._conversation_id,
            self._responder_role,
            self._accumulated,
            {"frames": self._frame_count},
        )
        if not self._is_current(generation):
            return

        self._state = StreamState.COMPLETED
        await self._publish(StreamChunk(
            delta="",
            accumulated=self._accumulated,
            frame_count=self._frame_count,
            is_complete=True,
        ))
        self._release()
        logger.info(
            "Stream completed for conversation %s (%d frames, %d chars)",
            self._conversation_id, self._frame_count, len(self._accumulated),
        )
        await self._emit(
            EventType.STREAM_COMPLETED,
            frame_count=self._frame_count,
            length=len(self._accumulated),
        )

    async def _handle_error(self, generation: int, cause: TransportError) -> None:
        if not self._is_current(generation):
            return
        self._state = StreamState.FAILED
        self._error = cause.reason
        self._error_kind = cause.kind
        self._release()
        await self._reconciler.record_error(
            self._conversation_id,
            cause.kind,
            cause.reason,
            partial_length=len(self._accumulated),
        )

    # ── Internals ────────────────────────────────────────────────

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self._state is StreamState.STREAMING

    def _reset(self) -> None:
        self._buffer = ""
        self._accumulated = ""
        self._frame_count = 0
        self._chunk_count = 0
        self._error = None
        self._error_kind = None

    def _release(self) -> None:
        self._buffer = ""
        self._transport = None
        self._task = None
        self._on_chunk = None
        self._idle.set()

    def _abort(self) -> None:
        """Invalidate the current attempt and stop its transport."""
        transport, task = self._transport, self._task
        self._generation += 1
        self._reset()
        self._state = StreamState.IDLE
        self._release()
        if transport is not None:
            transport.close()
        if task is not None and not task.done():
            task.cancel()

    async def _publish(self, chunk: StreamChunk) -> None:
        if self._on_chunk is not None:
            result = self._on_chunk(chunk)
            if asyncio.iscoroutine(result):
                await result
        if not chunk.is_complete:
            await self._emit(
                EventType.CHUNK_RECEIVED,
                delta=chunk.delta,
                frame_count=chunk.frame_count,
            )

    async def _emit_cancelled(self) -> None:
        await self._emit(EventType.STREAM_CANCELLED)

    async def _emit(self, event_type: EventType, **data: Any) -> None:
        if self._emitter:
            await self._emitter.emit(event_type, self._conversation_id, **data)
