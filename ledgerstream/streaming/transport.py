"""Transport adapters delivering raw stream chunks to a sink.

Two delivery mechanisms share one contract: a pull adapter that reads a
chunked byte stream, and a push adapter fed by an event channel. Both hand
raw, boundary-unaligned text to the same StreamSink. The controller never
knows which one it is talking to.

Every adapter guarantees:
  - chunks arrive at the sink in transport order, one at a time
  - exactly one terminal callback fires per run, unless close() was called
  - nothing is delivered after the terminal callback or after close()
  - the underlying connection is released on every exit path
"""

from __future__ import annotations

import asyncio
import codecs
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterable, AsyncIterator, Mapping
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, Protocol

import httpx

from ledgerstream.errors import (
    TransportError,
    TransportMidStreamFailure,
    TransportStartFailure,
)

logger = logging.getLogger(__name__)

EVENT_STREAM = "text/event-stream"


def _short_error_reason(error: BaseException) -> str:
    """Map a transport exception to a short, user-facing reason."""
    if isinstance(error, httpx.TimeoutException):
        return "timeout"
    if isinstance(error, httpx.ConnectError):
        return "connection refused"
    if isinstance(error, httpx.RemoteProtocolError):
        return "connection closed by server"
    if isinstance(error, httpx.NetworkError | OSError):
        return "connection error"
    # Fallback: first 80 chars of the error
    return str(error)[:80] or type(error).__name__


class StreamSink(Protocol):
    """Receiver of transport output. Implemented by StreamController."""

    async def deliver(self, chunk: str) -> None: ...

    async def on_complete(self) -> None: ...

    async def on_transport_error(self, cause: TransportError) -> None: ...


class TransportAdapter(ABC):
    """Abstract delivery mechanism for one stream attempt.

    Subclasses implement _pump(), which feeds chunks to the sink and
    returns at end of stream or raises TransportError. run() turns that
    into exactly one terminal callback.
    """

    def __init__(self) -> None:
        self._closed = False
        self._started = False
        self._terminated = False

    @property
    def closed(self) -> bool:
        """Whether close() has been requested."""
        return self._closed

    def close(self) -> None:
        """Stop delivering. No further callbacks fire after this call."""
        self._closed = True

    async def run(self, sink: StreamSink) -> None:
        """Drive the stream to completion, error, or close.

        Raises:
            RuntimeError: If the adapter has already been run.
        """
        if self._started:
            raise RuntimeError("Transport adapters are single-use")
        self._started = True

        try:
            await self._pump(sink)
        except TransportError as e:
            logger.warning("Stream transport failed (%s): %s", e.kind, e.reason)
            await self._terminate(sink.on_transport_error, e)
        except OSError as e:
            logger.warning("Stream transport failed: %s", e)
            failure = TransportMidStreamFailure(_short_error_reason(e))
            failure.__cause__ = e
            await self._terminate(sink.on_transport_error, failure)
        except Exception as e:
            logger.exception("Unexpected failure while streaming")
            failure = TransportMidStreamFailure(f"unexpected error: {_short_error_reason(e)}")
            failure.__cause__ = e
            await self._terminate(sink.on_transport_error, failure)
        else:
            await self._terminate(sink.on_complete)

    async def _terminate(self, callback, *args: Any) -> None:
        if self._terminated or self._closed:
            return
        self._terminated = True
        await callback(*args)

    async def _deliver(self, sink: StreamSink, chunk: str) -> None:
        if chunk and not self._closed and not self._terminated:
            await sink.deliver(chunk)

    @abstractmethod
    async def _pump(self, sink: StreamSink) -> None:
        """Feed chunks to the sink until the stream ends or close() is called."""


# ── Pull adapters ────────────────────────────────────────────────


class PullTransport(TransportAdapter):
    """Pull-based adapter: repeatedly reads the next chunk from a byte stream.

    Bytes are decoded incrementally, so a multi-byte character split across
    two reads is reassembled rather than corrupted. Undecodable bytes are
    replaced.
    """

    encoding = "utf-8"

    @abstractmethod
    def _open(self) -> AbstractAsyncContextManager[AsyncIterator[bytes | str]]:
        """Acquire the stream; the context exit must release it."""

    async def _pump(self, sink: StreamSink) -> None:
        decoder = codecs.getincrementaldecoder(self.encoding)(errors="replace")
        async with self._open() as chunks:
            async for raw in chunks:
                if self._closed:
                    return
                text = raw if isinstance(raw, str) else decoder.decode(raw)
                await self._deliver(sink, text)
            await self._deliver(sink, decoder.decode(b"", final=True))


class IterablePullTransport(PullTransport):
    """Pull adapter over any async iterable of bytes or text."""

    def __init__(self, source: AsyncIterable[bytes | str]) -> None:
        super().__init__()
        self._source = source

    @asynccontextmanager
    async def _open(self):
        iterator = aiter(self._source)
        try:
            yield iterator
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()


class HttpPullTransport(PullTransport):
    """Pull adapter over a chunked HTTP response body.

    A non-2xx status or a failed connect is a TransportStartFailure; a read
    failure once the body is flowing is a TransportMidStreamFailure.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        *,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__()
        self._client = client
        self._method = method
        self._url = url
        self._json = json
        self._headers = {"Accept": EVENT_STREAM, **(headers or {})}

    @asynccontextmanager
    async def _open(self):
        try:
            async with self._client.stream(
                self._method, self._url, json=self._json, headers=self._headers,
            ) as response:
                if not response.is_success:
                    raise TransportStartFailure(
                        f"Failed to start stream (HTTP {response.status_code})",
                        status_code=response.status_code,
                    )
                logger.debug("Stream opened: %s %s", self._method, self._url)
                try:
                    yield response.aiter_bytes()
                except httpx.HTTPError as e:
                    raise TransportMidStreamFailure(
                        f"Stream interrupted: {_short_error_reason(e)}"
                    ) from e
        except httpx.HTTPError as e:
            raise TransportStartFailure(
                f"Failed to start stream: {_short_error_reason(e)}"
            ) from e


# ── Push adapter ─────────────────────────────────────────────────


class PushChannel(Protocol):
    """A push source that reports to a PushTransport's handle_* callbacks."""

    async def connect(self, transport: PushTransport) -> None: ...

    async def aclose(self) -> None: ...


class PushTransport(TransportAdapter):
    """Push-based adapter fed by a channel's open/message/error callbacks.

    Callbacks may fire at any time from the channel's own task; they are
    queued and drained in order by run(), so the sink still sees a single
    sequential flow. Each message is treated as a raw chunk, because one
    push delivery is not guaranteed to be exactly one frame.
    """

    def __init__(self, channel: PushChannel) -> None:
        super().__init__()
        self._channel = channel
        self._queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()
        self._opened = False

    @property
    def opened(self) -> bool:
        """Whether the channel has reported a successful open."""
        return self._opened

    def handle_open(self) -> None:
        self._opened = True

    def handle_message(self, raw: str) -> None:
        if not self._closed:
            self._queue.put_nowait(("message", raw))

    def handle_error(self, cause: BaseException | str) -> None:
        if isinstance(cause, TransportError):
            error = cause
        else:
            reason = cause if isinstance(cause, str) else _short_error_reason(cause)
            if self._opened:
                error = TransportMidStreamFailure(f"Connection lost: {reason}")
            else:
                error = TransportStartFailure(f"Failed to open channel: {reason}")
            if isinstance(cause, BaseException):
                error.__cause__ = cause
        self._queue.put_nowait(("error", error))

    def handle_close(self) -> None:
        self._queue.put_nowait(("close", None))

    def close(self) -> None:
        super().close()
        # Wake a run() blocked on an empty queue
        self._queue.put_nowait(("close", None))

    async def _pump(self, sink: StreamSink) -> None:
        try:
            await self._channel.connect(self)
            while not self._closed:
                kind, value = await self._queue.get()
                if kind == "message":
                    await self._deliver(sink, value)
                elif kind == "error":
                    raise value
                else:
                    return
        finally:
            await self._channel.aclose()


class EventSourceChannel:
    """HTTP event-source push channel.

    Opens a GET request for ``text/event-stream`` in a background task and
    pushes the raw event text to the transport as it arrives. Framing is
    left to the frame parser downstream.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self._client = client
        self._url = url
        self._headers = {"Accept": EVENT_STREAM, **(headers or {})}
        self._task: asyncio.Task | None = None

    async def connect(self, transport: PushTransport) -> None:
        self._task = asyncio.create_task(self._listen(transport))

    async def aclose(self) -> None:
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)

    async def _listen(self, transport: PushTransport) -> None:
        try:
            async with self._client.stream("GET", self._url, headers=self._headers) as response:
                if not response.is_success:
                    transport.handle_error(TransportStartFailure(
                        f"Failed to open channel (HTTP {response.status_code})",
                        status_code=response.status_code,
                    ))
                    return
                transport.handle_open()
                async for text in response.aiter_text():
                    transport.handle_message(text)
            transport.handle_close()
        except httpx.HTTPError as e:
            transport.handle_error(e)
        except Exception as e:
            logger.exception("Event-source listener failed for %s", self._url)
            transport.handle_error(e)
