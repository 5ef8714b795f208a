"""Stream events published by controllers, the reconciler and preview trackers.

Every event belongs to one conversation. Subscribers may listen to all of
them or only to a single conversation. Chunk events carry just the new
payload (``delta``); a subscriber that wants the whole reply rebuilds it
from deltas or reads the controller snapshot.

The emitter keeps a short backlog of lifecycle events for late subscribers.
Chunk events are delivered live only and never retained, so nothing here
outlives a stream in proportion to its length.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

DEFAULT_BACKLOG = 64


class EventType(StrEnum):
    """Types of stream events emitted to listeners."""

    STREAM_STARTED = "stream_started"
    CHUNK_RECEIVED = "chunk_received"
    STREAM_COMPLETED = "stream_completed"
    STREAM_FAILED = "stream_failed"
    STREAM_CANCELLED = "stream_cancelled"
    ENTRY_COMMITTED = "entry_committed"
    PREVIEW_UPDATED = "preview_updated"

    @property
    def retained(self) -> bool:
        """Whether events of this type are kept in the backlog."""
        return self is not EventType.CHUNK_RECEIVED


class StreamEvent(BaseModel):
    """One published event."""

    model_config = ConfigDict(frozen=True)

    type: EventType
    conversation_id: str = Field(description="Conversation (or design session) the event belongs to")
    sequence: int = Field(ge=1, description="Publication order within one emitter")
    timestamp: float = Field(default_factory=time.time)
    data: dict[str, Any] = Field(default_factory=dict)


EventListener = Callable[[StreamEvent], Any]


@dataclass
class _Subscription:
    listener: EventListener
    conversation_id: str | None

    def wants(self, event: StreamEvent) -> bool:
        return self.conversation_id is None or self.conversation_id == event.conversation_id


class StreamEventEmitter:
    """Fans stream events out to subscribed listeners.

    Listeners can be sync or async callables. A listener that raises is
    logged and skipped; the stream that published the event carries on.
    """

    def __init__(self, *, backlog: int = DEFAULT_BACKLOG) -> None:
        self._subscriptions: list[_Subscription] = []
        self._backlog: deque[StreamEvent] = deque(maxlen=backlog)
        self._sequence = 0

    def subscribe(
        self,
        listener: EventListener,
        *,
        conversation_id: str | None = None,
    ) -> Callable[[], None]:
        """Register a listener, optionally for one conversation only.

        Returns:
            A callable that removes the subscription. Calling it twice is
            harmless.
        """
        subscription = _Subscription(listener, conversation_id)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

        return unsubscribe

    def recent(self, conversation_id: str | None = None) -> list[StreamEvent]:
        """Retained lifecycle events, oldest first."""
        return [
            event for event in self._backlog
            if conversation_id is None or event.conversation_id == conversation_id
        ]

    async def emit(
        self,
        event_type: EventType,
        conversation_id: str,
        **data: Any,
    ) -> StreamEvent:
        self._sequence += 1
        event = StreamEvent(
            type=event_type,
            conversation_id=conversation_id,
            sequence=self._sequence,
            data=data,
        )
        if event_type.retained:
            self._backlog.append(event)

        # Listeners may unsubscribe while being notified
        for subscription in list(self._subscriptions):
            if not subscription.wants(event):
                continue
            try:
                result = subscription.listener(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception(
                    "Listener failed on %s for conversation %s", event_type, conversation_id,
                )
        return event
