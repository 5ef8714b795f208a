"""Session reconciler: commits stream outcomes into the message store.

Successful streams become immutable CommittedEntry records appended in
arrival order. Failures are recorded for display and never touch
committed history.
"""

from __future__ import annotations

import logging
from typing import Any

from ledgerstream.events import EventType, StreamEventEmitter
from ledgerstream.persistence.store import MessageStore
from ledgerstream.schemas.messages import CommittedEntry, Role, StreamFailure

logger = logging.getLogger(__name__)


class SessionReconciler:
    """Writes committed entries and records stream failures.

    Each commit() call creates exactly one new entry; there is no
    deduplication, so callers must not commit the same outcome twice.
    """

    def __init__(
        self,
        store: MessageStore,
        *,
        emitter: StreamEventEmitter | None = None,
    ) -> None:
        self._store = store
        self._emitter = emitter
        self._last_errors: dict[str, StreamFailure] = {}

    @property
    def store(self) -> MessageStore:
        return self._store

    async def commit(
        self,
        conversation_id: str,
        role: Role,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> CommittedEntry:
        """Append a new immutable entry to the store."""
        entry = CommittedEntry(
            conversation_id=conversation_id,
            role=role,
            content=content,
            metadata=metadata or {},
        )
        await self._store.append(entry)
        logger.info(
            "Committed %s entry %s to conversation %s (%d chars)",
            entry.role.value, entry.entry_id, conversation_id, len(content),
        )
        if self._emitter:
            await self._emitter.emit(
                EventType.ENTRY_COMMITTED,
                conversation_id,
                entry_id=entry.entry_id,
                role=entry.role.value,
                length=len(content),
            )
        return entry

    async def record_error(
        self,
        conversation_id: str,
        kind: str,
        reason: str,
        partial_length: int = 0,
    ) -> StreamFailure:
        """Surface a failed stream without mutating committed history."""
        failure = StreamFailure(
            conversation_id=conversation_id,
            kind=kind,
            reason=reason,
            partial_length=partial_length,
        )
        self._last_errors[conversation_id] = failure
        logger.warning(
            "Stream failed for conversation %s (%s): %s",
            conversation_id, kind, reason,
        )
        if self._emitter:
            await self._emitter.emit(
                EventType.STREAM_FAILED,
                conversation_id,
                kind=kind,
                reason=reason,
                partial_length=partial_length,
            )
        return failure

    def last_error(self, conversation_id: str) -> StreamFailure | None:
        """Most recent failure for a conversation, if any."""
        return self._last_errors.get(conversation_id)
