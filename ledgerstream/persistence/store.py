"""Append-only message stores for committed entries.

The engine only ever appends; stores guarantee insertion-order iteration
per conversation. InMemoryMessageStore backs tests and one-off CLI runs,
SqliteMessageStore backs persistent history.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Protocol

import aiosqlite

from ledgerstream.schemas.messages import CommittedEntry

logger = logging.getLogger(__name__)


class MessageStore(Protocol):
    """Downstream collaborator receiving committed entries."""

    async def append(self, entry: CommittedEntry) -> None: ...

    async def list_entries(self, conversation_id: str) -> list[CommittedEntry]: ...

    async def list_conversations(self) -> list[str]: ...

    async def count_entries(self, conversation_id: str | None = None) -> int: ...


class InMemoryMessageStore:
    """Process-local store; entries are lost when the process exits."""

    def __init__(self) -> None:
        self._entries: list[CommittedEntry] = []

    async def append(self, entry: CommittedEntry) -> None:
        self._entries.append(entry)

    async def list_entries(self, conversation_id: str) -> list[CommittedEntry]:
        return [e for e in self._entries if e.conversation_id == conversation_id]

    async def list_conversations(self) -> list[str]:
        return list(dict.fromkeys(e.conversation_id for e in self._entries))

    async def count_entries(self, conversation_id: str | None = None) -> int:
        if conversation_id is None:
            return len(self._entries)
        return sum(1 for e in self._entries if e.conversation_id == conversation_id)


class SqliteMessageStore:
    """Persistent store backed by SQLite.

    All methods are async and operate on an aiosqlite connection
    initialized by database.init_db().
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def append(self, entry: CommittedEntry) -> None:
        """Insert one entry and commit immediately."""
        await self._db.execute(
            """
            INSERT INTO entries
                (entry_id, conversation_id, role, content, created_at, metadata_json)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                entry.entry_id,
                entry.conversation_id,
                entry.role.value,
                entry.content,
                entry.created_at.isoformat(),
                json.dumps(entry.metadata),
            ),
        )
        await self._db.commit()
        logger.debug("Stored %s entry %s", entry.role.value, entry.entry_id)

    async def list_entries(self, conversation_id: str) -> list[CommittedEntry]:
        """Return a conversation's entries in insertion order."""
        self._db.row_factory = aiosqlite.Row
        entries: list[CommittedEntry] = []
        async with self._db.execute(
            "SELECT * FROM entries WHERE conversation_id = ? ORDER BY seq",
            (conversation_id,),
        ) as cursor:
            async for row in cursor:
                entries.append(CommittedEntry(
                    entry_id=row["entry_id"],
                    conversation_id=row["conversation_id"],
                    role=row["role"],
                    content=row["content"],
                    created_at=datetime.fromisoformat(row["created_at"]),
                    metadata=json.loads(row["metadata_json"]),
                ))
        return entries

    async def list_conversations(self) -> list[str]:
        """Return conversation IDs ordered by their first entry."""
        async with self._db.execute(
            "SELECT conversation_id FROM entries"
            " GROUP BY conversation_id ORDER BY MIN(seq)",
        ) as cursor:
            rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def count_entries(self, conversation_id: str | None = None) -> int:
        """Count entries, optionally for a single conversation."""
        if conversation_id is None:
            sql, params = "SELECT COUNT(*) FROM entries", ()
        else:
            sql = "SELECT COUNT(*) FROM entries WHERE conversation_id = ?"
            params = (conversation_id,)
        async with self._db.execute(sql, params) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0
