"""ledgerstream persistence layer.

Append-only storage for committed conversation entries, in memory or
SQLite-backed, with transcript export (JSON/Markdown).
"""

from ledgerstream.persistence.database import close_db, init_db
from ledgerstream.persistence.export import export_json, export_markdown
from ledgerstream.persistence.store import (
    InMemoryMessageStore,
    MessageStore,
    SqliteMessageStore,
)

__all__ = [
    "InMemoryMessageStore",
    "MessageStore",
    "SqliteMessageStore",
    "close_db",
    "export_json",
    "export_markdown",
    "init_db",
]
