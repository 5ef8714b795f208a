"""Transcript export formatters.

Provides JSON and Markdown export functions for committed entries.
"""

from __future__ import annotations

import json

from ledgerstream.schemas.messages import CommittedEntry


def export_json(entries: list[CommittedEntry]) -> str:
    """Export committed entries as a formatted JSON array.

    Returns:
        Pretty-printed JSON string, one object per entry in order.
    """
    return json.dumps([e.model_dump(mode="json") for e in entries], indent=2)


def export_markdown(conversation_id: str, entries: list[CommittedEntry]) -> str:
    """Export a conversation transcript as human-readable Markdown.

    Returns:
        Markdown-formatted string with one section per entry.
    """
    lines: list[str] = []

    lines.append(f"# Conversation: {conversation_id}")
    lines.append("")
    lines.append(f"- **Entries:** {len(entries)}")
    if entries:
        lines.append(f"- **Started:** {entries[0].created_at.isoformat()}")
        lines.append(f"- **Last Entry:** {entries[-1].created_at.isoformat()}")
    lines.append("")

    for entry in entries:
        lines.append(f"## {entry.role.value.title()}")
        lines.append("")
        lines.append(f"*{entry.created_at.isoformat()}*")
        lines.append("")
        lines.append(entry.content if entry.content else "*(empty)*")
        lines.append("")

    lines.append("---")
    lines.append("*Generated by ledgerstream*")
    lines.append("")

    return "\n".join(lines)
