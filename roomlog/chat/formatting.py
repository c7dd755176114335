"""Plain-text rendering of room operation results."""

from typing import List, Sequence

from roomlog.chat.manager import RoomStats
from roomlog.core.models import LogEntry

NO_MESSAGES = "(No messages found)"


def format_entry(entry: LogEntry) -> str:
    time = entry.timestamp.astimezone().strftime("%H:%M:%S")
    return f"[{time}] {entry.sender}: {entry.content}"


def format_entries(entries: Sequence[LogEntry]) -> str:
    if not entries:
        return NO_MESSAGES
    return "\n".join(format_entry(e) for e in entries)


def format_read(label: str, entries: Sequence[LogEntry]) -> str:
    return (
        f"You are: {label}\n\n"
        f"Messages retrieved: {len(entries)}\n"
        f"{format_entries(entries)}"
    )


def format_search(label: str, query: str, entries: Sequence[LogEntry]) -> str:
    return (
        f"You are: {label}\n\n"
        f'Found {len(entries)} messages matching "{query}":\n'
        f"{format_entries(entries)}"
    )


def format_labels(label: str, labels: List[str]) -> str:
    return f"You are: {label}\n\nAgents in this chat room:\n{', '.join(labels)}"


def format_stats(label: str, resource_id: str, stats: RoomStats) -> str:
    senders = ", ".join(stats.distinct_senders) or "(none)"
    return (
        f"You are: {label}\n\n"
        f"Chat room: {resource_id}\n"
        f"Created: {stats.created_at.isoformat()}\n"
        f"Messages: {stats.total_entries}\n"
        f"Agents: {senders}"
    )
