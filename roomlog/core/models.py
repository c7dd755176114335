"""
Data structures for shared room logs.

A room log is an ordered, append-only sequence of entries plus a map of
when each writer was last active. Entries are never edited; the only way
an entry leaves the log is front-truncation by the retention policy.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Union

SYSTEM_SENDER = "System"


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class EntryKind(str, Enum):
    """Kinds of log entries."""

    TEXT = "text"
    SYSTEM = "system"
    COMMAND = "command"
    NOTIFICATION = "notification"


@dataclass(frozen=True)
class LogEntry:
    """
    A single message in a room log.

    Attributes:
        id: Unique entry ID (uuid4), generated at write time
        sender: Label of the writer
        content: Message text
        timestamp: Generation time (UTC)
        kind: Entry kind
        metadata: Optional opaque key/value attachment
    """

    id: str
    sender: str
    content: str
    timestamp: datetime
    kind: EntryKind = EntryKind.TEXT
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self) -> None:
        """Coerce string kinds to EntryKind."""
        if not isinstance(self.kind, EntryKind):
            object.__setattr__(self, "kind", EntryKind(self.kind))

    @classmethod
    def create(
        cls,
        sender: str,
        content: str,
        kind: Union[EntryKind, str] = EntryKind.TEXT,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "LogEntry":
        """
        Build a new entry with a fresh ID and the current timestamp.

        Args:
            sender: Label of the writer
            content: Message text
            kind: Entry kind
            metadata: Optional metadata

        Returns:
            New entry
        """
        return cls(
            id=str(uuid.uuid4()),
            sender=sender,
            content=content,
            timestamp=utcnow(),
            kind=EntryKind(kind),
            metadata=metadata,
        )


@dataclass
class RoomLog:
    """
    The shared log for one room.

    Attributes:
        resource_id: External room identifier (typically a project path)
        entries: Entries in append order
        created_at: When the room was first persisted
        last_seen: Writer label -> most recent activity (last write wins)
    """

    resource_id: str
    entries: List[LogEntry] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    last_seen: Dict[str, datetime] = field(default_factory=dict)

    @classmethod
    def empty(cls, resource_id: str) -> "RoomLog":
        """Create an empty log stamped with the current time."""
        return cls(resource_id=resource_id)

    def append(self, entry: LogEntry) -> None:
        self.entries.append(entry)

    def touch(self, label: str, when: Optional[datetime] = None) -> None:
        """Record activity for a writer label."""
        self.last_seen[label] = when or utcnow()

    def senders(self) -> Set[str]:
        """Distinct senders of entries, excluding system messages."""
        return {e.sender for e in self.entries if e.sender != SYSTEM_SENDER}


@dataclass
class Identity:
    """
    Label assigned to one process for its lifetime.

    Attributes:
        label: Unique human-readable name
        created_at: When the label was assigned
    """

    label: str
    created_at: datetime = field(default_factory=utcnow)
