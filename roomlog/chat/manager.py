"""
Room operations for one writer process.

ChatManager is what a front end talks to: it owns the process identity,
appends through the atomic update coordinator and always reloads from
disk for reads so it sees entries written by other processes.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from roomlog.core.coordinator import (
    AnnounceRoom,
    AppendEntry,
    AtomicUpdateCoordinator,
    TouchWriter,
)
from roomlog.core.codec import parse_timestamp
from roomlog.core.errors import NotInitializedError, ResourceNotFoundError
from roomlog.core.filelock import FileLockConfig
from roomlog.core.models import EntryKind, Identity, LogEntry, utcnow
from roomlog.core.retention import RetentionPolicy
from roomlog.core.store import DurableStore
from roomlog.identity.namer import LabelPool
from roomlog.identity.store import IdentityStore
from roomlog.utils.config import Config, get_config
from roomlog.utils.logging import get_logger, log_duration

logger = get_logger(__name__)

DEFAULT_ACTIVITY_WINDOW = timedelta(minutes=5)


@dataclass
class RoomStats:
    """
    Summary of one room.

    Attributes:
        created_at: When the room was created
        total_entries: Entries currently retained
        distinct_senders: Sorted non-system senders among retained entries
    """
    created_at: datetime
    total_entries: int
    distinct_senders: List[str]


class ChatManager:
    """
    Manages shared rooms on behalf of a single writer process.

    Each process is one agent with one label for its lifetime.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        store: Optional[DurableStore] = None,
        identity_store: Optional[IdentityStore] = None,
        pool: Optional[LabelPool] = None,
        coordinator: Optional[AtomicUpdateCoordinator] = None,
    ):
        """
        Initialize chat manager.

        Args:
            config: Configuration (global config if None)
            store: Room store (built from storage.data_dir if None)
            identity_store: Identity store (built from storage.identity_dir if None)
            pool: Label pool
            coordinator: Update coordinator (built from config if None)
        """
        self.config = config or get_config()
        self.store = store or DurableStore(Path(self.config.get("storage.data_dir")))
        self.identity_store = identity_store or IdentityStore(
            Path(self.config.get("storage.identity_dir"))
        )
        self.pool = pool or LabelPool()
        self.coordinator = coordinator or AtomicUpdateCoordinator(
            self.store,
            retention=RetentionPolicy.from_config(self.config),
            lock_config=FileLockConfig.from_config(self.config),
        )
        self._identity: Optional[Identity] = None

    async def initialize(self) -> None:
        """Load or create this process's identity."""
        async with log_duration(logger, "Initialized chat manager"):
            self._identity = await self.identity_store.load_or_create(self.pool)
            logger.info("Agent identity assigned", label=self._identity.label)

    @property
    def identity(self) -> Identity:
        if self._identity is None:
            raise NotInitializedError("ChatManager not initialized")
        return self._identity

    def get_own_label(self) -> str:
        return self.identity.label

    async def append(
        self,
        resource_id: str,
        content: str,
        kind: Union[EntryKind, str] = EntryKind.TEXT,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Append a message to a room.

        A new room first gets a system entry naming its creator.

        Args:
            resource_id: Room identifier
            content: Message text
            kind: Entry kind
            metadata: Optional metadata

        Returns:
            ID of the new entry
        """
        label = self.get_own_label()
        entry = LogEntry.create(sender=label, content=content, kind=kind, metadata=metadata)

        async with log_duration(
            logger,
            "Sent message",
            sender=label,
            kind=entry.kind.value,
            resource_id=resource_id,
        ):
            await self.coordinator.update(
                resource_id,
                AnnounceRoom(label),
                AppendEntry(entry),
            )

        return entry.id

    async def touch(self, resource_id: str) -> None:
        """Heartbeat: mark this process as active without appending."""
        await self.coordinator.update(resource_id, TouchWriter(self.get_own_label()))

    async def _entries(self, resource_id: str) -> List[LogEntry]:
        log = await self.store.load(resource_id)
        if log is None:
            logger.debug("No chat room found", resource_id=resource_id)
            return []
        return log.entries

    async def recent(self, resource_id: str, count: int) -> List[LogEntry]:
        """
        Last entries of a room, oldest first.

        Args:
            resource_id: Room identifier
            count: Maximum number of entries

        Returns:
            Up to count most recent entries
        """
        entries = await self._entries(resource_id)
        result = entries[-count:] if count > 0 else []

        logger.debug(
            "Retrieved messages",
            resource_id=resource_id,
            count=len(result),
            total=len(entries),
        )

        return result

    async def filtered(
        self,
        resource_id: str,
        count: Optional[int] = None,
        since_timestamp: Optional[Union[str, datetime]] = None,
        last_seconds: Optional[float] = None,
    ) -> List[LogEntry]:
        """
        Entries of a room matching time and count filters.

        Filters apply in order: since_timestamp (inclusive), then the
        last_seconds window, then count taken from the most recent end.

        Args:
            resource_id: Room identifier
            count: Maximum number of entries
            since_timestamp: ISO-8601 string or datetime lower bound
            last_seconds: Only entries from the last N seconds

        Returns:
            Matching entries, oldest first

        Raises:
            ValueError: If since_timestamp is not a valid timestamp
        """
        entries = await self._entries(resource_id)

        if since_timestamp is not None:
            if isinstance(since_timestamp, str):
                since = parse_timestamp(since_timestamp)
            elif since_timestamp.tzinfo is None:
                since = since_timestamp.replace(tzinfo=timezone.utc)
            else:
                since = since_timestamp
            entries = [e for e in entries if e.timestamp >= since]

        if last_seconds is not None:
            cutoff = utcnow() - timedelta(seconds=last_seconds)
            entries = [e for e in entries if e.timestamp >= cutoff]

        if count is not None:
            entries = entries[-count:] if count > 0 else []

        return entries

    async def search(self, resource_id: str, query: str) -> List[LogEntry]:
        """Entries whose content contains query, ignoring case."""
        needle = query.casefold()
        return [
            e for e in await self._entries(resource_id)
            if needle in e.content.casefold()
        ]

    async def active_labels(
        self,
        resource_id: str,
        activity_window: timedelta = DEFAULT_ACTIVITY_WINDOW,
    ) -> List[str]:
        """
        Labels active in a room within the activity window.

        This process's own label is always included.

        Args:
            resource_id: Room identifier
            activity_window: How far back activity counts

        Returns:
            Sorted distinct labels
        """
        own = self.get_own_label()
        log = await self.store.load(resource_id)

        active = {own}
        if log is not None:
            cutoff = utcnow() - activity_window
            active.update(label for label, seen in log.last_seen.items() if seen > cutoff)

        return sorted(active)

    async def resource_stats(self, resource_id: str) -> RoomStats:
        """
        Statistics for a room.

        Raises:
            ResourceNotFoundError: If the room was never written
        """
        log = await self.store.load(resource_id)
        if log is None:
            raise ResourceNotFoundError(resource_id)

        return RoomStats(
            created_at=log.created_at,
            total_entries=len(log.entries),
            distinct_senders=sorted(log.senders()),
        )

    async def stats(self) -> Dict[str, Any]:
        """Own label and number of persisted rooms."""
        rooms = await self.store.list_resources()
        return {
            "label": self.get_own_label(),
            "total_rooms": len(rooms),
        }

    async def delete(self, resource_id: str) -> None:
        await self.store.delete_resource(resource_id)
