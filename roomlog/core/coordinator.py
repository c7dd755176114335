"""
Atomic read-modify-write of room logs across processes.

Protocol for update(resource_id, *mutations):
    1. Queue on the in-process lock for the room
    2. Pre-create the room file if missing (best-effort, unlocked)
    3. Acquire the cross-process file lock
    4. Reload the log from disk
    5. Apply the mutations in order
    6. Enforce retention
    7. Save
    8. Release the file lock on every path, then the in-process lock

Updates to one room are linearized by the file lock; updates to
different rooms are independent.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Optional

from roomlog.core.errors import ResourceDisappearedError
from roomlog.core.filelock import FileLock, FileLockConfig
from roomlog.core.models import SYSTEM_SENDER, EntryKind, LogEntry, RoomLog
from roomlog.core.mutex import LockManager
from roomlog.core.retention import RetentionPolicy
from roomlog.core.store import DurableStore
from roomlog.utils.logging import get_logger

logger = get_logger(__name__)


class Mutation(ABC):
    """A change applied to a room log inside the critical section."""

    @abstractmethod
    def apply(self, log: RoomLog) -> None:
        """Apply the change in place."""


class AppendEntry(Mutation):
    """Append one entry and mark its sender as active."""

    def __init__(self, entry: LogEntry):
        self.entry = entry

    def apply(self, log: RoomLog) -> None:
        log.append(self.entry)
        if self.entry.sender != SYSTEM_SENDER:
            log.touch(self.entry.sender, self.entry.timestamp)

    def __repr__(self) -> str:
        return f"AppendEntry(id={self.entry.id!r}, sender={self.entry.sender!r})"


class TouchWriter(Mutation):
    """Heartbeat: update a writer's last-seen time without appending."""

    def __init__(self, label: str, when: Optional[datetime] = None):
        self.label = label
        self.when = when

    def apply(self, log: RoomLog) -> None:
        log.touch(self.label, self.when)

    def __repr__(self) -> str:
        return f"TouchWriter(label={self.label!r})"


class AnnounceRoom(Mutation):
    """Add a system entry naming the creator if the room has no entries yet."""

    def __init__(self, creator: str):
        self.creator = creator

    def apply(self, log: RoomLog) -> None:
        if log.entries:
            return
        log.append(
            LogEntry.create(
                sender=SYSTEM_SENDER,
                content=f"Chat room created by {self.creator}",
                kind=EntryKind.SYSTEM,
            )
        )

    def __repr__(self) -> str:
        return f"AnnounceRoom(creator={self.creator!r})"


class ApplyFunction(Mutation):
    """Wrap an arbitrary callable as a mutation."""

    def __init__(self, fn: Callable[[RoomLog], None]):
        self.fn = fn

    def apply(self, log: RoomLog) -> None:
        self.fn(log)

    def __repr__(self) -> str:
        return f"ApplyFunction({getattr(self.fn, '__name__', self.fn)!r})"


class AtomicUpdateCoordinator:
    """
    Serializes updates to room logs within and across processes.

    Features:
    - Keyed in-process queueing in front of the file lock
    - Cross-process advisory file lock with bounded retries
    - Fresh reload under the lock (never a stale snapshot)
    - Retention enforced on every update
    """

    def __init__(
        self,
        store: DurableStore,
        retention: Optional[RetentionPolicy] = None,
        lock_config: Optional[FileLockConfig] = None,
        lock_manager: Optional[LockManager] = None,
    ):
        """
        Initialize coordinator.

        Args:
            store: Durable store for room files
            retention: Retention policy (default ceiling if None)
            lock_config: File lock settings
            lock_manager: In-process lock registry (private one if None)
        """
        self.store = store
        self.retention = retention or RetentionPolicy()
        self.lock_config = lock_config or FileLockConfig()
        self.lock_manager = lock_manager or LockManager()

    async def update(self, resource_id: str, *mutations: Mutation) -> RoomLog:
        """
        Atomically apply mutations to a room log.

        Args:
            resource_id: Room identifier
            *mutations: Changes applied in order

        Returns:
            The log as saved

        Raises:
            LockTimeoutError: If the file lock could not be acquired
            ResourceDisappearedError: If the room file vanished before locking
            Exception: Whatever a mutation raised, unchanged (nothing is saved)
        """
        async with self.lock_manager.get_lock(resource_id):
            return await self._locked_update(resource_id, mutations)

    async def _locked_update(self, resource_id: str, mutations) -> RoomLog:
        if not await self.store.exists(resource_id):
            await self.store.create_if_absent(RoomLog.empty(resource_id))

        file_lock = FileLock(
            self.store.resource_path(resource_id),
            config=self.lock_config,
            executor=self.store.executor,
        )

        await file_lock.acquire()
        try:
            log = await self.store.load(resource_id)
            if log is None:
                raise ResourceDisappearedError(resource_id)

            for mutation in mutations:
                mutation.apply(log)

            self.retention.prune(log)

            await self.store.save(log)

            logger.debug(
                "Updated room",
                resource_id=resource_id,
                mutations=len(mutations),
                entries=len(log.entries),
            )

            return log
        finally:
            try:
                await file_lock.release()
            except Exception as e:
                logger.warning(
                    "Failed to release lock",
                    resource_id=resource_id,
                    lock_path=str(file_lock.lock_path),
                    error=str(e),
                )
