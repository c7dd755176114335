"""
Core room log storage.

This package provides the durable shared log:
- Codec between RoomLog and compressed bytes
- File-backed store keyed by a hash of the room identifier
- Cross-process file lock and in-process keyed mutex
- Atomic update coordinator with retention enforcement
"""

from roomlog.core.coordinator import (
    AnnounceRoom,
    AppendEntry,
    ApplyFunction,
    AtomicUpdateCoordinator,
    Mutation,
    TouchWriter,
)
from roomlog.core.errors import (
    CorruptDataError,
    LockTimeoutError,
    NotInitializedError,
    ResourceDisappearedError,
    ResourceNotFoundError,
    RoomLogError,
)
from roomlog.core.filelock import FileLock, FileLockConfig
from roomlog.core.mutex import AsyncLock, LockManager
from roomlog.core.retention import RetentionPolicy, resolve_retention_limit
from roomlog.core.store import DurableStore

__all__ = [
    "AnnounceRoom",
    "AppendEntry",
    "ApplyFunction",
    "AtomicUpdateCoordinator",
    "Mutation",
    "TouchWriter",
    "CorruptDataError",
    "LockTimeoutError",
    "NotInitializedError",
    "ResourceDisappearedError",
    "ResourceNotFoundError",
    "RoomLogError",
    "FileLock",
    "FileLockConfig",
    "AsyncLock",
    "LockManager",
    "RetentionPolicy",
    "resolve_retention_limit",
    "DurableStore",
]
