"""
roomlog - Shared, append-only message rooms backed by compressed files.

Independent processes on one host exchange messages by reading and writing
a per-room log file:
- gzip-compressed JSON log per room
- Atomic cross-process updates under an advisory file lock
- FIFO retention with a configurable ceiling
- Unique human-readable label per writer process
"""

__version__ = "0.1.0"

from roomlog.chat.manager import ChatManager, RoomStats
from roomlog.core.models import EntryKind, Identity, LogEntry, RoomLog

__all__ = [
    "ChatManager",
    "RoomStats",
    "EntryKind",
    "Identity",
    "LogEntry",
    "RoomLog",
]
