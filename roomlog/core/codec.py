"""
Serialization codec for room logs.

Encoding pipeline:
    RoomLog -> JSON document (ISO-8601 timestamps) -> UTF-8 -> gzip

Decoding reverses it exactly. Any failure along the way raises
CorruptDataError; the codec never decides recovery policy.

Document layout:
    {
      "projectPath": str,
      "messages": [
        {"id", "sender", "content", "timestamp", "type", "metadata"?}
      ],
      "createdAt": str,
      "lastSeen": {label: str}
    }
"""

import gzip
import json
import zlib
from datetime import datetime, timezone
from typing import Any, Dict

from roomlog.core.errors import CorruptDataError
from roomlog.core.models import EntryKind, Identity, LogEntry, RoomLog
from roomlog.utils.logging import get_logger

logger = get_logger(__name__)

COMPRESS_LEVEL = 6


def format_timestamp(value: datetime) -> str:
    """Render a datetime as ISO-8601, keeping microseconds."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp.

    Accepts a trailing "Z" (as written by JavaScript's toISOString) and
    treats naive values as UTC.

    Raises:
        ValueError: If the string is not a timestamp
    """
    if not isinstance(value, str):
        raise ValueError(f"Timestamp must be a string, got {type(value).__name__}")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _entry_to_dict(entry: LogEntry) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": entry.id,
        "sender": entry.sender,
        "content": entry.content,
        "timestamp": format_timestamp(entry.timestamp),
        "type": entry.kind.value,
    }
    if entry.metadata is not None:
        data["metadata"] = entry.metadata
    return data


def _entry_from_dict(data: Dict[str, Any]) -> LogEntry:
    return LogEntry(
        id=str(data["id"]),
        sender=str(data["sender"]),
        content=str(data["content"]),
        timestamp=parse_timestamp(data["timestamp"]),
        kind=EntryKind(data.get("type", EntryKind.TEXT.value)),
        metadata=data.get("metadata"),
    )


def log_to_dict(log: RoomLog) -> Dict[str, Any]:
    """Convert a log to its JSON document form."""
    return {
        "projectPath": log.resource_id,
        "messages": [_entry_to_dict(e) for e in log.entries],
        "createdAt": format_timestamp(log.created_at),
        "lastSeen": {
            label: format_timestamp(ts) for label, ts in log.last_seen.items()
        },
    }


def log_from_dict(data: Dict[str, Any]) -> RoomLog:
    """
    Build a log from its JSON document form.

    Raises:
        CorruptDataError: If required fields are missing or malformed
    """
    try:
        return RoomLog(
            resource_id=str(data["projectPath"]),
            entries=[_entry_from_dict(m) for m in data["messages"]],
            created_at=parse_timestamp(data["createdAt"]),
            last_seen={
                str(label): parse_timestamp(ts)
                for label, ts in (data.get("lastSeen") or {}).items()
            },
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise CorruptDataError(f"Invalid room log structure: {e}") from e


def encode(log: RoomLog) -> bytes:
    """
    Encode a log into compressed bytes.

    Args:
        log: Log to encode

    Returns:
        gzip-compressed JSON
    """
    raw = json.dumps(log_to_dict(log), indent=2).encode("utf-8")
    compressed = gzip.compress(raw, compresslevel=COMPRESS_LEVEL)

    logger.debug(
        "Encoded room log",
        resource_id=log.resource_id,
        entries=len(log.entries),
        original_size=len(raw),
        compressed_size=len(compressed),
    )

    return compressed


def decode(data: bytes) -> RoomLog:
    """
    Decode compressed bytes into a log.

    Args:
        data: Bytes produced by encode()

    Returns:
        Decoded log

    Raises:
        CorruptDataError: On a bad compression stream, invalid UTF-8,
            invalid JSON or an invalid document structure
    """
    try:
        raw = gzip.decompress(data)
        document = json.loads(raw.decode("utf-8"))
    except (OSError, EOFError, zlib.error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CorruptDataError(f"Cannot decode room log: {e}") from e

    if not isinstance(document, dict):
        raise CorruptDataError(
            f"Room log must be a JSON object, got {type(document).__name__}"
        )

    return log_from_dict(document)


def encode_identity(identity: Identity) -> bytes:
    """Encode a process identity record as plain JSON."""
    document = {
        "name": identity.label,
        "createdAt": format_timestamp(identity.created_at),
    }
    return json.dumps(document, indent=2).encode("utf-8")


def decode_identity(data: bytes) -> Identity:
    """
    Decode a process identity record.

    Raises:
        CorruptDataError: If the record is not a valid identity
    """
    try:
        document = json.loads(data.decode("utf-8"))
        return Identity(
            label=str(document["name"]),
            created_at=parse_timestamp(document["createdAt"]),
        )
    except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise CorruptDataError(f"Invalid identity record: {e}") from e
