"""
Entry retention policy for room logs.

A single ceiling bounds the number of entries kept per room. Pruning is
strictly FIFO by append order: the oldest entries go first, regardless of
content, sender or kind.
"""

import re
from typing import Any, Optional

from roomlog.core.models import RoomLog
from roomlog.utils.config import get_config
from roomlog.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_RETENTION_LIMIT = 1000
MIN_RETENTION_LIMIT = 100
MAX_RETENTION_LIMIT = 50000
RETENTION_ENV_VAR = "MCP_MESSAGE_RETENTION_LIMIT"

LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def resolve_retention_limit(raw: Any) -> int:
    """
    Turn a configured retention value into a usable ceiling.

    Invalid configuration never raises. The leading integer of the value is
    used ("1500abc" and "1500.7" both give 1500). Values without one fall
    back to the default; out-of-range values are clamped with a warning.

    Args:
        raw: Configured value (int, numeric string or None)

    Returns:
        Ceiling in [MIN_RETENTION_LIMIT, MAX_RETENTION_LIMIT]
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return DEFAULT_RETENTION_LIMIT

    match = LEADING_INT.match(str(raw))
    if match is None:
        logger.warning(
            "Invalid retention limit, using default",
            env_var=RETENTION_ENV_VAR,
            value=str(raw),
            default=DEFAULT_RETENTION_LIMIT,
        )
        return DEFAULT_RETENTION_LIMIT

    limit = int(match.group(1))

    if limit < MIN_RETENTION_LIMIT:
        logger.warning(
            "Retention limit too low, using minimum",
            env_var=RETENTION_ENV_VAR,
            value=limit,
            minimum=MIN_RETENTION_LIMIT,
        )
        return MIN_RETENTION_LIMIT

    if limit > MAX_RETENTION_LIMIT:
        logger.warning(
            "Retention limit too high, using maximum",
            env_var=RETENTION_ENV_VAR,
            value=limit,
            maximum=MAX_RETENTION_LIMIT,
        )
        return MAX_RETENTION_LIMIT

    return limit


class RetentionPolicy:
    """
    Bounds the number of entries kept in a room log.

    The constructor accepts any positive ceiling; clamping to the supported
    range only applies to values read from configuration.
    """

    def __init__(self, max_entries: int = DEFAULT_RETENTION_LIMIT):
        """
        Initialize retention policy.

        Args:
            max_entries: Maximum entries kept per room
        """
        if max_entries < 1:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self.max_entries = max_entries

    @classmethod
    def from_config(cls, config: Optional[Any] = None) -> "RetentionPolicy":
        """
        Build a policy from configuration.

        Args:
            config: Config instance (defaults to the global config)

        Returns:
            Retention policy with a clamped ceiling
        """
        if config is None:
            config = get_config()

        return cls(resolve_retention_limit(config.get("retention.max_entries")))

    def prune(self, log: RoomLog) -> int:
        """
        Drop the oldest entries beyond the ceiling.

        Args:
            log: Log to prune in place

        Returns:
            Number of entries dropped
        """
        excess = len(log.entries) - self.max_entries
        if excess <= 0:
            return 0

        del log.entries[:excess]

        logger.debug(
            "Pruned old messages",
            resource_id=log.resource_id,
            dropped=excess,
            retained=len(log.entries),
        )

        return excess
