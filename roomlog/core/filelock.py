"""
Cross-process advisory lock for a single file.

The lock is a sibling directory ``<file>.lock``. Creating a directory is
atomic on every local filesystem, so whoever creates it owns the lock.
Only processes that follow the same convention are excluded; the target
file itself is never locked by the OS.

Staleness:
    A lock whose directory mtime is older than ``stale_ms`` is treated as
    abandoned by a crashed holder and may be reclaimed. A live holder
    touches the directory every ``update_ms`` (default ``stale_ms / 2``).

Ownership:
    Each acquisition writes a fresh token to ``<file>.lock/owner``. A holder
    stalled past ``stale_ms`` finds a foreign token on its next refresh or
    on release, marks itself compromised and leaves the directory alone.
    Every removal (release or reclaim) happens under a second directory,
    ``<file>.lock.guard``, so a directory is never removed after someone
    else has replaced it.

Acquisition retries with exponential backoff and jitter, then gives up
with LockTimeoutError.
"""

import asyncio
import os
import random
import time
import uuid
from concurrent.futures import Executor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from roomlog.core.errors import LockTimeoutError
from roomlog.utils.config import get_config
from roomlog.utils.logging import get_logger

logger = get_logger(__name__)

LOCK_SUFFIX = ".lock"
GUARD_SUFFIX = ".guard"
OWNER_FILE = "owner"

# The guard is held for a few filesystem calls only.
GUARD_STALE_MS = 2000
GUARD_WAIT_MS = 2 * GUARD_STALE_MS
GUARD_POLL_MS = 5


@dataclass
class FileLockConfig:
    """
    Configuration for file lock acquisition.

    Attributes:
        retries: Retry attempts after the first failed try
        min_timeout_ms: Initial backoff in milliseconds
        max_timeout_ms: Maximum backoff in milliseconds
        factor: Backoff growth factor per attempt
        jitter_ms: Random jitter added to each backoff
        stale_ms: Age after which a lock is considered abandoned
        update_ms: Refresh interval while held (None = stale_ms / 2)
    """
    retries: int = 10
    min_timeout_ms: int = 100
    max_timeout_ms: int = 2000
    factor: float = 2
    jitter_ms: int = 20
    stale_ms: int = 10000
    update_ms: Optional[int] = None

    def __post_init__(self) -> None:
        """Validate lock settings."""
        if self.retries < 0:
            raise ValueError(f"retries must be non-negative, got {self.retries}")
        if self.stale_ms < 2000:
            raise ValueError(f"stale_ms must be at least 2000, got {self.stale_ms}")
        if self.update_ms is None:
            self.update_ms = self.stale_ms // 2
        elif not 0 < self.update_ms <= self.stale_ms // 2:
            raise ValueError(
                f"update_ms must be in (0, stale_ms / 2], got {self.update_ms}"
            )

    @classmethod
    def from_config(cls, config: Optional[Any] = None) -> "FileLockConfig":
        """
        Build lock settings from configuration.

        Unusable values fall back to the defaults with a warning.

        Args:
            config: Config instance (defaults to the global config)
        """
        if config is None:
            config = get_config()

        defaults = cls()
        values = {}
        for name in ("retries", "min_timeout_ms", "max_timeout_ms", "stale_ms"):
            raw = config.get(f"lock.{name}")
            if raw is None:
                continue
            try:
                values[name] = int(raw)
            except (TypeError, ValueError):
                logger.warning(
                    "Invalid lock setting, using default",
                    setting=name,
                    value=str(raw),
                    default=getattr(defaults, name),
                )

        factor = config.get("lock.factor")
        if factor is not None:
            try:
                values["factor"] = float(factor)
            except (TypeError, ValueError):
                logger.warning("Invalid lock setting, using default", setting="factor", value=str(factor))

        try:
            return cls(**values)
        except ValueError as e:
            logger.warning("Invalid lock configuration, using defaults", error=str(e))
            return defaults

    def backoff_ms(self, attempt: int) -> int:
        """
        Backoff before the next attempt.

        Formula: min(min_timeout * factor^attempt, max_timeout) + jitter

        Args:
            attempt: Failed attempt number (0-indexed)
        """
        delay = min(self.min_timeout_ms * (self.factor ** attempt), self.max_timeout_ms)
        return int(delay) + random.randint(0, self.jitter_ms)


class FileLock:
    """
    Advisory, host-wide exclusive lock on a file.

    The lock directory holds an ``owner`` file with a token unique to each
    acquisition. A holder only refreshes or removes a directory that still
    carries its own token.

    Usage:
        async with FileLock(path, config):
            ...
    """

    def __init__(
        self,
        path: Path,
        config: Optional[FileLockConfig] = None,
        executor: Optional[Executor] = None,
    ):
        """
        Initialize file lock.

        Args:
            path: File to guard
            config: Lock settings
            executor: Executor for blocking filesystem calls
        """
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + LOCK_SUFFIX)
        self.guard_path = self.path.with_name(self.path.name + LOCK_SUFFIX + GUARD_SUFFIX)
        self.config = config or FileLockConfig()
        self._executor = executor
        self._token = uuid.uuid4().hex
        self._held = False
        self._compromised = False
        self._refresher: Optional[asyncio.Task] = None

    @property
    def held(self) -> bool:
        return self._held

    @property
    def compromised(self) -> bool:
        """True if the lock was removed or taken over while held."""
        return self._compromised

    def _lock_age_ms(self) -> Optional[float]:
        try:
            return (time.time() - os.stat(self.lock_path).st_mtime) * 1000
        except FileNotFoundError:
            return None

    def _read_token(self) -> Optional[str]:
        try:
            return (self.lock_path / OWNER_FILE).read_text()
        except (FileNotFoundError, NotADirectoryError):
            return None

    def _try_mkdir(self) -> bool:
        try:
            os.mkdir(self.lock_path)
        except FileExistsError:
            return False

        try:
            (self.lock_path / OWNER_FILE).write_text(self._token)
        except OSError:
            os.rmdir(self.lock_path)
            raise
        return True

    def _remove_lock_dir(self) -> None:
        (self.lock_path / OWNER_FILE).unlink(missing_ok=True)
        os.rmdir(self.lock_path)

    def _try_guard(self) -> bool:
        """
        One attempt at the guard that serializes lock removal.

        A guard older than GUARD_STALE_MS was left by a crashed process and
        is cleared.
        """
        try:
            os.mkdir(self.guard_path)
            return True
        except FileExistsError:
            pass

        try:
            age_ms = (time.time() - os.stat(self.guard_path).st_mtime) * 1000
        except FileNotFoundError:
            return False

        if age_ms > GUARD_STALE_MS:
            logger.warning("Clearing stale lock guard", guard_path=str(self.guard_path))
            try:
                os.rmdir(self.guard_path)
            except FileNotFoundError:
                pass

        return False

    def _wait_for_guard(self) -> None:
        deadline = time.monotonic() + GUARD_WAIT_MS / 1000.0
        attempts = 0
        while not self._try_guard():
            attempts += 1
            if time.monotonic() >= deadline:
                raise LockTimeoutError(str(self.guard_path), attempts)
            time.sleep(GUARD_POLL_MS / 1000.0)

    def _release_guard(self) -> None:
        os.rmdir(self.guard_path)

    def _try_acquire(self) -> bool:
        """One non-blocking acquisition attempt, reclaiming a stale lock."""
        if self._try_mkdir():
            return True

        age_ms = self._lock_age_ms()
        if age_ms is None:
            # Released between our mkdir and stat
            return self._try_mkdir()
        if age_ms <= self.config.stale_ms:
            return False

        # Someone else is removing a lock; try again later.
        if not self._try_guard():
            return False

        try:
            # Only guard holders remove lock directories, so what we stat
            # here is what we remove.
            age_ms = self._lock_age_ms()
            if age_ms is not None:
                if age_ms <= self.config.stale_ms:
                    return False

                logger.warning(
                    "Reclaiming stale lock",
                    lock_path=str(self.lock_path),
                    age_ms=int(age_ms),
                    stale_ms=self.config.stale_ms,
                )
                self._remove_lock_dir()

            return self._try_mkdir()
        finally:
            self._release_guard()

    async def acquire(self) -> None:
        """
        Acquire the lock, retrying with backoff.

        Raises:
            LockTimeoutError: If every attempt failed
            RuntimeError: If this instance already holds the lock
        """
        if self._held:
            raise RuntimeError(f"Lock already held: {self.lock_path}")

        loop = asyncio.get_running_loop()
        attempts = self.config.retries + 1
        self._token = uuid.uuid4().hex

        for attempt in range(attempts):
            acquired = await loop.run_in_executor(self._executor, self._try_acquire)

            if acquired:
                self._held = True
                self._compromised = False
                self._refresher = asyncio.create_task(self._refresh_loop())

                if attempt > 0:
                    logger.debug(
                        "Acquired lock after retry",
                        lock_path=str(self.lock_path),
                        attempt=attempt,
                    )
                return

            if attempt < attempts - 1:
                backoff_ms = self.config.backoff_ms(attempt)
                logger.debug(
                    "Lock busy, retrying",
                    lock_path=str(self.lock_path),
                    attempt=attempt,
                    backoff_ms=backoff_ms,
                )
                await asyncio.sleep(backoff_ms / 1000.0)

        logger.error(
            "Lock acquisition timed out",
            lock_path=str(self.lock_path),
            attempts=attempts,
        )
        raise LockTimeoutError(str(self.lock_path), attempts)

    def _refresh(self) -> bool:
        """Touch the lock if it is still ours."""
        if self._read_token() != self._token:
            return False
        os.utime(self.lock_path)
        return True

    def _mark_compromised(self) -> None:
        self._compromised = True
        logger.error("Lock was lost while held", lock_path=str(self.lock_path))

    async def _refresh_loop(self) -> None:
        """Keep the lock fresh while held."""
        loop = asyncio.get_running_loop()
        while True:
            await asyncio.sleep(self.config.update_ms / 1000.0)
            try:
                owned = await loop.run_in_executor(self._executor, self._refresh)
            except FileNotFoundError:
                owned = False
            except OSError as e:
                logger.warning(
                    "Failed to refresh lock",
                    lock_path=str(self.lock_path),
                    error=str(e),
                )
                continue

            if not owned:
                self._mark_compromised()
                return

    def _remove_if_owned(self) -> bool:
        self._wait_for_guard()
        try:
            if self._read_token() != self._token:
                return False
            self._remove_lock_dir()
            return True
        finally:
            self._release_guard()

    async def release(self) -> None:
        """
        Release the lock.

        A lock that was taken over is left to its new holder.

        Raises:
            OSError: If the lock directory cannot be removed
            LockTimeoutError: If the removal guard stays busy
        """
        if not self._held:
            return

        self._held = False

        if self._refresher is not None:
            self._refresher.cancel()
            try:
                await self._refresher
            except asyncio.CancelledError:
                pass
            self._refresher = None

        if self._compromised:
            return

        loop = asyncio.get_running_loop()
        removed = await loop.run_in_executor(self._executor, self._remove_if_owned)
        if not removed:
            self._mark_compromised()

    async def __aenter__(self) -> "FileLock":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.release()
