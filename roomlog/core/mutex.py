"""
In-process mutual exclusion for async callers.

AsyncLock hands ownership directly to the longest-waiting caller, so
waiters run strictly in the order they asked. LockManager keeps one lock
per key; calls on different keys never block each other.

These locks only order callers inside one event loop. They sit in front
of the cross-process file lock, never in place of it.
"""

import asyncio
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, TypeVar

T = TypeVar("T")


class AsyncLock:
    """FIFO async mutex with direct hand-off between waiters."""

    def __init__(self) -> None:
        self._locked = False
        self._waiters: Deque[asyncio.Future] = deque()

    def locked(self) -> bool:
        return self._locked

    @property
    def waiting(self) -> int:
        """Number of callers queued for the lock."""
        return sum(1 for w in self._waiters if not w.done())

    async def acquire(self) -> None:
        """Wait until the lock is owned by the current caller."""
        if not self._locked and all(w.cancelled() for w in self._waiters):
            self._locked = True
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Ownership arrived together with the cancellation.
                self.release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def release(self) -> None:
        """
        Release the lock, handing it to the next live waiter.

        Raises:
            RuntimeError: If the lock is not held
        """
        if not self._locked:
            raise RuntimeError("Lock is not acquired")

        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Stays locked; the waiter now owns it.
                waiter.set_result(True)
                return

        self._locked = False

    async def run_exclusive(self, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run a coroutine function while holding the lock.

        Args:
            fn: Zero-argument coroutine function

        Returns:
            Result of fn
        """
        async with self:
            return await fn()

    async def __aenter__(self) -> "AsyncLock":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()


class LockManager:
    """
    Registry of AsyncLocks keyed by resource.

    Locks are created on first use and never evicted.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, AsyncLock] = {}

    def get_lock(self, key: str) -> AsyncLock:
        """
        Get or create the lock for a key.

        Args:
            key: Lock identifier

        Returns:
            Lock for this key
        """
        lock = self._locks.get(key)
        if lock is None:
            lock = AsyncLock()
            self._locks[key] = lock
        return lock

    async def run_exclusive(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run a coroutine function while holding the lock for a key.

        Args:
            key: Lock identifier
            fn: Zero-argument coroutine function

        Returns:
            Result of fn
        """
        return await self.get_lock(key).run_exclusive(fn)

    def __len__(self) -> int:
        return len(self._locks)
