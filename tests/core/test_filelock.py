"""Tests for the cross-process file lock."""

import asyncio
import os
import shutil
import tempfile
import time
from pathlib import Path

import pytest

from roomlog.core.errors import LockTimeoutError
from roomlog.core.filelock import OWNER_FILE, FileLock, FileLockConfig
from roomlog.utils.config import Config


FAST = FileLockConfig(retries=2, min_timeout_ms=10, max_timeout_ms=20, jitter_ms=0)


class TestFileLockConfig:
    """Test FileLockConfig."""

    def test_defaults(self):
        """Test default retries and staleness."""
        config = FileLockConfig()

        assert config.retries == 10
        assert config.min_timeout_ms == 100
        assert config.max_timeout_ms == 2000
        assert config.stale_ms == 10000
        assert config.update_ms == 5000

    def test_backoff_grows_and_caps(self):
        """Test exponential backoff with a ceiling."""
        config = FileLockConfig(jitter_ms=0)

        delays = [config.backoff_ms(attempt) for attempt in range(8)]

        assert delays[:5] == [100, 200, 400, 800, 1600]
        assert delays[5:] == [2000, 2000, 2000]

    def test_backoff_jitter(self):
        """Test jitter stays within bounds."""
        config = FileLockConfig(jitter_ms=20)

        for _ in range(50):
            assert 100 <= config.backoff_ms(0) <= 120

    def test_invalid_values(self):
        """Test invalid settings are rejected."""
        with pytest.raises(ValueError):
            FileLockConfig(retries=-1)

        with pytest.raises(ValueError):
            FileLockConfig(stale_ms=100)

        with pytest.raises(ValueError):
            FileLockConfig(stale_ms=10000, update_ms=6000)

    def test_from_config(self):
        """Test settings are read from configuration."""
        config = Config(environ={"ROOMLOG_LOCK_STALE_MS": "20000"})
        config.set("lock.retries", 3)

        lock_config = FileLockConfig.from_config(config)

        assert lock_config.retries == 3
        assert lock_config.stale_ms == 20000
        assert lock_config.update_ms == 10000

    def test_from_config_invalid_falls_back(self):
        """Test unusable configuration falls back to defaults."""
        config = Config(environ={"ROOMLOG_LOCK_STALE_MS": "soon"})

        assert FileLockConfig.from_config(config).stale_ms == 10000

        config = Config(environ={"ROOMLOG_LOCK_STALE_MS": "5"})

        assert FileLockConfig.from_config(config) == FileLockConfig()


class TestFileLock:
    """Test FileLock."""

    @pytest.fixture
    def target(self):
        """Create a file to lock."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "room.json.gz"
            path.write_bytes(b"")
            yield path

    @pytest.mark.asyncio
    async def test_acquire_and_release(self, target):
        """Test the lock directory exists only while held."""
        lock = FileLock(target, FAST)

        await lock.acquire()

        assert lock.held
        assert lock.lock_path.is_dir()
        assert lock.lock_path.name == "room.json.gz.lock"

        await lock.release()

        assert not lock.held
        assert not lock.lock_path.exists()

    @pytest.mark.asyncio
    async def test_context_manager(self, target):
        """Test async with acquires and releases."""
        async with FileLock(target, FAST) as lock:
            assert lock.lock_path.exists()

        assert not lock.lock_path.exists()

    @pytest.mark.asyncio
    async def test_release_without_acquire(self, target):
        """Test releasing an unheld lock is a no-op."""
        await FileLock(target, FAST).release()

    @pytest.mark.asyncio
    async def test_double_acquire(self, target):
        """Test one instance cannot acquire twice."""
        lock = FileLock(target, FAST)
        await lock.acquire()

        with pytest.raises(RuntimeError):
            await lock.acquire()

        await lock.release()

    @pytest.mark.asyncio
    async def test_timeout_when_held(self, target):
        """Test a held lock makes a second acquirer time out."""
        holder = FileLock(target, FAST)
        await holder.acquire()

        with pytest.raises(LockTimeoutError) as exc_info:
            await FileLock(target, FAST).acquire()

        assert exc_info.value.attempts == 3

        await holder.release()

    @pytest.mark.asyncio
    async def test_waits_for_release(self, target):
        """Test a waiter acquires once the holder releases."""
        patient = FileLockConfig(retries=20, min_timeout_ms=10, max_timeout_ms=50)
        holder = FileLock(target, FAST)
        await holder.acquire()

        async def release_later():
            await asyncio.sleep(0.1)
            await holder.release()

        releaser = asyncio.create_task(release_later())

        waiter = FileLock(target, patient)
        await waiter.acquire()

        assert waiter.held

        await waiter.release()
        await releaser

    @pytest.mark.asyncio
    async def test_reclaims_stale_lock(self, target):
        """Test a lock abandoned by a crashed holder is reclaimed."""
        lock_path = target.with_name(target.name + ".lock")
        os.mkdir(lock_path)
        old = time.time() - 3600
        os.utime(lock_path, (old, old))

        lock = FileLock(target, FAST)
        await lock.acquire()

        assert lock.held

        await lock.release()

    @pytest.mark.asyncio
    async def test_fresh_lock_not_reclaimed(self, target):
        """Test a recently touched lock is respected."""
        lock_path = target.with_name(target.name + ".lock")
        os.mkdir(lock_path)

        with pytest.raises(LockTimeoutError):
            await FileLock(target, FAST).acquire()

        assert lock_path.is_dir()

    @pytest.mark.asyncio
    async def test_refreshes_while_held(self, target):
        """Test a held lock keeps its mtime fresh."""
        config = FileLockConfig(stale_ms=2000, update_ms=20)
        lock = FileLock(target, config)
        await lock.acquire()

        old = time.time() - 3600
        os.utime(lock.lock_path, (old, old))

        await asyncio.sleep(0.2)

        assert time.time() - lock.lock_path.stat().st_mtime < 60

        await lock.release()

    @pytest.mark.asyncio
    async def test_detects_removed_lock(self, target):
        """Test a lock removed from under its holder is flagged."""
        config = FileLockConfig(stale_ms=2000, update_ms=20)
        lock = FileLock(target, config)
        await lock.acquire()

        shutil.rmtree(lock.lock_path)
        await asyncio.sleep(0.2)

        assert lock.compromised

        await lock.release()

    @pytest.mark.asyncio
    async def test_refresh_detects_takeover(self, target):
        """Test a holder whose lock now carries another token stops refreshing."""
        config = FileLockConfig(stale_ms=2000, update_ms=20)
        lock = FileLock(target, config)
        await lock.acquire()

        (lock.lock_path / OWNER_FILE).write_text("another-holder")
        await asyncio.sleep(0.2)

        assert lock.compromised

        await lock.release()

        assert (lock.lock_path / OWNER_FILE).read_text() == "another-holder"

    @pytest.mark.asyncio
    async def test_release_after_takeover_keeps_new_holder(self, target):
        """Test a stalled holder's release leaves the new holder's lock in place."""
        config = FileLockConfig(
            retries=2, min_timeout_ms=10, max_timeout_ms=20, jitter_ms=0,
            stale_ms=2000, update_ms=1000,
        )
        stalled = FileLock(target, config)
        await stalled.acquire()
        old = time.time() - 3600
        os.utime(stalled.lock_path, (old, old))

        successor = FileLock(target, config)
        await successor.acquire()

        await stalled.release()

        assert stalled.compromised
        assert successor.lock_path.is_dir()
        with pytest.raises(LockTimeoutError):
            await FileLock(target, FAST).acquire()

        await successor.release()

        assert not successor.compromised
        assert not successor.lock_path.exists()
        assert not successor.guard_path.exists()


class TestStaleReclaim:
    """Test reclaiming an abandoned lock against concurrent contenders."""

    @pytest.fixture
    def target(self):
        """Create a file with an abandoned lock next to it."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "room.json.gz"
            path.write_bytes(b"")
            lock_path = path.with_name(path.name + ".lock")
            os.mkdir(lock_path)
            old = time.time() - 3600
            os.utime(lock_path, (old, old))
            yield path

    def test_rival_reclaims_first(self, target):
        """Test a contender that saw the stale lock backs off once a rival reclaimed it."""
        first = FileLock(target, FAST)
        second = FileLock(target, FAST)
        rival_results = []
        take_guard = second._try_guard

        def rival_then_guard():
            rival_results.append(first._try_acquire())
            return take_guard()

        second._try_guard = rival_then_guard

        assert second._try_acquire() is False
        assert rival_results == [True]
        assert (first.lock_path / OWNER_FILE).read_text() == first._token
        assert not first.guard_path.exists()

    def test_rival_blocked_during_reclaim(self, target):
        """Test a contender cannot reclaim while another one is removing the lock."""
        first = FileLock(target, FAST)
        second = FileLock(target, FAST)
        rival_results = []
        remove = second._remove_lock_dir

        def rival_then_remove():
            rival_results.append(first._try_acquire())
            remove()

        second._remove_lock_dir = rival_then_remove

        assert second._try_acquire() is True
        assert rival_results == [False]
        assert (second.lock_path / OWNER_FILE).read_text() == second._token

    @pytest.mark.asyncio
    async def test_stale_guard_cleared(self, target):
        """Test a guard left by a crashed process does not block reclaiming."""
        lock = FileLock(target, FAST)
        os.mkdir(lock.guard_path)
        old = time.time() - 3600
        os.utime(lock.guard_path, (old, old))

        await lock.acquire()

        assert lock.held
        assert not lock.guard_path.exists()

        await lock.release()

        assert not lock.lock_path.exists()
