"""
Per-process identity records.

Every process writes its own record, named after its PID and start time,
so sibling processes never contend for the same file:

    <identity_dir>/.agent-identity-<pid>-<start ms>.json

Records are never modified by other processes and never deleted here.
Reading all of them tells a new process which labels are already taken.
"""

import asyncio
import os
import time
import uuid
from concurrent.futures import Executor
from pathlib import Path
from typing import Optional, Set

from roomlog.core import codec
from roomlog.core.errors import CorruptDataError
from roomlog.core.models import Identity
from roomlog.core.mutex import LockManager
from roomlog.identity.namer import LabelPool
from roomlog.utils.logging import get_logger

logger = get_logger(__name__)

IDENTITY_FILE_PREFIX = ".agent-identity-"
IDENTITY_FILE_SUFFIX = ".json"

PROCESS_START_MS = int(time.time() * 1000)

_identity_locks = LockManager()


def default_process_key() -> str:
    """Key unique to this process: PID plus start time."""
    return f"{os.getpid()}-{PROCESS_START_MS}"


class IdentityStore:
    """
    Loads or creates the identity of the current process.

    Attributes:
        identity_dir: Directory holding identity records
        process_key: Unique key of the owning process
    """

    def __init__(
        self,
        identity_dir: Path,
        process_key: Optional[str] = None,
        executor: Optional[Executor] = None,
    ):
        """
        Initialize identity store.

        Args:
            identity_dir: Directory for identity records
            process_key: Process key (PID and start time if None)
            executor: Executor for blocking disk I/O
        """
        self.identity_dir = Path(identity_dir)
        self.process_key = process_key or default_process_key()
        self._executor = executor

    @property
    def identity_path(self) -> Path:
        return self.identity_dir / f"{IDENTITY_FILE_PREFIX}{self.process_key}{IDENTITY_FILE_SUFFIX}"

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    async def claimed_labels(self) -> Set[str]:
        """
        Collect labels from all identity records in the directory.

        Unreadable or invalid records are skipped.

        Returns:
            Labels claimed by any process
        """
        def _scan() -> Set[str]:
            labels: Set[str] = set()
            if not self.identity_dir.is_dir():
                return labels

            for path in self.identity_dir.iterdir():
                name = path.name
                if not (name.startswith(IDENTITY_FILE_PREFIX) and name.endswith(IDENTITY_FILE_SUFFIX)):
                    continue
                try:
                    labels.add(codec.decode_identity(path.read_bytes()).label)
                except (OSError, CorruptDataError) as e:
                    logger.debug("Skipping identity record", path=str(path), error=str(e))

            return labels

        return await self._run(_scan)

    async def load(self) -> Optional[Identity]:
        """
        Read this process's identity record.

        Returns:
            The identity, or None if none was created yet

        Raises:
            CorruptDataError: If the record exists but is invalid
        """
        path = self.identity_path

        def _read() -> Optional[bytes]:
            try:
                return path.read_bytes()
            except FileNotFoundError:
                return None

        data = await self._run(_read)
        if data is None:
            return None
        return codec.decode_identity(data)

    async def save(self, identity: Identity) -> None:
        """Write this process's identity record."""
        data = codec.encode_identity(identity)
        path = self.identity_path

        def _write() -> None:
            self.identity_dir.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
            try:
                tmp_path.write_bytes(data)
                os.replace(tmp_path, path)
            except BaseException:
                tmp_path.unlink(missing_ok=True)
                raise

        await self._run(_write)

    async def load_or_create(self, pool: LabelPool) -> Identity:
        """
        Return this process's identity, assigning a label on first use.

        Concurrent callers in the same process share one assignment.

        Args:
            pool: Label pool to draw a new label from

        Returns:
            The process identity
        """
        async with _identity_locks.get_lock(str(self.identity_path)):
            identity = await self.load()
            if identity is not None:
                return identity

            claimed = await self.claimed_labels()
            for label in claimed:
                await pool.register_used(label)

            identity = Identity(label=await pool.assign())
            await self.save(identity)

            logger.info(
                "Assigned identity",
                label=identity.label,
                process_key=self.process_key,
                claimed=len(claimed),
            )

            return identity
