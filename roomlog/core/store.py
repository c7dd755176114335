"""
Durable, file-backed storage for room logs.

Each room lives in one file named after the SHA-256 of its identifier:

    <data_dir>/<sha256(resource_id) hex>.json.gz

Saves are whole-file: the new content is written to a temporary file in
the same directory, fsynced and renamed over the target, so the file is
always either the previous or the next complete log.

Disk I/O and compression block, so both run in an executor.
"""

import asyncio
import hashlib
import os
import uuid
from concurrent.futures import Executor
from pathlib import Path
from typing import List, Optional

from roomlog.core import codec
from roomlog.core.errors import CorruptDataError
from roomlog.core.models import RoomLog
from roomlog.utils.logging import get_logger

logger = get_logger(__name__)

LOG_FILE_SUFFIX = ".json.gz"
TEMP_FILE_SUFFIX = ".tmp"


class DurableStore:
    """
    Maps room identifiers to files and loads/saves logs through the codec.

    Attributes:
        data_dir: Directory holding room files
    """

    def __init__(self, data_dir: Path, executor: Optional[Executor] = None):
        """
        Initialize durable store.

        Args:
            data_dir: Directory for room files (created on first write)
            executor: Executor for blocking disk I/O (None = loop default)
        """
        self.data_dir = Path(data_dir)
        self._executor = executor

    @property
    def executor(self) -> Optional[Executor]:
        return self._executor

    @staticmethod
    def filename_for(resource_id: str) -> str:
        """
        Safe, fixed-width file name for a room identifier.

        Args:
            resource_id: Room identifier of any length and characters

        Returns:
            Hex SHA-256 digest plus the log suffix
        """
        digest = hashlib.sha256(resource_id.encode("utf-8")).hexdigest()
        return f"{digest}{LOG_FILE_SUFFIX}"

    def resource_path(self, resource_id: str) -> Path:
        return self.data_dir / self.filename_for(resource_id)

    def ensure_data_dir(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    async def exists(self, resource_id: str) -> bool:
        return await self._run(self.resource_path(resource_id).exists)

    async def load(self, resource_id: str) -> Optional[RoomLog]:
        """
        Load a room log.

        Args:
            resource_id: Room identifier

        Returns:
            The log, or None if the room was never written

        Raises:
            CorruptDataError: If the file exists but cannot be decoded
            OSError: On other read failures
        """
        path = self.resource_path(resource_id)

        def _read() -> Optional[bytes]:
            try:
                with open(path, "rb") as f:
                    return f.read()
            except FileNotFoundError:
                return None

        data = await self._run(_read)
        if data is None:
            return None

        try:
            return codec.decode(data)
        except CorruptDataError:
            logger.error(
                "Corrupt room log",
                resource_id=resource_id,
                path=str(path),
                size=len(data),
            )
            raise

    async def save(self, log: RoomLog) -> None:
        """
        Persist a full room log, replacing the previous file atomically.

        Args:
            log: Log to persist
        """
        data = await self._run(codec.encode, log)
        path = self.resource_path(log.resource_id)

        def _write() -> None:
            self.ensure_data_dir()
            tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}{TEMP_FILE_SUFFIX}")
            try:
                with open(tmp_path, "wb") as f:
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, path)
            except BaseException:
                tmp_path.unlink(missing_ok=True)
                raise
            self._fsync_dir()

        await self._run(_write)

        logger.debug(
            "Saved room log",
            resource_id=log.resource_id,
            entries=len(log.entries),
            bytes=len(data),
        )

    async def create_if_absent(self, log: RoomLog) -> bool:
        """
        Persist a log only if its room has no file yet.

        The file is published with a hard link, which fails if the target
        already exists, so a concurrent writer's content is never replaced.

        Args:
            log: Initial log for the room

        Returns:
            True if this call created the file
        """
        data = await self._run(codec.encode, log)
        path = self.resource_path(log.resource_id)

        def _create() -> bool:
            self.ensure_data_dir()
            tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}{TEMP_FILE_SUFFIX}")
            try:
                with open(tmp_path, "wb") as f:
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
                try:
                    os.link(tmp_path, path)
                except FileExistsError:
                    return False
            finally:
                tmp_path.unlink(missing_ok=True)
            self._fsync_dir()
            return True

        created = await self._run(_create)
        if created:
            logger.debug("Created room file", resource_id=log.resource_id, path=str(path))
        return created

    def _fsync_dir(self) -> None:
        """Flush the directory entry of a rename (POSIX only)."""
        if os.name != "posix":
            return
        fd = os.open(self.data_dir, os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)

    async def list_resources(self) -> List[str]:
        """
        List identifiers of all persisted rooms.

        Identifiers are read back from file content, not file names.
        Corrupt or unreadable files are skipped.

        Returns:
            Room identifiers in file-name order
        """
        def _scan() -> List[Path]:
            if not self.data_dir.is_dir():
                return []
            return sorted(self.data_dir.glob(f"*{LOG_FILE_SUFFIX}"))

        resource_ids = []
        for path in await self._run(_scan):
            try:
                data = await self._run(path.read_bytes)
                resource_ids.append(codec.decode(data).resource_id)
            except (OSError, CorruptDataError) as e:
                logger.warning(
                    "Skipping unreadable room file",
                    path=str(path),
                    error=str(e),
                )

        return resource_ids

    async def delete_resource(self, resource_id: str) -> None:
        """
        Delete a room's file. A missing file is not an error.

        Args:
            resource_id: Room identifier
        """
        path = self.resource_path(resource_id)
        await self._run(lambda: path.unlink(missing_ok=True))

        logger.info("Deleted room", resource_id=resource_id, path=str(path))
