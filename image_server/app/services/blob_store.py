import asyncio
import uuid
import weakref
from pathlib import Path
from typing import List, Protocol

import aiofiles
import aiofiles.os

import config
from app.errors import BlobNotFoundError, BlobStoreError, InvalidBlobNameError
from logger_config import setup_logger

logger = setup_logger()

_FORBIDDEN_CHARS = ("/", "\\", "\x00")


class AsyncReader(Protocol):
    async def read(self, size: int = -1) -> bytes: ...


class BlobStore:
    """Flat directory of named blobs.

    Every operation on a name holds that name's lock, so writers, readers and
    deleters of the same blob never interleave. New content is written to the
    temp directory first and renamed into place.
    """

    def __init__(self, data_dir: Path, temp_dir: Path):
        self.data_dir = Path(data_dir)
        self.temp_dir = Path(temp_dir)
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    async def initialize(self):
        """Create the storage directories and drop leftovers of interrupted writes."""
        logger.info("Initializing blob store...")

        self.data_dir.mkdir(exist_ok=True, parents=True)
        self.temp_dir.mkdir(exist_ok=True, parents=True)
        logger.debug(f"Storage directories created/verified: {self.data_dir}, {self.temp_dir}")

        files_removed = 0
        for file in self.temp_dir.glob("*.tmp"):
            if file.is_file():
                await aiofiles.os.unlink(file)
                files_removed += 1
        logger.info(f"Cleaned temporary directory, removed {files_removed} files")

    def _lock_for(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[name] = lock
        return lock

    def resolve(self, name: str) -> Path:
        """Get the path of a blob, rejecting names outside the flat namespace."""
        if not name or name in (".", ".."):
            raise InvalidBlobNameError(f"Invalid blob name: {name!r}")
        if any(char in name for char in _FORBIDDEN_CHARS):
            raise InvalidBlobNameError(f"Invalid blob name: {name!r}")
        if len(name) > config.MAX_NAME_LENGTH:
            raise InvalidBlobNameError(
                f"Blob name too long. Maximum length is {config.MAX_NAME_LENGTH}"
            )
        return self.data_dir / name

    async def exists(self, name: str) -> bool:
        return await aiofiles.os.path.exists(self.resolve(name))

    async def get(self, name: str) -> bytes:
        """Read the whole content of a blob."""
        blob_path = self.resolve(name)
        async with self._lock_for(name):
            try:
                async with aiofiles.open(blob_path, 'rb') as f:
                    return await f.read()
            except FileNotFoundError:
                raise BlobNotFoundError(name)
            except OSError as e:
                raise BlobStoreError(f"Error reading blob {name}: {e}") from e

    async def put(self, name: str, source: AsyncReader) -> int:
        """Create or fully replace a blob. Returns the number of bytes stored."""
        blob_path = self.resolve(name)
        async with self._lock_for(name):
            return await self._replace(name, blob_path, source)

    async def upsert(self, name: str, source: AsyncReader) -> bool:
        """Create a blob, or overwrite an existing one in place.

        An existing blob is not truncated first: when the new content is
        shorter, the tail of the old content stays after it.

        Returns True when the blob did not exist before.
        """
        blob_path = self.resolve(name)
        async with self._lock_for(name):
            if not await aiofiles.os.path.exists(blob_path):
                await self._replace(name, blob_path, source)
                return True

            try:
                f = await aiofiles.open(blob_path, 'r+b')
            except OSError as e:
                raise BlobStoreError(f"Error opening blob {name}: {e}") from e
            try:
                written = await self._copy(source, f)
            except OSError as e:
                raise BlobStoreError(f"Error writing blob {name}: {e}") from e
            finally:
                await f.close()

            logger.debug(f"Overwrote {written} bytes of blob {name} in place")
            return False

    async def delete(self, name: str):
        blob_path = self.resolve(name)
        async with self._lock_for(name):
            try:
                await aiofiles.os.remove(blob_path)
            except FileNotFoundError:
                raise BlobNotFoundError(name)
            except OSError as e:
                raise BlobStoreError(f"Error deleting blob {name}: {e}") from e
        logger.debug(f"Removed {blob_path}")

    async def list(self) -> List[str]:
        """List every entry of the storage directory in filesystem order."""
        try:
            return await aiofiles.os.listdir(self.data_dir)
        except OSError as e:
            raise BlobStoreError(f"Error listing blobs: {e}") from e

    async def _replace(self, name: str, blob_path: Path, source: AsyncReader) -> int:
        temp_path = self.temp_dir / f"{uuid.uuid4().hex}.tmp"
        try:
            async with aiofiles.open(temp_path, 'wb') as f:
                written = await self._copy(source, f)
            await aiofiles.os.replace(temp_path, blob_path)
        except OSError as e:
            if await aiofiles.os.path.exists(temp_path):
                await aiofiles.os.unlink(temp_path)
            raise BlobStoreError(f"Error writing blob {name}: {e}") from e

        logger.debug(f"Stored {written} bytes at {blob_path}")
        return written

    @staticmethod
    async def _copy(source: AsyncReader, f) -> int:
        written = 0
        while chunk := await source.read(config.CHUNK_SIZE):
            await f.write(chunk)
            written += len(chunk)
        return written
