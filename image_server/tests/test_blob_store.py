import io
import os
import sys
import asyncio
import pytest
import pytest_asyncio
from pathlib import Path

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import config
config.LOG_DIR = str(Path("test_logs").absolute())

from app.errors import BlobNotFoundError, BlobStoreError, InvalidBlobNameError
from app.services.blob_store import BlobStore


class BytesSource:
    """Async reader over in-memory bytes, shaped like an uploaded file."""

    def __init__(self, data: bytes):
        self._buffer = io.BytesIO(data)

    async def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)


@pytest_asyncio.fixture
async def store(tmp_path):
    blob_store = BlobStore(tmp_path / "images", tmp_path / "temp")
    await blob_store.initialize()
    return blob_store


@pytest.mark.asyncio
async def test_put_get_round_trip(store):
    content = os.urandom(3 * config.CHUNK_SIZE + 17)

    size = await store.put("photo.jpg", BytesSource(content))

    assert size == len(content)
    assert await store.exists("photo.jpg")
    assert await store.get("photo.jpg") == content


@pytest.mark.asyncio
async def test_put_replaces_whole_blob(store):
    await store.put("photo.jpg", BytesSource(b"0123456789"))
    await store.put("photo.jpg", BytesSource(b"abc"))

    assert await store.get("photo.jpg") == b"abc"


@pytest.mark.asyncio
async def test_put_leaves_no_temp_files(store):
    await store.put("photo.jpg", BytesSource(b"data"))

    assert list(store.temp_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_put_failure_is_reported(store):
    os.rmdir(store.data_dir)

    with pytest.raises(BlobStoreError):
        await store.put("photo.jpg", BytesSource(b"data"))
    assert list(store.temp_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_upsert_creates_missing_blob(store):
    created = await store.upsert("photo.jpg", BytesSource(b"data"))

    assert created is True
    assert await store.get("photo.jpg") == b"data"


@pytest.mark.asyncio
async def test_upsert_overwrites_without_truncating(store):
    await store.put("photo.jpg", BytesSource(b"0123456789"))

    created = await store.upsert("photo.jpg", BytesSource(b"abc"))

    assert created is False
    assert await store.get("photo.jpg") == b"abc3456789"


@pytest.mark.asyncio
async def test_upsert_with_longer_content(store):
    await store.put("photo.jpg", BytesSource(b"0123"))

    await store.upsert("photo.jpg", BytesSource(b"abcdefgh"))

    assert await store.get("photo.jpg") == b"abcdefgh"


@pytest.mark.asyncio
async def test_get_missing_blob(store):
    assert not await store.exists("missing.jpg")
    with pytest.raises(BlobNotFoundError, match="missing.jpg"):
        await store.get("missing.jpg")


@pytest.mark.asyncio
async def test_delete(store):
    await store.put("photo.jpg", BytesSource(b"data"))

    await store.delete("photo.jpg")

    assert not await store.exists("photo.jpg")
    with pytest.raises(BlobNotFoundError):
        await store.delete("photo.jpg")


@pytest.mark.asyncio
async def test_list_returns_every_entry(store):
    await store.put("a.jpg", BytesSource(b"a"))
    await store.put("b.png", BytesSource(b"b"))
    (store.data_dir / "nested").mkdir()

    assert sorted(await store.list()) == ["a.jpg", "b.png", "nested"]


@pytest.mark.asyncio
async def test_list_missing_directory(tmp_path):
    blob_store = BlobStore(tmp_path / "missing", tmp_path / "temp")

    with pytest.raises(BlobStoreError):
        await blob_store.list()


@pytest.mark.parametrize("name", ["", ".", "..", "a/b", "../escape", "a\\b", "nul\x00", "x" * 256])
def test_resolve_rejects_names_outside_namespace(tmp_path, name):
    blob_store = BlobStore(tmp_path / "images", tmp_path / "temp")

    with pytest.raises(InvalidBlobNameError):
        blob_store.resolve(name)


def test_resolve_accepts_flat_names(tmp_path):
    blob_store = BlobStore(tmp_path / "images", tmp_path / "temp")

    assert blob_store.resolve("cat..jpg") == tmp_path / "images" / "cat..jpg"
    assert blob_store.resolve(".hidden") == tmp_path / "images" / ".hidden"


@pytest.mark.asyncio
async def test_initialize_cleans_stale_temp_files(tmp_path):
    temp_dir = tmp_path / "temp"
    temp_dir.mkdir()
    (temp_dir / "leftover.tmp").write_bytes(b"partial")

    blob_store = BlobStore(tmp_path / "images", temp_dir)
    await blob_store.initialize()

    assert list(temp_dir.iterdir()) == []
    assert blob_store.data_dir.is_dir()


@pytest.mark.asyncio
async def test_concurrent_writes_to_one_name_do_not_interleave(store):
    first = b"a" * (4 * config.CHUNK_SIZE)
    second = b"b" * (4 * config.CHUNK_SIZE)

    await asyncio.gather(
        store.put("photo.jpg", BytesSource(first)),
        store.upsert("photo.jpg", BytesSource(second)),
        store.put("photo.jpg", BytesSource(first)),
    )

    assert await store.get("photo.jpg") in (first, second)
