"""
Unit tests for cross-store helpers.

Tests cover:
- Recursive copy between stores
- Excluded paths
- Concurrency bound
- Failure propagation and cancellation
"""

import asyncio

import pytest

from nodeops.ckpt_archiver.config import ObjectStoreConfig, ObjectStoreType
from nodeops.ckpt_archiver.store import (
    InMemoryObjectStore,
    LocalFileStore,
    StoreError,
    copy_recursively,
    create_object_store,
    path_to_filesystem,
)
from nodeops.ckpt_archiver.store.s3 import S3ObjectStore


class SlowStore(InMemoryObjectStore):
    """In-memory store whose puts take a while and track overlap."""

    def __init__(self, delay=0.01):
        super().__init__()
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    async def put(self, path, data):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            await super().put(path, data)
        finally:
            self.in_flight -= 1


class TestCopyRecursively:
    """Tests for copy_recursively."""

    @pytest.mark.asyncio
    async def test_copies_tree(self, local_dir, make_checkpoint):
        make_checkpoint(local_dir, 0)
        make_checkpoint(local_dir, 1)
        dst = InMemoryObjectStore()

        copied = await copy_recursively("epoch_0", LocalFileStore(local_dir), dst, concurrency=4)

        assert sorted(copied) == ["epoch_0/data/file3", "epoch_0/file1", "epoch_0/file2"]
        assert dst.snapshot() == {path: b"Lorem ipsum" for path in copied}

    @pytest.mark.asyncio
    async def test_excludes_names(self, local_dir, make_checkpoint):
        path = make_checkpoint(local_dir, 0)
        (path / "_UPLOAD_COMPLETED").write_bytes(b"success")
        (path / "data" / "_UPLOAD_COMPLETED").write_bytes(b"nested")
        dst = InMemoryObjectStore()

        await copy_recursively(
            "epoch_0",
            LocalFileStore(local_dir),
            dst,
            concurrency=4,
            exclude=("_UPLOAD_COMPLETED",),
        )

        objects = dst.snapshot()
        assert "epoch_0/_UPLOAD_COMPLETED" not in objects
        # Only the top-level name is excluded
        assert "epoch_0/data/_UPLOAD_COMPLETED" in objects

    @pytest.mark.asyncio
    async def test_concurrency_bound(self):
        src = InMemoryObjectStore()
        for i in range(12):
            await src.put(f"epoch_0/file{i}", b"x")
        dst = SlowStore()

        await copy_recursively("epoch_0", src, dst, concurrency=3)

        assert len(dst.snapshot()) == 12
        assert 1 <= dst.max_in_flight <= 3

    @pytest.mark.asyncio
    async def test_failure_propagates_and_cancels(self):
        src = InMemoryObjectStore()
        for i in range(10):
            await src.put(f"epoch_0/file{i}", b"x")
        src.inject_failure("get", "epoch_0/file0")
        dst = SlowStore(delay=0.05)

        with pytest.raises(StoreError):
            await copy_recursively("epoch_0", src, dst, concurrency=2)

        # No copy keeps running after the error surfaced
        assert dst.in_flight == 0
        written = len(dst.snapshot())
        await asyncio.sleep(0.1)
        assert len(dst.snapshot()) == written

    @pytest.mark.asyncio
    async def test_empty_prefix(self):
        copied = await copy_recursively(
            "epoch_0", InMemoryObjectStore(), InMemoryObjectStore(), concurrency=1
        )
        assert copied == []

    @pytest.mark.asyncio
    async def test_rejects_non_positive_concurrency(self):
        with pytest.raises(ValueError):
            await copy_recursively("epoch_0", InMemoryObjectStore(), InMemoryObjectStore(), 0)


class TestPathToFilesystem:
    """Tests for path_to_filesystem."""

    def test_maps_under_root(self, local_dir):
        assert path_to_filesystem(local_dir, "epoch_1/file1") == (
            local_dir / "epoch_1" / "file1"
        ).resolve()

    def test_rejects_escape(self, local_dir):
        with pytest.raises(StoreError):
            path_to_filesystem(local_dir, "../elsewhere")


class TestCreateObjectStore:
    """Tests for the backend factory."""

    def test_file(self, remote_dir):
        store = create_object_store(ObjectStoreConfig.local(str(remote_dir)))
        assert isinstance(store, LocalFileStore)
        assert store.root == remote_dir.resolve()

    def test_memory(self):
        store = create_object_store(ObjectStoreConfig(object_store=ObjectStoreType.MEMORY))
        assert isinstance(store, InMemoryObjectStore)

    def test_s3(self):
        store = create_object_store(
            ObjectStoreConfig(object_store=ObjectStoreType.S3, bucket="archive", prefix="ckpt")
        )
        assert isinstance(store, S3ObjectStore)
        assert store.prefix == "ckpt"

    def test_file_requires_directory(self):
        with pytest.raises(ValueError):
            create_object_store(ObjectStoreConfig(object_store=ObjectStoreType.FILE))

    def test_s3_requires_bucket(self):
        with pytest.raises(ValueError):
            create_object_store(ObjectStoreConfig(object_store=ObjectStoreType.S3))
