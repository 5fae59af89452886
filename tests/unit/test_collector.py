"""
Unit tests for the local checkpoint garbage collector.
"""

import pytest

from nodeops.ckpt_archiver.archive import (
    TEST_MARKER,
    UPLOAD_COMPLETED_MARKER,
    CheckpointCollector,
    LocalReadiness,
)
from nodeops.ckpt_archiver.store import LocalFileStore, StoreError


class TestCheckpointCollector:
    """Tests for CheckpointCollector."""

    def test_upload_marker_always_required(self, local_dir):
        collector = CheckpointCollector(LocalFileStore(local_dir), gc_markers=(TEST_MARKER,))
        assert collector.gc_markers == (UPLOAD_COMPLETED_MARKER, TEST_MARKER)

        collector = CheckpointCollector(
            LocalFileStore(local_dir),
            gc_markers=(UPLOAD_COMPLETED_MARKER, UPLOAD_COMPLETED_MARKER),
        )
        assert collector.gc_markers == (UPLOAD_COMPLETED_MARKER,)

    @pytest.mark.asyncio
    async def test_readiness(self, local_dir, make_checkpoint):
        path = make_checkpoint(local_dir, 0)
        collector = CheckpointCollector(
            LocalFileStore(local_dir), gc_markers=(UPLOAD_COMPLETED_MARKER, TEST_MARKER)
        )

        assert await collector.readiness("epoch_0") == LocalReadiness.NOT_READY

        (path / UPLOAD_COMPLETED_MARKER).write_bytes(b"success")
        assert await collector.readiness("epoch_0") == LocalReadiness.NOT_READY

        (path / TEST_MARKER).write_bytes(b"success")
        assert await collector.readiness("epoch_0") == LocalReadiness.READY

    @pytest.mark.asyncio
    async def test_unreadable_marker_is_not_ready(self, local_dir, make_checkpoint):
        path = make_checkpoint(local_dir, 0)
        (path / UPLOAD_COMPLETED_MARKER).write_bytes(b"success")
        store = LocalFileStore(local_dir)

        original_get = store.get

        async def flaky_get(p):
            if p.endswith(UPLOAD_COMPLETED_MARKER):
                raise StoreError("I/O error")
            return await original_get(p)

        store.get = flaky_get
        collector = CheckpointCollector(store)

        assert await collector.readiness("epoch_0") == LocalReadiness.NOT_READY
        assert await collector.collect() == []
        assert path.exists()

    @pytest.mark.asyncio
    async def test_collect_deletes_whole_tree(self, local_dir, make_checkpoint):
        ready = make_checkpoint(local_dir, 3)
        pending = make_checkpoint(local_dir, 4)
        (ready / UPLOAD_COMPLETED_MARKER).write_bytes(b"success")

        deleted = await CheckpointCollector(LocalFileStore(local_dir)).collect()

        assert deleted == [3]
        assert not ready.exists()
        assert (pending / "data" / "file3").exists()

    @pytest.mark.asyncio
    async def test_collect_empty_dir(self, local_dir):
        assert await CheckpointCollector(LocalFileStore(local_dir)).collect() == []
