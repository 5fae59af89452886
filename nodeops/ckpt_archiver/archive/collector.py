"""
Retention garbage collector for local checkpoints.

A local checkpoint directory is deleted once every configured gc marker is
present in it. _UPLOAD_COMPLETED is always one of them; extra markers (e.g. a
future "state snapshot exported" marker) add further gates.

Invariants:
    - A missing marker and an unreadable marker both mean "do not delete"
    - Deletion removes exactly one epoch directory tree
    - A failed delete aborts the pass; earlier deletions stand
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from collections.abc import Iterable

from ..store.base import StoreError, child
from ..store.local import LocalFileStore
from .index import read_checkpoint_dir
from .markers import UPLOAD_COMPLETED_MARKER, LocalReadiness

logger = logging.getLogger(__name__)


class CheckpointCollector:
    """Deletes local checkpoints whose gc markers are all present.

    Attributes:
        local: Store over the node's checkpoint directory
        gc_markers: Markers that must all exist before deletion

    Example:
        >>> collector = CheckpointCollector(local_store)
        >>> await collector.collect()
        [0, 1]
    """

    def __init__(
        self,
        local: LocalFileStore,
        gc_markers: Iterable[str] = (UPLOAD_COMPLETED_MARKER,),
    ) -> None:
        self.local = local
        self.gc_markers = tuple(dict.fromkeys((UPLOAD_COMPLETED_MARKER, *gc_markers)))

    async def readiness(self, path: str) -> LocalReadiness:
        """Whether the checkpoint at ``path`` may be deleted."""
        results = await asyncio.gather(
            *(self.local.get(child(path, marker)) for marker in self.gc_markers),
            return_exceptions=True,
        )
        for marker, result in zip(self.gc_markers, results):
            if isinstance(result, StoreError):
                logger.debug(
                    f"Not ready for deletion yet: {path}",
                    extra={"path": path, "marker": marker, "reason": str(result)},
                )
                return LocalReadiness.NOT_READY
            if isinstance(result, BaseException):
                raise result
        return LocalReadiness.READY

    async def collect(self) -> list[int]:
        """Delete every ready local checkpoint.

        Returns:
            Epochs whose directories were deleted

        Raises:
            MalformedEpochName: If a local epoch directory name does not parse
            StoreError: If the local directory cannot be listed
            OSError: If removing a directory tree fails
        """
        local_checkpoints = await read_checkpoint_dir(self.local)

        deleted = []
        for epoch, path in local_checkpoints.items():
            if await self.readiness(path) != LocalReadiness.READY:
                continue

            local_fs_path = self.local.path_to_filesystem(path)
            logger.info(
                f"Deleting db checkpoint dir: {path} for epoch: {epoch}",
                extra={"epoch": epoch, "path": str(local_fs_path)},
            )
            await asyncio.get_event_loop().run_in_executor(None, shutil.rmtree, local_fs_path)
            deleted.append(epoch)

        return deleted
