"""
Uploader of local checkpoints to the remote archive.

For every local epoch, in ascending order:
1. If the epoch is listed missing, or is at/after the resync boundary,
   optionally prune and compact it, copy the tree to the remote store and
   write the remote _SUCCESS marker
2. Always write the local _UPLOAD_COMPLETED marker

Invariants:
    - _SUCCESS is written only after every file of the epoch was copied
    - Local-only markers are never copied to the remote archive
    - A failure aborts the cycle; epochs finished earlier keep their markers

How to change safely:
    - Never write _SUCCESS before the copy returns; a crash between copy
      and marker is recovered by the next cycle's gap detection
    - Copies overwrite identically, keep them idempotent
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable

from ..prune.pruner import CheckpointPruner
from ..store.base import ObjectStore, child
from ..store.local import LocalFileStore
from ..store.util import copy_recursively, put
from .index import read_checkpoint_dir
from .markers import MARKER_CONTENT, SUCCESS_MARKER, UPLOAD_COMPLETED_MARKER

logger = logging.getLogger(__name__)


class CheckpointUploader:
    """Copies missing local checkpoints to the remote store.

    Attributes:
        local: Store over the node's checkpoint directory
        remote: Remote archive store
        pruner: Pruner invoked before copying when pruning is enabled
        prune_and_compact_before_upload: Whether to prune before copying
        copy_concurrency: Maximum file copies in flight per epoch
        local_markers: Marker names kept out of the remote copy

    Example:
        >>> uploader = CheckpointUploader(local_store, remote_store)
        >>> await uploader.upload([2, 4])
        [2, 4, 5]
    """

    def __init__(
        self,
        local: LocalFileStore,
        remote: ObjectStore,
        pruner: CheckpointPruner | None = None,
        prune_and_compact_before_upload: bool = False,
        copy_concurrency: int = 20,
        local_markers: Iterable[str] = (UPLOAD_COMPLETED_MARKER,),
    ) -> None:
        """Initialize the uploader.

        Raises:
            ValueError: If pruning is enabled without a pruner
        """
        if prune_and_compact_before_upload and pruner is None:
            raise ValueError("A pruner is required when prune_and_compact_before_upload is set")

        self.local = local
        self.remote = remote
        self.pruner = pruner
        self.prune_and_compact_before_upload = prune_and_compact_before_upload
        self.copy_concurrency = copy_concurrency
        self.local_markers = tuple(dict.fromkeys((UPLOAD_COMPLETED_MARKER, *local_markers)))

    async def upload(self, missing_epochs: list[int]) -> list[int]:
        """Upload every local epoch selected by ``missing_epochs``.

        Args:
            missing_epochs: Gap detector output, ascending, sentinel last

        Returns:
            Epochs copied to the remote store in this call

        Raises:
            MalformedEpochName: If a local epoch directory name does not parse
            PruneError: If pruning a checkpoint fails
            StoreError: If listing, copying or writing a marker fails
        """
        boundary = missing_epochs[-1] if missing_epochs else 0
        missing = set(missing_epochs)
        local_checkpoints = await read_checkpoint_dir(self.local)

        uploaded = []
        for epoch, path in local_checkpoints.items():
            if epoch in missing or epoch >= boundary:
                await self._upload_epoch(epoch, path)
                uploaded.append(epoch)

            await put(child(path, UPLOAD_COMPLETED_MARKER), MARKER_CONTENT, self.local)

        return uploaded

    async def _upload_epoch(self, epoch: int, path: str) -> None:
        start_time = time.time()

        if self.prune_and_compact_before_upload:
            local_db_path = self.local.path_to_filesystem(path)
            await self.pruner.prune_and_compact(local_db_path, epoch)

        logger.info(f"Copying db checkpoint for epoch: {epoch} to remote storage")
        copied = await copy_recursively(
            path,
            self.local,
            self.remote,
            self.copy_concurrency,
            exclude=self.local_markers,
        )

        # Marker last: it is what makes the copy visible as complete
        await put(child(path, SUCCESS_MARKER), MARKER_CONTENT, self.remote)

        logger.info(
            "Uploaded db checkpoint",
            extra={
                "epoch": epoch,
                "files": len(copied),
                "duration_ms": int((time.time() - start_time) * 1000),
            },
        )
