"""
DB checkpoint handler - the archival scheduler.

The handler runs as a single background loop with two independent timers:
- sync tick: gap detection against the remote store, then upload
- gc tick: garbage collection of local checkpoints
plus a single-use shutdown signal (stop()).

Preconditions:
    - Exactly one handler writes a given remote root. Two daemons sharing a
      remote root race on _SUCCESS markers and can archive a checkpoint
      that is still being copied by the other one.
    - The local checkpoint directory is only written by the node producing
      checkpoints and by this handler.

Invariants:
    - Both timers fire immediately on start, sync first
    - A failing cycle is logged and retried on the next tick, never fatal
    - Shutdown is observed between ticks; an in-flight cycle completes first

How to change safely:
    - Keep sync and gc in one task; the collector assumes no upload of the
      same epoch is in flight while it deletes
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from ..metrics import ArchiverMetrics
from ..prune.pruner import CheckpointPruner
from ..store.base import ObjectStore, create_object_store
from ..store.local import LocalFileStore
from .collector import CheckpointCollector
from .gaps import GapDetector, GapReport
from .markers import UPLOAD_COMPLETED_MARKER
from .uploader import CheckpointUploader

if TYPE_CHECKING:
    from ..config import DaemonConfig

logger = logging.getLogger(__name__)


class CheckpointHandler:
    """Uploads local db checkpoints and garbage collects archived ones.

    Attributes:
        local: Store over the node's checkpoint directory
        remote: Remote archive store
        interval_seconds: Interval between sync cycles
        gc_interval_seconds: Interval between gc passes
        metrics: Prometheus metrics

    Example:
        >>> handler = CheckpointHandler(LocalFileStore("/data/ckpt"), remote_store)
        >>> task = asyncio.create_task(handler.start())
        >>> ...
        >>> await handler.stop()
        >>> await task
    """

    def __init__(
        self,
        local: LocalFileStore,
        remote: ObjectStore,
        interval_seconds: float = 60,
        gc_interval_seconds: float = 30,
        prune_and_compact_before_upload: bool = False,
        pruner: CheckpointPruner | None = None,
        gc_markers: Iterable[str] = (UPLOAD_COMPLETED_MARKER,),
        copy_concurrency: int = 20,
        max_ambiguous_marker_errors: int = 0,
        metrics: ArchiverMetrics | None = None,
    ) -> None:
        """Initialize the handler.

        Args:
            local: Store over the node's checkpoint directory
            remote: Remote archive store
            interval_seconds: Interval between sync cycles
            gc_interval_seconds: Interval between gc passes
            prune_and_compact_before_upload: Prune checkpoints before copying
            pruner: Pruner used when pruning is enabled
            gc_markers: Local markers that must all exist before deletion
            copy_concurrency: Maximum file copies in flight per epoch
            max_ambiguous_marker_errors: Escalation threshold for unreadable
                remote markers (0 never escalates)
            metrics: Metrics handle, a private registry by default
        """
        self.local = local
        self.remote = remote
        self.interval_seconds = interval_seconds
        self.gc_interval_seconds = gc_interval_seconds
        self.metrics = metrics or ArchiverMetrics()

        self.detector = GapDetector(remote, max_ambiguous_errors=max_ambiguous_marker_errors)
        self.uploader = CheckpointUploader(
            local,
            remote,
            pruner=pruner,
            prune_and_compact_before_upload=prune_and_compact_before_upload,
            copy_concurrency=copy_concurrency,
            local_markers=gc_markers,
        )
        self.collector = CheckpointCollector(local, gc_markers=gc_markers)

        self._running = False
        self._stopped = False
        self._shutdown_event = asyncio.Event()
        self._sync_cycles = 0
        self._gc_cycles = 0
        self._failed_cycles = 0
        self._last_report: GapReport | None = None
        self._last_deleted: list[int] = []

    @classmethod
    def from_config(
        cls,
        config: "DaemonConfig",
        metrics: ArchiverMetrics | None = None,
        pruner: CheckpointPruner | None = None,
    ) -> CheckpointHandler:
        """Build a handler and its stores from daemon configuration."""
        from ..prune.pruner import SqliteCheckpointPruner

        archiver = config.archiver
        if archiver.prune_and_compact_before_upload and pruner is None:
            pruner = SqliteCheckpointPruner(config.pruning)

        return cls(
            local=LocalFileStore(archiver.local_dir),
            remote=create_object_store(config.remote),
            interval_seconds=archiver.interval_seconds,
            gc_interval_seconds=archiver.gc_interval_seconds,
            prune_and_compact_before_upload=archiver.prune_and_compact_before_upload,
            pruner=pruner,
            gc_markers=archiver.gc_markers,
            copy_concurrency=archiver.copy_concurrency,
            max_ambiguous_marker_errors=archiver.max_ambiguous_marker_errors,
            metrics=metrics,
        )

    async def start(self) -> None:
        """Run the handler loop until stop() is called."""
        if self._running:
            logger.warning("Checkpoint handler already running")
            return

        if self._stopped:
            logger.warning("Checkpoint handler was stopped and cannot be restarted")
            return

        self._running = True
        logger.info(
            "DB checkpoint handler loop started",
            extra={
                "local": repr(self.local),
                "remote": repr(self.remote),
                "interval_seconds": self.interval_seconds,
                "gc_interval_seconds": self.gc_interval_seconds,
            },
        )

        try:
            await self.local.connect()
            await self.remote.connect()
            await self._run_loop()

        except asyncio.CancelledError:
            logger.info("Checkpoint handler cancelled")
        except Exception as e:
            logger.error(f"Checkpoint handler error: {e}", exc_info=True)
        finally:
            self._running = False
            self._stopped = True
            await self.remote.close()
            await self.local.close()
            logger.info("DB checkpoint handler loop stopped")

    async def stop(self) -> None:
        """Signal the handler loop to exit after the in-flight tick."""
        self._shutdown_event.set()
        logger.info("Stopping checkpoint handler")

    async def run_sync_cycle(self) -> GapReport:
        """Detect missing epochs and upload them.

        Returns:
            The gap report the upload was driven by

        Raises:
            Exception: Any detection, prune, copy or marker failure
        """
        report = await self.detector.detect()
        self._last_report = report
        self.metrics.first_missing_db_checkpoint_epoch.set(report.first_missing_epoch)

        uploaded = await self.uploader.upload(report.missing_epochs)
        self.metrics.db_checkpoint_uploads.inc(len(uploaded))
        self._sync_cycles += 1

        if uploaded:
            logger.info(
                f"Uploaded db checkpoints for epochs: {uploaded}",
                extra={"first_missing_epoch": report.first_missing_epoch},
            )
        return report

    async def run_gc_cycle(self) -> list[int]:
        """Delete every local checkpoint whose gc markers are present.

        Returns:
            Epochs whose local directories were deleted
        """
        deleted = await self.collector.collect()
        self._last_deleted = deleted
        self.metrics.db_checkpoint_gc_deleted.inc(len(deleted))
        self._gc_cycles += 1

        if deleted:
            logger.info(f"Garbage collected local db checkpoints: {deleted}")
        return deleted

    async def _run_loop(self) -> None:
        loop = asyncio.get_event_loop()
        next_sync = next_gc = loop.time()

        while not self._shutdown_event.is_set():
            now = loop.time()

            if now >= next_sync:
                await self._sync_tick()
                next_sync = self._next_deadline(next_sync, self.interval_seconds, loop.time())
                continue

            if now >= next_gc:
                await self._gc_tick()
                next_gc = self._next_deadline(next_gc, self.gc_interval_seconds, loop.time())
                continue

            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=min(next_sync, next_gc) - now,
                )
            except asyncio.TimeoutError:
                pass

    @staticmethod
    def _next_deadline(previous: float, interval: float, now: float) -> float:
        """Next tick time; ticks missed while a cycle ran are skipped."""
        deadline = previous + interval
        if deadline <= now:
            deadline = now + interval
        return deadline

    async def _sync_tick(self) -> None:
        try:
            await self.run_sync_cycle()
        except Exception as e:
            self._failed_cycles += 1
            self.metrics.db_checkpoint_cycle_failures.labels(cycle="sync").inc()
            logger.error(
                f"Failed to upload db checkpoint to remote store with err: {e}",
                exc_info=True,
            )

    async def _gc_tick(self) -> None:
        try:
            await self.run_gc_cycle()
        except Exception as e:
            self._failed_cycles += 1
            self.metrics.db_checkpoint_cycle_failures.labels(cycle="gc").inc()
            logger.error(f"Failed to garbage collect local db checkpoints: {e}", exc_info=True)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stats(self) -> dict[str, Any]:
        """Get handler statistics."""
        return {
            "running": self._running,
            "sync_cycles": self._sync_cycles,
            "gc_cycles": self._gc_cycles,
            "failed_cycles": self._failed_cycles,
            "first_missing_epoch": self._last_report.first_missing_epoch
            if self._last_report
            else None,
            "last_deleted": list(self._last_deleted),
        }
