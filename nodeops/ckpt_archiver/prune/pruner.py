"""
Pruning and compaction of local checkpoints before upload.

A checkpoint holds one or more SQLite databases. Before it is archived the
pruner drops rows older than the retention window from the configured
tables and then VACUUMs each database so the archived copy is compact.

Invariants:
    - Pruning rewrites the checkpoint in place
    - Any SQLite failure fails the whole prune; the uploader then aborts
      so a partially pruned checkpoint is never archived
    - Tables that do not exist in a database are skipped

How to change safely:
    - Widening the retention window is always safe; narrowing it loses data
      in every checkpoint archived afterwards
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from ..errors import PruneError

if TYPE_CHECKING:
    from ..config import PruningConfig

logger = logging.getLogger(__name__)


@runtime_checkable
class CheckpointPruner(Protocol):
    """Rewrites a local checkpoint in place before it is uploaded."""

    async def prune_and_compact(self, db_path: Path, epoch: int) -> None:
        """Prune and compact the checkpoint stored at ``db_path``.

        Raises:
            PruneError: If the checkpoint could not be pruned
        """
        ...


class SqliteCheckpointPruner:
    """Prunes SQLite databases inside a checkpoint directory.

    Attributes:
        config: Pruning configuration

    Example:
        >>> pruner = SqliteCheckpointPruner(PruningConfig(tables=(("objects", "epoch"),)))
        >>> await pruner.prune_and_compact(Path("/data/epoch_12"), 12)
    """

    def __init__(self, config: PruningConfig | None = None) -> None:
        if config is None:
            from ..config import PruningConfig

            config = PruningConfig()
        self.config = config

    async def prune_and_compact(self, db_path: Path, epoch: int) -> None:
        """Prune rows older than the retention window, then VACUUM."""
        db_files = self._find_databases(db_path)
        if not db_files:
            logger.debug(f"No databases to prune in {db_path}", extra={"epoch": epoch})
            return

        cutoff = epoch - self.config.num_epochs_to_retain
        for db_file in db_files:
            logger.info(
                f"Pruning db checkpoint in {db_file} for epoch: {epoch}",
                extra={"epoch": epoch, "cutoff_epoch": cutoff},
            )
            try:
                deleted = await asyncio.get_event_loop().run_in_executor(
                    None, self._prune_database, db_file, cutoff
                )
            except sqlite3.Error as e:
                raise PruneError(epoch, f"{db_file}: {e}") from e

            logger.info(
                f"Compacted db checkpoint in {db_file} for epoch: {epoch}",
                extra={"epoch": epoch, "rows_deleted": deleted},
            )

    def _find_databases(self, db_path: Path) -> list[Path]:
        found: set[Path] = set()
        for pattern in self.config.db_globs:
            found.update(p for p in db_path.rglob(pattern) if p.is_file())
        return sorted(found)

    def _prune_database(self, db_file: Path, cutoff: int) -> int:
        """Delete expired rows and VACUUM. Returns rows deleted."""
        conn = sqlite3.connect(str(db_file))
        try:
            existing = {
                row[0]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            }

            deleted = 0
            if cutoff > 0:
                for table, column in self.config.tables:
                    if table not in existing:
                        continue
                    cursor = conn.execute(
                        f'DELETE FROM "{table}" WHERE "{column}" < ?',
                        (cutoff,),
                    )
                    deleted += cursor.rowcount
                conn.commit()

            conn.execute("VACUUM")
            return deleted
        finally:
            conn.close()
