"""
Prune module for the checkpoint archiver.

Rewrites local checkpoints in place before they are archived:
- Drops rows outside the retention window
- Compacts each database

Invariants:
    - A checkpoint is either fully pruned or the upload is aborted
"""

from .pruner import CheckpointPruner, SqliteCheckpointPruner

__all__ = ["CheckpointPruner", "SqliteCheckpointPruner"]
