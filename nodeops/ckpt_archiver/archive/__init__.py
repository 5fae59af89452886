"""
Archive module for the checkpoint archiver.

This module reconciles local epoch checkpoints with the remote archive:
- Epoch index of a store root
- Gap detection (which epochs the remote is missing)
- Upload with forward resync from the first unresolved epoch
- Marker-gated garbage collection of local copies
- The scheduling loop driving all of the above

Invariants:
    - Remote _SUCCESS is the only proof an epoch is archived
    - Local _UPLOAD_COMPLETED is written for every epoch the uploader saw
    - Local deletion requires every configured gc marker
"""

from .collector import CheckpointCollector
from .gaps import GapDetector, GapReport, find_missing_epochs
from .handler import CheckpointHandler
from .index import EpochIndex, parse_epoch, read_checkpoint_dir
from .markers import (
    SUCCESS_MARKER,
    TEST_MARKER,
    UPLOAD_COMPLETED_MARKER,
    LocalReadiness,
    RemoteStatus,
    epoch_dir_name,
)
from .uploader import CheckpointUploader

__all__ = [
    "CheckpointHandler",
    "CheckpointUploader",
    "CheckpointCollector",
    "GapDetector",
    "GapReport",
    "find_missing_epochs",
    "EpochIndex",
    "parse_epoch",
    "read_checkpoint_dir",
    "RemoteStatus",
    "LocalReadiness",
    "SUCCESS_MARKER",
    "UPLOAD_COMPLETED_MARKER",
    "TEST_MARKER",
    "epoch_dir_name",
]
