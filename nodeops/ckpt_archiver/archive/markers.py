"""
Marker names and epoch state enumerations.

Markers are small objects co-located with a checkpoint directory whose mere
presence records a state transition. They form the on-store contract with
anything else that reads the archive.

Remote state (per epoch, decided by the gap detector):
    GAP         -> no epoch directory at all
    INCOMPLETE  -> directory exists, _SUCCESS is definitely absent
    UNRESOLVED  -> _SUCCESS could not be read this cycle
    SYNCED      -> _SUCCESS present

Local state (per epoch, decided by the garbage collector):
    NOT_READY   -> at least one gc marker missing or unreadable
    READY       -> every gc marker present, directory may be deleted
"""

from __future__ import annotations

from enum import Enum

# Written remotely after a full copy of an epoch succeeds
SUCCESS_MARKER = "_SUCCESS"
# Written locally once the uploader has accounted for an epoch
UPLOAD_COMPLETED_MARKER = "_UPLOAD_COMPLETED"
# Extra gc gate used by tests
TEST_MARKER = "_TEST"

MARKER_CONTENT = b"success"

EPOCH_DIR_PREFIX = "epoch_"


def epoch_dir_name(epoch: int) -> str:
    """Directory name for an epoch, e.g. ``epoch_7``."""
    return f"{EPOCH_DIR_PREFIX}{epoch}"


class RemoteStatus(Enum):
    """Archive state of one epoch in the remote store."""

    SYNCED = "synced"
    INCOMPLETE = "incomplete"
    GAP = "gap"
    UNRESOLVED = "unresolved"

    @property
    def needs_upload(self) -> bool:
        return self in (RemoteStatus.INCOMPLETE, RemoteStatus.GAP)


class LocalReadiness(Enum):
    """Retention state of one local checkpoint directory."""

    NOT_READY = "not_ready"
    READY = "ready"
