"""
Gap detection against the remote archive.

Walks the remote epoch index together with the implied contiguous sequence
0, 1, 2, ... and classifies every epoch:

    epoch_0/_SUCCESS   -> SYNCED
    epoch_1/           -> INCOMPLETE   (marker definitely absent)
    (no epoch_2/)      -> GAP
    epoch_3/_SUCCESS   -> SYNCED
                       -> sentinel 4

The result lists every GAP and INCOMPLETE epoch in ascending order and always
ends with the sentinel: one past the highest remote epoch. The uploader
re-copies every local epoch at or beyond that sentinel.

Invariants:
    - Only ObjectNotFoundError marks an epoch INCOMPLETE
    - Any other StoreError leaves the epoch UNRESOLVED for this cycle,
      unless it has been ambiguous for max_ambiguous_errors cycles in a row
    - The missing list is never empty

How to change safely:
    - Keep the sentinel; the uploader relies on it as the resync boundary
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..store.base import ObjectNotFoundError, ObjectStore, StoreError, child
from .index import read_checkpoint_dir
from .markers import SUCCESS_MARKER, RemoteStatus

logger = logging.getLogger(__name__)


@dataclass
class GapReport:
    """Outcome of one gap detection pass.

    Attributes:
        missing_epochs: Epochs to (re)upload, ascending, sentinel last
        statuses: Classification of every epoch below the sentinel
    """

    missing_epochs: list[int]
    statuses: dict[int, RemoteStatus] = field(default_factory=dict)

    @property
    def first_missing_epoch(self) -> int:
        return self.missing_epochs[0] if self.missing_epochs else 0

    @property
    def boundary(self) -> int:
        """One past the highest epoch present remotely."""
        return self.missing_epochs[-1] if self.missing_epochs else 0

    def epochs_with(self, status: RemoteStatus) -> list[int]:
        return [epoch for epoch, s in self.statuses.items() if s == status]


class GapDetector:
    """Finds epochs the remote archive is missing.

    Attributes:
        remote: Remote object store
        max_ambiguous_errors: Consecutive ambiguous marker reads after which an
            epoch is treated as INCOMPLETE (0 never escalates)

    Example:
        >>> detector = GapDetector(remote_store)
        >>> report = await detector.detect()
        >>> report.missing_epochs
        [2, 4]
    """

    def __init__(self, remote: ObjectStore, max_ambiguous_errors: int = 0) -> None:
        self.remote = remote
        self.max_ambiguous_errors = max_ambiguous_errors
        self._ambiguous_counts: dict[int, int] = {}

    async def detect(self) -> GapReport:
        """Classify every remote epoch and build the missing list.

        Raises:
            MalformedEpochName: If a remote epoch directory name does not parse
            StoreError: If the remote root cannot be listed
        """
        remote_checkpoints = await read_checkpoint_dir(self.remote)

        candidate_epoch = 0
        missing_epochs: list[int] = []
        statuses: dict[int, RemoteStatus] = {}

        for epoch, path in remote_checkpoints.items():
            # The whole epoch directory is missing
            while candidate_epoch < epoch:
                statuses[candidate_epoch] = RemoteStatus.GAP
                missing_epochs.append(candidate_epoch)
                candidate_epoch += 1

            status = await self._check_success_marker(epoch, path)
            statuses[epoch] = status
            if status.needs_upload:
                missing_epochs.append(epoch)

            candidate_epoch = epoch + 1

        missing_epochs.append(candidate_epoch)

        # Drop counters for epochs that vanished from the remote
        self._ambiguous_counts = {
            epoch: count
            for epoch, count in self._ambiguous_counts.items()
            if epoch in remote_checkpoints
        }

        return GapReport(missing_epochs=missing_epochs, statuses=statuses)

    async def find_missing_epochs(self) -> list[int]:
        """Missing epochs only, sentinel last."""
        return (await self.detect()).missing_epochs

    async def _check_success_marker(self, epoch: int, path: str) -> RemoteStatus:
        try:
            await self.remote.get(child(path, SUCCESS_MARKER))
        except ObjectNotFoundError:
            self._ambiguous_counts.pop(epoch, None)
            logger.error(
                f"No success marker found in db checkpoint for epoch: {epoch}",
                extra={"epoch": epoch, "path": path},
            )
            return RemoteStatus.INCOMPLETE
        except StoreError as e:
            count = self._ambiguous_counts.get(epoch, 0) + 1
            self._ambiguous_counts[epoch] = count

            if self.max_ambiguous_errors and count >= self.max_ambiguous_errors:
                logger.error(
                    f"Success marker for epoch {epoch} unreadable for {count} consecutive "
                    f"cycles, treating checkpoint as incomplete: {e}",
                    extra={"epoch": epoch, "path": path, "consecutive_errors": count},
                )
                return RemoteStatus.INCOMPLETE

            logger.warning(
                f"Failed while trying to read success marker in db checkpoint "
                f"for epoch: {epoch}: {e}",
                extra={"epoch": epoch, "path": path, "consecutive_errors": count},
            )
            return RemoteStatus.UNRESOLVED

        self._ambiguous_counts.pop(epoch, None)
        return RemoteStatus.SYNCED


async def find_missing_epochs(remote: ObjectStore) -> list[int]:
    """One-shot gap detection without cross-cycle escalation state."""
    return await GapDetector(remote).find_missing_epochs()
