"""Errors raised by the archival cycles and their collaborators."""

from __future__ import annotations


class ArchiverError(Exception):
    """Base exception for checkpoint archival."""

    pass


class MalformedEpochName(ArchiverError):
    """A directory looks like an epoch directory but its number does not parse."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"Malformed epoch directory name '{name}': {reason}")
        self.name = name


class PruneError(ArchiverError):
    """Pruning or compaction of a local checkpoint failed."""

    def __init__(self, epoch: int, message: str) -> None:
        super().__init__(f"Failed to prune checkpoint for epoch {epoch}: {message}")
        self.epoch = epoch
