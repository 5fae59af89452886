"""
Checkpoint Archiver - background archival of epoch-numbered DB checkpoints.

A node periodically writes a checkpoint of its database into a local
directory named ``epoch_<N>``. This package reconciles those directories
against a remote object store:

    ┌──────────────────┐   gap detection   ┌──────────────────┐
    │  local store     │ ◀───────────────▶ │  remote store    │
    │  epoch_0/ ...    │   copy + _SUCCESS  │  epoch_0/ ...    │
    └────────┬─────────┘ ─────────────────▶ └──────────────────┘
             │
             ▼ _UPLOAD_COMPLETED (+ extra gc markers)
    ┌──────────────────┐
    │ garbage collect  │
    └──────────────────┘

Invariants:
    - A remote epoch is archived only once its _SUCCESS marker exists
    - Re-upload restarts from the first unresolved epoch, so the remote
      archive never keeps a permanent hole
    - A local checkpoint is deleted only when every gc marker is present
    - Exactly one daemon writes a given remote root

How to change safely:
    - Marker names are part of the on-store contract; never rename them
    - New gc gates are added as extra markers, never by weakening existing ones

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
