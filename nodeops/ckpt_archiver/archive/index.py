"""
Epoch directory index.

Lists the immediate child directories of a store root and parses every
``epoch_<N>`` name into an epoch number.

Invariants:
    - Keys are unique (one directory per name) and ordered ascending
    - Names without the epoch_ prefix are ignored
    - A name with the prefix but an unparsable number aborts the read
"""

from __future__ import annotations

import logging

from ..errors import MalformedEpochName
from ..store.base import ObjectStore, filename
from .markers import EPOCH_DIR_PREFIX

logger = logging.getLogger(__name__)

MAX_EPOCH = 2**32 - 1

EpochIndex = dict[int, str]


def parse_epoch(name: str) -> int | None:
    """Parse an epoch directory name.

    Args:
        name: Directory name, e.g. ``epoch_12``

    Returns:
        The epoch number, or None if ``name`` is not an epoch directory

    Raises:
        MalformedEpochName: If the suffix is not a decimal number in range
    """
    if not name.startswith(EPOCH_DIR_PREFIX):
        return None

    suffix = name[len(EPOCH_DIR_PREFIX) :]
    if not suffix or not (suffix.isascii() and suffix.isdigit()):
        raise MalformedEpochName(name, "suffix is not a decimal number")

    epoch = int(suffix)
    if epoch > MAX_EPOCH:
        raise MalformedEpochName(name, f"epoch exceeds {MAX_EPOCH}")
    return epoch


async def read_checkpoint_dir(store: ObjectStore) -> EpochIndex:
    """Build the epoch -> store path index of ``store``.

    Args:
        store: Store whose root holds epoch_<N> directories

    Returns:
        Mapping ordered by ascending epoch

    Raises:
        MalformedEpochName: If an epoch_ directory name does not parse
        StoreError: If listing fails
    """
    checkpoints: dict[int, str] = {}
    for path in await store.list_prefixes():
        epoch = parse_epoch(filename(path))
        if epoch is None:
            continue
        checkpoints[epoch] = path

    logger.debug("Read checkpoint dir", extra={"store": repr(store), "epochs": len(checkpoints)})
    return dict(sorted(checkpoints.items()))
