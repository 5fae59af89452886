"""
Helpers that operate across object stores.

Invariants:
    - copy_recursively never leaves a copy running after it returns
    - The first failed file copy fails the whole directory copy
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Iterable
from pathlib import Path

from .base import ObjectStore, StoreError, join_path

logger = logging.getLogger(__name__)


def path_to_filesystem(root: str | os.PathLike[str], path: str | None) -> Path:
    """Map a store path under ``root`` to an absolute filesystem path.

    Args:
        root: Filesystem root of a LocalFileStore
        path: Store path relative to the root

    Returns:
        Resolved absolute path

    Raises:
        StoreError: If the path resolves outside the root
    """
    root_path = Path(root).resolve()
    fs_path = (root_path / (path or "")).resolve()
    if fs_path != root_path and root_path not in fs_path.parents:
        raise StoreError(f"Path escapes store root: {path}")
    return fs_path


async def put(path: str, data: bytes, store: ObjectStore) -> None:
    """Write ``data`` to ``path`` in ``store``."""
    await store.put(path, data)


async def copy_recursively(
    prefix: str,
    src: ObjectStore,
    dst: ObjectStore,
    concurrency: int,
    exclude: Iterable[str] = (),
) -> list[str]:
    """Copy every object under ``prefix`` from ``src`` to the same path in ``dst``.

    Args:
        prefix: Directory-like store path to copy
        src: Source store
        dst: Destination store
        concurrency: Maximum file copies in flight
        exclude: Paths relative to ``prefix`` that are not copied

    Returns:
        Paths that were copied

    Raises:
        StoreError: If listing or any single file copy fails. Remaining
            copies are cancelled before the error propagates.
    """
    if concurrency <= 0:
        raise ValueError("concurrency must be positive")

    skipped = {join_path(prefix, name) for name in exclude}
    paths = [p for p in await src.list(prefix) if p not in skipped]
    semaphore = asyncio.Semaphore(concurrency)

    async def _copy_one(path: str) -> None:
        async with semaphore:
            data = await src.get(path)
            await dst.put(path, data)
            logger.debug("Copied object", extra={"path": path, "size_bytes": len(data)})

    tasks = [asyncio.ensure_future(_copy_one(path)) for path in paths]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    return paths
