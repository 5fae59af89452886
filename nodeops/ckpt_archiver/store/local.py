"""
Filesystem object store.

Maps store paths onto files below a root directory. Used for the local
checkpoint directory and for file-backed remote archives (NFS mounts, tests).

Invariants:
    - Paths never escape the root directory
    - Writes are atomic (temp file + rename)
    - A missing file or a directory reads as ObjectNotFoundError

How to change safely:
    - Keep blocking I/O in the executor, never on the event loop
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path

from .base import ObjectNotFoundError, StoreError, join_path
from .util import path_to_filesystem

logger = logging.getLogger(__name__)


class LocalFileStore:
    """ObjectStore implementation over a local directory.

    Attributes:
        root: Absolute, resolved root directory

    Example:
        >>> store = LocalFileStore("/tmp/checkpoints")
        >>> await store.put("epoch_0/_SUCCESS", b"success")
        >>> await store.list_prefixes()
        ['epoch_0']
    """

    def __init__(self, root: str | os.PathLike[str]) -> None:
        """Initialize the store.

        Args:
            root: Root directory, created on connect() if missing
        """
        self.root = Path(root).resolve()

    def __repr__(self) -> str:
        return f"LocalFileStore({str(self.root)!r})"

    async def connect(self) -> None:
        """Ensure the root directory exists."""
        await self._run(self.root.mkdir, parents=True, exist_ok=True)
        logger.debug("LocalFileStore connected", extra={"root": str(self.root)})

    async def close(self) -> None:
        """Nothing to release."""
        pass

    def path_to_filesystem(self, path: str | None) -> Path:
        """Translate a store path to an absolute filesystem path.

        Raises:
            StoreError: If the path resolves outside the root
        """
        return path_to_filesystem(self.root, path)

    async def list_prefixes(self, prefix: str | None = None) -> list[str]:
        """List immediate child directories of ``prefix``."""
        base = self.path_to_filesystem(prefix)

        def _scan() -> list[str]:
            if not base.is_dir():
                return []
            return sorted(
                join_path(prefix or "", entry.name)
                for entry in os.scandir(base)
                if entry.is_dir(follow_symlinks=False)
            )

        return await self._run(_scan)

    async def list(self, prefix: str | None = None) -> list[str]:
        """List every file under ``prefix``, recursively."""
        base = self.path_to_filesystem(prefix)

        def _walk() -> list[str]:
            if base.is_file():
                return [join_path(prefix or "")]
            paths = []
            for dirpath, _dirnames, filenames in os.walk(base):
                for name in filenames:
                    full = Path(dirpath) / name
                    paths.append(full.relative_to(self.root).as_posix())
            return sorted(paths)

        return await self._run(_walk)

    async def get(self, path: str) -> bytes:
        """Read a file."""
        fs_path = self.path_to_filesystem(path)
        try:
            return await self._run(fs_path.read_bytes)
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            raise ObjectNotFoundError(path) from None

    async def put(self, path: str, data: bytes) -> None:
        """Atomically write a file, creating parent directories."""
        fs_path = self.path_to_filesystem(path)
        try:
            await self._run(self._atomic_write, fs_path, data)
        except OSError as e:
            raise StoreError(f"Failed to write {path}: {e}") from e

    async def delete(self, path: str) -> None:
        """Remove a file."""
        fs_path = self.path_to_filesystem(path)
        try:
            await self._run(fs_path.unlink)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StoreError(f"Failed to delete {path}: {e}") from e

    @staticmethod
    def _atomic_write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    async def _run(self, func, *args, **kwargs):
        """Run blocking filesystem work in the default executor.

        FileNotFoundError and friends pass through so callers can map them;
        other OSErrors become StoreError.
        """
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, lambda: func(*args, **kwargs))
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            raise
        except OSError as e:
            raise StoreError(f"Filesystem operation failed under {self.root}: {e}") from e
