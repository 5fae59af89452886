"""
In-memory object store implementation for testing.

This module provides a simple in-memory backend for:
- Unit tests
- Failure injection (transient errors, failed copies)
- Local development without external dependencies

Invariants:
    - All data is lost on process exit
    - Same error semantics as production backends

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with ObjectStore protocol
"""

from __future__ import annotations

import asyncio
import logging

from .base import ObjectNotFoundError, StoreError, join_path

logger = logging.getLogger(__name__)


class InMemoryObjectStore:
    """In-memory implementation of ObjectStore for testing.

    Example:
        >>> store = InMemoryObjectStore()
        >>> await store.put("epoch_0/file1", b"data")
        >>> store.inject_failure("get", "epoch_0/_SUCCESS", StoreError("throttled"))
    """

    OPERATIONS = ("list", "get", "put", "delete")

    def __init__(self) -> None:
        self._objects: dict[str, bytes] = {}
        self._failures: dict[tuple[str, str], Exception] = {}
        self._lock = asyncio.Lock()
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True
        logger.debug("InMemoryObjectStore connected")

    async def close(self) -> None:
        self._connected = False
        logger.debug("InMemoryObjectStore closed")

    async def list_prefixes(self, prefix: str | None = None) -> list[str]:
        self._maybe_fail("list", prefix or "")
        base = join_path(prefix or "")
        children = set()
        for path in self._objects:
            rest = self._relative(path, base)
            if rest is not None and "/" in rest:
                children.add(join_path(base, rest.split("/", 1)[0]))
        return sorted(children)

    async def list(self, prefix: str | None = None) -> list[str]:
        self._maybe_fail("list", prefix or "")
        base = join_path(prefix or "")
        return sorted(p for p in self._objects if self._relative(p, base) is not None)

    async def get(self, path: str) -> bytes:
        self._maybe_fail("get", path)
        try:
            return self._objects[join_path(path)]
        except KeyError:
            raise ObjectNotFoundError(path) from None

    async def put(self, path: str, data: bytes) -> None:
        self._maybe_fail("put", path)
        async with self._lock:
            self._objects[join_path(path)] = bytes(data)

    async def delete(self, path: str) -> None:
        self._maybe_fail("delete", path)
        async with self._lock:
            self._objects.pop(join_path(path), None)

    @staticmethod
    def _relative(path: str, base: str) -> str | None:
        if not base:
            return path
        if path == base:
            return ""
        if path.startswith(base + "/"):
            return path[len(base) + 1 :]
        return None

    def _maybe_fail(self, op: str, path: str) -> None:
        exc = self._failures.get((op, join_path(path)))
        if exc is not None:
            raise exc

    # Testing helpers

    def inject_failure(self, op: str, path: str, exception: Exception | None = None) -> None:
        """Make every ``op`` on ``path`` raise ``exception``.

        Args:
            op: One of OPERATIONS
            path: Exact store path (or prefix for "list")
            exception: Exception to raise, a generic StoreError by default
        """
        if op not in self.OPERATIONS:
            raise ValueError(f"Unknown operation '{op}'. Must be one of: {self.OPERATIONS}")
        self._failures[(op, join_path(path))] = exception or StoreError(
            f"Injected {op} failure for {path}"
        )

    def clear_failures(self) -> None:
        """Remove all injected failures."""
        self._failures.clear()

    def snapshot(self) -> dict[str, bytes]:
        """Copy of every stored object (testing helper)."""
        return dict(self._objects)
