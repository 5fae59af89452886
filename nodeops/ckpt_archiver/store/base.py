"""
Base protocol and types for the object store abstraction.

This module defines the ObjectStore protocol that all backends must implement,
along with the store error types and the backend factory.

Paths are ``/``-separated keys relative to the store root without leading or
trailing slashes, e.g. ``epoch_3/data/file3``. A "prefix" is a directory-like
path whose children are listed with ``list_prefixes``.

Invariants:
    - get() raises ObjectNotFoundError only for a definite absence
    - Every other backend failure surfaces as StoreError
    - put() is atomic from a reader's point of view

How to change safely:
    - Protocol changes require updating all implementations
    - Never map a transient failure to ObjectNotFoundError, the gap
      detector treats that as proof an epoch is incomplete
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..config import ObjectStoreConfig

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base exception for object store operations."""

    pass


class ObjectNotFoundError(StoreError):
    """The requested object definitely does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Object not found: {path}")
        self.path = path


class StoreConnectionError(StoreError):
    """Connection to the object store backend failed."""

    pass


def join_path(*parts: str) -> str:
    """Join store path segments, dropping empty ones."""
    return "/".join(p.strip("/") for p in parts if p and p.strip("/"))


def child(path: str, name: str) -> str:
    """Path of ``name`` directly under ``path``."""
    return join_path(path, name)


def filename(path: str) -> str:
    """Last segment of a store path."""
    return path.rstrip("/").rsplit("/", 1)[-1]


@runtime_checkable
class ObjectStore(Protocol):
    """Protocol for object store backends.

    Example:
        >>> store = LocalFileStore("/var/lib/node/db_checkpoints")
        >>> await store.connect()
        >>> for prefix in await store.list_prefixes():
        ...     print(prefix)
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the backend. Must be called before any other operation.

        Raises:
            StoreConnectionError: If the backend cannot be reached
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""
        ...

    @abstractmethod
    async def list_prefixes(self, prefix: str | None = None) -> list[str]:
        """List the immediate child prefixes of ``prefix`` (or of the root).

        Returns:
            Full store paths of the child prefixes, sorted

        Raises:
            StoreError: If listing fails
        """
        ...

    @abstractmethod
    async def list(self, prefix: str | None = None) -> list[str]:
        """List every object path under ``prefix``, recursively.

        Raises:
            StoreError: If listing fails
        """
        ...

    @abstractmethod
    async def get(self, path: str) -> bytes:
        """Read an object.

        Raises:
            ObjectNotFoundError: If the object does not exist
            StoreError: For any other failure
        """
        ...

    @abstractmethod
    async def put(self, path: str, data: bytes) -> None:
        """Write an object, replacing any existing one.

        Raises:
            StoreError: If the write fails
        """
        ...

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Delete an object. Deleting a missing object is not an error.

        Raises:
            StoreError: If the delete fails
        """
        ...


def create_object_store(config: "ObjectStoreConfig") -> ObjectStore:
    """Factory function to create an object store from configuration.

    Args:
        config: Object store configuration

    Returns:
        Appropriate ObjectStore implementation

    Raises:
        ValueError: If backend is not supported or misconfigured
    """
    from ..config import ObjectStoreType
    from .local import LocalFileStore
    from .memory import InMemoryObjectStore

    config.validate()

    if config.object_store == ObjectStoreType.FILE:
        return LocalFileStore(config.directory)
    elif config.object_store == ObjectStoreType.S3:
        from .s3 import S3ObjectStore

        return S3ObjectStore(config)
    elif config.object_store == ObjectStoreType.MEMORY:
        return InMemoryObjectStore()
    else:
        raise ValueError(f"Unsupported object store: {config.object_store}")
