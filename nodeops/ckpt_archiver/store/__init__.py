"""
Object store abstraction for the checkpoint archiver.

This module provides a pluggable store interface supporting:
- Local filesystem (the node's checkpoint directory, NFS archives)
- S3 and S3-compatible services (recommended remote archive)
- In-memory (for testing)

Invariants:
    - Only a definite absence is reported as ObjectNotFoundError
    - Writes are atomic per object

How to change safely:
    - New backends must implement the ObjectStore protocol
    - Verify error mapping against the backend before adding it
"""

from .base import (
    ObjectNotFoundError,
    ObjectStore,
    StoreConnectionError,
    StoreError,
    child,
    create_object_store,
    filename,
    join_path,
)
from .local import LocalFileStore
from .memory import InMemoryObjectStore
from .util import copy_recursively, path_to_filesystem, put

__all__ = [
    # Protocol and errors
    "ObjectStore",
    "StoreError",
    "ObjectNotFoundError",
    "StoreConnectionError",
    # Factory
    "create_object_store",
    # Implementations
    "LocalFileStore",
    "InMemoryObjectStore",
    # Helpers
    "child",
    "filename",
    "join_path",
    "copy_recursively",
    "path_to_filesystem",
    "put",
]
