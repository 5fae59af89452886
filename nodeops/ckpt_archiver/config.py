"""
Configuration management for the checkpoint archiver.

All configuration is done via environment variables - no config files inside containers.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST set explicit values for the remote store
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Never remove _UPLOAD_COMPLETED from the gc markers
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

from .archive.markers import UPLOAD_COMPLETED_MARKER

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_list(name: str, default: str = "") -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(item.strip() for item in raw.split(",") if item.strip())


class ObjectStoreType(Enum):
    """Supported object store backends."""

    FILE = "file"
    S3 = "s3"
    MEMORY = "memory"


@dataclass(frozen=True)
class ObjectStoreConfig:
    """Object store configuration.

    Attributes:
        object_store: Which backend to use
        directory: Root directory (FILE backend)
        bucket: S3 bucket name (S3 backend)
        prefix: Key prefix inside the bucket, acts as the store root
        region: AWS region
        endpoint_url: Custom endpoint URL (for MinIO)
        access_key_id: AWS access key ID (optional, uses AWS credential chain)
        secret_access_key: AWS secret access key (optional)
    """

    object_store: ObjectStoreType = ObjectStoreType.FILE
    directory: str | None = None
    bucket: str | None = None
    prefix: str = ""
    region: str = "us-east-1"
    endpoint_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None

    @classmethod
    def local(cls, directory: str) -> ObjectStoreConfig:
        """Config for a filesystem store rooted at ``directory``."""
        return cls(object_store=ObjectStoreType.FILE, directory=directory)

    @classmethod
    def from_env(cls) -> ObjectStoreConfig:
        """Load remote store configuration from environment variables."""
        kind = os.getenv("CKPT_REMOTE_STORE", "s3").lower()
        try:
            object_store = ObjectStoreType(kind)
        except ValueError:
            raise ValueError(
                f"Invalid CKPT_REMOTE_STORE '{kind}'. Must be one of: file, s3, memory"
            )

        return cls(
            object_store=object_store,
            directory=os.getenv("CKPT_REMOTE_DIR"),
            bucket=os.getenv("S3_BUCKET"),
            prefix=os.getenv("S3_PREFIX", "db-checkpoints"),
            region=os.getenv("S3_REGION", os.getenv("AWS_REGION", "us-east-1")),
            endpoint_url=os.getenv("S3_ENDPOINT"),
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        )

    def validate(self) -> None:
        """Validate backend specific settings.

        Raises:
            ValueError: If a required setting is missing.
        """
        if self.object_store == ObjectStoreType.FILE and not self.directory:
            raise ValueError("A directory is required for the file object store")
        if self.object_store == ObjectStoreType.S3 and not self.bucket:
            raise ValueError("S3_BUCKET is required when CKPT_REMOTE_STORE=s3")


@dataclass(frozen=True)
class ArchiverConfig:
    """Checkpoint handler configuration.

    Attributes:
        local_dir: Directory where the node writes epoch_<N> checkpoints
        interval_seconds: Interval between sync cycles
        gc_interval_seconds: Interval between garbage collection passes
        prune_and_compact_before_upload: Prune and compact each checkpoint before copying
        copy_concurrency: Maximum concurrent file copies per checkpoint
        gc_markers: Local markers that must all exist before deletion
        max_ambiguous_marker_errors: Consecutive ambiguous marker reads before an
            epoch is treated as incomplete (0 disables escalation)
    """

    local_dir: str = "/var/lib/node/db_checkpoints"
    interval_seconds: int = 60
    gc_interval_seconds: int = 30
    prune_and_compact_before_upload: bool = False
    copy_concurrency: int = 20
    gc_markers: tuple[str, ...] = (UPLOAD_COMPLETED_MARKER,)
    max_ambiguous_marker_errors: int = 5

    @classmethod
    def from_env(cls) -> ArchiverConfig:
        """Load configuration from environment variables."""
        extra_markers = _env_list("CKPT_GC_MARKERS")
        gc_markers = (UPLOAD_COMPLETED_MARKER,) + tuple(
            m for m in extra_markers if m != UPLOAD_COMPLETED_MARKER
        )
        return cls(
            local_dir=os.getenv("CKPT_LOCAL_DIR", "/var/lib/node/db_checkpoints"),
            interval_seconds=int(os.getenv("CKPT_SYNC_INTERVAL_SECONDS", "60")),
            gc_interval_seconds=int(os.getenv("CKPT_GC_INTERVAL_SECONDS", "30")),
            prune_and_compact_before_upload=_env_bool("CKPT_PRUNE_BEFORE_UPLOAD", "false"),
            copy_concurrency=int(os.getenv("CKPT_COPY_CONCURRENCY", "20")),
            gc_markers=gc_markers,
            max_ambiguous_marker_errors=int(os.getenv("CKPT_MAX_AMBIGUOUS_MARKER_ERRORS", "5")),
        )


@dataclass(frozen=True)
class PruningConfig:
    """Pruning and compaction configuration.

    Attributes:
        num_epochs_to_retain: Epochs of history kept in a pruned checkpoint
        tables: (table, epoch_column) pairs to prune
        db_globs: Filename patterns of SQLite files inside a checkpoint
    """

    num_epochs_to_retain: int = 2
    tables: tuple[tuple[str, str], ...] = ()
    db_globs: tuple[str, ...] = ("*.db", "*.sqlite")

    @classmethod
    def from_env(cls) -> PruningConfig:
        """Load configuration from environment variables.

        Raises:
            ValueError: If PRUNE_TABLES entries are not ``table:column``.
        """
        tables = []
        for entry in _env_list("PRUNE_TABLES"):
            table, sep, column = entry.partition(":")
            if not sep or not table or not column:
                raise ValueError(f"Invalid PRUNE_TABLES entry '{entry}'. Expected table:column")
            tables.append((table, column))

        return cls(
            num_epochs_to_retain=int(os.getenv("PRUNE_NUM_EPOCHS_TO_RETAIN", "2")),
            tables=tuple(tables),
            db_globs=_env_list("PRUNE_DB_GLOBS", "*.db,*.sqlite"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Observability and logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
        metrics_enabled: Whether to expose Prometheus metrics
        metrics_port: Port for metrics endpoint
    """

    log_level: str = "INFO"
    log_format: str = "json"
    metrics_enabled: bool = True
    metrics_port: int = 9184

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
            metrics_enabled=_env_bool("METRICS_ENABLED", "true"),
            metrics_port=int(os.getenv("METRICS_PORT", "9184")),
        )


@dataclass
class DaemonConfig:
    """Complete daemon configuration.

    Attributes:
        archiver: Checkpoint handler configuration
        remote: Remote object store configuration
        pruning: Pruning configuration
        observability: Observability configuration
    """

    archiver: ArchiverConfig = field(default_factory=ArchiverConfig)
    remote: ObjectStoreConfig = field(default_factory=ObjectStoreConfig)
    pruning: PruningConfig = field(default_factory=PruningConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @property
    def local(self) -> ObjectStoreConfig:
        """Object store config for the local checkpoint directory."""
        return ObjectStoreConfig.local(self.archiver.local_dir)

    @classmethod
    def from_env(cls) -> DaemonConfig:
        """Load complete configuration from environment variables.

        Returns:
            DaemonConfig with all sections populated from environment.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        config = cls(
            archiver=ArchiverConfig.from_env(),
            remote=ObjectStoreConfig.from_env(),
            pruning=PruningConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        self.remote.validate()

        if self.archiver.interval_seconds <= 0:
            raise ValueError("CKPT_SYNC_INTERVAL_SECONDS must be positive")
        if self.archiver.gc_interval_seconds <= 0:
            raise ValueError("CKPT_GC_INTERVAL_SECONDS must be positive")
        if self.archiver.copy_concurrency <= 0:
            raise ValueError("CKPT_COPY_CONCURRENCY must be positive")
        if self.archiver.max_ambiguous_marker_errors < 0:
            raise ValueError("CKPT_MAX_AMBIGUOUS_MARKER_ERRORS must not be negative")
        if UPLOAD_COMPLETED_MARKER not in self.archiver.gc_markers:
            raise ValueError(f"gc markers must include {UPLOAD_COMPLETED_MARKER}")

        if (
            self.remote.object_store == ObjectStoreType.FILE
            and self.remote.directory
            and os.path.abspath(self.remote.directory) == os.path.abspath(self.archiver.local_dir)
        ):
            raise ValueError("CKPT_REMOTE_DIR must differ from CKPT_LOCAL_DIR")

        if not os.path.exists(self.archiver.local_dir):
            logger.warning(
                f"Checkpoint directory does not exist: {self.archiver.local_dir}. "
                "It will be created on start."
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Archiver configuration loaded",
            extra={
                "local_dir": self.archiver.local_dir,
                "remote_store": self.remote.object_store.value,
                "remote_dir": self.remote.directory
                if self.remote.object_store == ObjectStoreType.FILE
                else None,
                "s3_bucket": self.remote.bucket
                if self.remote.object_store == ObjectStoreType.S3
                else None,
                "s3_prefix": self.remote.prefix,
                "interval_seconds": self.archiver.interval_seconds,
                "gc_interval_seconds": self.archiver.gc_interval_seconds,
                "prune_before_upload": self.archiver.prune_and_compact_before_upload,
                "gc_markers": list(self.archiver.gc_markers),
                "log_level": self.observability.log_level,
            },
        )
