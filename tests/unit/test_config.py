"""
Unit tests for environment-driven configuration.
"""

import pytest

from nodeops.ckpt_archiver.archive import TEST_MARKER, UPLOAD_COMPLETED_MARKER
from nodeops.ckpt_archiver.config import (
    ArchiverConfig,
    DaemonConfig,
    ObjectStoreConfig,
    ObjectStoreType,
    ObservabilityConfig,
    PruningConfig,
)

ENV_VARS = (
    "CKPT_LOCAL_DIR",
    "CKPT_SYNC_INTERVAL_SECONDS",
    "CKPT_GC_INTERVAL_SECONDS",
    "CKPT_PRUNE_BEFORE_UPLOAD",
    "CKPT_COPY_CONCURRENCY",
    "CKPT_GC_MARKERS",
    "CKPT_MAX_AMBIGUOUS_MARKER_ERRORS",
    "CKPT_REMOTE_STORE",
    "CKPT_REMOTE_DIR",
    "S3_BUCKET",
    "S3_PREFIX",
    "S3_REGION",
    "S3_ENDPOINT",
    "AWS_REGION",
    "PRUNE_TABLES",
    "PRUNE_NUM_EPOCHS_TO_RETAIN",
    "PRUNE_DB_GLOBS",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "METRICS_ENABLED",
    "METRICS_PORT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Start every test from an environment without archiver settings."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestArchiverConfig:
    """Tests for ArchiverConfig."""

    def test_defaults(self):
        config = ArchiverConfig.from_env()

        assert config.interval_seconds == 60
        assert config.gc_interval_seconds == 30
        assert config.copy_concurrency == 20
        assert config.prune_and_compact_before_upload is False
        assert config.gc_markers == (UPLOAD_COMPLETED_MARKER,)
        assert config.max_ambiguous_marker_errors == 5

    def test_extra_gc_markers(self, monkeypatch):
        monkeypatch.setenv("CKPT_GC_MARKERS", f"{TEST_MARKER}, {UPLOAD_COMPLETED_MARKER},")

        config = ArchiverConfig.from_env()

        assert config.gc_markers == (UPLOAD_COMPLETED_MARKER, TEST_MARKER)

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("CKPT_LOCAL_DIR", "/data/ckpt")
        monkeypatch.setenv("CKPT_SYNC_INTERVAL_SECONDS", "5")
        monkeypatch.setenv("CKPT_PRUNE_BEFORE_UPLOAD", "TRUE")

        config = ArchiverConfig.from_env()

        assert config.local_dir == "/data/ckpt"
        assert config.interval_seconds == 5
        assert config.prune_and_compact_before_upload is True


class TestObjectStoreConfig:
    """Tests for ObjectStoreConfig."""

    def test_s3_from_env(self, monkeypatch):
        monkeypatch.setenv("S3_BUCKET", "archive")
        monkeypatch.setenv("S3_ENDPOINT", "http://localhost:9000")

        config = ObjectStoreConfig.from_env()

        assert config.object_store == ObjectStoreType.S3
        assert config.bucket == "archive"
        assert config.prefix == "db-checkpoints"
        assert config.endpoint_url == "http://localhost:9000"

    def test_invalid_backend(self, monkeypatch):
        monkeypatch.setenv("CKPT_REMOTE_STORE", "gcs")
        with pytest.raises(ValueError, match="CKPT_REMOTE_STORE"):
            ObjectStoreConfig.from_env()

    def test_local(self):
        config = ObjectStoreConfig.local("/mnt/archive")
        assert config.object_store == ObjectStoreType.FILE
        config.validate()


class TestPruningConfig:
    """Tests for PruningConfig."""

    def test_tables(self, monkeypatch):
        monkeypatch.setenv("PRUNE_TABLES", "objects:epoch, events:epoch_id")

        config = PruningConfig.from_env()

        assert config.tables == (("objects", "epoch"), ("events", "epoch_id"))
        assert config.db_globs == ("*.db", "*.sqlite")

    def test_invalid_table_entry(self, monkeypatch):
        monkeypatch.setenv("PRUNE_TABLES", "objects")
        with pytest.raises(ValueError, match="table:column"):
            PruningConfig.from_env()


class TestDaemonConfig:
    """Tests for DaemonConfig."""

    def test_from_env_file_backend(self, monkeypatch, local_dir, remote_dir):
        monkeypatch.setenv("CKPT_LOCAL_DIR", str(local_dir))
        monkeypatch.setenv("CKPT_REMOTE_STORE", "file")
        monkeypatch.setenv("CKPT_REMOTE_DIR", str(remote_dir))
        monkeypatch.setenv("LOG_FORMAT", "text")

        config = DaemonConfig.from_env()

        assert config.remote.directory == str(remote_dir)
        assert config.local.directory == str(local_dir)
        assert config.observability.log_format == "text"

    def test_s3_requires_bucket(self):
        with pytest.raises(ValueError, match="S3_BUCKET"):
            DaemonConfig.from_env()

    def test_remote_must_differ_from_local(self, local_dir):
        config = DaemonConfig(
            archiver=ArchiverConfig(local_dir=str(local_dir)),
            remote=ObjectStoreConfig.local(str(local_dir)),
        )
        with pytest.raises(ValueError, match="differ"):
            config.validate()

    @pytest.mark.parametrize(
        "archiver",
        [
            ArchiverConfig(interval_seconds=0),
            ArchiverConfig(gc_interval_seconds=-1),
            ArchiverConfig(copy_concurrency=0),
            ArchiverConfig(max_ambiguous_marker_errors=-1),
            ArchiverConfig(gc_markers=(TEST_MARKER,)),
        ],
    )
    def test_invalid_archiver_settings(self, archiver, remote_dir):
        config = DaemonConfig(archiver=archiver, remote=ObjectStoreConfig.local(str(remote_dir)))
        with pytest.raises(ValueError):
            config.validate()

    def test_log_config_redacts_secrets(self, caplog):
        config = DaemonConfig(
            remote=ObjectStoreConfig(
                object_store=ObjectStoreType.S3,
                bucket="archive",
                secret_access_key="very-secret",
            ),
            observability=ObservabilityConfig(),
        )

        with caplog.at_level("INFO", logger="nodeops.ckpt_archiver.config"):
            config.log_config()

        assert caplog.records
        for record in caplog.records:
            assert "very-secret" not in str(record.__dict__)
