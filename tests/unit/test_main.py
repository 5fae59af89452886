"""
Unit tests for daemon wiring and logging setup.
"""

import asyncio
import logging

import json_log_formatter
import pytest
from prometheus_client import CollectorRegistry

from nodeops.ckpt_archiver.config import (
    ArchiverConfig,
    DaemonConfig,
    ObjectStoreConfig,
    ObjectStoreType,
    ObservabilityConfig,
)
from nodeops.ckpt_archiver.main import Daemon, setup_logging
from nodeops.ckpt_archiver.store import InMemoryObjectStore, StoreConnectionError


@pytest.fixture
def restore_logging():
    """Undo root logger changes made by setup_logging."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_json_format(self, restore_logging):
        setup_logging(DaemonConfig(observability=ObservabilityConfig(log_level="debug")))

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)
        assert logging.getLogger("botocore").level == logging.WARNING

    def test_text_format(self, restore_logging):
        setup_logging(DaemonConfig(observability=ObservabilityConfig(log_format="text")))

        formatter = logging.getLogger().handlers[0].formatter
        assert not isinstance(formatter, json_log_formatter.JSONFormatter)


class TestDaemon:
    """Tests for the Daemon orchestrator."""

    @pytest.fixture
    def config(self, local_dir):
        return DaemonConfig(
            archiver=ArchiverConfig(local_dir=str(local_dir / "checkpoints")),
            remote=ObjectStoreConfig(object_store=ObjectStoreType.MEMORY),
            observability=ObservabilityConfig(metrics_enabled=False),
        )

    @pytest.mark.asyncio
    async def test_start_and_stop(self, config, local_dir):
        registry = CollectorRegistry()
        daemon = Daemon(config, registry=registry)

        task = asyncio.create_task(daemon.start())
        for _ in range(500):
            if daemon.handler and daemon.handler.stats["gc_cycles"] >= 1:
                break
            await asyncio.sleep(0.01)

        assert (local_dir / "checkpoints").is_dir()
        assert daemon.handler.is_running
        assert registry.get_sample_value("first_missing_db_checkpoint_epoch") == 0.0

        daemon.request_shutdown()
        await asyncio.wait_for(task, timeout=5.0)
        await daemon.stop()

        assert not daemon.handler.is_running

    @pytest.mark.asyncio
    async def test_handler_exit_stops_daemon(self, config, monkeypatch):
        """An unreachable remote ends the daemon instead of idling forever."""

        async def refuse(self):
            raise StoreConnectionError("endpoint unreachable")

        monkeypatch.setattr(InMemoryObjectStore, "connect", refuse)
        daemon = Daemon(config, registry=CollectorRegistry())

        with pytest.raises(RuntimeError, match="exited before shutdown"):
            await asyncio.wait_for(daemon.start(), timeout=5.0)

        assert not daemon.handler.is_running
        assert daemon.handler.stats["sync_cycles"] == 0
