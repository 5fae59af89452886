"""
Checkpoint Archiver - Main entry point.

This module starts the archival daemon:
- Prometheus metrics endpoint (optional)
- DB checkpoint handler loop (sync + gc timers)

Usage:
    python -m nodeops.ckpt_archiver.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - Metrics registry is created once at startup and passed down
    - Graceful shutdown lets an in-flight cycle finish
    - The daemon exits non-zero if the handler loop ends on its own

How to change safely:
    - Test shutdown sequence thoroughly
    - Never run two daemons against the same remote root
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path

import json_log_formatter
from prometheus_client import CollectorRegistry, start_http_server

from .archive import CheckpointHandler
from .config import DaemonConfig
from .metrics import ArchiverMetrics

logger = logging.getLogger(__name__)


def setup_logging(config: DaemonConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Daemon configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)


class Daemon:
    """Archival daemon orchestrator.

    Manages the lifecycle of:
    - Metrics endpoint
    - Checkpoint handler background loop

    Attributes:
        config: Daemon configuration
        registry: Prometheus registry shared by all components
        handler: Checkpoint handler

    Example:
        >>> daemon = Daemon()
        >>> await daemon.start()
        >>> # Daemon is running
        >>> await daemon.stop()
    """

    def __init__(
        self,
        config: DaemonConfig | None = None,
        registry: CollectorRegistry | None = None,
    ) -> None:
        """Initialize the daemon.

        Args:
            config: Optional daemon configuration (loaded from env if not provided)
            registry: Optional metrics registry (a fresh one if not provided)
        """
        self.config = config or DaemonConfig.from_env()
        self.registry = registry or CollectorRegistry()
        self._running = False
        self._shutdown_event = asyncio.Event()

        self.handler: CheckpointHandler | None = None
        self._tasks: list[asyncio.Task] = []

    async def start(self) -> None:
        """Start the daemon and wait for a shutdown request."""
        if self._running:
            logger.warning("Daemon already running")
            return

        logger.info("Starting checkpoint archiver")
        self.config.log_config()

        try:
            Path(self.config.archiver.local_dir).mkdir(parents=True, exist_ok=True)

            if self.config.observability.metrics_enabled:
                start_http_server(self.config.observability.metrics_port, registry=self.registry)
                logger.info(f"Metrics exposed on port {self.config.observability.metrics_port}")

            self.handler = CheckpointHandler.from_config(
                self.config,
                metrics=ArchiverMetrics(self.registry),
            )
            handler_task = asyncio.create_task(self.handler.start())
            self._tasks.append(handler_task)

            self._running = True
            logger.info("Checkpoint archiver started successfully")

            # Wait for shutdown signal, or for the handler to give up on its own
            shutdown_task = asyncio.create_task(self._shutdown_event.wait())
            try:
                await asyncio.wait(
                    [shutdown_task, handler_task], return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                shutdown_task.cancel()

            if not self._shutdown_event.is_set():
                raise RuntimeError("Checkpoint handler exited before shutdown was requested")

        except Exception as e:
            logger.error(f"Daemon failed: {e}", exc_info=True)
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the daemon gracefully."""
        if not self._running and not self._tasks:
            return

        logger.info("Stopping checkpoint archiver")

        if self.handler:
            await self.handler.stop()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks.clear()

        self._running = False
        logger.info("Checkpoint archiver stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    # Load configuration
    try:
        config = DaemonConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    daemon = Daemon(config)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        daemon.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    exit_code = 0
    try:
        loop.run_until_complete(daemon.start())
    except KeyboardInterrupt:
        pass
    except RuntimeError:
        exit_code = 1
    finally:
        loop.run_until_complete(daemon.stop())
        loop.close()

    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
