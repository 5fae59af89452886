"""
Prometheus metrics for the checkpoint archiver.

Metrics are registered on a CollectorRegistry passed in by the caller, so
tests and multiple handlers in one process never collide on the global
registry.
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge


class ArchiverMetrics:
    """Metrics exported by the checkpoint handler.

    Attributes:
        registry: Registry the metrics are bound to
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()

        self.first_missing_db_checkpoint_epoch = Gauge(
            "first_missing_db_checkpoint_epoch",
            "First epoch for which we have no db checkpoint in remote store",
            registry=self.registry,
        )
        self.db_checkpoint_uploads = Counter(
            "db_checkpoint_uploads",
            "Db checkpoints copied to the remote store",
            registry=self.registry,
        )
        self.db_checkpoint_gc_deleted = Counter(
            "db_checkpoint_gc_deleted",
            "Local db checkpoints removed by garbage collection",
            registry=self.registry,
        )
        self.db_checkpoint_cycle_failures = Counter(
            "db_checkpoint_cycle_failures",
            "Failed sync or gc cycles",
            ["cycle"],
            registry=self.registry,
        )

    def sample(self, name: str, labels: dict[str, str] | None = None) -> float | None:
        """Current value of a sample (testing helper)."""
        return self.registry.get_sample_value(name, labels or {})
