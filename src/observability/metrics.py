"""
Prometheus metrics collection for advocacy-etl

Each pipeline run owns a ``PipelineMetrics`` instance with its own
CollectorRegistry, so counters never leak between runs or between tests.
"""
import os
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


class PipelineMetrics:
    """
    Stats sink injected into the ETL pipeline.

    Usage:
        metrics = PipelineMetrics()
        metrics.record_file_skipped("unparsable")
        metrics.generate_metrics()
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()

        # =======================
        # RECORD METRICS
        # =======================

        self.records_processed_total = Counter(
            name="etl_records_processed_total",
            documentation="Total number of records processed by the pipeline",
            labelnames=["status"],  # status: clean, messy, failed
            registry=self.registry,
        )
        self.validation_failures_total = Counter(
            name="etl_validation_failures_total",
            documentation="Total number of records rejected by the validator",
            registry=self.registry,
        )
        self.files_skipped_total = Counter(
            name="etl_files_skipped_total",
            documentation="Total number of input files skipped",
            labelnames=["reason"],  # reason: unparsable, unreadable
            registry=self.registry,
        )
        self.duplicates_total = Counter(
            name="etl_duplicates_total",
            documentation="Duplicate user records resolved during deduplication",
            labelnames=["resolution"],  # resolution: merged, replaced, discarded, skipped_existing
            registry=self.registry,
        )

        # =======================
        # LOAD METRICS
        # =======================

        self.batches_loaded_total = Counter(
            name="etl_batches_loaded_total",
            documentation="Total number of batches handed to the loader",
            labelnames=["status"],  # status: success, partial_failure
            registry=self.registry,
        )
        self.users_written_total = Counter(
            name="etl_users_written_total",
            documentation="Users written to the store",
            labelnames=["operation"],  # operation: insert, update, failed
            registry=self.registry,
        )
        self.batch_size = Histogram(
            name="etl_batch_size_records",
            documentation="Number of users per loaded batch",
            buckets=[1, 10, 50, 100, 500, 1000, 5000, 10000],
            registry=self.registry,
        )
        self.load_duration_seconds = Histogram(
            name="etl_load_duration_seconds",
            documentation="Time spent loading one batch",
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0],
            registry=self.registry,
        )
        self.run_duration_seconds = Histogram(
            name="etl_run_duration_seconds",
            documentation="Wall-clock duration of full pipeline runs",
            buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0, 3600.0],
            registry=self.registry,
        )

    def record_record(self, status: str) -> None:
        self.records_processed_total.labels(status=status).inc()

    def record_validation_failure(self) -> None:
        self.validation_failures_total.inc()
        self.records_processed_total.labels(status="failed").inc()

    def record_file_skipped(self, reason: str) -> None:
        self.files_skipped_total.labels(reason=reason).inc()

    def record_duplicates(self, resolution: str, count: int) -> None:
        if count > 0:
            self.duplicates_total.labels(resolution=resolution).inc(count)

    def record_batch_loaded(
        self,
        record_count: int,
        inserted: int,
        updated: int,
        failed: int,
        duration_seconds: float,
    ) -> None:
        """
        Record a loader call.

        Args:
            record_count: Users handed to the loader
            inserted: Users inserted
            updated: Users updated
            failed: Users that failed to persist
            duration_seconds: Time spent in the loader
        """
        status = "success" if failed == 0 else "partial_failure"
        self.batches_loaded_total.labels(status=status).inc()
        self.batch_size.observe(record_count)
        self.load_duration_seconds.observe(duration_seconds)
        if inserted:
            self.users_written_total.labels(operation="insert").inc(inserted)
        if updated:
            self.users_written_total.labels(operation="update").inc(updated)
        if failed:
            self.users_written_total.labels(operation="failed").inc(failed)

    def record_run(self, duration_seconds: float) -> None:
        self.run_duration_seconds.observe(duration_seconds)

    def get_sample_value(self, name: str, labels: dict[str, str] | None = None) -> float | None:
        """Read back a sample from this run's registry."""
        return self.registry.get_sample_value(name, labels or {})

    def generate_metrics(self) -> bytes:
        """Render this run's metrics in Prometheus text format"""
        return generate_latest(self.registry)


def start_metrics_server(metrics: PipelineMetrics, port: Optional[int] = None) -> None:
    """
    Start HTTP server exposing a run's metrics

    Args:
        metrics: Metrics instance whose registry is exposed
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    # Lazy import: the HTTP server is only needed when the endpoint is enabled
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=metrics.registry)
