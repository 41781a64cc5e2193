"""
ETL pipeline orchestration.

Coordinates the flow: extract → validate → transform → batch →
deduplicate → load → program aggregates
"""

import time
from collections.abc import MutableMapping
from enum import Enum
from pathlib import Path
from typing import Optional

from src.core.config import PipelineOptions
from src.core.errors import StoreConnectionError
from src.core.models import ETLStatistics, User
from src.etl.deduplicator import Deduplicator
from src.etl.extractor import ExtractedFile, extract_files
from src.etl.identifiers import IdGenerator
from src.etl.loader import UserLoader, UserStore
from src.etl.transformer import UserTransformer
from src.etl.validator import validate_user
from src.observability.logger import get_logger, log_operation
from src.observability.metrics import PipelineMetrics

logger = get_logger(__name__)

PROGRESS_LOG_INTERVAL = 100


class PipelineState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CLEANING = "cleaning"
    STREAMING = "streaming"
    FLUSHING = "flushing"
    AGGREGATING = "aggregating"
    DONE = "done"
    FAILED = "failed"


class ETLPipeline:
    """
    Orchestrates one or more pipeline runs against a store.

    Flow:
    1. Open the store (optionally wipe it)
    2. Stream files through validation and transformation into a batch
    3. Deduplicate each full batch, drop ids loaded earlier in the run, load
    4. Flush the final partial batch
    5. Recompute program aggregates, clear the cache, close the store

    Only DataDirectoryNotFoundError, StoreConnectionError and errors raised
    by the store outside a load chunk end a run; everything else is counted.

    Args:
        store: Persistence collaborator
        loader: Loader (default: UserLoader over ``store``)
        transformer: Transformer (default: one using ``id_generator``)
        deduplicator: Deduplicator (a fresh one is created per run if omitted)
        metrics: Stats sink (a fresh PipelineMetrics per run if omitted)
        cache: Read cache to invalidate after aggregation
        id_generator: Synthetic identifier source for the default transformer
    """

    def __init__(
        self,
        store: UserStore,
        *,
        loader: Optional[UserLoader] = None,
        transformer: Optional[UserTransformer] = None,
        deduplicator: Optional[Deduplicator] = None,
        metrics: Optional[PipelineMetrics] = None,
        cache: Optional[MutableMapping] = None,
        id_generator: Optional[IdGenerator] = None,
    ):
        self.store = store
        self.loader = loader or UserLoader(store)
        self.transformer = transformer or UserTransformer(id_generator)
        self._deduplicator = deduplicator
        self._metrics = metrics
        self.cache = cache
        self.state = PipelineState.IDLE

        # Run-scoped, reset by run()
        self.deduplicator: Deduplicator = deduplicator or Deduplicator()
        self.metrics: PipelineMetrics = metrics or PipelineMetrics()
        self.statistics = ETLStatistics()
        self._batch: list[User] = []
        self._processed_ids: set[str] = set()
        self._batch_size = 1000
        self._duplicates_baseline = self._duplicate_counts()

    def run(self, options: PipelineOptions) -> ETLStatistics:
        """
        Run the pipeline once over ``options.data_dir``.

        Args:
            options: Validated run options

        Returns:
            ETLStatistics for this run

        Raises:
            DataDirectoryNotFoundError: If the data directory does not exist
            StoreConnectionError: If the store cannot be opened
        """
        self._reset(options)
        started = time.monotonic()

        logger.info(
            "Starting ETL pipeline",
            extra={
                "data_dir": options.data_dir,
                "batch_size": options.batch_size,
                "clean_database": options.clean_database,
                "max_files": options.max_files,
            },
        )

        try:
            self._transition(PipelineState.CONNECTING)
            try:
                self.store.open()
            except StoreConnectionError:
                raise
            except Exception as e:
                raise StoreConnectionError(f"Failed to open store: {e}") from e

            if options.clean_database:
                self._transition(PipelineState.CLEANING)
                logger.info("Cleaning database before processing")
                self.loader.clean_database()

            self._transition(PipelineState.STREAMING)
            extracted_files = extract_files(
                options.data_dir,
                file_pattern=options.file_pattern,
                max_files=options.max_files,
                on_skip=self._on_file_skipped,
            )
            for extracted in extracted_files:
                self.statistics.total_files += 1
                self._process_file(extracted)

                if len(self._batch) >= self._batch_size:
                    self._flush_batch()

            self._transition(PipelineState.FLUSHING)
            if self._batch:
                self._flush_batch(final=True)

            self._transition(PipelineState.AGGREGATING)
            with log_operation("Updating program statistics", logger=logger):
                self.loader.update_program_stats()
            if self.cache is not None:
                self.cache.clear()

            self._finish()
            self.metrics.record_run(time.monotonic() - started)
            self._transition(PipelineState.DONE)
            self._log_summary()
            return self.statistics

        except Exception as e:
            self._transition(PipelineState.FAILED)
            logger.error(
                "ETL pipeline failed",
                extra={"error_type": type(e).__name__, "error": str(e)},
                exc_info=True,
            )
            raise
        finally:
            self.store.close()

    def _reset(self, options: PipelineOptions) -> None:
        self.deduplicator = self._deduplicator or Deduplicator()
        self.metrics = self._metrics or PipelineMetrics()
        self.statistics = ETLStatistics()
        self._batch = []
        self._processed_ids = set()
        self._batch_size = options.batch_size
        # An injected deduplicator may carry counts from earlier runs
        self._duplicates_baseline = self._duplicate_counts()
        self.state = PipelineState.IDLE

    def _transition(self, state: PipelineState) -> None:
        logger.debug("Pipeline state change", extra={"from_state": self.state.value, "to_state": state.value})
        self.state = state

    def _on_file_skipped(self, path: Path, reason: str) -> None:
        self.statistics.total_files += 1
        if reason == "unparsable":
            self.statistics.unparsable_files += 1
        self.metrics.record_file_skipped(reason)

    def _process_file(self, extracted: ExtractedFile) -> None:
        """Validate and transform one file's record into the batch buffer."""
        try:
            result = validate_user(extracted.data)
        except Exception as e:
            self._record_failure(extracted, e)
            return

        if not result.accepted:
            self.statistics.validation_errors += 1
            self.statistics.failed_records += 1
            self.metrics.record_validation_failure()
            logger.warning(
                "Validation failed",
                extra={"file": extracted.file_name, "errors": result.errors[:3]},
            )
            return

        try:
            user = self.transformer.transform(result.record)
        except Exception as e:
            self._record_failure(extracted, e)
            return

        if result.is_clean:
            self.statistics.clean_records += 1
            self.metrics.record_record("clean")
        else:
            self.statistics.messy_records += 1
            self.metrics.record_record("messy")

        self._batch.append(user)
        self.statistics.processed_files += 1

        if self.statistics.processed_files % PROGRESS_LOG_INTERVAL == 0:
            logger.info(
                "Pipeline progress",
                extra={
                    "processed": self.statistics.processed_files,
                    "total": self.statistics.total_files,
                    "successful": self.statistics.successful_records,
                    "failed": self.statistics.failed_records,
                    "unique_users": len(self._processed_ids),
                },
            )

    def _record_failure(self, extracted: ExtractedFile, error: Exception) -> None:
        self.statistics.failed_records += 1
        self.metrics.record_record("failed")
        logger.error(
            "Error processing file",
            extra={"file": extracted.file_name, "error": str(error)},
            exc_info=True,
        )

    def _flush_batch(self, final: bool = False) -> None:
        """
        Deduplicate the buffered batch and load users not seen earlier in the run.
        """
        batch, self._batch = self._batch, []

        before = self._duplicate_counts()
        deduplicated = self.deduplicator.deduplicate(batch)
        after = self._duplicate_counts()
        for resolution in ("merged", "replaced", "discarded"):
            self.metrics.record_duplicates(resolution, after[resolution] - before[resolution])

        new_users = [user for user in deduplicated if user.user_id not in self._processed_ids]
        skipped = len(deduplicated) - len(new_users)
        self.statistics.skipped_existing += skipped
        self.metrics.record_duplicates("skipped_existing", skipped)
        self._processed_ids.update(user.user_id for user in new_users)

        logger.info(
            "Loading final batch" if final else "Batch deduplication",
            extra={
                "original": len(batch),
                "deduplicated": len(deduplicated),
                "new": len(new_users),
                "skipped": skipped,
            },
        )

        if not new_users:
            return

        for user in new_users:
            user.recalculate_totals()

        started = time.monotonic()
        result = self.loader.load_user_batch(new_users, batch_size=self._batch_size, upsert=True)
        self.metrics.record_batch_loaded(
            record_count=len(new_users),
            inserted=result.inserted,
            updated=result.updated,
            failed=result.failed,
            duration_seconds=time.monotonic() - started,
        )

        self.statistics.successful_records += result.succeeded
        self.statistics.failed_records += result.failed

    def _duplicate_counts(self) -> dict[str, int]:
        return {
            "merged": self.deduplicator.merged,
            "replaced": self.deduplicator.replaced,
            "discarded": self.deduplicator.discarded,
        }

    def _finish(self) -> None:
        counts = self._duplicate_counts()
        baseline = self._duplicates_baseline
        self.statistics.duplicates_merged = counts["merged"] - baseline["merged"]
        self.statistics.duplicates_replaced = counts["replaced"] - baseline["replaced"]
        self.statistics.duplicates_discarded = counts["discarded"] - baseline["discarded"]
        self.statistics.unique_users = len(self._processed_ids)
        self.statistics.finish()

    def _log_summary(self) -> None:
        stats = self.statistics
        logger.info(
            "ETL pipeline completed successfully",
            extra={
                "duration": f"{(stats.duration_ms or 0) / 1000:.2f}s",
                "total_files": stats.total_files,
                "processed_files": stats.processed_files,
                "unparsable_files": stats.unparsable_files,
                "successful_records": stats.successful_records,
                "failed_records": stats.failed_records,
                "unique_users": stats.unique_users,
                "clean_records": stats.clean_records,
                "messy_records": stats.messy_records,
                "validation_errors": stats.validation_errors,
            },
        )

