"""
Result records returned by the loader and by a pipeline run.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field


class LoadError(BaseModel):
    """A single user that could not be persisted."""

    user_id: str
    error: str


class LoadResult(BaseModel):
    """Outcome of one ``load_user_batch`` call."""

    inserted: int = 0
    updated: int = 0
    failed: int = 0
    errors: list[LoadError] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return self.inserted + self.updated

    def merge(self, other: "LoadResult") -> "LoadResult":
        """Accumulate another result into this one."""
        self.inserted += other.inserted
        self.updated += other.updated
        self.failed += other.failed
        self.errors.extend(other.errors)
        return self


class ETLStatistics(BaseModel):
    """
    Statistics for one pipeline run; the sole user-visible failure summary.

    Attributes:
        total_files: Files matched in the data directory (parsed or not)
        processed_files: Files whose record was validated and transformed
        unparsable_files: Files skipped because they were not valid JSON
        successful_records: Users inserted or updated
        failed_records: Validation failures, transform errors and load failures
        validation_errors: Records rejected by the validator
        clean_records: Accepted records with all primary fields present
        messy_records: Accepted records missing a primary field
        duplicates_merged: Duplicates resolved by merging equal-score records
        duplicates_replaced: Duplicates where the later record scored higher
        duplicates_discarded: Duplicates dropped for scoring lower
        skipped_existing: Users dropped because an earlier batch loaded the id
        unique_users: Distinct user ids loaded during the run
        start_time: Run start (UTC)
        end_time: Run end (UTC)
        duration_ms: Wall-clock duration in milliseconds
    """

    total_files: int = 0
    processed_files: int = 0
    unparsable_files: int = 0
    successful_records: int = 0
    failed_records: int = 0
    validation_errors: int = 0
    clean_records: int = 0
    messy_records: int = 0
    duplicates_merged: int = 0
    duplicates_replaced: int = 0
    duplicates_discarded: int = 0
    skipped_existing: int = 0
    unique_users: int = 0
    start_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: datetime | None = None
    duration_ms: float | None = None

    def finish(self) -> "ETLStatistics":
        """Stamp end time and duration."""
        self.end_time = datetime.now(timezone.utc)
        self.duration_ms = (self.end_time - self.start_time).total_seconds() * 1000
        return self
