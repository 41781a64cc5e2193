"""
Exception hierarchy for the advocacy ETL pipeline.

Only the errors defined here are allowed to escape a pipeline run; every
file-, record- and chunk-level problem is counted in the run statistics
instead.
"""


class PipelineError(Exception):
    """Base class for fatal pipeline errors."""


class DataDirectoryNotFoundError(PipelineError, FileNotFoundError):
    """Raised when the input data directory does not exist."""

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        super().__init__(f"Data directory not found: {data_dir}")


class StoreConnectionError(PipelineError):
    """Raised when the persistence store cannot be reached."""


class ConfigurationError(PipelineError, ValueError):
    """Raised when run configuration is missing or invalid."""
