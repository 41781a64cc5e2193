"""
Input validation utilities for run configuration.

Provides reusable checks for the values that arrive from the CLI, the
environment, or a YAML config file before a pipeline run starts.
"""

import re

from src.core.errors import ConfigurationError

MAX_BATCH_SIZE = 100_000


def validate_batch_size(batch_size: int, field_name: str = "batch_size") -> int:
    """
    Validate a batch size.

    Args:
        batch_size: Number of users buffered before a flush
        field_name: Name of the field (for error messages)

    Returns:
        The validated batch size

    Raises:
        ConfigurationError: If validation fails

    Examples:
        >>> validate_batch_size(1000)
        1000
        >>> validate_batch_size(0)  # doctest: +SKIP
        ConfigurationError: batch_size must be a positive integer, got 0
    """
    if isinstance(batch_size, bool) or not isinstance(batch_size, int):
        raise ConfigurationError(f"{field_name} must be an integer, got {type(batch_size).__name__}")

    if batch_size <= 0:
        raise ConfigurationError(f"{field_name} must be a positive integer, got {batch_size}")

    if batch_size > MAX_BATCH_SIZE:
        raise ConfigurationError(f"{field_name} exceeds maximum of {MAX_BATCH_SIZE}")

    return batch_size


def validate_max_files(max_files: int | None, field_name: str = "max_files") -> int | None:
    """
    Validate an optional cap on the number of files processed.

    None means "no cap".

    Examples:
        >>> validate_max_files(None) is None
        True
        >>> validate_max_files(25)
        25
    """
    if max_files is None:
        return None

    if isinstance(max_files, bool) or not isinstance(max_files, int):
        raise ConfigurationError(f"{field_name} must be an integer, got {type(max_files).__name__}")

    if max_files <= 0:
        raise ConfigurationError(f"{field_name} must be a positive integer, got {max_files}")

    return max_files


def validate_file_pattern(pattern: str, field_name: str = "file_pattern") -> re.Pattern:
    """
    Compile a file-name pattern (case-insensitive).

    Raises:
        ConfigurationError: If the pattern is empty or not a valid regex
    """
    if not pattern or not isinstance(pattern, str):
        raise ConfigurationError(f"{field_name} must be a non-empty string")

    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        raise ConfigurationError(f"{field_name} is not a valid regular expression: {e}") from e


def validate_data_dir(data_dir: str, field_name: str = "data_dir") -> str:
    """
    Validate a data directory path string.

    Existence is checked by the extractor at run time, not here.

    Examples:
        >>> validate_data_dir("./data")
        './data'
    """
    if not data_dir or not isinstance(data_dir, str):
        raise ConfigurationError(f"{field_name} must be a non-empty string")

    data_dir = data_dir.strip()

    if not data_dir:
        raise ConfigurationError(f"{field_name} cannot be empty or whitespace-only")

    if "\x00" in data_dir:
        raise ConfigurationError(f"{field_name} contains null bytes")

    if len(data_dir) > 4096:  # Linux PATH_MAX
        raise ConfigurationError(f"{field_name} exceeds maximum length of 4096 characters")

    return data_dir
