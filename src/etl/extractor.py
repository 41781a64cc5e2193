"""
JSON file extractor.

Reads a directory of JSON files, one participant record per file, and yields
the parsed payloads lazily. Malformed files get one repair attempt and are
otherwise skipped: the skip is logged and reported through an optional
callback, never raised.
"""

import json
import re
from pathlib import Path
from typing import Any, Callable, Iterator

from pydantic import BaseModel

from src.core.errors import DataDirectoryNotFoundError
from src.observability.logger import get_logger

logger = get_logger(__name__)

DEFAULT_FILE_PATTERN = re.compile(r"\.json$", re.IGNORECASE)

SkipCallback = Callable[[Path, str], None]


class ExtractedFile(BaseModel):
    """One successfully parsed input file."""

    file_name: str
    file_path: str
    data: Any


def _parse_json(content: str) -> Any:
    """
    Parse JSON, repairing a missing trailing object brace once.

    Raises:
        ValueError: If the content is unparsable even after repair, or holds an
            integer literal beyond the interpreter's digit limit
        RecursionError: If arrays or objects are nested too deeply
    """
    try:
        return json.loads(content)
    except json.JSONDecodeError as parse_error:
        trimmed = content.strip()
        if trimmed.endswith("]") and not trimmed.endswith("}"):
            logger.info("Appending missing closing brace to JSON content")
            return json.loads(content.rstrip() + "\n}")
        raise parse_error


def extract_file(file_path: str | Path, on_skip: SkipCallback | None = None) -> ExtractedFile | None:
    """
    Read and parse a single JSON file.

    Args:
        file_path: Path to the file
        on_skip: Called with (path, reason) when the file is skipped

    Returns:
        ExtractedFile, or None if the file could not be read or parsed
    """
    path = Path(file_path)

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.error(
            "Error reading file",
            extra={"file_path": str(path), "error": str(e)},
        )
        if on_skip:
            on_skip(path, "unreadable")
        return None

    try:
        data = _parse_json(content)
    except (ValueError, RecursionError) as e:
        logger.error(
            "Unable to parse JSON file",
            extra={"file_path": str(path), "error": str(e)},
        )
        if on_skip:
            on_skip(path, "unparsable")
        return None

    return ExtractedFile(file_name=path.name, file_path=str(path), data=data)


def list_json_files(data_dir: str | Path, file_pattern: re.Pattern | str | None = None) -> list[Path]:
    """
    List regular files in ``data_dir`` whose names match ``file_pattern``.

    Files are returned sorted by name so runs over the same directory see the
    same order.
    """
    if file_pattern is None:
        pattern = DEFAULT_FILE_PATTERN
    elif isinstance(file_pattern, str):
        pattern = re.compile(file_pattern, re.IGNORECASE)
    else:
        pattern = file_pattern

    directory = Path(data_dir)
    files = sorted(
        (entry for entry in directory.iterdir() if entry.is_file() and pattern.search(entry.name)),
        key=lambda entry: entry.name,
    )

    logger.info(f"Found {len(files)} JSON files in {directory}")
    return files


def extract_files(
    data_dir: str | Path,
    file_pattern: re.Pattern | str | None = None,
    max_files: int | None = None,
    on_skip: SkipCallback | None = None,
) -> Iterator[ExtractedFile]:
    """
    Lazily extract every matching file in a directory.

    The directory check happens eagerly, so a missing directory raises as soon
    as this function is called rather than on first iteration.

    Args:
        data_dir: Directory to read
        file_pattern: File-name regex (default: ``\\.json$``, case-insensitive)
        max_files: Process at most this many files, in listing order
        on_skip: Called with (path, reason) for each skipped file

    Returns:
        Single-pass iterator of ExtractedFile

    Raises:
        DataDirectoryNotFoundError: If data_dir does not exist
    """
    directory = Path(data_dir)
    if not directory.is_dir():
        logger.error("Data directory does not exist", extra={"data_dir": str(directory)})
        raise DataDirectoryNotFoundError(str(directory))

    files = list_json_files(directory, file_pattern)
    if max_files:
        files = files[:max_files]

    logger.info(f"Processing {len(files)} files")
    return _iter_extracted(files, on_skip)


def _iter_extracted(files: list[Path], on_skip: SkipCallback | None) -> Iterator[ExtractedFile]:
    for file_path in files:
        extracted = extract_file(file_path, on_skip=on_skip)
        if extracted is not None:
            yield extracted


def extract_all_files(
    data_dir: str | Path,
    file_pattern: re.Pattern | str | None = None,
    max_files: int | None = None,
) -> list[ExtractedFile]:
    """Extract every file at once (for smaller datasets)."""
    return list(extract_files(data_dir, file_pattern=file_pattern, max_files=max_files))
