"""
Lenient structural validation of raw participant records.

The validator only rejects records whose shape cannot be used at all; messy
but parseable records are accepted and flagged as not clean.
"""

from typing import Any, Iterable

from pydantic import ValidationError

from src.core.models import RawUserRecord, ValidationResult, normalize_platform
from src.observability.logger import get_logger

logger = get_logger(__name__)

__all__ = [
    "validate_user",
    "validate_user_batch",
    "is_clean_record",
    "normalize_platform",
]


def _format_errors(error: ValidationError, limit: int = 10) -> list[str]:
    messages = []
    for issue in error.errors()[:limit]:
        location = ".".join(str(part) for part in issue["loc"]) or "<record>"
        messages.append(f"{location}: {issue['msg']}")
    return messages


def _present(value: str | None) -> bool:
    return value is not None and value.strip() != ""


def is_clean_record(record: RawUserRecord) -> bool:
    """
    Completeness heuristic: identifier, name, email and at least one program.
    """
    return (
        _present(record.user_id)
        and _present(record.name)
        and _present(record.email)
        and bool(record.advocacy_programs)
    )


def validate_user(data: Any) -> ValidationResult:
    """
    Validate one raw record against the permissive schema.

    Args:
        data: Decoded JSON payload of one file

    Returns:
        ValidationResult; ``record`` holds the normalized input when accepted
    """
    if not isinstance(data, dict):
        return ValidationResult(
            accepted=False,
            errors=[f"<record>: expected a JSON object, got {type(data).__name__}"],
        )

    try:
        record = RawUserRecord.model_validate(data)
    except ValidationError as e:
        return ValidationResult(accepted=False, errors=_format_errors(e))

    return ValidationResult(accepted=True, record=record, is_clean=is_clean_record(record))


def validate_user_batch(records: Iterable[Any]) -> tuple[list[RawUserRecord], list[Any], int]:
    """
    Validate many records.

    Returns:
        Tuple of (valid normalized records, rejected raw payloads, clean count)
    """
    valid: list[RawUserRecord] = []
    invalid: list[Any] = []
    clean_count = 0

    for data in records:
        result = validate_user(data)
        if result.accepted:
            valid.append(result.record)
            if result.is_clean:
                clean_count += 1
        else:
            invalid.append(data)

    if invalid:
        logger.info(
            "Batch validation rejected records",
            extra={"valid": len(valid), "invalid": len(invalid)},
        )

    return valid, invalid, clean_count
