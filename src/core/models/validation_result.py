"""
ValidationResult model representing the outcome of validating a raw record (ephemeral).
"""

from pydantic import BaseModel, Field, field_validator

from .raw_record import RawUserRecord


class ValidationResult(BaseModel):
    """
    Outcome of validating one raw participant record.

    Attributes:
        accepted: Whether the record is structurally usable
        record: The normalized raw record (None when rejected)
        is_clean: True when user_id, name, email and a program are all present
        errors: Human-readable structural errors (empty when accepted)
    """

    accepted: bool
    record: RawUserRecord | None = None
    is_clean: bool = False
    errors: list[str] = Field(default_factory=list)

    @field_validator("errors")
    @classmethod
    def check_accepted_consistency(cls, v, info):
        """Validate that accepted=True implies errors is empty."""
        if info.data.get("accepted") and len(v) > 0:
            raise ValueError("accepted=True but errors is not empty")
        return v
