"""
ProgramStats model: the derived per-program aggregate row.
"""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProgramStats(BaseModel):
    """
    Aggregate statistics for one advocacy program.

    Rebuilt wholesale from persisted users after every load cycle; never
    maintained incrementally.

    Attributes:
        program_id: Program identifier (PK)
        program_name: First program name seen for this id
        user_count: Number of distinct users in the program
        total_engagement: Sum of member users' total_engagement
        total_sales: Sum of member users' total_sales
        status: Program lifecycle status
        updated_at: When the row was recomputed
    """

    program_id: str = Field(..., min_length=1)
    program_name: str
    user_count: int = Field(0, ge=0)
    total_engagement: float = Field(0, ge=0)
    total_sales: float = Field(0, ge=0)
    status: Literal["active", "completed", "paused", "cancelled"] = "active"
    updated_at: datetime = Field(default_factory=_utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "program_id": "p1",
                "program_name": "Acme",
                "user_count": 42,
                "total_engagement": 12034,
                "total_sales": 5310.5,
                "status": "active",
            }
        }
