"""
Core data models for the advocacy ETL pipeline.

All models use Pydantic for runtime validation and type safety.
"""

from .entity import (
    SOCIAL_PLATFORMS,
    Program,
    SalesAttribution,
    SocialHandle,
    SocialPlatform,
    SocialPost,
    User,
)
from .etl_statistics import ETLStatistics, LoadError, LoadResult
from .program_stats import ProgramStats
from .raw_record import (
    RawProgram,
    RawSocialHandle,
    RawTask,
    RawUserRecord,
    normalize_platform,
)
from .validation_result import ValidationResult

__all__ = [
    "SOCIAL_PLATFORMS",
    "SocialPlatform",
    "SocialHandle",
    "Program",
    "SocialPost",
    "SalesAttribution",
    "User",
    "RawTask",
    "RawSocialHandle",
    "RawProgram",
    "RawUserRecord",
    "normalize_platform",
    "ProgramStats",
    "LoadError",
    "LoadResult",
    "ETLStatistics",
    "ValidationResult",
]
