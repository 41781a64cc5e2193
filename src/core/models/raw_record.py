"""
Permissive "raw" models for participant records as they arrive on disk.

These models accept every field as absent, null, or any scalar that can be
coerced to the expected primitive. Values that cannot be coerced degrade to
None instead of failing. Only structural problems (an object or list where a
scalar is expected, or a nested collection that is not a list of objects)
make validation fail. Unknown fields are kept.
"""

import math
from datetime import date, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict

from .entity import SOCIAL_PLATFORMS

PLATFORM_ALIASES = {
    "ig": "instagram",
    "insta": "instagram",
    "fb": "facebook",
    "meta": "facebook",
    "x": "twitter",
    "tw": "twitter",
    "tik tok": "tiktok",
    "tik-tok": "tiktok",
    "tt": "tiktok",
    "yt": "youtube",
    "you tube": "youtube",
    "li": "linkedin",
    "linked in": "linkedin",
}


def normalize_platform(value: Any) -> str:
    """
    Coerce a platform value to the closest enumeration member.

    Matching is case- and whitespace-insensitive. Unknown values map to "other".
    """
    if value is None:
        return "other"
    text = " ".join(str(value).split()).lower()
    if text in SOCIAL_PLATFORMS:
        return text
    return PLATFORM_ALIASES.get(text, "other")


def _ensure_scalar(value: Any) -> None:
    if isinstance(value, (dict, list, tuple, set)):
        raise ValueError(f"expected a scalar value, got {type(value).__name__}")


def coerce_optional_str(value: Any) -> str | None:
    """Coerce a scalar to str; None stays None."""
    if value is None:
        return None
    _ensure_scalar(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def coerce_optional_number(value: Any) -> float | None:
    """
    Coerce a scalar to a finite float.

    Numeric strings are accepted. Anything that does not produce a finite
    number (booleans, "NaN", "no-data", "", integers too large for a float)
    degrades to None.
    """
    if value is None:
        return None
    _ensure_scalar(value)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except (OverflowError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text or "_" in text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def coerce_optional_platform(value: Any) -> str | None:
    if value is None:
        return None
    _ensure_scalar(value)
    return normalize_platform(value)


def coerce_optional_timestamp(value: Any) -> Any:
    """Keep timestamp-like scalars as-is for the transformer to parse."""
    if value is None or isinstance(value, bool):
        return None
    _ensure_scalar(value)
    if isinstance(value, (str, int, float, datetime, date)):
        return value
    return None


def coerce_optional_list(value: Any) -> list | None:
    """Accept null, a list, or a single object (wrapped in a list)."""
    if value is None:
        return None
    if isinstance(value, dict):
        return [value]
    if isinstance(value, list):
        return value
    raise ValueError(f"expected a list of objects, got {type(value).__name__}")


OptionalStr = Annotated[str | None, BeforeValidator(coerce_optional_str)]
OptionalNumber = Annotated[float | None, BeforeValidator(coerce_optional_number)]
OptionalPlatform = Annotated[str | None, BeforeValidator(coerce_optional_platform)]
OptionalTimestamp = Annotated[Any, BeforeValidator(coerce_optional_timestamp)]


class PermissiveModel(BaseModel):
    """Base for raw models: unknown fields are preserved, not rejected."""

    model_config = ConfigDict(extra="allow")


class RawTask(PermissiveModel):
    """One entry of a program's tasks_completed list."""

    task_id: OptionalStr = None
    platform: OptionalPlatform = None
    post_url: OptionalStr = None
    likes: OptionalNumber = None
    comments: OptionalNumber = None
    shares: OptionalNumber = None
    reach: OptionalNumber = None


class RawSocialHandle(PermissiveModel):
    platform: OptionalPlatform = None
    handle: OptionalStr = None


class RawProgram(PermissiveModel):
    """One entry of a record's advocacy_programs list."""

    program_id: OptionalStr = None
    brand: OptionalStr = None
    tasks_completed: Annotated[list[RawTask] | None, BeforeValidator(coerce_optional_list)] = None
    total_sales_attributed: OptionalNumber = None


class RawUserRecord(PermissiveModel):
    """
    A participant record after lenient validation.

    Direct ``<platform>_handle`` fields and the ``social_handles`` list are
    both promoted to social handles by the transformer.
    """

    user_id: OptionalStr = None
    name: OptionalStr = None
    email: OptionalStr = None
    instagram_handle: OptionalStr = None
    tiktok_handle: OptionalStr = None
    facebook_handle: OptionalStr = None
    twitter_handle: OptionalStr = None
    youtube_handle: OptionalStr = None
    linkedin_handle: OptionalStr = None
    social_handles: Annotated[list[RawSocialHandle] | None, BeforeValidator(coerce_optional_list)] = None
    advocacy_programs: Annotated[list[RawProgram] | None, BeforeValidator(coerce_optional_list)] = None
    joined_at: OptionalTimestamp = None
