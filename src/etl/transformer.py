"""
Transformation of validated raw records into canonical User entities.

Every missing or invalid field degrades to a safe default; a transform never
fails because of messy input.
"""

import math
from datetime import date, datetime, timezone
from typing import Any, Iterable

from pydantic import TypeAdapter, ValidationError

from src.core.models import (
    Program,
    RawProgram,
    RawTask,
    RawUserRecord,
    SalesAttribution,
    SocialHandle,
    SocialPost,
    User,
)
from src.etl.identifiers import IdGenerator
from src.observability.logger import get_logger

logger = get_logger(__name__)

UNKNOWN_PROGRAM = "Unknown Program"

# Numbers above this are epoch milliseconds, at or below are epoch seconds
EPOCH_MILLIS_THRESHOLD = 10_000_000_000

DIRECT_HANDLE_FIELDS = (
    ("instagram", "instagram_handle"),
    ("tiktok", "tiktok_handle"),
    ("facebook", "facebook_handle"),
    ("twitter", "twitter_handle"),
    ("youtube", "youtube_handle"),
    ("linkedin", "linkedin_handle"),
)

FALLBACK_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M:%S",
    "%d.%m.%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%a, %d %b %Y %H:%M:%S GMT",
)

_DATETIME_ADAPTER = TypeAdapter(datetime)


def normalize_handle(handle: str | None) -> str:
    """Strip leading '@' characters and whitespace, lower-case."""
    if not handle:
        return ""
    return handle.strip().lstrip("@").lower().strip()


def _clean_str(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse a join timestamp from a datetime, date, epoch number or string.

    Epoch numbers are seconds up to 10,000,000,000 and milliseconds above.
    Returns None for anything unparsable.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return _as_utc(value)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    if isinstance(value, (int, float)):
        try:
            if value == 0 or not math.isfinite(value):
                return None
            seconds = value / 1000 if value > EPOCH_MILLIS_THRESHOLD else value
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return _as_utc(_DATETIME_ADAPTER.validate_python(text))
        except ValidationError:
            pass
        for fmt in FALLBACK_DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
            except ValueError:
                continue

    return None


def coerce_count(value: float | None) -> int:
    """Turn a coerced raw number into a non-negative integer counter."""
    if value is None or not math.isfinite(value) or value < 0:
        return 0
    return int(value)


class UserTransformer:
    """
    Maps RawUserRecord instances to canonical User entities.

    Args:
        id_generator: Source of synthetic user/program/task identifiers
    """

    def __init__(self, id_generator: IdGenerator | None = None):
        self.id_generator = id_generator or IdGenerator()

    def transform(self, raw: RawUserRecord) -> User:
        """
        Transform one validated raw record.

        Args:
            raw: Normalized input from the validator

        Returns:
            User with totals computed from its posts and sales
        """
        raw_programs = raw.advocacy_programs or []

        tasks: list[RawTask] = []
        for program in raw_programs:
            tasks.extend(program.tasks_completed or [])

        return User(
            user_id=_clean_str(raw.user_id) or self.id_generator.user_id(),
            name=_clean_str(raw.name),
            email=self._normalize_email(raw.email),
            social_handles=self._social_handles(raw),
            programs=self._programs(raw_programs),
            posts=[self._post(task) for task in tasks],
            sales_attributions=self._sales_attributions(raw_programs),
            join_date=parse_timestamp(raw.joined_at),
        )

    @staticmethod
    def _normalize_email(email: str | None) -> str | None:
        email = _clean_str(email)
        return email.lower() if email else None

    def _social_handles(self, raw: RawUserRecord) -> list[SocialHandle]:
        candidates: list[tuple[str | None, str | None]] = [
            (platform, getattr(raw, field_name)) for platform, field_name in DIRECT_HANDLE_FIELDS
        ]
        for entry in raw.social_handles or []:
            candidates.append((entry.platform, entry.handle))

        handles: dict[tuple[str, str], SocialHandle] = {}
        for platform, raw_handle in candidates:
            handle = normalize_handle(raw_handle)
            if not platform or not handle:
                continue
            handles.setdefault((platform, handle), SocialHandle(platform=platform, handle=handle))
        return list(handles.values())

    def _post(self, task: RawTask) -> SocialPost:
        return SocialPost(
            post_id=_clean_str(task.task_id) or self.id_generator.task_id(),
            platform=task.platform or "other",
            url=_clean_str(task.post_url),
            likes=coerce_count(task.likes),
            comments=coerce_count(task.comments),
            shares=coerce_count(task.shares),
            reach=coerce_count(task.reach),
        )

    def _programs(self, raw_programs: list[RawProgram]) -> list[Program]:
        programs: dict[str, Program] = {}
        for program in raw_programs:
            name = _clean_str(program.brand)
            if not name or name == UNKNOWN_PROGRAM:
                continue
            program_id = _clean_str(program.program_id) or self.id_generator.program_id()
            programs.setdefault(program_id, Program(program_id=program_id, program_name=name))
        return list(programs.values())

    @staticmethod
    def _sales_attributions(raw_programs: list[RawProgram]) -> list[SalesAttribution]:
        sales = []
        for program in raw_programs:
            program_id = _clean_str(program.program_id)
            amount = program.total_sales_attributed
            if program_id and amount is not None and math.isfinite(amount) and amount > 0:
                sales.append(SalesAttribution(program_id=program_id, amount=amount))
        return sales


def transform_user(raw: RawUserRecord, id_generator: IdGenerator | None = None) -> User:
    """Transform one record with a default or supplied identifier generator."""
    return UserTransformer(id_generator).transform(raw)


def transform_user_batch(
    records: Iterable[RawUserRecord],
    id_generator: IdGenerator | None = None,
) -> list[User]:
    """
    Transform many records, logging and skipping any that raise.
    """
    transformer = UserTransformer(id_generator)
    users: list[User] = []

    for raw in records:
        try:
            users.append(transformer.transform(raw))
        except Exception as e:
            logger.error(
                "Error transforming user",
                extra={"user_id": raw.user_id, "error": str(e)},
                exc_info=True,
            )

    return users
