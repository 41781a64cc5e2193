"""
Idempotent loading of users and recomputation of program aggregates.

The loader talks to a ``UserStore``: PostgresUserStore in production, any
object with the same methods in tests.
"""

import time
from collections.abc import Iterable, Iterator
from typing import Protocol

from src.core.models import LoadError, LoadResult, ProgramStats, User
from src.observability.logger import get_logger

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 1000


class UserStore(Protocol):
    """Write contract between the loader and the persistence layer."""

    def open(self) -> None: ...

    def close(self) -> None: ...

    def upsert_users(self, users: list[User]) -> tuple[int, int]:
        """Upsert by user_id in one bulk call; return (inserted, updated)."""
        ...

    def insert_users(self, users: list[User]) -> int:
        """Insert in one bulk call; fail on existing user_ids."""
        ...

    def iter_users(self) -> Iterator[User]: ...

    def replace_program_stats(self, stats: list[ProgramStats]) -> int:
        """Replace every program row with ``stats``; return rows written."""
        ...

    def delete_all(self) -> None: ...


def compute_program_stats(users: Iterable[User]) -> list[ProgramStats]:
    """
    Group users by program membership.

    Each program gets its first-seen name, the number of distinct member
    users, and the sums of those users' total_engagement and total_sales.
    """
    names: dict[str, str] = {}
    members: dict[str, set[str]] = {}
    engagement: dict[str, float] = {}
    sales: dict[str, float] = {}

    for user in users:
        for program_id in dict.fromkeys(p.program_id for p in user.programs):
            if user.user_id in members.setdefault(program_id, set()):
                continue
            members[program_id].add(user.user_id)
            names.setdefault(
                program_id,
                next(p.program_name for p in user.programs if p.program_id == program_id),
            )
            engagement[program_id] = engagement.get(program_id, 0) + user.total_engagement
            sales[program_id] = sales.get(program_id, 0) + user.total_sales

    return [
        ProgramStats(
            program_id=program_id,
            program_name=names[program_id],
            user_count=len(members[program_id]),
            total_engagement=engagement[program_id],
            total_sales=sales[program_id],
        )
        for program_id in names
    ]


class UserLoader:
    """
    Persists users in chunks and maintains program aggregates.

    Args:
        store: Persistence collaborator
    """

    def __init__(self, store: UserStore):
        self.store = store

    def load_user(self, user: User, upsert: bool = True) -> bool:
        """
        Persist a single user.

        Returns:
            True on success, False if the store rejected the user
        """
        result = self.load_user_batch([user], batch_size=1, upsert=upsert)
        return result.failed == 0

    def load_user_batch(
        self,
        users: list[User],
        batch_size: int = DEFAULT_BATCH_SIZE,
        upsert: bool = True,
    ) -> LoadResult:
        """
        Persist users in chunks of ``batch_size``.

        A failing chunk marks each of its users failed and does not stop the
        chunks after it.

        Args:
            users: Users to persist
            batch_size: Users per bulk call
            upsert: Upsert by user_id (True) or plain insert (False)

        Returns:
            LoadResult with inserted/updated/failed counts and per-user errors
        """
        result = LoadResult()
        if not users:
            return result

        total_chunks = (len(users) + batch_size - 1) // batch_size

        for start in range(0, len(users), batch_size):
            chunk = users[start:start + batch_size]
            chunk_number = start // batch_size + 1
            started = time.monotonic()

            try:
                if upsert:
                    inserted, updated = self.store.upsert_users(chunk)
                else:
                    inserted, updated = self.store.insert_users(chunk), 0
            except Exception as e:
                logger.error(
                    "Batch load error",
                    extra={
                        "chunk_number": chunk_number,
                        "chunk_size": len(chunk),
                        "error": str(e),
                    },
                )
                result.merge(LoadResult(
                    failed=len(chunk),
                    errors=[LoadError(user_id=user.user_id, error=str(e)) for user in chunk],
                ))
                continue

            result.merge(LoadResult(inserted=inserted, updated=updated))

            logger.info(
                f"Loaded batch of {len(chunk)} users",
                extra={
                    "chunk_number": chunk_number,
                    "total_chunks": total_chunks,
                    "inserted": inserted,
                    "updated": updated,
                    "duration_seconds": round(time.monotonic() - started, 3),
                },
            )

        return result

    def update_program_stats(self) -> int:
        """
        Recompute every program aggregate from the persisted users.

        Returns:
            Number of program rows written
        """
        stats = compute_program_stats(self.store.iter_users())
        written = self.store.replace_program_stats(stats)
        logger.info(f"Updated statistics for {written} programs")
        return written

    def clean_database(self) -> None:
        """Remove all persisted users and program aggregates."""
        self.store.delete_all()
        logger.info("Database cleaned successfully")
