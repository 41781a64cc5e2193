"""
Idempotent user persistence on PostgreSQL.

Implements the loader's UserStore contract with INSERT ... ON CONFLICT
upserts keyed by user_id, so reprocessing the same input converges on the
same rows.
"""

import json
from collections.abc import Iterator
from datetime import datetime, timezone

from src.core.models import ProgramStats, User
from src.observability.logger import get_logger

from .connection import DatabaseConnectionPool
from .schema_mgmt import PROGRAMS_TABLE, USERS_TABLE, SchemaManager

logger = get_logger(__name__)

_USER_COLUMNS = "user_id, name, email, join_date, total_engagement, total_sales, document"

UPSERT_USER_SQL = f"""
    INSERT INTO {USERS_TABLE} ({_USER_COLUMNS})
    VALUES (%s, %s, %s, %s, %s, %s, %s::jsonb)
    ON CONFLICT (user_id) DO UPDATE SET
        name = EXCLUDED.name,
        email = EXCLUDED.email,
        join_date = EXCLUDED.join_date,
        total_engagement = EXCLUDED.total_engagement,
        total_sales = EXCLUDED.total_sales,
        document = EXCLUDED.document,
        updated_at = NOW()
    RETURNING (xmax = 0) AS inserted
"""

INSERT_USER_SQL = f"""
    INSERT INTO {USERS_TABLE} ({_USER_COLUMNS})
    VALUES (%s, %s, %s, %s, %s, %s, %s::jsonb)
"""

UPSERT_PROGRAM_SQL = f"""
    INSERT INTO {PROGRAMS_TABLE} (
        program_id, program_name, status, user_count, total_engagement, total_sales, updated_at
    )
    VALUES (%s, %s, %s, %s, %s, %s, %s)
    ON CONFLICT (program_id) DO UPDATE SET
        program_name = EXCLUDED.program_name,
        user_count = EXCLUDED.user_count,
        total_engagement = EXCLUDED.total_engagement,
        total_sales = EXCLUDED.total_sales,
        updated_at = EXCLUDED.updated_at
"""


def _user_params(user: User) -> tuple:
    return (
        user.user_id,
        user.name,
        user.email,
        user.join_date,
        user.total_engagement,
        user.total_sales,
        json.dumps(user.to_document()),
    )


class PostgresUserStore:
    """
    UserStore backed by the ``advocacy_users`` and ``program_stats`` tables.

    Args:
        pool: Connection pool (opened and closed with the store)
        create_tables: Create missing tables on open
        fetch_size: Rows per round trip when streaming users
    """

    def __init__(
        self,
        pool: DatabaseConnectionPool,
        create_tables: bool = True,
        fetch_size: int = 1000,
    ):
        self.pool = pool
        self.create_tables = create_tables
        self.fetch_size = fetch_size

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "PostgresUserStore":
        """Build a store from PipelineSettings database fields."""
        return cls(DatabaseConnectionPool(**settings.database_kwargs()), **kwargs)

    def open(self) -> None:
        self.pool.open()
        if self.create_tables:
            SchemaManager(self.pool).create_tables()

    def close(self) -> None:
        self.pool.close()

    def upsert_users(self, users: list[User]) -> tuple[int, int]:
        """
        Upsert users in one transaction.

        Returns:
            Tuple of (inserted, updated)
        """
        if not users:
            return 0, 0

        inserted = 0
        with self.pool.get_connection() as conn:
            with conn.cursor() as cur:
                cur.executemany(UPSERT_USER_SQL, [_user_params(user) for user in users], returning=True)
                while True:
                    row = cur.fetchone()
                    if row and row["inserted"]:
                        inserted += 1
                    if not cur.nextset():
                        break

        return inserted, len(users) - inserted

    def insert_users(self, users: list[User]) -> int:
        """
        Insert users in one transaction; an existing user_id fails the whole call.

        Returns:
            Number of users inserted
        """
        if not users:
            return 0

        with self.pool.get_connection() as conn:
            with conn.cursor() as cur:
                cur.executemany(INSERT_USER_SQL, [_user_params(user) for user in users])

        return len(users)

    def iter_users(self) -> Iterator[User]:
        """Stream every persisted user through a server-side cursor."""
        with self.pool.get_connection() as conn:
            with conn.cursor(name="iter_advocacy_users") as cur:
                cur.itersize = self.fetch_size
                cur.execute(f"SELECT document FROM {USERS_TABLE} ORDER BY user_id")
                for row in cur:
                    yield User.model_validate(row["document"])

    def get_user(self, user_id: str) -> User | None:
        rows = self.pool.execute_query(
            f"SELECT document FROM {USERS_TABLE} WHERE user_id = %s",
            (user_id,),
        )
        return User.model_validate(rows[0]["document"]) if rows else None

    def count_users(self) -> int:
        rows = self.pool.execute_query(f"SELECT COUNT(*) AS count FROM {USERS_TABLE}")
        return rows[0]["count"]

    def replace_program_stats(self, stats: list[ProgramStats]) -> int:
        """
        Make the program table hold exactly ``stats``.

        Stale rows are deleted and the rest upserted in one transaction, so
        readers never see a half-written aggregate set.
        """
        now = datetime.now(timezone.utc)
        program_ids = [entry.program_id for entry in stats]

        with self.pool.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"DELETE FROM {PROGRAMS_TABLE} WHERE NOT (program_id = ANY(%s))",
                    (program_ids,),
                )
                if stats:
                    cur.executemany(
                        UPSERT_PROGRAM_SQL,
                        [
                            (
                                entry.program_id,
                                entry.program_name,
                                entry.status,
                                entry.user_count,
                                entry.total_engagement,
                                entry.total_sales,
                                now,
                            )
                            for entry in stats
                        ],
                    )

        return len(stats)

    def list_program_stats(self) -> list[ProgramStats]:
        rows = self.pool.execute_query(
            f"""
            SELECT program_id, program_name, status, user_count,
                   total_engagement, total_sales, updated_at
            FROM {PROGRAMS_TABLE}
            ORDER BY program_id
            """
        )
        return [ProgramStats(**row) for row in rows]

    def delete_all(self) -> None:
        with self.pool.get_cursor() as cur:
            cur.execute(f"TRUNCATE {USERS_TABLE}, {PROGRAMS_TABLE}")
        logger.info("Deleted all users and program statistics")
