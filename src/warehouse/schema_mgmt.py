"""
Table management for the advocacy warehouse.

Users are stored as one row per user_id with the full canonical entity in a
JSONB ``document`` column; the scalar columns beside it exist for indexing
and ad-hoc queries. Program aggregates live in their own table.
"""

from .connection import DatabaseConnectionPool

USERS_TABLE = "advocacy_users"
PROGRAMS_TABLE = "program_stats"

CREATE_TABLES_SQL = (
    f"""
    CREATE TABLE IF NOT EXISTS {USERS_TABLE} (
        user_id TEXT PRIMARY KEY,
        name TEXT,
        email TEXT,
        join_date TIMESTAMPTZ,
        total_engagement DOUBLE PRECISION NOT NULL DEFAULT 0 CHECK (total_engagement >= 0),
        total_sales DOUBLE PRECISION NOT NULL DEFAULT 0 CHECK (total_sales >= 0),
        document JSONB NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    f"CREATE INDEX IF NOT EXISTS idx_{USERS_TABLE}_total_engagement ON {USERS_TABLE} (total_engagement DESC)",
    f"CREATE INDEX IF NOT EXISTS idx_{USERS_TABLE}_total_sales ON {USERS_TABLE} (total_sales DESC)",
    f"CREATE INDEX IF NOT EXISTS idx_{USERS_TABLE}_created_at ON {USERS_TABLE} (created_at DESC)",
    f"CREATE INDEX IF NOT EXISTS idx_{USERS_TABLE}_programs ON {USERS_TABLE} USING GIN ((document -> 'programs'))",
    f"""
    CREATE TABLE IF NOT EXISTS {PROGRAMS_TABLE} (
        program_id TEXT PRIMARY KEY,
        program_name TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'active'
            CHECK (status IN ('active', 'completed', 'paused', 'cancelled')),
        user_count INTEGER NOT NULL DEFAULT 0 CHECK (user_count >= 0),
        total_engagement DOUBLE PRECISION NOT NULL DEFAULT 0,
        total_sales DOUBLE PRECISION NOT NULL DEFAULT 0,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    f"CREATE INDEX IF NOT EXISTS idx_{PROGRAMS_TABLE}_total_engagement ON {PROGRAMS_TABLE} (total_engagement DESC)",
    f"CREATE INDEX IF NOT EXISTS idx_{PROGRAMS_TABLE}_total_sales ON {PROGRAMS_TABLE} (total_sales DESC)",
)


class SchemaManager:
    """
    Creates, inspects and drops the warehouse tables.
    """

    def __init__(self, pool: DatabaseConnectionPool):
        self.pool = pool

    def create_tables(self) -> None:
        """Create tables and indexes if they do not already exist."""
        with self.pool.get_cursor() as cur:
            for statement in CREATE_TABLES_SQL:
                cur.execute(statement)

    def drop_tables(self) -> None:
        """Drop both tables (used by tests and full resets)."""
        with self.pool.get_cursor() as cur:
            cur.execute(f"DROP TABLE IF EXISTS {PROGRAMS_TABLE}")
            cur.execute(f"DROP TABLE IF EXISTS {USERS_TABLE}")

    def table_exists(self, table_name: str) -> bool:
        result = self.pool.execute_query(
            "SELECT to_regclass(%s) IS NOT NULL AS present",
            (table_name,),
        )
        return bool(result and result[0]["present"])
