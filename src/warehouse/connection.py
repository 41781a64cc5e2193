"""
psycopg3 connection pool for the advocacy warehouse

A pool belongs to whoever opens it, normally a single pipeline run, and is
closed when that owner finishes. There is no process-wide pool.
"""
import os
import time
from contextlib import contextmanager

from psycopg import OperationalError
from psycopg.conninfo import make_conninfo
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolTimeout

from src.core.errors import StoreConnectionError
from src.observability.logger import get_logger

logger = get_logger(__name__)

APPLICATION_NAME = "advocacy-etl"


class DatabaseConnectionPool:
    """
    Lazily opened pool of dict-row connections

    Unset connection parameters fall back to the DB_HOST, DB_PORT, DB_NAME,
    DB_USER and DB_PASSWORD environment variables.

    Usage:
        with DatabaseConnectionPool(password="...") as pool:
            rows = pool.execute_query("SELECT 1 AS ok")

    Raises:
        StoreConnectionError: If no password is configured
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        database: str | None = None,
        user: str | None = None,
        password: str | None = None,
        min_size: int = 1,
        max_size: int = 4,
        timeout: float = 30.0,
    ) -> None:
        self.host = host or os.getenv("DB_HOST", "localhost")
        self.port = port or int(os.getenv("DB_PORT", "5432"))
        self.database = database or os.getenv("DB_NAME", "advocacy")
        self.user = user or os.getenv("DB_USER", "pipeline")
        password = password or os.getenv("DB_PASSWORD")
        if not password:
            raise StoreConnectionError(
                "No database password configured; set DB_PASSWORD or pass password="
            )

        self.min_size = min_size
        self.max_size = max_size
        self.timeout = timeout
        self.conninfo = make_conninfo(
            host=self.host,
            port=self.port,
            dbname=self.database,
            user=self.user,
            password=password,
            connect_timeout=max(1, int(timeout)),
            application_name=APPLICATION_NAME,
        )
        self._pool: ConnectionPool | None = None

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def _new_pool(self) -> ConnectionPool:
        return ConnectionPool(
            conninfo=self.conninfo,
            min_size=self.min_size,
            max_size=self.max_size,
            timeout=self.timeout,
            kwargs={"row_factory": dict_row},
            open=False,
        )

    def open(self, max_retries: int = 3, retry_delay: float = 2.0) -> None:
        """
        Open the pool and wait for its minimum connections.

        Does nothing when already open.

        Args:
            max_retries: Connection attempts before giving up
            retry_delay: Seconds to wait between attempts

        Raises:
            StoreConnectionError: If every attempt fails
        """
        if self._pool is not None:
            return

        attempt = 0
        while True:
            attempt += 1
            pool = self._new_pool()
            try:
                pool.open(wait=True, timeout=self.timeout)
                break
            except (OperationalError, PoolTimeout) as e:
                pool.close()
                if attempt >= max_retries:
                    raise StoreConnectionError(
                        f"Could not connect to {self.host}:{self.port}/{self.database} "
                        f"after {attempt} attempts: {e}"
                    ) from e
                logger.warning(
                    "Database unavailable, retrying",
                    extra={"attempt": attempt, "max_retries": max_retries, "error": str(e)},
                )
                time.sleep(retry_delay)

        self._pool = pool
        logger.info(
            "Database pool opened",
            extra={"db_host": self.host, "db_port": self.port, "db_name": self.database},
        )

    def close(self) -> None:
        if self._pool is None:
            return
        self._pool.close()
        self._pool = None
        logger.info("Database pool closed")

    @contextmanager
    def get_connection(self):
        """
        Borrow a connection for one transaction.

        The transaction commits when the block exits normally and rolls back
        when it raises.

        Raises:
            RuntimeError: If the pool has not been opened
        """
        if self._pool is None:
            raise RuntimeError("Connection pool is not open. Call open() first.")
        with self._pool.connection() as conn:
            yield conn

    @contextmanager
    def get_cursor(self):
        """Borrow a dict-row cursor inside its own transaction."""
        with self.get_connection() as conn, conn.cursor() as cur:
            yield cur

    def execute_query(self, query: str, params: tuple | None = None) -> list[dict]:
        with self.get_cursor() as cur:
            cur.execute(query, params)
            return cur.fetchall()

    def execute_command(self, command: str, params: tuple | None = None) -> int:
        """Run a statement that returns no rows; returns the affected row count."""
        with self.get_cursor() as cur:
            cur.execute(command, params)
            return cur.rowcount

    def __enter__(self) -> "DatabaseConnectionPool":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
