"""
Pytest configuration and fixtures for advocacy-etl tests

This module provides shared fixtures for unit, integration, and E2E tests.
"""
import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any, Callable, Generator

import pytest
from testcontainers.postgres import PostgresContainer

from src.core.models import ProgramStats, User
from src.warehouse.connection import DatabaseConnectionPool
from src.warehouse.schema_mgmt import PROGRAMS_TABLE, USERS_TABLE, SchemaManager
from src.warehouse.user_store import PostgresUserStore


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that test the full pipeline"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# IN-MEMORY STORE
# =======================

class InMemoryUserStore:
    """
    UserStore fake for unit tests.

    Args:
        fail_user_ids: Any bulk call containing one of these ids raises
        open_error: Raised from open() when set
    """

    def __init__(self, fail_user_ids: set[str] | None = None, open_error: Exception | None = None):
        self.users: dict[str, User] = {}
        self.program_stats: dict[str, ProgramStats] = {}
        self.fail_user_ids = fail_user_ids or set()
        self.open_error = open_error
        self.is_open = False
        self.open_calls = 0
        self.close_calls = 0
        self.bulk_calls: list[list[str]] = []

    def open(self) -> None:
        self.open_calls += 1
        if self.open_error is not None:
            raise self.open_error
        self.is_open = True

    def close(self) -> None:
        self.close_calls += 1
        self.is_open = False

    def _check(self, users: list[User]) -> None:
        self.bulk_calls.append([user.user_id for user in users])
        failing = self.fail_user_ids.intersection(user.user_id for user in users)
        if failing:
            raise RuntimeError(f"write rejected for {sorted(failing)}")

    def upsert_users(self, users: list[User]) -> tuple[int, int]:
        self._check(users)
        inserted = 0
        for user in users:
            if user.user_id not in self.users:
                inserted += 1
            self.users[user.user_id] = user.model_copy(deep=True)
        return inserted, len(users) - inserted

    def insert_users(self, users: list[User]) -> int:
        self._check(users)
        existing = [user.user_id for user in users if user.user_id in self.users]
        if existing:
            raise RuntimeError(f"duplicate key: {existing}")
        for user in users:
            self.users[user.user_id] = user.model_copy(deep=True)
        return len(users)

    def iter_users(self) -> Iterator[User]:
        for user_id in sorted(self.users):
            yield self.users[user_id]

    def replace_program_stats(self, stats: list[ProgramStats]) -> int:
        self.program_stats = {entry.program_id: entry for entry in stats}
        return len(stats)

    def delete_all(self) -> None:
        self.users.clear()
        self.program_stats.clear()


@pytest.fixture(scope="function")
def memory_store() -> InMemoryUserStore:
    """Fresh in-memory store for a single test"""
    return InMemoryUserStore()


@pytest.fixture
def make_store() -> type[InMemoryUserStore]:
    """InMemoryUserStore class, for tests that need a configured store"""
    return InMemoryUserStore


# =======================
# RECORD FIXTURES
# =======================

@pytest.fixture
def make_raw_user() -> Callable[..., dict[str, Any]]:
    """
    Factory for raw participant payloads

    Returns:
        Callable building a complete raw record; keyword arguments override
        top-level fields (None removes the field)
    """
    def _make(**overrides: Any) -> dict[str, Any]:
        record: dict[str, Any] = {
            "user_id": "u1",
            "name": "Jane Doe",
            "email": "Jane@Example.com",
            "instagram_handle": "@Foo",
            "joined_at": "2024-01-01T00:00:00Z",
            "advocacy_programs": [
                {
                    "program_id": "p1",
                    "brand": "Acme",
                    "tasks_completed": [
                        {
                            "task_id": "t1",
                            "platform": "Instagram",
                            "post_url": "https://instagram.com/p/abc",
                            "likes": 10,
                            "comments": 2,
                            "shares": 1,
                            "reach": 400,
                        }
                    ],
                    "total_sales_attributed": 50,
                }
            ],
        }
        for key, value in overrides.items():
            if value is None:
                record.pop(key, None)
            else:
                record[key] = value
        return record

    return _make


# =======================
# FILE FIXTURES
# =======================

@pytest.fixture(scope="function")
def data_dir(tmp_path) -> Path:
    """
    Provide an empty input directory

    Returns:
        Path to tmp_path/data
    """
    directory = tmp_path / "data"
    directory.mkdir()
    return directory


@pytest.fixture(scope="function")
def write_file(data_dir) -> Callable[[str, Any], Path]:
    """
    Write one input file into data_dir

    Returns:
        Callable(name, content); dict/list content is JSON-encoded, str is
        written verbatim
    """
    def _write(name: str, content: Any) -> Path:
        path = data_dir / name
        if isinstance(content, str):
            path.write_text(content, encoding="utf-8")
        else:
            path.write_text(json.dumps(content), encoding="utf-8")
        return path

    return _write


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL container for integration tests

    Yields:
        PostgresContainer instance
    """
    with PostgresContainer(
        image="postgres:16.2-alpine",
        username="test_pipeline",
        password="test_password",
        dbname="test_advocacy",
    ) as postgres:
        yield postgres


@pytest.fixture(scope="session")
def db_settings(postgres_container) -> dict[str, Any]:
    """
    Connection keyword arguments for the test container

    Returns:
        Keyword arguments for DatabaseConnectionPool
    """
    return {
        "host": postgres_container.get_container_host_ip(),
        "port": int(postgres_container.get_exposed_port(5432)),
        "database": "test_advocacy",
        "user": "test_pipeline",
        "password": "test_password",
    }


@pytest.fixture(scope="session")
def db_pool(db_settings) -> Generator[DatabaseConnectionPool, None, None]:
    """
    Session-wide pool with the warehouse tables created

    Yields:
        Open DatabaseConnectionPool
    """
    with DatabaseConnectionPool(**db_settings) as pool:
        SchemaManager(pool).create_tables()
        yield pool


@pytest.fixture(scope="function")
def clean_db(db_pool) -> DatabaseConnectionPool:
    """
    Provide a clean database by truncating all tables before each test

    Returns:
        Open DatabaseConnectionPool over empty tables
    """
    db_pool.execute_command(f"TRUNCATE TABLE {USERS_TABLE}, {PROGRAMS_TABLE}")
    return db_pool


@pytest.fixture(scope="function")
def pg_store(clean_db, db_settings) -> Generator[PostgresUserStore, None, None]:
    """
    PostgresUserStore with its own pool, so closing it leaves db_pool open

    Yields:
        Open PostgresUserStore
    """
    store = PostgresUserStore(DatabaseConnectionPool(**db_settings))
    store.open()
    yield store
    store.close()
