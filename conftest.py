from __future__ import annotations

from pathlib import Path
from typing import Iterator
from unittest.mock import MagicMock

import pytest

from sqlconduit.config.models import DatabaseConfig, DatabaseType, ExecutorSettings
from sqlconduit.db.connection import ConnectionRegistry
from sqlconduit.db.executor import QueryExecutor
from sqlconduit.db.select import Select


@pytest.fixture
def sqlite_config(tmp_path: Path) -> DatabaseConfig:
    """File-backed SQLite configuration in a per-test directory."""
    return DatabaseConfig(type=DatabaseType.SQLITE, database=str(tmp_path / "conduit.db"))


@pytest.fixture
def registry() -> Iterator[ConnectionRegistry]:
    registry = ConnectionRegistry()
    try:
        yield registry
    finally:
        registry.clear()


@pytest.fixture
def executor(registry: ConnectionRegistry, sqlite_config: DatabaseConfig) -> QueryExecutor:
    """Executor bound to a registry whose active connection holds a ``users`` table."""
    registry.open(sqlite_config)
    executor = QueryExecutor(registry, ExecutorSettings(max_tries=3, retry_sleep=0), sleep=MagicMock())
    executor.execute(
        "CREATE TABLE users (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL, "
        "team TEXT, active INTEGER NOT NULL DEFAULT 1, score INTEGER NOT NULL DEFAULT 0)"
    )
    executor.execute([
        "INSERT INTO users (name, team, score) VALUES ('alice', 'red', 10)",
        "INSERT INTO users (name, team, score) VALUES ('bob', 'blue', 20)",
        "INSERT INTO users (name, team, score, active) VALUES ('carol', 'red', 30, 0)",
    ])
    return executor


@pytest.fixture
def select(executor: QueryExecutor) -> Select:
    return Select(executor)
