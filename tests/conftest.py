"""Pytest configuration and shared fixtures."""

import shutil
import tempfile
from pathlib import Path

import pytest

from hookdb.core.connection import DatabaseConnection

USERS_SCHEMA = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT UNIQUE,
    deleted_at TEXT
);
CREATE TABLE posts (
    id INTEGER PRIMARY KEY,
    user_id INTEGER NOT NULL REFERENCES users(id),
    title TEXT NOT NULL
);
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep HOOKDB_* settings from the outer environment out of tests."""
    for var in (
        "HOOKDB_PROJECT_DIR",
        "HOOKDB_HEALTH_TIMEOUT_MS",
        "HOOKDB_SHUTDOWN_TIMEOUT_MS",
        "HOOKDB_EXECUTOR_ENABLED",
    ):
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    temp = tempfile.mkdtemp()
    yield Path(temp)
    shutil.rmtree(temp)


@pytest.fixture
def temp_db(temp_dir):
    """Path to a database file that doesn't exist yet."""
    return temp_dir / "test.db"


@pytest.fixture
def db(temp_db):
    """SQLite connection with users and posts tables."""
    conn = DatabaseConnection(temp_db)
    conn._conn.executescript(USERS_SCHEMA)
    yield conn
    conn.close()
