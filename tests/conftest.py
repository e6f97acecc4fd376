# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for sitesnap tests.

Provides a SQLite website database with real foreign keys, public and
scratch directories, and test configuration helpers.
"""

import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Generator, List

import aiosqlite
import pytest
import pytest_asyncio
import structlog

# Set test environment variables
os.environ["SITESNAP_ADMIN_API_KEY"] = "test-api-key-12345"

API_HEADERS = {"Authorization": "Bearer test-api-key-12345"}

WEBSITE_SCHEMA = [
    """
    CREATE TABLE users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        email TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE translation_keys (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        key TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE pictures (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        filename TEXT NOT NULL,
        path_original TEXT
    )
    """,
    """
    CREATE TABLE certifications (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        score TEXT
    )
    """,
    """
    CREATE TABLE translations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        translation_key_id INTEGER NOT NULL REFERENCES translation_keys(id),
        locale TEXT NOT NULL,
        text TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE technologies (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        type TEXT,
        icon_picture_id INTEGER REFERENCES pictures(id),
        description_translation_key_id INTEGER REFERENCES translation_keys(id)
    )
    """,
    """
    CREATE TABLE creations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        slug TEXT NOT NULL,
        logo_id INTEGER REFERENCES pictures(id),
        short_description_translation_key_id INTEGER REFERENCES translation_keys(id),
        settings TEXT,
        created_at TEXT
    )
    """,
    """
    CREATE TABLE creation_technology (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        creation_id INTEGER NOT NULL REFERENCES creations(id),
        technology_id INTEGER NOT NULL REFERENCES technologies(id)
    )
    """,
    """
    CREATE TABLE user_agent_metadata (
        user_agent TEXT PRIMARY KEY,
        is_bot INTEGER NOT NULL DEFAULT 0
    )
    """,
]


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """The CLI reconfigures structlog globally; undo it after each test."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class RecordingEngine:
    """In-memory engine that records every call in order."""

    backend = "memory"

    def __init__(self, tables):
        self.tables = {t: [] for t in tables}
        self.calls: List[tuple] = []
        self.foreign_keys_on = True

    async def database_name(self):
        return "memory"

    async def table_exists(self, table):
        return table in self.tables

    async def fetch_rows(self, table):
        return list(self.tables[table])

    async def delete_all(self, table):
        self.calls.append(("clear", table, self.foreign_keys_on))
        self.tables[table] = []

    async def insert_rows(self, table, columns, rows):
        self.calls.append(("load", table, self.foreign_keys_on))
        for row in rows:
            self.tables[table].append(dict(zip(columns, row)))

    async def disable_foreign_keys(self):
        self.foreign_keys_on = False

    async def enable_foreign_keys(self):
        self.foreign_keys_on = True

    async def max_id(self, table):
        rows = self.tables[table]
        if any("id" not in row for row in rows):
            raise KeyError("id")
        return max((row["id"] for row in rows), default=None)

    async def reset_auto_increment(self, table, next_value):
        self.calls.append(("resequence", table, next_value))

    async def foreign_key_violations(self):
        return {}

    async def commit(self):
        pass

    async def close(self):
        pass


async def create_website_db(db_path: Path) -> Path:
    """Create an empty website database."""
    async with aiosqlite.connect(db_path) as db:
        for statement in WEBSITE_SCHEMA:
            await db.execute(statement)
        await db.commit()
    return db_path


async def insert(db_path: Path, table: str, rows: List[Dict[str, Any]]) -> None:
    """Insert rows with foreign keys enforced."""
    async with aiosqlite.connect(db_path) as db:
        await db.execute("PRAGMA foreign_keys = ON")
        for row in rows:
            columns = ", ".join(row)
            placeholders = ", ".join("?" for _ in row)
            await db.execute(
                f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                tuple(row.values()),
            )
        await db.commit()


async def fetch_all(db_path: Path, table: str) -> List[Dict[str, Any]]:
    async with aiosqlite.connect(db_path) as db:
        db.row_factory = aiosqlite.Row
        async with db.execute(f"SELECT * FROM {table} ORDER BY rowid") as cursor:
            return [dict(row) for row in await cursor.fetchall()]


async def seed_website(db_path: Path) -> None:
    """A small but fully linked website dataset."""
    await insert(db_path, "users", [{"name": "Admin", "email": "admin@example.com"}])
    await insert(db_path, "translation_keys", [
        {"key": "creation.portfolio.short"},
        {"key": "technology.laravel.description"},
    ])
    await insert(db_path, "translations", [
        {"translation_key_id": 1, "locale": "fr", "text": "Mon portfolio à moi"},
        {"translation_key_id": 1, "locale": "en", "text": "My portfolio"},
        {"translation_key_id": 2, "locale": "en", "text": "PHP framework 🚀"},
    ])
    await insert(db_path, "pictures", [
        {"filename": "logo.png", "path_original": "uploads/logo.png"},
        {"filename": "laravel.svg", "path_original": "uploads/laravel.svg"},
    ])
    await insert(db_path, "certifications", [{"name": "AWS Practitioner", "score": "912"}])
    await insert(db_path, "technologies", [
        {
            "name": "Laravel",
            "type": "framework",
            "icon_picture_id": 2,
            "description_translation_key_id": 2,
        },
    ])
    await insert(db_path, "creations", [
        {
            "name": "Portfolio",
            "slug": "portfolio",
            "logo_id": 1,
            "short_description_translation_key_id": 1,
            "settings": '{"featured": true}',
            "created_at": "2025-01-15 10:30:00",
        },
    ])
    await insert(db_path, "creation_technology", [{"creation_id": 1, "technology_id": 1}])
    await insert(db_path, "user_agent_metadata", [{"user_agent": "curl/8.0", "is_bot": 1}])


@pytest_asyncio.fixture
async def website_db(temp_dir: Path) -> Path:
    """Create an empty website database with foreign keys."""
    return await create_website_db(temp_dir / "website.db")


@pytest_asyncio.fixture
async def seeded_db(website_db: Path) -> Path:
    """Website database with one row per content table."""
    await seed_website(website_db)
    return website_db


@pytest.fixture
def public_dir(temp_dir: Path) -> Path:
    path = temp_dir / "storage" / "app" / "public"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def storage_dir(temp_dir: Path) -> Path:
    path = temp_dir / "storage" / "app"
    path.mkdir(parents=True, exist_ok=True)
    return path


@pytest.fixture
def test_config(website_db: Path, public_dir: Path, storage_dir: Path):
    """Create a test configuration against the SQLite website database."""
    from sitesnap.builder import create_config

    return create_config(
        database_url=f"sqlite:///{website_db}",
        public_path=public_dir,
        storage_path=storage_dir,
    )


@pytest_asyncio.fixture
async def test_state(test_config):
    """Create initialized snapshot state for testing."""
    from sitesnap.core import initialize_snapshot_state

    return await initialize_snapshot_state(test_config)
