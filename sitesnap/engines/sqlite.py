# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
SQLite engine adapter (aiosqlite).

Foreign keys are toggled with PRAGMA foreign_keys, which SQLite ignores
inside an open transaction, so pending work is committed first. Counters
live in sqlite_sequence and only exist for AUTOINCREMENT tables.
"""

from pathlib import Path
from typing import Any, Dict, List, Sequence

import aiosqlite
import structlog

from sitesnap.engines import json_text
from sitesnap.exceptions import EngineError

logger = structlog.get_logger()


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def sqlite_path_from_url(url: str) -> str:
    """
    Extract the database file from a sqlite URL.

    sqlite:///relative.db and sqlite:////absolute/path.db are both accepted,
    as is sqlite:///:memory:.
    """
    _, _, rest = url.partition(":")
    rest = rest.split("?", 1)[0]
    if rest.startswith("//"):
        rest = rest[2:]
    if rest.startswith("/"):
        rest = rest[1:]
    if not rest:
        raise EngineError("SQLite URL does not name a database file", details={"url": url})
    return rest


class SQLiteEngine:
    """Engine adapter over one aiosqlite connection."""

    backend = "sqlite"

    def __init__(self, db: aiosqlite.Connection, path: str):
        self._db = db
        self._path = path

    async def database_name(self) -> str:
        return Path(self._path).name

    async def table_exists(self, table: str) -> bool:
        async with self._db.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
            (table,),
        ) as cursor:
            return await cursor.fetchone() is not None

    async def fetch_rows(self, table: str) -> List[Dict[str, Any]]:
        async with self._db.execute(f"SELECT * FROM {_quote(table)}") as cursor:
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def delete_all(self, table: str) -> None:
        await self._db.execute(f"DELETE FROM {_quote(table)}")

    async def insert_rows(
        self,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
    ) -> None:
        column_list = ", ".join(_quote(c) for c in columns)
        placeholders = ", ".join("?" for _ in columns)
        await self._db.executemany(
            f"INSERT INTO {_quote(table)} ({column_list}) VALUES ({placeholders})",
            [tuple(json_text(value) for value in row) for row in rows],
        )

    async def disable_foreign_keys(self) -> None:
        await self._db.commit()
        await self._db.execute("PRAGMA foreign_keys = OFF")

    async def enable_foreign_keys(self) -> None:
        await self._db.commit()
        await self._db.execute("PRAGMA foreign_keys = ON")

    async def foreign_keys_enabled(self) -> bool:
        async with self._db.execute("PRAGMA foreign_keys") as cursor:
            row = await cursor.fetchone()
        return bool(row[0])

    async def max_id(self, table: str) -> int | None:
        async with self._db.execute(f"SELECT MAX(id) FROM {_quote(table)}") as cursor:
            row = await cursor.fetchone()
        return row[0]

    async def reset_auto_increment(self, table: str, next_value: int) -> None:
        async with self._db.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'sqlite_sequence'"
        ) as cursor:
            has_sequence_table = await cursor.fetchone() is not None

        if not has_sequence_table:
            # No AUTOINCREMENT table: rowids already continue from MAX(id)
            return

        await self._db.execute(
            "UPDATE sqlite_sequence SET seq = ? WHERE name = ?",
            (next_value - 1, table),
        )
        await self._db.commit()

    async def foreign_key_violations(self) -> Dict[str, List[str]]:
        violations: Dict[str, List[str]] = {}
        async with self._db.execute("PRAGMA foreign_key_check") as cursor:
            rows = await cursor.fetchall()
        for table, rowid, parent, _fkid in rows:
            violations.setdefault(table, []).append(
                f"row {rowid} references a missing {parent} row"
            )
        return violations

    async def commit(self) -> None:
        await self._db.commit()

    async def close(self) -> None:
        await self._db.close()


async def connect_sqlite(database_url: str) -> SQLiteEngine:
    """
    Open a SQLite database with foreign keys enforced.

    Raises:
        EngineError: If the database cannot be opened
    """
    path = sqlite_path_from_url(database_url)
    try:
        db = await aiosqlite.connect(path)
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys = ON")
    except Exception as e:
        raise EngineError(
            f"Failed to open SQLite database: {e}",
            details={"path": path},
        )

    logger.debug("sqlite_engine_connected", path=path)
    return SQLiteEngine(db, path)
