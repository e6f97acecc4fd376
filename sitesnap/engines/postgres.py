# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
PostgreSQL engine adapter (asyncpg).

Foreign-key triggers are suspended with session_replication_role, which
requires a superuser (or a role allowed to set it). Rows are inserted via
json_populate_recordset so the server performs every type conversion from
the dump's JSON values. json and jsonb columns are decoded to Python
structures on read and handed back as JSON objects on write, so they keep
their type across a round trip.
"""

import json
from typing import Any, Dict, List, Sequence
from urllib.parse import urlparse

import asyncpg
import structlog

from sitesnap.engines import mask_password
from sitesnap.exceptions import EngineError

logger = structlog.get_logger()


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _encode_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


async def _register_json_codecs(conn: asyncpg.Connection) -> None:
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=_encode_json,
            decoder=json.loads,
            schema="pg_catalog",
        )


def _parse_postgres_url(url: str) -> Dict[str, Any]:
    parsed = urlparse(url)
    return {
        "host": parsed.hostname or "localhost",
        "port": parsed.port or 5432,
        "user": parsed.username or "postgres",
        "password": parsed.password or "",
        "database": parsed.path.lstrip("/") or "postgres",
    }


class PostgresEngine:
    """Engine adapter over one asyncpg connection (autocommit)."""

    backend = "postgres"

    def __init__(self, conn: asyncpg.Connection, database: str):
        self._conn = conn
        self._database = database

    async def database_name(self) -> str:
        return self._database

    async def table_exists(self, table: str) -> bool:
        return bool(
            await self._conn.fetchval(
                "SELECT EXISTS (SELECT 1 FROM information_schema.tables "
                "WHERE table_schema = current_schema() AND table_name = $1)",
                table,
            )
        )

    async def fetch_rows(self, table: str) -> List[Dict[str, Any]]:
        records = await self._conn.fetch(f"SELECT * FROM {_quote(table)}")
        return [dict(record) for record in records]

    async def delete_all(self, table: str) -> None:
        await self._conn.execute(f"DELETE FROM {_quote(table)}")

    async def insert_rows(
        self,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
    ) -> None:
        column_list = ", ".join(_quote(c) for c in columns)
        # Encoded by the json codec; nested values stay JSON objects
        payload = [dict(zip(columns, row)) for row in rows]
        await self._conn.execute(
            f"INSERT INTO {_quote(table)} ({column_list}) "
            f"SELECT {column_list} FROM json_populate_recordset(NULL::{_quote(table)}, $1::json)",
            payload,
        )

    async def disable_foreign_keys(self) -> None:
        await self._conn.execute("SET session_replication_role = replica")

    async def enable_foreign_keys(self) -> None:
        await self._conn.execute("SET session_replication_role = DEFAULT")

    async def max_id(self, table: str) -> int | None:
        return await self._conn.fetchval(f'SELECT MAX("id") FROM {_quote(table)}')

    async def reset_auto_increment(self, table: str, next_value: int) -> None:
        sequence = await self._conn.fetchval(
            "SELECT pg_get_serial_sequence($1, 'id')",
            _quote(table),
        )
        if sequence is None:
            raise EngineError(
                f"Table {table} has no id sequence",
                details={"table": table},
            )
        # is_called = false: the next nextval() returns next_value itself
        await self._conn.execute("SELECT setval($1, $2, false)", sequence, next_value)

    async def foreign_key_violations(self) -> Dict[str, List[str]]:
        constraints = await self._conn.fetch(
            """
            SELECT cl.relname AS child, a.attname AS child_column,
                   pcl.relname AS parent, pa.attname AS parent_column
            FROM pg_constraint c
            JOIN pg_class cl ON cl.oid = c.conrelid
            JOIN pg_class pcl ON pcl.oid = c.confrelid
            JOIN pg_namespace n ON n.oid = cl.relnamespace
            JOIN pg_attribute a ON a.attrelid = c.conrelid AND a.attnum = c.conkey[1]
            JOIN pg_attribute pa ON pa.attrelid = c.confrelid AND pa.attnum = c.confkey[1]
            WHERE c.contype = 'f'
              AND n.nspname = current_schema()
              AND array_length(c.conkey, 1) = 1
            """
        )

        violations: Dict[str, List[str]] = {}
        for fk in constraints:
            child, column = fk["child"], fk["child_column"]
            parent, parent_column = fk["parent"], fk["parent_column"]
            orphans = await self._conn.fetchval(
                f"SELECT COUNT(*) FROM {_quote(child)} c "
                f"LEFT JOIN {_quote(parent)} p ON c.{_quote(column)} = p.{_quote(parent_column)} "
                f"WHERE c.{_quote(column)} IS NOT NULL AND p.{_quote(parent_column)} IS NULL"
            )
            if orphans:
                violations.setdefault(child, []).append(
                    f"{orphans} rows have {column} referencing a missing {parent} row"
                )
        return violations

    async def commit(self) -> None:
        # asyncpg runs outside explicit transactions: every statement is committed
        return None

    async def close(self) -> None:
        await self._conn.close()


async def connect_postgres(database_url: str) -> PostgresEngine:
    """
    Open a PostgreSQL connection for one snapshot operation.

    Raises:
        EngineError: If the connection fails
    """
    params = _parse_postgres_url(database_url)
    try:
        conn = await asyncpg.connect(**params)
        await _register_json_codecs(conn)
    except Exception as e:
        raise EngineError(
            f"Failed to connect to PostgreSQL: {e}",
            details={"connection_url": mask_password(database_url)},
        )

    logger.debug("postgres_engine_connected", host=params["host"], database=params["database"])
    return PostgresEngine(conn, params["database"])
