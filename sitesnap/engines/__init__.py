# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Relational engine adapters - one connection per export or import.

Everything that differs between SQLite, MySQL and PostgreSQL (foreign-key
suspension, clearing, counter resequencing, catalog lookups) sits behind
the Engine protocol. The Dumper and Loader never branch on the backend.
"""

import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Protocol, Sequence
from urllib.parse import urlparse

from sitesnap.exceptions import EngineError

Row = Dict[str, Any]


class Engine(Protocol):
    """Protocol every backend adapter implements."""

    backend: str

    async def database_name(self) -> str:
        ...

    async def table_exists(self, table: str) -> bool:
        ...

    async def fetch_rows(self, table: str) -> List[Row]:
        """All rows of a table, in whatever order storage returns them."""
        ...

    async def delete_all(self, table: str) -> None:
        ...

    async def insert_rows(
        self,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
    ) -> None:
        """Insert one batch of rows sharing the same column list."""
        ...

    async def disable_foreign_keys(self) -> None:
        ...

    async def enable_foreign_keys(self) -> None:
        ...

    async def max_id(self, table: str) -> int | None:
        ...

    async def reset_auto_increment(self, table: str, next_value: int) -> None:
        """Make the next generated id of `table` equal `next_value`."""
        ...

    async def foreign_key_violations(self) -> Dict[str, List[str]]:
        """Orphaned references per child table."""
        ...

    async def commit(self) -> None:
        ...

    async def close(self) -> None:
        ...


def json_text(value: Any) -> Any:
    """Nested structures as JSON text, for engines without a JSON parameter type."""
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return value


def mask_password(url: str) -> str:
    """Mask password in connection URL for logging."""
    parsed = urlparse(url)
    if parsed.password:
        return url.replace(f":{parsed.password}@", ":***@")
    return url


async def open_engine(backend: str, database_url: str) -> Engine:
    """
    Connect to the website database.

    Args:
        backend: 'sqlite', 'mysql' or 'postgres'
        database_url: Connection URL

    Returns:
        Connected engine adapter

    Raises:
        EngineError: If backend is unsupported or connection fails
    """
    if backend == "sqlite":
        from sitesnap.engines.sqlite import connect_sqlite

        return await connect_sqlite(database_url)
    elif backend == "mysql":
        from sitesnap.engines.mysql import connect_mysql

        return await connect_mysql(database_url)
    elif backend == "postgres":
        from sitesnap.engines.postgres import connect_postgres

        return await connect_postgres(database_url)
    else:
        raise EngineError(f"Unsupported database engine: {backend}")


@asynccontextmanager
async def engine_session(backend: str, database_url: str) -> AsyncIterator[Engine]:
    """Open an engine and always close it."""
    engine = await open_engine(backend, database_url)
    try:
        yield engine
    finally:
        await engine.close()


__all__ = [
    "Engine",
    "Row",
    "engine_session",
    "json_text",
    "mask_password",
    "open_engine",
]
