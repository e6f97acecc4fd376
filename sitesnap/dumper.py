# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap Database Dumper - Table rows to pretty-printed JSON.

Rows are read in whatever order storage returns them and encoded as a
JSON array of objects: 4-space indent, non-ASCII characters kept as-is,
UTF-8 bytes. Driver-native values are normalized to JSON values; anything
that cannot be represented aborts the export.

The archive has no binary type: a binary column value is written as its
UTF-8 text, so it is restored as text. Binary values that are not valid
UTF-8 are refused rather than silently altered.
"""

import json
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, List

import structlog

from sitesnap.archive import ArchiveWriter, run_blocking
from sitesnap.engines import Engine, Row
from sitesnap.exceptions import EngineError, SerializationError, SiteSnapError
from sitesnap.registry import TableRegistry

logger = structlog.get_logger()


def normalize_value(value: Any) -> Any:
    """
    Convert one driver value into a JSON-native value.

    Binary values become their UTF-8 text; the column type is not kept.

    Raises:
        SerializationError: If the value has no JSON form (including binary
            that is not valid UTF-8)
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, datetime):
        # Same text form the application writes to timestamp columns
        return value.strftime("%Y-%m-%d %H:%M:%S.%f" if value.microsecond else "%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError as e:
            raise SerializationError(
                f"Binary value is not valid UTF-8: {e}",
                details={"length": len(bytes(value))},
            )
    if isinstance(value, dict):
        return {str(k): normalize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_value(v) for v in value]

    raise SerializationError(
        f"Unsupported value type: {type(value).__name__}",
        details={"type": type(value).__name__},
    )


def encode_rows(table: str, rows: List[Row]) -> bytes:
    """
    Serialize the rows of one table.

    Raises:
        SerializationError: If any row cannot be encoded
    """
    try:
        normalized = [
            {column: normalize_value(value) for column, value in row.items()}
            for row in rows
        ]
        return json.dumps(normalized, indent=4, ensure_ascii=False).encode("utf-8")
    except SerializationError as e:
        raise SerializationError(
            f"Failed to encode data for table: {table}: {e.message}",
            details={"table": table, **e.details},
        )
    except (TypeError, ValueError, UnicodeEncodeError) as e:
        # Lone surrogates in text columns end up here
        raise SerializationError(
            f"Failed to encode data for table: {table}: {e}",
            details={"table": table},
        )


async def dump_table(engine: Engine, table: str) -> List[Row]:
    """
    Read every row of a table.

    Raises:
        EngineError: If the driver fails
    """
    try:
        return await engine.fetch_rows(table)
    except SiteSnapError:
        raise
    except Exception as e:
        raise EngineError(
            f"Failed to read table {table}: {e}",
            details={"table": table},
        )


async def dump_database(
    engine: Engine,
    registry: TableRegistry,
    writer: ArchiveWriter,
) -> List[str]:
    """
    Dump every registry table that exists in the live schema.

    Returns:
        Tables actually written, in export order
    """
    exported: List[str] = []

    for table in registry.export_tables:
        if not await engine.table_exists(table):
            logger.debug("table_skipped_missing", table=table)
            continue

        rows = await dump_table(engine, table)
        data = await run_blocking(encode_rows, table, rows)
        await run_blocking(writer.write_table, table, data)
        exported.append(table)

        logger.debug("table_dumped", table=table, rows=len(rows))

    logger.info("database_dumped", tables=len(exported))
    return exported
