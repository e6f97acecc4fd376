# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap Database Loader - Replace the live dataset with archived rows.

Phases run strictly in sequence:

    VALIDATE     archive has metadata and at least one table dump
    CLEAR        empty every table, dependents first (import order reversed)
    LOAD         insert archived rows, referenced tables first
    RESEQUENCE   point every id counter one past the largest imported id

Foreign-key enforcement is suspended for CLEAR and LOAD together and is
re-enabled whatever happens. There is no rollback: a failure during LOAD
leaves the tables before it populated and the rest empty.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Sequence, Tuple

import structlog

from sitesnap.archive import ArchiveReader, run_blocking
from sitesnap.engines import Engine, Row
from sitesnap.exceptions import EngineError, InvalidArchiveError, SiteSnapError
from sitesnap.registry import TableRegistry

logger = structlog.get_logger()

ProtectedPredicate = Callable[[str], bool]
PhaseListener = Callable[["ImportPhase"], None]


class ImportPhase(str, Enum):
    """Import state machine. FAILED and DONE are terminal."""

    IDLE = "idle"
    VALIDATING = "validating"
    CLEARING = "clearing"
    LOADING = "loading"
    RESEQUENCING = "resequencing"
    SYNCING_FILES = "syncing_files"
    DONE = "done"
    FAILED = "failed"


@dataclass
class LoadResult:
    """Outcome of the database half of an import."""

    tables_cleared: List[str] = field(default_factory=list)
    tables_imported: List[str] = field(default_factory=list)
    records_imported: int = 0
    records_per_table: Dict[str, int] = field(default_factory=dict)
    tables_resequenced: List[str] = field(default_factory=list)
    resequence_failures: Dict[str, str] = field(default_factory=dict)


def _never_protected(table: str) -> bool:
    return False


def decode_rows(table: str, data: bytes) -> List[Row]:
    """
    Decode one table dump.

    Raises:
        InvalidArchiveError: If the dump is not a JSON array of objects
    """
    try:
        rows = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidArchiveError(
            f"Invalid JSON data for table: {table}",
            details={"table": table, "error": str(e)},
        )

    if not isinstance(rows, list):
        raise InvalidArchiveError(
            f"Invalid JSON data for table: {table}",
            details={"table": table, "error": "top-level value is not an array"},
        )

    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            raise InvalidArchiveError(
                f"Invalid JSON data for table: {table}",
                details={"table": table, "error": f"element {index} is not an object"},
            )

    return rows


def group_rows(rows: Sequence[Row]) -> List[Tuple[Tuple[str, ...], List[Tuple[Any, ...]]]]:
    """
    Group rows by identical column sets, in order of first appearance.

    Values are passed on unchanged; each engine decides how nested
    structures are stored.

    Returns:
        List of (columns, value tuples)
    """
    groups: Dict[Tuple[str, ...], List[Tuple[Any, ...]]] = {}
    for row in rows:
        key = tuple(sorted(row))
        groups.setdefault(key, []).append(tuple(row[c] for c in key))
    return list(groups.items())


def batched(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def validate_archive(reader: ArchiveReader) -> None:
    """
    VALIDATE phase.

    Raises:
        InvalidArchiveError: If metadata or table dumps are missing
    """
    if not reader.has_metadata():
        raise InvalidArchiveError(
            "Invalid export file: missing metadata",
            details={"path": str(reader.path)},
        )
    if not reader.has_table_dumps():
        raise InvalidArchiveError(
            "Invalid export file: missing database files",
            details={"path": str(reader.path)},
        )


async def clear_tables(
    engine: Engine,
    tables: Sequence[str],
    is_protected: ProtectedPredicate = _never_protected,
) -> List[str]:
    """
    CLEAR phase. `tables` is in import order; dependents are cleared first.

    Returns:
        Tables that were emptied
    """
    cleared: List[str] = []

    for table in reversed(tables):
        if is_protected(table):
            logger.info("table_protected_skipped", table=table, phase="clear")
            continue
        if not await engine.table_exists(table):
            continue

        try:
            await engine.delete_all(table)
            await engine.commit()
        except SiteSnapError:
            raise
        except Exception as e:
            raise EngineError(
                f"Failed to clear table {table}: {e}",
                details={"table": table},
            )

        cleared.append(table)
        logger.debug("table_cleared", table=table)

    return cleared


async def load_table(
    engine: Engine,
    table: str,
    rows: Sequence[Row],
    batch_size: int,
) -> int:
    """Insert rows in batches of identical column sets, then commit."""
    inserted = 0
    try:
        for columns, values in group_rows(rows):
            for batch in batched(values, batch_size):
                await engine.insert_rows(table, columns, batch)
                inserted += len(batch)
        await engine.commit()
    except SiteSnapError:
        raise
    except Exception as e:
        raise EngineError(
            f"Failed to load table {table}: {e}",
            details={"table": table, "rows_inserted": inserted},
        )
    return inserted


async def load_tables(
    engine: Engine,
    reader: ArchiveReader,
    tables: Sequence[str],
    is_protected: ProtectedPredicate = _never_protected,
    batch_size: int = 500,
) -> Dict[str, int]:
    """
    LOAD phase, in import order.

    A table without a dump in the archive stays empty.

    Returns:
        Inserted row count per loaded table
    """
    loaded: Dict[str, int] = {}

    for table in tables:
        if is_protected(table):
            logger.info("table_protected_skipped", table=table, phase="load")
            continue

        data = await run_blocking(reader.read_table, table)
        if data is None:
            continue

        if not await engine.table_exists(table):
            logger.warning("table_missing_in_schema", table=table)
            continue

        rows = await run_blocking(decode_rows, table, data)
        loaded[table] = await load_table(engine, table, rows, batch_size)

        logger.info("table_loaded", table=table, rows=loaded[table])

    return loaded


async def resequence_tables(
    engine: Engine,
    tables: Sequence[str],
    is_protected: ProtectedPredicate = _never_protected,
) -> Tuple[List[str], Dict[str, str]]:
    """
    RESEQUENCE phase.

    Failures are per table: a table without an id column or sequence is
    logged and skipped.

    Returns:
        (resequenced tables, {table: error} for skipped ones)
    """
    done: List[str] = []
    failures: Dict[str, str] = {}

    for table in tables:
        if is_protected(table):
            continue
        try:
            if not await engine.table_exists(table):
                continue
            max_id = await engine.max_id(table)
            await engine.reset_auto_increment(table, (max_id or 0) + 1)
            done.append(table)
        except Exception as e:
            failures[table] = str(e)
            logger.warning("resequence_failed", table=table, error=str(e))

    return done, failures


async def load_database(
    engine: Engine,
    reader: ArchiveReader,
    registry: TableRegistry,
    is_protected: ProtectedPredicate = _never_protected,
    batch_size: int = 500,
    on_phase: PhaseListener | None = None,
) -> LoadResult:
    """
    Run VALIDATE, CLEAR, LOAD and RESEQUENCE against one engine.

    Args:
        engine: Connected engine adapter
        reader: Open archive
        registry: Table catalog (import list is used)
        is_protected: Tables for which this returns True are never touched
        batch_size: Rows per INSERT
        on_phase: Called on every phase transition

    Raises:
        InvalidArchiveError: If the archive is structurally invalid or a
            dump cannot be decoded
        EngineError: If a driver call fails
    """

    def enter(phase: ImportPhase) -> None:
        logger.debug("import_phase", phase=phase.value)
        if on_phase is not None:
            on_phase(phase)

    tables = registry.import_tables
    result = LoadResult()

    enter(ImportPhase.VALIDATING)
    validate_archive(reader)

    await engine.disable_foreign_keys()
    try:
        enter(ImportPhase.CLEARING)
        result.tables_cleared = await clear_tables(engine, tables, is_protected)

        enter(ImportPhase.LOADING)
        result.records_per_table = await load_tables(
            engine, reader, tables, is_protected, batch_size
        )
    finally:
        await engine.enable_foreign_keys()
        logger.debug("foreign_keys_restored")

    result.tables_imported = list(result.records_per_table)
    result.records_imported = sum(result.records_per_table.values())

    enter(ImportPhase.RESEQUENCING)
    result.tables_resequenced, result.resequence_failures = await resequence_tables(
        engine, tables, is_protected
    )

    return result
