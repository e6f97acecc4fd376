# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap Core - Snapshot orchestrator.

Coordinates the registry, engine adapters, archive codec, dumper, loader
and file synchronizer into the user-facing operations: export, import,
validation, metadata inspection and integrity checking.

Operations never run concurrently with each other; callers serialize them.
"""

import contextlib
from dataclasses import dataclass, field
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict, List, TypedDict

import structlog
from ulid import ULID

from sitesnap import __version__
from sitesnap.archive import ArchiveReader, ArchiveWriter, ExportMetadata, run_blocking
from sitesnap.config import SnapshotConfig, protection_policy
from sitesnap.dumper import dump_database
from sitesnap.engines import engine_session
from sitesnap.exceptions import (
    ArchiveIOError,
    ExportFailedError,
    ImportFailedError,
    InvalidArchiveError,
    SiteSnapError,
)
from sitesnap.files import export_files, import_files
from sitesnap.loader import ImportPhase, load_database

logger = structlog.get_logger()

EXPORT_PREFIX = "website-export-"


@dataclass
class ImportResult:
    """Result of a completed import."""

    tables_imported: List[str]
    records_imported: int
    files_imported: int
    import_date: str
    records_per_table: Dict[str, int] = field(default_factory=dict)
    resequence_failures: Dict[str, str] = field(default_factory=dict)
    source_metadata: Dict[str, Any] | None = None


@dataclass
class ValidationResult:
    """Result of a read-only archive check."""

    valid: bool
    errors: List[str]
    metadata: Dict[str, Any] | None = None


class SnapshotState(TypedDict):
    """Runtime state shared by the operations of one process."""

    export_dir: Path
    phase: ImportPhase
    last_error: str | None
    last_export_path: Path | None
    last_export_at: datetime | None
    last_import_at: datetime | None
    total_exports: int
    total_imports: int


async def initialize_snapshot_state(config: SnapshotConfig) -> SnapshotState:
    """
    Initialize runtime state.

    Creates the export directory so the first export cannot fail on it.
    """
    config.export_dir.mkdir(parents=True, exist_ok=True)

    return SnapshotState(
        export_dir=config.export_dir,
        phase=ImportPhase.IDLE,
        last_error=None,
        last_export_path=None,
        last_export_at=None,
        last_import_at=None,
        total_exports=0,
        total_imports=0,
    )


def export_path_for(config: SnapshotConfig, when: datetime, operation_id: str) -> Path:
    return config.export_dir / f"{EXPORT_PREFIX}{when:%Y-%m-%d_%H-%M-%S}-{operation_id}.zip"


async def export_website(config: SnapshotConfig, state: SnapshotState) -> Path:
    """
    Export the whole website into a new archive.

    Dumps every registry table present in the live schema, copies the
    public blob tree and writes the metadata record last. The database is
    only read.

    Args:
        config: sitesnap configuration
        state: Runtime state

    Returns:
        Path of the finished archive

    Raises:
        InvalidArchiveError, ArchiveIOError, SerializationError, EngineError:
            Propagated unchanged
        ExportFailedError: Any other failure
    """
    operation_id = str(ULID())
    started_at = datetime.now(UTC)
    path = export_path_for(config, started_at, operation_id)

    logger.info("export_started", operation_id=operation_id, path=str(path))

    writer: ArchiveWriter | None = None
    try:
        writer = await run_blocking(ArchiveWriter, path)

        async with engine_session(config.engine.value, config.database_url) as engine:
            tables = await dump_database(engine, config.registry, writer)
            database_name = await engine.database_name()

        files_count = await run_blocking(
            export_files, config.public_path, writer, [path]
        )

        await run_blocking(
            writer.write_metadata,
            ExportMetadata(
                export_date=started_at.isoformat(),
                engine_version=__version__,
                database_name=database_name,
                tables_exported=tables,
                files_count=files_count,
            )
        )
        await run_blocking(writer.close)

    except Exception as e:
        if writer is not None:
            # The archive is discarded; a second close error adds nothing
            with contextlib.suppress(SiteSnapError):
                writer.close()
        path.unlink(missing_ok=True)

        state["last_error"] = str(e)
        logger.error("export_failed", operation_id=operation_id, error=str(e))

        if isinstance(e, SiteSnapError):
            raise
        raise ExportFailedError(
            f"Export failed: {e}",
            details={"operation_id": operation_id},
        ) from e

    duration = (datetime.now(UTC) - started_at).total_seconds()
    state["last_export_path"] = path
    state["last_export_at"] = datetime.now(UTC)
    state["total_exports"] += 1
    state["last_error"] = None

    logger.info(
        "export_completed",
        operation_id=operation_id,
        path=str(path),
        tables=len(tables),
        files=files_count,
        duration_seconds=duration,
    )
    return path


def _metadata_or_none(reader: ArchiveReader) -> Dict[str, Any] | None:
    if not reader.has_metadata():
        return None
    try:
        return dict(reader.read_metadata())
    except InvalidArchiveError:
        return None


def validate_import_file(path: Path | str) -> ValidationResult:
    """
    Check an archive without importing it.

    Never raises for a bad archive and never writes anything.
    """
    path = Path(path)
    if not path.is_file():
        return ValidationResult(valid=False, errors=["File does not exist"])

    try:
        reader = ArchiveReader(path)
    except ArchiveIOError:
        return ValidationResult(valid=False, errors=["Cannot open ZIP file"])

    with reader:
        errors = reader.structural_errors()
        metadata = _metadata_or_none(reader)

    logger.debug("archive_validated", path=str(path), valid=not errors, errors=errors)
    return ValidationResult(valid=not errors, errors=errors, metadata=metadata)


def get_import_metadata(path: Path | str) -> Dict[str, Any] | None:
    """
    Metadata of an archive, or None when the file is missing, is not a zip,
    or holds no parseable metadata.
    """
    path = Path(path)
    if not path.is_file():
        return None
    try:
        reader = ArchiveReader(path)
    except ArchiveIOError:
        return None
    with reader:
        return _metadata_or_none(reader)


async def import_website(
    config: SnapshotConfig,
    state: SnapshotState,
    path: Path | str,
) -> ImportResult:
    """
    Replace the live website with the contents of an archive.

    Runs VALIDATING, CLEARING, LOADING, RESEQUENCING and SYNCING_FILES in
    order. There is no rollback: a failure after CLEARING leaves a
    partially populated dataset.

    Args:
        config: sitesnap configuration
        state: Runtime state (phase is updated as the import progresses)
        path: Archive to import

    Returns:
        ImportResult with counts

    Raises:
        ImportFailedError: On any failure. details["phase"] names the phase
            that failed and the original error is chained as __cause__.
    """
    path = Path(path)

    def enter(phase: ImportPhase) -> None:
        state["phase"] = phase

    logger.info("import_started", path=str(path))
    enter(ImportPhase.VALIDATING)

    try:
        reader = await run_blocking(ArchiveReader, path)
        with reader:
            errors = await run_blocking(reader.structural_errors)
            if errors:
                raise InvalidArchiveError(errors[0], details={"errors": errors})
            source_metadata = _metadata_or_none(reader)

            async with engine_session(config.engine.value, config.database_url) as engine:
                loaded = await load_database(
                    engine,
                    reader,
                    config.registry,
                    is_protected=protection_policy(config),
                    batch_size=config.insert_batch_size,
                    on_phase=enter,
                )

            enter(ImportPhase.SYNCING_FILES)
            files_imported = await import_files(
                reader,
                config.public_path,
                config.storage_path,
                config.preserved_scratch_prefixes,
                keep=[path],
            )

    except Exception as e:
        failed_phase = state["phase"]
        enter(ImportPhase.FAILED)
        state["last_error"] = str(e)

        logger.error(
            "import_failed",
            path=str(path),
            phase=failed_phase.value,
            error=str(e),
            exc_info=True,
        )
        raise ImportFailedError(
            f"Import failed: {e}",
            details={"phase": failed_phase.value, "path": str(path)},
        ) from e

    enter(ImportPhase.DONE)
    imported_at = datetime.now(UTC)
    state["last_import_at"] = imported_at
    state["total_imports"] += 1
    state["last_error"] = None

    result = ImportResult(
        tables_imported=loaded.tables_imported,
        records_imported=loaded.records_imported,
        files_imported=files_imported,
        import_date=imported_at.isoformat(),
        records_per_table=loaded.records_per_table,
        resequence_failures=loaded.resequence_failures,
        source_metadata=source_metadata,
    )

    logger.info(
        "import_completed",
        path=str(path),
        tables=len(result.tables_imported),
        records=result.records_imported,
        files=result.files_imported,
    )
    return result


def get_export_tables(config: SnapshotConfig) -> List[str]:
    return list(config.registry.export_tables)


def get_import_tables(config: SnapshotConfig) -> List[str]:
    return list(config.registry.import_tables)


async def verify_integrity(config: SnapshotConfig) -> Dict[str, List[str]]:
    """
    Report foreign-key violations in the live database.

    Read-only. An empty dict means every reference resolves.
    """
    async with engine_session(config.engine.value, config.database_url) as engine:
        violations = await engine.foreign_key_violations()

    if violations:
        logger.warning(
            "integrity_violations_found",
            tables=sorted(violations),
            count=sum(len(v) for v in violations.values()),
        )
    else:
        logger.info("integrity_verified")
    return violations
