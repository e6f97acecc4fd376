# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap Archive Codec - Zip container layout.

A snapshot archive is a single zip file with three partitions:

    export-metadata.json       required, JSON object
    database/<table>.json      zero or more table dumps
    files/<relative-path>      zero or more public blob files

The metadata entry must be present and parseable before any other
partition is trusted.
"""

import asyncio
import json
import zipfile
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path, PurePosixPath
from typing import IO, Any, Callable, Iterator, List, Set, Tuple, TypedDict, TypeVar

import structlog

from sitesnap.exceptions import ArchiveIOError, InvalidArchiveError

logger = structlog.get_logger()

METADATA_NAME = "export-metadata.json"
DATABASE_PREFIX = "database/"
FILES_PREFIX = "files/"

# Compression, extraction and tree walks are CPU- or disk-bound. One worker
# keeps them in the order the operation issues them.
_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sitesnap-archive")

T = TypeVar("T")


class ExportMetadata(TypedDict):
    """Metadata record written once per archive."""

    export_date: str
    engine_version: str
    database_name: str
    tables_exported: List[str]
    files_count: int


async def run_blocking(func: Callable[..., T], *args: Any) -> T:
    """Run a blocking archive or filesystem call without stalling the event loop."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_executor, func, *args)


def table_entry_name(table: str) -> str:
    return f"{DATABASE_PREFIX}{table}.json"


def is_safe_relative_path(path: str) -> bool:
    """
    Check that an archive path stays inside the directory it is extracted to.

    Absolute paths, drive letters, backslashes and '..' segments are unsafe.
    """
    if not path or path.startswith("/") or "\\" in path:
        return False
    parts = PurePosixPath(path).parts
    if parts and parts[0].endswith(":"):
        return False
    return ".." not in parts


class ArchiveWriter:
    """Write-side of the codec. Entries are deflated."""

    def __init__(self, path: Path):
        self.path = Path(path)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._zip = zipfile.ZipFile(self.path, "w", zipfile.ZIP_DEFLATED)
        except OSError as e:
            raise ArchiveIOError(
                f"Cannot create archive: {e}",
                details={"path": str(self.path)},
            )

    def __enter__(self) -> "ArchiveWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def write_table(self, table: str, data: bytes) -> None:
        self._writestr(table_entry_name(table), data)

    def write_file(self, relative_path: str, source: Path) -> None:
        """Copy one blob into files/. zipfile streams it from disk in chunks."""
        try:
            self._zip.write(source, arcname=f"{FILES_PREFIX}{relative_path}")
        except OSError as e:
            raise ArchiveIOError(
                f"Cannot add file to archive: {e}",
                details={"path": str(source)},
            )

    def write_metadata(self, metadata: ExportMetadata) -> None:
        data = json.dumps(metadata, indent=4, ensure_ascii=False).encode("utf-8")
        self._writestr(METADATA_NAME, data)

    def close(self) -> None:
        try:
            self._zip.close()
        except OSError as e:
            raise ArchiveIOError(
                f"Cannot finalize archive: {e}",
                details={"path": str(self.path)},
            )

    def _writestr(self, name: str, data: bytes) -> None:
        try:
            self._zip.writestr(name, data)
        except OSError as e:
            raise ArchiveIOError(
                f"Cannot write archive entry: {e}",
                details={"path": str(self.path), "entry": name},
            )


class ArchiveReader:
    """Read-side of the codec. Never modifies the archive."""

    def __init__(self, path: Path):
        self.path = Path(path)
        if not self.path.is_file():
            raise ArchiveIOError(
                f"File does not exist: {self.path}",
                details={"path": str(self.path)},
            )
        try:
            self._zip = zipfile.ZipFile(self.path, "r")
        except (zipfile.BadZipFile, OSError) as e:
            raise ArchiveIOError(
                f"Cannot open ZIP file: {e}",
                details={"path": str(self.path)},
            )
        self._names = self._zip.namelist()

    def __enter__(self) -> "ArchiveReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._zip.close()

    @property
    def names(self) -> List[str]:
        return list(self._names)

    def has_metadata(self) -> bool:
        return METADATA_NAME in self._names

    def has_table_dumps(self) -> bool:
        return any(
            name.startswith(DATABASE_PREFIX) and name != DATABASE_PREFIX
            for name in self._names
        )

    def table_names(self) -> Set[str]:
        """Tables that have a dump in this archive."""
        tables = set()
        for name in self._names:
            if name.startswith(DATABASE_PREFIX) and name.endswith(".json"):
                tables.add(name[len(DATABASE_PREFIX):-len(".json")])
        return tables

    def read_metadata(self) -> ExportMetadata:
        """
        Read and parse the metadata record.

        Raises:
            InvalidArchiveError: If the entry is missing or not a JSON object
        """
        if not self.has_metadata():
            raise InvalidArchiveError("Invalid export file: missing metadata")

        raw = self._read(METADATA_NAME)
        try:
            metadata = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise InvalidArchiveError(
                f"Invalid export file: unparseable metadata: {e}",
                details={"path": str(self.path)},
            )
        if not isinstance(metadata, dict):
            raise InvalidArchiveError(
                "Invalid export file: metadata is not an object",
                details={"path": str(self.path)},
            )
        return metadata

    def read_table(self, table: str) -> bytes | None:
        """Raw dump of one table, or None when the archive has none."""
        name = table_entry_name(table)
        if name not in self._names:
            return None
        return self._read(name)

    def file_entries(self) -> Iterator[Tuple[zipfile.ZipInfo, str]]:
        """
        Yield (info, relative_path) for every blob entry.

        Directory markers are skipped.
        """
        for info in self._zip.infolist():
            if not info.filename.startswith(FILES_PREFIX) or info.is_dir():
                continue
            relative = info.filename[len(FILES_PREFIX):]
            if relative:
                yield info, relative

    def open_entry(self, info: zipfile.ZipInfo) -> IO[bytes]:
        try:
            return self._zip.open(info, "r")
        except (zipfile.BadZipFile, OSError) as e:
            raise ArchiveIOError(
                f"Cannot read archive entry: {e}",
                details={"path": str(self.path), "entry": info.filename},
            )

    def unsafe_paths(self) -> List[str]:
        return [
            relative for _, relative in self.file_entries()
            if not is_safe_relative_path(relative)
        ]

    def structural_errors(self) -> List[str]:
        """
        Every structural problem of the archive, in a stable order.

        An empty list means the archive can be imported.
        """
        errors: List[str] = []

        if not self.has_metadata():
            errors.append("Invalid export file: missing metadata")
        else:
            try:
                self.read_metadata()
            except InvalidArchiveError as e:
                errors.append(e.message)

        if not self.has_table_dumps():
            errors.append("Invalid export file: missing database files")

        for relative in self.unsafe_paths():
            errors.append(f"Invalid export file: unsafe file path {relative!r}")

        return errors

    def _read(self, name: str) -> bytes:
        try:
            return self._zip.read(name)
        except (zipfile.BadZipFile, OSError) as e:
            raise ArchiveIOError(
                f"Cannot read archive entry: {e}",
                details={"path": str(self.path), "entry": name},
            )
