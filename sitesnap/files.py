# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap File Synchronizer - Public blob tree to and from the archive.

Relative paths are never rewritten, so a file stored at uploads/a.png is
restored at uploads/a.png. Import replaces the tree wholesale: everything
is deleted first, then every archived file is written.
"""

import os
from pathlib import Path
from typing import Iterable, List, Tuple

import aiofiles
import structlog

from sitesnap.archive import ArchiveReader, ArchiveWriter, run_blocking
from sitesnap.exceptions import ArchiveIOError, InvalidArchiveError

logger = structlog.get_logger()

CHUNK_SIZE = 1024 * 1024


def list_tree(root: Path) -> List[Tuple[str, Path]]:
    """
    Every regular file under root as (relative POSIX path, absolute path),
    sorted by relative path.
    """
    root = Path(root)
    if not root.is_dir():
        return []

    found: List[Tuple[str, Path]] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in filenames:
            path = Path(dirpath) / name
            if path.is_file():
                found.append((path.relative_to(root).as_posix(), path))
    found.sort(key=lambda item: item[0])
    return found


def export_files(
    public_path: Path,
    writer: ArchiveWriter,
    exclude: Iterable[Path] = (),
) -> int:
    """
    Copy the public blob tree into the archive's files/ partition.

    Args:
        public_path: Root of the public blob tree
        writer: Open archive
        exclude: Absolute paths never copied (the archive itself)

    Returns:
        Number of files written
    """
    excluded = {Path(p).resolve() for p in exclude}
    count = 0
    for relative, path in list_tree(public_path):
        if path.resolve() in excluded:
            continue
        writer.write_file(relative, path)
        count += 1

    logger.info("files_exported", count=count, root=str(public_path))
    return count


def _is_preserved(relative: str, preserve_prefixes: Iterable[str]) -> bool:
    return any(relative.startswith(prefix) for prefix in preserve_prefixes)


def clear_tree(
    root: Path,
    preserve_prefixes: Iterable[str] = (),
    keep: Iterable[Path] = (),
) -> int:
    """
    Delete every file under root, then every directory left empty.

    Args:
        root: Tree to clear (the root itself is kept)
        preserve_prefixes: Relative paths starting with one of these survive
        keep: Absolute paths that survive (e.g. the archive being imported)

    Returns:
        Number of files deleted
    """
    root = Path(root)
    if not root.is_dir():
        return 0

    prefixes = tuple(preserve_prefixes)
    kept = {Path(p).resolve() for p in keep}
    deleted = 0

    try:
        for relative, path in list_tree(root):
            if _is_preserved(relative, prefixes) or path.resolve() in kept:
                continue
            path.unlink()
            deleted += 1

        for dirpath, _dirnames, _filenames in os.walk(root, topdown=False):
            directory = Path(dirpath)
            if directory == root:
                continue
            relative = directory.relative_to(root).as_posix() + "/"
            if _is_preserved(relative, prefixes):
                continue
            if not any(directory.iterdir()):
                directory.rmdir()
    except OSError as e:
        raise ArchiveIOError(
            f"Failed to clear directory: {e}",
            details={"root": str(root)},
        )

    logger.debug("tree_cleared", root=str(root), deleted=deleted)
    return deleted


async def _write_entry(reader: ArchiveReader, info, destination: Path) -> None:
    """Stream one archive entry to disk: temp file, then rename."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    temp_path = destination.with_name(destination.name + ".sitesnap-tmp")

    with reader.open_entry(info) as source:
        async with aiofiles.open(temp_path, "wb") as f:
            while True:
                chunk = await run_blocking(source.read, CHUNK_SIZE)
                if not chunk:
                    break
                await f.write(chunk)

    os.replace(temp_path, destination)


async def import_files(
    reader: ArchiveReader,
    public_path: Path,
    storage_path: Path,
    preserve_prefixes: Iterable[str] = (".gitignore", "framework/"),
    keep: Iterable[Path] = (),
) -> int:
    """
    Replace the public blob tree with the archive's files/ partition.

    The scratch tree is cleared as well, except preserved prefixes and the
    paths in `keep`.

    Returns:
        Number of files written

    Raises:
        InvalidArchiveError: If an entry would escape the public tree
        ArchiveIOError: If the filesystem cannot be written
    """
    public_path = Path(public_path)

    unsafe = reader.unsafe_paths()
    if unsafe:
        raise InvalidArchiveError(
            "Invalid export file: unsafe file paths",
            details={"paths": unsafe},
        )

    keep = [Path(p) for p in keep]
    removed_public = await run_blocking(clear_tree, public_path, (), keep)
    removed_scratch = await run_blocking(clear_tree, storage_path, preserve_prefixes, keep)
    logger.info(
        "file_trees_cleared",
        public_removed=removed_public,
        scratch_removed=removed_scratch,
    )

    public_path.mkdir(parents=True, exist_ok=True)
    count = 0

    for info, relative in reader.file_entries():
        destination = public_path / relative
        try:
            await _write_entry(reader, info, destination)
        except OSError as e:
            raise ArchiveIOError(
                f"Failed to write file: {e}",
                details={"path": relative},
            )
        count += 1

    logger.info("files_imported", count=count, root=str(public_path))
    return count
