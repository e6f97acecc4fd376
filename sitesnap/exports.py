# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap Export Retention - Listing and pruning export archives.

Only files matching website-export-*.zip in the export directory are
considered; anything else in the scratch tree is left alone.
"""

from datetime import datetime, timedelta, UTC
from typing import List, Tuple, TypedDict

import structlog

from sitesnap.config import SnapshotConfig
from sitesnap.exceptions import ArchiveIOError

logger = structlog.get_logger()

EXPORT_GLOB = "website-export-*.zip"


class ExportInfo(TypedDict):
    """One export archive on disk."""

    filename: str
    path: str
    size: int
    modified: str  # ISO 8601


def list_exports(config: SnapshotConfig) -> List[ExportInfo]:
    """
    List export archives, newest first.
    """
    export_dir = config.export_dir
    if not export_dir.is_dir():
        return []

    entries: List[Tuple[float, ExportInfo]] = []
    for archive in export_dir.glob(EXPORT_GLOB):
        if not archive.is_file():
            continue
        stat = archive.stat()
        entries.append((
            stat.st_mtime,
            ExportInfo(
                filename=archive.name,
                path=str(archive),
                size=stat.st_size,
                modified=datetime.fromtimestamp(stat.st_mtime, UTC).isoformat(),
            ),
        ))

    entries.sort(key=lambda item: item[0], reverse=True)
    return [info for _, info in entries]


def prune_old_exports(
    config: SnapshotConfig,
    keep_days: int | None = None,
    dry_run: bool = False,
) -> int:
    """
    Delete export archives older than keep_days.

    Args:
        config: sitesnap configuration
        keep_days: Maximum age in days (default: config.export_retention_days)
        dry_run: If True, only report what would be deleted

    Returns:
        Number of archives deleted (or that would be deleted)
    """
    days = config.export_retention_days if keep_days is None else keep_days
    if days < 0:
        raise ValueError(f"keep_days must be >= 0, got {days}")

    cutoff = datetime.now(UTC) - timedelta(days=days)
    export_dir = config.export_dir
    if not export_dir.is_dir():
        return 0

    deleted = 0
    for archive in export_dir.glob(EXPORT_GLOB):
        mtime = datetime.fromtimestamp(archive.stat().st_mtime, UTC)
        if mtime >= cutoff:
            continue

        if not dry_run:
            try:
                archive.unlink()
            except OSError as e:
                raise ArchiveIOError(
                    f"Failed to delete export archive: {e}",
                    details={"path": str(archive)},
                )

        deleted += 1
        logger.debug(
            "export_pruned" if not dry_run else "export_would_prune",
            path=str(archive),
            age_days=(datetime.now(UTC) - mtime).days,
        )

    logger.info("exports_pruned", count=deleted, keep_days=days, dry_run=dry_run)
    return deleted
