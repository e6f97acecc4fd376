# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap command line.

Usage:
    sitesnap export
    sitesnap import PATH --yes
    sitesnap validate PATH
    sitesnap metadata PATH
    sitesnap tables [--import]
    sitesnap exports
    sitesnap prune [--keep-days N] [--dry-run]
    sitesnap verify

Configuration comes from the SITESNAP_* environment variables; the global
--database-url, --public-path and --storage-path options override them.
Results are printed as JSON on stdout, errors on stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict
from typing import Any, Dict, List

import structlog

from sitesnap import __version__
from sitesnap.config import SnapshotConfig
from sitesnap.core import (
    export_website,
    get_export_tables,
    get_import_metadata,
    get_import_tables,
    import_website,
    initialize_snapshot_state,
    validate_import_file,
    verify_integrity,
)
from sitesnap.env import create_config_from_env
from sitesnap.exceptions import SiteSnapError
from sitesnap.exports import list_exports, prune_old_exports


def configure_logging(verbose: bool) -> None:
    """Send structlog output to stderr so stdout stays machine-readable."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if verbose else logging.INFO
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _load_config(args: argparse.Namespace) -> SnapshotConfig:
    environ: Dict[str, str] = dict(os.environ)
    if args.database_url:
        environ["SITESNAP_DATABASE_URL"] = args.database_url
    if args.public_path:
        environ["SITESNAP_PUBLIC_PATH"] = args.public_path
    if args.storage_path:
        environ["SITESNAP_STORAGE_PATH"] = args.storage_path
    return create_config_from_env(environ)


def cmd_export(args: argparse.Namespace) -> int:
    """Create a new export archive and print its path."""
    config = _load_config(args)

    async def run():
        state = await initialize_snapshot_state(config)
        return await export_website(config, state)

    path = asyncio.run(run())
    _print_json({"path": str(path)})
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    """Replace the website with an archive. Requires --yes."""
    if not args.yes:
        print(
            "Import replaces every table and public file. Re-run with --yes to confirm.",
            file=sys.stderr,
        )
        return 1

    config = _load_config(args)

    async def run():
        state = await initialize_snapshot_state(config)
        return await import_website(config, state, args.path)

    result = asyncio.run(run())
    _print_json(asdict(result))
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    result = validate_import_file(args.path)
    _print_json(asdict(result))
    return 0 if result.valid else 1


def cmd_metadata(args: argparse.Namespace) -> int:
    metadata = get_import_metadata(args.path)
    if metadata is None:
        print(f"No readable metadata in {args.path}", file=sys.stderr)
        return 1
    _print_json(metadata)
    return 0


def cmd_tables(args: argparse.Namespace) -> int:
    config = _load_config(args)
    tables: List[str] = get_import_tables(config) if args.import_order else get_export_tables(config)
    _print_json(tables)
    return 0


def cmd_exports(args: argparse.Namespace) -> int:
    config = _load_config(args)
    _print_json(list_exports(config))
    return 0


def cmd_prune(args: argparse.Namespace) -> int:
    config = _load_config(args)
    deleted = prune_old_exports(config, keep_days=args.keep_days, dry_run=args.dry_run)
    _print_json({"deleted": deleted, "dry_run": args.dry_run})
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    """Print foreign-key violations; exit 1 when there are any."""
    config = _load_config(args)
    violations = asyncio.run(verify_integrity(config))
    _print_json(violations)
    return 1 if violations else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sitesnap",
        description="Export and import complete website snapshots",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--database-url", help="Overrides SITESNAP_DATABASE_URL")
    parser.add_argument("--public-path", help="Overrides SITESNAP_PUBLIC_PATH")
    parser.add_argument("--storage-path", help="Overrides SITESNAP_STORAGE_PATH")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("export", help="Export database and public files to a zip archive")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("import", help="Replace the website with an archive")
    p.add_argument("path", help="Archive to import")
    p.add_argument("--yes", action="store_true", help="Confirm the destructive import")
    p.set_defaults(func=cmd_import)

    p = sub.add_parser("validate", help="Check an archive without importing it")
    p.add_argument("path")
    p.set_defaults(func=cmd_validate)

    p = sub.add_parser("metadata", help="Print the metadata record of an archive")
    p.add_argument("path")
    p.set_defaults(func=cmd_metadata)

    p = sub.add_parser("tables", help="List registry tables in export order")
    p.add_argument("--import", dest="import_order", action="store_true", help="List import order instead")
    p.set_defaults(func=cmd_tables)

    p = sub.add_parser("exports", help="List export archives, newest first")
    p.set_defaults(func=cmd_exports)

    p = sub.add_parser("prune", help="Delete old export archives")
    p.add_argument("--keep-days", type=int, default=None, help="Default: SITESNAP_RETENTION_DAYS")
    p.add_argument("--dry-run", action="store_true")
    p.set_defaults(func=cmd_prune)

    p = sub.add_parser("verify", help="Report foreign-key violations")
    p.set_defaults(func=cmd_verify)

    return parser


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        return args.func(args)
    except (SiteSnapError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
