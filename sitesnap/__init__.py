# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap - Website snapshot export/import engine.

Captures the whole website dataset plus its public media into one portable
zip archive, and restores a website from such an archive by wholesale
replacement. Table order is fixed by a static, dependency-ordered registry
so referential integrity holds on SQLite, MySQL and PostgreSQL alike.
"""

__version__ = "0.1.0"

# Configuration creation (user-facing API)
from sitesnap.builder import create_config

# Core functions
from sitesnap.core import (
    ImportResult,
    ValidationResult,
    export_website,
    get_export_tables,
    get_import_metadata,
    get_import_tables,
    import_website,
    initialize_snapshot_state,
    validate_import_file,
    verify_integrity,
)

# Environment-based configuration
from sitesnap.env import create_config_from_env

# Export retention
from sitesnap.exports import list_exports, prune_old_exports

__all__ = [
    # Version
    "__version__",
    # Configuration
    "create_config",
    "create_config_from_env",
    # Core orchestration functions
    "initialize_snapshot_state",
    "export_website",
    "import_website",
    "validate_import_file",
    "get_import_metadata",
    "get_export_tables",
    "get_import_tables",
    "verify_integrity",
    "ImportResult",
    "ValidationResult",
    # Retention
    "list_exports",
    "prune_old_exports",
]
