# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation so an export or
import always runs against the settings it started with.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Callable, List, Tuple

from sitesnap.registry import AUTH_TABLE, TableRegistry, check_order, default_registry


class EngineBackend(str, Enum):
    """Relational engine holding the website dataset."""

    SQLITE = "sqlite"
    MYSQL = "mysql"
    POSTGRES = "postgres"


class Environment(str, Enum):
    """Deployment environment the snapshot engine runs in."""

    LOCAL = "local"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


def infer_engine(url: str) -> EngineBackend | None:
    """Best-effort engine inference from a database URL scheme."""
    lower = url.lower()
    if lower.startswith(("sqlite:", "sqlite+aiosqlite:")):
        return EngineBackend.SQLITE
    if lower.startswith(("mysql:", "mysql+aiomysql:", "mariadb:")):
        return EngineBackend.MYSQL
    if lower.startswith(("postgres:", "postgresql:", "postgresql+asyncpg:")):
        return EngineBackend.POSTGRES
    return None


def _validate_cron_time(time_str: str) -> bool:
    """Validate HH:MM time format."""
    if not time_str:
        return False
    try:
        parts = time_str.split(":")
        if len(parts) != 2:
            return False
        hour, minute = int(parts[0]), int(parts[1])
        return 0 <= hour <= 23 and 0 <= minute <= 59
    except (ValueError, AttributeError):
        return False


@dataclass(frozen=True)
class SnapshotConfig:
    """
    Immutable configuration for website export and import.

    The table registry is part of the configuration, so the Dumper and
    Loader never consult a global table list.
    """

    # Required: connection URL of the website database
    database_url: str

    # Required: root of the public blob tree (uploaded media)
    public_path: Path

    # Scratch tree; export archives land in <storage_path>/temp
    storage_path: Path = field(default_factory=lambda: Path("./storage"))

    # Relational engine (inferred from database_url when None)
    engine: EngineBackend | None = None

    # Deployment environment; drives the protected-table policy
    environment: Environment = Environment.LOCAL

    # Tables never cleared, loaded or resequenced in production
    protected_tables: Tuple[str, ...] = (AUTH_TABLE,)

    # Ordered table catalog
    registry: TableRegistry = field(default_factory=default_registry)

    # Rows per INSERT statement during LOAD
    insert_batch_size: int = 500

    # Export archives older than this are pruned
    export_retention_days: int = 7

    # Scratch entries kept when an import clears the scratch tree
    preserved_scratch_prefixes: Tuple[str, ...] = (".gitignore", "framework/")

    # Daily export cleanup time in HH:MM format (UTC)
    cleanup_schedule: str | None = None

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not self.database_url:
            errors.append("database_url is required")
        elif self.engine is None:
            inferred = infer_engine(self.database_url)
            if inferred is None:
                from sitesnap.errors import explain_unknown_engine_url

                errors.append(explain_unknown_engine_url(self.database_url))
            else:
                object.__setattr__(self, "engine", inferred)

        if not str(self.public_path):
            errors.append("public_path is required")

        if self.insert_batch_size < 1:
            errors.append(f"insert_batch_size must be >= 1, got {self.insert_batch_size}")

        if self.export_retention_days < 0:
            errors.append(
                f"export_retention_days must be >= 0, got {self.export_retention_days}"
            )

        if self.cleanup_schedule and not _validate_cron_time(self.cleanup_schedule):
            errors.append(
                f"Invalid cleanup_schedule format: {self.cleanup_schedule}, expected HH:MM"
            )

        # A registry whose order contradicts its own dependency map is refused
        for violation in check_order(self.registry.import_tables, self.registry.dependencies):
            errors.append(f"registry import order: {violation}")
        for violation in check_order(self.registry.export_tables, self.registry.dependencies):
            errors.append(f"registry export order: {violation}")

        if errors:
            from sitesnap.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    @property
    def export_dir(self) -> Path:
        """Directory that receives export archives."""
        return Path(self.storage_path) / "temp"

    def with_updates(self, **kwargs) -> "SnapshotConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        return replace(self, **kwargs)


def protection_policy(config: SnapshotConfig) -> Callable[[str], bool]:
    """
    Build the protected-table predicate for a configuration.

    Outside production nothing is protected, so a local import restores
    every table including operator accounts.
    """
    protected = frozenset(config.protected_tables)
    is_production = config.environment == Environment.PRODUCTION

    def is_protected(table: str) -> bool:
        return is_production and table in protected

    return is_protected
