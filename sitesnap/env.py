# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

A small wrapper around create_config() that reads well-known environment
variables, so the CLI and the HTTP integration configure themselves the
same way a deployed website does.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Tuple

from sitesnap.builder import create_config
from sitesnap.config import EngineBackend, Environment, SnapshotConfig
from sitesnap.errors import (
    explain_invalid_batch_size_env,
    explain_invalid_engine_env,
    explain_invalid_retention_days_env,
    explain_missing_database_env,
    explain_missing_public_path_env,
)
from sitesnap.exceptions import ConfigurationError


def _parse_engine(value: str | None) -> EngineBackend | None:
    if not value:
        return None
    try:
        return EngineBackend(value.lower())
    except ValueError as exc:
        raise ConfigurationError(explain_invalid_engine_env(value)) from exc


def _parse_environment(value: str | None) -> Environment:
    if not value:
        return Environment.LOCAL
    try:
        return Environment(value.lower())
    except ValueError as exc:
        raise ConfigurationError(
            f"Invalid APP_ENV value: {value!r}. "
            "Expected 'local', 'testing', 'staging' or 'production'."
        ) from exc


def _parse_retention_days(value: str | None) -> int:
    if not value:
        return 7
    try:
        days = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_retention_days_env(value)) from exc
    if days < 0:
        raise ConfigurationError(explain_invalid_retention_days_env(value))
    return days


def _parse_batch_size(value: str | None) -> int:
    if not value:
        return 500
    try:
        size = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_batch_size_env(value)) from exc
    if size < 1:
        raise ConfigurationError(explain_invalid_batch_size_env(value))
    return size


def _parse_table_list(value: str | None) -> Tuple[str, ...] | None:
    if value is None:
        return None
    return tuple(t.strip() for t in value.split(",") if t.strip())


def create_config_from_env(environ: Mapping[str, str] | None = None) -> SnapshotConfig:
    """
    Create a SnapshotConfig from environment variables.

    Required:
        - SITESNAP_DATABASE_URL (or DATABASE_URL): website database URL
        - SITESNAP_PUBLIC_PATH: root of the public blob tree

    Optional environment variables:
        - SITESNAP_ENGINE: 'sqlite' | 'mysql' | 'postgres' (default: from URL)
        - SITESNAP_STORAGE_PATH: scratch tree (default: ./storage)
        - APP_ENV: 'local' | 'testing' | 'staging' | 'production' (default: local)
        - SITESNAP_PROTECTED_TABLES: comma-separated tables, e.g. "users"
        - SITESNAP_RETENTION_DAYS: non-negative integer (default: 7)
        - SITESNAP_INSERT_BATCH_SIZE: positive integer (default: 500)
        - SITESNAP_CLEANUP_AT: daily export cleanup in HH:MM (UTC)
    """

    env = os.environ if environ is None else environ

    database_url = env.get("SITESNAP_DATABASE_URL") or env.get("DATABASE_URL")
    if not database_url:
        raise ConfigurationError(explain_missing_database_env())

    public_path = env.get("SITESNAP_PUBLIC_PATH")
    if not public_path:
        raise ConfigurationError(explain_missing_public_path_env())

    storage_path_env = env.get("SITESNAP_STORAGE_PATH")
    storage_path = Path(storage_path_env) if storage_path_env else Path("./storage")

    return create_config(
        database_url=database_url,
        public_path=Path(public_path),
        storage_path=storage_path,
        engine=_parse_engine(env.get("SITESNAP_ENGINE")),
        environment=_parse_environment(env.get("APP_ENV")),
        protected_tables=_parse_table_list(env.get("SITESNAP_PROTECTED_TABLES")),
        insert_batch_size=_parse_batch_size(env.get("SITESNAP_INSERT_BATCH_SIZE")),
        export_retention_days=_parse_retention_days(env.get("SITESNAP_RETENTION_DAYS")),
        cleanup_schedule=env.get("SITESNAP_CLEANUP_AT") or None,
    )
