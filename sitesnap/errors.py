# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for sitesnap.

These helpers centralize wording for common configuration errors so that
all modules present consistent, actionable messages.
"""


def explain_missing_database_env() -> str:
    """
    Explain that the database URL environment variable is missing.
    """

    return (
        "Database is not configured. "
        "Set SITESNAP_DATABASE_URL (or DATABASE_URL) or pass database_url=... to create_config()."
    )


def explain_missing_public_path_env() -> str:
    """
    Explain that the public blob tree location is missing.
    """

    return (
        "Public storage path is not configured. "
        "Set SITESNAP_PUBLIC_PATH to the directory serving uploaded media, "
        "or pass public_path=... to create_config()."
    )


def explain_invalid_retention_days_env(value: str | None) -> str:
    """
    Explain that SITESNAP_RETENTION_DAYS is invalid.
    """

    return (
        f"Invalid SITESNAP_RETENTION_DAYS value: {value!r}. "
        "It must be a non-negative integer number of days."
    )


def explain_invalid_batch_size_env(value: str | None) -> str:
    """
    Explain that SITESNAP_INSERT_BATCH_SIZE is invalid.
    """

    return (
        f"Invalid SITESNAP_INSERT_BATCH_SIZE value: {value!r}. "
        "It must be a positive integer number of rows."
    )


def explain_invalid_engine_env(value: str | None) -> str:
    """
    Explain that the engine backend env is invalid.
    """

    return (
        f"Invalid SITESNAP_ENGINE value: {value!r}. "
        "Expected 'sqlite', 'mysql' or 'postgres', or leave unset to infer it from the database URL."
    )


def explain_unknown_engine_url(url: str) -> str:
    """
    Explain that the engine could not be inferred from a database URL.
    """

    return (
        f"Cannot infer the database engine from URL scheme of {url.split(':', 1)[0]!r}. "
        "Use a sqlite://, mysql:// or postgresql:// URL, or set SITESNAP_ENGINE explicitly."
    )
