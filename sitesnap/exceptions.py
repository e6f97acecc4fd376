# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap Exceptions - Custom exceptions for the sitesnap package.
"""


class SiteSnapError(Exception):
    """Base exception for all sitesnap errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(SiteSnapError):
    """Raised when configuration is invalid."""

    pass


class InvalidArchiveError(SiteSnapError):
    """Raised when an archive is structurally invalid or holds undecodable data."""

    pass


class ArchiveIOError(SiteSnapError):
    """Raised when the archive or the file tree cannot be opened, read or written."""

    pass


class SerializationError(SiteSnapError):
    """Raised when a row cannot be encoded during export."""

    pass


class EngineError(SiteSnapError):
    """Raised when a relational engine operation fails."""

    pass


class ExportFailedError(SiteSnapError):
    """Raised when an export fails for a reason outside the archive taxonomy."""

    pass


class ImportFailedError(SiteSnapError):
    """Raised when an import fails in any phase. The cause is chained."""

    pass
