# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
EduVault Exceptions - Custom exceptions for the eduvault package.
"""


class EduVaultError(Exception):
    """Base exception for all EduVault errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(EduVaultError):
    """Raised when configuration is invalid."""

    pass


class ValidationError(EduVaultError):
    """Raised when an artifact envelope is malformed or incomplete."""

    pass


class NotFoundError(EduVaultError):
    """Raised when a named artifact is absent from every candidate location."""

    pass


class ArtifactIOError(EduVaultError):
    """Raised on filesystem, compression, or decompression failures."""

    pass


class ApplyError(EduVaultError):
    """Raised when restored data cannot be applied to the live system."""

    pass


class SnapshotSourceError(EduVaultError):
    """Raised when the snapshot source cannot produce a snapshot."""

    pass


class RegistryError(EduVaultError):
    """Raised when registry operations fail."""

    pass
