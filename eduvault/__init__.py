# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
EduVault - Backup and restore engine for an educational chat platform.

Captures the platform's collections into self-describing envelope backups
and its media folders into compressed tree backups, keeps a bounded
registry, prunes old backups per kind, restores by filename with
validation before anything live is touched, and runs unattended
periodic backups. Package name: eduvault.
"""

__version__ = "0.1.0"

# Configuration creation (user-facing API)
from eduvault.builder import create_config

# Core engine
from eduvault.core import BackupEngine, BackupResult
from eduvault.restore import RestoreResult
from eduvault.scheduler import BackupScheduler

# Environment-based configuration
from eduvault.env import create_config_from_env

# Snapshot sources and appliers
from eduvault.source import (
    JsonFileApplier,
    JsonFileSnapshotSource,
    RestoreApplier,
    Snapshot,
    SnapshotSource,
)

__all__ = [
    # Version
    "__version__",
    # Configuration creation
    "create_config",
    "create_config_from_env",
    # Engine
    "BackupEngine",
    "BackupResult",
    "RestoreResult",
    "BackupScheduler",
    # Sources
    "Snapshot",
    "SnapshotSource",
    "RestoreApplier",
    "JsonFileSnapshotSource",
    "JsonFileApplier",
]
