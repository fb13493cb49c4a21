# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
EduVault Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation so that a running
scheduler and a concurrent CLI call always see the same settings.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List

from eduvault.errors import explain_unknown_kind
from eduvault.exceptions import ConfigurationError


class ArtifactKind(str, Enum):
    """Who asked for a backup."""

    AUTO = "auto"  # Produced by the scheduler
    MANUAL = "manual"  # Produced on request (CLI, admin action)


class ArtifactStrategy(str, Enum):
    """How a snapshot is turned into an artifact file."""

    TREE = "tree"  # Media directories streamed into one compressed tar
    ENVELOPE = "envelope"  # Collections wrapped in a JSON envelope


def parse_kind(value: "str | ArtifactKind | None") -> ArtifactKind | None:
    """
    Normalize a kind argument.

    Returns None for "all" (or None), meaning both kinds.
    """
    if value is None or isinstance(value, ArtifactKind):
        return value
    lowered = value.lower()
    if lowered == "all":
        return None
    try:
        return ArtifactKind(lowered)
    except ValueError as exc:
        raise ConfigurationError(explain_unknown_kind(value)) from exc


@dataclass(frozen=True)
class EngineConfig:
    """
    Immutable configuration for the backup engine.

    One config describes one backup root. Two engines must never share
    a backup_dir inside the same process.
    """

    # Root backup directory (auto/ and manual/ live underneath)
    backup_dir: Path = field(default_factory=lambda: Path("./backups"))

    # Uniform retention count, applied to every kind without an override
    keep_count: int = 10

    # Per-kind retention overrides
    keep_auto: int | None = None
    keep_manual: int | None = None

    # Maximum number of registry entries
    registry_cap: int = 50

    # Scheduler period
    interval_hours: float = 24

    # Compress envelope artifacts with gzip
    compress_backups: bool = True

    # zstd level for tree artifacts (19 = maximum practical ratio)
    zstd_level: int = 19

    # Default author recorded in envelope metadata
    created_by: str = "system"

    # Media directories captured by tree artifacts
    media_roots: List[Path] = field(default_factory=list)

    # Directory that tree restores are applied onto
    live_root: Path = field(default_factory=lambda: Path("."))

    # Also write a tree artifact on every scheduled cycle
    include_media_in_schedule: bool = False

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if self.keep_count < 1:
            errors.append(f"keep_count must be >= 1, got {self.keep_count}")

        for name in ("keep_auto", "keep_manual"):
            value = getattr(self, name)
            if value is not None and value < 1:
                errors.append(f"{name} must be >= 1, got {value}")

        if self.registry_cap < 1:
            errors.append(f"registry_cap must be >= 1, got {self.registry_cap}")

        if self.interval_hours <= 0:
            errors.append(f"interval_hours must be > 0, got {self.interval_hours}")

        if not 1 <= self.zstd_level <= 22:
            errors.append(f"zstd_level must be within 1-22, got {self.zstd_level}")

        if not self.created_by:
            errors.append("created_by must not be empty")

        if errors:
            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    @property
    def auto_dir(self) -> Path:
        return self.backup_dir / ArtifactKind.AUTO.value

    @property
    def manual_dir(self) -> Path:
        return self.backup_dir / ArtifactKind.MANUAL.value

    @property
    def registry_path(self) -> Path:
        return self.backup_dir / "backup-registry.json"

    @property
    def staging_dir(self) -> Path:
        return self.backup_dir / ".staging"

    def kind_dir(self, kind: ArtifactKind) -> Path:
        """Directory holding artifacts of one kind."""
        return self.auto_dir if kind == ArtifactKind.AUTO else self.manual_dir

    def retention_for(self, kind: ArtifactKind) -> int:
        """Keep-count for a kind: per-kind override, else the uniform count."""
        override = self.keep_auto if kind == ArtifactKind.AUTO else self.keep_manual
        return override if override is not None else self.keep_count

    def with_updates(self, **kwargs) -> "EngineConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return EngineConfig(**current)
