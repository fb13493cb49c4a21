# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
EduVault Builder - Functional builder pattern for configuration.

This module provides pure functions for building EngineConfig objects.
Each function takes a config dict and returns a new dict with the
modification applied (immutable updates).
"""

from pathlib import Path
from typing import Any, Callable, Dict, List

from eduvault.config import ArtifactKind, EngineConfig


# Type alias for builder functions
ConfigDict = Dict[str, Any]
BuilderFunc = Callable[[ConfigDict], ConfigDict]


def create_empty_config() -> ConfigDict:
    """
    Create an initial configuration dictionary with default values.
    """
    return {
        "backup_dir": Path("./backups"),
        "keep_count": 10,
        "keep_auto": None,
        "keep_manual": None,
        "registry_cap": 50,
        "interval_hours": 24,
        "compress_backups": True,
        "zstd_level": 19,
        "created_by": "system",
        "media_roots": [],
        "live_root": Path("."),
        "include_media_in_schedule": False,
    }


def with_backup_dir(config: ConfigDict, backup_dir: Path | str) -> ConfigDict:
    """
    Set the root backup directory.

    Args:
        config: Current configuration dictionary
        backup_dir: Directory that will hold auto/, manual/ and the registry

    Returns:
        New configuration dictionary with backup_dir set
    """
    return {**config, "backup_dir": Path(backup_dir)}


def keep_backups(
    config: ConfigDict,
    count: int,
    kind: ArtifactKind | str | None = None,
) -> ConfigDict:
    """
    Set how many backups the retention policy keeps.

    With kind=None the uniform count is set; otherwise only that kind's
    override is changed.

    Args:
        config: Current configuration dictionary
        count: Number of newest backups to keep
        kind: Optional kind the count applies to

    Returns:
        New configuration dictionary with retention set
    """
    if count < 1:
        raise ValueError(f"keep count must be >= 1, got {count}")
    if kind is None:
        return {**config, "keep_count": count}
    kind = ArtifactKind(kind)
    return {**config, f"keep_{kind.value}": count}


def run_every(config: ConfigDict, hours: float) -> ConfigDict:
    """
    Set the automatic backup interval in hours.
    """
    if hours <= 0:
        raise ValueError(f"interval must be > 0 hours, got {hours}")
    return {**config, "interval_hours": hours}


def capture_media(
    config: ConfigDict,
    roots: List[Path | str],
    live_root: Path | str | None = None,
) -> ConfigDict:
    """
    Add media directories to capture in tree artifacts.

    Args:
        config: Current configuration dictionary
        roots: Directories to capture (missing ones are skipped at backup time)
        live_root: Directory tree restores are applied onto

    Returns:
        New configuration dictionary with media roots added
    """
    new_roots = list(config["media_roots"]) + [Path(r) for r in roots]
    updated = {**config, "media_roots": new_roots}
    if live_root is not None:
        updated["live_root"] = Path(live_root)
    return updated


def disable_compression(config: ConfigDict) -> ConfigDict:
    """
    Write envelope artifacts as plain, indented JSON.
    """
    return {**config, "compress_backups": False}


def build_config(config_dict: ConfigDict) -> EngineConfig:
    """
    Validate and build an immutable EngineConfig from a configuration dictionary.

    Raises:
        ConfigurationError: If validation fails
    """
    return EngineConfig(**config_dict)


def build_from_steps(*steps: BuilderFunc) -> EngineConfig:
    """
    Build config by applying a sequence of builder functions.

    Example:
        config = build_from_steps(
            lambda c: with_backup_dir(c, "/var/lib/eduvault"),
            lambda c: keep_backups(c, 30, kind="auto"),
            disable_compression,
        )
    """
    config = create_empty_config()
    for step in steps:
        config = step(config)
    return build_config(config)


def create_config(
    backup_dir: str | Path = "./backups",
    *,
    keep_count: int = 10,
    keep_auto: int | None = None,
    keep_manual: int | None = None,
    interval_hours: float = 24,
    compress: bool = True,
    media_roots: List[str | Path] | None = None,
    live_root: str | Path | None = None,
    **kwargs: Any,
) -> EngineConfig:
    """
    Create engine configuration from simple parameters.

    This is the recommended user-facing API for creating configurations.

    Args:
        backup_dir: Root backup directory (default: "./backups")
        keep_count: Backups kept per kind by the retention policy (default: 10)
        keep_auto: Override of keep_count for automatic backups
        keep_manual: Override of keep_count for manual backups
        interval_hours: Automatic backup period (default: 24)
        compress: gzip envelope artifacts (default: True)
        media_roots: Media directories captured by tree artifacts
        live_root: Directory tree restores are applied onto
        **kwargs: Additional configuration options

    Returns:
        Validated, immutable EngineConfig instance

    Example:
        config = create_config(
            "/var/lib/eduvault",
            keep_auto=30,
            media_roots=["uploads", "avatars", "stories"],
        )
    """
    config_dict = with_backup_dir(create_empty_config(), backup_dir)
    config_dict = keep_backups(config_dict, keep_count)

    if keep_auto is not None:
        config_dict = keep_backups(config_dict, keep_auto, ArtifactKind.AUTO)
    if keep_manual is not None:
        config_dict = keep_backups(config_dict, keep_manual, ArtifactKind.MANUAL)

    config_dict = run_every(config_dict, interval_hours)

    if not compress:
        config_dict = disable_compression(config_dict)

    if media_roots or live_root is not None:
        config_dict = capture_media(config_dict, media_roots or [], live_root)

    for key, value in kwargs.items():
        if key in config_dict:
            config_dict[key] = value

    return build_config(config_dict)
