# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

The CLI and long-running hosts build their EngineConfig from a small set of
well-known environment variables through create_config_from_env().
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List

from eduvault.builder import create_config
from eduvault.config import EngineConfig
from eduvault.errors import (
    explain_invalid_bool_env,
    explain_invalid_count_env,
    explain_invalid_interval_env,
)
from eduvault.exceptions import ConfigurationError

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_count(name: str, value: str | None, default: int | None) -> int | None:
    if not value:
        return default
    try:
        count = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_count_env(name, value)) from exc
    if count < 1:
        raise ConfigurationError(explain_invalid_count_env(name, value))
    return count


def _parse_interval(value: str | None) -> float:
    if not value:
        return 24
    try:
        hours = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_interval_env(value)) from exc
    if hours <= 0:
        raise ConfigurationError(explain_invalid_interval_env(value))
    return hours


def _parse_bool(name: str, value: str | None, default: bool) -> bool:
    if not value:
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(explain_invalid_bool_env(name, value))


def _parse_paths(value: str | None) -> List[Path]:
    if not value:
        return []
    return [Path(p.strip()) for p in value.split(",") if p.strip()]


def create_config_from_env() -> EngineConfig:
    """
    Create an EngineConfig from environment variables.

    Optional environment variables:
        - EDUVAULT_BACKUP_DIR: Root backup directory (default: ./backups)
        - EDUVAULT_KEEP_COUNT: Backups kept per kind (default: 10)
        - EDUVAULT_KEEP_AUTO: Override for automatic backups
        - EDUVAULT_KEEP_MANUAL: Override for manual backups
        - EDUVAULT_INTERVAL_HOURS: Automatic backup period (default: 24)
        - EDUVAULT_COMPRESS: gzip envelope artifacts (default: true)
        - EDUVAULT_MEDIA_ROOTS: Comma-separated media directories
        - EDUVAULT_LIVE_ROOT: Directory tree restores are applied onto
    """

    backup_dir = Path(os.getenv("EDUVAULT_BACKUP_DIR") or "./backups")
    keep_count = _parse_count("EDUVAULT_KEEP_COUNT", os.getenv("EDUVAULT_KEEP_COUNT"), 10)
    keep_auto = _parse_count("EDUVAULT_KEEP_AUTO", os.getenv("EDUVAULT_KEEP_AUTO"), None)
    keep_manual = _parse_count(
        "EDUVAULT_KEEP_MANUAL", os.getenv("EDUVAULT_KEEP_MANUAL"), None
    )
    interval_hours = _parse_interval(os.getenv("EDUVAULT_INTERVAL_HOURS"))
    compress = _parse_bool("EDUVAULT_COMPRESS", os.getenv("EDUVAULT_COMPRESS"), True)
    live_root_env = os.getenv("EDUVAULT_LIVE_ROOT")

    return create_config(
        backup_dir,
        keep_count=keep_count,
        keep_auto=keep_auto,
        keep_manual=keep_manual,
        interval_hours=interval_hours,
        compress=compress,
        media_roots=_parse_paths(os.getenv("EDUVAULT_MEDIA_ROOTS")),
        live_root=Path(live_root_env) if live_root_env else None,
    )
