# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tests for configuration: the frozen config, builder and environment helpers.
"""

from dataclasses import FrozenInstanceError
from pathlib import Path

import pytest

from eduvault.builder import (
    build_from_steps,
    capture_media,
    create_config,
    disable_compression,
    keep_backups,
    run_every,
    with_backup_dir,
)
from eduvault.config import ArtifactKind, EngineConfig, parse_kind
from eduvault.env import create_config_from_env
from eduvault.exceptions import ConfigurationError

ENV_VARS = (
    "EDUVAULT_BACKUP_DIR",
    "EDUVAULT_KEEP_COUNT",
    "EDUVAULT_KEEP_AUTO",
    "EDUVAULT_KEEP_MANUAL",
    "EDUVAULT_INTERVAL_HOURS",
    "EDUVAULT_COMPRESS",
    "EDUVAULT_MEDIA_ROOTS",
    "EDUVAULT_LIVE_ROOT",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults():
    config = EngineConfig()

    assert config.backup_dir == Path("./backups")
    assert config.keep_count == 10
    assert config.registry_cap == 50
    assert config.interval_hours == 24
    assert config.compress_backups is True
    assert config.auto_dir == Path("./backups/auto")
    assert config.manual_dir == Path("./backups/manual")
    assert config.registry_path.name == "backup-registry.json"


def test_config_is_frozen():
    config = EngineConfig()

    with pytest.raises(FrozenInstanceError):
        config.keep_count = 3


def test_invalid_values_are_collected():
    with pytest.raises(ConfigurationError) as exc_info:
        EngineConfig(keep_count=0, interval_hours=0, keep_auto=-1)

    errors = exc_info.value.details["errors"]
    assert len(errors) == 3


def test_retention_overrides():
    config = EngineConfig(keep_count=10, keep_auto=30)

    assert config.retention_for(ArtifactKind.AUTO) == 30
    assert config.retention_for(ArtifactKind.MANUAL) == 10


def test_with_updates_returns_new_config():
    config = EngineConfig()
    updated = config.with_updates(keep_count=3)

    assert updated.keep_count == 3
    assert config.keep_count == 10


@pytest.mark.parametrize("value, expected", [
    ("auto", ArtifactKind.AUTO),
    ("MANUAL", ArtifactKind.MANUAL),
    ("all", None),
    (None, None),
])
def test_parse_kind(value, expected):
    assert parse_kind(value) == expected


def test_parse_kind_rejects_unknown():
    with pytest.raises(ConfigurationError, match="Unknown backup kind"):
        parse_kind("weekly")


def test_create_config(temp_dir: Path):
    config = create_config(
        temp_dir,
        keep_manual=5,
        interval_hours=6,
        compress=False,
        media_roots=[temp_dir / "uploads"],
        live_root=temp_dir,
    )

    assert config.backup_dir == temp_dir
    assert config.keep_manual == 5
    assert config.interval_hours == 6
    assert config.compress_backups is False
    assert config.media_roots == [temp_dir / "uploads"]
    assert config.live_root == temp_dir


def test_build_from_steps(temp_dir: Path):
    config = build_from_steps(
        lambda c: with_backup_dir(c, temp_dir),
        lambda c: keep_backups(c, 30, kind="auto"),
        lambda c: run_every(c, 0.5),
        lambda c: capture_media(c, ["uploads", "avatars"]),
        disable_compression,
    )

    assert config.keep_auto == 30
    assert config.keep_count == 10
    assert config.interval_hours == 0.5
    assert config.media_roots == [Path("uploads"), Path("avatars")]
    assert config.compress_backups is False


def test_builder_rejects_bad_counts():
    with pytest.raises(ValueError):
        build_from_steps(lambda c: keep_backups(c, 0))
    with pytest.raises(ValueError):
        build_from_steps(lambda c: run_every(c, -1))


def test_config_from_env(clean_env, temp_dir: Path):
    clean_env.setenv("EDUVAULT_BACKUP_DIR", str(temp_dir))
    clean_env.setenv("EDUVAULT_KEEP_COUNT", "7")
    clean_env.setenv("EDUVAULT_KEEP_AUTO", "20")
    clean_env.setenv("EDUVAULT_INTERVAL_HOURS", "12")
    clean_env.setenv("EDUVAULT_COMPRESS", "off")
    clean_env.setenv("EDUVAULT_MEDIA_ROOTS", "uploads, avatars,")

    config = create_config_from_env()

    assert config.backup_dir == temp_dir
    assert config.keep_count == 7
    assert config.keep_auto == 20
    assert config.keep_manual is None
    assert config.interval_hours == 12
    assert config.compress_backups is False
    assert config.media_roots == [Path("uploads"), Path("avatars")]


def test_config_from_env_defaults(clean_env):
    config = create_config_from_env()

    assert config.keep_count == 10
    assert config.interval_hours == 24
    assert config.compress_backups is True


@pytest.mark.parametrize("name, value", [
    ("EDUVAULT_KEEP_COUNT", "ten"),
    ("EDUVAULT_KEEP_AUTO", "0"),
    ("EDUVAULT_INTERVAL_HOURS", "-2"),
    ("EDUVAULT_COMPRESS", "maybe"),
])
def test_config_from_env_rejects_bad_values(clean_env, name, value):
    clean_env.setenv(name, value)

    with pytest.raises(ConfigurationError, match=name):
        create_config_from_env()
