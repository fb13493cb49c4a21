# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for EduVault tests.

Provides temporary backup directories, sample snapshots, engines and
test doubles for snapshot sources and restore appliers.
"""

import json
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List

import pytest
import structlog

from eduvault.config import EngineConfig
from eduvault.core import BackupEngine
from eduvault.source import Snapshot


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo logging configuration done by CLI tests."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def engine_config(temp_dir: Path) -> EngineConfig:
    """Create a test configuration."""
    return EngineConfig(
        backup_dir=temp_dir / "backups",
        keep_count=10,
        live_root=temp_dir / "live",
    )


def _build_snapshot(collections: int = 3, records: int = 40) -> Snapshot:
    names = ["users", "messages", "channels", "stories", "settings", "notifications"]
    return Snapshot(
        collections={
            names[i]: [{"id": f"{names[i]}-{n}", "seq": n, "text": "hello"} for n in range(records)]
            for i in range(collections)
        }
    )


@pytest.fixture
def make_snapshot() -> Callable[..., Snapshot]:
    """Factory for snapshots with `collections` collections of `records` documents each."""
    return _build_snapshot


@pytest.fixture
def snapshot() -> Snapshot:
    """Three collections with 40 documents each."""
    return _build_snapshot()


class RecordingApplier:
    """Restore applier that records what it was given."""

    def __init__(self, fail: bool = False):
        self.calls: List[Dict[str, Any]] = []
        self.fail = fail

    async def apply_restored_data(self, data: Dict[str, Any]) -> int:
        if self.fail:
            raise RuntimeError("live store unavailable")
        self.calls.append(data)
        return len(data.get("collections", {}))


@pytest.fixture
def applier() -> RecordingApplier:
    return RecordingApplier()


@pytest.fixture
def failing_applier() -> RecordingApplier:
    """Applier whose live store is unavailable."""
    return RecordingApplier(fail=True)


@pytest.fixture
def engine(engine_config: EngineConfig, snapshot: Snapshot, applier: RecordingApplier) -> BackupEngine:
    """Engine whose source always returns the sample snapshot."""
    return BackupEngine(engine_config, source=lambda: snapshot, applier=applier)


@pytest.fixture
def list_dir() -> Callable[[Path], List[str]]:
    """Sorted names in a directory (empty if it does not exist)."""

    def _list(path: Path) -> List[str]:
        if not path.exists():
            return []
        return sorted(p.name for p in path.iterdir())

    return _list


@pytest.fixture
def read_registry() -> Callable[[EngineConfig], List[Dict[str, Any]]]:
    """Registry entries as stored on disk."""

    def _read(config: EngineConfig) -> List[Dict[str, Any]]:
        if not config.registry_path.exists():
            return []
        return json.loads(config.registry_path.read_text())["backups"]

    return _read
