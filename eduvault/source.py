# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
EduVault Sources - Snapshot producers and restore appliers.

The engine never talks to the live store directly. It asks a
SnapshotSource for a Snapshot when backing up, and hands validated data
to a RestoreApplier when restoring. The JSON file implementations here
match the platform's local storage layout (local-<collection>.json files
next to the media folders).
"""

import inspect
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Protocol, runtime_checkable

import aiofiles
import structlog

from eduvault.exceptions import ApplyError, SnapshotSourceError

logger = structlog.get_logger()

# Collections kept by the platform as local-<name>.json files
DEFAULT_COLLECTIONS = (
    "users",
    "messages",
    "stories",
    "channels",
    "settings",
    "notifications",
)

# Media folders created by the platform at startup
DEFAULT_MEDIA_FOLDERS = (
    "uploads",
    "stories",
    "channels",
    "avatars",
    "chat-backgrounds",
    "group-avatars",
    "story-highlights",
)


@dataclass
class Snapshot:
    """Point-in-time view of the live store, produced on demand."""

    collections: Dict[str, List[Any]] = field(default_factory=dict)
    file_roots: List[Path] = field(default_factory=list)

    def to_data(self) -> Dict[str, Any]:
        """Structured payload stored in an envelope's data field."""
        return {"collections": self.collections}


@runtime_checkable
class SnapshotSource(Protocol):
    """Anything that can produce a Snapshot of the live store."""

    async def produce_snapshot(self) -> Snapshot: ...


@runtime_checkable
class RestoreApplier(Protocol):
    """Applies validated envelope data back onto the live store."""

    async def apply_restored_data(self, data: Dict[str, Any]) -> Any: ...


class _CallableSource:
    """Adapts a plain callable (sync or async) to the SnapshotSource protocol."""

    def __init__(self, provider: Callable[[], Any]):
        self._provider = provider

    async def produce_snapshot(self) -> Snapshot:
        result = self._provider()
        if inspect.isawaitable(result):
            result = await result
        return coerce_snapshot(result)


def coerce_snapshot(value: Any) -> Snapshot:
    """
    Turn a provider result into a Snapshot.

    Accepts a Snapshot, or a mapping with "collections" and optional
    "file_roots" keys.
    """
    if isinstance(value, Snapshot):
        return value
    if isinstance(value, Mapping):
        collections = value.get("collections") or {}
        if not isinstance(collections, Mapping):
            raise SnapshotSourceError(
                "Snapshot collections must be a mapping",
                details={"type": type(collections).__name__},
            )
        roots = [Path(p) for p in value.get("file_roots") or []]
        return Snapshot(collections=dict(collections), file_roots=roots)
    raise SnapshotSourceError(
        "Snapshot provider returned an unsupported value",
        details={"type": type(value).__name__},
    )


def as_snapshot_source(
    source: "SnapshotSource | Callable[[], Snapshot | Awaitable[Snapshot]]",
) -> SnapshotSource:
    """Return source unchanged if it already is a SnapshotSource, else wrap it."""
    if isinstance(source, SnapshotSource):
        return source
    if callable(source):
        return _CallableSource(source)
    raise TypeError(f"Not a snapshot source: {source!r}")


class JsonFileSnapshotSource:
    """
    Snapshot source backed by the platform's local JSON files.

    Each collection is read from data_dir/local-<name>.json. Missing files
    read as empty collections; a file that is not valid JSON fails the
    snapshot, since a silent empty collection would be backed up as data loss.
    """

    def __init__(
        self,
        data_dir: Path | str,
        collections: tuple = DEFAULT_COLLECTIONS,
        media_folders: tuple = DEFAULT_MEDIA_FOLDERS,
    ):
        self.data_dir = Path(data_dir)
        self.collections = tuple(collections)
        self.media_folders = tuple(media_folders)

    def collection_path(self, name: str) -> Path:
        return self.data_dir / f"local-{name}.json"

    async def produce_snapshot(self) -> Snapshot:
        collections: Dict[str, List[Any]] = {}

        for name in self.collections:
            path = self.collection_path(name)
            if not path.exists():
                collections[name] = []
                continue
            try:
                async with aiofiles.open(path, "r", encoding="utf-8") as f:
                    records = json.loads(await f.read())
            except (OSError, ValueError) as e:
                raise SnapshotSourceError(
                    f"Failed to read collection {name}: {e}",
                    details={"path": str(path)},
                )
            collections[name] = records if isinstance(records, list) else [records]

        roots = [self.data_dir / folder for folder in self.media_folders]

        logger.debug(
            "snapshot_produced",
            collections=len(collections),
            records=sum(len(v) for v in collections.values()),
        )
        return Snapshot(collections=collections, file_roots=roots)


class JsonFileApplier:
    """
    Full-replace applier for the platform's local JSON files.

    Every collection present in the restored data overwrites its
    local-<name>.json file. Collections absent from the data are untouched.
    """

    def __init__(self, data_dir: Path | str):
        self.data_dir = Path(data_dir)

    async def apply_restored_data(self, data: Dict[str, Any]) -> Dict[str, int]:
        collections = data.get("collections") if isinstance(data, Mapping) else None
        if not isinstance(collections, Mapping):
            raise ApplyError("Restored data has no collections to apply")

        self.data_dir.mkdir(parents=True, exist_ok=True)
        applied: Dict[str, int] = {}

        for name, records in collections.items():
            path = self.data_dir / f"local-{name}.json"
            temp_path = path.with_suffix(".json.tmp")
            try:
                async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                    await f.write(json.dumps(records, indent=2, ensure_ascii=False))
                os.replace(temp_path, path)
            except OSError as e:
                raise ApplyError(
                    f"Failed to write collection {name}: {e}",
                    details={"path": str(path)},
                )
            applied[name] = len(records) if isinstance(records, list) else 1

        logger.info("restored_data_applied", collections=applied)
        return applied
