# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
EduVault Backup Registry - JSON side index of created backups.

The registry is a single document, rewritten wholesale on every mutation:

    {"backups": [RegistryEntry, ...], "lastUpdate": "<ISO8601>"}

Entries are kept most-recent-first and capped (50 by default). The
registry only serves listings: restore always resolves filenames against
the filesystem, so a stale or lost registry never breaks a restore.
"""

import asyncio
import json
import os
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict, List, TypedDict

import aiofiles
import structlog

from eduvault.artifacts.files import ArtifactInfo, temp_path_for
from eduvault.config import ArtifactKind, parse_kind
from eduvault.exceptions import RegistryError

logger = structlog.get_logger()

DEFAULT_REGISTRY_CAP = 50


class RegistryEntry(TypedDict):
    """One registered backup."""

    filename: str
    kind: str
    strategy: str
    path: str
    sizeBytes: int
    createdAt: str
    compressed: bool


def entry_from_artifact(artifact: ArtifactInfo) -> RegistryEntry:
    """Registry entry describing a freshly written artifact."""
    return RegistryEntry(
        filename=artifact.filename,
        kind=artifact.kind.value,
        strategy=artifact.strategy.value,
        path=str(artifact.path),
        sizeBytes=artifact.size_bytes,
        createdAt=artifact.created_at.isoformat(),
        compressed=artifact.compressed,
    )


def _created_at(entry: Dict[str, Any]) -> datetime:
    try:
        moment = datetime.fromisoformat(str(entry.get("createdAt", "")).replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=UTC)
    return moment if moment.tzinfo else moment.replace(tzinfo=UTC)


class BackupRegistry:
    """Size-capped, most-recent-first index of backups stored as JSON."""

    def __init__(self, path: Path, cap: int = DEFAULT_REGISTRY_CAP):
        if cap < 1:
            raise ValueError(f"registry cap must be >= 1, got {cap}")
        self.path = Path(path)
        self.cap = cap
        # Held across every load-modify-save
        self._lock = asyncio.Lock()

    async def load(self) -> List[RegistryEntry]:
        """
        Read all entries.

        A missing file is an empty registry. An unreadable or corrupt file is
        also treated as empty; it is rebuilt on the next mutation.
        """
        if not self.path.exists():
            return []

        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                document = json.loads(await f.read())
        except (OSError, ValueError) as e:
            logger.warning("registry_unreadable", path=str(self.path), error=str(e))
            return []

        backups = document.get("backups") if isinstance(document, dict) else None
        if not isinstance(backups, list):
            logger.warning("registry_malformed", path=str(self.path))
            return []
        return [entry for entry in backups if isinstance(entry, dict)]

    async def _save(self, entries: List[RegistryEntry]) -> None:
        document = {
            "backups": entries,
            "lastUpdate": datetime.now(UTC).isoformat(),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = temp_path_for(self.path)
        try:
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(document, indent=2))
            os.replace(temp_path, self.path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise RegistryError(
                f"Failed to write registry: {e}",
                details={"path": str(self.path)},
            )

    async def append(self, entry: RegistryEntry) -> None:
        """Prepend an entry and truncate to the cap."""
        async with self._lock:
            entries = await self.load()
            entries.insert(0, entry)
            dropped = len(entries) - self.cap
            if dropped > 0:
                entries = entries[: self.cap]
            await self._save(entries)

        logger.debug(
            "registry_entry_added",
            filename=entry["filename"],
            dropped=max(dropped, 0),
        )

    async def reconcile(self) -> int:
        """
        Drop entries whose file no longer exists.

        Idempotent; safe to call after every deletion.

        Returns:
            Number of entries removed
        """
        async with self._lock:
            if not self.path.exists():
                return 0

            entries = await self.load()
            kept = [entry for entry in entries if Path(str(entry.get("path", ""))).exists()]
            removed = len(entries) - len(kept)

            await self._save(kept)

        if removed:
            logger.info("registry_reconciled", removed=removed, remaining=len(kept))
        return removed

    async def list(self, kind: ArtifactKind | str | None = "all") -> List[RegistryEntry]:
        """
        Entries of one kind (or both), newest first by createdAt.
        """
        wanted = parse_kind(kind)
        entries = await self.load()
        if wanted is not None:
            entries = [entry for entry in entries if entry.get("kind") == wanted.value]
        return sorted(entries, key=_created_at, reverse=True)
