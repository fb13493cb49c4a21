# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
EduVault Core - The backup engine.

BackupEngine ties the components together for one backup directory:
snapshot source -> artifact strategy -> registry -> retention sweep, and
filename -> restore engine. Public operations report failures through
their result objects instead of raising.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Sequence

import structlog

from eduvault.artifacts.envelope import compute_statistics, write_envelope_artifact
from eduvault.artifacts.files import (
    TREE_PREFIX,
    TREE_SUFFIX,
    ArtifactInfo,
    release_artifact_path,
    unique_artifact_path,
)
from eduvault.artifacts.tree import write_tree_artifact
from eduvault.config import ArtifactKind, ArtifactStrategy, EngineConfig, parse_kind
from eduvault.exceptions import (
    ArtifactIOError,
    ConfigurationError,
    EduVaultError,
    NotFoundError,
    SnapshotSourceError,
)
from eduvault.inventory import get_backup_stats, list_artifacts
from eduvault.registry import BackupRegistry, RegistryEntry, entry_from_artifact
from eduvault.restore import RestoreResult, locate_artifact, restore_backup
from eduvault.retention import cleanup_old_backups, delete_artifact
from eduvault.scheduler import BackupScheduler
from eduvault.source import (
    RestoreApplier,
    Snapshot,
    SnapshotSource,
    as_snapshot_source,
    coerce_snapshot,
)

logger = structlog.get_logger()


@dataclass
class BackupResult:
    """Result of a backup (or deletion) operation."""

    success: bool
    filename: str | None = None
    path: Path | None = None
    kind: ArtifactKind | None = None
    strategy: ArtifactStrategy | None = None
    compressed: bool = False
    size_bytes: int = 0
    statistics: dict | None = None
    error: EduVaultError | None = None

    @classmethod
    def from_artifact(cls, artifact: ArtifactInfo, statistics: dict | None = None) -> "BackupResult":
        return cls(
            success=True,
            filename=artifact.filename,
            path=artifact.path,
            kind=artifact.kind,
            strategy=artifact.strategy,
            compressed=artifact.compressed,
            size_bytes=artifact.size_bytes,
            statistics=statistics,
        )


def _as_error(e: Exception, message: str) -> EduVaultError:
    if isinstance(e, EduVaultError):
        return e
    return ArtifactIOError(f"{message}: {e}")


class BackupEngine:
    """
    Backup and restore engine for one backup directory.

    Args:
        config: Engine configuration
        source: Snapshot source (object with produce_snapshot(), or a callable)
        applier: Optional collaborator applying restored envelope data
    """

    def __init__(
        self,
        config: EngineConfig,
        source: SnapshotSource | Any | None = None,
        applier: RestoreApplier | None = None,
    ):
        self.config = config
        self.source = as_snapshot_source(source) if source is not None else None
        self.applier = applier
        self.registry = BackupRegistry(config.registry_path, config.registry_cap)
        self._init_backup_dirs()

    def _init_backup_dirs(self) -> None:
        for directory in (self.config.backup_dir, self.config.auto_dir, self.config.manual_dir):
            directory.mkdir(parents=True, exist_ok=True)

    async def _snapshot(self, snapshot: Snapshot | Any | None) -> Snapshot:
        if snapshot is not None:
            return coerce_snapshot(snapshot)
        if self.source is None:
            raise ConfigurationError("No snapshot given and no snapshot source configured")
        try:
            return await self.source.produce_snapshot()
        except EduVaultError:
            raise
        except Exception as e:
            raise SnapshotSourceError(f"Snapshot source failed: {e}")

    async def _register(self, artifact: ArtifactInfo) -> None:
        try:
            await self.registry.append(entry_from_artifact(artifact))
        except Exception as e:
            # The artifact is durable; only the listing index is behind
            logger.warning("registry_update_failed", filename=artifact.filename, error=str(e))

    async def create_backup(
        self,
        snapshot: Snapshot | Any | None = None,
        kind: ArtifactKind | str = ArtifactKind.MANUAL,
        compressed: bool | None = None,
        created_by: str | None = None,
        auto_cleanup: bool = True,
    ) -> BackupResult:
        """
        Write an envelope backup of a snapshot.

        Args:
            snapshot: Snapshot (or {"collections": ...} mapping); None asks the source
            kind: "manual" or "auto"
            compressed: gzip the envelope; None uses the configured default
            created_by: Author recorded in the envelope
            auto_cleanup: Run the retention sweep for this kind afterwards

        Returns:
            BackupResult with the artifact's filename, size and statistics
        """
        try:
            kind = ArtifactKind(kind)
            snap = await self._snapshot(snapshot)
            artifact = await write_envelope_artifact(
                snap,
                kind,
                self.config.kind_dir(kind),
                compressed=self.config.compress_backups if compressed is None else compressed,
                created_by=created_by or self.config.created_by,
            )
        except Exception as e:
            error = _as_error(e, "Backup failed")
            logger.error("backup_failed", error_type=type(error).__name__, error=str(error))
            return BackupResult(success=False, error=error)

        await self._register(artifact)

        result = BackupResult.from_artifact(artifact, compute_statistics(snap.to_data()))

        logger.info(
            "backup_created",
            filename=artifact.filename,
            kind=kind.value,
            size=artifact.size_bytes,
            documents=result.statistics["totalDocuments"],
        )

        if auto_cleanup:
            await self.cleanup_old_backups(kind)

        return result

    async def create_media_backup(
        self,
        file_roots: Sequence[Path | str] | None = None,
        kind: ArtifactKind | str = ArtifactKind.MANUAL,
        created_by: str | None = None,
        auto_cleanup: bool = True,
    ) -> BackupResult:
        """
        Write a tree backup of media directories.

        Args:
            file_roots: Directories to capture; None uses config.media_roots,
                then the source snapshot's file roots
            kind: "manual" or "auto"
            created_by: Author recorded in the tree envelope
            auto_cleanup: Run the retention sweep for this kind afterwards
        """
        try:
            kind = ArtifactKind(kind)
            if file_roots is None:
                file_roots = self.config.media_roots or (await self._snapshot(None)).file_roots
            roots = [Path(r) for r in file_roots]

            destination, moment = unique_artifact_path(
                self.config.kind_dir(kind), TREE_PREFIX, TREE_SUFFIX
            )
            try:
                size = await write_tree_artifact(
                    roots,
                    destination,
                    kind=kind,
                    created_by=created_by or self.config.created_by,
                    level=self.config.zstd_level,
                )
            finally:
                release_artifact_path(destination)
        except Exception as e:
            error = _as_error(e, "Media backup failed")
            logger.error("media_backup_failed", error_type=type(error).__name__, error=str(error))
            return BackupResult(success=False, error=error)

        artifact = ArtifactInfo(
            filename=destination.name,
            kind=kind,
            strategy=ArtifactStrategy.TREE,
            compressed=True,
            path=destination,
            size_bytes=size,
            created_at=moment,
        )
        await self._register(artifact)

        logger.info("media_backup_created", filename=artifact.filename, kind=kind.value, size=size)

        if auto_cleanup:
            await self.cleanup_old_backups(kind)

        return BackupResult.from_artifact(artifact)

    async def restore_backup(
        self,
        filename: str,
        kind: ArtifactKind | str | None = None,
        target_dir: Path | str | None = None,
        apply: bool = True,
    ) -> RestoreResult:
        """
        Restore a backup by filename.

        Envelope data goes to the engine's applier when one is configured
        and apply is True; otherwise it is only returned in the result.
        Tree backups are applied onto target_dir (default: config.live_root).
        """
        return await restore_backup(
            self.config,
            filename,
            kind=kind,
            target_dir=Path(target_dir) if target_dir is not None else None,
            applier=self.applier if apply else None,
        )

    def list_backups(self, kind: ArtifactKind | str | None = "all") -> List[ArtifactInfo]:
        """Backups present on disk, newest first. Never raises."""
        try:
            return list_artifacts(self.config, kind)
        except Exception as e:
            logger.error("list_backups_failed", error=str(e))
            return []

    async def list_registered(self, kind: ArtifactKind | str | None = "all") -> List[RegistryEntry]:
        """Registry entries, newest first."""
        return await self.registry.list(kind)

    async def cleanup_old_backups(
        self,
        kind: ArtifactKind | str | None = "all",
        keep_count: int | None = None,
    ) -> int:
        """Apply the retention policy. Never raises; returns files deleted."""
        try:
            return await cleanup_old_backups(self.config, self.registry, kind, keep_count)
        except Exception as e:
            logger.error("backup_cleanup_failed", error=str(e))
            return 0

    async def delete_backup(
        self,
        filename: str,
        kind: ArtifactKind | str | None = None,
    ) -> BackupResult:
        """Delete one backup and reconcile the registry."""
        try:
            path = locate_artifact(self.config, filename, kind)
            if path.parent == self.config.backup_dir:
                found_kind = None
            else:
                found_kind = parse_kind(path.parent.name)
            if not await delete_artifact(self.registry, path):
                raise NotFoundError(f"Backup not found: {filename}")
        except Exception as e:
            error = _as_error(e, "Delete failed")
            logger.error("backup_delete_failed", filename=filename, error=str(error))
            return BackupResult(success=False, filename=filename, error=error)

        return BackupResult(success=True, filename=filename, path=path, kind=found_kind)

    def get_backup_stats(self) -> dict | None:
        """Storage statistics. Returns None if the directories cannot be read."""
        try:
            return get_backup_stats(self.config)
        except Exception as e:
            logger.error("backup_stats_failed", error=str(e))
            return None

    async def start_auto_backup(
        self,
        interval_hours: float | None = None,
        include_media: bool | None = None,
    ) -> BackupScheduler:
        """
        Start unattended backups: one cycle now, then every interval_hours.

        Returns:
            The running BackupScheduler (call stop() to end it)
        """
        scheduler = BackupScheduler(self, interval_hours, include_media)
        await scheduler.start()
        return scheduler
