# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
EduVault Retention Policy - Keep the newest N backups of each kind.

The sweep is best-effort: a file that cannot be deleted is logged and
skipped, and the registry is reconciled afterwards no matter what.
"""

from typing import List

import structlog

from eduvault.config import ArtifactKind, ArtifactStrategy, EngineConfig, parse_kind
from eduvault.inventory import list_artifacts
from eduvault.registry import BackupRegistry

logger = structlog.get_logger()


def _sweep(
    config: EngineConfig,
    kind: ArtifactKind,
    strategy: ArtifactStrategy,
    keep_count: int,
) -> int:
    backups = list_artifacts(config, kind, strategy)
    deleted = 0

    for backup in backups[keep_count:]:
        try:
            backup.path.unlink()
            deleted += 1
            logger.debug(
                "backup_pruned",
                filename=backup.filename,
                kind=kind.value,
                strategy=strategy.value,
            )
        except Exception as e:
            logger.warning(
                "backup_cleanup_file_failed",
                filename=backup.filename,
                error=str(e),
            )

    return deleted


async def cleanup_old_backups(
    config: EngineConfig,
    registry: BackupRegistry,
    kind: ArtifactKind | str | None = "all",
    keep_count: int | None = None,
) -> int:
    """
    Delete every backup of kind beyond the newest keep_count.

    Envelope and tree artifacts are swept independently, so a media backup
    never evicts a data backup. kind="all" sweeps both kinds.

    Args:
        config: Engine configuration
        registry: Registry reconciled after the sweep
        kind: "auto", "manual" or "all"
        keep_count: Backups to keep; None uses the configured count for the kind

    Returns:
        Number of files deleted
    """
    if keep_count is not None and keep_count < 0:
        raise ValueError(f"keep_count must be >= 0, got {keep_count}")

    wanted = parse_kind(kind)
    kinds: List[ArtifactKind] = [wanted] if wanted is not None else list(ArtifactKind)

    deleted = 0
    try:
        for artifact_kind in kinds:
            keep = keep_count if keep_count is not None else config.retention_for(artifact_kind)
            for strategy in ArtifactStrategy:
                deleted += _sweep(config, artifact_kind, strategy, keep)
    finally:
        try:
            await registry.reconcile()
        except Exception as e:
            logger.warning("registry_reconcile_failed", error=str(e))

    logger.info(
        "backup_cleanup_complete",
        kind=wanted.value if wanted else "all",
        deleted=deleted,
    )
    return deleted


async def delete_artifact(registry: BackupRegistry, artifact_path) -> bool:
    """
    Delete one artifact file and reconcile the registry.

    Returns:
        True if deleted, False if the file did not exist
    """
    if not artifact_path.exists():
        return False

    artifact_path.unlink()
    await registry.reconcile()

    logger.info("backup_deleted", filename=artifact_path.name)
    return True
