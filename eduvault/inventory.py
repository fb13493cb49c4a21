# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
EduVault Inventory - What actually exists in the backup directories.

Listings here come from the filesystem, never from the registry.
"""

from typing import List

import structlog

from eduvault.artifacts.files import ArtifactInfo, describe_artifact, is_artifact_name
from eduvault.config import ArtifactKind, ArtifactStrategy, EngineConfig, parse_kind

logger = structlog.get_logger()


def list_artifacts(
    config: EngineConfig,
    kind: ArtifactKind | str | None = "all",
    strategy: ArtifactStrategy | None = None,
) -> List[ArtifactInfo]:
    """
    List artifacts on disk, newest first.

    Creation time comes from the timestamp embedded in the filename,
    falling back to the file's mtime. Files that vanish while listing are
    skipped.

    Args:
        config: Engine configuration
        kind: "auto", "manual" or "all"
        strategy: Optional strategy filter

    Returns:
        Artifacts sorted by creation time, newest first
    """
    wanted = parse_kind(kind)
    kinds = [wanted] if wanted is not None else [ArtifactKind.MANUAL, ArtifactKind.AUTO]

    artifacts: List[ArtifactInfo] = []
    for artifact_kind in kinds:
        directory = config.kind_dir(artifact_kind)
        if not directory.exists():
            continue
        for path in directory.iterdir():
            if not path.is_file() or not is_artifact_name(path.name):
                continue
            try:
                info = describe_artifact(path, artifact_kind)
            except FileNotFoundError:
                continue
            if strategy is not None and info.strategy != strategy:
                continue
            artifacts.append(info)

    artifacts.sort(key=lambda a: (a.created_at, a.filename), reverse=True)
    return artifacts


def get_backup_stats(config: EngineConfig) -> dict:
    """
    Get statistics about backup storage.

    Returns:
        Dict with totals and per-kind counts and sizes
    """
    backups = list_artifacts(config, "all")
    auto = [b for b in backups if b.kind == ArtifactKind.AUTO]
    manual = [b for b in backups if b.kind == ArtifactKind.MANUAL]

    return {
        "total": len(backups),
        "auto": len(auto),
        "manual": len(manual),
        "envelope": len([b for b in backups if b.strategy == ArtifactStrategy.ENVELOPE]),
        "tree": len([b for b in backups if b.strategy == ArtifactStrategy.TREE]),
        "total_size": sum(b.size_bytes for b in backups),
        "auto_size": sum(b.size_bytes for b in auto),
        "manual_size": sum(b.size_bytes for b in manual),
        "oldest": backups[-1].created_at.isoformat() if backups else None,
        "newest": backups[0].created_at.isoformat() if backups else None,
    }
