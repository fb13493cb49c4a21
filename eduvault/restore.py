# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
EduVault Restore Engine - Locate, load, validate, apply.

Every restore runs the same steps and stops at the first failure:

1. Locate: resolve the filename against the backup directories
2. Load: read (and decompress) the artifact
3. Validate: parse the envelope and check admissibility
4. Apply: hand envelope data back to the caller, or swap a tree
   artifact's entries into the live directory

Validation always finishes before anything touches live state. Tree
artifacts are extracted into a RestoreSession staging directory that is
removed when the restore returns, whether it succeeded or not.
"""

import os
import shutil
from dataclasses import dataclass, field
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, List

import structlog
from ulid import ULID

from eduvault.artifacts.compressor import run_blocking
from eduvault.artifacts.envelope import Envelope, parse_envelope
from eduvault.artifacts.files import is_compressed, read_artifact, strategy_of
from eduvault.artifacts.tree import decompress_tree, extract_tree, read_tree_envelope
from eduvault.config import ArtifactKind, ArtifactStrategy, EngineConfig, parse_kind
from eduvault.exceptions import (
    ApplyError,
    ArtifactIOError,
    EduVaultError,
    NotFoundError,
)
from eduvault.source import RestoreApplier

logger = structlog.get_logger()


@dataclass
class RestoreResult:
    """Result of a restore operation."""

    success: bool
    filename: str
    strategy: ArtifactStrategy | None = None
    metadata: dict | None = None
    data: Any = None
    statistics: dict | None = None
    applied: Any = None
    restored_entries: List[str] = field(default_factory=list)
    error: EduVaultError | None = None
    duration_seconds: float = 0.0


class RestoreSession:
    """
    Staging directory owned by one restore call.

    Use as an async context manager; the directory is removed on exit.
    """

    def __init__(self, staging_root: Path):
        self.session_id = str(ULID())
        self.path = staging_root / f"restore_{self.session_id}"

    async def __aenter__(self) -> "RestoreSession":
        self.path.mkdir(parents=True, exist_ok=False)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self.path.exists():
            await run_blocking(shutil.rmtree, self.path, True)
        logger.debug("restore_session_removed", session_id=self.session_id)


def locate_artifact(
    config: EngineConfig,
    filename: str,
    kind: ArtifactKind | str | None = None,
) -> Path:
    """
    Find the artifact file for a filename.

    With a kind, the only candidate is <backup_dir>/<kind>/<filename>.
    Without one, manual, auto and the root backup directory are searched
    in that order.

    Raises:
        NotFoundError: If the filename is unsafe or no candidate exists
    """
    if (
        not filename
        or Path(filename).name != filename
        or filename in (".", "..")
        or filename == config.registry_path.name
    ):
        raise NotFoundError(
            f"Backup not found: {filename!r}",
            details={"filename": filename},
        )

    wanted = parse_kind(kind)
    if wanted is not None:
        candidates = [config.kind_dir(wanted) / filename]
    else:
        candidates = [
            config.manual_dir / filename,
            config.auto_dir / filename,
            config.backup_dir / filename,
        ]

    for candidate in candidates:
        if candidate.is_file():
            return candidate

    raise NotFoundError(
        f"Backup not found: {filename}",
        details={"searched": [str(c) for c in candidates]},
    )


def _remove_path(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


def _swap_entry(staged: Path, target: Path, aside: Path) -> None:
    """
    Replace target with staged.

    The live entry is renamed aside first (same directory, so the rename is
    atomic), then the staged entry is moved in. On failure the aside copy is
    put back.
    """
    had_live = target.exists() or target.is_symlink()
    if had_live:
        os.replace(target, aside)

    try:
        shutil.move(str(staged), str(target))
    except Exception:
        _remove_path(target)
        if had_live:
            os.replace(aside, target)
        raise

    if had_live:
        _remove_path(aside)


async def apply_tree(staged_root: Path, target_dir: Path, session_id: str) -> List[str]:
    """
    Swap every staged top-level entry into target_dir.

    A failure rolls back the entry being swapped and stops; entries
    swapped before it stay restored.

    Returns:
        Names of the applied entries
    """
    target_dir.mkdir(parents=True, exist_ok=True)
    applied: List[str] = []

    for staged in sorted(staged_root.iterdir()):
        target = target_dir / staged.name
        aside = target_dir / f".{staged.name}.pre-restore-{session_id}"
        try:
            await run_blocking(_swap_entry, staged, target, aside)
        except OSError as e:
            raise ArtifactIOError(
                f"Failed to apply restored entry {staged.name}: {e}",
                details={"entry": staged.name, "applied": list(applied)},
            )
        applied.append(staged.name)
        logger.debug("restore_entry_applied", entry=staged.name, target=str(target))

    return applied


async def _load_envelope(path: Path) -> Envelope:
    raw = await read_artifact(path)
    return await parse_envelope(raw, compressed=is_compressed(path.name))


async def _restore(
    config: EngineConfig,
    result: RestoreResult,
    kind: ArtifactKind | str | None,
    target_dir: Path | None,
    applier: RestoreApplier | None,
) -> None:
    # Step 1: Locate
    path = locate_artifact(config, result.filename, kind)
    result.strategy = strategy_of(path.name)

    logger.info(
        "restore_started",
        filename=result.filename,
        path=str(path),
        strategy=result.strategy.value,
    )

    if result.strategy == ArtifactStrategy.ENVELOPE:
        # Steps 2-3: Load and validate
        envelope = await _load_envelope(path)
        result.metadata = envelope["metadata"]
        result.data = envelope["data"]
        result.statistics = envelope.get("statistics")

        # Step 4: Apply (only through an injected applier)
        if applier is not None:
            try:
                result.applied = await applier.apply_restored_data(envelope["data"])
            except EduVaultError:
                raise
            except Exception as e:
                raise ApplyError(
                    f"Failed to apply restored data: {e}",
                    details={"filename": result.filename},
                )
        return

    async with RestoreSession(config.staging_dir) as session:
        # Step 2: Load
        tar_path = await decompress_tree(path, session.path)

        # Step 3: Validate
        envelope = await read_tree_envelope(tar_path)
        result.metadata = envelope["metadata"]
        result.data = envelope["data"]
        result.statistics = envelope.get("statistics")

        # Step 4: Extract into the session, then swap into place
        staged_root = session.path / "tree"
        await extract_tree(tar_path, staged_root)
        tar_path.unlink()

        result.restored_entries = await apply_tree(
            staged_root,
            target_dir or config.live_root,
            session.session_id,
        )


async def restore_backup(
    config: EngineConfig,
    filename: str,
    kind: ArtifactKind | str | None = None,
    target_dir: Path | None = None,
    applier: RestoreApplier | None = None,
) -> RestoreResult:
    """
    Restore one backup by filename.

    Envelope artifacts return their validated metadata, data and
    statistics; the data is written to the live store only if an applier
    is given. Tree artifacts are applied onto target_dir (default: the
    configured live_root).

    Args:
        config: Engine configuration
        filename: Artifact filename (no directories)
        kind: Deterministic lookup in this kind's directory; None searches
            manual, auto, then the root backup directory
        target_dir: Live directory for tree artifacts
        applier: Optional collaborator applying envelope data

    Returns:
        RestoreResult; never raises for engine errors
    """
    start_time = datetime.now(UTC)
    result = RestoreResult(success=False, filename=filename)

    try:
        await _restore(config, result, kind, target_dir, applier)
        result.success = True
    except EduVaultError as e:
        result.error = e
    except Exception as e:
        result.error = ArtifactIOError(
            f"Restore failed: {e}",
            details={"filename": filename},
        )

    result.duration_seconds = (datetime.now(UTC) - start_time).total_seconds()

    if result.success:
        logger.info(
            "restore_completed",
            filename=filename,
            strategy=result.strategy.value if result.strategy else None,
            entries=len(result.restored_entries),
            duration=result.duration_seconds,
        )
    else:
        logger.error(
            "restore_failed",
            filename=filename,
            error_type=type(result.error).__name__,
            error=str(result.error),
        )

    return result
