# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
EduVault Artifact Files - Naming, metadata and atomic writes.

Artifact filenames embed their creation timestamp with ':' and '.'
replaced by '-', so a plain sort on the name is a chronological sort:

    backup-2026-10-17T08-30-00-123456Z.json.gz
    media-2026-10-17T08-30-00-123456Z.tar.zst
"""

import os
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, UTC
from pathlib import Path

import aiofiles
import structlog
from ulid import ULID

from eduvault.config import ArtifactKind, ArtifactStrategy
from eduvault.exceptions import ArtifactIOError

logger = structlog.get_logger()

ENVELOPE_PREFIX = "backup-"
TREE_PREFIX = "media-"
ENVELOPE_SUFFIX = ".json"
COMPRESSED_ENVELOPE_SUFFIX = ".json.gz"
TREE_SUFFIX = ".tar.zst"

ARTIFACT_SUFFIXES = (COMPRESSED_ENVELOPE_SUFFIX, ENVELOPE_SUFFIX, TREE_SUFFIX)

_TOKEN_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
_TOKEN_RE = re.compile(
    r"(\d{4}-\d{2}-\d{2})T(\d{2})-(\d{2})-(\d{2})-(\d{3,6})Z"
)


@dataclass
class ArtifactInfo:
    """Metadata of one artifact file on disk."""

    filename: str
    kind: ArtifactKind
    strategy: ArtifactStrategy
    compressed: bool
    path: Path
    size_bytes: int
    created_at: datetime


def timestamp_token(moment: datetime) -> str:
    """Filesystem-safe, sortable form of a UTC timestamp."""
    return moment.astimezone(UTC).strftime(_TOKEN_FORMAT).replace(":", "-").replace(".", "-")


def parse_artifact_timestamp(filename: str) -> datetime | None:
    """Recover the creation time embedded in an artifact filename."""
    match = _TOKEN_RE.search(filename)
    if not match:
        return None
    day, hour, minute, second, fraction = match.groups()
    try:
        return datetime.strptime(
            f"{day}T{hour}:{minute}:{second}.{fraction.ljust(6, '0')}",
            "%Y-%m-%dT%H:%M:%S.%f",
        ).replace(tzinfo=UTC)
    except ValueError:
        return None


def is_artifact_name(filename: str) -> bool:
    return filename.endswith(ARTIFACT_SUFFIXES) and not filename.startswith(".")


def strategy_of(filename: str) -> ArtifactStrategy:
    """Strategy that produced a file, judged by its suffix."""
    if filename.endswith(TREE_SUFFIX):
        return ArtifactStrategy.TREE
    return ArtifactStrategy.ENVELOPE


def is_compressed(filename: str) -> bool:
    return filename.endswith((COMPRESSED_ENVELOPE_SUFFIX, TREE_SUFFIX))


# Paths handed out by unique_artifact_path whose file is not written yet
_claimed: set = set()


def unique_artifact_path(
    directory: Path,
    prefix: str,
    suffix: str,
    moment: datetime | None = None,
) -> tuple[Path, datetime]:
    """
    Pick a free, timestamped artifact path in directory.

    The timestamp is bumped one microsecond at a time until the name is
    neither on disk nor claimed by a write still in flight, so two creations
    in the same instant get distinct names. The caller must hand the path
    back with release_artifact_path() once its write has finished or failed.
    """
    moment = moment or datetime.now(UTC)
    while True:
        candidate = directory / f"{prefix}{timestamp_token(moment)}{suffix}"
        if candidate not in _claimed and not candidate.exists():
            _claimed.add(candidate)
            return candidate, moment
        moment += timedelta(microseconds=1)


def release_artifact_path(path: Path) -> None:
    """Drop the claim taken by unique_artifact_path."""
    _claimed.discard(path)


def describe_artifact(path: Path, kind: ArtifactKind) -> ArtifactInfo:
    """Build ArtifactInfo from a file on disk."""
    stat = path.stat()
    created_at = parse_artifact_timestamp(path.name) or datetime.fromtimestamp(
        stat.st_mtime, UTC
    )
    return ArtifactInfo(
        filename=path.name,
        kind=kind,
        strategy=strategy_of(path.name),
        compressed=is_compressed(path.name),
        path=path,
        size_bytes=stat.st_size,
        created_at=created_at,
    )


def temp_path_for(path: Path) -> Path:
    """Hidden sibling used while an artifact is being written."""
    return path.with_name(f".{path.name}.{ULID()}.tmp")


async def write_atomic(path: Path, payload: bytes) -> int:
    """
    Write bytes to path atomically (write to temp, then rename).

    Returns:
        Size of the written file in bytes
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = temp_path_for(path)

    try:
        async with aiofiles.open(temp_path, "wb") as f:
            await f.write(payload)
            await f.flush()

        # Rename to final path (atomic on most filesystems)
        os.replace(temp_path, path)

    except Exception as e:
        if temp_path.exists():
            temp_path.unlink()
        raise ArtifactIOError(
            f"Failed to write artifact: {e}",
            details={"path": str(path)},
        )

    size = path.stat().st_size
    logger.debug("artifact_file_written", path=str(path), size=size)
    return size


async def read_artifact(path: Path) -> bytes:
    """
    Read an artifact file.

    Raises:
        ArtifactIOError: If the file cannot be read
    """
    try:
        async with aiofiles.open(path, "rb") as f:
            return await f.read()
    except Exception as e:
        raise ArtifactIOError(
            f"Failed to read artifact: {e}",
            details={"path": str(path)},
        )
