# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
EduVault Tree Artifacts - Media directories as one compressed container.

Each captured root becomes a named top-level entry of a tar stream that is
compressed with zstd on the fly. The first member is a small envelope
describing the tree, so tree artifacts pass through the same
admissibility check as envelope artifacts before anything is extracted.
"""

import io
import json
import os
import posixpath
import tarfile
import time
from pathlib import Path
from typing import Iterator, List, Sequence

import structlog

from eduvault.artifacts.compressor import (
    DEFAULT_ZSTD_LEVEL,
    decompress_zstd_file,
    open_zstd_writer,
    run_blocking,
)
from eduvault.artifacts.envelope import (
    Envelope,
    build_envelope,
    encode_envelope,
    validate_envelope,
)
from eduvault.artifacts.files import temp_path_for
from eduvault.config import ArtifactKind
from eduvault.exceptions import ArtifactIOError, ValidationError

logger = structlog.get_logger()

# Reserved member holding the tree's envelope
MANIFEST_NAME = ".eduvault-envelope.json"


def _existing_roots(file_roots: Sequence[Path]) -> List[Path]:
    """Roots that exist, first occurrence of each entry name wins."""
    roots: List[Path] = []
    seen: set = set()
    for root in file_roots:
        root = Path(root)
        if not root.exists():
            logger.debug("tree_root_skipped_missing", root=str(root))
            continue
        if root.name in seen or root.name == MANIFEST_NAME:
            logger.warning("tree_root_skipped_duplicate", root=str(root))
            continue
        seen.add(root.name)
        roots.append(root)
    return roots


def _measure(roots: Sequence[Path]) -> tuple[int, int]:
    """Count files and bytes below the roots."""
    files = 0
    total = 0
    for root in roots:
        paths = [root] if root.is_file() else root.rglob("*")
        for path in paths:
            if path.is_file():
                files += 1
                total += path.stat().st_size
    return files, total


def _link_filter(root: Path):
    """
    tar.add filter for one root.

    Symlinks that stay inside the archive are kept as links. A link that is
    absolute or climbs out of the archive would be refused on extraction,
    so a link to a regular file is stored as a copy of that file and any
    other such link is skipped.
    """

    def _filter(info: tarfile.TarInfo) -> tarfile.TarInfo | None:
        if not info.issym():
            return info

        resolved = posixpath.normpath(
            posixpath.join(posixpath.dirname(info.name), info.linkname)
        )
        escapes = resolved == ".." or resolved.startswith("../")
        if not posixpath.isabs(info.linkname) and not escapes:
            return info

        source = root.parent / info.name
        if source.is_file():
            stat = source.stat()
            info.type = tarfile.REGTYPE
            info.linkname = ""
            info.size = stat.st_size
            info.mode = stat.st_mode & 0o7777
            logger.debug("tree_link_dereferenced", member=info.name)
            return info

        logger.warning("tree_link_skipped", member=info.name, target=info.linkname)
        return None

    return _filter


def _write_tree_sync(
    roots: Sequence[Path],
    temp_path: Path,
    manifest: bytes,
    level: int,
) -> None:
    with open(temp_path, "wb") as raw:
        with open_zstd_writer(raw, level) as compressed:
            with tarfile.open(fileobj=compressed, mode="w|") as tar:
                info = tarfile.TarInfo(MANIFEST_NAME)
                info.size = len(manifest)
                info.mtime = int(time.time())
                tar.addfile(info, io.BytesIO(manifest))

                for root in roots:
                    tar.add(root, arcname=root.name, filter=_link_filter(root))


async def write_tree_artifact(
    file_roots: Sequence[Path],
    destination: Path,
    kind: ArtifactKind = ArtifactKind.MANUAL,
    created_by: str = "system",
    level: int = DEFAULT_ZSTD_LEVEL,
) -> int:
    """
    Stream file roots into a zstd-compressed tar at destination.

    Roots that do not exist are skipped; media folders may not have been
    created yet. The archive is written to a temp file and only renamed to
    destination after the compressor and the file are closed. Any error
    removes the temp file, so no partial artifact is left behind.

    Args:
        file_roots: Directories (or single files) to capture
        destination: Final artifact path (.tar.zst)
        kind: Recorded in the tree envelope
        created_by: Recorded in the tree envelope
        level: zstd compression level

    Returns:
        Size of the artifact in bytes
    """
    roots = _existing_roots(file_roots)
    files, total_bytes = await run_blocking(_measure, roots)

    envelope = build_envelope({"entries": [root.name for root in roots]}, kind, created_by)
    envelope["statistics"] = {
        "collections": len(roots),
        "totalDocuments": files,
        "size": total_bytes,
    }

    destination.parent.mkdir(parents=True, exist_ok=True)
    temp_path = temp_path_for(destination)

    try:
        await run_blocking(_write_tree_sync, roots, temp_path, encode_envelope(envelope), level)
        os.replace(temp_path, destination)
    except Exception as e:
        if temp_path.exists():
            temp_path.unlink()
        raise ArtifactIOError(
            f"Failed to write tree artifact: {e}",
            details={"destination": str(destination)},
        )

    size = destination.stat().st_size
    logger.info(
        "tree_artifact_written",
        path=str(destination),
        entries=len(roots),
        files=files,
        size=size,
    )
    return size


async def decompress_tree(artifact_path: Path, session_dir: Path) -> Path:
    """
    Decompress a tree artifact into a plain tar inside session_dir.

    Raises:
        ArtifactIOError: If the artifact cannot be read or decompressed
    """
    tar_path = session_dir / "payload.tar"
    try:
        await run_blocking(decompress_zstd_file, artifact_path, tar_path)
    except ArtifactIOError:
        raise
    except OSError as e:
        raise ArtifactIOError(
            f"Failed to read tree artifact: {e}",
            details={"path": str(artifact_path)},
        )
    return tar_path


def _read_manifest_sync(tar_path: Path) -> bytes | None:
    with tarfile.open(tar_path, "r:") as tar:
        try:
            member = tar.getmember(MANIFEST_NAME)
        except KeyError:
            return None
        handle = tar.extractfile(member)
        return handle.read() if handle else None


async def read_tree_envelope(tar_path: Path) -> Envelope:
    """
    Read and validate the envelope stored in a decompressed tree artifact.

    Raises:
        ArtifactIOError: If the tar is corrupt
        ValidationError: If the envelope is missing or not admissible
    """
    try:
        raw = await run_blocking(_read_manifest_sync, tar_path)
    except (tarfile.TarError, OSError, EOFError) as e:
        raise ArtifactIOError(
            f"Corrupt tree artifact: {e}",
            details={"path": str(tar_path)},
        )

    if raw is None:
        raise ValidationError(
            "Tree artifact has no envelope",
            details={"member": MANIFEST_NAME},
        )
    try:
        document = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise ValidationError(f"Tree envelope is not valid JSON: {e}")
    return validate_envelope(document)


def _safe_members(tar: tarfile.TarFile) -> Iterator[tarfile.TarInfo]:
    for member in tar.getmembers():
        if member.name == MANIFEST_NAME:
            continue
        # Security: Check for path traversal
        if member.name.startswith("/") or ".." in Path(member.name).parts:
            raise ArtifactIOError(
                f"Unsafe path in tree artifact: {member.name}",
                details={"member": member.name},
            )
        yield member


def _extract_sync(tar_path: Path, destination: Path) -> None:
    with tarfile.open(tar_path, "r:") as tar:
        tar.extractall(destination, members=_safe_members(tar), filter="data")


async def extract_tree(tar_path: Path, destination: Path) -> List[Path]:
    """
    Extract a decompressed tree artifact into destination.

    Returns:
        The extracted top-level entries
    """
    destination.mkdir(parents=True, exist_ok=True)
    try:
        await run_blocking(_extract_sync, tar_path, destination)
    except ArtifactIOError:
        raise
    except (tarfile.TarError, OSError, EOFError) as e:
        raise ArtifactIOError(
            f"Failed to extract tree artifact: {e}",
            details={"path": str(tar_path)},
        )
    return sorted(destination.iterdir())
