# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
EduVault Envelope Artifacts - Structured snapshots as JSON documents.

An envelope wraps the snapshot data with metadata and derived statistics:

    {
        "metadata": {"version", "type", "timestamp", "createdBy"},
        "data": {"collections": {...}},
        "statistics": {"collections", "totalDocuments", "size"}
    }

It is written as indented JSON, or as compact JSON compressed with gzip
(.json.gz). An envelope is admissible for restore only when
metadata.version, metadata.timestamp and data are all present.
"""

import json
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict, TypedDict

import structlog

from eduvault.artifacts.compressor import gzip_compress, gzip_decompress, get_compression_stats
from eduvault.artifacts.files import (
    COMPRESSED_ENVELOPE_SUFFIX,
    ENVELOPE_PREFIX,
    ENVELOPE_SUFFIX,
    ArtifactInfo,
    release_artifact_path,
    unique_artifact_path,
    write_atomic,
)
from eduvault.config import ArtifactKind, ArtifactStrategy
from eduvault.exceptions import ValidationError
from eduvault.source import Snapshot

logger = structlog.get_logger()

ENVELOPE_VERSION = "2.0.0"


class EnvelopeMetadata(TypedDict):
    version: str
    type: str
    timestamp: str
    createdBy: str


class EnvelopeStatistics(TypedDict):
    collections: int
    totalDocuments: int
    size: int


class Envelope(TypedDict):
    metadata: EnvelopeMetadata
    data: Any
    statistics: EnvelopeStatistics


def _dumps(value: Any, indent: int | None = None) -> str:
    separators = None if indent else (",", ":")
    return json.dumps(value, indent=indent, separators=separators, ensure_ascii=False, default=str)


def compute_statistics(data: Any) -> EnvelopeStatistics:
    """
    Derive envelope statistics from snapshot data.

    totalDocuments sums the lengths of list-valued collections; anything
    else in a collection slot counts as zero documents.
    """
    collections = data.get("collections") if isinstance(data, dict) else None
    collections = collections if isinstance(collections, dict) else {}
    total = sum(len(records) for records in collections.values() if isinstance(records, list))
    return EnvelopeStatistics(
        collections=len(collections),
        totalDocuments=total,
        size=len(_dumps(data)),
    )


def build_envelope(
    data: Any,
    kind: ArtifactKind,
    created_by: str,
    moment: datetime | None = None,
) -> Envelope:
    """Wrap snapshot data with metadata and statistics."""
    moment = moment or datetime.now(UTC)
    return Envelope(
        metadata=EnvelopeMetadata(
            version=ENVELOPE_VERSION,
            type=kind.value,
            timestamp=moment.isoformat().replace("+00:00", "Z"),
            createdBy=created_by,
        ),
        data=data,
        statistics=compute_statistics(data),
    )


def validate_envelope(document: Any) -> Envelope:
    """
    Check envelope admissibility.

    Raises:
        ValidationError: If metadata.version, metadata.timestamp or data is missing
    """
    if not isinstance(document, dict):
        raise ValidationError(
            "Backup envelope must be a JSON object",
            details={"type": type(document).__name__},
        )

    metadata = document.get("metadata")
    missing = []
    if not isinstance(metadata, dict):
        missing.append("metadata")
    else:
        if not metadata.get("version"):
            missing.append("metadata.version")
        if not metadata.get("timestamp"):
            missing.append("metadata.timestamp")
    if document.get("data") in (None, ""):
        missing.append("data")

    if missing:
        raise ValidationError(
            "Invalid backup envelope",
            details={"missing": missing},
        )
    return document  # type: ignore[return-value]


async def parse_envelope(raw: bytes, compressed: bool) -> Envelope:
    """
    Decode (and decompress) an envelope document, then validate it.

    Raises:
        ArtifactIOError: If decompression fails
        ValidationError: If the document is not valid JSON or not admissible
    """
    if compressed:
        raw = await gzip_decompress(raw)
    try:
        document = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise ValidationError(f"Backup envelope is not valid JSON: {e}")
    return validate_envelope(document)


def encode_envelope(envelope: Envelope) -> bytes:
    """Serialize an envelope as compact JSON."""
    return _dumps(envelope).encode("utf-8")


async def write_envelope_artifact(
    snapshot: Snapshot,
    kind: ArtifactKind,
    directory: Path,
    compressed: bool = True,
    created_by: str = "system",
) -> ArtifactInfo:
    """
    Write a snapshot's collections as an envelope artifact.

    The file name is unique per instant, and the file only appears under
    that name once the write has completed.

    Args:
        snapshot: Snapshot to serialize
        kind: auto or manual
        directory: Directory for the artifact (usually the kind's directory)
        compressed: gzip the document
        created_by: Author recorded in metadata.createdBy

    Returns:
        ArtifactInfo of the written file
    """
    suffix = COMPRESSED_ENVELOPE_SUFFIX if compressed else ENVELOPE_SUFFIX
    directory.mkdir(parents=True, exist_ok=True)
    path, moment = unique_artifact_path(directory, ENVELOPE_PREFIX, suffix)

    try:
        envelope = build_envelope(snapshot.to_data(), kind, created_by, moment)

        if compressed:
            document = encode_envelope(envelope)
            payload = await gzip_compress(document)
            logger.debug(
                "envelope_compressed",
                filename=path.name,
                **get_compression_stats(len(document), len(payload)),
            )
        else:
            payload = _dumps(envelope, indent=2).encode("utf-8")

        size = await write_atomic(path, payload)
    finally:
        release_artifact_path(path)

    return ArtifactInfo(
        filename=path.name,
        kind=kind,
        strategy=ArtifactStrategy.ENVELOPE,
        compressed=compressed,
        path=path,
        size_bytes=size,
        created_at=moment,
    )
