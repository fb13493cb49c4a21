# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Artifact Strategies - Envelope and tree backup files.
"""

from eduvault.artifacts.files import (
    ArtifactInfo,
    describe_artifact,
    is_artifact_name,
    parse_artifact_timestamp,
    read_artifact,
)

from eduvault.artifacts.envelope import (
    ENVELOPE_VERSION,
    Envelope,
    build_envelope,
    parse_envelope,
    validate_envelope,
    write_envelope_artifact,
)

from eduvault.artifacts.tree import (
    MANIFEST_NAME,
    write_tree_artifact,
)

__all__ = [
    # Files
    "ArtifactInfo",
    "describe_artifact",
    "is_artifact_name",
    "parse_artifact_timestamp",
    "read_artifact",
    # Envelope
    "ENVELOPE_VERSION",
    "Envelope",
    "build_envelope",
    "parse_envelope",
    "validate_envelope",
    "write_envelope_artifact",
    # Tree
    "MANIFEST_NAME",
    "write_tree_artifact",
]
