# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Critical Safety Tests for EduVault.

These tests verify the core safety guarantees:
1. Round-trip - A restored backup returns exactly the data backed up
2. Validate before apply - A bad artifact never reaches the live store
3. Retention bound - At most keep_count backups of a kind survive a sweep
4. Registry bound - The registry never grows beyond its cap
5. Tree restore - Media restores replace live entries and clean up staging

These tests MUST pass before any production deployment.
"""

import asyncio
import gzip
import io
import json
import os
import shutil
import tarfile
import time
from pathlib import Path

import pytest
import zstandard as zstd

from eduvault.artifacts.envelope import build_envelope, encode_envelope
from eduvault.artifacts.tree import MANIFEST_NAME
from eduvault.config import ArtifactKind, ArtifactStrategy, EngineConfig
from eduvault.core import BackupEngine
from eduvault.exceptions import (
    ApplyError,
    ArtifactIOError,
    NotFoundError,
    ValidationError,
)


# ============================================================================
# Test 1: ROUND-TRIP
# ============================================================================

@pytest.mark.asyncio
async def test_restore_returns_exactly_the_backed_up_data(engine: BackupEngine, snapshot):
    """
    CRITICAL: Restoring a backup must return the snapshot data unchanged.
    """
    result = await engine.create_backup(snapshot, kind="manual")
    assert result.success, result.error
    assert result.filename.startswith("backup-")
    assert result.filename.endswith(".json.gz")

    restored = await engine.restore_backup(result.filename)

    assert restored.success, restored.error
    assert restored.strategy == ArtifactStrategy.ENVELOPE
    assert restored.data == snapshot.to_data()
    assert restored.metadata["version"] == "2.0.0"
    assert restored.metadata["type"] == "manual"
    assert restored.statistics["collections"] == 3
    assert restored.statistics["totalDocuments"] == 120


@pytest.mark.asyncio
async def test_compression_is_transparent_to_restore(engine: BackupEngine, snapshot):
    """Compressed and plain envelopes restore to identical data."""
    plain = await engine.create_backup(snapshot, compressed=False)
    packed = await engine.create_backup(snapshot, compressed=True)

    assert plain.filename.endswith(".json") and not plain.filename.endswith(".json.gz")
    assert packed.filename.endswith(".json.gz")
    assert packed.size_bytes < plain.size_bytes

    plain_restore = await engine.restore_backup(plain.filename)
    packed_restore = await engine.restore_backup(packed.filename)

    assert plain_restore.success and packed_restore.success
    assert plain_restore.data == packed_restore.data == snapshot.to_data()


@pytest.mark.asyncio
async def test_plain_envelope_is_readable_json(engine: BackupEngine, snapshot):
    result = await engine.create_backup(snapshot, compressed=False)

    document = json.loads(result.path.read_text(encoding="utf-8"))

    assert set(document) == {"metadata", "data", "statistics"}
    assert document["metadata"]["createdBy"] == "system"
    assert document["metadata"]["timestamp"].endswith("Z")


@pytest.mark.asyncio
async def test_restore_applies_data_through_applier(engine: BackupEngine, applier, snapshot):
    result = await engine.create_backup(snapshot)

    restored = await engine.restore_backup(result.filename)

    assert restored.success
    assert applier.calls == [snapshot.to_data()]
    assert restored.applied == 3


@pytest.mark.asyncio
async def test_restore_without_apply_leaves_live_store_alone(engine: BackupEngine, applier, snapshot):
    result = await engine.create_backup(snapshot)

    restored = await engine.restore_backup(result.filename, apply=False)

    assert restored.success
    assert restored.data == snapshot.to_data()
    assert applier.calls == []


# ============================================================================
# Test 2: VALIDATE BEFORE APPLY
# ============================================================================

@pytest.mark.asyncio
async def test_missing_backup_changes_nothing(engine: BackupEngine, engine_config, snapshot, list_dir):
    """
    CRITICAL: Restoring an unknown filename fails with NotFound and leaves
    the registry and backup directories untouched.
    """
    await engine.create_backup(snapshot)
    registry_before = engine_config.registry_path.read_text()
    manual_before = list_dir(engine_config.manual_dir)

    restored = await engine.restore_backup("backup-1999-01-01T00-00-00-000000Z.json.gz")

    assert not restored.success
    assert isinstance(restored.error, NotFoundError)
    assert engine_config.registry_path.read_text() == registry_before
    assert list_dir(engine_config.manual_dir) == manual_before


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "filename",
    ["../secrets.json", "manual/backup-x.json", "", "..", "backup-registry.json"],
)
async def test_unsafe_filenames_are_not_found(engine: BackupEngine, engine_config, filename):
    (engine_config.backup_dir / "secrets.json").write_text("{}")

    restored = await engine.restore_backup(filename)

    assert not restored.success
    assert isinstance(restored.error, NotFoundError)


@pytest.mark.asyncio
async def test_malformed_envelope_fails_before_apply(engine: BackupEngine, engine_config, applier):
    """
    CRITICAL: An envelope missing metadata.version is rejected and the
    applier is never called.
    """
    document = {
        "metadata": {"type": "manual", "timestamp": "2024-01-01T00:00:00Z"},
        "data": {"collections": {"users": [{"id": 1}]}},
    }
    filename = "backup-2024-01-01T00-00-00-000000Z.json.gz"
    (engine_config.manual_dir / filename).write_bytes(gzip.compress(json.dumps(document).encode()))

    restored = await engine.restore_backup(filename)

    assert not restored.success
    assert isinstance(restored.error, ValidationError)
    assert "metadata.version" in restored.error.details["missing"]
    assert applier.calls == []


@pytest.mark.asyncio
async def test_corrupt_compressed_envelope_is_an_io_error(engine: BackupEngine, engine_config, applier):
    filename = "backup-2024-01-01T00-00-00-000000Z.json.gz"
    (engine_config.manual_dir / filename).write_bytes(b"definitely not gzip")

    restored = await engine.restore_backup(filename)

    assert not restored.success
    assert isinstance(restored.error, ArtifactIOError)
    assert applier.calls == []


@pytest.mark.asyncio
async def test_applier_failure_is_reported_as_apply_error(engine_config, snapshot, failing_applier):
    engine = BackupEngine(engine_config, applier=failing_applier)
    result = await engine.create_backup(snapshot)

    restored = await engine.restore_backup(result.filename)

    assert not restored.success
    assert isinstance(restored.error, ApplyError)
    assert restored.data == snapshot.to_data()


@pytest.mark.asyncio
async def test_kind_lookup_is_deterministic(engine: BackupEngine, snapshot):
    result = await engine.create_backup(snapshot, kind="auto")

    wrong_kind = await engine.restore_backup(result.filename, kind="manual")
    right_kind = await engine.restore_backup(result.filename, kind="auto")
    searched = await engine.restore_backup(result.filename)

    assert isinstance(wrong_kind.error, NotFoundError)
    assert right_kind.success
    assert searched.success


# ============================================================================
# Test 3: RETENTION BOUND
# ============================================================================

@pytest.mark.asyncio
async def test_twelve_manual_backups_keep_newest_ten(engine: BackupEngine, engine_config, snapshot, list_dir):
    """
    CRITICAL: After 12 manual backups with keep_count=10, exactly the 10
    newest remain and each one restores the full snapshot.
    """
    filenames = []
    for _ in range(12):
        result = await engine.create_backup(snapshot, kind="manual")
        assert result.success
        filenames.append(result.filename)

    remaining = list_dir(engine_config.manual_dir)
    assert remaining == sorted(filenames[2:])

    for filename in remaining:
        restored = await engine.restore_backup(filename)
        assert restored.success
        assert restored.statistics["totalDocuments"] == 120


@pytest.mark.asyncio
async def test_retention_is_per_kind(temp_dir: Path, snapshot, list_dir):
    config = EngineConfig(backup_dir=temp_dir / "backups", keep_count=5, keep_auto=2)
    engine = BackupEngine(config)

    for _ in range(4):
        await engine.create_backup(snapshot, kind="auto")
        await engine.create_backup(snapshot, kind="manual")

    assert len(list_dir(config.auto_dir)) == 2
    assert len(list_dir(config.manual_dir)) == 4


@pytest.mark.asyncio
async def test_media_backups_never_evict_data_backups(temp_dir: Path, snapshot, list_dir):
    media = temp_dir / "uploads"
    media.mkdir()
    (media / "a.png").write_bytes(b"png")
    config = EngineConfig(backup_dir=temp_dir / "backups", keep_count=2, media_roots=[media])
    engine = BackupEngine(config)

    for _ in range(3):
        assert (await engine.create_backup(snapshot)).success
        assert (await engine.create_media_backup()).success

    names = list_dir(config.manual_dir)
    assert len([n for n in names if n.startswith("backup-")]) == 2
    assert len([n for n in names if n.startswith("media-")]) == 2


@pytest.mark.asyncio
async def test_cleanup_reconciles_registry(engine: BackupEngine, engine_config, snapshot, read_registry):
    for _ in range(5):
        await engine.create_backup(snapshot, auto_cleanup=False)

    deleted = await engine.cleanup_old_backups("manual", keep_count=1)

    assert deleted == 4
    entries = read_registry(engine_config)
    assert len(entries) == 1
    assert Path(entries[0]["path"]).exists()


# ============================================================================
# Test 4: REGISTRY BOUND
# ============================================================================

@pytest.mark.asyncio
async def test_registry_never_exceeds_cap(engine_config, temp_dir: Path, make_snapshot, read_registry):
    """
    CRITICAL: After more than 50 creations the registry holds exactly the
    50 most recent entries.
    """
    engine = BackupEngine(engine_config)
    small = make_snapshot(collections=1, records=1)

    filenames = []
    for _ in range(53):
        result = await engine.create_backup(small, auto_cleanup=False)
        filenames.append(result.filename)

    entries = read_registry(engine_config)
    assert len(entries) == 50
    assert [e["filename"] for e in entries] == list(reversed(filenames[3:]))


@pytest.mark.asyncio
async def test_concurrent_creations_are_all_registered(engine: BackupEngine, engine_config, snapshot, read_registry):
    """
    CRITICAL: Backups created at the same time each land in the registry.
    """
    results = await asyncio.gather(
        *(engine.create_backup(snapshot, auto_cleanup=False) for _ in range(8))
    )

    filenames = {r.filename for r in results}
    assert all(r.success for r in results)
    assert len(filenames) == 8
    assert {e["filename"] for e in read_registry(engine_config)} == filenames


@pytest.mark.asyncio
async def test_registry_matches_disk_after_concurrent_sweeps(
    engine: BackupEngine, engine_config, snapshot, read_registry, list_dir
):
    await asyncio.gather(*(engine.create_backup(snapshot) for _ in range(12)))
    await engine.cleanup_old_backups()

    on_disk = list_dir(engine_config.manual_dir)
    assert len(on_disk) == 10
    assert sorted(e["filename"] for e in read_registry(engine_config)) == on_disk


# ============================================================================
# Test 5: TREE RESTORE
# ============================================================================

@pytest.fixture
def live_media(engine_config: EngineConfig) -> Path:
    uploads = engine_config.live_root / "uploads"
    uploads.mkdir(parents=True)
    (uploads / "a.txt").write_text("original")
    (uploads / "nested").mkdir()
    (uploads / "nested" / "b.txt").write_text("deep")
    avatars = engine_config.live_root / "avatars"
    avatars.mkdir()
    (avatars / "me.png").write_bytes(b"\x89PNG")
    return engine_config.live_root


@pytest.mark.asyncio
async def test_tree_backup_skips_missing_roots(engine: BackupEngine, live_media: Path):
    result = await engine.create_media_backup(
        [live_media / "uploads", live_media / "does-not-exist", live_media / "avatars"]
    )

    assert result.success, result.error
    assert result.strategy == ArtifactStrategy.TREE
    assert result.filename.startswith("media-")
    assert result.filename.endswith(".tar.zst")

    restored = await engine.restore_backup(result.filename)

    assert restored.success, restored.error
    assert restored.data == {"entries": ["uploads", "avatars"]}
    assert restored.statistics["totalDocuments"] == 3
    assert restored.restored_entries == ["avatars", "uploads"]


@pytest.mark.asyncio
async def test_tree_restore_replaces_live_entries(engine: BackupEngine, engine_config, live_media: Path, list_dir):
    """
    CRITICAL: A tree restore replaces each captured entry with its backed-up
    contents and leaves no aside copies or staging directories behind.
    """
    result = await engine.create_media_backup([live_media / "uploads", live_media / "avatars"])
    assert result.success

    uploads = live_media / "uploads"
    (uploads / "a.txt").write_text("changed")
    (uploads / "added-later.txt").write_text("new")
    (live_media / "avatars" / "me.png").unlink()
    (live_media / "unrelated.txt").write_text("keep me")

    restored = await engine.restore_backup(result.filename)

    assert restored.success, restored.error
    assert (uploads / "a.txt").read_text() == "original"
    assert (uploads / "nested" / "b.txt").read_text() == "deep"
    assert not (uploads / "added-later.txt").exists()
    assert (live_media / "avatars" / "me.png").read_bytes() == b"\x89PNG"
    assert (live_media / "unrelated.txt").read_text() == "keep me"
    assert not [n for n in list_dir(live_media) if ".pre-restore-" in n]
    assert list_dir(engine_config.staging_dir) == []


@pytest.mark.asyncio
async def test_tree_restore_into_other_target(engine: BackupEngine, live_media: Path, temp_dir: Path):
    result = await engine.create_media_backup([live_media / "uploads"])
    target = temp_dir / "elsewhere"

    restored = await engine.restore_backup(result.filename, target_dir=target)

    assert restored.success
    assert (target / "uploads" / "a.txt").read_text() == "original"


@pytest.mark.asyncio
async def test_tree_backup_with_outside_links_restores(engine: BackupEngine, live_media: Path, temp_dir: Path):
    """
    CRITICAL: Links pointing outside the captured folders never make a media
    backup unrestorable.
    """
    outside = temp_dir / "shared" / "default.png"
    outside.parent.mkdir()
    outside.write_bytes(b"\x89PNG shared")
    uploads = live_media / "uploads"
    os.symlink(outside, uploads / "avatar.png")
    os.symlink(temp_dir / "gone.png", uploads / "dangling.png")
    os.symlink("a.txt", uploads / "latest.txt")

    result = await engine.create_media_backup([uploads])
    assert result.success, result.error

    shutil.rmtree(uploads)
    restored = await engine.restore_backup(result.filename)

    assert restored.success, restored.error
    assert not (uploads / "avatar.png").is_symlink()
    assert (uploads / "avatar.png").read_bytes() == b"\x89PNG shared"
    assert not (uploads / "dangling.png").exists()
    assert not (uploads / "dangling.png").is_symlink()
    assert (uploads / "latest.txt").is_symlink()
    assert (uploads / "latest.txt").read_text() == "original"
    assert (uploads / "a.txt").read_text() == "original"


@pytest.mark.asyncio
async def test_failed_swap_rolls_back_that_entry(
    engine: BackupEngine, engine_config, live_media: Path, monkeypatch, list_dir
):
    """
    CRITICAL: When moving an entry into place fails, that entry keeps its
    live contents, earlier entries stay restored and no aside copies or
    staging directories are left behind.
    """
    result = await engine.create_media_backup([live_media / "uploads", live_media / "avatars"])
    assert result.success

    (live_media / "uploads" / "a.txt").write_text("v2")
    (live_media / "avatars" / "me.png").write_bytes(b"v2")

    real_move = shutil.move

    def failing_move(src, dst, *args, **kwargs):
        if Path(dst).name == "uploads":
            raise OSError("disk full")
        return real_move(src, dst, *args, **kwargs)

    monkeypatch.setattr(shutil, "move", failing_move)

    restored = await engine.restore_backup(result.filename)

    assert not restored.success
    assert isinstance(restored.error, ArtifactIOError)
    assert restored.error.details["entry"] == "uploads"
    assert restored.error.details["applied"] == ["avatars"]
    assert (live_media / "avatars" / "me.png").read_bytes() == b"\x89PNG"
    assert (live_media / "uploads" / "a.txt").read_text() == "v2"
    assert (live_media / "uploads" / "nested" / "b.txt").read_text() == "deep"
    assert not [n for n in list_dir(live_media) if ".pre-restore-" in n]
    assert list_dir(engine_config.staging_dir) == []


def _write_tar_zst(path: Path, members: dict, manifest: bytes | None) -> None:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as tar:
        entries = dict(members)
        if manifest is not None:
            entries = {MANIFEST_NAME: manifest, **entries}
        for name, content in entries.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            info.mtime = int(time.time())
            tar.addfile(info, io.BytesIO(content))
    path.write_bytes(zstd.ZstdCompressor().compress(buffer.getvalue()))


@pytest.mark.asyncio
async def test_tree_restore_rejects_path_traversal(engine: BackupEngine, engine_config, temp_dir: Path, list_dir):
    """
    CRITICAL: A tree artifact with a member escaping the target is refused
    and nothing is written outside the staging directory.
    """
    envelope = build_envelope({"entries": ["uploads"]}, ArtifactKind.MANUAL, "attacker")
    filename = "media-2024-01-01T00-00-00-000000Z.tar.zst"
    _write_tar_zst(
        engine_config.manual_dir / filename,
        {"uploads/ok.txt": b"ok", "../../escaped.txt": b"evil"},
        encode_envelope(envelope),
    )

    restored = await engine.restore_backup(filename)

    assert not restored.success
    assert isinstance(restored.error, ArtifactIOError)
    assert not (temp_dir / "escaped.txt").exists()
    assert not (engine_config.backup_dir / "escaped.txt").exists()
    assert not (engine_config.live_root / "uploads").exists()
    assert list_dir(engine_config.staging_dir) == []


@pytest.mark.asyncio
async def test_tree_without_envelope_is_invalid(engine: BackupEngine, engine_config, list_dir):
    filename = "media-2024-01-01T00-00-00-000000Z.tar.zst"
    _write_tar_zst(engine_config.manual_dir / filename, {"uploads/ok.txt": b"ok"}, None)

    restored = await engine.restore_backup(filename)

    assert not restored.success
    assert isinstance(restored.error, ValidationError)
    assert not (engine_config.live_root / "uploads").exists()
    assert list_dir(engine_config.staging_dir) == []


@pytest.mark.asyncio
async def test_corrupt_tree_artifact_is_an_io_error(engine: BackupEngine, engine_config, list_dir):
    filename = "media-2024-01-01T00-00-00-000000Z.tar.zst"
    (engine_config.manual_dir / filename).write_bytes(b"not zstd at all")

    restored = await engine.restore_backup(filename)

    assert not restored.success
    assert isinstance(restored.error, ArtifactIOError)
    assert list_dir(engine_config.staging_dir) == []
