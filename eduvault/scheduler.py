# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
EduVault Scheduler - Unattended periodic backups.

One cycle runs as soon as the scheduler starts, then every interval_hours
on an APScheduler interval job. A failing cycle is logged and counted; it
never stops the schedule. A cycle that would start while the previous one
is still running is skipped.
"""

from datetime import datetime, UTC
from typing import TYPE_CHECKING

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from eduvault.config import ArtifactKind
from eduvault.exceptions import ConfigurationError, EduVaultError, SnapshotSourceError

if TYPE_CHECKING:
    from eduvault.core import BackupEngine, BackupResult

logger = structlog.get_logger()

JOB_ID = "eduvault_auto_backup"
AUTO_BACKUP_AUTHOR = "auto-backup"


class BackupScheduler:
    """Drives automatic backups for one engine."""

    def __init__(
        self,
        engine: "BackupEngine",
        interval_hours: float | None = None,
        include_media: bool | None = None,
    ):
        if engine.source is None:
            raise ConfigurationError("Automatic backups need a snapshot source")

        self.engine = engine
        self.interval_hours = interval_hours or engine.config.interval_hours
        if self.interval_hours <= 0:
            raise ConfigurationError(
                f"interval_hours must be > 0, got {self.interval_hours}"
            )
        self.include_media = (
            engine.config.include_media_in_schedule if include_media is None else include_media
        )

        self._scheduler: AsyncIOScheduler | None = None
        self._in_progress = False

        self.runs = 0
        self.failures = 0
        self.skipped = 0
        self.last_run_at: datetime | None = None
        self.last_error: str | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    async def run_cycle(self) -> "BackupResult | None":
        """
        Run one backup cycle.

        Returns:
            The envelope backup result, or None if the cycle was skipped or failed
        """
        if self._in_progress:
            self.skipped += 1
            logger.warning("backup_cycle_skipped", reason="previous_cycle_running")
            return None

        self._in_progress = True
        logger.info("backup_cycle_starting")

        try:
            try:
                snapshot = await self.engine.source.produce_snapshot()
            except EduVaultError:
                raise
            except Exception as e:
                raise SnapshotSourceError(f"Snapshot source failed: {e}")

            result = await self.engine.create_backup(
                snapshot,
                kind=ArtifactKind.AUTO,
                compressed=True,
                created_by=AUTO_BACKUP_AUTHOR,
                auto_cleanup=True,
            )
            if not result.success:
                raise result.error or EduVaultError("Backup failed")

            if self.include_media:
                media = await self.engine.create_media_backup(
                    snapshot.file_roots or None,
                    kind=ArtifactKind.AUTO,
                    created_by=AUTO_BACKUP_AUTHOR,
                    auto_cleanup=True,
                )
                if not media.success:
                    raise media.error or EduVaultError("Media backup failed")

            self.last_error = None
            logger.info(
                "backup_cycle_completed",
                filename=result.filename,
                size=result.size_bytes,
            )
            return result

        except Exception as e:
            self.failures += 1
            self.last_error = str(e)
            logger.error("backup_cycle_failed", error=str(e))
            return None

        finally:
            self.runs += 1
            self.last_run_at = datetime.now(UTC)
            self._in_progress = False

    async def start(self) -> None:
        """Run one cycle now, then schedule the repeating job."""
        if self.running:
            return

        logger.info("auto_backup_enabled", interval_hours=self.interval_hours)

        await self.run_cycle()

        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            self.run_cycle,
            trigger=IntervalTrigger(hours=self.interval_hours),
            id=JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=2,
        )
        scheduler.start()
        self._scheduler = scheduler

        logger.info(
            "scheduler_started",
            next_run=scheduler.get_job(JOB_ID).next_run_time.isoformat(),
        )

    def stop(self) -> None:
        """Stop scheduling new cycles."""
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("scheduler_stopped", runs=self.runs, failures=self.failures)
        self._scheduler = None

    def status(self) -> dict:
        return {
            "running": self.running,
            "in_progress": self._in_progress,
            "interval_hours": self.interval_hours,
            "runs": self.runs,
            "failures": self.failures,
            "skipped": self.skipped,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_error": self.last_error,
        }
