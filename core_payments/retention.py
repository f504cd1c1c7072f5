"""
Receipt Retention Module

Deletes receipt artifacts older than the retention window. The sweep runs
daily on an APScheduler background thread and can also be invoked directly.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .artifacts import ArtifactStore
from .logging_config import get_logger, log_action


logger = get_logger("payments.retention")


@dataclass
class PurgeReport:
    scanned: int = 0
    deleted: int = 0
    failed: int = 0
    deleted_files: List[str] = field(default_factory=list)


class RetentionJanitor:
    """
    Removes stale receipt artifacts.

    Example:
        >>> janitor = RetentionJanitor(LocalArtifactStore("receipts"))
        >>> janitor.start()
        >>> janitor.status()
        >>> janitor.stop()
    """

    def __init__(
        self,
        artifacts: ArtifactStore,
        retention_days: int = 30,
        hour: int = 2,
        minute: int = 0
    ):
        self.artifacts = artifacts
        self.retention_days = retention_days
        self.hour = hour
        self.minute = minute

        self.scheduler: Optional[BackgroundScheduler] = None
        self.running = False
        self.last_run_time: Optional[datetime] = None
        self.last_report: Optional[PurgeReport] = None

    def purge_older_than(self, days: Optional[int] = None, now: Optional[datetime] = None) -> PurgeReport:
        """
        Delete every artifact last modified before now - days.

        A failure on one artifact is logged and the sweep continues.
        """
        days = self.retention_days if days is None else days
        if days < 0:
            raise ValueError("Retention days cannot be negative")

        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=days)
        report = PurgeReport()

        try:
            artifacts = self.artifacts.list()
        except OSError as e:
            log_action(
                logger, "error", f"Could not list receipts: {e}", action="purge"
            )
            artifacts = []

        for info in artifacts:
            report.scanned += 1
            if info.created_at >= cutoff:
                continue
            try:
                if self.artifacts.delete(info.file_name):
                    report.deleted += 1
                    report.deleted_files.append(info.file_name)
                    log_action(
                        logger, "info", f"Deleted old receipt: {info.file_name}",
                        action="purge_artifact", resource=info.file_name,
                        extra={"modified_at": info.created_at.isoformat()}
                    )
            except Exception as e:
                report.failed += 1
                log_action(
                    logger, "error", f"Could not delete receipt {info.file_name}: {e}",
                    action="purge_artifact", resource=info.file_name
                )

        self.last_run_time = now
        self.last_report = report
        log_action(
            logger, "info", "Receipt retention sweep finished",
            action="purge", extra={
                "scanned": report.scanned, "deleted": report.deleted,
                "failed": report.failed, "retention_days": days
            }
        )
        return report

    def start(self) -> None:
        """Schedule the daily sweep (UTC)"""
        if self.running:
            logger.warning("Retention janitor already running")
            return

        self.scheduler = BackgroundScheduler(timezone="UTC")
        self.scheduler.add_job(
            func=self._run_scheduled,
            trigger=CronTrigger(hour=self.hour, minute=self.minute, timezone="UTC"),
            id="receipt_retention",
            name="Purge old receipts",
            replace_existing=True,
        )
        self.scheduler.start()
        self.running = True

        log_action(
            logger, "info", "Retention janitor started", action="janitor_start",
            extra={"hour": self.hour, "minute": self.minute, "retention_days": self.retention_days}
        )

    def stop(self) -> None:
        if not self.running:
            logger.warning("Retention janitor not running")
            return

        self.scheduler.shutdown(wait=True)
        self.scheduler = None
        self.running = False
        logger.info("Retention janitor stopped")

    def status(self) -> Dict[str, Any]:
        next_run = None
        if self.running:
            job = self.scheduler.get_job("receipt_retention")
            if job and job.next_run_time:
                next_run = job.next_run_time.isoformat()

        return {
            "running": self.running,
            "retention_days": self.retention_days,
            "schedule": f"{self.minute:02d} {self.hour:02d} * * * UTC",
            "next_run_time": next_run,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "last_report": {
                "scanned": self.last_report.scanned,
                "deleted": self.last_report.deleted,
                "failed": self.last_report.failed,
            } if self.last_report else None,
        }

    def _run_scheduled(self) -> None:
        try:
            self.purge_older_than()
        except Exception as e:
            logger.error(f"Receipt retention sweep failed: {e}", exc_info=True)
