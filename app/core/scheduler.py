"""Background jobs that trigger directory sync passes."""
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import Settings

if TYPE_CHECKING:
    from app.directory.sync import SyncOrchestrator

logger = logging.getLogger(__name__)


def sync_job(orchestrator: "SyncOrchestrator", include_attendance: bool | None = None):
    """Background sync job.

    With ``include_attendance`` left as None the guest lists are refreshed
    only when the orchestrator reports them stale. Failures are logged and
    left for the next scheduled or manual trigger.
    """
    try:
        if include_attendance is None:
            include_attendance = orchestrator.attendance_due()
        result = orchestrator.sync(include_attendance=include_attendance)
    except Exception as e:
        logger.error(f"Background sync failed: {e}")
        return

    if result is None:
        logger.info("Background sync skipped, another pass is running")
    else:
        logger.info(f"Background sync completed: {result.as_dict()}")


def schedule_sync_jobs(
    scheduler: BaseScheduler,
    orchestrator: "SyncOrchestrator",
    config: Settings,
    *,
    initial_delay_seconds: float,
) -> None:
    """Register the periodic sync and a one-off initial pass on ``scheduler``.

    There is a single periodic job so that attendance refreshes never
    collide with an entity pass on the single-flight guard.
    """
    scheduler.add_job(
        sync_job,
        trigger=IntervalTrigger(minutes=config.sync_interval_minutes),
        args=[orchestrator],
        id="directory_sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        sync_job,
        trigger=DateTrigger(run_date=datetime.now(UTC) + timedelta(seconds=initial_delay_seconds)),
        args=[orchestrator],
        kwargs={"include_attendance": True},
        id="initial_sync",
        replace_existing=True,
    )
    logger.info(
        f"Scheduler configured, syncing every {config.sync_interval_minutes} minutes, "
        f"attendance when older than {config.attendance_sync_interval_minutes} minutes, "
        f"first pass in {initial_delay_seconds:g}s"
    )
