"""Directory synchronization service.

A sync pass pulls events and people created since the watermark, writes
them in transactional batches, relinks local users to people, optionally
re-derives the guest list of every tracked event, and finally moves the
watermark to the moment the pass started. Only one pass runs at a time.
"""
import logging
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.schedulers.base import BaseScheduler
from sqlalchemy import delete, func, insert, or_, update
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, select

from app.core.config import Settings, settings
from app.core.scheduler import schedule_sync_jobs
from app.directory.client import DirectoryClient
from app.directory.fetcher import deduplicate, fetch_all_pages
from app.directory.parser import (
    event_key,
    guest_key,
    is_approved_guest,
    parse_event_entry,
    parse_guest_entry,
    parse_person_entry,
    person_key,
)
from app.directory.progress import ProgressReporter
from app.directory.upsert import (
    AfterWrite,
    UpsertError,
    chunked,
    reconcile_unlinked_users,
    reconcile_users,
    upsert_batch,
)
from app.directory.watermark import EPOCH, get_watermark, set_watermark
from app.models import AttendanceRecord, Event, LocalUser, Person

logger = logging.getLogger(__name__)

EVENTS_ENDPOINT = "calendar/list-events"
PEOPLE_ENDPOINT = "calendar/list-people"
GUESTS_ENDPOINT = "event/get-guests"

# Share of a phase's progress span spent on fetching; the rest is writing.
FETCH_SHARE = 0.25


class SyncError(Exception):
    """A sync pass failed. The watermark was left untouched."""


class SyncState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class SyncResult:
    """Aggregate counts of a completed pass."""
    started_at: datetime
    finished_at: datetime
    event_count: int = 0
    person_count: int = 0
    users_linked: int = 0
    attendance_count: int = 0
    events_tracked: int = 0
    full_resync: bool = False

    @property
    def duration_seconds(self) -> float:
        return round((self.finished_at - self.started_at).total_seconds(), 3)

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat()
        data["duration_seconds"] = self.duration_seconds
        return data


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SyncOrchestrator:
    """Owns the watermark, the single-flight guard and the sync schedule.

    Construct one per process and hand it to whoever needs to trigger a sync
    or read its status.
    """

    def __init__(
        self,
        engine: Engine,
        client: DirectoryClient,
        reporter: ProgressReporter | None = None,
        config: Settings = settings,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._engine = engine
        self._client = client
        self.reporter = reporter or ProgressReporter()
        self._config = config
        self._sleep = sleep
        self._clock = clock

        self._guard = threading.Lock()
        self._scheduler: BaseScheduler | None = None
        self.state = SyncState.IDLE
        self.last_outcome: SyncState | None = None
        self.last_result: SyncResult | None = None
        self.last_error: str | None = None

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._guard.locked()

    @property
    def last_synced_at(self) -> datetime | None:
        """Start time of the last successful pass, None if never synced."""
        with Session(self._engine) as session:
            watermark = get_watermark(session)
        return None if watermark <= EPOCH else watermark

    def has_data(self) -> bool:
        with Session(self._engine) as session:
            events = session.exec(select(func.count()).select_from(Event)).one()
            people = session.exec(select(func.count()).select_from(Person)).one()
        return events > 0 or people > 0

    def attendance_due(self) -> bool:
        """
        Whether a tracked event's guest list was never refreshed, or was last
        refreshed more than ``attendance_sync_interval_minutes`` ago.
        """
        now = self._clock()
        tracked_since = now - timedelta(hours=self._config.attendance_recent_hours)
        stale_before = now - timedelta(minutes=self._config.attendance_sync_interval_minutes)
        statement = (
            select(func.count())
            .select_from(Event)
            .where(Event.end_time >= tracked_since)
            .where(
                or_(
                    Event.attendance_synced_at.is_(None),
                    Event.attendance_synced_at < stale_before,
                )
            )
        )
        with Session(self._engine) as session:
            return session.exec(statement).one() > 0

    def status(self) -> dict[str, Any]:
        last_synced_at = self.last_synced_at
        return {
            "state": self.state.value,
            "is_running": self.is_running,
            "last_synced_at": last_synced_at.isoformat() if last_synced_at else None,
            "last_outcome": self.last_outcome.value if self.last_outcome else None,
            "last_error": self.last_error,
            "last_result": self.last_result.as_dict() if self.last_result else None,
            "scheduler_running": bool(self._scheduler and self._scheduler.running),
            "sync_interval_minutes": self._config.sync_interval_minutes,
            "attendance_sync_interval_minutes": self._config.attendance_sync_interval_minutes,
        }

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def sync(self, include_attendance: bool = False) -> SyncResult | None:
        """
        Run one sync pass.

        Returns None without doing anything if a pass is already running.

        Raises:
            SyncError: the pass failed; the watermark was not advanced.
        """
        return self._run(include_attendance=include_attendance, full_resync=False)

    def force_sync(self, include_attendance: bool = True) -> SyncResult | None:
        """Reset the watermark to the epoch and run a pass over all upstream data."""
        return self._run(include_attendance=include_attendance, full_resync=True)

    def clear_synced_data(self) -> bool:
        """
        Delete every synced event, person and attendance record.

        Local users are unlinked and the watermark goes back to the epoch, so
        the next pass reloads everything and relinks users. Returns False if
        a pass is running.
        """
        if not self._guard.acquire(blocking=False):
            logger.info("Sync in progress, refusing to clear synced data")
            return False
        try:
            with Session(self._engine) as session:
                session.execute(update(LocalUser).values(person_id=None))
                session.execute(delete(AttendanceRecord))
                session.execute(delete(Event))
                session.execute(delete(Person))
                session.commit()
                set_watermark(session, EPOCH)
            self.last_result = None
            logger.info("Cleared all synced data")
            return True
        finally:
            self._guard.release()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def start(self, scheduler: BaseScheduler | None = None) -> None:
        """Start periodic syncing, with a first pass shortly after."""
        if self._scheduler is not None:
            return
        scheduler = scheduler or AsyncIOScheduler()
        initial_delay = self._config.initial_sync_delay_seconds if self.has_data() else 0.1
        schedule_sync_jobs(scheduler, self, self._config, initial_delay_seconds=initial_delay)
        scheduler.start()
        self._scheduler = scheduler

    def stop(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Sync scheduler stopped")

    # ------------------------------------------------------------------
    # Pass
    # ------------------------------------------------------------------

    def _run(self, *, include_attendance: bool, full_resync: bool) -> SyncResult | None:
        if not self._guard.acquire(blocking=False):
            logger.info("Sync already in progress, skipping")
            return None
        try:
            self.state = SyncState.RUNNING
            return self._run_pass(include_attendance, full_resync)
        finally:
            self.state = SyncState.IDLE
            self._guard.release()

    def _run_pass(self, include_attendance: bool, full_resync: bool) -> SyncResult:
        started_at = self._clock()
        timer = time.monotonic()
        self.reporter.begin_pass()
        self.reporter.status("Starting sync", 0)

        result = SyncResult(started_at=started_at, finished_at=started_at, full_resync=full_resync)
        people_end = 80 if include_attendance else 95

        def reconcile(session: Session, rows: list[dict[str, Any]]) -> None:
            result.users_linked += reconcile_users(session, rows)

        try:
            with Session(self._engine) as session:
                if full_resync:
                    logger.info("Full resync requested, resetting watermark")
                    set_watermark(session, EPOCH)

                watermark = get_watermark(session)
                since = None if watermark <= EPOCH else watermark
                logger.info(
                    f"Starting sync pass, fetching records created after "
                    f"{since.isoformat() if since else 'the beginning'}"
                )

                result.event_count = self._sync_entities(
                    session, EVENTS_ENDPOINT, Event, parse_event_entry, event_key,
                    since=since, label="events", span=(0, 40),
                )
                result.person_count = self._sync_entities(
                    session, PEOPLE_ENDPOINT, Person, parse_person_entry, person_key,
                    since=since, label="people", span=(40, people_end), after=reconcile,
                )
                if include_attendance:
                    result.attendance_count, result.events_tracked = self._sync_attendance(
                        session, span=(80, 95)
                    )

                result.users_linked += reconcile_unlinked_users(session)
                set_watermark(session, started_at)
        except Exception as e:
            self.state = SyncState.FAILED
            self.last_outcome = SyncState.FAILED
            self.last_error = str(e)
            logger.error(f"Sync failed: {e}")
            self.reporter.error(f"Sync failed: {e}", error=str(e))
            raise SyncError(str(e)) from e

        result.finished_at = started_at + timedelta(seconds=time.monotonic() - timer)
        self.state = SyncState.COMPLETED
        self.last_outcome = SyncState.COMPLETED
        self.last_result = result
        self.last_error = None

        logger.info(f"Sync completed: {result.as_dict()}")
        self.reporter.complete(
            f"Synced {result.event_count} events and {result.person_count} people",
            event_count=result.event_count,
            person_count=result.person_count,
            users_linked=result.users_linked,
            attendance_count=result.attendance_count,
            events_tracked=result.events_tracked,
            duration_seconds=result.duration_seconds,
        )
        return result

    def _fetch(
        self,
        endpoint: str,
        since: datetime | None,
        *,
        params: dict[str, str] | None = None,
        max_pages: int | None = None,
        on_page: Callable[[int, int], None] | None = None,
    ) -> Iterator[dict[str, Any]]:
        return fetch_all_pages(
            self._client,
            endpoint,
            since,
            page_size=self._config.page_size,
            params=params,
            max_pages=max_pages,
            max_attempts=self._config.fetch_max_attempts,
            base_delay=self._config.retry_base_delay_seconds,
            page_delay=self._config.page_delay_seconds,
            sleep=self._sleep,
            on_page=on_page,
        )

    def _sync_entities(
        self,
        session: Session,
        endpoint: str,
        model: type[SQLModel],
        parse: Callable[[dict[str, Any]], dict[str, Any] | None],
        key: Callable[[dict[str, Any]], str | None],
        *,
        since: datetime | None,
        label: str,
        span: tuple[float, float],
        after: AfterWrite | None = None,
    ) -> int:
        """Fetch, deduplicate and upsert one entity family. Returns rows written."""
        start, end = span
        write_start = start + (end - start) * FETCH_SHARE

        self.reporter.status(f"Fetching {label}", start)

        def on_page(page_number: int, entry_count: int) -> None:
            self.reporter.progress(
                f"Fetched {label} page {page_number} ({entry_count} entries)",
                start + (write_start - start) * (1 - 0.5**page_number),
                page=page_number,
                entries=entry_count,
            )

        entries = list(deduplicate(self._fetch(endpoint, since, on_page=on_page), key))
        rows = [row for row in map(parse, entries) if row is not None]
        batches = list(chunked(rows, self._config.batch_size))

        written = 0
        for number, batch in enumerate(batches, start=1):
            written += upsert_batch(session, model, batch, after=after)
            self.reporter.progress(
                f"Saved {label} batch {number} of {len(batches)}",
                write_start + (end - write_start) * number / len(batches),
                batch=number,
                total_batches=len(batches),
            )

        logger.info(f"Synced {written} {label} ({len(entries)} unique entries fetched)")
        return written

    # ------------------------------------------------------------------
    # Attendance
    # ------------------------------------------------------------------

    def tracked_events(self, session: Session) -> list[Event]:
        """Events that have not ended yet or ended recently."""
        cutoff = self._clock() - timedelta(hours=self._config.attendance_recent_hours)
        statement = select(Event).where(Event.end_time >= cutoff).order_by(Event.start_time)
        return list(session.exec(statement).all())

    def _sync_attendance(self, session: Session, span: tuple[float, float]) -> tuple[int, int]:
        start, end = span
        events = self.tracked_events(session)
        self.reporter.status(f"Syncing attendance for {len(events)} events", start)

        total = 0
        for number, event in enumerate(events, start=1):
            total += self.sync_event_attendance(session, event)
            self.reporter.progress(
                f"Synced attendance for {event.title}",
                start + (end - start) * number / len(events),
                event_api_id=event.api_id,
            )
        return total, len(events)

    def sync_event_attendance(self, session: Session, event: Event) -> int:
        """
        Replace the stored guest list of ``event`` with the approved guests
        upstream currently reports. Returns the number of records stored.
        """
        event_api_id = event.api_id
        synced_at = self._clock()

        entries = self._fetch(
            GUESTS_ENDPOINT,
            None,
            params={"event_api_id": event_api_id},
            max_pages=self._config.attendance_max_pages,
        )
        approved = [entry for entry in deduplicate(entries, guest_key) if is_approved_guest(entry)]
        rows = [
            row
            for row in (parse_guest_entry(entry, event_api_id, synced_at) for entry in approved)
            if row is not None
        ]

        try:
            session.execute(
                delete(AttendanceRecord).where(AttendanceRecord.event_api_id == event_api_id)
            )
            if rows:
                session.execute(insert(AttendanceRecord), rows)
            event.attendance_synced_at = synced_at
            session.add(event)
            session.commit()
        except Exception as e:
            session.rollback()
            raise UpsertError(f"Failed to replace attendance for event {event_api_id}: {e}") from e

        logger.info(f"Stored {len(rows)} approved guests for event {event_api_id}")
        return len(rows)
