"""Background upkeep of the appointment calendar.

Each pass does two things:

- appointments still pending or confirmed whose slot has passed are marked
  completed;
- completed and cancelled appointments older than the retention window are
  deleted.

Both steps are bulk updates keyed on the clock, so a pass is idempotent. The
recurring timer lives in ``SchedulerHandle``, which the application creates
at startup and hands to the admin routes.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from threading import Lock
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from backend.scheduling.calendar_rules import TimeOfDay
from backend.scheduling.lifecycle import ADVANCEABLE_STATUSES, PURGEABLE_STATUSES
from backend.scheduling.store import AppointmentStore

logger = logging.getLogger(__name__)

MAINTENANCE_INTERVAL_HOURS = 2
STARTUP_DELAY_SECONDS = 30
RETENTION_DAYS = 3

RECURRING_JOB_ID = 'appointment_maintenance'
STARTUP_JOB_ID = 'appointment_maintenance_startup'


@dataclass
class MaintenanceResult:
    success: bool
    advanced: int = 0
    purged: int = 0
    timestamp: datetime = field(default_factory=datetime.now)
    error: str | None = None
    skipped: bool = False


@dataclass
class MaintenanceStats:
    by_status: list[tuple[str, int]]
    overdue: int
    purge_eligible: int
    total: int
    timestamp: datetime


def retention_cutoff(today: date) -> date:
    """Last calendar day whose finished appointments may be purged."""
    return today - timedelta(days=RETENTION_DAYS)


def advance_expired_appointments(db: Session, now: datetime | None = None) -> int:
    now = now or datetime.now()
    current_time = str(TimeOfDay.from_datetime(now))
    advanced = AppointmentStore(db).advance_expired(now.date(), current_time, now)

    if advanced:
        logger.info(
            'Marked %d expired appointments as completed',
            advanced,
            extra={'context': {'job': RECURRING_JOB_ID, 'advanced': advanced}},
        )
    else:
        logger.info('No expired appointments to update')
    return advanced


def purge_old_appointments(db: Session, now: datetime | None = None) -> int:
    now = now or datetime.now()
    cutoff = retention_cutoff(now.date())
    store = AppointmentStore(db)

    candidates = store.purgeable(cutoff)
    if not candidates:
        logger.info('No appointments on or before %s to purge', cutoff.isoformat())
        return 0

    for appointment in candidates:
        logger.debug(
            'Purging appointment %s (%s, %s) dated %s',
            appointment.id,
            appointment.pet.name if appointment.pet else 'unknown pet',
            appointment.status,
            appointment.date.isoformat(),
        )

    purged = store.purge(cutoff)
    logger.info(
        'Purged %d finished appointments dated on or before %s',
        purged,
        cutoff.isoformat(),
        extra={'context': {'job': RECURRING_JOB_ID, 'purged': purged, 'cutoff': cutoff.isoformat()}},
    )
    return purged


def run_maintenance(session_factory: Callable[[], Session], now: datetime | None = None) -> MaintenanceResult:
    """Run one full pass. Never raises; failures come back as a result."""
    now = now or datetime.now()
    logger.info('Starting appointment maintenance pass at %s', now.isoformat(timespec='seconds'))

    # Each step commits on its own, so a failed pass still reports what landed.
    advanced = 0
    purged = 0
    try:
        with session_factory() as db:
            advanced = advance_expired_appointments(db, now)
            purged = purge_old_appointments(db, now)
    except Exception as exc:
        logger.error(
            'Appointment maintenance pass failed after %d updated, %d purged',
            advanced,
            purged,
            extra={'context': {'job': RECURRING_JOB_ID, 'status': 'error', 'error': str(exc)}},
            exc_info=True,
        )
        return MaintenanceResult(success=False, advanced=advanced, purged=purged, timestamp=now, error=str(exc))

    logger.info(
        'Appointment maintenance finished: %d updated, %d purged',
        advanced,
        purged,
        extra={'context': {'job': RECURRING_JOB_ID, 'status': 'success'}},
    )
    return MaintenanceResult(success=True, advanced=advanced, purged=purged, timestamp=now)


def collect_maintenance_stats(db: Session, now: datetime | None = None) -> MaintenanceStats:
    now = now or datetime.now()
    store = AppointmentStore(db)
    return MaintenanceStats(
        by_status=store.count_by_status(),
        overdue=store.count_expired(now.date(), str(TimeOfDay.from_datetime(now))),
        purge_eligible=store.count_purgeable(retention_cutoff(now.date())),
        total=store.count_all(),
        timestamp=now,
    )


class SchedulerHandle:
    """Owns the recurring maintenance timer.

    ``start`` and ``stop`` are idempotent and report whether they changed
    anything. ``run_now`` serializes passes: a pass requested while another
    is running is skipped rather than overlapped.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        scheduler: BaseScheduler | None = None,
    ):
        self._session_factory = session_factory
        self._scheduler = scheduler or BackgroundScheduler()
        self._control_lock = Lock()
        self._run_lock = Lock()
        self.last_result: MaintenanceResult | None = None

    def is_running(self) -> bool:
        return self._scheduler.get_job(RECURRING_JOB_ID) is not None

    def next_run_time(self) -> datetime | None:
        job = self._scheduler.get_job(RECURRING_JOB_ID)
        if job is None:
            return None
        return getattr(job, 'next_run_time', None)

    def start(self, startup_delay_seconds: int = STARTUP_DELAY_SECONDS) -> bool:
        with self._control_lock:
            if self.is_running():
                return False

            self._scheduler.add_job(
                self.run_now,
                trigger=IntervalTrigger(hours=MAINTENANCE_INTERVAL_HOURS),
                id=RECURRING_JOB_ID,
                name='Advance and purge appointments',
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            # Catch up on anything that expired while the process was down.
            self._scheduler.add_job(
                self.run_now,
                trigger=DateTrigger(run_date=datetime.now() + timedelta(seconds=startup_delay_seconds)),
                id=STARTUP_JOB_ID,
                name='Initial appointment maintenance',
                replace_existing=True,
            )
            if not self._scheduler.running:
                self._scheduler.start()

        logger.info(
            'Appointment maintenance scheduled every %d hours',
            MAINTENANCE_INTERVAL_HOURS,
            extra={'context': {'job_id': RECURRING_JOB_ID, 'startup_delay_seconds': startup_delay_seconds}},
        )
        return True

    def stop(self) -> bool:
        with self._control_lock:
            if not self.is_running():
                return False

            self._scheduler.remove_job(RECURRING_JOB_ID)
            if self._scheduler.get_job(STARTUP_JOB_ID) is not None:
                self._scheduler.remove_job(STARTUP_JOB_ID)

        logger.info('Appointment maintenance stopped')
        return True

    def run_now(self, now: datetime | None = None) -> MaintenanceResult:
        if not self._run_lock.acquire(blocking=False):
            logger.warning('Maintenance pass requested while another is running; skipping')
            return MaintenanceResult(
                success=False,
                timestamp=now or datetime.now(),
                error='A maintenance pass is already running.',
                skipped=True,
            )

        try:
            result = run_maintenance(self._session_factory, now)
            self.last_result = result
            return result
        finally:
            self._run_lock.release()

    def describe(self) -> dict:
        return {
            'active': self.is_running(),
            'interval_hours': MAINTENANCE_INTERVAL_HOURS,
            'next_run': self.next_run_time(),
            'retention_days': RETENTION_DAYS,
            'statuses_to_advance': [status.value for status in ADVANCEABLE_STATUSES],
            'statuses_to_purge': [status.value for status in PURGEABLE_STATUSES],
            'last_result': self.last_result,
        }

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
