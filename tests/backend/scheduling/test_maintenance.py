from datetime import date, datetime, timedelta
from threading import Event, Thread

import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from backend.models.appointment import Appointment
from backend.scheduling import maintenance
from backend.scheduling.maintenance import (
    RECURRING_JOB_ID,
    STARTUP_JOB_ID,
    SchedulerHandle,
    advance_expired_appointments,
    collect_maintenance_stats,
    purge_old_appointments,
    retention_cutoff,
    run_maintenance,
)

NOW = datetime(2026, 1, 14, 10, 15)


@pytest.fixture
def pet(make_user, make_pet):
    return make_pet(make_user())


@pytest.fixture
def handle(session_factory):
    scheduler_handle = SchedulerHandle(session_factory=session_factory, scheduler=BackgroundScheduler())
    try:
        yield scheduler_handle
    finally:
        scheduler_handle.shutdown()


def statuses(db) -> dict[int, str]:
    db.expire_all()
    return {appointment.id: appointment.status for appointment in db.query(Appointment).all()}


def test_retention_cutoff_is_three_days_back() -> None:
    assert retention_cutoff(date(2026, 1, 14)) == date(2026, 1, 11)


def test_advance_marks_past_and_earlier_today_as_completed(db, pet, make_appointment) -> None:
    yesterday = make_appointment(pet, date(2026, 1, 13), '16:00')
    confirmed_earlier_today = make_appointment(pet, date(2026, 1, 14), '10:00', status='confirmada')
    current_slot = make_appointment(pet, date(2026, 1, 14), '10:15')
    later_today = make_appointment(pet, date(2026, 1, 14), '11:00')
    tomorrow = make_appointment(pet, date(2026, 1, 15), '08:00')
    cancelled = make_appointment(pet, date(2026, 1, 12), '08:00', status='cancelada')

    advanced = advance_expired_appointments(db, NOW)

    assert advanced == 2
    result = statuses(db)
    assert result[yesterday.id] == 'completada'
    assert result[confirmed_earlier_today.id] == 'completada'
    assert result[current_slot.id] == 'pendiente'
    assert result[later_today.id] == 'pendiente'
    assert result[tomorrow.id] == 'pendiente'
    assert result[cancelled.id] == 'cancelada'


def test_advance_is_idempotent(db, pet, make_appointment) -> None:
    make_appointment(pet, date(2026, 1, 13), '16:00')

    assert advance_expired_appointments(db, NOW) == 1
    assert advance_expired_appointments(db, NOW) == 0


def test_purge_only_removes_finished_appointments_past_retention(db, pet, make_appointment) -> None:
    old_completed = make_appointment(pet, date(2026, 1, 11), '08:00', status='completada')
    old_cancelled = make_appointment(pet, date(2026, 1, 2), '08:00', status='cancelada')
    old_pending = make_appointment(pet, date(2025, 12, 1), '08:00')
    old_confirmed = make_appointment(pet, date(2025, 12, 1), '09:00', status='confirmada')
    recent_completed = make_appointment(pet, date(2026, 1, 12), '08:00', status='completada')
    purged_ids = {old_completed.id, old_cancelled.id}
    kept_ids = {old_pending.id, old_confirmed.id, recent_completed.id}

    purged = purge_old_appointments(db, NOW)

    assert purged == 2
    assert set(statuses(db)) == kept_ids
    assert not purged_ids & kept_ids


def test_run_maintenance_advances_then_purges(session_factory, db, pet, make_appointment) -> None:
    stale = make_appointment(pet, date(2026, 1, 13), '08:00')

    first = run_maintenance(session_factory, NOW)
    assert first.success is True
    assert (first.advanced, first.purged) == (1, 0)
    assert statuses(db)[stale.id] == 'completada'

    later = run_maintenance(session_factory, NOW + timedelta(days=4))
    assert later.success is True
    assert (later.advanced, later.purged) == (0, 1)
    assert statuses(db) == {}


def test_run_maintenance_reports_failure_instead_of_raising() -> None:
    def broken_factory():
        raise RuntimeError('database unreachable')

    result = run_maintenance(broken_factory, NOW)

    assert result.success is False
    assert result.error == 'database unreachable'
    assert result.timestamp == NOW


def test_run_maintenance_failed_purge_still_reports_committed_advance(
    session_factory, db, pet, make_appointment, monkeypatch
) -> None:
    stale_id = make_appointment(pet, date(2026, 1, 13), '08:00').id

    def failing_purge(db, now=None):
        raise RuntimeError('purge failed')

    monkeypatch.setattr(maintenance, 'purge_old_appointments', failing_purge)

    result = run_maintenance(session_factory, NOW)

    assert result.success is False
    assert result.error == 'purge failed'
    assert (result.advanced, result.purged) == (1, 0)
    assert statuses(db)[stale_id] == 'completada'


def test_collect_maintenance_stats_matches_job_predicates(session_factory, db, pet, make_appointment) -> None:
    make_appointment(pet, date(2026, 1, 13), '08:00')
    make_appointment(pet, date(2026, 1, 14), '09:00', status='confirmada')
    make_appointment(pet, date(2026, 1, 16), '09:00')
    make_appointment(pet, date(2026, 1, 5), '09:00', status='cancelada')
    make_appointment(pet, date(2026, 1, 12), '09:00', status='completada')

    before = collect_maintenance_stats(db, NOW)

    assert before.overdue == 2
    assert before.purge_eligible == 1
    assert before.total == 5
    assert dict(before.by_status) == {'cancelada': 1, 'completada': 1, 'confirmada': 1, 'pendiente': 2}

    run_maintenance(session_factory, NOW)
    db.expire_all()
    after = collect_maintenance_stats(db, NOW)

    assert after.overdue == 0
    assert after.purge_eligible == 0
    assert after.total == 4
    assert dict(after.by_status) == {'completada': 3, 'pendiente': 1}


def test_scheduler_handle_start_registers_recurring_and_startup_jobs(handle) -> None:
    assert handle.is_running() is False
    assert handle.start() is True

    recurring = handle._scheduler.get_job(RECURRING_JOB_ID)
    assert recurring is not None
    assert recurring.trigger.interval == timedelta(hours=2)
    assert handle._scheduler.get_job(STARTUP_JOB_ID) is not None
    assert handle.next_run_time() is not None


def test_scheduler_handle_start_and_stop_are_idempotent(handle) -> None:
    assert handle.start() is True
    assert handle.start() is False
    assert handle.is_running() is True

    assert handle.stop() is True
    assert handle.stop() is False
    assert handle.is_running() is False
    assert handle.next_run_time() is None
    assert handle._scheduler.get_job(STARTUP_JOB_ID) is None

    assert handle.start() is True


def test_run_now_records_last_result(handle, pet, make_appointment) -> None:
    make_appointment(pet, date(2026, 1, 13), '08:00')

    result = handle.run_now(NOW)

    assert result.advanced == 1
    assert handle.last_result is result
    assert handle.describe()['last_result'] is result


def test_run_now_skips_when_a_pass_is_in_progress(handle, monkeypatch) -> None:
    started = Event()
    release = Event()

    def slow_pass(session_factory, now=None):
        started.set()
        release.wait(timeout=5)
        return maintenance.MaintenanceResult(success=True, timestamp=NOW)

    monkeypatch.setattr(maintenance, 'run_maintenance', slow_pass)

    worker = Thread(target=handle.run_now)
    worker.start()
    assert started.wait(timeout=5)

    overlapping = handle.run_now(NOW)
    release.set()
    worker.join(timeout=5)

    assert overlapping.success is False
    assert overlapping.skipped is True
    assert handle.last_result.success is True


def test_describe_reports_configuration(handle) -> None:
    state = handle.describe()

    assert state['active'] is False
    assert state['interval_hours'] == 2
    assert state['retention_days'] == 3
    assert state['statuses_to_advance'] == ['pendiente', 'confirmada']
    assert state['statuses_to_purge'] == ['completada', 'cancelada']
    assert state['last_result'] is None
