"""Request-driven appointment operations.

Every method runs on behalf of an authenticated user and applies the
ownership and role checks before touching the store.
"""

import logging
from calendar import monthrange
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy.orm import Session

from backend.auth.guard import ensure_admin, ensure_owner_or_admin
from backend.core.errors import NotFoundError, ValidationError
from backend.models.appointment import Appointment
from backend.models.pet import Pet
from backend.models.user import User
from backend.scheduling import calendar_rules, lifecycle
from backend.scheduling.store import AppointmentStore

logger = logging.getLogger(__name__)

INVALID_DATE_MESSAGE = 'Invalid date. Appointments cannot be booked in the past or on Sundays.'
INVALID_TIME_MESSAGE = 'Invalid time. Opening hours are 7:00-12:00 and 14:00-18:00 in 30-minute slots.'
MAX_REASON_LENGTH = 500
MAX_NOTES_LENGTH = 600


@dataclass
class DayStatistics:
    day: int
    statuses: list[tuple[str, int]] = field(default_factory=list)
    total: int = 0


def _validated_date(date_string: str, today: date | None = None) -> date:
    if not calendar_rules.is_valid_date(date_string, today):
        raise ValidationError(INVALID_DATE_MESSAGE)
    return calendar_rules.normalize_date(date_string)


def _validated_time(time_string: str) -> str:
    try:
        return str(calendar_rules.parse_slot_time(time_string))
    except (TypeError, ValueError) as exc:
        raise ValidationError(INVALID_TIME_MESSAGE) from exc


def _clean_reason(reason: str | None) -> str:
    normalized = (reason or '').strip()
    if not normalized:
        raise ValidationError('A reason for the appointment is required.')
    if len(normalized) > MAX_REASON_LENGTH:
        raise ValidationError(f'Reason must be {MAX_REASON_LENGTH} characters or fewer.')
    return normalized


def _clean_notes(notes: str | None) -> str:
    normalized = (notes or '').strip()
    if len(normalized) > MAX_NOTES_LENGTH:
        raise ValidationError(f'Notes must be {MAX_NOTES_LENGTH} characters or fewer.')
    return normalized


class AppointmentService:
    def __init__(self, db: Session, actor: User):
        self.db = db
        self.actor = actor
        self.store = AppointmentStore(db)

    def _get_or_404(self, appointment_id: int) -> Appointment:
        appointment = self.store.get(appointment_id)
        if appointment is None:
            raise NotFoundError('Appointment not found.')
        return appointment

    def book(
        self,
        *,
        pet_id: int,
        appointment_type: str,
        date_string: str,
        time_string: str,
        reason: str,
        notes: str | None = None,
        today: date | None = None,
    ) -> Appointment:
        pet = self.db.get(Pet, pet_id)
        if pet is None:
            raise NotFoundError('Pet not found.')

        ensure_owner_or_admin(
            self.actor,
            pet.owner_id,
            'Not authorized to book an appointment for this pet.',
        )

        slot_type = lifecycle.parse_type(appointment_type)
        slot_date = _validated_date(date_string, today)
        slot_time = _validated_time(time_string)

        appointment = self.store.create(
            pet_id=pet.id,
            owner_id=pet.owner_id,
            appointment_type=slot_type.value,
            slot_date=slot_date,
            slot_time=slot_time,
            reason=_clean_reason(reason),
            notes=_clean_notes(notes),
        )
        logger.info(
            'Appointment %s booked for pet %s on %s at %s by user %s',
            appointment.id,
            pet.id,
            slot_date.isoformat(),
            slot_time,
            self.actor.id,
        )
        return appointment

    def get(self, appointment_id: int) -> Appointment:
        appointment = self._get_or_404(appointment_id)
        ensure_owner_or_admin(self.actor, appointment.owner_id, 'Not authorized to view this appointment.')
        return appointment

    def list_visible(self) -> list[Appointment]:
        if self.actor.is_admin:
            return self.store.list_all()
        return self.store.list_by_owner(self.actor.id)

    def list_all(
        self,
        date_string: str | None = None,
        status: str | None = None,
        appointment_type: str | None = None,
    ) -> list[Appointment]:
        ensure_admin(self.actor)

        slot_date = None
        if date_string:
            try:
                slot_date = calendar_rules.normalize_date(date_string)
            except ValueError as exc:
                raise ValidationError('Invalid date filter.') from exc

        return self.store.list_all(
            slot_date=slot_date,
            status=lifecycle.parse_status(status).value if status else None,
            appointment_type=lifecycle.parse_type(appointment_type).value if appointment_type else None,
        )

    def edit(
        self,
        appointment_id: int,
        *,
        appointment_type: str | None = None,
        date_string: str | None = None,
        time_string: str | None = None,
        reason: str | None = None,
        notes: str | None = None,
        today: date | None = None,
    ) -> Appointment:
        appointment = self._get_or_404(appointment_id)
        ensure_owner_or_admin(self.actor, appointment.owner_id, 'Not authorized to modify this appointment.')
        lifecycle.ensure_editable(appointment.status, self.actor.is_admin)

        changes: dict = {}
        if appointment_type is not None:
            changes['appointment_type'] = lifecycle.parse_type(appointment_type).value
        if date_string is not None:
            changes['date'] = _validated_date(date_string, today)
        if time_string is not None:
            changes['time'] = _validated_time(time_string)
        if reason is not None:
            changes['reason'] = _clean_reason(reason)
        if notes is not None:
            changes['notes'] = _clean_notes(notes)

        if not changes:
            return appointment

        updated = self.store.update_fields(appointment, changes)
        logger.info('Appointment %s updated by user %s: %s', appointment_id, self.actor.id, sorted(changes))
        return updated

    def cancel(self, appointment_id: int) -> None:
        appointment = self._get_or_404(appointment_id)
        ensure_owner_or_admin(self.actor, appointment.owner_id, 'Not authorized to cancel this appointment.')
        lifecycle.ensure_cancellable(appointment.status)

        self.store.delete(appointment)
        logger.info('Appointment %s cancelled by user %s', appointment_id, self.actor.id)

    def set_status(self, appointment_id: int, status: str) -> Appointment:
        ensure_admin(self.actor)
        new_status = lifecycle.parse_status(status)
        appointment = self._get_or_404(appointment_id)
        lifecycle.resolve_status_change(appointment.status, new_status.value)

        updated = self.store.update_status(appointment, new_status)
        logger.info('Appointment %s status set to %s by admin %s', appointment_id, new_status.value, self.actor.id)
        return updated

    def available_slots(self, date_string: str, today: date | None = None) -> list[calendar_rules.AvailableSlot]:
        slot_date = _validated_date(date_string, today)
        return calendar_rules.available_slots(self.store.occupied_times(slot_date))

    def monthly_statistics(self, today: date | None = None) -> list[DayStatistics]:
        ensure_admin(self.actor)
        today = today or date.today()
        first_day = today.replace(day=1)
        last_day = today.replace(day=monthrange(today.year, today.month)[1])

        days: dict[int, DayStatistics] = {}
        for slot_date, status, count in self.store.status_counts_between(first_day, last_day):
            entry = days.setdefault(slot_date.day, DayStatistics(day=slot_date.day))
            entry.statuses.append((status, count))
            entry.total += count

        return [days[day] for day in sorted(days)]
