"""Persistence for appointments.

``AppointmentStore`` is the only code that reads or writes the appointments
table. Request handlers reach it through ``AppointmentService``, which applies
the access rules; the maintenance job calls it directly as a trusted actor.
"""

import logging
from datetime import date, datetime

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from backend.core.errors import ConflictError
from backend.models.appointment import Appointment
from backend.scheduling.lifecycle import ADVANCEABLE_STATUSES, PURGEABLE_STATUSES, AppointmentStatus

logger = logging.getLogger(__name__)

SLOT_TAKEN_MESSAGE = 'An appointment is already booked for that date and time.'

_ADVANCEABLE = [status.value for status in ADVANCEABLE_STATUSES]
_PURGEABLE = [status.value for status in PURGEABLE_STATUSES]


def _expired_filter(today: date, current_time: str):
    return and_(
        Appointment.status.in_(_ADVANCEABLE),
        or_(
            Appointment.date < today,
            and_(Appointment.date == today, Appointment.time < current_time),
        ),
    )


def _purgeable_filter(cutoff: date):
    return and_(
        Appointment.date <= cutoff,
        Appointment.status.in_(_PURGEABLE),
    )


class AppointmentStore:
    def __init__(self, db: Session):
        self.db = db

    def _query(self):
        return self.db.query(Appointment).options(
            joinedload(Appointment.pet),
            joinedload(Appointment.owner),
        )

    def get(self, appointment_id: int) -> Appointment | None:
        return self._query().filter(Appointment.id == appointment_id).first()

    def list_by_owner(self, owner_id: int) -> list[Appointment]:
        return (
            self._query()
            .filter(Appointment.owner_id == owner_id)
            .order_by(Appointment.date.asc(), Appointment.time.asc())
            .all()
        )

    def list_all(
        self,
        slot_date: date | None = None,
        status: str | None = None,
        appointment_type: str | None = None,
    ) -> list[Appointment]:
        query = self._query()
        if slot_date is not None:
            query = query.filter(Appointment.date == slot_date)
        if status is not None:
            query = query.filter(Appointment.status == status)
        if appointment_type is not None:
            query = query.filter(Appointment.appointment_type == appointment_type)
        return query.order_by(Appointment.date.asc(), Appointment.time.asc()).all()

    def occupied_times(self, slot_date: date) -> list[str]:
        rows = self.db.query(Appointment.time).filter(Appointment.date == slot_date).all()
        return [slot_time for (slot_time,) in rows]

    def find_slot_holder(
        self,
        slot_date: date,
        slot_time: str,
        exclude_id: int | None = None,
    ) -> Appointment | None:
        query = self.db.query(Appointment).filter(
            Appointment.date == slot_date,
            Appointment.time == slot_time,
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.first()

    def _commit_slot_write(self) -> None:
        # The unique constraint on (date, time) settles races the pre-check misses.
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.info('Slot write rejected by unique constraint: %s', exc.orig)
            raise ConflictError(SLOT_TAKEN_MESSAGE) from exc

    def create(
        self,
        *,
        pet_id: int,
        owner_id: int,
        appointment_type: str,
        slot_date: date,
        slot_time: str,
        reason: str,
        notes: str = '',
    ) -> Appointment:
        if self.find_slot_holder(slot_date, slot_time) is not None:
            raise ConflictError(SLOT_TAKEN_MESSAGE)

        appointment = Appointment(
            pet_id=pet_id,
            owner_id=owner_id,
            appointment_type=appointment_type,
            date=slot_date,
            time=slot_time,
            reason=reason,
            status=AppointmentStatus.PENDING.value,
            notes=notes,
        )
        self.db.add(appointment)
        self._commit_slot_write()
        return self.get(appointment.id)

    def update_fields(self, appointment: Appointment, changes: dict) -> Appointment:
        new_date = changes.get('date', appointment.date)
        new_time = changes.get('time', appointment.time)

        if (new_date, new_time) != (appointment.date, appointment.time):
            if self.find_slot_holder(new_date, new_time, exclude_id=appointment.id) is not None:
                raise ConflictError(SLOT_TAKEN_MESSAGE)

        for field_name, value in changes.items():
            setattr(appointment, field_name, value)

        self._commit_slot_write()
        return self.get(appointment.id)

    def update_status(self, appointment: Appointment, status: AppointmentStatus) -> Appointment:
        appointment.status = status.value
        self.db.commit()
        return self.get(appointment.id)

    def delete(self, appointment: Appointment) -> None:
        self.db.delete(appointment)
        self.db.commit()

    def status_counts_between(self, first_day: date, last_day: date) -> list[tuple[date, str, int]]:
        return (
            self.db.query(Appointment.date, Appointment.status, func.count(Appointment.id))
            .filter(Appointment.date >= first_day, Appointment.date <= last_day)
            .group_by(Appointment.date, Appointment.status)
            .order_by(Appointment.date.asc(), Appointment.status.asc())
            .all()
        )

    # Maintenance operations. These run as the system actor.

    def advance_expired(self, today: date, current_time: str, now: datetime) -> int:
        updated = (
            self.db.query(Appointment)
            .filter(_expired_filter(today, current_time))
            .update(
                {
                    Appointment.status: AppointmentStatus.COMPLETED.value,
                    Appointment.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        return updated

    def purgeable(self, cutoff: date) -> list[Appointment]:
        return self._query().filter(_purgeable_filter(cutoff)).order_by(Appointment.date.asc()).all()

    def purge(self, cutoff: date) -> int:
        deleted = (
            self.db.query(Appointment)
            .filter(_purgeable_filter(cutoff))
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted

    def count_by_status(self) -> list[tuple[str, int]]:
        return (
            self.db.query(Appointment.status, func.count(Appointment.id))
            .group_by(Appointment.status)
            .order_by(Appointment.status.asc())
            .all()
        )

    def count_expired(self, today: date, current_time: str) -> int:
        return self.db.query(func.count(Appointment.id)).filter(_expired_filter(today, current_time)).scalar()

    def count_purgeable(self, cutoff: date) -> int:
        return self.db.query(func.count(Appointment.id)).filter(_purgeable_filter(cutoff)).scalar()

    def count_all(self) -> int:
        return self.db.query(func.count(Appointment.id)).scalar()
