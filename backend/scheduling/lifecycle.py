"""Appointment statuses, types and the rules for moving between them."""

import logging
from enum import Enum

from backend.core.errors import ConflictError, ValidationError

logger = logging.getLogger(__name__)


class AppointmentStatus(str, Enum):
    PENDING = 'pendiente'
    CONFIRMED = 'confirmada'
    CANCELLED = 'cancelada'
    COMPLETED = 'completada'


class AppointmentType(str, Enum):
    CONSULTATION = 'consulta'
    SURGERY = 'operacion'
    VACCINATION = 'vacunacion'
    EMERGENCY = 'emergencia'


INITIAL_STATUS = AppointmentStatus.PENDING

# Statuses the maintenance job moves to completed once their slot has passed.
ADVANCEABLE_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)

# Statuses the maintenance job may purge after the retention window.
PURGEABLE_STATUSES = (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)

MANUAL_TRANSITIONS = {
    AppointmentStatus.PENDING: {
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.COMPLETED,
    },
    AppointmentStatus.CONFIRMED: {
        AppointmentStatus.CANCELLED,
        AppointmentStatus.COMPLETED,
    },
    AppointmentStatus.CANCELLED: set(),
    AppointmentStatus.COMPLETED: set(),
}


def parse_status(value: str) -> AppointmentStatus:
    try:
        return AppointmentStatus(value)
    except ValueError as exc:
        raise ValidationError('Invalid appointment status.') from exc


def parse_type(value: str) -> AppointmentType:
    try:
        return AppointmentType(value)
    except ValueError as exc:
        raise ValidationError('Invalid appointment type.') from exc


def is_manual_transition(current: str, target: AppointmentStatus) -> bool:
    return target in MANUAL_TRANSITIONS.get(AppointmentStatus(current), set())


def ensure_editable(current_status: str, is_admin: bool) -> None:
    if not is_admin and current_status != AppointmentStatus.PENDING.value:
        raise ValidationError('Only pending appointments can be modified.')


def ensure_cancellable(current_status: str) -> None:
    if current_status == AppointmentStatus.COMPLETED.value:
        raise ConflictError('Cannot cancel a completed appointment.')


def resolve_status_change(current_status: str, target: str) -> AppointmentStatus:
    """Validate an administrative status change.

    Administrators may set any recognized status. Moves outside the manual
    transition graph (reopening a terminal appointment, for instance) are
    allowed but logged.
    """
    new_status = parse_status(target)
    if new_status.value != current_status and not is_manual_transition(current_status, new_status):
        logger.warning(
            'Administrative status override %s -> %s',
            current_status,
            new_status.value,
        )
    return new_status
