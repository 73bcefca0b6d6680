"""Clinic calendar rules: opening hours, closed days and the slot grid.

Everything here is pure. Callers pass ``today`` explicitly when they need a
fixed clock; otherwise the local date is used.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Iterable

logger = logging.getLogger(__name__)

MORNING_OPEN_MINUTES = 7 * 60
MORNING_CLOSE_MINUTES = 12 * 60
AFTERNOON_OPEN_MINUTES = 14 * 60
AFTERNOON_CLOSE_MINUTES = 18 * 60
SLOT_INCREMENT_MINUTES = 30
CLOSED_WEEKDAY = 6  # Sunday

_TIME_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})$')
_DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')


class Period(str, Enum):
    MORNING = 'mañana'
    AFTERNOON = 'tarde'


BUSINESS_INTERVALS = (
    (MORNING_OPEN_MINUTES, MORNING_CLOSE_MINUTES, Period.MORNING),
    (AFTERNOON_OPEN_MINUTES, AFTERNOON_CLOSE_MINUTES, Period.AFTERNOON),
)


@dataclass(frozen=True, order=True)
class TimeOfDay:
    """A wall-clock time stored as minutes since midnight."""

    minutes: int

    def __post_init__(self) -> None:
        if not 0 <= self.minutes < 24 * 60:
            raise ValueError(f'Minutes out of range: {self.minutes}')

    @classmethod
    def parse(cls, value: str) -> 'TimeOfDay':
        match = _TIME_PATTERN.match((value or '').strip())
        if not match:
            raise ValueError(f'Invalid time format: {value!r}')

        hours, minutes = int(match.group(1)), int(match.group(2))
        if hours > 23 or minutes > 59:
            raise ValueError(f'Invalid time of day: {value!r}')

        return cls(hours * 60 + minutes)

    @classmethod
    def from_datetime(cls, moment: datetime) -> 'TimeOfDay':
        return cls(moment.hour * 60 + moment.minute)

    @property
    def period(self) -> Period | None:
        for open_minutes, close_minutes, period in BUSINESS_INTERVALS:
            if open_minutes <= self.minutes <= close_minutes:
                return period
        return None

    def is_business_hours(self) -> bool:
        return self.period is not None

    def is_on_grid(self) -> bool:
        return self.minutes % SLOT_INCREMENT_MINUTES == 0

    def __str__(self) -> str:
        return f'{self.minutes // 60:02d}:{self.minutes % 60:02d}'


@dataclass(frozen=True)
class AvailableSlot:
    time: TimeOfDay
    period: Period


def _build_slot_grid() -> tuple[TimeOfDay, ...]:
    slots: list[TimeOfDay] = []
    for open_minutes, close_minutes, _ in BUSINESS_INTERVALS:
        # Closing instants (12:00, 18:00) are bookable.
        for minutes in range(open_minutes, close_minutes + 1, SLOT_INCREMENT_MINUTES):
            slots.append(TimeOfDay(minutes))
    return tuple(slots)


SLOT_GRID = _build_slot_grid()


def normalize_date(date_string: str) -> date:
    """Return the calendar day used as the storage and comparison key."""
    value = (date_string or '').strip()
    if not _DATE_PATTERN.match(value):
        raise ValueError(f'Invalid date format: {date_string!r}')
    return date.fromisoformat(value)


def is_open_day(day: date, today: date | None = None) -> bool:
    today = today or date.today()
    return day >= today and day.weekday() != CLOSED_WEEKDAY


def is_valid_date(date_string: str, today: date | None = None) -> bool:
    try:
        day = normalize_date(date_string)
    except (TypeError, ValueError):
        logger.debug('Rejected malformed date %r', date_string)
        return False

    return is_open_day(day, today)


def parse_slot_time(time_string: str) -> TimeOfDay:
    """Parse a bookable slot, raising ``ValueError`` for anything off the grid."""
    slot = TimeOfDay.parse(time_string)
    if not slot.is_business_hours() or not slot.is_on_grid():
        raise ValueError(f'Time outside the slot grid: {time_string!r}')
    return slot


def is_valid_time(time_string: str) -> bool:
    try:
        parse_slot_time(time_string)
    except (TypeError, ValueError):
        return False
    return True


def available_slots(occupied_times: Iterable[str]) -> list[AvailableSlot]:
    taken = set(occupied_times)
    return [
        AvailableSlot(time=slot, period=slot.period)
        for slot in SLOT_GRID
        if str(slot) not in taken
    ]
