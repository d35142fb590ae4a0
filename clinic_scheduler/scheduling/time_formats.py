"""Parsing boundary for stored time and date strings.

Doctors and appointments persisted by older clients carry clock times either as
12-hour strings (``"09:00 AM"``, ``"9:00 AM"``) or 24-hour strings (``"09:00"``),
and dates either as ISO strings or as ``"17 October 2026"``. Everything is
normalised here to minutes since midnight / ``date`` and only turned back into
the ``"hh:mm a"`` form when written.
"""

from datetime import date, datetime, time, timedelta

from clinic_scheduler.scheduling.errors import TimeFormatError

MINUTES_PER_DAY = 24 * 60
LAST_CLOCK_MINUTE = MINUTES_PER_DAY - 1
DISPLAY_TIME_FORMAT = '%I:%M %p'
LEGACY_DATE_FORMAT = '%d %B %Y'
WEEKDAY_NAMES = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')

_TWELVE_HOUR_FORMATS = ('%I:%M %p', '%I:%M%p')
_TWENTY_FOUR_HOUR_FORMATS = ('%H:%M', '%H:%M:%S')


def parse_clock(value: str) -> int:
    """Return minutes since midnight for a ``"hh:mm a"`` or ``"HH:mm"`` string."""
    if not isinstance(value, str) or not value.strip():
        raise TimeFormatError(f'Invalid time value: {value!r}')

    normalized = ' '.join(value.strip().upper().split())
    is_twelve_hour = normalized.endswith('AM') or normalized.endswith('PM')
    formats = _TWELVE_HOUR_FORMATS if is_twelve_hour else _TWENTY_FOUR_HOUR_FORMATS

    for fmt in formats:
        try:
            parsed = datetime.strptime(normalized, fmt)
        except ValueError:
            continue
        return parsed.hour * 60 + parsed.minute

    raise TimeFormatError(f'Invalid time value: {value!r}')


def format_clock(minutes: int) -> str:
    """Format minutes since midnight as ``"hh:mm a"``."""
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise TimeFormatError(f'{minutes} minutes does not fall within a single day.')
    return time(minutes // 60, minutes % 60).strftime(DISPLAY_TIME_FORMAT)


def clock_of(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def at_clock(day: date, minutes: int) -> datetime:
    return datetime.combine(day, time.min) + timedelta(minutes=minutes)


def parse_day(value: date | str) -> date:
    """Accept a ``date``, an ISO date string or a ``"d MMMM yyyy"`` string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise TimeFormatError(f'Invalid date value: {value!r}')

    normalized = value.strip()
    try:
        return date.fromisoformat(normalized)
    except ValueError:
        pass
    try:
        return datetime.strptime(normalized, LEGACY_DATE_FORMAT).date()
    except ValueError as exc:
        raise TimeFormatError(f'Invalid date value: {value!r}') from exc


def weekday_name(day: date) -> str:
    return WEEKDAY_NAMES[day.weekday()]
