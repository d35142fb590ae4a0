"""Slot calendar generation.

A doctor's day is described by the weekly template for that weekday (one or more
session windows), the leave intervals recorded for that exact date and the
average consultation duration. Slots are laid out every ``duration`` minutes from
the start of each window; a slot exists only when it fits entirely inside the
window. Leave removes any slot whose own range touches a leave interval, without
re-packing the remaining ones.

``global_slot_index`` numbers every step of the template across all sessions of
the day, including steps removed by leave, so that recording leave after
bookings exist never renumbers those bookings.
"""

from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from clinic_scheduler.core import config
from clinic_scheduler.scheduling.time_formats import (
    WEEKDAY_NAMES,
    format_clock,
    parse_clock,
    parse_day,
    weekday_name,
)


class TimeWindow(BaseModel):
    """A ``[start, end)`` range in minutes since midnight."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    start: int = Field(alias='from')
    end: int = Field(alias='to')

    @field_validator('start', 'end', mode='before')
    @classmethod
    def parse_time_string(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_clock(value)
        return value

    @model_validator(mode='after')
    def check_order(self) -> 'TimeWindow':
        if self.end <= self.start:
            raise ValueError('A time window must end after it starts.')
        return self

    def overlaps(self, start: int, end: int) -> bool:
        return start < self.end and self.start < end

    def contains(self, minute: int) -> bool:
        return self.start <= minute <= self.end

    def to_storage(self) -> dict[str, str]:
        return {'from': format_clock(self.start), 'to': format_clock(self.end)}


def _sorted_without_overlap(windows: list[TimeWindow]) -> list[TimeWindow]:
    ordered = sorted(windows, key=lambda window: window.start)
    for previous, current in zip(ordered, ordered[1:]):
        if current.start < previous.end:
            raise ValueError('Session windows within a day must not overlap.')
    return ordered


def _legacy_entries(entries: list[Any], key: str, windows_key: str) -> dict[Any, Any]:
    by_key: dict[Any, Any] = {}
    for entry in entries:
        if not isinstance(entry, dict) or not isinstance(entry.get(key), str):
            raise ValueError(f'Malformed stored entry, expected an object with {key!r}: {entry!r}')
        by_key[entry[key]] = entry.get(windows_key) or []
    return by_key


class AvailabilityTemplate(BaseModel):
    """Weekly availability: weekday name -> session windows, plus consultation length."""

    days: dict[str, list[TimeWindow]] = Field(default_factory=dict)
    average_consulting_time: int = Field(default=config.DEFAULT_CONSULTATION_MINUTES, gt=0)

    @field_validator('days', mode='before')
    @classmethod
    def accept_legacy_list(cls, value: Any) -> Any:
        # Older documents store [{"day": "Monday", "timeSlots": [...]}].
        if isinstance(value, list):
            return _legacy_entries(value, key='day', windows_key='timeSlots')
        return value or {}

    @field_validator('days')
    @classmethod
    def normalize_days(cls, value: dict[str, list[TimeWindow]]) -> dict[str, list[TimeWindow]]:
        normalized: dict[str, list[TimeWindow]] = {}
        for day_name, windows in value.items():
            canonical = day_name.strip().capitalize()
            if canonical not in WEEKDAY_NAMES:
                raise ValueError(f'Unknown weekday: {day_name}')
            normalized[canonical] = _sorted_without_overlap(windows)
        return normalized

    def windows_for(self, day: date) -> list[TimeWindow]:
        return self.days.get(weekday_name(day), [])


class LeaveOverrides(BaseModel):
    """Date-specific blackout intervals keyed by calendar date."""

    dates: dict[date, list[TimeWindow]] = Field(default_factory=dict)

    @field_validator('dates', mode='before')
    @classmethod
    def accept_legacy_list(cls, value: Any) -> Any:
        # Older documents store [{"date": "2026-10-17", "slots": [...]}].
        if isinstance(value, list):
            value = _legacy_entries(value, key='date', windows_key='slots')
        if not value:
            return {}
        if not isinstance(value, dict):
            raise ValueError(f'Leave must map dates to time windows, got {type(value).__name__}.')
        return {parse_day(key): windows for key, windows in value.items()}

    def intervals_for(self, day: date) -> list[TimeWindow]:
        return self.dates.get(day, [])


class Slot(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_index: int
    global_slot_index: int
    start: int
    duration: int

    @property
    def end(self) -> int:
        return self.start + self.duration

    @property
    def time(self) -> str:
        return format_clock(self.start)


def generate_slots(
    windows: list[TimeWindow],
    leave: list[TimeWindow] | None,
    duration: int,
) -> list[Slot]:
    if duration <= 0:
        raise ValueError('Consultation duration must be positive.')

    leave = leave or []
    slots: list[Slot] = []
    global_index = 0

    for session_index, window in enumerate(windows):
        current = window.start
        while current + duration <= window.end:
            if not any(interval.overlaps(current, current + duration) for interval in leave):
                slots.append(
                    Slot(
                        session_index=session_index,
                        global_slot_index=global_index,
                        start=current,
                        duration=duration,
                    )
                )
            global_index += 1
            current += duration

    return slots


def build_day_calendar(
    template: AvailabilityTemplate,
    leave_overrides: LeaveOverrides | None,
    target_date: date,
) -> list[Slot]:
    windows = template.windows_for(target_date)
    leave = leave_overrides.intervals_for(target_date) if leave_overrides else []
    return generate_slots(windows, leave, template.average_consulting_time)


def session_slots(calendar: list[Slot], session_index: int) -> list[Slot]:
    return [slot for slot in calendar if slot.session_index == session_index]


def slot_for_index(calendar: list[Slot], global_slot_index: int) -> Slot | None:
    for slot in calendar:
        if slot.global_slot_index == global_slot_index:
            return slot
    return None


def template_from_record(record: Any) -> AvailabilityTemplate:
    """Build the template from a stored doctor (``availability_slots`` + ``average_consulting_time``)."""
    return AvailabilityTemplate(
        days=record.availability_slots or {},
        average_consulting_time=record.average_consulting_time or config.DEFAULT_CONSULTATION_MINUTES,
    )


def leave_from_record(record: Any) -> LeaveOverrides:
    return LeaveOverrides(dates=record.leave_slots or {})
