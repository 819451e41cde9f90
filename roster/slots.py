from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from roster.errors import ScheduleValidationError

SEPARATOR = "|"
SLOT_MINUTES = 15
MINUTES_PER_DAY = 24 * 60
DISPLAY_INTERVALS = (15, 30, 60)


@dataclass(frozen=True)
class SlotKey:
    date_key: str
    staff_id: str
    time_slot: str


def encode(date_key: str, staff_id: str, time_slot: str) -> str:
    for part in (date_key, staff_id, time_slot):
        if SEPARATOR in part:
            raise ScheduleValidationError(f"Slot key part {part!r} contains {SEPARATOR!r}")
    return f"{date_key}{SEPARATOR}{staff_id}{SEPARATOR}{time_slot}"


def decode(key: str) -> SlotKey:
    parts = key.split(SEPARATOR)
    if len(parts) != 3:
        raise ScheduleValidationError(f"Malformed slot key {key!r}")
    return SlotKey(*parts)


def date_key(day: date) -> str:
    return day.strftime("%Y-%m-%d")


def parse_date_key(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ScheduleValidationError(f"Malformed date {value!r}") from exc


def time_to_minutes(value: str) -> int:
    try:
        hh, mm = value.split(":")
        minutes = int(hh) * 60 + int(mm)
    except ValueError as exc:
        raise ScheduleValidationError(f"Malformed time {value!r}") from exc
    if len(hh) != 2 or len(mm) != 2 or not 0 <= int(mm) < 60 or not 0 <= minutes <= MINUTES_PER_DAY:
        raise ScheduleValidationError(f"Malformed time {value!r}")
    return minutes


def minutes_to_time(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def canonical_slot(value: str) -> str:
    """Validate that ``value`` is an on-grid 15-minute slot start."""
    minutes = time_to_minutes(value)
    if minutes % SLOT_MINUTES or minutes >= MINUTES_PER_DAY:
        raise ScheduleValidationError(f"{value} is not a {SLOT_MINUTES}-minute slot")
    return minutes_to_time(minutes)


def slot_range(start: str, end: str) -> list[str]:
    """Canonical slots covering ``[start, end)``."""
    smin = time_to_minutes(canonical_slot(start))
    emin = time_to_minutes(end)
    if emin % SLOT_MINUTES:
        raise ScheduleValidationError(f"{end} is not on the {SLOT_MINUTES}-minute grid")
    if emin <= smin:
        raise ScheduleValidationError(f"End time {end} must be after start time {start}")
    return [minutes_to_time(m) for m in range(smin, emin, SLOT_MINUTES)]


def day_slots(start_hour: int = 0, end_hour: int = 24, interval: int = SLOT_MINUTES) -> list[str]:
    if interval not in DISPLAY_INTERVALS:
        raise ScheduleValidationError(f"Unsupported display interval {interval}")
    return [minutes_to_time(m) for m in range(start_hour * 60, end_hour * 60, interval)]


def sub_intervals(time_slot: str, interval: int = SLOT_MINUTES) -> list[str]:
    """All 15-minute slots inside the display cell starting at ``time_slot``.

    A 60-minute cell at 09:00 yields 09:00, 09:15, 09:30 and 09:45.
    """
    if interval not in DISPLAY_INTERVALS:
        raise ScheduleValidationError(f"Unsupported display interval {interval}")
    start = time_to_minutes(canonical_slot(time_slot))
    end = min(start + interval, MINUTES_PER_DAY)
    return [minutes_to_time(m) for m in range(start, end, SLOT_MINUTES)]


def next_slot(time_slot: str) -> str | None:
    minutes = time_to_minutes(time_slot) + SLOT_MINUTES
    return minutes_to_time(minutes) if minutes < MINUTES_PER_DAY else None


def previous_slot(time_slot: str) -> str | None:
    minutes = time_to_minutes(time_slot) - SLOT_MINUTES
    return minutes_to_time(minutes) if minutes >= 0 else None


def slot_end(time_slot: str) -> str:
    return minutes_to_time(time_to_minutes(time_slot) + SLOT_MINUTES)
