"""Slot arithmetic for the appointment book.

All times are minutes since midnight on the appointment's own date. A category
grid starts every ``duration + buffer`` minutes, a treatment grid every 15
minutes; in both a start is only offered if the whole service fits inside one
business-hours range.
"""

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Iterable, List, Mapping, Optional, Sequence

from convopilot.services.booking.base import BookedAppointment, BookingStatus, Category, TimeRange

TREATMENT_GRID_MINUTES = 15
DEFAULT_DURATION_MINUTES = 30
DEFAULT_BUSINESS_HOURS = (TimeRange(start="09:00", end="18:00"),)

DAY_KEYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# date.weekday() order
HEBREW_DAY_NAMES = ("שני", "שלישי", "רביעי", "חמישי", "שישי", "שבת", "ראשון")


@dataclass(frozen=True)
class Occupancy:
    start_min: int
    end_min: int
    category_id: Optional[str]
    buffer_minutes: int
    user_key: str


def parse_time(value: str | None) -> Optional[tuple[int, int]]:
    """'9:05' -> (9, 5); None for anything that is not a valid HH:MM."""
    if not value or not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    if len(parts) != 2:
        return None
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        return None
    return hours, minutes


def normalize_time(value: str | None) -> str:
    """'9:5' -> '09:05', '14' -> '14:00'; '' when unparseable."""
    if not value or not isinstance(value, str):
        return ""
    parsed = parse_time(value)
    if parsed is None:
        stripped = value.strip()
        if stripped.isdigit() and 0 <= int(stripped) <= 23:
            parsed = (int(stripped), 0)
        else:
            return ""
    return format_minutes(parsed[0] * 60 + parsed[1])


def parse_date(value: str | None) -> Optional[date]:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        return None


def to_minutes(value: str) -> Optional[int]:
    parsed = parse_time(value)
    if parsed is None:
        return None
    return parsed[0] * 60 + parsed[1]


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def day_key(day: date) -> str:
    return DAY_KEYS[day.weekday()]


def format_day(day: date) -> str:
    """date(2025, 2, 17) -> 'יום שני 17.2.2025'"""
    return f"יום {HEBREW_DAY_NAMES[day.weekday()]} {day.day}.{day.month}.{day.year}"


def hours_for_day(business_hours: Mapping[str, Sequence[TimeRange]], day: date) -> List[TimeRange]:
    ranges = business_hours.get(day_key(day)) or ()
    return list(ranges) if ranges else list(DEFAULT_BUSINESS_HOURS)


def _range_bounds(time_range: TimeRange) -> tuple[int, int]:
    start = to_minutes(time_range.start)
    end = to_minutes(time_range.end)
    return (start if start is not None else 0, end if end is not None else 23 * 60 + 59)


def _grid(ranges: Iterable[TimeRange], duration: int, step: int) -> List[str]:
    starts = set()
    step = max(step, 1)
    for time_range in ranges:
        minute, end = _range_bounds(time_range)
        while minute + duration <= end:
            starts.add(minute)
            minute += step
    return [format_minutes(m) for m in sorted(starts)]


def category_grid(ranges: Iterable[TimeRange], duration: int, buffer: int) -> List[str]:
    return _grid(ranges, duration, duration + buffer)


def treatment_grid(ranges: Iterable[TimeRange], duration: int, step: int = TREATMENT_GRID_MINUTES) -> List[str]:
    return _grid(ranges, duration, step)


def build_occupancy(
    appointments: Iterable[BookedAppointment],
    category_buffers: Mapping[str, int],
) -> List[Occupancy]:
    """Appointments of one date as minute intervals.

    An appointment without its own buffer uses its category's buffer.
    """
    occupied = []
    for appointment in appointments:
        start = to_minutes(appointment.time)
        if start is None:
            continue
        duration = appointment.duration_minutes if appointment.duration_minutes and appointment.duration_minutes > 0 else DEFAULT_DURATION_MINUTES
        if appointment.buffer_minutes is not None:
            buffer = appointment.buffer_minutes
        else:
            buffer = category_buffers.get(appointment.category_id or "", 0)
        occupied.append(
            Occupancy(
                start_min=start,
                end_min=start + duration,
                category_id=appointment.category_id,
                buffer_minutes=buffer or 0,
                user_key=appointment.user_key,
            )
        )
    return occupied


def is_blocked_by_category(slot_min: int, duration: int, category_id: str, occupied: Iterable[Occupancy]) -> bool:
    slot_end = slot_min + duration
    for entry in occupied:
        if entry.category_id != category_id:
            continue
        if slot_min < entry.end_min + entry.buffer_minutes and slot_end > entry.start_min:
            return True
    return False


def count_category_in_hour(slot_min: int, category_id: str, occupied: Iterable[Occupancy]) -> int:
    hour = slot_min // 60
    return sum(1 for e in occupied if e.category_id == category_id and e.start_min // 60 == hour)


def user_has_appointment_in_hour(slot_min: int, user_key: str, occupied: Iterable[Occupancy]) -> bool:
    if not user_key:
        return False
    hour = slot_min // 60
    return any(e.user_key == user_key and e.start_min // 60 == hour for e in occupied)


def fits_business_hours(slot_min: int, duration: int, ranges: Iterable[TimeRange]) -> bool:
    for time_range in ranges:
        start, end = _range_bounds(time_range)
        if slot_min >= start and slot_min + duration <= end:
            return True
    return False


def free_slots(
    day: date,
    category: Category,
    ranges: Sequence[TimeRange],
    occupied: Sequence[Occupancy],
    *,
    user_key: str = "",
    duration_minutes: Optional[int] = None,
    use_treatment_grid: bool = False,
    now: Optional[datetime] = None,
) -> List[str]:
    """Bookable start times for ``category`` on ``day``.

    ``now`` is in the business timezone; on that date every start at or before
    it is excluded.
    """
    duration = duration_minutes or category.duration_minutes
    if use_treatment_grid:
        candidates = treatment_grid(ranges, duration)
    else:
        candidates = category_grid(ranges, category.duration_minutes, category.buffer_minutes)

    is_today = now is not None and now.date() == day

    result = []
    for slot in candidates:
        slot_min = to_minutes(slot)
        if is_blocked_by_category(slot_min, duration, category.id, occupied):
            continue
        if count_category_in_hour(slot_min, category.id, occupied) >= category.max_per_hour:
            continue
        if user_has_appointment_in_hour(slot_min, user_key, occupied):
            continue
        if is_today and datetime.combine(day, time(slot_min // 60, slot_min % 60), tzinfo=now.tzinfo) <= now:
            continue
        if not fits_business_hours(slot_min, duration, ranges):
            continue
        result.append(slot)
    return result


def check_booking(
    time_str: str,
    category: Category,
    ranges: Sequence[TimeRange],
    occupied: Sequence[Occupancy],
    *,
    user_key: str,
    duration_minutes: Optional[int] = None,
    use_treatment_grid: bool = False,
    day: Optional[date] = None,
    now: Optional[datetime] = None,
) -> BookingStatus:
    """Why ``time_str`` cannot be booked, or BOOKED when it can.

    With ``day`` and ``now`` (business timezone) a start at or before ``now`` is IN_PAST.
    """
    duration = duration_minutes or category.duration_minutes
    slot_min = to_minutes(time_str)
    if slot_min is None:
        return BookingStatus.NOT_ON_GRID
    if day is not None and now is not None:
        if datetime.combine(day, time(slot_min // 60, slot_min % 60), tzinfo=now.tzinfo) <= now:
            return BookingStatus.IN_PAST
    if is_blocked_by_category(slot_min, duration, category.id, occupied):
        return BookingStatus.SLOT_TAKEN
    if count_category_in_hour(slot_min, category.id, occupied) >= category.max_per_hour:
        return BookingStatus.HOUR_FULL
    if user_has_appointment_in_hour(slot_min, user_key, occupied):
        return BookingStatus.USER_HOUR_TAKEN
    if not fits_business_hours(slot_min, duration, ranges):
        return BookingStatus.OUTSIDE_HOURS

    if use_treatment_grid:
        grid = treatment_grid(ranges, duration)
    else:
        grid = category_grid(ranges, category.duration_minutes, category.buffer_minutes)
    if format_minutes(slot_min) not in grid:
        return BookingStatus.NOT_ON_GRID
    return BookingStatus.BOOKED
