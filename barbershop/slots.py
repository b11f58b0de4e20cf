from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable

import pytz

from barbershop.booking import Booking, date_key, normalize_time
from barbershop.catalog import Barber

SLOT_STEP_MIN = 30
WORK_START_HOUR = 10
WORK_END_HOUR = 21
BOOKING_HORIZON_DAYS = 15
DEFAULT_BOOKING_DURATION = 45


@dataclass(frozen=True)
class TimeSlot:
    id: str
    time: str
    available: bool


def slots_needed(duration_min: int) -> int:
    if duration_min <= 35:
        return 1
    if duration_min <= 65:
        return 2
    if duration_min <= 95:
        return 3
    return math.ceil(duration_min / SLOT_STEP_MIN)


def time_to_minutes(hhmm: str) -> int:
    hh, mm = hhmm.split(":")
    return int(hh) * 60 + int(mm)


def add_minutes(hhmm: str, minutes: int) -> str:
    total = time_to_minutes(hhmm) + minutes
    return f"{total // 60:02d}:{total % 60:02d}"


def day_intervals() -> list[str]:
    out = []
    for h in range(WORK_START_HOUR, WORK_END_HOUR):
        for m in (0, 30):
            out.append(f"{h:02d}:{m:02d}")
    return out


def now_in(tz: pytz.BaseTzInfo) -> datetime:
    return datetime.now(tz=pytz.UTC).astimezone(tz)


def booking_dates(now_local: datetime, days: int = BOOKING_HORIZON_DAYS) -> list[date]:
    start = now_local.date()
    return [start + timedelta(days=i) for i in range(days)]


def js_weekday(day: date) -> int:
    """0 = воскресенье ... 6 = суббота."""
    return (day.weekday() + 1) % 7


def is_working_day(barber: Barber, day: date) -> bool:
    return js_weekday(day) in barber.work_days


def occupied_times(
    barber_id: str,
    day: date,
    bookings: Iterable[Booking],
    tz: pytz.BaseTzInfo | None = None,
) -> set[str]:
    key = day.isoformat()
    out: set[str] = set()
    for b in bookings:
        if not b.is_confirmed:
            continue
        if str(b.barber_id) != str(barber_id):
            continue
        if date_key(b.date, tz) != key:
            continue
        start = normalize_time(b.time_slot)
        if not start:
            continue
        check = start
        for _ in range(slots_needed(b.duration or DEFAULT_BOOKING_DURATION)):
            out.add(check)
            check = add_minutes(check, SLOT_STEP_MIN)
    return out


def build_time_slots(
    barber: Barber,
    day: date,
    bookings: Iterable[Booking],
    duration_min: int | None,
    now_local: datetime,
    tz: pytz.BaseTzInfo | None = None,
) -> list[TimeSlot]:
    if not is_working_day(barber, day):
        return []

    needed = slots_needed(duration_min) if duration_min else 1
    intervals = day_intervals()
    key = day.isoformat()
    is_today = key == now_local.date().isoformat()
    now_min = now_local.hour * 60 + now_local.minute
    busy = occupied_times(barber.id, day, bookings, tz)

    blocked = [
        (is_today and time_to_minutes(t) <= now_min) or t in busy
        for t in intervals
    ]

    slots: list[TimeSlot] = []
    for i, t in enumerate(intervals):
        if blocked[i]:
            slots.append(TimeSlot(id=f"t-{key}-{t}", time=t, available=False))
            continue
        fits = True
        for j in range(1, needed):
            if i + j >= len(intervals) or blocked[i + j]:
                fits = False
                break
        slots.append(TimeSlot(id=f"t-{key}-{t}", time=t, available=fits))
    return slots


def group_slots(slots: list[TimeSlot]) -> dict[str, list[TimeSlot]]:
    groups: dict[str, list[TimeSlot]] = {"morning": [], "day": [], "evening": []}
    for s in slots:
        h = int(s.time.split(":")[0])
        if h < 12:
            groups["morning"].append(s)
        elif h < 17:
            groups["day"].append(s)
        else:
            groups["evening"].append(s)
    return groups


def has_booking_on_date(
    user_bookings: Iterable[Booking],
    day: date,
    tz: pytz.BaseTzInfo | None = None,
) -> bool:
    key = day.isoformat()
    return any(b.is_confirmed and date_key(b.date, tz) == key for b in user_bookings)


def is_slot_free(
    barber: Barber,
    day: date,
    hhmm: str,
    bookings: Iterable[Booking],
    duration_min: int,
    now_local: datetime,
    tz: pytz.BaseTzInfo | None = None,
) -> bool:
    for s in build_time_slots(barber, day, bookings, duration_min, now_local, tz):
        if s.time == hhmm:
            return s.available
    return False
