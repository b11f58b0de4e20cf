"""Booking record and normalization of values coming back from the spreadsheet.

The spreadsheet endpoint echoes whatever the sheet cells hold: dates may come back as
``2025-01-15``, ``2025-01-14T21:00:00.000Z`` or ``15.01.2025``, times as ``9:00``,
``10:30:00`` or ``1899-12-30T10:30:00.000Z``. Everything is reduced here to
``YYYY-MM-DD`` date keys and ``HH:MM`` times before any comparison.
"""
from __future__ import annotations

import hashlib
import random
import re
import string
import time as time_mod
from dataclasses import dataclass, asdict, replace
from datetime import date, datetime
from typing import Any

import pytz

STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"

_CANCELLED_WORDS = ("cancel", "отмен", "delete", "удал")

_ISO_TIME_RE = re.compile(r"T(\d{2}):(\d{2})")
_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?")
_DMY_RE = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})")
_YMD_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")

_ID_ALPHABET = string.digits + string.ascii_lowercase


def new_booking_id() -> str:
    return "".join(random.choice(_ID_ALPHABET) for _ in range(9))


def now_ms() -> int:
    return int(time_mod.time() * 1000)


def normalize_time(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # доля суток (так Google Sheets хранит время)
        if 0 <= value < 1:
            total = int(round(value * 24 * 60))
            return f"{total // 60:02d}:{total % 60:02d}"
        return ""
    s = str(value).strip()
    if not s:
        return ""
    if "T" in s:
        m = _ISO_TIME_RE.search(s)
        if m:
            return f"{m.group(1)}:{m.group(2)}"
        return ""
    m = _HHMM_RE.match(s)
    if not m:
        return ""
    hh, mm = int(m.group(1)), int(m.group(2))
    if hh > 23 or mm > 59:
        return ""
    return f"{hh:02d}:{mm:02d}"


def date_key(value: Any, tz: pytz.BaseTzInfo | None = None) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        if value.tzinfo is not None and tz is not None:
            value = value.astimezone(tz)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    s = str(value).strip()
    if not s:
        return ""
    if _YMD_RE.match(s):
        try:
            return date.fromisoformat(s).isoformat()
        except ValueError:
            return ""
    m = _DMY_RE.match(s)
    if m:
        try:
            return date(int(m.group(3)), int(m.group(2)), int(m.group(1))).isoformat()
        except ValueError:
            return ""
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return ""
    if dt.tzinfo is not None and tz is not None:
        dt = dt.astimezone(tz)
    return dt.date().isoformat()


def normalize_status(value: Any) -> str:
    s = str(value or "").strip().lower()
    if any(word in s for word in _CANCELLED_WORDS):
        return STATUS_CANCELLED
    return STATUS_CONFIRMED


def _to_int(value: Any, default: int = 0) -> int:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    digits = re.sub(r"[^\d.\-]", "", str(value))
    if not digits:
        return default
    try:
        return int(float(digits))
    except ValueError:
        return default


def _pick(record: dict, *keys: str) -> Any:
    for k in keys:
        if k in record and record[k] not in (None, ""):
            return record[k]
    return None


@dataclass(frozen=True)
class Booking:
    id: str
    barber_id: str
    service_id: str
    date: str
    time_slot: str
    client_name: str = ""
    client_phone: str = ""
    price: int = 0
    duration: int = 0
    status: str = STATUS_CONFIRMED
    created_at: int = 0
    tg_user_id: int | None = None
    tg_username: str | None = None

    @property
    def ref(self) -> str:
        """Short id safe for callback_data (64 bytes max)."""
        if len(self.id) <= 32:
            return self.id
        return hashlib.sha1(self.id.encode()).hexdigest()[:16]

    @property
    def is_confirmed(self) -> bool:
        return self.status == STATUS_CONFIRMED

    def with_status(self, status: str) -> "Booking":
        return replace(self, status=status)

    def with_price(self, price: int) -> "Booking":
        return replace(self, price=int(price))

    def start_local(self, tz: pytz.BaseTzInfo) -> datetime | None:
        key = date_key(self.date, tz)
        hhmm = normalize_time(self.time_slot)
        if not key or not hhmm:
            return None
        naive = datetime.combine(date.fromisoformat(key), datetime.strptime(hhmm, "%H:%M").time())
        return tz.localize(naive)

    @classmethod
    def from_record(cls, record: dict, tz: pytz.BaseTzInfo | None = None) -> "Booking":
        barber_id = _pick(record, "barberId", "barber_id", "barber")
        day = date_key(_pick(record, "date", "day"), tz)
        slot = normalize_time(_pick(record, "timeSlot", "time_slot", "time"))
        if barber_id is None or not day or not slot:
            raise ValueError(f"incomplete booking record: {record!r}")

        tg_user_id = _pick(record, "tgUserId", "tg_user_id", "telegramId")
        tg_username = _pick(record, "tgUsername", "tg_username")

        return cls(
            id=str(_pick(record, "id", "bookingId") or f"{barber_id}-{day}-{slot}"),
            barber_id=str(barber_id),
            service_id=str(_pick(record, "serviceId", "service_id", "service") or ""),
            date=day,
            time_slot=slot,
            client_name=str(_pick(record, "clientName", "client_name", "name") or ""),
            client_phone=str(_pick(record, "clientPhone", "client_phone", "phone") or ""),
            price=_to_int(_pick(record, "price")),
            duration=_to_int(_pick(record, "duration", "durationMinutes")),
            status=normalize_status(_pick(record, "status")),
            created_at=_to_int(_pick(record, "createdAt", "created_at")),
            tg_user_id=_to_int(tg_user_id) if tg_user_id is not None else None,
            tg_username=str(tg_username).lstrip("@") if tg_username is not None else None,
        )

    def to_payload(self) -> dict[str, Any]:
        d = asdict(self)
        return {
            "id": d["id"],
            "barberId": d["barber_id"],
            "serviceId": d["service_id"],
            "date": d["date"],
            "timeSlot": d["time_slot"],
            "clientName": d["client_name"],
            "clientPhone": d["client_phone"],
            "price": d["price"],
            "duration": d["duration"],
            "status": d["status"],
            "createdAt": d["created_at"],
            "tgUserId": d["tg_user_id"],
            "tgUsername": d["tg_username"],
        }
