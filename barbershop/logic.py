from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable

import pytz
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from barbershop.booking import (
    Booking,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    date_key,
    new_booking_id,
    normalize_time,
    now_ms,
)
from barbershop.catalog import get_barber, get_offer, final_price
from barbershop.models import User, LocalBooking
from barbershop.sheets import SheetsClient, SheetsError
from barbershop.slots import has_booking_on_date, is_slot_free

logger = logging.getLogger(__name__)


class BookingRejected(ValueError):
    """code: SLOT_TAKEN | DAY_TAKEN | BAD_INPUT | NOT_FOUND"""

    def __init__(self, code: str, message: str = ""):
        super().__init__(message or code)
        self.code = code


@dataclass
class BookingCache:
    bookings: list[Booking] = field(default_factory=list)
    synced_at: datetime | None = None
    last_error: str | None = None
    failures: int = 0

    def replace(self, booking: Booking) -> None:
        for i, b in enumerate(self.bookings):
            if same_booking(b, booking):
                self.bookings[i] = booking
                return
        self.bookings.append(booking)


@dataclass(frozen=True)
class BookingDraft:
    barber_id: str
    service_id: str
    day: date
    time_slot: str
    client_name: str
    client_phone: str
    tg_user_id: int
    tg_username: str | None = None


@dataclass(frozen=True)
class AdminSummary:
    bookings: list[Booking]
    total_active: int
    total_revenue: int
    today_count: int
    today_revenue: int


# ---------- users ----------

async def upsert_user(session: AsyncSession, tg_id: int, username: str | None, full_name: str | None) -> User:
    u = (await session.execute(select(User).where(User.tg_id == tg_id))).scalar_one_or_none()
    if u:
        u.username = username
        u.full_name = full_name
        return u
    u = User(
        tg_id=tg_id,
        username=username,
        full_name=full_name,
        client_name=None,
        phone=None,
        created_at=datetime.now(tz=pytz.UTC),
    )
    session.add(u)
    await session.flush()
    return u


async def get_user(session: AsyncSession, tg_id: int) -> User | None:
    return (await session.execute(select(User).where(User.tg_id == tg_id))).scalar_one_or_none()


async def set_user_contact(session: AsyncSession, tg_id: int, client_name: str, phone: str) -> None:
    u = (await session.execute(select(User).where(User.tg_id == tg_id))).scalar_one()
    u.client_name = client_name
    u.phone = phone


# ---------- local bookings ----------

async def list_local_bookings(session: AsyncSession, tg_id: int) -> list[Booking]:
    rows = (await session.execute(
        select(LocalBooking).where(LocalBooking.tg_user_id == tg_id)
    )).scalars().all()
    return [r.to_booking() for r in rows]


async def list_all_local_bookings(session: AsyncSession) -> list[Booking]:
    rows = (await session.execute(select(LocalBooking))).scalars().all()
    return [r.to_booking() for r in rows]


async def save_local_booking(session: AsyncSession, booking: Booking, tg_id: int) -> None:
    existing = await session.get(LocalBooking, booking.id)
    if existing is None:
        session.add(LocalBooking.from_booking(booking, tg_id))
    else:
        existing.status = booking.status
        existing.price = booking.price
    await session.flush()


async def _find_local_row(session: AsyncSession, booking: Booking) -> LocalBooking | None:
    row = await session.get(LocalBooking, booking.id)
    if row is not None:
        return row
    candidates = (await session.execute(
        select(LocalBooking).where(and_(
            LocalBooking.barber_id == str(booking.barber_id),
            LocalBooking.date == booking.date,
            LocalBooking.time_slot == normalize_time(booking.time_slot),
        ))
    )).scalars().all()
    confirmed = [c for c in candidates if c.status == STATUS_CONFIRMED]
    if confirmed:
        return confirmed[0]
    return candidates[0] if candidates else None


async def set_local_status(session: AsyncSession, booking: Booking, status: str) -> bool:
    row = await _find_local_row(session, booking)
    if row is None:
        return False
    row.status = status
    return True


async def set_local_price(session: AsyncSession, booking: Booking, price: int) -> bool:
    row = await _find_local_row(session, booking)
    if row is None:
        return False
    row.price = int(price)
    return True


# ---------- reconciliation ----------

def _slot_key(b: Booking) -> tuple[str, str, str]:
    return str(b.barber_id), date_key(b.date), normalize_time(b.time_slot)


def same_booking(a: Booking, b: Booking) -> bool:
    if a.id and a.id == b.id:
        return True
    ka = _slot_key(a)
    return all(ka) and ka == _slot_key(b)


def _same_owner(a: Booking, b: Booking) -> bool:
    if a.tg_user_id is not None and a.tg_user_id == b.tg_user_id:
        return True
    return bool(a.client_phone) and a.client_phone == b.client_phone


def _related(a: Booking, b: Booking) -> bool:
    if a.id and a.id == b.id:
        return True
    if not same_booking(a, b):
        return False
    if b.is_confirmed:
        return True
    # cancelled row counts only if it is ours and not older than a
    return _same_owner(a, b) and b.created_at >= a.created_at


def _best_match(b: Booking, candidates: Iterable[Booking]) -> Booking | None:
    fuzzy: list[Booking] = []
    for c in candidates:
        if b.id and c.id == b.id:
            return c
        if _related(b, c):
            fuzzy.append(c)
    if not fuzzy:
        return None
    for c in fuzzy:
        if c.is_confirmed:
            return c
    return fuzzy[0]


def occupied_bookings(server: Iterable[Booking], local: Iterable[Booking]) -> list[Booking]:
    server = list(server)
    local = list(local)
    out: list[Booking] = []
    for sb in server:
        hidden = sb.is_confirmed and any(
            not lb.is_confirmed and same_booking(lb, sb)
            and (lb.id == sb.id or (_same_owner(lb, sb) and lb.created_at >= sb.created_at))
            for lb in local
        )
        out.append(sb.with_status(STATUS_CANCELLED) if hidden else sb)
    for lb in local:
        if lb.is_confirmed and not any(_related(lb, sb) for sb in server):
            out.append(lb)
    return out


def user_bookings(server: Iterable[Booking], local: Iterable[Booking], tg_user_id: int) -> list[Booking]:
    server = list(server)
    out: list[Booking] = []
    for lb in local:
        sb = _best_match(lb, server)
        merged = lb
        if sb is not None and lb.is_confirmed:
            if not sb.is_confirmed:
                merged = merged.with_status(STATUS_CANCELLED)
            if sb.price > 0 and sb.price != lb.price:
                merged = merged.with_price(sb.price)
        out.append(merged)
    for sb in server:
        if sb.tg_user_id is None or int(sb.tg_user_id) != int(tg_user_id):
            continue
        if any(same_booking(sb, b) for b in out):
            continue
        out.append(sb)
    return out


def _sort_key(b: Booking) -> tuple[int, str]:
    key = date_key(b.date)
    t = normalize_time(b.time_slot) or "00:00"
    if not key:
        return (1, "")
    return (0, f"{key}T{t}")


def sort_for_display(bookings: Iterable[Booking]) -> list[Booking]:
    items = list(bookings)
    valid = sorted((b for b in items if _sort_key(b)[0] == 0), key=_sort_key, reverse=True)
    invalid = [b for b in items if _sort_key(b)[0] == 1]
    return valid + invalid


def admin_summary(bookings: Iterable[Booking], today: date, barber_id: str | None = None) -> AdminSummary:
    items = list(bookings)
    if barber_id:
        items = [b for b in items if str(b.barber_id) == str(barber_id)]
    active = [b for b in items if b.is_confirmed]
    today_key = today.isoformat()
    todays = [b for b in active if date_key(b.date) == today_key]
    return AdminSummary(
        bookings=sort_for_display(active),
        total_active=len(active),
        total_revenue=sum(b.price or 0 for b in active),
        today_count=len(todays),
        today_revenue=sum(b.price or 0 for b in todays),
    )


# ---------- commands ----------

async def place_booking(
    session: AsyncSession,
    sheets: SheetsClient,
    cache: BookingCache,
    draft: BookingDraft,
    now_local: datetime,
) -> tuple[Booking, bool]:
    """Сохраняет запись локально и отправляет её в таблицу.

    Возвращает (booking, synced). Если таблица недоступна, запись остаётся
    локальной и попадёт в занятые слоты до тех пор, пока сервер её не вернёт.
    """
    barber = get_barber(draft.barber_id)
    offer = get_offer(barber, draft.service_id) if barber else None
    hhmm = normalize_time(draft.time_slot)
    if barber is None or offer is None or not hhmm:
        raise BookingRejected("BAD_INPUT")

    tz = sheets.tz
    mine = user_bookings(cache.bookings, await list_local_bookings(session, draft.tg_user_id), draft.tg_user_id)
    if has_booking_on_date(mine, draft.day, tz):
        raise BookingRejected("DAY_TAKEN")

    occupied = occupied_bookings(cache.bookings, await list_all_local_bookings(session))
    if not is_slot_free(barber, draft.day, hhmm, occupied, offer.duration_min, now_local, tz):
        raise BookingRejected("SLOT_TAKEN")

    booking = Booking(
        id=new_booking_id(),
        barber_id=barber.id,
        service_id=offer.service_id,
        date=draft.day.isoformat(),
        time_slot=hhmm,
        client_name=draft.client_name.strip(),
        client_phone=draft.client_phone,
        price=final_price(offer),
        duration=offer.duration_min,
        status=STATUS_CONFIRMED,
        created_at=now_ms(),
        tg_user_id=draft.tg_user_id,
        tg_username=draft.tg_username,
    )
    await save_local_booking(session, booking, draft.tg_user_id)

    synced = False
    if sheets.enabled:
        try:
            await sheets.create_booking(booking)
            synced = True
            cache.replace(booking)
        except SheetsError:
            logger.warning("Booking %s saved locally, server write failed", booking.id, exc_info=True)
    return booking, synced


async def cancel_user_booking(
    session: AsyncSession,
    sheets: SheetsClient,
    cache: BookingCache,
    tg_user_id: int,
    booking_id: str,
) -> tuple[Booking, bool]:
    mine = user_bookings(cache.bookings, await list_local_bookings(session, tg_user_id), tg_user_id)
    target = next((b for b in mine if b.id == booking_id), None)
    if target is None:
        raise BookingRejected("NOT_FOUND")
    if not target.is_confirmed:
        return target, True

    cancelled = target.with_status(STATUS_CANCELLED)
    if not await set_local_status(session, target, STATUS_CANCELLED):
        await save_local_booking(session, cancelled, tg_user_id)

    synced = False
    if sheets.enabled:
        try:
            await sheets.cancel_booking(target)
            synced = True
            cache.replace(cancelled)
        except SheetsError:
            logger.warning("Cancel of %s kept locally, server write failed", target.id, exc_info=True)
    return cancelled, synced


async def admin_delete_booking(
    session: AsyncSession,
    sheets: SheetsClient,
    cache: BookingCache,
    booking: Booking,
) -> Booking:
    if sheets.enabled:
        await sheets.cancel_booking(booking)
    cancelled = booking.with_status(STATUS_CANCELLED)
    cache.replace(cancelled)
    await set_local_status(session, booking, STATUS_CANCELLED)
    return cancelled


async def admin_update_price(
    session: AsyncSession,
    sheets: SheetsClient,
    cache: BookingCache,
    booking: Booking,
    price: int,
) -> Booking:
    if price < 0:
        raise BookingRejected("BAD_INPUT")
    if sheets.enabled:
        await sheets.update_price(booking, price)
    updated = booking.with_price(price)
    cache.replace(updated)
    await set_local_price(session, booking, price)
    return updated


def find_booking(bookings: Iterable[Booking], ref: str) -> Booking | None:
    return next((b for b in bookings if b.ref == ref or b.id == ref), None)
