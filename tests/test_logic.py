from datetime import date

import pytest

from barbershop.logic import (
    BookingCache,
    BookingDraft,
    BookingRejected,
    admin_delete_booking,
    admin_summary,
    admin_update_price,
    cancel_user_booking,
    find_booking,
    get_user,
    list_all_local_bookings,
    list_local_bookings,
    occupied_bookings,
    place_booking,
    same_booking,
    save_local_booking,
    set_user_contact,
    sort_for_display,
    upsert_user,
    user_bookings,
)
from barbershop.catalog import get_barber
from barbershop.sheets import SheetsError
from barbershop.slots import is_slot_free

from conftest import make_booking, msk

NOW = msk(2025, 1, 10, 9, 0)


def _draft(**kw) -> BookingDraft:
    data = dict(
        barber_id="b3",
        service_id="s1",
        day=date(2025, 1, 15),
        time_slot="12:00",
        client_name=" Иван ",
        client_phone="+79001234567",
        tg_user_id=111,
        tg_username="ivan",
    )
    data.update(kw)
    return BookingDraft(**data)


async def _local(session_factory, tg_id=111):
    async with session_factory() as s:
        return await list_local_bookings(s, tg_id)


# ---------- matching ----------

def test_same_booking_by_id_or_slot():
    a = make_booking(id="one")
    assert same_booking(a, make_booking(id="one", time_slot="15:00"))
    assert same_booking(a, make_booking(id="two", date="15.01.2025", time_slot="12:00:00"))
    assert not same_booking(a, make_booking(id="two", time_slot="12:30"))


def test_occupied_adds_optimistic_local_bookings():
    server = [make_booking(id="s1", time_slot="10:00", tg_user_id=222)]
    local = [make_booking(id="l1", time_slot="12:00")]
    assert {b.id for b in occupied_bookings(server, local)} == {"s1", "l1"}


def test_occupied_does_not_duplicate_synced_booking():
    server = [make_booking(id="srv-id")]
    local = [make_booking(id="local-id")]
    result = occupied_bookings(server, local)
    assert [b.id for b in result] == ["srv-id"]


def test_local_cancel_hides_server_booking():
    server = [make_booking(id="srv-id")]
    local = [make_booking(id="local-id", status="cancelled")]
    result = occupied_bookings(server, local)
    assert [b.status for b in result] == ["cancelled"]


def test_foreign_cancellation_does_not_hide_new_local_booking():
    server = [make_booking(id="old", status="cancelled", tg_user_id=222, client_phone="+79990000000")]
    local = [make_booking(id="new")]
    result = occupied_bookings(server, local)
    assert [b.id for b in result if b.is_confirmed] == ["new"]


def test_user_bookings_server_cancel_and_price_win():
    server = [make_booking(id="abc123xyz", status="cancelled", price=2700)]
    result = user_bookings(server, [make_booking()], 111)
    assert result[0].status == "cancelled"

    server = [make_booking(id="abc123xyz", price=2700)]
    assert user_bookings(server, [make_booking()], 111)[0].price == 2700

    server = [make_booking(id="abc123xyz", price=0)]
    assert user_bookings(server, [make_booking()], 111)[0].price == 1800


def test_user_bookings_adds_server_rows_of_this_user():
    server = [
        make_booking(id="mine", date="2025-01-20", tg_user_id=111),
        make_booking(id="theirs", date="2025-01-21", tg_user_id=222),
        make_booking(id="anon", date="2025-01-22", tg_user_id=None),
    ]
    result = user_bookings(server, [], 111)
    assert [b.id for b in result] == ["mine"]


def test_sort_for_display_newest_first_invalid_last():
    items = [
        make_booking(id="a", date="2025-01-15", time_slot="10:00"),
        make_booking(id="bad", date="когда-нибудь"),
        make_booking(id="b", date="2025-01-20", time_slot="10:00"),
        make_booking(id="c", date="2025-01-15", time_slot="18:00"),
    ]
    assert [b.id for b in sort_for_display(items)] == ["b", "c", "a", "bad"]


def test_admin_summary():
    today = date(2025, 1, 15)
    items = [
        make_booking(id="1", barber_id="b1", price=2500),
        make_booking(id="2", barber_id="b3", price=1800, time_slot="15:00"),
        make_booking(id="3", barber_id="b3", price=1200, date="2025-01-16"),
        make_booking(id="4", barber_id="b3", price=9999, status="cancelled"),
    ]
    total = admin_summary(items, today)
    assert total.total_active == 3
    assert total.total_revenue == 5500
    assert total.today_count == 2
    assert total.today_revenue == 4300
    assert [b.id for b in total.bookings] == ["3", "2", "1"]

    only_b3 = admin_summary(items, today, "b3")
    assert only_b3.total_active == 2
    assert only_b3.total_revenue == 3000
    assert only_b3.today_count == 1


def test_find_booking_by_ref():
    long = make_booking(id="y" * 60)
    assert find_booking([make_booking(), long], long.ref) is long
    assert find_booking([long], "missing") is None


# ---------- store ----------

async def test_user_contact_roundtrip(session_factory):
    async with session_factory() as s:
        async with s.begin():
            await upsert_user(s, 111, "ivan", "Ivan Petrov")
            await set_user_contact(s, 111, "Иван", "+79001234567")
    async with session_factory() as s:
        user = await get_user(s, 111)
    assert user.client_name == "Иван"
    assert user.phone == "+79001234567"


# ---------- commands ----------

async def test_place_booking_saves_and_syncs(session_factory, sheets):
    cache = BookingCache()
    async with session_factory() as s:
        async with s.begin():
            booking, synced = await place_booking(s, sheets, cache, _draft(), NOW)

    assert synced
    assert booking.client_name == "Иван"
    assert booking.price == 1800
    assert booking.duration == 45
    assert booking.is_confirmed
    assert ("create", booking.id) in sheets.calls
    assert cache.bookings == [booking]
    assert [b.id for b in await _local(session_factory)] == [booking.id]


async def test_place_booking_applies_family_promo(session_factory, sheets):
    async with session_factory() as s:
        async with s.begin():
            booking, _ = await place_booking(
                s, sheets, BookingCache(), _draft(barber_id="b1", service_id="s5"), NOW
            )
    assert booking.price == 3400


async def test_place_booking_keeps_local_copy_when_server_fails(session_factory, sheets):
    sheets.fail = True
    cache = BookingCache()
    async with session_factory() as s:
        async with s.begin():
            booking, synced = await place_booking(s, sheets, cache, _draft(), NOW)
    assert not synced
    assert cache.bookings == []
    assert [b.id for b in await _local(session_factory)] == [booking.id]


async def test_place_booking_rejects_taken_slot(session_factory, sheets):
    cache = BookingCache(bookings=[make_booking(id="other", time_slot="12:30", tg_user_id=222)])
    async with session_factory() as s:
        with pytest.raises(BookingRejected) as exc:
            await place_booking(s, sheets, cache, _draft(), NOW)
    assert exc.value.code == "SLOT_TAKEN"


async def test_place_booking_sees_unsynced_local_bookings_of_others(session_factory, sheets):
    async with session_factory() as s:
        async with s.begin():
            await save_local_booking(s, make_booking(id="pending", tg_user_id=222), 222)
    async with session_factory() as s:
        with pytest.raises(BookingRejected) as exc:
            await place_booking(s, sheets, BookingCache(), _draft(), NOW)
    assert exc.value.code == "SLOT_TAKEN"


async def test_place_booking_one_per_day(session_factory, sheets):
    cache = BookingCache(bookings=[make_booking(id="mine", time_slot="18:00", tg_user_id=111)])
    async with session_factory() as s:
        with pytest.raises(BookingRejected) as exc:
            await place_booking(s, sheets, cache, _draft(), NOW)
    assert exc.value.code == "DAY_TAKEN"


@pytest.mark.parametrize("kw", [
    {"barber_id": "b404"},
    {"barber_id": "b6", "service_id": "s2"},
    {"time_slot": "полдень"},
])
async def test_place_booking_bad_input(session_factory, sheets, kw):
    async with session_factory() as s:
        with pytest.raises(BookingRejected) as exc:
            await place_booking(s, sheets, BookingCache(), _draft(**kw), NOW)
    assert exc.value.code == "BAD_INPUT"


async def test_cancel_user_booking(session_factory, sheets):
    cache = BookingCache()
    async with session_factory() as s:
        async with s.begin():
            booking, _ = await place_booking(s, sheets, cache, _draft(), NOW)
    async with session_factory() as s:
        async with s.begin():
            cancelled, synced = await cancel_user_booking(s, sheets, cache, 111, booking.id)

    assert synced
    assert cancelled.status == "cancelled"
    assert ("cancel", booking.id) in sheets.calls
    assert [b.status for b in await _local(session_factory)] == ["cancelled"]
    assert not any(b.is_confirmed for b in cache.bookings)


async def test_cancel_unknown_booking(session_factory, sheets):
    async with session_factory() as s:
        with pytest.raises(BookingRejected) as exc:
            await cancel_user_booking(s, sheets, BookingCache(), 111, "nope")
    assert exc.value.code == "NOT_FOUND"


async def test_cancel_server_only_booking_is_recorded_locally(session_factory, sheets):
    cache = BookingCache(bookings=[make_booking(id="from-sheet")])
    async with session_factory() as s:
        async with s.begin():
            cancelled, _ = await cancel_user_booking(s, sheets, cache, 111, "from-sheet")
    assert cancelled.status == "cancelled"
    local = await _local(session_factory)
    assert [(b.id, b.status) for b in local] == [("from-sheet", "cancelled")]


async def test_admin_delete_fails_without_server(session_factory, sheets):
    cache = BookingCache()
    async with session_factory() as s:
        async with s.begin():
            booking, _ = await place_booking(s, sheets, cache, _draft(), NOW)

    sheets.fail = True
    with pytest.raises(SheetsError):
        async with session_factory() as s:
            async with s.begin():
                await admin_delete_booking(s, sheets, cache, booking)
    assert [b.status for b in await _local(session_factory)] == ["confirmed"]

    sheets.fail = False
    async with session_factory() as s:
        async with s.begin():
            await admin_delete_booking(s, sheets, cache, booking)
    assert [b.status for b in await _local(session_factory)] == ["cancelled"]
    assert cache.bookings[0].status == "cancelled"


async def test_admin_update_price(session_factory, sheets):
    cache = BookingCache()
    async with session_factory() as s:
        async with s.begin():
            booking, _ = await place_booking(s, sheets, cache, _draft(), NOW)
    async with session_factory() as s:
        async with s.begin():
            updated = await admin_update_price(s, sheets, cache, booking, 2700)
    assert updated.price == 2700
    assert ("updatePrice", booking.id, 2700) in sheets.calls
    async with session_factory() as s:
        assert [b.price for b in await list_all_local_bookings(s)] == [2700]

    async with session_factory() as s:
        with pytest.raises(BookingRejected):
            await admin_update_price(s, sheets, cache, booking, -1)


def test_old_local_cancel_does_not_hide_newer_server_booking():
    server = [make_booking(id="srv-new", created_at=2000)]
    local = [make_booking(id="local-old", status="cancelled", created_at=1000)]
    assert [b.status for b in occupied_bookings(server, local)] == ["confirmed"]


async def test_rebooking_cancelled_slot_offline_stays_occupied(session_factory, sheets):
    old = make_booking(id="old", status="cancelled", created_at=1000)
    async with session_factory() as s:
        async with s.begin():
            await save_local_booking(s, old, 111)
    cache = BookingCache(bookings=[old])

    sheets.fail = True
    async with session_factory() as s:
        async with s.begin():
            booking, synced = await place_booking(s, sheets, cache, _draft(), NOW)
    assert not synced

    local = await _local(session_factory)
    mine = {b.id: b.status for b in user_bookings(cache.bookings, local, 111)}
    assert mine == {"old": "cancelled", booking.id: "confirmed"}

    async with session_factory() as s:
        everyone = occupied_bookings(cache.bookings, await list_all_local_bookings(s))
    assert not is_slot_free(get_barber("b3"), date(2025, 1, 15), "12:00", everyone, 45, NOW)

    async with session_factory() as s:
        with pytest.raises(BookingRejected) as exc:
            await place_booking(s, sheets, cache, _draft(time_slot="16:00"), NOW)
    assert exc.value.code == "DAY_TAKEN"
