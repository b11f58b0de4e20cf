from datetime import datetime

import pytest
import pytz
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from barbershop.booking import Booking
from barbershop.db import init_db, make_session_factory
from barbershop.sheets import SheetsError

MSK = pytz.timezone("Europe/Moscow")


def msk(*args) -> datetime:
    return MSK.localize(datetime(*args))


def make_booking(**kw) -> Booking:
    data = dict(
        id="abc123xyz",
        barber_id="b3",
        service_id="s1",
        date="2025-01-15",
        time_slot="12:00",
        client_name="Иван",
        client_phone="+79001234567",
        price=1800,
        duration=45,
        tg_user_id=111,
    )
    data.update(kw)
    return Booking(**data)


class FakeSheets:
    def __init__(self, bookings=None, enabled=True):
        self.tz = MSK
        self.enabled = enabled
        self.bookings = list(bookings or [])
        self.fail = False
        self.calls = []

    async def fetch_bookings(self):
        self.calls.append(("list",))
        if self.fail:
            raise SheetsError("endpoint down")
        return list(self.bookings)

    async def create_booking(self, booking):
        self.calls.append(("create", booking.id))
        if self.fail:
            raise SheetsError("endpoint down")
        return {"status": "ok"}

    async def cancel_booking(self, booking):
        self.calls.append(("cancel", booking.id))
        if self.fail:
            raise SheetsError("endpoint down")
        return {"status": "ok"}

    async def update_price(self, booking, price):
        self.calls.append(("updatePrice", booking.id, price))
        if self.fail:
            raise SheetsError("endpoint down")
        return {"status": "ok"}


@pytest.fixture
def tz():
    return MSK


@pytest.fixture
def sheets():
    return FakeSheets()


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)
    yield make_session_factory(engine)
    await engine.dispose()
