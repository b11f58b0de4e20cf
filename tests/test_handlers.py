from datetime import timedelta
from types import SimpleNamespace

import pytest

from barbershop.config import Config
from barbershop.handlers import (
    K_BARBER,
    K_PRE_SERVICE,
    K_SERVICE,
    K_STEP,
    admin_panel,
    select_barber,
    select_date,
    start_wizard,
    text_router,
    wizard_back,
)
from barbershop.keyboards import BTN_BACK_MAIN
from barbershop.logic import BookingCache
from barbershop.slots import day_intervals, now_in

from conftest import MSK, make_booking

ADMIN_ID = 999


class FakeMessage:
    def __init__(self, text=None):
        self.text = text
        self.contact = None
        self.edits = []
        self.replies = []

    async def edit_text(self, text, reply_markup=None, parse_mode=None):
        self.edits.append((text, reply_markup))

    async def reply_text(self, text, reply_markup=None, parse_mode=None):
        self.replies.append((text, reply_markup))


class FakeBot:
    def __init__(self):
        self.sent = []

    async def send_message(self, chat_id, text, reply_markup=None):
        self.sent.append((chat_id, text))


def make_update(user_id=111, data=None, text=None):
    msg = FakeMessage(text)
    query = SimpleNamespace(message=msg, data=data) if data is not None else None
    user = SimpleNamespace(id=user_id, first_name="Иван", username="ivan", full_name="Иван Петров")
    return SimpleNamespace(callback_query=query, effective_message=msg, message=msg, effective_user=user), msg


def _callbacks(markup):
    if markup is None:
        return []
    return [btn.callback_data for row in markup.inline_keyboard for btn in row if btn.callback_data]


@pytest.fixture
def context(session_factory, sheets):
    cfg = Config(
        bot_token="123:abc",
        admin_telegram_ids=(ADMIN_ID,),
        bookings_api_url="",
        database_url="sqlite+aiosqlite:///:memory:",
        timezone="Europe/Moscow",
        poll_interval_sec=10,
        http_timeout_sec=10.0,
        admin_phone="+79805470406",
        webhook_url="",
        port=8080,
        log_level="INFO",
    )
    return SimpleNamespace(
        user_data={},
        bot_data={
            "cfg": cfg,
            "session_factory": session_factory,
            "sheets": sheets,
            "cache": BookingCache(),
            "tz": MSK,
        },
        bot=FakeBot(),
    )


def _future_day():
    return now_in(MSK).date() + timedelta(days=2)


# ---------- back navigation ----------

async def test_back_from_service_with_preselected_barber_closes_wizard(context):
    update, msg = make_update(data="book:barber:b3")
    await start_wizard(update, context, barber_id="b3")
    assert context.user_data[K_STEP] == 2
    assert msg.edits[-1][0].startswith("Шаг 2 / 4")

    await wizard_back(update, context)
    assert msg.edits[-1][0] == "Запись отменена."
    assert K_BARBER not in context.user_data
    assert K_STEP not in context.user_data


async def test_back_from_dates_with_preselected_service_goes_to_step_one(context):
    update, msg = make_update(data="book:svc:s5")
    await start_wizard(update, context, service_id="s5")
    assert context.user_data[K_STEP] == 1

    await select_barber(update, context, "b1")
    assert context.user_data[K_STEP] == 3
    assert context.user_data[K_SERVICE] == "s5"

    await wizard_back(update, context)
    assert context.user_data[K_STEP] == 1
    assert K_BARBER not in context.user_data
    assert context.user_data[K_PRE_SERVICE] == "s5"
    assert msg.edits[-1][0].startswith("Шаг 1 / 4")


async def test_back_from_dates_without_preselection_goes_to_services(context):
    update, msg = make_update(data="wb:b3")
    await start_wizard(update, context)
    await select_barber(update, context, "b3")
    context.user_data[K_SERVICE] = "s1"
    context.user_data[K_STEP] = 3

    await wizard_back(update, context)
    assert context.user_data[K_STEP] == 2
    assert context.user_data[K_BARBER] == "b3"
    assert msg.edits[-1][0].startswith("Шаг 2 / 4")


# ---------- date step ----------

async def test_day_with_own_booking_shows_no_slots(context, sheets):
    day = _future_day()
    sheets.bookings = [make_booking(barber_id="b1", date=day.isoformat(), time_slot="12:00", tg_user_id=111)]
    context.user_data.update({K_BARBER: "b5", K_SERVICE: "s1"})
    update, msg = make_update(data=f"wd:{day.isoformat()}")

    await select_date(update, context, day.isoformat())
    text, markup = msg.edits[-1]
    assert "У вас уже есть запись на этот день" in text
    assert "+79805470406" in text
    assert not any(d.startswith("wt:") for d in _callbacks(markup))


async def test_fully_booked_day_says_so(context, sheets):
    day = _future_day()
    sheets.bookings = [
        make_booking(
            id=f"busy{i}", barber_id="b5", date=day.isoformat(), time_slot=t,
            duration=30, tg_user_id=222, client_phone="+79990000000",
        )
        for i, t in enumerate(day_intervals())
    ]
    context.user_data.update({K_BARBER: "b5", K_SERVICE: "s1"})
    update, msg = make_update(data=f"wd:{day.isoformat()}")

    await select_date(update, context, day.isoformat())
    text, markup = msg.edits[-1]
    assert "всё занято" in text
    assert not any(d.startswith("wt:") for d in _callbacks(markup))


async def test_free_day_offers_times(context):
    day = _future_day()
    context.user_data.update({K_BARBER: "b5", K_SERVICE: "s1"})
    update, msg = make_update(data=f"wd:{day.isoformat()}")

    await select_date(update, context, day.isoformat())
    text, markup = msg.edits[-1]
    assert "Выберите время" in text
    assert "wt:10:00" in _callbacks(markup)


# ---------- menu & admin ----------

async def test_admin_panel_requires_admin(context):
    update, msg = make_update(user_id=111, text="Админ-панель")
    await admin_panel(update, context)
    assert msg.replies[-1][0] == "Нет доступа."


async def test_admin_panel_for_admin(context, sheets):
    sheets.bookings = [make_booking(date=_future_day().isoformat(), price=1800)]
    update, msg = make_update(user_id=ADMIN_ID, text="Админ-панель")
    await admin_panel(update, context)
    text, markup = msg.replies[-1]
    assert text.startswith("🛡 Админ-панель")
    assert "Записей (Всего): 1" in text
    assert "admdel:abc123xyz" in _callbacks(markup)


async def test_back_to_main_menu_for_any_user(context):
    update, msg = make_update(user_id=111, text=BTN_BACK_MAIN)
    await text_router(update, context)
    assert msg.replies[-1][0] == "Главное меню 👇"
