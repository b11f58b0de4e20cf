from __future__ import annotations
from datetime import date
from urllib.parse import quote

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, ReplyKeyboardMarkup, KeyboardButton

from barbershop.booking import Booking
from barbershop.catalog import (
    Barber, Service, ServiceOffer, BARBERS, SERVICES, PROMO_SERVICE_ID,
    final_price, min_price, promo_price,
)
from barbershop.slots import TimeSlot, group_slots, is_working_day
from barbershop.texts import ADDRESS_LINE
from barbershop.utils import format_price, weekday_short

BTN_BOOK = "Записаться"
BTN_BARBERS = "Мастера"
BTN_SERVICES = "Услуги и цены"
BTN_MY = "Мои записи"
BTN_CONTACTS = "Контакты"
BTN_ADMIN = "Админ-панель"
BTN_BACK_MAIN = "⬅️ В главное меню"
BTN_CANCEL_WIZARD = "✖️ Отменить запись"

STATUS_RU = {
    "confirmed": "✅ Подтверждена",
    "cancelled": "❌ Отменена",
}

GROUP_TITLES = (
    ("morning", "☀️ Утро"),
    ("day", "🌤 День"),
    ("evening", "🌙 Вечер"),
)


def status_ru(v: str) -> str:
    return STATUS_RU.get(v, v)


def main_menu_kb(is_admin: bool = False) -> ReplyKeyboardMarkup:
    kb = [
        [BTN_BOOK],
        [BTN_BARBERS, BTN_SERVICES],
        [BTN_MY, BTN_CONTACTS],
    ]
    if is_admin:
        kb.append([BTN_ADMIN])
    return ReplyKeyboardMarkup(kb, resize_keyboard=True)


def phone_request_kb() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        [
            [KeyboardButton("📞 Отправить телефон", request_contact=True)],
            [BTN_CANCEL_WIZARD],
        ],
        resize_keyboard=True,
        one_time_keyboard=True,
    )


def name_prompt_kb(suggested: str | None) -> ReplyKeyboardMarkup:
    rows = []
    if suggested:
        rows.append([suggested])
    rows.append([BTN_CANCEL_WIZARD])
    return ReplyKeyboardMarkup(rows, resize_keyboard=True, one_time_keyboard=True)


def contacts_kb() -> InlineKeyboardMarkup:
    maps_url = f"https://yandex.ru/maps/?text={quote(ADDRESS_LINE)}"
    return InlineKeyboardMarkup([
        [InlineKeyboardButton("🗺 Открыть на карте", url=maps_url)],
        [InlineKeyboardButton("✂️ Записаться", callback_data="book:new")],
    ])


def price_label(service_id: str, price: int) -> str:
    discounted = promo_price(service_id, price)
    if discounted != price:
        return f"{format_price(discounted)} (вместо {format_price(price)})"
    return format_price(price)


# ---------- home ----------

def barbers_list_kb() -> InlineKeyboardMarkup:
    rows = []
    for b in BARBERS:
        rows.append([InlineKeyboardButton(f"{b.name} • ⭐ {b.rating} • {b.tier}", callback_data=f"bar:{b.id}")])
    return InlineKeyboardMarkup(rows)


def barber_card_kb(barber: Barber) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton("✂️ Записаться к мастеру", callback_data=f"book:barber:{barber.id}")],
        [InlineKeyboardButton("⬅️ Все мастера", callback_data="home:barbers")],
    ])


def services_list_kb() -> InlineKeyboardMarkup:
    rows = []
    for s in SERVICES:
        mp = min_price(s.id)
        if mp is None:
            continue
        rows.append([InlineKeyboardButton(
            f"{s.name} • от {price_label(s.id, mp)}",
            callback_data=f"book:svc:{s.id}",
        )])
    rows.append([InlineKeyboardButton("🔥 Акция «Отец + Сын»", callback_data=f"book:svc:{PROMO_SERVICE_ID}")])
    return InlineKeyboardMarkup(rows)


# ---------- wizard ----------

def wizard_barbers_kb(barbers: list[Barber]) -> InlineKeyboardMarkup:
    rows = []
    for b in barbers:
        rows.append([InlineKeyboardButton(f"{b.name} • ⭐ {b.rating}", callback_data=f"wb:{b.id}")])
    rows.append([InlineKeyboardButton("⬅️ Назад", callback_data="wback")])
    return InlineKeyboardMarkup(rows)


def wizard_services_kb(items: list[tuple[ServiceOffer, Service]]) -> InlineKeyboardMarkup:
    rows = []
    for offer, service in items:
        rows.append([InlineKeyboardButton(
            f"{service.name} • {offer.duration_min} мин • от {format_price(final_price(offer))}",
            callback_data=f"ws:{offer.service_id}",
        )])
    rows.append([InlineKeyboardButton("⬅️ Назад", callback_data="wback")])
    return InlineKeyboardMarkup(rows)


def wizard_dates_kb(dates: list[date], barber: Barber, today: date) -> InlineKeyboardMarkup:
    rows = []
    row = []
    for d in dates:
        label_day = "Сегодня" if d == today else weekday_short(d)
        if is_working_day(barber, d):
            btn = InlineKeyboardButton(f"{label_day} {d.strftime('%d.%m')}", callback_data=f"wd:{d.isoformat()}")
        else:
            btn = InlineKeyboardButton(f"✖ {d.strftime('%d.%m')}", callback_data="noop:dayoff")
        row.append(btn)
        if len(row) == 3:
            rows.append(row)
            row = []
    if row:
        rows.append(row)
    rows.append([InlineKeyboardButton("⬅️ Назад", callback_data="wback")])
    return InlineKeyboardMarkup(rows)


def wizard_slots_kb(slots: list[TimeSlot]) -> InlineKeyboardMarkup:
    rows = []
    groups = group_slots(slots)
    for key, title in GROUP_TITLES:
        items = groups[key]
        if not items:
            continue
        rows.append([InlineKeyboardButton(title, callback_data="noop:title")])
        row = []
        for s in items:
            if s.available:
                row.append(InlineKeyboardButton(s.time, callback_data=f"wt:{s.time}"))
            else:
                row.append(InlineKeyboardButton(f"✖ {s.time}", callback_data="noop:busy"))
            if len(row) == 4:
                rows.append(row)
                row = []
        if row:
            rows.append(row)
    rows.append([InlineKeyboardButton("📅 Другая дата", callback_data="wdates")])
    rows.append([InlineKeyboardButton("⬅️ Назад", callback_data="wback")])
    return InlineKeyboardMarkup(rows)


def call_admin_kb() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton("📅 Другая дата", callback_data="wdates")],
        [InlineKeyboardButton("⬅️ Назад", callback_data="wback")],
    ])


def wizard_confirm_kb() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton("✅ Записаться", callback_data="wsend")],
        [InlineKeyboardButton("✏️ Изменить контакты", callback_data="wcontact")],
        [InlineKeyboardButton("✖️ Отмена", callback_data="wcancel")],
    ])


# ---------- my bookings ----------

def my_booking_kb(b: Booking) -> InlineKeyboardMarkup | None:
    if not b.is_confirmed:
        return None
    return InlineKeyboardMarkup([
        [InlineKeyboardButton("🗑 Отменить запись", callback_data=f"mycancel:{b.ref}")],
    ])


def my_cancel_confirm_kb(ref: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton("Да, отменить", callback_data=f"myok:{ref}")],
        [InlineKeyboardButton("Нет, оставить", callback_data=f"mykeep:{ref}")],
    ])


# ---------- admin ----------

def admin_booking_row(num: int, b: Booking) -> list[InlineKeyboardButton]:
    return [
        InlineKeyboardButton(f"💰 Цена #{num}", callback_data=f"admprice:{b.ref}"),
        InlineKeyboardButton(f"🗑 Удалить #{num}", callback_data=f"admdel:{b.ref}"),
    ]


def admin_panel_kb(selected: str | None, shown: list[Booking]) -> InlineKeyboardMarkup:
    rows = []
    all_label = "• Все мастера •" if selected is None else "Все мастера"
    rows.append([InlineKeyboardButton(all_label, callback_data="admf:all")])
    row = []
    for b in BARBERS:
        label = f"• {b.name} •" if selected == b.id else b.name
        # повторное нажатие на выбранного мастера снимает фильтр
        target = "all" if selected == b.id else b.id
        row.append(InlineKeyboardButton(label, callback_data=f"admf:{target}"))
        if len(row) == 2:
            rows.append(row)
            row = []
    if row:
        rows.append(row)
    for num, b in enumerate(shown, start=1):
        rows.append(admin_booking_row(num, b))
    rows.append([InlineKeyboardButton("🔄 Обновить", callback_data="admrefresh")])
    return InlineKeyboardMarkup(rows)


def admin_delete_confirm_kb(ref: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton("Да, удалить", callback_data=f"admdelok:{ref}")],
        [InlineKeyboardButton("Нет", callback_data=f"admkeep:{ref}")],
    ])
