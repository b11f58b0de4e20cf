from __future__ import annotations
from datetime import date
import logging

import pytz
from telegram import Update
from telegram.error import BadRequest
from telegram.ext import ContextTypes

from barbershop.booking import Booking
from barbershop.catalog import (
    get_barber, get_service, get_offer, barbers_for, services_of, final_price,
    min_price, promo_price, SERVICES,
)
from barbershop.config import Config
from barbershop.db import run_in_session
from barbershop.keyboards import (
    main_menu_kb, phone_request_kb, name_prompt_kb, contacts_kb, barbers_list_kb, barber_card_kb,
    services_list_kb, wizard_barbers_kb, wizard_services_kb, wizard_dates_kb, wizard_slots_kb,
    call_admin_kb, wizard_confirm_kb, my_booking_kb, my_cancel_confirm_kb, admin_panel_kb,
    admin_delete_confirm_kb, price_label, status_ru,
    BTN_BOOK, BTN_BARBERS, BTN_SERVICES, BTN_MY, BTN_CONTACTS, BTN_ADMIN, BTN_BACK_MAIN,
    BTN_CANCEL_WIZARD,
)
from barbershop.logic import (
    BookingCache, BookingDraft, BookingRejected, upsert_user, get_user, set_user_contact,
    list_local_bookings, list_all_local_bookings, user_bookings, occupied_bookings,
    sort_for_display, admin_summary, place_booking, cancel_user_booking,
    admin_delete_booking, admin_update_price, find_booking,
)
from barbershop.sheets import SheetsClient, SheetsError
from barbershop.slots import (
    booking_dates, build_time_slots, has_booking_on_date, is_working_day, now_in,
)
from barbershop.sync import refresh
from barbershop.texts import (
    GREETING, CONTACTS, PROMO_BANNER, HONEST_PRICE, ONE_BOOKING_PER_DAY, CANCEL_WARNING,
)
from barbershop.utils import format_price, format_day_month, normalize_phone, format_phone

logger = logging.getLogger(__name__)

K_STEP = "w_step"
K_BARBER = "w_barber_id"
K_SERVICE = "w_service_id"
K_DATE = "w_date"
K_TIME = "w_time"
K_NAME = "w_name"
K_PHONE = "w_phone"
K_PRE_BARBER = "w_pre_barber_id"
K_PRE_SERVICE = "w_pre_service_id"
K_ADMIN_FILTER = "admin_barber_filter"
K_ADMIN_PRICE_REF = "admin_price_ref"

WIZARD_KEYS = (K_STEP, K_BARBER, K_SERVICE, K_DATE, K_TIME, K_NAME, K_PHONE, K_PRE_BARBER, K_PRE_SERVICE)
WIZARD_FLAGS = ("awaiting_name", "awaiting_phone")

MENU_BUTTONS = {BTN_BOOK, BTN_BARBERS, BTN_SERVICES, BTN_MY, BTN_CONTACTS, BTN_ADMIN, BTN_BACK_MAIN}

MY_BOOKINGS_LIMIT = 10
ADMIN_LIST_LIMIT = 15


def admin_ids(cfg: Config) -> tuple[int, ...]:
    return tuple(cfg.admin_telegram_ids or ())


def is_admin(cfg: Config, user_id: int) -> bool:
    return user_id in admin_ids(cfg)


async def notify_admins(context: ContextTypes.DEFAULT_TYPE, cfg: Config, text: str, reply_markup=None) -> None:
    for admin_id in admin_ids(cfg):
        try:
            await context.bot.send_message(chat_id=admin_id, text=text, reply_markup=reply_markup)
        except Exception:
            logger.exception("Failed to notify admin %s", admin_id)


def main_menu_for(update: Update, context: ContextTypes.DEFAULT_TYPE):
    cfg: Config | None = context.bot_data.get("cfg")
    if cfg and update.effective_user:
        return main_menu_kb(is_admin(cfg, update.effective_user.id))
    return main_menu_kb()


def _tz(context: ContextTypes.DEFAULT_TYPE) -> pytz.BaseTzInfo:
    return context.bot_data["tz"]


def _clear_wizard(context: ContextTypes.DEFAULT_TYPE) -> None:
    for key in WIZARD_KEYS:
        context.user_data.pop(key, None)
    for flag in WIZARD_FLAGS:
        context.user_data.pop(flag, None)


def _clear_admin_price(context: ContextTypes.DEFAULT_TYPE) -> None:
    context.user_data.pop(K_ADMIN_PRICE_REF, None)
    context.user_data.pop("awaiting_admin_price", None)


async def _show(update: Update, text: str, reply_markup=None, parse_mode=None) -> None:
    """Edit the message under an inline button, or reply to a plain message."""
    query = update.callback_query
    if query and query.message:
        try:
            await query.message.edit_text(text, reply_markup=reply_markup, parse_mode=parse_mode)
        except BadRequest as exc:
            if "not modified" not in str(exc).lower():
                raise
        return
    await update.effective_message.reply_text(text, reply_markup=reply_markup, parse_mode=parse_mode)


async def _sync(context: ContextTypes.DEFAULT_TYPE) -> BookingCache:
    cache: BookingCache = context.bot_data["cache"]
    sheets: SheetsClient = context.bot_data["sheets"]
    await refresh(cache, sheets)
    return cache


async def _my_bookings(context: ContextTypes.DEFAULT_TYPE, tg_id: int) -> list[Booking]:
    cache: BookingCache = context.bot_data["cache"]
    local = await run_in_session(context.bot_data["session_factory"], lambda s: list_local_bookings(s, tg_id))
    return user_bookings(cache.bookings, local, tg_id)


async def _occupied(context: ContextTypes.DEFAULT_TYPE) -> list[Booking]:
    cache: BookingCache = context.bot_data["cache"]
    local = await run_in_session(context.bot_data["session_factory"], list_all_local_bookings)
    return occupied_bookings(cache.bookings, local)


def booking_card(b: Booking, tz: pytz.BaseTzInfo) -> str:
    barber = get_barber(b.barber_id)
    service = get_service(b.service_id)
    start = b.start_local(tz)
    day = format_day_month(start.date()) if start else "Неверная дата"
    time_label = start.strftime("%H:%M") if start else "--:--"
    return (
        f"{status_ru(b.status)}\n"
        f"✂️ {service.name if service else 'Услуга'}\n"
        f"👤 {barber.name if barber else 'Неизвестный мастер'}\n"
        f"📅 {day} • 🕒 {time_label}\n"
        f"💰 от {format_price(b.price)}"
    )


# ---------- commands & menu ----------

async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE):
    session_factory = context.bot_data["session_factory"]
    user = update.effective_user
    async with session_factory() as s:
        async with s.begin():
            await upsert_user(s, user.id, user.username, user.full_name)
    _clear_wizard(context)
    _clear_admin_price(context)
    await update.message.reply_text(GREETING, reply_markup=main_menu_for(update, context))


async def cmd_book(update: Update, context: ContextTypes.DEFAULT_TYPE):
    return await start_wizard(update, context)


async def cmd_my(update: Update, context: ContextTypes.DEFAULT_TYPE):
    return await show_my_bookings(update, context)


async def cmd_admin(update: Update, context: ContextTypes.DEFAULT_TYPE):
    return await admin_panel(update, context)


async def unified_text_router(update: Update, context: ContextTypes.DEFAULT_TYPE):
    txt = (update.message.text or "").strip()
    if txt == BTN_CANCEL_WIZARD:
        return await close_wizard(update, context)
    if txt in MENU_BUTTONS:
        for flag in WIZARD_FLAGS + ("awaiting_admin_price",):
            context.user_data.pop(flag, None)
        return await text_router(update, context)
    if context.user_data.get("awaiting_admin_price"):
        return await handle_admin_price(update, context)
    if context.user_data.get("awaiting_name"):
        return await handle_name(update, context)
    if context.user_data.get("awaiting_phone"):
        return await handle_contact(update, context)
    return await text_router(update, context)


async def text_router(update: Update, context: ContextTypes.DEFAULT_TYPE):
    txt = (update.message.text or "").strip()
    if txt == BTN_BOOK:
        return await start_wizard(update, context)
    if txt == BTN_BARBERS:
        return await show_barbers(update, context)
    if txt == BTN_SERVICES:
        return await show_services(update, context)
    if txt == BTN_MY:
        return await show_my_bookings(update, context)
    if txt == BTN_CONTACTS:
        return await show_contacts(update, context)
    if txt == BTN_BACK_MAIN:
        await update.message.reply_text("Главное меню 👇", reply_markup=main_menu_for(update, context))
        return

    cfg: Config = context.bot_data.get("cfg")
    if cfg and is_admin(cfg, update.effective_user.id) and txt == BTN_ADMIN:
        return await admin_panel(update, context)

    await update.message.reply_text("Используйте кнопки меню 👇", reply_markup=main_menu_for(update, context))


async def show_barbers(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _show(update, "💈 Наши мастера:", reply_markup=barbers_list_kb())


async def show_barber_card(update: Update, context: ContextTypes.DEFAULT_TYPE, barber_id: str):
    barber = get_barber(barber_id)
    if not barber:
        return await _show(update, "Мастер не найден.", reply_markup=barbers_list_kb())
    days = ", ".join(
        label for num, label in ((1, "Пн"), (2, "Вт"), (3, "Ср"), (4, "Чт"), (5, "Пт"), (6, "Сб"), (0, "Вс"))
        if num in barber.work_days
    )
    lines = [
        f"{barber.name} • ⭐ {barber.rating}",
        barber.tier,
        "",
        barber.description,
    ]
    if barber.tags:
        lines += ["", " ".join(barber.tags)]
    lines += ["", f"Рабочие дни: {days}", "", "Услуги:"]
    for offer, service in services_of(barber):
        price = promo_price(offer.service_id, offer.price)
        lines.append(f"• {service.name}: от {format_price(price)} / {offer.duration_min} мин")
    await _show(update, "\n".join(lines), reply_markup=barber_card_kb(barber))


async def show_services(update: Update, context: ContextTypes.DEFAULT_TYPE):
    lines = ["✂️ Услуги и цены", ""]
    for service in SERVICES:
        mp = min_price(service.id)
        if mp is None:
            continue
        lines.append(f"• {service.name}: от {price_label(service.id, mp)}")
        if service.description:
            lines.append(f"  {service.description}")
    lines += ["", PROMO_BANNER, "", HONEST_PRICE, "", "Выберите услугу, чтобы записаться 👇"]
    await _show(update, "\n".join(lines), reply_markup=services_list_kb())


async def show_contacts(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.message.reply_text(CONTACTS, reply_markup=contacts_kb())


# ---------- booking wizard ----------

async def start_wizard(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE,
    barber_id: str | None = None,
    service_id: str | None = None,
):
    _clear_wizard(context)
    _clear_admin_price(context)
    barber = get_barber(barber_id)
    if service_id and not get_service(service_id):
        service_id = None
    if service_id:
        context.user_data[K_PRE_SERVICE] = service_id
    if barber:
        context.user_data[K_PRE_BARBER] = barber.id
        return await select_barber(update, context, barber.id)
    return await wizard_step_barber(update, context)


async def close_wizard(update: Update, context: ContextTypes.DEFAULT_TYPE):
    _clear_wizard(context)
    if update.callback_query:
        await _show(update, "Запись отменена.")
        await update.effective_message.reply_text("Главное меню 👇", reply_markup=main_menu_for(update, context))
        return
    await update.effective_message.reply_text("Запись отменена.", reply_markup=main_menu_for(update, context))


async def wizard_step_barber(update: Update, context: ContextTypes.DEFAULT_TYPE):
    context.user_data[K_STEP] = 1
    pre_service = get_service(context.user_data.get(K_PRE_SERVICE))
    text = "Шаг 1 / 4\nВыберите мастера:"
    if pre_service:
        text = f"Шаг 1 / 4\nМастера, которые делают «{pre_service.name}»:"
    barbers = barbers_for(pre_service.id if pre_service else None)
    await _show(update, text, reply_markup=wizard_barbers_kb(barbers))


async def select_barber(update: Update, context: ContextTypes.DEFAULT_TYPE, barber_id: str):
    barber = get_barber(barber_id)
    if not barber:
        return await wizard_step_barber(update, context)
    context.user_data[K_BARBER] = barber.id
    context.user_data.pop(K_SERVICE, None)

    pre_service = context.user_data.get(K_PRE_SERVICE)
    if pre_service and get_offer(barber, pre_service):
        context.user_data[K_SERVICE] = pre_service
        return await wizard_step_dates(update, context)
    return await wizard_step_service(update, context)


async def wizard_step_service(update: Update, context: ContextTypes.DEFAULT_TYPE):
    barber = get_barber(context.user_data.get(K_BARBER))
    if not barber:
        return await wizard_step_barber(update, context)
    context.user_data[K_STEP] = 2
    items = services_of(barber)
    lines = [f"Шаг 2 / 4\nМастер: {barber.name}\nВыберите услугу:", ""]
    for offer, service in items:
        lines.append(f"• {service.name} — {service.description}")
    await _show(update, "\n".join(lines), reply_markup=wizard_services_kb(items))


async def select_service(update: Update, context: ContextTypes.DEFAULT_TYPE, service_id: str):
    barber = get_barber(context.user_data.get(K_BARBER))
    if not barber or not get_offer(barber, service_id):
        return await wizard_step_service(update, context)
    context.user_data[K_SERVICE] = service_id
    return await wizard_step_dates(update, context)


async def wizard_step_dates(update: Update, context: ContextTypes.DEFAULT_TYPE):
    barber = get_barber(context.user_data.get(K_BARBER))
    if not barber:
        return await wizard_step_barber(update, context)
    context.user_data[K_STEP] = 3
    context.user_data.pop(K_TIME, None)
    now_local = now_in(_tz(context))
    dates = booking_dates(now_local)
    await _show(
        update,
        f"Шаг 3 / 4\nМастер: {barber.name}\nВыберите дату (✖ — выходной мастера):",
        reply_markup=wizard_dates_kb(dates, barber, now_local.date()),
    )


async def select_date(update: Update, context: ContextTypes.DEFAULT_TYPE, day_iso: str):
    tz = _tz(context)
    barber = get_barber(context.user_data.get(K_BARBER))
    service_id = context.user_data.get(K_SERVICE)
    offer = get_offer(barber, service_id) if barber and service_id else None
    if not barber or not offer:
        return await wizard_step_barber(update, context)

    try:
        day = date.fromisoformat(day_iso)
    except ValueError:
        return await wizard_step_dates(update, context)
    context.user_data[K_DATE] = day.isoformat()
    context.user_data.pop(K_TIME, None)

    title = f"Шаг 3 / 4\n📅 {format_day_month(day)} • {barber.name}"
    if not is_working_day(barber, day):
        return await _show(update, f"{title}\n\nМастер не работает в этот день.", reply_markup=call_admin_kb())

    await _sync(context)
    mine = await _my_bookings(context, update.effective_user.id)
    if has_booking_on_date(mine, day, tz):
        cfg: Config = context.bot_data["cfg"]
        return await _show(
            update,
            f"{title}\n\n" + ONE_BOOKING_PER_DAY.format(phone=cfg.admin_phone),
            reply_markup=call_admin_kb(),
        )

    slots = build_time_slots(barber, day, await _occupied(context), offer.duration_min, now_in(tz), tz)
    if slots and all(not s.available for s in slots):
        title += "\n\nНа этот день всё занято. Выберите другую дату."
    else:
        title += "\n\nВыберите время:"
    await _show(update, title, reply_markup=wizard_slots_kb(slots))


async def select_time(update: Update, context: ContextTypes.DEFAULT_TYPE, hhmm: str):
    if not context.user_data.get(K_DATE):
        return await wizard_step_dates(update, context)
    context.user_data[K_TIME] = hhmm
    await _show(update, f"Выбрано время: {hhmm} ✅")
    return await wizard_step_contacts(update, context)


async def wizard_step_contacts(update: Update, context: ContextTypes.DEFAULT_TYPE):
    context.user_data[K_STEP] = 4
    session_factory = context.bot_data["session_factory"]
    tg_user = update.effective_user
    async with session_factory() as s:
        user = await get_user(s, tg_user.id)
    suggested = (user.client_name if user and user.client_name else None) or tg_user.first_name

    context.user_data["awaiting_name"] = True
    context.user_data["awaiting_phone"] = False
    await update.effective_message.reply_text(
        "Шаг 4 / 4\nКак к вам обращаться? Напишите имя"
        + (" или нажмите кнопку с именем 👇" if suggested else ":"),
        reply_markup=name_prompt_kb(suggested),
    )


async def handle_name(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not context.user_data.get("awaiting_name"):
        return
    name = (update.message.text or "").strip()
    if not name:
        return await update.message.reply_text("Имя не может быть пустым. Напишите, как к вам обращаться.")
    context.user_data[K_NAME] = name[:64]
    context.user_data["awaiting_name"] = False
    context.user_data["awaiting_phone"] = True
    await update.message.reply_text(
        "Теперь телефон: нажмите кнопку 👇 или напишите номер (например, 900 000 00 00).",
        reply_markup=phone_request_kb(),
    )


async def handle_contact(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not context.user_data.get("awaiting_phone"):
        return
    msg = update.message
    if not msg:
        return

    raw = msg.contact.phone_number if msg.contact and msg.contact.phone_number else (msg.text or "")
    digits = normalize_phone(raw)
    if not digits:
        return await msg.reply_text(
            "Не вижу номер телефона. Нужно 10 цифр после +7, например 900 000 00 00.",
            reply_markup=phone_request_kb(),
        )

    context.user_data[K_PHONE] = format_phone(digits)
    context.user_data["awaiting_phone"] = False
    await msg.reply_text("Телефон сохранён ✅", reply_markup=main_menu_for(update, context))
    return await show_summary(update, context)


async def show_summary(update: Update, context: ContextTypes.DEFAULT_TYPE):
    barber = get_barber(context.user_data.get(K_BARBER))
    service = get_service(context.user_data.get(K_SERVICE))
    offer = get_offer(barber, service.id) if barber and service else None
    day_iso = context.user_data.get(K_DATE)
    hhmm = context.user_data.get(K_TIME)
    if not offer or not day_iso or not hhmm:
        _clear_wizard(context)
        return await update.effective_message.reply_text(
            "Сессия сброшена. Нажмите «Записаться» заново.", reply_markup=main_menu_for(update, context)
        )

    price = final_price(offer)
    price_line = f"от {format_price(price)}"
    if price != offer.price:
        price_line += f" (вместо {format_price(offer.price)})"
    await update.effective_message.reply_text(
        "Детали записи\n"
        f"👤 Мастер: {barber.name}\n"
        f"✂️ Услуга: {service.name} ({offer.duration_min} мин)\n"
        f"📅 Дата: {format_day_month(date.fromisoformat(day_iso))}, {hhmm}\n"
        f"💰 Стоимость: {price_line}\n\n"
        f"Имя: {context.user_data.get(K_NAME)}\n"
        f"Телефон: {context.user_data.get(K_PHONE)}",
        reply_markup=wizard_confirm_kb(),
    )


async def finalize_booking(update: Update, context: ContextTypes.DEFAULT_TYPE):
    cfg: Config = context.bot_data["cfg"]
    session_factory = context.bot_data["session_factory"]
    sheets: SheetsClient = context.bot_data["sheets"]
    tz = _tz(context)
    ud = context.user_data
    tg_user = update.effective_user

    if not all(ud.get(k) for k in (K_BARBER, K_SERVICE, K_DATE, K_TIME, K_NAME, K_PHONE)):
        _clear_wizard(context)
        return await _show(update, "Сессия сброшена. Нажмите «Записаться» заново.")

    draft = BookingDraft(
        barber_id=ud[K_BARBER],
        service_id=ud[K_SERVICE],
        day=date.fromisoformat(ud[K_DATE]),
        time_slot=ud[K_TIME],
        client_name=ud[K_NAME],
        client_phone=ud[K_PHONE],
        tg_user_id=tg_user.id,
        tg_username=tg_user.username,
    )

    cache = await _sync(context)
    try:
        async with session_factory() as s:
            async with s.begin():
                await upsert_user(s, tg_user.id, tg_user.username, tg_user.full_name)
                await set_user_contact(s, tg_user.id, draft.client_name, draft.client_phone)
                booking, synced = await place_booking(s, sheets, cache, draft, now_in(tz))
    except BookingRejected as e:
        if e.code == "SLOT_TAKEN":
            ud.pop(K_TIME, None)
            return await _show(update, "Это время только что заняли 😔 Выберите другое.", reply_markup=call_admin_kb())
        if e.code == "DAY_TAKEN":
            return await _show(update, ONE_BOOKING_PER_DAY.format(phone=cfg.admin_phone), reply_markup=call_admin_kb())
        _clear_wizard(context)
        return await _show(update, "Не получилось оформить запись. Начните заново.")

    barber = get_barber(booking.barber_id)
    service = get_service(booking.service_id)
    await notify_admins(
        context,
        cfg,
        text=(
            "🆕 Новая запись\n"
            f"Мастер: {barber.name if barber else booking.barber_id}\n"
            f"Услуга: {service.name if service else booking.service_id}\n"
            f"Дата/время: {booking.date} {booking.time_slot}\n"
            f"Цена: {format_price(booking.price)}\n"
            f"Клиент: {booking.client_name} {booking.client_phone}\n"
            f"Telegram: @{booking.tg_username or '—'} ({booking.tg_user_id})"
            + ("" if synced else "\n⚠️ В таблицу не записано, сохранено локально")
        ),
    )

    _clear_wizard(context)
    await _show(update, "Запись создана ✅\n\n" + booking_card(booking, tz))
    if not synced and sheets.enabled:
        await update.effective_message.reply_text(
            "Связь с сервером сейчас нестабильна: запись сохранена у нас и будет видна администратору."
        )
    return await show_my_bookings(update, context, fresh=False)


async def wizard_back(update: Update, context: ContextTypes.DEFAULT_TYPE):
    step = int(context.user_data.get(K_STEP) or 1)
    if step <= 1:
        return await close_wizard(update, context)
    if step == 2:
        if context.user_data.get(K_PRE_BARBER):
            return await close_wizard(update, context)
        context.user_data.pop(K_BARBER, None)
        return await wizard_step_barber(update, context)
    if step == 3:
        if context.user_data.get(K_PRE_SERVICE):
            for k in (K_BARBER, K_SERVICE, K_PRE_BARBER):
                context.user_data.pop(k, None)
            return await wizard_step_barber(update, context)
        return await wizard_step_service(update, context)
    for flag in WIZARD_FLAGS:
        context.user_data.pop(flag, None)
    return await wizard_step_dates(update, context)


# ---------- my bookings ----------

async def show_my_bookings(update: Update, context: ContextTypes.DEFAULT_TYPE, fresh: bool = True):
    if fresh:
        await _sync(context)
    tz = _tz(context)
    bookings = sort_for_display(await _my_bookings(context, update.effective_user.id))
    if not bookings:
        return await update.effective_message.reply_text(
            "У вас пока нет записей.", reply_markup=main_menu_for(update, context)
        )
    await update.effective_message.reply_text("📋 Ваши записи:", reply_markup=main_menu_for(update, context))
    for b in bookings[:MY_BOOKINGS_LIMIT]:
        await update.effective_message.reply_text(booking_card(b, tz), reply_markup=my_booking_kb(b))


async def ask_cancel_my_booking(update: Update, context: ContextTypes.DEFAULT_TYPE, ref: str):
    tz = _tz(context)
    b = find_booking(await _my_bookings(context, update.effective_user.id), ref)
    if not b:
        return await _show(update, "Запись не найдена.")
    await _show(update, f"{booking_card(b, tz)}\n\n{CANCEL_WARNING}", reply_markup=my_cancel_confirm_kb(b.ref))


async def keep_my_booking(update: Update, context: ContextTypes.DEFAULT_TYPE, ref: str):
    tz = _tz(context)
    b = find_booking(await _my_bookings(context, update.effective_user.id), ref)
    if not b:
        return await _show(update, "Запись не найдена.")
    await _show(update, booking_card(b, tz), reply_markup=my_booking_kb(b))


async def client_cancel(update: Update, context: ContextTypes.DEFAULT_TYPE, ref: str):
    cfg: Config = context.bot_data["cfg"]
    session_factory = context.bot_data["session_factory"]
    sheets: SheetsClient = context.bot_data["sheets"]
    tz = _tz(context)
    tg_id = update.effective_user.id

    target = find_booking(await _my_bookings(context, tg_id), ref)
    if not target:
        return await _show(update, "Запись не найдена.")

    cache: BookingCache = context.bot_data["cache"]
    async with session_factory() as s:
        async with s.begin():
            try:
                cancelled, synced = await cancel_user_booking(s, sheets, cache, tg_id, target.id)
            except BookingRejected:
                return await _show(update, "Запись не найдена.")

    barber = get_barber(cancelled.barber_id)
    await notify_admins(
        context,
        cfg,
        text=(
            "🚫 Клиент отменил запись\n"
            f"{barber.name if barber else cancelled.barber_id} • {cancelled.date} {cancelled.time_slot}\n"
            f"Клиент: {cancelled.client_name} {cancelled.client_phone}"
            + ("" if synced else "\n⚠️ В таблице не отменено, нужна ручная проверка")
        ),
    )
    await _show(update, "Запись отменена ✅\n\n" + booking_card(cancelled, tz))


# ---------- admin ----------

async def _admin_guard(update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
    cfg: Config = context.bot_data["cfg"]
    if is_admin(cfg, update.effective_user.id):
        return True
    await _show(update, "Нет доступа.")
    return False


def _admin_text(context: ContextTypes.DEFAULT_TYPE, bookings: list[Booking], barber_id: str | None) -> tuple[str, list[Booking]]:
    tz = _tz(context)
    cache: BookingCache = context.bot_data["cache"]
    today = now_in(tz).date()
    summary = admin_summary(bookings, today, barber_id)
    barber = get_barber(barber_id)
    scope = "(Мастер)" if barber else "(Всего)"

    lines = [
        "🛡 Админ-панель" + (f" • {barber.name}" if barber else ""),
        f"💰 Выручка {scope}: {format_price(summary.total_revenue)}",
        f"👥 Записей {scope}: {summary.total_active}",
        f"📅 Сегодня: {summary.today_count} • {format_price(summary.today_revenue)}",
    ]
    if cache.synced_at:
        lines.append(f"🔄 Синхронизация: {cache.synced_at.astimezone(tz).strftime('%H:%M:%S')}")
    if cache.last_error:
        lines.append(f"⚠️ Таблица недоступна: {cache.last_error}")
    lines.append("")
    lines.append("Записи мастера:" if barber else "Все записи:")

    shown = summary.bookings[:ADMIN_LIST_LIMIT]
    if not shown:
        lines.append("• Записей нет.")
    for i, b in enumerate(shown, start=1):
        service = get_service(b.service_id)
        b_barber = get_barber(b.barber_id)
        lines.append(
            f"{i}. {b.date} {b.time_slot} | {b.client_name or '—'} {b.client_phone or ''} | "
            f"{service.name if service else b.service_id} | "
            f"{b_barber.name if b_barber else b.barber_id} | {format_price(b.price)}"
        )
    if len(summary.bookings) > len(shown):
        lines.append(f"… и ещё {len(summary.bookings) - len(shown)}")
    return "\n".join(lines), shown


async def admin_panel(update: Update, context: ContextTypes.DEFAULT_TYPE, fresh: bool = True):
    if not await _admin_guard(update, context):
        return
    _clear_admin_price(context)
    if fresh:
        await _sync(context)
    barber_id = context.user_data.get(K_ADMIN_FILTER)
    text, shown = _admin_text(context, await _occupied(context), barber_id)
    await _show(update, text, reply_markup=admin_panel_kb(barber_id, shown))


async def admin_set_filter(update: Update, context: ContextTypes.DEFAULT_TYPE, value: str):
    if value == "all" or not get_barber(value):
        context.user_data.pop(K_ADMIN_FILTER, None)
    else:
        context.user_data[K_ADMIN_FILTER] = value
    return await admin_panel(update, context, fresh=False)


async def admin_ask_delete(update: Update, context: ContextTypes.DEFAULT_TYPE, ref: str):
    if not await _admin_guard(update, context):
        return
    tz = _tz(context)
    b = find_booking(await _occupied(context), ref)
    if not b:
        return await admin_panel(update, context)
    await _show(
        update,
        f"Вы точно хотите удалить эту запись?\n\n{b.client_name} {b.client_phone}\n{booking_card(b, tz)}",
        reply_markup=admin_delete_confirm_kb(b.ref),
    )


async def admin_delete(update: Update, context: ContextTypes.DEFAULT_TYPE, ref: str):
    if not await _admin_guard(update, context):
        return
    session_factory = context.bot_data["session_factory"]
    sheets: SheetsClient = context.bot_data["sheets"]
    cache: BookingCache = context.bot_data["cache"]

    b = find_booking(await _occupied(context), ref)
    if not b:
        return await admin_panel(update, context)
    try:
        async with session_factory() as s:
            async with s.begin():
                await admin_delete_booking(s, sheets, cache, b)
    except SheetsError:
        logger.exception("Admin delete of %s failed", b.id)
        return await _show(update, "Не удалось удалить: таблица недоступна. Попробуйте позже.")

    if b.tg_user_id:
        try:
            await context.bot.send_message(
                chat_id=b.tg_user_id,
                text=f"❌ Ваша запись на {b.date} {b.time_slot} отменена администратором.",
            )
        except Exception:
            logger.exception("Failed to notify client %s", b.tg_user_id)
    return await admin_panel(update, context, fresh=False)


async def admin_ask_price(update: Update, context: ContextTypes.DEFAULT_TYPE, ref: str):
    if not await _admin_guard(update, context):
        return
    b = find_booking(await _occupied(context), ref)
    if not b:
        return await admin_panel(update, context)
    context.user_data[K_ADMIN_PRICE_REF] = b.ref
    context.user_data["awaiting_admin_price"] = True
    await update.effective_message.reply_text(
        f"Запись {b.date} {b.time_slot} • {b.client_name or '—'}\n"
        f"Текущая цена: {format_price(b.price)}\n"
        "Введите новую цену числом (например, 2700)."
    )


async def handle_admin_price(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not context.user_data.get("awaiting_admin_price"):
        return
    cfg: Config = context.bot_data["cfg"]
    if not is_admin(cfg, update.effective_user.id):
        _clear_admin_price(context)
        return
    raw = (update.message.text or "").replace(" ", "").replace("₽", "")
    if not raw.isdigit():
        return await update.message.reply_text("Нужно целое число, например 2700.")

    ref = context.user_data.get(K_ADMIN_PRICE_REF)
    b = find_booking(await _occupied(context), ref or "")
    _clear_admin_price(context)
    if not b:
        return await update.message.reply_text("Запись не найдена.")

    session_factory = context.bot_data["session_factory"]
    sheets: SheetsClient = context.bot_data["sheets"]
    cache: BookingCache = context.bot_data["cache"]
    try:
        async with session_factory() as s:
            async with s.begin():
                updated = await admin_update_price(s, sheets, cache, b, int(raw))
    except SheetsError:
        logger.exception("Price update of %s failed", b.id)
        return await update.message.reply_text("Не удалось обновить цену: таблица недоступна.")

    await update.message.reply_text(f"Цена обновлена: {format_price(updated.price)} ✅")
    return await admin_panel(update, context, fresh=False)


# ---------- callbacks ----------

NOOP_ANSWERS = {
    "noop:dayoff": "Мастер не работает в этот день",
    "noop:busy": "Это время занято",
}


async def cb_router(update: Update, context: ContextTypes.DEFAULT_TYPE):
    query = update.callback_query
    data = query.data or ""

    if data.startswith("noop:"):
        await query.answer(NOOP_ANSWERS.get(data))
        return
    await query.answer()

    if data == "home:barbers":
        return await show_barbers(update, context)

    if data.startswith("bar:"):
        return await show_barber_card(update, context, data.split(":", 1)[1])

    if data == "book:new":
        return await start_wizard(update, context)

    if data.startswith("book:barber:"):
        return await start_wizard(update, context, barber_id=data.split(":", 2)[2])

    if data.startswith("book:svc:"):
        return await start_wizard(update, context, service_id=data.split(":", 2)[2])

    if data.startswith("wb:"):
        return await select_barber(update, context, data.split(":", 1)[1])

    if data.startswith("ws:"):
        return await select_service(update, context, data.split(":", 1)[1])

    if data.startswith("wd:"):
        return await select_date(update, context, data.split(":", 1)[1])

    if data.startswith("wt:"):
        return await select_time(update, context, data.split(":", 1)[1])

    if data == "wdates":
        return await wizard_step_dates(update, context)

    if data == "wback":
        return await wizard_back(update, context)

    if data == "wcancel":
        return await close_wizard(update, context)

    if data == "wcontact":
        return await wizard_step_contacts(update, context)

    if data == "wsend":
        return await finalize_booking(update, context)

    if data.startswith("mycancel:"):
        return await ask_cancel_my_booking(update, context, data.split(":", 1)[1])

    if data.startswith("mykeep:"):
        return await keep_my_booking(update, context, data.split(":", 1)[1])

    if data.startswith("myok:"):
        return await client_cancel(update, context, data.split(":", 1)[1])

    if data.startswith("admf:"):
        return await admin_set_filter(update, context, data.split(":", 1)[1])

    if data == "admrefresh":
        return await admin_panel(update, context)

    if data.startswith("admdelok:"):
        return await admin_delete(update, context, data.split(":", 1)[1])

    if data.startswith("admdel:"):
        return await admin_ask_delete(update, context, data.split(":", 1)[1])

    if data.startswith("admkeep:"):
        return await admin_panel(update, context, fresh=False)

    if data.startswith("admprice:"):
        return await admin_ask_price(update, context, data.split(":", 1)[1])


async def on_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.error("Unhandled error while processing update %r", update, exc_info=context.error)
