from __future__ import annotations

import re
from datetime import date
from decimal import Decimal, InvalidOperation

RU_MONTHS_GEN = [
    "января", "февраля", "марта", "апреля", "мая", "июня",
    "июля", "августа", "сентября", "октября", "ноября", "декабря",
]
RU_WEEKDAYS = ["Пн", "Вт", "Ср", "Чт", "Пт", "Сб", "Вс"]


def format_price(value: object) -> str:
    if value is None:
        return ""
    try:
        normalized = f"{Decimal(str(value)):.2f}"
    except (InvalidOperation, ValueError):
        return str(value)
    return normalized.rstrip("0").rstrip(".") + "₽"


def format_day_month(d: date) -> str:
    return f"{d.day} {RU_MONTHS_GEN[d.month - 1]}"


def weekday_short(d: date) -> str:
    return RU_WEEKDAYS[d.weekday()]


def normalize_phone(value: str) -> str | None:
    """Десять цифр без кода страны или None.

    Принимает +7/8 в начале, пробелы, скобки и дефисы.
    """
    digits = re.sub(r"\D", "", value or "")
    if len(digits) == 11 and digits[0] in "78":
        digits = digits[1:]
    if len(digits) != 10:
        return None
    return digits


def format_phone(digits10: str) -> str:
    return f"+7{digits10}"
