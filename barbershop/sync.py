from __future__ import annotations

import logging
from datetime import datetime

import pytz

from barbershop.logic import BookingCache
from barbershop.sheets import SheetsClient, SheetsError

logger = logging.getLogger(__name__)


async def refresh(cache: BookingCache, sheets: SheetsClient) -> bool:
    """Подтягивает актуальные записи из таблицы.

    При ошибке прежний снимок остаётся в кэше, растёт счётчик неудач.
    """
    if not sheets.enabled:
        return False
    try:
        bookings = await sheets.fetch_bookings()
    except SheetsError as exc:
        cache.failures += 1
        cache.last_error = str(exc)
        if cache.failures == 1:
            logger.warning("Bookings sync failed: %s", exc)
        else:
            logger.debug("Bookings sync failed again (%s in a row): %s", cache.failures, exc)
        return False

    if cache.failures:
        logger.info("Bookings sync recovered after %s failures", cache.failures)
    cache.bookings = bookings
    cache.synced_at = datetime.now(tz=pytz.UTC)
    cache.failures = 0
    cache.last_error = None
    return True


async def tick(application) -> None:
    cache: BookingCache = application.bot_data["cache"]
    sheets: SheetsClient = application.bot_data["sheets"]
    await refresh(cache, sheets)
