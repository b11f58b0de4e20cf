from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Config:
    bot_token: str
    admin_telegram_ids: tuple[int, ...]
    bookings_api_url: str
    database_url: str
    timezone: str
    poll_interval_sec: int
    http_timeout_sec: float
    admin_phone: str
    webhook_url: str
    port: int
    log_level: str


def _parse_ids(raw: str) -> tuple[int, ...]:
    out: list[int] = []
    for part in raw.replace(";", ",").split(","):
        part = part.strip()
        if not part:
            continue
        try:
            out.append(int(part))
        except ValueError:
            raise RuntimeError(f"ADMIN_TELEGRAM_IDS contains a non-numeric id: {part!r}")
    return tuple(out)


def load_config() -> Config:
    token = (os.getenv("BOT_TOKEN") or "").strip()
    if not token:
        raise RuntimeError("BOT_TOKEN is not configured")

    return Config(
        bot_token=token,
        admin_telegram_ids=_parse_ids(os.getenv("ADMIN_TELEGRAM_IDS", "")),
        bookings_api_url=(os.getenv("BOOKINGS_API_URL") or "").strip(),
        database_url=os.getenv("DATABASE_URL") or "sqlite+aiosqlite:///barbershop.db",
        timezone=os.getenv("TIMEZONE") or "Europe/Moscow",
        poll_interval_sec=int(os.getenv("POLL_INTERVAL_SEC", "10") or 10),
        http_timeout_sec=float(os.getenv("HTTP_TIMEOUT_SEC", "10") or 10.0),
        admin_phone=os.getenv("ADMIN_PHONE") or "+79805470406",
        webhook_url=(os.getenv("WEBHOOK_URL") or "").rstrip("/"),
        port=int(os.getenv("PORT", "8080") or 8080),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )
