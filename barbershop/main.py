import logging

import pytz
from dotenv import load_dotenv
from telegram.ext import Application, CommandHandler, MessageHandler, CallbackQueryHandler, filters

from barbershop.config import load_config
from barbershop.db import make_engine, make_session_factory, init_db
from barbershop.handlers import (
    cmd_start, cmd_book, cmd_my, cmd_admin, cb_router, handle_contact, unified_text_router, on_error,
)
from barbershop.logic import BookingCache
from barbershop.sheets import SheetsClient
from barbershop.sync import tick

logger = logging.getLogger(__name__)


def main():
    load_dotenv()
    cfg = load_config()

    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, cfg.log_level, logging.INFO),
    )
    # httpx логирует каждый запрос на INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    engine = make_engine(cfg)
    session_factory = make_session_factory(engine)
    tz = pytz.timezone(cfg.timezone)

    async def post_init(app: Application):
        await init_db(engine)
        if not cfg.bookings_api_url:
            logger.warning("BOOKINGS_API_URL is empty: bookings are kept locally only")

    app = Application.builder().token(cfg.bot_token).post_init(post_init).build()

    # shared objects for handlers/jobs
    app.bot_data["cfg"] = cfg
    app.bot_data["session_factory"] = session_factory
    app.bot_data["tz"] = tz
    app.bot_data["sheets"] = SheetsClient(cfg.bookings_api_url, tz, timeout=cfg.http_timeout_sec)
    app.bot_data["cache"] = BookingCache()

    # handlers
    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("book", cmd_book))
    app.add_handler(CommandHandler("my", cmd_my))
    app.add_handler(CommandHandler("admin", cmd_admin))
    app.add_handler(CallbackQueryHandler(cb_router))
    app.add_handler(MessageHandler(filters.CONTACT, handle_contact))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, unified_text_router))
    app.add_error_handler(on_error)

    # periodic sync with the bookings sheet
    async def tick_job(ctx):
        await tick(ctx.application)

    app.job_queue.run_repeating(tick_job, interval=cfg.poll_interval_sec, first=1)

    # LOCAL: polling if webhook not configured
    if cfg.webhook_url:
        app.run_webhook(
            listen="0.0.0.0",
            port=cfg.port,
            url_path="telegram",
            webhook_url=f"{cfg.webhook_url}/telegram",
            allowed_updates=["message", "callback_query"],
            drop_pending_updates=True,
        )
    else:
        app.run_polling(
            allowed_updates=["message", "callback_query"],
            drop_pending_updates=True,
        )


if __name__ == "__main__":
    main()
