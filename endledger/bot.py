"""Polling bot entry point."""

from __future__ import annotations

import asyncio
import logging

from aiogram import Bot, Dispatcher
from rich.console import Console

from .app import EndLedgerApp
from .config import EndLedgerConfig
from .scheduler import AutoSignScheduler, parse_daily_time
from .telegram import build_admin_router, build_router, safe_api_call

console = Console()
logger = logging.getLogger(__name__)


def build_scheduler(app: EndLedgerApp, bot: Bot) -> AutoSignScheduler | None:
    settings = app.config.auto_sign
    if not settings.enabled:
        return None
    notify = None
    if settings.notify_chat_id:
        chat_id = settings.notify_chat_id

        async def notify(text: str) -> None:
            await safe_api_call("bot.send_message", bot.send_message, chat_id, text[:4096])

    return AutoSignScheduler(
        app.attendance,
        parse_daily_time(settings.daily_time),
        tz_hours=app.config.gacha.timezone,
        notify=notify,
    )


async def run_bot(config: EndLedgerConfig | None = None) -> None:
    """Start long polling with the user and admin routers and the daily check-in."""
    config = config or EndLedgerConfig.from_env()
    if not config.bot_token:
        raise ValueError("ENDLEDGER_BOT_TOKEN is required to run the bot")

    app = EndLedgerApp(config)
    await app.init_backend()

    bot = Bot(config.bot_token)
    dp = Dispatcher()
    dp.include_router(build_admin_router(app))
    dp.include_router(build_router(app))

    scheduler = build_scheduler(app, bot)
    if scheduler is not None:
        scheduler.start()
    console.print(
        f"[bold green]EndLedger ready![/bold green] storage={config.storage.backend} "
        f"ledgers={app.ledger_store.directory}"
    )
    try:
        await dp.start_polling(bot)
    finally:
        if scheduler is not None:
            scheduler.stop()
        await bot.session.close()
        await app.close()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(run_bot())
