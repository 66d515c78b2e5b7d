"""Operator commands, limited to ``ENDLEDGER_ADMIN_IDS``."""

from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message

from ..app import EndLedgerApp
from .api_utils import safe_message_answer
from .filters import AdminFilter


def build_admin_router(app: EndLedgerApp) -> Router:
    router = Router()
    router.message.filter(AdminFilter(app.config))
    prefix = app.config.command_prefix

    @router.message(Command("signall", prefix=prefix))
    async def handle_sign_all(message: Message) -> None:
        if app.attendance.batch_running:
            await safe_message_answer(message, "A batch check-in is already running")
            return
        await safe_message_answer(message, "Batch check-in started...")
        result = await app.attendance.sign_all()
        await safe_message_answer(message, result.message)

    @router.message(Command("status", prefix=prefix))
    async def handle_status(message: Message) -> None:
        await safe_message_answer(message, render_status(app))

    return router


def render_status(app: EndLedgerApp) -> str:
    snapshot = app.snapshot()
    auto_sign = app.config.auto_sign
    schedule = f"daily at {auto_sign.daily_time}" if auto_sign.enabled else "off"
    return "\n".join(
        [
            "EndLedger status",
            f"Storage: {snapshot['storage']}",
            f"Ledger dir: {snapshot['ledger_dir']}",
            f"Device id generator: {'configured' if snapshot['device_id_command'] else 'missing'}",
            f"Auto check-in: {schedule} (concurrency {snapshot['auto_sign_concurrency']})",
            f"Batch running: {'yes' if app.attendance.batch_running else 'no'}",
        ]
    )
