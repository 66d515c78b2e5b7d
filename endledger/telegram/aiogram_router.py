"""Factory helpers to expose EndLedger services through aiogram."""

from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message

from ..app import EndLedgerApp
from ..domain.models import UserData
from ..domain.profile import render_card_text
from ..domain.results import ServiceResult
from .api_utils import safe_answer_document, safe_message_answer

COMMANDS: dict[str, str] = {
    "bind": "<cred> [login token] | <login token> bind an account",
    "accounts": "list bound accounts",
    "switch": "<n|uid> choose the active account",
    "unbind": "<n|uid> remove an account",
    "sign": "daily check-in for the active account",
    "autosign": "on|off toggle the daily batch check-in",
    "signstats": "today's check-in counters",
    "gacha": "[uid] pull history summary",
    "gacha_update": "[uid] fetch new pulls",
    "gacha_import": "<token|url|json> import pulls",
    "gacha_export": "download the stored pull history",
    "gacha_delete": "delete the stored pull history",
    "card": "[refresh] profile card",
}


def build_router(app: EndLedgerApp) -> Router:
    router = Router()
    prefix = app.config.command_prefix
    accounts = app.accounts
    gacha = app.gacha

    @router.message(Command("start", "help", prefix=prefix))
    async def handle_help(message: Message) -> None:
        await safe_message_answer(message, render_help_message(prefix))

    @router.message(Command("bind", prefix=prefix))
    async def handle_bind(message: Message, command: CommandObject) -> None:
        user_id = _user_id(message)
        text = (command.args or "").strip()
        if not user_id or not text:
            await safe_message_answer(message, f"Usage: {prefix}bind <cred> [login token] or {prefix}bind <login token>")
            return
        result = await accounts.bind_from_input(user_id, text)
        await safe_message_answer(message, result.message)

    @router.message(Command("accounts", prefix=prefix))
    async def handle_accounts(message: Message) -> None:
        user_id = _user_id(message)
        if not user_id:
            return
        await safe_message_answer(message, render_accounts(await accounts.get_user_data(user_id)))

    @router.message(Command("switch", prefix=prefix))
    async def handle_switch(message: Message, command: CommandObject) -> None:
        user_id = _user_id(message)
        if not user_id:
            return
        result = await accounts.set_active_account(user_id, _target(command))
        await safe_message_answer(message, result.message)

    @router.message(Command("unbind", prefix=prefix))
    async def handle_unbind(message: Message, command: CommandObject) -> None:
        user_id = _user_id(message)
        if not user_id:
            return
        result = await accounts.delete_account(user_id, _target(command))
        await safe_message_answer(message, result.message)

    @router.message(Command("sign", prefix=prefix))
    async def handle_sign(message: Message) -> None:
        user_id = _user_id(message)
        if not user_id:
            return
        result = await app.attendance.sign(user_id)
        await safe_message_answer(message, result.message)

    @router.message(Command("autosign", prefix=prefix))
    async def handle_autosign(message: Message, command: CommandObject) -> None:
        user_id = _user_id(message)
        if not user_id:
            return
        choice = (command.args or "").strip().lower()
        if choice not in ("on", "off"):
            await safe_message_answer(message, f"Usage: {prefix}autosign on|off")
            return
        await accounts.set_auto_sign(user_id, choice == "on")
        await safe_message_answer(message, f"Daily check-in turned {choice}")

    @router.message(Command("signstats", prefix=prefix))
    async def handle_sign_stats(message: Message) -> None:
        counts = await app.attendance.counts()
        await safe_message_answer(message, f"Today: {counts.success} checked in, {counts.fail} failed")

    @router.message(Command("gacha", prefix=prefix))
    async def handle_gacha_view(message: Message, command: CommandObject) -> None:
        user_id = _user_id(message)
        if not user_id:
            return
        role_id = (command.args or "").strip()
        if role_id:
            result = await gacha.view_for_role_id(role_id, user_id, allow_unbound=True)
        else:
            result = await gacha.view_for_user(user_id)
        await _reply(message, result)

    @router.message(Command("gacha_update", prefix=prefix))
    async def handle_gacha_update(message: Message, command: CommandObject) -> None:
        user_id = _user_id(message)
        if not user_id:
            return
        role_id = (command.args or "").strip()
        await safe_message_answer(message, "Fetching pull history, this may take a while...")
        if role_id:
            result = await gacha.update_for_role_id(user_id, role_id)
        else:
            result = await gacha.update_for_user(user_id)
        await _reply(message, result)

    @router.message(Command("gacha_import", prefix=prefix))
    async def handle_gacha_import(message: Message, command: CommandObject) -> None:
        user_id = _user_id(message)
        if not user_id:
            return
        raw = (command.args or "").strip()
        if not raw:
            await safe_message_answer(message, f"Usage: {prefix}gacha_import <token|url|json>")
            return
        if raw.startswith(("{", "[")):
            result = await gacha.import_from_json(user_id, raw)
        else:
            result = await gacha.import_from_access_token(user_id, raw)
        await _reply(message, result)

    @router.message(Command("gacha_export", prefix=prefix))
    async def handle_gacha_export(message: Message) -> None:
        user_id = _user_id(message)
        if not user_id:
            return
        result = await gacha.export_for_user(user_id)
        if not result.ok:
            await _reply(message, result)
            return
        await safe_answer_document(message, result["content"], result["file_name"], caption=f"UID:{result['role_id']}")

    @router.message(Command("gacha_delete", prefix=prefix))
    async def handle_gacha_delete(message: Message) -> None:
        user_id = _user_id(message)
        if not user_id:
            return
        await _reply(message, await gacha.delete_for_user(user_id))

    @router.message(Command("card", prefix=prefix))
    async def handle_card(message: Message, command: CommandObject) -> None:
        user_id = _user_id(message)
        if not user_id:
            return
        force = (command.args or "").strip().lower() == "refresh"
        result = await app.profile.card_detail(user_id, force=force)
        if not result.ok:
            await _reply(message, result)
            return
        text = render_card_text(result["account"], result["response"], from_cache=result["from_cache"])
        await safe_message_answer(message, text)

    return router


def render_help_message(prefix: str = "/") -> str:
    lines = ["EndLedger commands:"]
    lines.extend(f"{prefix}{name} {usage}" for name, usage in COMMANDS.items())
    return "\n".join(lines)


def render_accounts(data: UserData) -> str:
    if not data.accounts:
        return "No account bound yet. Use /bind <cred>."
    lines = []
    for index, account in enumerate(data.accounts):
        marker = "*" if index == data.active else " "
        channel = f" ({account.channel_name})" if account.channel_name else ""
        lines.append(f"{marker}{index + 1}. {account.display_name}{channel} UID:{account.role_id or '-'}")
    lines.append(f"Daily check-in: {'on' if data.auto_sign else 'off'}")
    return "\n".join(lines)


async def _reply(message: Message, result: ServiceResult) -> None:
    await safe_message_answer(message, result.message or ("Done" if result.ok else "Failed"))


def _user_id(message: Message) -> str:
    user = message.from_user
    return str(user.id) if user else ""


def _target(command: CommandObject) -> str:
    return (command.args or "").strip()
