"""Telegram integration helpers."""

from .admin import build_admin_router, render_status
from .aiogram_router import build_router, render_accounts, render_help_message
from .api_utils import safe_answer_document, safe_api_call, safe_message_answer, split_text
from .filters import AdminFilter

__all__ = [
    "AdminFilter",
    "build_admin_router",
    "build_router",
    "render_accounts",
    "render_help_message",
    "render_status",
    "safe_answer_document",
    "safe_api_call",
    "safe_message_answer",
    "split_text",
]
