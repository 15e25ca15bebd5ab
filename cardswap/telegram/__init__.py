"""Telegram integration helpers."""

from .aiogram_router import build_router
from .filters import AdminFilter
from .keyboards import market_keyboard, my_offers_keyboard, welcome_keyboard

__all__ = [
    "build_router",
    "AdminFilter",
    "market_keyboard",
    "my_offers_keyboard",
    "welcome_keyboard",
]
