"""Keyboard helpers for CardSwap bots."""

from __future__ import annotations

from typing import Sequence

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from ..domain.market import OfferSummary


def market_keyboard(offers: Sequence[OfferSummary]) -> InlineKeyboardMarkup:
    rows = [
        [
            InlineKeyboardButton(
                text=f"🤝 {offer.offered.name} ⇄ {offer.requested.name}",
                callback_data=f"cardswap:accept:{offer.offer_id}",
            )
        ]
        for offer in offers
    ]
    rows.append([InlineKeyboardButton(text="🔄 Обновить", callback_data="cardswap:market")])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def my_offers_keyboard(offers: Sequence[OfferSummary]) -> InlineKeyboardMarkup:
    rows = [
        [
            InlineKeyboardButton(
                text=f"❌ Снять {offer.offered.name}",
                callback_data=f"cardswap:cancel:{offer.offer_id}",
            )
        ]
        for offer in offers
    ]
    rows.append([InlineKeyboardButton(text="🏪 Рынок", callback_data="cardswap:market")])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def welcome_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="🏪 Рынок", callback_data="cardswap:market")],
            [InlineKeyboardButton(text="📦 Мои предложения", callback_data="cardswap:mine")],
            [InlineKeyboardButton(text="ℹ️ Помощь", callback_data="cardswap:help")],
        ]
    )
