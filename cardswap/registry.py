"""Runtime registry for master cards."""

from __future__ import annotations

from typing import Iterable

from .domain.cards import CardCatalog, MasterCard


class CardRegistry:
    """Facade around CardCatalog with chainable API."""

    def __init__(self) -> None:
        self.catalog = CardCatalog()

    def card(self, card: MasterCard) -> "CardRegistry":
        self.catalog.register_card(card)
        return self

    def cards(self, cards: Iterable[MasterCard]) -> "CardRegistry":
        self.catalog.register_cards(cards)
        return self


__all__ = ["CardRegistry"]
