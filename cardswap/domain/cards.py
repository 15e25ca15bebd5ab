"""Master-card definitions and the catalog that resolves them."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable


class Rarity(str, Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


@dataclass(slots=True)
class MasterCard:
    """The kind of a card; many instances may share one master card."""

    card_id: str
    name: str
    description: str = ""
    rarity: Rarity = Rarity.COMMON
    image_url: str | None = None
    power_score: int = 1
    tags: tuple[str, ...] = field(default_factory=tuple)


class CardCatalog:
    """Registry of master cards."""

    def __init__(self) -> None:
        self._cards: dict[str, MasterCard] = {}

    def register_card(self, card: MasterCard) -> None:
        if card.card_id in self._cards:
            raise ValueError(f"Card {card.card_id} already registered")
        self._cards[card.card_id] = card

    def register_cards(self, cards: Iterable[MasterCard]) -> None:
        for card in cards:
            self.register_card(card)

    def get_card(self, card_id: str) -> MasterCard:
        try:
            return self._cards[card_id]
        except KeyError as exc:
            raise KeyError(f"Card {card_id} not found") from exc

    # CardRegistry collaborator contract
    get_master_card = get_card

    def has_card(self, card_id: str) -> bool:
        return card_id in self._cards

    def iter_cards(self) -> Iterable[MasterCard]:
        return self._cards.values()
