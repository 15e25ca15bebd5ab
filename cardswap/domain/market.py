"""Market view: browse other players' offers and list your own."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from .cards import CardCatalog, Rarity
from .exceptions import InvalidRequest
from .offers import OfferBook
from ..config import MarketConfig
from ..storage.base import OfferRecord


@dataclass(slots=True)
class CardLabel:
    card_id: str
    name: str
    image_url: str | None = None
    rarity: Rarity | None = None


@dataclass(slots=True)
class OfferSummary:
    offer_id: str
    maker_id: str
    offered_instance_id: str
    offered: CardLabel
    requested: CardLabel
    created_at: datetime


@dataclass(slots=True)
class MarketFilter:
    offered_card_id: str | None = None
    requested_card_id: str | None = None
    limit: int | None = None
    cursor: str | None = None


@dataclass(slots=True)
class MarketPage:
    items: list[OfferSummary] = field(default_factory=list)
    next_cursor: str | None = None

    def __len__(self) -> int:
        return len(self.items)


def encode_cursor(created_at: datetime, offer_id: str) -> str:
    raw = json.dumps({"t": created_at.isoformat(), "o": offer_id}, separators=(",", ":"))
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def decode_cursor(cursor: str) -> tuple[datetime, str]:
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        created_at = datetime.fromisoformat(payload["t"])
        offer_id = payload["o"]
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError) as exc:
        raise InvalidRequest("Malformed market cursor") from exc
    if not isinstance(offer_id, str) or not offer_id or created_at.tzinfo is None:
        raise InvalidRequest("Malformed market cursor")
    return created_at, offer_id


class MarketViewService:
    """Read-only queries over Active offers.

    Only Active rows are ever returned, so a trade that is still in flight is
    invisible until its status compare-and-set settles it one way or the other.
    """

    def __init__(self, offers: OfferBook, catalog: CardCatalog, config: MarketConfig) -> None:
        self._offers = offers
        self._catalog = catalog
        self._config = config

    async def browse(self, viewer_id: str, market_filter: MarketFilter | None = None) -> MarketPage:
        market_filter = market_filter or MarketFilter()
        limit = self._config.clamp(market_filter.limit)
        before = decode_cursor(market_filter.cursor) if market_filter.cursor else None
        records = await self._offers.list_active_excluding_maker(
            viewer_id,
            offered_card_id=market_filter.offered_card_id,
            requested_card_id=market_filter.requested_card_id,
            before=before,
            limit=limit + 1,
        )
        page = list(records[:limit])
        next_cursor = None
        if len(records) > limit and page:
            last = page[-1]
            next_cursor = encode_cursor(last.created_at, last.offer_id)
        return MarketPage(items=[self.summarize(record) for record in page], next_cursor=next_cursor)

    async def mine(self, viewer_id: str) -> list[OfferSummary]:
        records = await self._offers.list_active_by_maker(viewer_id)
        return [self.summarize(record) for record in _newest_first(records)]

    def summarize(self, record: OfferRecord) -> OfferSummary:
        return OfferSummary(
            offer_id=record.offer_id,
            maker_id=record.maker_id,
            offered_instance_id=record.offered_instance_id,
            offered=self.label(record.offered_card_id),
            requested=self.label(record.requested_card_id),
            created_at=record.created_at,
        )

    def label(self, card_id: str) -> CardLabel:
        if not self._catalog.has_card(card_id):
            return CardLabel(card_id=card_id, name=card_id)
        card = self._catalog.get_master_card(card_id)
        return CardLabel(
            card_id=card.card_id,
            name=card.name,
            image_url=card.image_url,
            rarity=card.rarity,
        )


def _newest_first(records: Sequence[OfferRecord]) -> list[OfferRecord]:
    return sorted(records, key=lambda rec: (rec.created_at, rec.offer_id), reverse=True)
