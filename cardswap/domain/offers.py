"""Offer store: the single source of truth for offer lifecycle."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Sequence

from .cards import CardCatalog
from .clock import MonotonicClock
from .exceptions import (
    AlreadyLocked,
    InvalidCard,
    NoLongerActive,
    OfferNotFound,
    SameKindForbidden,
    storage_errors,
)
from ..storage.base import OfferRecord, OfferStatus, OfferStore

logger = logging.getLogger(__name__)


class OfferBook:
    """Create, read and close offers.

    ``set_terminal`` is the only sanctioned mutation of an existing offer and
    doubles as the linearization point for completion and cancellation.
    """

    def __init__(self, store: OfferStore, catalog: CardCatalog, clock: MonotonicClock) -> None:
        self._store = store
        self._catalog = catalog
        self._clock = clock

    def check_terms(
        self,
        offered_card_id: str,
        requested_card_id: str,
        *,
        instance_card_id: str | None = None,
    ) -> None:
        if instance_card_id is not None and instance_card_id != offered_card_id:
            raise InvalidCard(
                f"Instance is a {instance_card_id}, not a {offered_card_id}"
            )
        if not self._catalog.has_card(offered_card_id):
            raise InvalidCard(f"Unknown card {offered_card_id}")
        if not self._catalog.has_card(requested_card_id):
            raise InvalidCard(f"Unknown card {requested_card_id}")
        if offered_card_id == requested_card_id:
            raise SameKindForbidden(f"Offer cannot request {requested_card_id} for itself")

    async def create_offer(
        self,
        offer_id: str,
        maker_id: str,
        offered_instance_id: str,
        offered_card_id: str,
        requested_card_id: str,
    ) -> OfferRecord:
        self.check_terms(offered_card_id, requested_card_id)
        record = OfferRecord(
            offer_id=offer_id,
            maker_id=maker_id,
            offered_instance_id=offered_instance_id,
            offered_card_id=offered_card_id,
            requested_card_id=requested_card_id,
            status=OfferStatus.ACTIVE,
            created_at=self._clock.now(),
        )
        try:
            with storage_errors("offer.insert"):
                await self._store.insert(record)
        except AlreadyLocked:
            logger.info("Instance %s already has an active offer.", offered_instance_id)
            raise
        return record

    async def get_offer(self, offer_id: str) -> OfferRecord:
        with storage_errors("offer.get"):
            record = await self._store.get(offer_id)
        if record is None:
            raise OfferNotFound(f"Offer {offer_id} not found")
        return record

    async def find_offer(self, offer_id: str) -> OfferRecord | None:
        with storage_errors("offer.get"):
            return await self._store.get(offer_id)

    async def set_terminal(
        self,
        offer_id: str,
        new_status: OfferStatus,
        expected: OfferStatus = OfferStatus.ACTIVE,
    ) -> datetime:
        """Compare-and-set the status; returns the close timestamp."""
        if not new_status.is_terminal:
            raise ValueError("Offers can only move to a terminal status")
        closed_at = self._clock.now()
        with storage_errors("offer.set_terminal"):
            changed = await self._store.compare_and_set_status(
                offer_id, expected, new_status, closed_at
            )
        if not changed:
            raise NoLongerActive(
                f"Offer {offer_id} is no longer {expected.value}",
                context={"offer_id": offer_id},
            )
        return closed_at

    async def list_active_excluding_maker(
        self,
        maker_id: str,
        *,
        offered_card_id: str | None = None,
        requested_card_id: str | None = None,
        before: tuple[datetime, str] | None = None,
        limit: int | None = None,
    ) -> Sequence[OfferRecord]:
        with storage_errors("offer.list_active"):
            records = await self._store.list_active(
                exclude_maker_id=maker_id,
                offered_card_id=offered_card_id,
                requested_card_id=requested_card_id,
                before=before,
                limit=limit,
            )
        return [rec for rec in records if rec.is_active and rec.maker_id != maker_id]

    async def list_active_by_maker(self, maker_id: str) -> Sequence[OfferRecord]:
        with storage_errors("offer.list_active"):
            records = await self._store.list_active(maker_id=maker_id)
        return [rec for rec in records if rec.is_active and rec.maker_id == maker_id]

    async def list_all_active(self) -> Sequence[OfferRecord]:
        with storage_errors("offer.list_active"):
            return await self._store.list_active()
