"""Read access to player collections and minting of new instances."""

from __future__ import annotations

from typing import Sequence

from .cards import CardCatalog
from .clock import new_id
from .exceptions import InstanceNotFound, InvalidCard, storage_errors
from ..storage.base import CardInstanceRecord, InstanceStore


class InventoryService:
    """Serve card instances to the swap core and the UI."""

    def __init__(self, catalog: CardCatalog, instance_store: InstanceStore) -> None:
        self._catalog = catalog
        self._instances = instance_store

    async def list_player_instances(self, player_id: str) -> Sequence[CardInstanceRecord]:
        with storage_errors("inventory.list"):
            return await self._instances.list_for_owner(player_id)

    async def list_tradeable(self, player_id: str, card_id: str | None = None) -> list[CardInstanceRecord]:
        """Unlocked instances, optionally of a single master card."""
        return [
            instance
            for instance in await self.list_player_instances(player_id)
            if not instance.is_locked and (card_id is None or instance.card_id == card_id)
        ]

    async def get_instance(self, instance_id: str) -> CardInstanceRecord:
        with storage_errors("inventory.get"):
            record = await self._instances.get(instance_id)
        if record is None:
            raise InstanceNotFound(f"Instance {instance_id} not found")
        return record

    async def mint(
        self,
        player_id: str,
        card_id: str,
        *,
        level: int = 1,
        instance_id: str | None = None,
    ) -> CardInstanceRecord:
        if not self._catalog.has_card(card_id):
            raise InvalidCard(f"Card {card_id} is not in the catalog")
        if level <= 0:
            raise ValueError("Level must be positive")
        card = self._catalog.get_card(card_id)
        record = CardInstanceRecord(
            instance_id=instance_id or new_id(),
            card_id=card_id,
            owner_id=player_id,
            level=level,
            power_score=card.power_score * level,
        )
        with storage_errors("inventory.mint"):
            await self._instances.add(record)
        return record
