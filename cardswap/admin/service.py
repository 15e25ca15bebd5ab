"""Administrative operations for CardSwap bots."""

from __future__ import annotations

import logging
from typing import Sequence

from ..domain.events import EventBus
from ..domain.inventory import InventoryService
from ..domain.reconciliation import ReconciliationReport, Reconciler
from ..storage.base import ActivityLog, CardInstanceRecord, ReconciliationEvent

logger = logging.getLogger(__name__)


class AdminService:
    def __init__(
        self,
        inventory: InventoryService,
        reconciler: Reconciler,
        activity_log: ActivityLog,
        event_bus: EventBus,
    ) -> None:
        self._inventory = inventory
        self._reconciler = reconciler
        self._activity = activity_log
        self._events = event_bus

    async def mint_card(
        self, player_id: str, card_id: str, *, level: int = 1, actor: str | None = None
    ) -> CardInstanceRecord:
        record = await self._inventory.mint(player_id, card_id, level=level)
        await self._activity.record_event(
            player_id, "ADMIN_MINT", f"Minted {card_id} [{record.instance_id}] by {actor or 'system'}."
        )
        await self._events.publish(
            "admin.card.minted",
            {"player_id": player_id, "card_id": card_id, "instance_id": record.instance_id},
        )
        return record

    async def reconcile(self) -> tuple[ReconciliationReport, Sequence[ReconciliationEvent]]:
        report = await self._reconciler.rebuild_locks()
        events = await self._reconciler.open_events()
        await self._events.publish(
            "admin.reconciled",
            {
                "relocked": len(report.relocked),
                "released": len(report.released),
                "cancelled_offers": len(report.cancelled_offers),
                "open_events": len(events),
            },
        )
        return report, events

    async def resolve_event(self, event_id: str, resolution: str) -> bool:
        resolved = await self._reconciler.resolve(event_id, resolution)
        if not resolved:
            logger.info("Reconciliation event %s was not open.", event_id)
        return resolved
