"""Offline repair of lock projections and the escalation queue."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from .clock import MonotonicClock
from .exceptions import NoLongerActive, storage_errors
from .offers import OfferBook
from ..storage.base import (
    InstanceStore,
    OfferStatus,
    ReconciliationEvent,
    ReconciliationStore,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReconciliationReport:
    relocked: list[str] = field(default_factory=list)
    released: list[str] = field(default_factory=list)
    cancelled_offers: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not (self.relocked or self.released or self.cancelled_offers)


class Reconciler:
    """Rebuild instance locks from the offer table.

    The lock flag is a projection of Active offers, so it can always be
    recomputed. ``rebuild_locks`` must run while no trades are in flight: an
    acceptance inside its two-step window looks exactly like a broken offer.
    """

    def __init__(
        self,
        *,
        offers: OfferBook,
        instance_store: InstanceStore,
        reconciliation_store: ReconciliationStore,
        clock: MonotonicClock,
    ) -> None:
        self._offers = offers
        self._instances = instance_store
        self._events = reconciliation_store
        self._clock = clock

    async def rebuild_locks(self) -> ReconciliationReport:
        report = ReconciliationReport()
        expected: dict[str, str] = {}

        for offer in await self._offers.list_all_active():
            with storage_errors("reconcile.instance"):
                instance = await self._instances.get(offer.offered_instance_id)
            if instance is not None and instance.owner_id == offer.maker_id:
                expected[instance.instance_id] = offer.offer_id
                continue
            try:
                await self._offers.set_terminal(offer.offer_id, OfferStatus.CANCELLED)
            except NoLongerActive:
                continue
            logger.warning(
                "Cancelled offer %s: instance %s no longer belongs to %s.",
                offer.offer_id,
                offer.offered_instance_id,
                offer.maker_id,
            )
            report.cancelled_offers.append(offer.offer_id)

        with storage_errors("reconcile.instances"):
            instances = await self._instances.list_all()
            for instance in instances:
                wanted = expected.get(instance.instance_id)
                if instance.locked_by == wanted:
                    continue
                changed = await self._instances.compare_and_set_lock(
                    instance.instance_id, instance.locked_by, wanted
                )
                if not changed:
                    logger.warning("Instance %s changed during reconciliation.", instance.instance_id)
                    continue
                if wanted is None:
                    report.released.append(instance.instance_id)
                else:
                    report.relocked.append(instance.instance_id)

        if not report.clean:
            logger.info(
                "Reconciliation: %s relocked, %s released, %s offers cancelled.",
                len(report.relocked),
                len(report.released),
                len(report.cancelled_offers),
            )
        return report

    async def open_events(self) -> Sequence[ReconciliationEvent]:
        with storage_errors("reconcile.list"):
            return await self._events.list_open()

    async def resolve(self, event_id: str, resolution: str) -> bool:
        with storage_errors("reconcile.resolve"):
            resolved = await self._events.resolve(event_id, resolution, self._clock.now())
        if resolved:
            logger.info("Reconciliation event %s resolved: %s", event_id, resolution)
        return resolved
