"""In-memory storage backend for CardSwap.

Every method completes without awaiting, so a single call is atomic with
respect to the event loop. There is no transactional envelope, so no
``SettlementStore`` is offered here.
"""

from __future__ import annotations

from collections import deque
from dataclasses import replace
from datetime import datetime, timezone
from typing import Deque, Sequence

from .base import (
    ActivityEntry,
    ActivityLog,
    CardInstanceRecord,
    ConstraintViolation,
    InstanceStore,
    OfferRecord,
    OfferStatus,
    OfferStore,
    ReconciliationEvent,
    ReconciliationStore,
    TradeRecord,
    TradeRecordStore,
)


class InMemoryInstanceStore(InstanceStore):
    def __init__(self) -> None:
        self._records: dict[str, CardInstanceRecord] = {}

    async def add(self, record: CardInstanceRecord) -> None:
        if record.instance_id in self._records:
            raise ConstraintViolation(f"Instance {record.instance_id} already exists")
        self._records[record.instance_id] = replace(record)

    async def get(self, instance_id: str) -> CardInstanceRecord | None:
        record = self._records.get(instance_id)
        return replace(record) if record else None

    async def list_for_owner(self, owner_id: str) -> Sequence[CardInstanceRecord]:
        return [replace(rec) for rec in self._records.values() if rec.owner_id == owner_id]

    async def list_all(self) -> Sequence[CardInstanceRecord]:
        return [replace(rec) for rec in self._records.values()]

    async def compare_and_set_lock(
        self,
        instance_id: str,
        expected: str | None,
        new: str | None,
        *,
        owner_id: str | None = None,
    ) -> bool:
        record = self._records.get(instance_id)
        if record is None or record.locked_by != expected:
            return False
        if owner_id is not None and record.owner_id != owner_id:
            return False
        record.locked_by = new
        return True

    async def transfer(
        self,
        instance_id: str,
        *,
        from_owner: str,
        to_owner: str,
        expected_lock: str | None,
        new_lock: str | None,
    ) -> bool:
        record = self._records.get(instance_id)
        if record is None or record.owner_id != from_owner or record.locked_by != expected_lock:
            return False
        record.owner_id = to_owner
        record.locked_by = new_lock
        return True


class InMemoryOfferStore(OfferStore):
    def __init__(self) -> None:
        self._offers: dict[str, OfferRecord] = {}
        # offered_instance_id -> offer_id, mirrors the partial unique index
        self._active_by_instance: dict[str, str] = {}

    async def insert(self, record: OfferRecord) -> None:
        if record.offer_id in self._offers:
            raise ConstraintViolation(f"Offer {record.offer_id} already exists")
        if record.is_active and record.offered_instance_id in self._active_by_instance:
            raise ConstraintViolation(
                f"Instance {record.offered_instance_id} already has an active offer"
            )
        self._offers[record.offer_id] = replace(record)
        if record.is_active:
            self._active_by_instance[record.offered_instance_id] = record.offer_id

    async def get(self, offer_id: str) -> OfferRecord | None:
        record = self._offers.get(offer_id)
        return replace(record) if record else None

    async def compare_and_set_status(
        self,
        offer_id: str,
        expected: OfferStatus,
        new: OfferStatus,
        closed_at: datetime,
    ) -> bool:
        record = self._offers.get(offer_id)
        if record is None or record.status is not expected:
            return False
        record.status = new
        if new.is_terminal:
            record.closed_at = closed_at
            self._active_by_instance.pop(record.offered_instance_id, None)
        return True

    async def list_active(
        self,
        *,
        maker_id: str | None = None,
        exclude_maker_id: str | None = None,
        offered_card_id: str | None = None,
        requested_card_id: str | None = None,
        before: tuple[datetime, str] | None = None,
        limit: int | None = None,
    ) -> Sequence[OfferRecord]:
        selected: list[OfferRecord] = []
        for record in self._offers.values():
            if not record.is_active:
                continue
            if maker_id is not None and record.maker_id != maker_id:
                continue
            if exclude_maker_id is not None and record.maker_id == exclude_maker_id:
                continue
            if offered_card_id is not None and record.offered_card_id != offered_card_id:
                continue
            if requested_card_id is not None and record.requested_card_id != requested_card_id:
                continue
            if before is not None and (record.created_at, record.offer_id) >= before:
                continue
            selected.append(replace(record))
        selected.sort(key=lambda rec: (rec.created_at, rec.offer_id), reverse=True)
        return selected[:limit] if limit is not None else selected


class InMemoryTradeRecordStore(TradeRecordStore):
    def __init__(self) -> None:
        self._records: dict[str, TradeRecord] = {}

    async def append(self, record: TradeRecord) -> bool:
        if record.offer_id in self._records:
            return False
        self._records[record.offer_id] = record
        return True

    async def get(self, offer_id: str) -> TradeRecord | None:
        return self._records.get(offer_id)

    async def list_for_player(self, player_id: str, limit: int = 50) -> Sequence[TradeRecord]:
        filtered = [
            rec
            for rec in self._records.values()
            if player_id in (rec.maker_id, rec.taker_id)
        ]
        filtered.sort(key=lambda rec: rec.created_at, reverse=True)
        return filtered[:limit]


class InMemoryReconciliationStore(ReconciliationStore):
    def __init__(self) -> None:
        self._events: dict[str, ReconciliationEvent] = {}

    async def add(self, event: ReconciliationEvent) -> None:
        self._events[event.event_id] = event

    async def list_open(self) -> Sequence[ReconciliationEvent]:
        return [event for event in self._events.values() if event.resolved_at is None]

    async def resolve(self, event_id: str, resolution: str, resolved_at: datetime) -> bool:
        event = self._events.get(event_id)
        if event is None or event.resolved_at is not None:
            return False
        event.resolved_at = resolved_at
        event.resolution = resolution
        return True


class InMemoryActivityLog(ActivityLog):
    def __init__(self, *, maxlen: int = 1000) -> None:
        self._entries: Deque[ActivityEntry] = deque(maxlen=maxlen)

    async def record_event(self, player_id: str, kind: str, description: str) -> None:
        self._entries.append(
            ActivityEntry(
                player_id=player_id,
                kind=kind,
                description=description,
                created_at=datetime.now(timezone.utc),
            )
        )

    async def recent_for_player(self, player_id: str, limit: int = 20) -> Sequence[ActivityEntry]:
        filtered = [entry for entry in reversed(self._entries) if entry.player_id == player_id]
        return filtered[:limit]

    def dump(self) -> list[ActivityEntry]:
        return list(self._entries)
