"""Storage abstractions used by the CardSwap services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, Sequence


class StorageFailure(RuntimeError):
    """Raised by backends when a read or write could not be performed."""


class ConstraintViolation(StorageFailure):
    """Raised when a write would break a uniqueness constraint."""


class OfferStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not OfferStatus.ACTIVE


@dataclass(slots=True)
class CardInstanceRecord:
    instance_id: str
    card_id: str
    owner_id: str
    level: int = 1
    power_score: int = 0
    locked_by: str | None = None

    @property
    def is_locked(self) -> bool:
        return self.locked_by is not None


@dataclass(slots=True)
class OfferRecord:
    offer_id: str
    maker_id: str
    offered_instance_id: str
    offered_card_id: str
    requested_card_id: str
    status: OfferStatus
    created_at: datetime
    closed_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status is OfferStatus.ACTIVE


@dataclass(slots=True)
class TradeRecord:
    offer_id: str
    maker_id: str
    taker_id: str
    maker_instance_id: str
    taker_instance_id: str
    created_at: datetime

    def __post_init__(self) -> None:
        if self.maker_instance_id == self.taker_instance_id:
            raise ValueError("Trade record must reference two distinct instances")


@dataclass(slots=True)
class ReconciliationEvent:
    event_id: str
    kind: str
    offer_id: str | None
    instance_ids: Sequence[str]
    created_at: datetime
    details: dict[str, Any] = field(default_factory=dict)
    resolved_at: datetime | None = None
    resolution: str | None = None


@dataclass(slots=True)
class ActivityEntry:
    player_id: str
    kind: str
    description: str
    created_at: datetime


class SettlementResult(str, Enum):
    SETTLED = "settled"
    OFFER_NOT_ACTIVE = "offer_not_active"
    OFFERED_MOVED = "offered_moved"
    PAYING_INELIGIBLE = "paying_ineligible"


@dataclass(slots=True)
class SettlementRequest:
    offer_id: str
    maker_id: str
    taker_id: str
    offered_instance_id: str
    paying_instance_id: str
    requested_card_id: str
    closed_at: datetime


class InstanceStore(Protocol):
    async def add(self, record: CardInstanceRecord) -> None:
        ...

    async def get(self, instance_id: str) -> CardInstanceRecord | None:
        ...

    async def list_for_owner(self, owner_id: str) -> Sequence[CardInstanceRecord]:
        ...

    async def list_all(self) -> Sequence[CardInstanceRecord]:
        ...

    async def compare_and_set_lock(
        self,
        instance_id: str,
        expected: str | None,
        new: str | None,
        *,
        owner_id: str | None = None,
    ) -> bool:
        ...

    async def transfer(
        self,
        instance_id: str,
        *,
        from_owner: str,
        to_owner: str,
        expected_lock: str | None,
        new_lock: str | None,
    ) -> bool:
        ...


class OfferStore(Protocol):
    async def insert(self, record: OfferRecord) -> None:
        ...

    async def get(self, offer_id: str) -> OfferRecord | None:
        ...

    async def compare_and_set_status(
        self,
        offer_id: str,
        expected: OfferStatus,
        new: OfferStatus,
        closed_at: datetime,
    ) -> bool:
        ...

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
        ...


class TradeRecordStore(Protocol):
    async def append(self, record: TradeRecord) -> bool:
        ...

    async def get(self, offer_id: str) -> TradeRecord | None:
        ...

    async def list_for_player(self, player_id: str, limit: int = 50) -> Sequence[TradeRecord]:
        ...


class ReconciliationStore(Protocol):
    async def add(self, event: ReconciliationEvent) -> None:
        ...

    async def list_open(self) -> Sequence[ReconciliationEvent]:
        ...

    async def resolve(self, event_id: str, resolution: str, resolved_at: datetime) -> bool:
        ...


class ActivityLog(Protocol):
    async def record_event(self, player_id: str, kind: str, description: str) -> None:
        ...

    async def recent_for_player(self, player_id: str, limit: int = 20) -> Sequence[ActivityEntry]:
        ...


class SettlementStore(Protocol):
    """Backends with transactions settle a whole trade in one envelope."""

    async def settle(self, request: SettlementRequest) -> SettlementResult:
        ...
