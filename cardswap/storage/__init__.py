"""Storage backends for CardSwap."""

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
    SettlementRequest,
    SettlementResult,
    SettlementStore,
    StorageFailure,
    TradeRecord,
    TradeRecordStore,
)
from .memory import (
    InMemoryActivityLog,
    InMemoryInstanceStore,
    InMemoryOfferStore,
    InMemoryReconciliationStore,
    InMemoryTradeRecordStore,
)
from .sqlalchemy import AsyncSQLAlchemyStorage

__all__ = [
    "ActivityEntry",
    "ActivityLog",
    "CardInstanceRecord",
    "ConstraintViolation",
    "InstanceStore",
    "OfferRecord",
    "OfferStatus",
    "OfferStore",
    "ReconciliationEvent",
    "ReconciliationStore",
    "SettlementRequest",
    "SettlementResult",
    "SettlementStore",
    "StorageFailure",
    "TradeRecord",
    "TradeRecordStore",
    "InMemoryActivityLog",
    "InMemoryInstanceStore",
    "InMemoryOfferStore",
    "InMemoryReconciliationStore",
    "InMemoryTradeRecordStore",
    "AsyncSQLAlchemyStorage",
]
