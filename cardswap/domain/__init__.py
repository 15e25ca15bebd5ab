"""Domain models and services."""

from .audit import TradeLog
from .cards import CardCatalog, MasterCard, Rarity
from .clock import MonotonicClock, new_id
from .executor import TradeExecutor, TradeReceipt
from .identity import IdentityProvider, StaticIdentityProvider, TrustedIdentityProvider
from .inventory import InventoryService
from .locks import InstanceLockManager, UnlockOutcome
from .market import CardLabel, MarketFilter, MarketPage, MarketViewService, OfferSummary
from .offers import OfferBook
from .reconciliation import ReconciliationReport, Reconciler
from .exceptions import (
    AlreadyLocked,
    CardSwapError,
    DeadlineExceeded,
    ErrorKind,
    InstanceNotFound,
    InvalidCard,
    InvalidRequest,
    NeedsReconciliation,
    NoLongerActive,
    NotEligible,
    NotFound,
    NotOwner,
    OfferNotFound,
    SameKindForbidden,
    StorageUnavailable,
    TradeIncomplete,
    Unauthenticated,
)

__all__ = [
    "TradeLog",
    "CardCatalog",
    "MasterCard",
    "Rarity",
    "MonotonicClock",
    "new_id",
    "TradeExecutor",
    "TradeReceipt",
    "IdentityProvider",
    "StaticIdentityProvider",
    "TrustedIdentityProvider",
    "InventoryService",
    "InstanceLockManager",
    "UnlockOutcome",
    "CardLabel",
    "MarketFilter",
    "MarketPage",
    "MarketViewService",
    "OfferSummary",
    "OfferBook",
    "ReconciliationReport",
    "Reconciler",
    "AlreadyLocked",
    "CardSwapError",
    "DeadlineExceeded",
    "ErrorKind",
    "InstanceNotFound",
    "InvalidCard",
    "InvalidRequest",
    "NeedsReconciliation",
    "NoLongerActive",
    "NotEligible",
    "NotFound",
    "NotOwner",
    "OfferNotFound",
    "SameKindForbidden",
    "StorageUnavailable",
    "TradeIncomplete",
    "Unauthenticated",
]
