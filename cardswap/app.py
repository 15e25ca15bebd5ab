"""Top level application object for CardSwap."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from .config import CardSwapConfig
from .domain.audit import TradeLog
from .domain.clock import MonotonicClock
from .domain.events import EventBus
from .domain.executor import TradeExecutor
from .domain.inventory import InventoryService
from .domain.locks import InstanceLockManager
from .domain.market import MarketViewService
from .domain.offers import OfferBook
from .domain.reconciliation import Reconciler
from .registry import CardRegistry
from .storage.base import (
    ActivityLog,
    CardInstanceRecord,
    InstanceStore,
    OfferStore,
    ReconciliationStore,
    SettlementStore,
    TradeRecordStore,
)
from .storage.memory import (
    InMemoryActivityLog,
    InMemoryInstanceStore,
    InMemoryOfferStore,
    InMemoryReconciliationStore,
    InMemoryTradeRecordStore,
)
from .storage.sqlalchemy import AsyncSQLAlchemyStorage


@dataclass(slots=True)
class _Stores:
    instances: InstanceStore
    offers: OfferStore
    trades: TradeRecordStore
    reconciliation: ReconciliationStore
    activity: ActivityLog
    settlement: SettlementStore | None


class SwapApp:
    """Central dependency container used by bots and tools."""

    def __init__(
        self,
        config: CardSwapConfig,
        *,
        instance_store: InstanceStore | None = None,
        offer_store: OfferStore | None = None,
        trade_store: TradeRecordStore | None = None,
        reconciliation_store: ReconciliationStore | None = None,
        activity_log: ActivityLog | None = None,
        settlement_store: SettlementStore | None = None,
        event_bus: EventBus | None = None,
        clock: MonotonicClock | None = None,
    ) -> None:
        self.config = config
        self.event_bus = event_bus or EventBus()
        self.clock = clock or MonotonicClock()
        self.cards = CardRegistry()

        self._sqlalchemy_storage: AsyncSQLAlchemyStorage | None = None
        stores = self._wire_storage(
            instance_store,
            offer_store,
            trade_store,
            reconciliation_store,
            activity_log,
            settlement_store,
        )
        self.instance_store = stores.instances
        self.offer_store = stores.offers
        self.trade_store = stores.trades
        self.reconciliation_store = stores.reconciliation
        self.activity_log = stores.activity
        self.settlement_store = stores.settlement

        catalog = self.cards.catalog
        self.inventory_service = InventoryService(catalog, self.instance_store)
        self.offers = OfferBook(self.offer_store, catalog, self.clock)
        self.locks = InstanceLockManager(self.instance_store)
        self.trade_log = TradeLog(self.trade_store)
        self.executor = TradeExecutor(
            offers=self.offers,
            locks=self.locks,
            instance_store=self.instance_store,
            trade_log=self.trade_log,
            reconciliation_store=self.reconciliation_store,
            catalog=catalog,
            event_bus=self.event_bus,
            clock=self.clock,
            config=self.config.executor,
            activity_log=self.activity_log if self.config.admin.enable_activity_log else None,
            settlement_store=self.settlement_store,
        )
        self.market = MarketViewService(self.offers, catalog, self.config.market)
        self.reconciler = Reconciler(
            offers=self.offers,
            instance_store=self.instance_store,
            reconciliation_store=self.reconciliation_store,
            clock=self.clock,
        )

    def _wire_storage(
        self,
        instance_store: InstanceStore | None,
        offer_store: OfferStore | None,
        trade_store: TradeRecordStore | None,
        reconciliation_store: ReconciliationStore | None,
        activity_log: ActivityLog | None,
        settlement_store: SettlementStore | None,
    ) -> _Stores:
        backend = self.config.storage.backend
        if backend == "memory":
            return _Stores(
                instances=instance_store or InMemoryInstanceStore(),
                offers=offer_store or InMemoryOfferStore(),
                trades=trade_store or InMemoryTradeRecordStore(),
                reconciliation=reconciliation_store or InMemoryReconciliationStore(),
                activity=activity_log or InMemoryActivityLog(),
                settlement=settlement_store,
            )
        if backend == "sqlalchemy":
            dsn = self.config.storage.resolve_dsn()
            if not dsn:
                raise ValueError("SQLAlchemy backend requires a DSN")
            storage = AsyncSQLAlchemyStorage(dsn, echo=self.config.storage.echo_sql)
            self._sqlalchemy_storage = storage
            return _Stores(
                instances=instance_store or storage.instance_store(),
                offers=offer_store or storage.offer_store(),
                trades=trade_store or storage.trade_record_store(),
                reconciliation=reconciliation_store or storage.reconciliation_store(),
                activity=activity_log or storage.activity_log(),
                settlement=settlement_store or storage.settlement_store(),
            )
        raise ValueError(f"Unsupported storage backend {backend}")

    @property
    def transactional(self) -> bool:
        return self.settlement_store is not None

    def snapshot(self) -> dict[str, Any]:
        """Export current configuration for debugging."""
        return {
            "storage": self.config.storage.backend,
            "transactional": self.transactional,
            "cards": [card.card_id for card in self.cards.catalog.iter_cards()],
            "market_limit": [self.config.market.default_limit, self.config.market.max_limit],
            "deadline_seconds": self.config.executor.deadline_seconds,
        }

    async def seed_instances(self, entries: Iterable[Mapping[str, Any]]) -> list[CardInstanceRecord]:
        """Mint instances described as ``{"owner", "card", "level", "id"}`` mappings."""
        minted: list[CardInstanceRecord] = []
        for entry in entries:
            minted.append(
                await self.inventory_service.mint(
                    str(entry["owner"]),
                    str(entry["card"]),
                    level=int(entry.get("level", 1)),
                    instance_id=entry.get("id"),
                )
            )
        return minted

    async def init_backend(self) -> None:
        """Initialize storage backend resources (e.g., database tables)."""
        if self._sqlalchemy_storage:
            await self._sqlalchemy_storage.init_models()

    async def close(self) -> None:
        if self._sqlalchemy_storage:
            await self._sqlalchemy_storage.dispose()
