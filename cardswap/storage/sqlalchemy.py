"""SQLAlchemy storage backend for CardSwap."""

from __future__ import annotations

from contextlib import asynccontextmanager, contextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Iterator, Sequence

from sqlalchemy import (
    JSON,
    DateTime,
    Index,
    Integer,
    String,
    and_,
    or_,
    select,
    text,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

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

_ACTIVE_ONLY = text("status = 'active'")


class Base(DeclarativeBase):
    pass


class CardInstanceTable(Base):
    __tablename__ = "cardswap_card_instances"

    instance_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    card_id: Mapped[str] = mapped_column(String(64), index=True)
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    level: Mapped[int] = mapped_column(Integer, default=1)
    power_score: Mapped[int] = mapped_column(Integer, default=0)
    locked_by: Mapped[str | None] = mapped_column(String(64), nullable=True)


class OfferTable(Base):
    __tablename__ = "cardswap_offers"
    __table_args__ = (
        Index(
            "uq_cardswap_active_offer_instance",
            "offered_instance_id",
            unique=True,
            sqlite_where=_ACTIVE_ONLY,
            postgresql_where=_ACTIVE_ONLY,
        ),
        Index("ix_cardswap_offers_status_created", "status", "created_at"),
    )

    offer_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    maker_id: Mapped[str] = mapped_column(String(64), index=True)
    offered_instance_id: Mapped[str] = mapped_column(String(64))
    offered_card_id: Mapped[str] = mapped_column(String(64))
    requested_card_id: Mapped[str] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(16))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class TradeRecordTable(Base):
    __tablename__ = "cardswap_trade_records"

    offer_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    maker_id: Mapped[str] = mapped_column(String(64), index=True)
    taker_id: Mapped[str] = mapped_column(String(64), index=True)
    maker_instance_id: Mapped[str] = mapped_column(String(64))
    taker_instance_id: Mapped[str] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ReconciliationTable(Base):
    __tablename__ = "cardswap_reconciliation_events"

    event_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    kind: Mapped[str] = mapped_column(String(64))
    offer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    instance_ids: Mapped[list[str]] = mapped_column(JSON)
    details: Mapped[dict] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution: Mapped[str | None] = mapped_column(String(255), nullable=True)


class ActivityTable(Base):
    __tablename__ = "cardswap_activity_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    player_id: Mapped[str] = mapped_column(String(64), index=True)
    kind: Mapped[str] = mapped_column(String(64))
    description: Mapped[str] = mapped_column(String(512))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except IntegrityError as exc:
        raise ConstraintViolation(f"{action} violated a constraint") from exc
    except SQLAlchemyError as exc:
        raise StorageFailure(f"{action} failed: {exc.__class__.__name__}") from exc


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back.
    if value is None:
        return None
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AsyncSQLAlchemyStorage:
    """Bundle of async stores backed by SQLAlchemy."""

    def __init__(self, dsn: str, *, echo: bool = False) -> None:
        self._engine = create_async_engine(dsn, echo=echo, future=True)
        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            yield session

    async def init_models(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self._engine.dispose()

    def instance_store(self) -> "AsyncSQLAlchemyInstanceStore":
        return AsyncSQLAlchemyInstanceStore(self._session_factory)

    def offer_store(self) -> "AsyncSQLAlchemyOfferStore":
        return AsyncSQLAlchemyOfferStore(self._session_factory)

    def trade_record_store(self) -> "AsyncSQLAlchemyTradeRecordStore":
        return AsyncSQLAlchemyTradeRecordStore(self._session_factory)

    def reconciliation_store(self) -> "AsyncSQLAlchemyReconciliationStore":
        return AsyncSQLAlchemyReconciliationStore(self._session_factory)

    def activity_log(self) -> "AsyncSQLAlchemyActivityLog":
        return AsyncSQLAlchemyActivityLog(self._session_factory)

    def settlement_store(self) -> "AsyncSQLAlchemySettlementStore":
        return AsyncSQLAlchemySettlementStore(self._session_factory)


def _instance_from_row(row: CardInstanceTable) -> CardInstanceRecord:
    return CardInstanceRecord(
        instance_id=row.instance_id,
        card_id=row.card_id,
        owner_id=row.owner_id,
        level=row.level,
        power_score=row.power_score,
        locked_by=row.locked_by,
    )


def _offer_from_row(row: OfferTable) -> OfferRecord:
    return OfferRecord(
        offer_id=row.offer_id,
        maker_id=row.maker_id,
        offered_instance_id=row.offered_instance_id,
        offered_card_id=row.offered_card_id,
        requested_card_id=row.requested_card_id,
        status=OfferStatus(row.status),
        created_at=_as_utc(row.created_at),
        closed_at=_as_utc(row.closed_at),
    )


def _trade_from_row(row: TradeRecordTable) -> TradeRecord:
    return TradeRecord(
        offer_id=row.offer_id,
        maker_id=row.maker_id,
        taker_id=row.taker_id,
        maker_instance_id=row.maker_instance_id,
        taker_instance_id=row.taker_instance_id,
        created_at=_as_utc(row.created_at),
    )


class AsyncSQLAlchemyInstanceStore(InstanceStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add(self, record: CardInstanceRecord) -> None:
        with _storage_errors("instance.add"):
            async with self._session_factory() as session:
                session.add(
                    CardInstanceTable(
                        instance_id=record.instance_id,
                        card_id=record.card_id,
                        owner_id=record.owner_id,
                        level=record.level,
                        power_score=record.power_score,
                        locked_by=record.locked_by,
                    )
                )
                await session.commit()

    async def get(self, instance_id: str) -> CardInstanceRecord | None:
        with _storage_errors("instance.get"):
            async with self._session_factory() as session:
                row = await session.get(CardInstanceTable, instance_id)
                return _instance_from_row(row) if row else None

    async def list_for_owner(self, owner_id: str) -> Sequence[CardInstanceRecord]:
        with _storage_errors("instance.list_for_owner"):
            async with self._session_factory() as session:
                stmt = (
                    select(CardInstanceTable)
                    .where(CardInstanceTable.owner_id == owner_id)
                    .order_by(CardInstanceTable.card_id, CardInstanceTable.instance_id)
                )
                rows = (await session.execute(stmt)).scalars().all()
                return [_instance_from_row(row) for row in rows]

    async def list_all(self) -> Sequence[CardInstanceRecord]:
        with _storage_errors("instance.list_all"):
            async with self._session_factory() as session:
                rows = (await session.execute(select(CardInstanceTable))).scalars().all()
                return [_instance_from_row(row) for row in rows]

    async def compare_and_set_lock(
        self,
        instance_id: str,
        expected: str | None,
        new: str | None,
        *,
        owner_id: str | None = None,
    ) -> bool:
        conditions = [CardInstanceTable.instance_id == instance_id, _lock_matches(expected)]
        if owner_id is not None:
            conditions.append(CardInstanceTable.owner_id == owner_id)
        with _storage_errors("instance.compare_and_set_lock"):
            async with self._session_factory() as session:
                stmt = update(CardInstanceTable).where(*conditions).values(locked_by=new)
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount == 1

    async def transfer(
        self,
        instance_id: str,
        *,
        from_owner: str,
        to_owner: str,
        expected_lock: str | None,
        new_lock: str | None,
    ) -> bool:
        with _storage_errors("instance.transfer"):
            async with self._session_factory() as session:
                stmt = (
                    update(CardInstanceTable)
                    .where(
                        CardInstanceTable.instance_id == instance_id,
                        CardInstanceTable.owner_id == from_owner,
                        _lock_matches(expected_lock),
                    )
                    .values(owner_id=to_owner, locked_by=new_lock)
                )
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount == 1


def _lock_matches(expected: str | None):
    if expected is None:
        return CardInstanceTable.locked_by.is_(None)
    return CardInstanceTable.locked_by == expected


class AsyncSQLAlchemyOfferStore(OfferStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def insert(self, record: OfferRecord) -> None:
        with _storage_errors("offer.insert"):
            async with self._session_factory() as session:
                session.add(
                    OfferTable(
                        offer_id=record.offer_id,
                        maker_id=record.maker_id,
                        offered_instance_id=record.offered_instance_id,
                        offered_card_id=record.offered_card_id,
                        requested_card_id=record.requested_card_id,
                        status=record.status.value,
                        created_at=record.created_at,
                        closed_at=record.closed_at,
                    )
                )
                await session.commit()

    async def get(self, offer_id: str) -> OfferRecord | None:
        with _storage_errors("offer.get"):
            async with self._session_factory() as session:
                row = await session.get(OfferTable, offer_id)
                return _offer_from_row(row) if row else None

    async def compare_and_set_status(
        self,
        offer_id: str,
        expected: OfferStatus,
        new: OfferStatus,
        closed_at: datetime,
    ) -> bool:
        values: dict = {"status": new.value}
        if new.is_terminal:
            values["closed_at"] = closed_at
        with _storage_errors("offer.compare_and_set_status"):
            async with self._session_factory() as session:
                stmt = (
                    update(OfferTable)
                    .where(OfferTable.offer_id == offer_id, OfferTable.status == expected.value)
                    .values(**values)
                )
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount == 1

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
        stmt = select(OfferTable).where(OfferTable.status == OfferStatus.ACTIVE.value)
        if maker_id is not None:
            stmt = stmt.where(OfferTable.maker_id == maker_id)
        if exclude_maker_id is not None:
            stmt = stmt.where(OfferTable.maker_id != exclude_maker_id)
        if offered_card_id is not None:
            stmt = stmt.where(OfferTable.offered_card_id == offered_card_id)
        if requested_card_id is not None:
            stmt = stmt.where(OfferTable.requested_card_id == requested_card_id)
        if before is not None:
            created_at, offer_id = before
            stmt = stmt.where(
                or_(
                    OfferTable.created_at < created_at,
                    and_(OfferTable.created_at == created_at, OfferTable.offer_id < offer_id),
                )
            )
        stmt = stmt.order_by(OfferTable.created_at.desc(), OfferTable.offer_id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        with _storage_errors("offer.list_active"):
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
                return [_offer_from_row(row) for row in rows]


class AsyncSQLAlchemyTradeRecordStore(TradeRecordStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(self, record: TradeRecord) -> bool:
        try:
            with _storage_errors("trade_record.append"):
                async with self._session_factory() as session:
                    session.add(
                        TradeRecordTable(
                            offer_id=record.offer_id,
                            maker_id=record.maker_id,
                            taker_id=record.taker_id,
                            maker_instance_id=record.maker_instance_id,
                            taker_instance_id=record.taker_instance_id,
                            created_at=record.created_at,
                        )
                    )
                    await session.commit()
        except ConstraintViolation:
            return False
        return True

    async def get(self, offer_id: str) -> TradeRecord | None:
        with _storage_errors("trade_record.get"):
            async with self._session_factory() as session:
                row = await session.get(TradeRecordTable, offer_id)
                return _trade_from_row(row) if row else None

    async def list_for_player(self, player_id: str, limit: int = 50) -> Sequence[TradeRecord]:
        stmt = (
            select(TradeRecordTable)
            .where(
                or_(TradeRecordTable.maker_id == player_id, TradeRecordTable.taker_id == player_id)
            )
            .order_by(TradeRecordTable.created_at.desc())
            .limit(limit)
        )
        with _storage_errors("trade_record.list_for_player"):
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
                return [_trade_from_row(row) for row in rows]


class AsyncSQLAlchemyReconciliationStore(ReconciliationStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add(self, event: ReconciliationEvent) -> None:
        with _storage_errors("reconciliation.add"):
            async with self._session_factory() as session:
                session.add(
                    ReconciliationTable(
                        event_id=event.event_id,
                        kind=event.kind,
                        offer_id=event.offer_id,
                        instance_ids=list(event.instance_ids),
                        details=dict(event.details),
                        created_at=event.created_at,
                        resolved_at=event.resolved_at,
                        resolution=event.resolution,
                    )
                )
                await session.commit()

    async def list_open(self) -> Sequence[ReconciliationEvent]:
        stmt = (
            select(ReconciliationTable)
            .where(ReconciliationTable.resolved_at.is_(None))
            .order_by(ReconciliationTable.created_at)
        )
        with _storage_errors("reconciliation.list_open"):
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
                return [
                    ReconciliationEvent(
                        event_id=row.event_id,
                        kind=row.kind,
                        offer_id=row.offer_id,
                        instance_ids=list(row.instance_ids),
                        created_at=_as_utc(row.created_at),
                        details=dict(row.details or {}),
                    )
                    for row in rows
                ]

    async def resolve(self, event_id: str, resolution: str, resolved_at: datetime) -> bool:
        with _storage_errors("reconciliation.resolve"):
            async with self._session_factory() as session:
                stmt = (
                    update(ReconciliationTable)
                    .where(
                        ReconciliationTable.event_id == event_id,
                        ReconciliationTable.resolved_at.is_(None),
                    )
                    .values(resolved_at=resolved_at, resolution=resolution)
                )
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount == 1


class AsyncSQLAlchemyActivityLog(ActivityLog):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record_event(self, player_id: str, kind: str, description: str) -> None:
        with _storage_errors("activity.record_event"):
            async with self._session_factory() as session:
                session.add(
                    ActivityTable(
                        player_id=player_id,
                        kind=kind,
                        description=description,
                        created_at=datetime.now(timezone.utc),
                    )
                )
                await session.commit()

    async def recent_for_player(self, player_id: str, limit: int = 20) -> Sequence[ActivityEntry]:
        stmt = (
            select(ActivityTable)
            .where(ActivityTable.player_id == player_id)
            .order_by(ActivityTable.id.desc())
            .limit(limit)
        )
        with _storage_errors("activity.recent_for_player"):
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
                return [
                    ActivityEntry(
                        player_id=row.player_id,
                        kind=row.kind,
                        description=row.description,
                        created_at=_as_utc(row.created_at),
                    )
                    for row in rows
                ]


class _SettlementAborted(Exception):
    def __init__(self, result: SettlementResult) -> None:
        super().__init__(result.value)
        self.result = result


class AsyncSQLAlchemySettlementStore(SettlementStore):
    """Completes the offer and moves both instances inside one transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def settle(self, request: SettlementRequest) -> SettlementResult:
        try:
            with _storage_errors("settlement.settle"):
                async with self._session_factory() as session, session.begin():
                    await self._apply(session, request)
        except _SettlementAborted as aborted:
            return aborted.result
        return SettlementResult.SETTLED

    async def _apply(self, session: AsyncSession, request: SettlementRequest) -> None:
        closed = await session.execute(
            update(OfferTable)
            .where(
                OfferTable.offer_id == request.offer_id,
                OfferTable.status == OfferStatus.ACTIVE.value,
            )
            .values(status=OfferStatus.COMPLETED.value, closed_at=request.closed_at)
        )
        if closed.rowcount != 1:
            raise _SettlementAborted(SettlementResult.OFFER_NOT_ACTIVE)

        offered = await session.execute(
            update(CardInstanceTable)
            .where(
                CardInstanceTable.instance_id == request.offered_instance_id,
                CardInstanceTable.owner_id == request.maker_id,
                CardInstanceTable.locked_by == request.offer_id,
            )
            .values(owner_id=request.taker_id, locked_by=None)
        )
        if offered.rowcount != 1:
            raise _SettlementAborted(SettlementResult.OFFERED_MOVED)

        paying = await session.execute(
            update(CardInstanceTable)
            .where(
                CardInstanceTable.instance_id == request.paying_instance_id,
                CardInstanceTable.owner_id == request.taker_id,
                CardInstanceTable.card_id == request.requested_card_id,
                CardInstanceTable.locked_by.is_(None),
            )
            .values(owner_id=request.maker_id)
        )
        if paying.rowcount != 1:
            raise _SettlementAborted(SettlementResult.PAYING_INELIGIBLE)
