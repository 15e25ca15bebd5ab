import pytest

from cardswap.config import ExecutorConfig
from cardswap.domain.events import RECONCILIATION_NEEDED, TRADE_COMPLETED
from cardswap.domain.exceptions import (
    DeadlineExceeded,
    InvalidCard,
    NeedsReconciliation,
    NotEligible,
    NotOwner,
    SameKindForbidden,
    StorageUnavailable,
    TradeIncomplete,
)
from cardswap.storage.base import OfferStatus
from cardswap.storage.memory import InMemoryInstanceStore, InMemoryOfferStore
from cardswap.testing.faults import FaultyInstanceStore, FaultyOfferStore, InterleavingProxy

from .conftest import build_app, mint


@pytest.mark.asyncio()
async def test_publish_validates_terms(app):
    await mint(app, "A", "m1", "iA")
    with pytest.raises(InvalidCard):
        await app.executor.publish("A", "missing", "m2")
    with pytest.raises(NotOwner):
        await app.executor.publish("B", "iA", "m2")
    with pytest.raises(InvalidCard):
        await app.executor.publish("A", "iA", "unknown")
    with pytest.raises(SameKindForbidden):
        await app.executor.publish("A", "iA", "m1")
    assert not (await app.instance_store.get("iA")).is_locked


@pytest.mark.asyncio()
async def test_publish_insert_failure_releases_lock():
    offers = FaultyOfferStore(InMemoryOfferStore())
    app = build_app(offer_store=offers)
    await mint(app, "A", "m1", "iA")

    offers.fail_insert()
    with pytest.raises(StorageUnavailable):
        await app.executor.publish("A", "iA", "m2")

    assert not (await app.instance_store.get("iA")).is_locked
    assert await app.reconciliation_store.list_open() == []


@pytest.mark.asyncio()
async def test_publish_escalates_when_unlock_also_fails():
    offers = FaultyOfferStore(InMemoryOfferStore())
    instances = FaultyInstanceStore(InMemoryInstanceStore())
    app = build_app(offer_store=offers, instance_store=instances)
    await mint(app, "A", "m1", "iA")
    seen = []

    async def listener(payload):
        seen.append(payload)

    app.event_bus.subscribe(RECONCILIATION_NEEDED, listener)
    offers.fail_insert()
    instances.fail_unlock("iA")

    with pytest.raises(NeedsReconciliation):
        await app.executor.publish("A", "iA", "m2")

    events = await app.reconciliation_store.list_open()
    assert [event.kind for event in events] == ["publish_compensation_failed"]
    assert events[0].instance_ids == ["iA"]
    assert len(seen) == 1


@pytest.mark.asyncio()
async def test_publish_timeout_rolls_back_lock():
    app = build_app(
        offer_store=InterleavingProxy(InMemoryOfferStore(), delays={"insert": 1.0}),
        executor=ExecutorConfig(deadline_seconds=0.05),
    )
    await mint(app, "A", "m1", "iA")

    with pytest.raises(DeadlineExceeded):
        await app.executor.publish("A", "iA", "m2")

    assert not (await app.instance_store.get("iA")).is_locked
    assert await app.offer_store.list_active() == []


@pytest.mark.asyncio()
async def test_accept_timeout_restores_state():
    app = build_app(
        offer_store=InterleavingProxy(
            InMemoryOfferStore(), delays={"compare_and_set_status": 1.0}
        ),
        executor=ExecutorConfig(deadline_seconds=0.05),
    )
    await mint(app, "A", "m1", "iA")
    await mint(app, "B", "m2", "iB")
    offer = await app.executor.publish("A", "iA", "m2")

    with pytest.raises(DeadlineExceeded):
        await app.executor.accept("B", offer.offer_id, "iB")

    i_a = await app.instance_store.get("iA")
    assert (i_a.owner_id, i_a.locked_by) == ("A", offer.offer_id)
    assert (await app.instance_store.get("iB")).owner_id == "B"
    assert (await app.offer_store.get(offer.offer_id)).status is OfferStatus.ACTIVE


@pytest.mark.asyncio()
async def test_accept_escalates_when_rollback_fails():
    instances = FaultyInstanceStore(InMemoryInstanceStore())
    app = build_app(instance_store=instances)
    await mint(app, "A", "m1", "iA")
    await mint(app, "B", "m2", "iB")
    offer = await app.executor.publish("A", "iA", "m2")

    instances.fail_transfer("iB", times=2)
    instances.fail_transfer("iA", skip=1, times=5)

    with pytest.raises(TradeIncomplete) as excinfo:
        await app.executor.accept("B", offer.offer_id, "iB")

    assert excinfo.value.context["offer_id"] == offer.offer_id
    events = await app.reconciliation_store.list_open()
    assert [event.kind for event in events] == ["accept_compensation_failed"]
    assert set(events[0].instance_ids) == {"iA", "iB"}


@pytest.mark.asyncio()
async def test_accept_rejects_ineligible_takers(app):
    await mint(app, "A", "m1", "iA")
    await mint(app, "A", "m2", "iA2")
    await mint(app, "B", "m3", "iB_wrong")
    await mint(app, "B", "m2", "iB")
    offer = await app.executor.publish("A", "iA", "m2")

    with pytest.raises(NotEligible):
        await app.executor.accept("A", offer.offer_id, "iA2")
    with pytest.raises(NotEligible):
        await app.executor.accept("B", offer.offer_id, "iB_wrong")
    with pytest.raises(NotEligible):
        await app.executor.accept("B", offer.offer_id, "iA2")
    with pytest.raises(NotEligible):
        await app.executor.accept("B", offer.offer_id, "nope")

    other = await app.executor.publish("B", "iB", "m1")
    with pytest.raises(NotEligible):
        await app.executor.accept("B", offer.offer_id, "iB")
    assert (await app.instance_store.get("iB")).locked_by == other.offer_id
    assert (await app.offer_store.get(offer.offer_id)).is_active


@pytest.mark.asyncio()
async def test_cancel_unlock_failure_is_recorded_but_succeeds():
    instances = FaultyInstanceStore(InMemoryInstanceStore())
    app = build_app(instance_store=instances)
    await mint(app, "A", "m1", "iA")
    offer = await app.executor.publish("A", "iA", "m2")

    instances.fail_unlock("iA")
    cancelled = await app.executor.cancel("A", offer.offer_id)

    assert cancelled.status is OfferStatus.CANCELLED
    events = await app.reconciliation_store.list_open()
    assert [event.kind for event in events] == ["cancel_unlock_failed"]

    report = await app.reconciler.rebuild_locks()
    assert report.released == ["iA"]


@pytest.mark.asyncio()
async def test_cancel_requires_maker(app):
    await mint(app, "A", "m1", "iA")
    offer = await app.executor.publish("A", "iA", "m2")
    with pytest.raises(NotOwner):
        await app.executor.cancel("B", offer.offer_id)
    assert (await app.offer_store.get(offer.offer_id)).is_active


@pytest.mark.asyncio()
async def test_activity_log_failure_does_not_fail_trade():
    class BrokenActivityLog:
        async def record_event(self, player_id, kind, description):
            raise RuntimeError("activity log down")

        async def recent_for_player(self, player_id, limit=20):
            return []

    app = build_app(activity_log=BrokenActivityLog())
    await mint(app, "A", "m1", "iA")
    await mint(app, "B", "m2", "iB")
    completed = []

    async def listener(payload):
        completed.append(payload["offer_id"])

    app.event_bus.subscribe(TRADE_COMPLETED, listener)
    offer = await app.executor.publish("A", "iA", "m2")
    receipt = await app.executor.accept("B", offer.offer_id, "iB")

    assert completed == [receipt.offer_id]


@pytest.mark.asyncio()
async def test_activity_log_records_both_sides(app):
    await mint(app, "A", "m1", "iA")
    await mint(app, "B", "m2", "iB")
    offer = await app.executor.publish("A", "iA", "m2")
    await app.executor.accept("B", offer.offer_id, "iB")

    maker = await app.activity_log.recent_for_player("A")
    taker = await app.activity_log.recent_for_player("B")
    assert [entry.kind for entry in maker] == ["SWAP_COMPLETED", "SWAP_PUBLISHED"]
    assert "Ramses II" in taker[0].description
