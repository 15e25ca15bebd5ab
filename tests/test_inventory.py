import pytest

from cardswap.domain.exceptions import (
    AlreadyLocked,
    InstanceNotFound,
    InvalidCard,
    NotOwner,
    StorageUnavailable,
)
from cardswap.domain.locks import UnlockOutcome
from cardswap.storage.memory import InMemoryInstanceStore
from cardswap.testing.faults import FaultyInstanceStore

from .conftest import build_app


@pytest.mark.asyncio()
async def test_mint_scales_power_with_level(app):
    record = await app.inventory_service.mint("A", "m2", level=3)
    assert record.power_score == 210
    assert record.owner_id == "A"
    assert not record.is_locked


@pytest.mark.asyncio()
async def test_mint_rejects_unknown_card(app):
    with pytest.raises(InvalidCard):
        await app.inventory_service.mint("A", "missing")


@pytest.mark.asyncio()
async def test_tradeable_skips_locked_instances(app):
    await app.inventory_service.mint("A", "m1", instance_id="iA")
    await app.inventory_service.mint("A", "m1", instance_id="iA2")
    await app.inventory_service.mint("A", "m2", instance_id="iA3")
    await app.executor.publish("A", "iA", "m2")

    tradeable = await app.inventory_service.list_tradeable("A", "m1")

    assert [record.instance_id for record in tradeable] == ["iA2"]
    with pytest.raises(InstanceNotFound):
        await app.inventory_service.get_instance("nope")


@pytest.mark.asyncio()
async def test_lock_is_exclusive(app):
    await app.inventory_service.mint("A", "m1", instance_id="iA")

    await app.locks.lock("iA", "o1", owner_id="A")
    await app.locks.lock("iA", "o1", owner_id="A")
    with pytest.raises(AlreadyLocked):
        await app.locks.lock("iA", "o2", owner_id="A")
    assert await app.locks.is_locked("iA")


@pytest.mark.asyncio()
async def test_lock_checks_owner(app):
    await app.inventory_service.mint("A", "m1", instance_id="iA")
    with pytest.raises(NotOwner):
        await app.locks.lock("iA", "o1", owner_id="B")
    with pytest.raises(InstanceNotFound):
        await app.locks.lock("nope", "o1")


@pytest.mark.asyncio()
async def test_unlock_outcomes(app):
    await app.inventory_service.mint("A", "m1", instance_id="iA")
    await app.locks.lock("iA", "o1")

    assert await app.locks.unlock("iA", "o2") is UnlockOutcome.MISMATCHED
    assert await app.locks.unlock("iA", "o1") is UnlockOutcome.RELEASED
    assert await app.locks.unlock("iA", "o1") is UnlockOutcome.ALREADY_RELEASED
    assert await app.locks.unlock("nope", "o1") is UnlockOutcome.MISSING
    assert not await app.locks.is_locked("iA")


@pytest.mark.asyncio()
async def test_owner_aware_unlock_keeps_lock_on_moved_instance(app):
    await app.inventory_service.mint("A", "m1", instance_id="iA")
    await app.locks.lock("iA", "o1", owner_id="A")
    await app.instance_store.transfer(
        "iA", from_owner="A", to_owner="B", expected_lock="o1", new_lock="o1"
    )

    assert await app.locks.unlock("iA", "o1", owner_id="A") is UnlockOutcome.OWNER_CHANGED
    assert (await app.instance_store.get("iA")).locked_by == "o1"
    assert await app.locks.unlock("iA", "o1", owner_id="B") is UnlockOutcome.RELEASED


@pytest.mark.asyncio()
async def test_store_failures_surface_as_storage_unavailable():
    instances = FaultyInstanceStore(InMemoryInstanceStore())
    app = build_app(instance_store=instances)
    instances.fail("list_for_owner")

    with pytest.raises(StorageUnavailable):
        await app.inventory_service.list_player_instances("A")
