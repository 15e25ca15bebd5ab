import pytest

from cardswap.domain.exceptions import ErrorKind
from cardswap.domain.identity import StaticIdentityProvider
from cardswap.gateway import SwapGateway, SwapResult
from cardswap.storage.memory import InMemoryInstanceStore
from cardswap.testing import TestClient
from cardswap.testing.faults import FaultyInstanceStore

from .conftest import build_app, mint


@pytest.mark.asyncio()
async def test_unknown_session_is_unauthenticated(app):
    await mint(app, "A", "m1", "iA")
    identity = StaticIdentityProvider({"token-a": "A"})
    gateway = SwapGateway(app, identity)

    denied = await gateway.publish_offer("token-b", "iA", "m2")
    allowed = await gateway.publish_offer("token-a", "iA", "m2")

    assert denied.error is ErrorKind.UNAUTHENTICATED
    assert allowed.ok
    identity.revoke("token-a")
    assert (await gateway.list_my_offers("token-a")).error is ErrorKind.UNAUTHENTICATED


@pytest.mark.asyncio()
async def test_empty_session_is_rejected(app):
    gateway = SwapGateway(app)
    assert (await gateway.my_instances(None)).error is ErrorKind.UNAUTHENTICATED
    assert (await gateway.my_instances("  ")).error is ErrorKind.UNAUTHENTICATED


@pytest.mark.asyncio()
async def test_errors_are_tagged(app):
    await mint(app, "A", "m1", "iA")
    await mint(app, "B", "m3", "iB")
    gateway = SwapGateway(app)

    same_kind = await gateway.publish_offer("A", "iA", "m1")
    foreign = await gateway.publish_offer("B", "iA", "m2")
    missing = await gateway.accept_offer("B", "no-such-offer", "iB")
    offer_id = (await gateway.publish_offer("A", "iA", "m2")).value
    wrong_card = await gateway.accept_offer("B", offer_id, "iB")

    assert same_kind.error is ErrorKind.SAME_KIND_FORBIDDEN
    assert foreign.error is ErrorKind.NOT_OWNER
    assert missing.error is ErrorKind.NOT_FOUND
    assert wrong_card.error is ErrorKind.NOT_ELIGIBLE
    assert "Nefertiti" in wrong_card.message


@pytest.mark.asyncio()
async def test_listings_and_history(app):
    await mint(app, "A", "m1", "iA")
    await mint(app, "B", "m2", "iB")
    gateway = SwapGateway(app)
    offer_id = (await gateway.publish_offer("A", "iA", "m2")).value

    market = await gateway.list_market("B")
    mine = await gateway.list_my_offers("A")
    assert [item.offer_id for item in market.value.items] == [offer_id]
    assert [item.offer_id for item in mine.value] == [offer_id]

    await gateway.accept_offer("B", offer_id, "iB")
    history = await gateway.trade_history("B")
    instances = await gateway.my_instances("B")

    assert [record.offer_id for record in history.value] == [offer_id]
    assert [record.instance_id for record in instances.value] == ["iA"]
    assert (await gateway.list_market("B")).value.items == []


def test_unwrap_raises_on_error():
    assert SwapResult(value=3).unwrap() == 3
    with pytest.raises(RuntimeError):
        SwapResult(error=ErrorKind.TIMEOUT, message="slow").unwrap()


def test_error_kind_classes():
    assert ErrorKind.NO_LONGER_ACTIVE.race_outcome
    assert ErrorKind.TIMEOUT.retryable
    assert ErrorKind.TRADE_INCOMPLETE.fatal
    assert ErrorKind.NOT_ELIGIBLE.user_correctable
    assert not ErrorKind.STORAGE_UNAVAILABLE.user_correctable


@pytest.mark.asyncio()
async def test_client_keeps_transcript(app):
    await mint(app, "A", "m1", "iA")
    await mint(app, "B", "m2", "iB")
    client = TestClient(SwapGateway(app))

    offer_id = (await client.publish("A", "iA", "m2")).value
    await client.accept("B", offer_id, "iB")
    await client.cancel("A", offer_id)

    log = client.history()
    assert [entry.metadata["ok"] for entry in log] == [True, True, False]
    assert log[-1].metadata["error"] == "NoLongerActive"


@pytest.mark.asyncio()
async def test_payment_options_for_offer(app):
    await mint(app, "A", "m1", "iA")
    await mint(app, "B", "m2", "iB1")
    await mint(app, "B", "m2", "iB2")
    await mint(app, "B", "m3", "iB3")
    identity = StaticIdentityProvider({"token-b": "B"})
    gateway = SwapGateway(app, identity)
    offer_id = (await SwapGateway(app).publish_offer("A", "iA", "m2")).value
    await app.locks.lock("iB2", "elsewhere", owner_id="B")

    options = await gateway.payment_options("token-b", offer_id)
    missing = await gateway.payment_options("token-b", "no-such-offer")

    assert [instance.instance_id for instance in options.value] == ["iB1"]
    assert missing.error is ErrorKind.NOT_FOUND
    assert (await gateway.payment_options("B", offer_id)).error is ErrorKind.UNAUTHENTICATED


@pytest.mark.asyncio()
async def test_payment_options_tag_storage_failures():
    instances = FaultyInstanceStore(InMemoryInstanceStore())
    app = build_app(instance_store=instances)
    await mint(app, "A", "m1", "iA")
    gateway = SwapGateway(app)
    offer_id = (await gateway.publish_offer("A", "iA", "m2")).value
    instances.fail("list_for_owner")

    result = await gateway.payment_options("B", offer_id)

    assert result.error is ErrorKind.STORAGE_UNAVAILABLE
