from datetime import datetime, timezone

import pytest

from cardswap.config import CardSwapConfig, MarketConfig
from cardswap.domain.exceptions import ErrorKind, InvalidRequest
from cardswap.domain.market import MarketFilter, decode_cursor, encode_cursor
from cardswap.gateway import SwapGateway
from cardswap.storage.base import OfferRecord, OfferStatus

from .conftest import build_app, mint


async def publish_many(app, maker, count, requested="m2"):
    offer_ids = []
    for index in range(count):
        instance_id = f"{maker}-{index}"
        await mint(app, maker, "m1", instance_id)
        offer = await app.executor.publish(maker, instance_id, requested)
        offer_ids.append(offer.offer_id)
    return offer_ids


@pytest.mark.asyncio()
async def test_browse_hides_own_offers(app):
    await publish_many(app, "A", 2)
    theirs = await publish_many(app, "B", 1)

    page = await app.market.browse("A")

    assert [item.offer_id for item in page.items] == theirs
    assert page.next_cursor is None
    assert [item.maker_id for item in (await app.market.browse("C")).items] == ["B", "A", "A"]


@pytest.mark.asyncio()
async def test_browse_pages_newest_first(app):
    offer_ids = await publish_many(app, "A", 5)
    newest_first = list(reversed(offer_ids))

    seen = []
    cursor = None
    while True:
        page = await app.market.browse("B", MarketFilter(limit=2, cursor=cursor))
        seen.extend(item.offer_id for item in page.items)
        cursor = page.next_cursor
        if cursor is None:
            break

    assert seen == newest_first


@pytest.mark.asyncio()
async def test_browse_skips_closed_offers(app):
    offer_ids = await publish_many(app, "A", 3)
    await app.executor.cancel("A", offer_ids[1])

    page = await app.market.browse("B")

    assert [item.offer_id for item in page.items] == [offer_ids[2], offer_ids[0]]
    assert all(item.offer_id != offer_ids[1] for item in await app.market.mine("A"))


@pytest.mark.asyncio()
async def test_browse_filters_by_card(app):
    await publish_many(app, "A", 1, requested="m2")
    wanted = await publish_many(app, "C", 1, requested="m3")

    by_request = await app.market.browse("B", MarketFilter(requested_card_id="m3"))
    by_offer = await app.market.browse("B", MarketFilter(offered_card_id="m2"))

    assert [item.offer_id for item in by_request.items] == wanted
    assert by_offer.items == []


@pytest.mark.asyncio()
async def test_summary_carries_card_labels(app):
    await publish_many(app, "A", 1)

    (item,) = (await app.market.browse("B")).items

    assert item.offered.name == "Ramses II"
    assert item.requested.name == "Nefertiti"
    assert item.offered_instance_id == "A-0"


@pytest.mark.asyncio()
async def test_label_falls_back_to_card_id(app):
    await app.offer_store.insert(
        OfferRecord(
            offer_id="legacy",
            maker_id="A",
            offered_instance_id="old",
            offered_card_id="retired",
            requested_card_id="m2",
            status=OfferStatus.ACTIVE,
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
    )

    (item,) = (await app.market.browse("B")).items

    assert item.offered.name == "retired"
    assert item.offered.rarity is None


@pytest.mark.asyncio()
async def test_mine_lists_newest_first(app):
    offer_ids = await publish_many(app, "A", 3)
    await publish_many(app, "B", 1)

    mine = await app.market.mine("A")

    assert [item.offer_id for item in mine] == list(reversed(offer_ids))


@pytest.mark.asyncio()
async def test_limit_is_clamped():
    app = build_app(config=CardSwapConfig(market=MarketConfig(default_limit=2, max_limit=3)))
    await publish_many(app, "A", 5)

    assert len(await app.market.browse("B")) == 2
    assert len(await app.market.browse("B", MarketFilter(limit=100))) == 3
    assert len(await app.market.browse("B", MarketFilter(limit=0))) == 1


@pytest.mark.asyncio()
async def test_bad_cursor_is_rejected(app):
    with pytest.raises(InvalidRequest):
        await app.market.browse("B", MarketFilter(cursor="not-a-cursor"))

    result = await SwapGateway(app).list_market("B", cursor="%%%")
    assert result.error is ErrorKind.INVALID_REQUEST


def test_cursor_round_trip():
    created_at = datetime(2025, 3, 1, 12, 30, tzinfo=timezone.utc)
    assert decode_cursor(encode_cursor(created_at, "abc")) == (created_at, "abc")


def test_naive_cursor_timestamp_is_rejected():
    naive = encode_cursor(datetime(2025, 3, 1, 12, 30), "abc")
    with pytest.raises(InvalidRequest):
        decode_cursor(naive)
