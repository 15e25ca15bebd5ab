import json
from datetime import datetime, timezone

import pytest
from aiogram import Router

from cardswap import CardSwapConfig, SwapApp
from cardswap.abstractions import CatalogBuilder
from cardswap.admin import build_admin_router
from cardswap.domain.market import CardLabel, OfferSummary
from cardswap.loaders import load_catalog_from_json
from cardswap.telegram import build_router, market_keyboard, my_offers_keyboard


def test_catalog_builder_round_trip(tmp_path):
    builder = (
        CatalogBuilder()
        .add_card("alpha", "Alpha", power=3, image_url="https://example.com/a.png")
        .add_card("beta", "Beta", rarity="rare")
        .add_instance(1001, "alpha", instance_id="a-1")
    )
    path = tmp_path / "catalog" / "cards.json"
    builder.save(path)

    assert json.loads(path.read_text(encoding="utf-8"))["instances"][0]["owner"] == "1001"
    app = SwapApp(CardSwapConfig(bot_token="test"))
    definition = load_catalog_from_json(app, path)
    assert [card.card_id for card in definition.cards] == ["alpha", "beta"]


def test_catalog_builder_rejects_unknown_instance_card():
    builder = CatalogBuilder().add_card("alpha", "Alpha").add_instance(1, "ghost")
    with pytest.raises(ValueError):
        builder.build()


def test_routers_require_two_cards(app):
    assert isinstance(build_router(app), Router)
    assert isinstance(build_admin_router(app), Router)

    empty = SwapApp(CardSwapConfig(bot_token="test"))
    with pytest.raises(RuntimeError):
        build_router(empty)


def test_keyboards_carry_offer_ids():
    offer = OfferSummary(
        offer_id="f" * 32,
        maker_id="1",
        offered_instance_id="i1",
        offered=CardLabel(card_id="alpha", name="Alpha"),
        requested=CardLabel(card_id="beta", name="Beta"),
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )
    accept = market_keyboard([offer]).inline_keyboard[0][0]
    cancel = my_offers_keyboard([offer]).inline_keyboard[0][0]

    assert accept.callback_data == f"cardswap:accept:{offer.offer_id}"
    assert cancel.callback_data == f"cardswap:cancel:{offer.offer_id}"
    assert len(accept.callback_data.encode()) <= 64
