from datetime import datetime, timezone

from cardswap.domain.cards import CardCatalog, MasterCard, Rarity
from cardswap.domain.exceptions import ErrorKind
from cardswap.domain.market import CardLabel, MarketPage, OfferSummary
from cardswap.gateway import SwapResult
from cardswap.storage.base import CardInstanceRecord, TradeRecord
from cardswap.telegram.aiogram_router import (
    command_args,
    format_error,
    format_history_message,
    format_instances_message,
    format_market_message,
    format_my_offers_message,
)


def make_summary(offer_id="abcdef123456"):
    return OfferSummary(
        offer_id=offer_id,
        maker_id="1",
        offered_instance_id="i1",
        offered=CardLabel(card_id="alpha", name="Alpha", rarity=Rarity.RARE),
        requested=CardLabel(card_id="beta", name="Beta"),
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


def test_format_market_message_lists_offers():
    text = format_market_message(MarketPage(items=[make_summary()], next_cursor="next"))
    assert "Alpha ⇄ Beta" in text
    assert "#abcdef12" in text
    assert "Rarity" not in text  # ensure value, not class repr
    assert "/market <карта>" in text


def test_format_market_message_empty():
    assert format_market_message(MarketPage()) == "На рынке пока нет предложений."
    assert "/offer" in format_my_offers_message([])


def test_format_instances_message_marks_locked_cards():
    catalog = CardCatalog()
    catalog.register_card(MasterCard(card_id="alpha", name="Alpha"))
    instances = [
        CardInstanceRecord(instance_id="i2", card_id="alpha", owner_id="1", level=2, locked_by="o1"),
        CardInstanceRecord(instance_id="i3", card_id="retired", owner_id="1"),
    ]
    text = format_instances_message(instances, catalog)
    assert "Alpha ур.2 [i2] 🔒" in text
    assert "retired ур.1 [i3]" in text


def test_format_history_message_reads_from_player_side():
    record = TradeRecord(
        offer_id="o1",
        maker_id="1",
        taker_id="2",
        maker_instance_id="i1",
        taker_instance_id="i2",
        created_at=datetime(2025, 5, 4, 10, 30, tzinfo=timezone.utc),
    )
    assert "отдал i1, получил i2 (с 2)" in format_history_message([record], "1")
    assert "отдал i2, получил i1 (с 1)" in format_history_message([record], "2")
    assert format_history_message([], "1") == "Обменов пока не было."


def test_format_error_includes_reason_for_ineligible():
    text = format_error(SwapResult(error=ErrorKind.NOT_ELIGIBLE, message="wrong card"))
    assert text.endswith(": wrong card")
    assert "wrong" not in format_error(SwapResult(error=ErrorKind.NO_LONGER_ACTIVE, message="wrong"))


def test_command_args_skips_command():
    assert command_args("/offer i1 beta") == ["i1", "beta"]
    assert command_args(None) == []
