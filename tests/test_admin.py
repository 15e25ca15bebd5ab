import pytest

from cardswap.admin.commands import app_admin_service, format_reconciliation_message
from cardswap.domain.reconciliation import ReconciliationReport
from cardswap.storage.base import OfferStatus


@pytest.fixture()
def admin_service(app):
    return app_admin_service(app)


@pytest.mark.asyncio()
async def test_mint_card(app, admin_service):
    minted = []

    async def listener(payload):
        minted.append(payload["instance_id"])

    app.event_bus.subscribe("admin.card.minted", listener)
    record = await admin_service.mint_card("42", "m1", level=2, actor="7")

    assert minted == [record.instance_id]
    (instance,) = await app.inventory_service.list_player_instances("42")
    assert (instance.card_id, instance.level) == ("m1", 2)
    (entry,) = await app.activity_log.recent_for_player("42")
    assert entry.kind == "ADMIN_MINT"
    assert "by 7" in entry.description


@pytest.mark.asyncio()
async def test_reconcile_repairs_and_lists_events(app, admin_service):
    await app.inventory_service.mint("A", "m1", instance_id="iA")
    offer = await app.executor.publish("A", "iA", "m2")
    await app.instance_store.transfer(
        "iA", from_owner="A", to_owner="B", expected_lock=offer.offer_id, new_lock=offer.offer_id
    )

    report, events = await admin_service.reconcile()

    assert report.cancelled_offers == [offer.offer_id]
    assert events == []
    assert (await app.offer_store.get(offer.offer_id)).status is OfferStatus.CANCELLED


@pytest.mark.asyncio()
async def test_resolve_unknown_event(admin_service):
    assert not await admin_service.resolve_event("missing", "noop")


def test_format_reconciliation_message_clean():
    text = format_reconciliation_message(ReconciliationReport(), [])
    assert "Блокировки в порядке." in text
    assert "Открытые события" not in text


def test_format_reconciliation_message_counts_repairs():
    report = ReconciliationReport(relocked=["i1"], released=["i2", "i3"])
    text = format_reconciliation_message(report, [])
    assert "Восстановлено блокировок: 1" in text
    assert "Снято лишних блокировок: 2" in text
