import pytest

from cardswap.app import SwapApp
from cardswap.config import CardSwapConfig, ExecutorConfig
from cardswap.domain.cards import MasterCard, Rarity


def build_app(**kwargs) -> SwapApp:
    executor = kwargs.pop("executor", None) or ExecutorConfig(deadline_seconds=2.0)
    config = kwargs.pop("config", None) or CardSwapConfig(bot_token="test", executor=executor)
    app = SwapApp(config, **kwargs)
    (
        app.cards.card(MasterCard(card_id="m1", name="Ramses II", rarity=Rarity.LEGENDARY, power_score=90))
        .card(MasterCard(card_id="m2", name="Nefertiti", rarity=Rarity.EPIC, power_score=70))
        .card(MasterCard(card_id="m3", name="Anubis", rarity=Rarity.RARE, power_score=55))
    )
    return app


async def mint(app: SwapApp, owner: str, card_id: str, instance_id: str):
    return await app.inventory_service.mint(owner, card_id, instance_id=instance_id)


@pytest.fixture()
def app() -> SwapApp:
    return build_app()
