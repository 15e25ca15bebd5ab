"""Пример бота обмена картами на CardSwap."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from random import Random

from cardswap import CardSwapConfig, SwapApp
from cardswap.diagnostics.market_simulator import MarketSimulator
from cardswap.loaders import load_catalog_from_json, seed_from_definition
from cardswap.loaders.json_loader import CatalogDefinition

CATALOG_PATH = Path(__file__).with_name("catalog") / "cards.json"


def register(app: SwapApp) -> CatalogDefinition:
    """Регистрируем карточки из каталога."""
    definition = load_catalog_from_json(app, CATALOG_PATH)

    # Пример кастомизации команд администраторов.
    app.config.admin.commands.mint = "gift"

    async def announce(payload) -> None:
        logging.getLogger("swap_bot").info("Обмен по предложению %s завершён.", payload["offer_id"])

    app.event_bus.subscribe("swap.trade.completed", announce)
    return definition


async def simulate() -> None:
    app = SwapApp(CardSwapConfig.from_env())
    register(app)
    result = await MarketSimulator(app, rng=Random(7)).simulate(players=4, rounds=10)
    print(f"Обменов: {result.trades}, проблем: {len(result.issues)}")


async def run_bot() -> None:
    from aiogram import Bot, Dispatcher
    from cardswap.admin import build_admin_router
    from cardswap.telegram import build_router

    app = SwapApp(CardSwapConfig.from_env())
    await app.init_backend()
    definition = register(app)
    if not await app.instance_store.list_all():
        await seed_from_definition(app, definition)

    bot = Bot(app.config.bot_token)
    dp = Dispatcher()
    dp.include_router(build_admin_router(app))
    dp.include_router(build_router(app))
    await dp.start_polling(bot)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(run_bot())
