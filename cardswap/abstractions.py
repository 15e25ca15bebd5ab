"""High-level helpers that simplify bootstrapping CardSwap bots.

This module provides a straightforward, batteries-included API oriented towards
developers who do not want to dive into the full async/config ecosystem.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

from aiogram import Bot, Dispatcher
from rich.console import Console

from . import CardSwapConfig, SwapApp
from .admin import build_admin_router
from .loaders import load_catalog_from_json, seed_from_definition, validate_catalog_dict
from .telegram import build_router
from .validators import validate_app

console = Console()


@dataclass(slots=True)
class SimpleBotConfig:
    """Minimal settings required to run a CardSwap bot."""

    bot_token: str
    catalog_path: Path
    storage: str = "memory"  # "memory" or path to SQLite file
    admin_ids: Sequence[int] = ()
    seed_instances: bool = True


async def run_simple_bot(config: SimpleBotConfig) -> None:
    """Spin up a ready-to-go aiogram bot with sensible defaults."""

    cardswap_config = CardSwapConfig.from_env()
    cardswap_config.bot_token = config.bot_token
    if config.storage != "memory":
        db_path = Path(config.storage).expanduser().resolve()
        db_path.parent.mkdir(parents=True, exist_ok=True)
        cardswap_config.storage.backend = "sqlalchemy"
        cardswap_config.storage.dsn = f"sqlite+aiosqlite:///{db_path.as_posix()}"
    if config.admin_ids:
        cardswap_config.admin.admin_ids = set(config.admin_ids)

    app = SwapApp(cardswap_config)
    await app.init_backend()
    definition = load_catalog_from_json(app, config.catalog_path)
    minted = 0
    if config.seed_instances and not await app.instance_store.list_all():
        minted = await seed_from_definition(app, definition)

    for issue in validate_app(app):
        console.print(f"[yellow]Warning:[/yellow] {issue}")

    bot = Bot(app.config.bot_token)
    dp = Dispatcher()
    dp.include_router(build_admin_router(app))
    dp.include_router(build_router(app))

    console.print(
        f"[bold green]CardSwap ready![/bold green]\n"
        f"Cards: {len(definition.cards)}, seeded instances: {minted}, "
        f"settlement: {'transactional' if app.transactional else 'two-step'}",
    )

    try:
        await dp.start_polling(bot)
    finally:
        await app.close()


def run_simple_bot_sync(config: SimpleBotConfig) -> None:
    """Synchronous wrapper for run_simple_bot."""

    asyncio.run(run_simple_bot(config))


@dataclass(slots=True)
class CatalogBuilder:
    """Imperative builder that produces JSON catalogs."""

    cards: list[dict] = field(default_factory=list)
    instances: list[dict] = field(default_factory=list)

    def add_card(
        self,
        card_id: str,
        name: str,
        description: str = "",
        *,
        rarity: str = "common",
        image_url: str | None = None,
        power: int = 1,
        tags: Iterable[str] = (),
    ) -> "CatalogBuilder":
        card: dict = {
            "id": card_id,
            "name": name,
            "description": description,
            "rarity": rarity,
            "power": power,
            "tags": list(tags),
        }
        if image_url:
            card["image"] = {"url": image_url}
        self.cards.append(card)
        return self

    def add_instance(
        self,
        owner: str | int,
        card_id: str,
        *,
        level: int = 1,
        instance_id: str | None = None,
    ) -> "CatalogBuilder":
        instance: dict = {"owner": str(owner), "card": card_id, "level": level}
        if instance_id:
            instance["id"] = instance_id
        self.instances.append(instance)
        return self

    def build(self) -> dict:
        catalog = {"cards": self.cards, "instances": self.instances}
        errors = validate_catalog_dict(catalog)
        if errors:
            raise ValueError("Catalog validation failed:\n" + "\n".join(f"- {err}" for err in errors))
        return catalog

    def save(self, path: Path) -> None:
        catalog = self.build()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(catalog, ensure_ascii=False, indent=2), encoding="utf-8")


__all__ = [
    "SimpleBotConfig",
    "CatalogBuilder",
    "run_simple_bot",
    "run_simple_bot_sync",
]
