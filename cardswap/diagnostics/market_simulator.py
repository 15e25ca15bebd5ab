"""Randomised concurrent market simulation."""

from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from random import Random
from typing import Any, Awaitable

from ..app import SwapApp
from ..domain.market import MarketFilter
from ..gateway import SwapGateway, SwapResult
from .checklist import ChecklistIssue, run_checklist, take_baseline


@dataclass(slots=True)
class SimulationResult:
    rounds: int
    outcomes: Counter = field(default_factory=Counter)
    issues: list[ChecklistIssue] = field(default_factory=list)

    @property
    def trades(self) -> int:
        return self.outcomes["accept:ok"]

    def record(self, operation: str, result: SwapResult[Any]) -> None:
        status = "ok" if result.ok else result.error.value
        self.outcomes[f"{operation}:{status}"] += 1


class MarketSimulator:
    """Let simulated players publish, accept and cancel concurrently.

    Every round launches one action per player with ``asyncio.gather`` and the
    invariant checklist runs once all rounds are done.
    """

    def __init__(self, app: SwapApp, *, rng: Random | None = None) -> None:
        self._app = app
        self._rng = rng or Random()
        self._gateway = SwapGateway(app)

    async def populate(self, players: int, *, instances_per_player: int = 3) -> list[str]:
        card_ids = [card.card_id for card in self._app.cards.catalog.iter_cards()]
        if len(card_ids) < 2:
            raise ValueError("Simulation requires at least two master cards")
        player_ids = [f"player-{idx}" for idx in range(1, players + 1)]
        for player_id in player_ids:
            for _ in range(instances_per_player):
                await self._app.inventory_service.mint(player_id, self._rng.choice(card_ids))
        return player_ids

    async def simulate(
        self,
        *,
        players: int = 6,
        rounds: int = 20,
        instances_per_player: int = 3,
    ) -> SimulationResult:
        player_ids = await self.populate(players, instances_per_player=instances_per_player)
        baseline = await take_baseline(self._app)
        result = SimulationResult(rounds=rounds)
        for _ in range(rounds):
            actions = [self._act(player_id, result) for player_id in player_ids]
            await asyncio.gather(*actions)
        result.issues = await run_checklist(self._app, baseline=baseline)
        return result

    async def _act(self, player_id: str, result: SimulationResult) -> None:
        roll = self._rng.random()
        if roll < 0.45:
            await self._publish(player_id, result)
        elif roll < 0.85:
            await self._accept(player_id, result)
        else:
            await self._cancel(player_id, result)

    async def _publish(self, player_id: str, result: SimulationResult) -> None:
        tradeable = await self._app.inventory_service.list_tradeable(player_id)
        if not tradeable:
            return
        instance = self._rng.choice(tradeable)
        wanted = [
            card.card_id
            for card in self._app.cards.catalog.iter_cards()
            if card.card_id != instance.card_id
        ]
        requested = self._rng.choice(wanted)
        await self._track(
            "publish",
            result,
            self._gateway.publish_offer(player_id, instance.instance_id, requested),
        )

    async def _accept(self, player_id: str, result: SimulationResult) -> None:
        page = await self._gateway.list_market(player_id, MarketFilter(limit=20))
        if not page.ok or not page.value.items:
            return
        tradeable = await self._app.inventory_service.list_tradeable(player_id)
        by_card: dict[str, str] = {}
        for instance in tradeable:
            by_card.setdefault(instance.card_id, instance.instance_id)
        candidates = [item for item in page.value.items if item.requested.card_id in by_card]
        if not candidates:
            return
        offer = self._rng.choice(candidates)
        await self._track(
            "accept",
            result,
            self._gateway.accept_offer(player_id, offer.offer_id, by_card[offer.requested.card_id]),
        )

    async def _cancel(self, player_id: str, result: SimulationResult) -> None:
        mine = await self._gateway.list_my_offers(player_id)
        if not mine.ok or not mine.value:
            return
        offer = self._rng.choice(mine.value)
        await self._track("cancel", result, self._gateway.cancel_offer(player_id, offer.offer_id))

    async def _track(
        self, operation: str, result: SimulationResult, call: Awaitable[SwapResult[Any]]
    ) -> None:
        result.record(operation, await call)
