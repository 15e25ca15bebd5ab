"""Caller-facing swap operations returning tagged results."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Generic, Sequence, TypeVar

from .app import SwapApp
from .domain.exceptions import CardSwapError, ErrorKind
from .domain.identity import IdentityProvider, TrustedIdentityProvider
from .domain.market import MarketFilter, MarketPage, OfferSummary
from .storage.base import CardInstanceRecord, TradeRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class AcceptedTrade:
    offer_id: str
    received_instance_id: str


@dataclass(slots=True)
class SwapResult(Generic[T]):
    value: T | None = None
    error: ErrorKind | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise RuntimeError(f"{self.error.value}: {self.message}")
        return self.value  # type: ignore[return-value]


class SwapGateway:
    """Resolve the caller, run the operation and tag any domain failure."""

    def __init__(self, app: SwapApp, identity: IdentityProvider | None = None) -> None:
        self._app = app
        self._identity = identity or TrustedIdentityProvider()

    async def publish_offer(
        self, session: Any, offered_instance_id: str, requested_card_id: str
    ) -> SwapResult[str]:
        async def action(player_id: str) -> str:
            offer = await self._app.executor.publish(player_id, offered_instance_id, requested_card_id)
            return offer.offer_id

        return await self._call("publish_offer", session, action)

    async def cancel_offer(self, session: Any, offer_id: str) -> SwapResult[None]:
        async def action(player_id: str) -> None:
            await self._app.executor.cancel(player_id, offer_id)

        return await self._call("cancel_offer", session, action)

    async def accept_offer(
        self, session: Any, offer_id: str, paying_instance_id: str
    ) -> SwapResult[AcceptedTrade]:
        async def action(player_id: str) -> AcceptedTrade:
            receipt = await self._app.executor.accept(player_id, offer_id, paying_instance_id)
            return AcceptedTrade(
                offer_id=receipt.offer_id,
                received_instance_id=receipt.received_instance_id,
            )

        return await self._call("accept_offer", session, action)

    async def list_market(
        self,
        session: Any,
        market_filter: MarketFilter | None = None,
        cursor: str | None = None,
    ) -> SwapResult[MarketPage]:
        market_filter = market_filter or MarketFilter()
        if cursor is not None:
            market_filter = replace(market_filter, cursor=cursor)

        async def action(player_id: str) -> MarketPage:
            return await self._app.market.browse(player_id, market_filter)

        return await self._call("list_market", session, action)

    async def list_my_offers(self, session: Any) -> SwapResult[list[OfferSummary]]:
        return await self._call("list_my_offers", session, self._app.market.mine)

    async def my_instances(self, session: Any) -> SwapResult[Sequence[CardInstanceRecord]]:
        return await self._call(
            "my_instances", session, self._app.inventory_service.list_player_instances
        )

    async def payment_options(
        self, session: Any, offer_id: str
    ) -> SwapResult[list[CardInstanceRecord]]:
        """Free instances the caller could pay with for ``offer_id``."""

        async def action(player_id: str) -> list[CardInstanceRecord]:
            offer = await self._app.offers.get_offer(offer_id)
            return await self._app.inventory_service.list_tradeable(
                player_id, offer.requested_card_id
            )

        return await self._call("payment_options", session, action)

    async def trade_history(self, session: Any, limit: int = 20) -> SwapResult[Sequence[TradeRecord]]:
        async def action(player_id: str) -> Sequence[TradeRecord]:
            return await self._app.trade_log.history(player_id, limit=limit)

        return await self._call("trade_history", session, action)

    async def _call(
        self,
        operation: str,
        session: Any,
        action: Callable[[str], Awaitable[T]],
    ) -> SwapResult[T]:
        try:
            player_id = self._identity.resolve(session)
            value = await action(player_id)
        except CardSwapError as exc:
            if exc.kind.fatal:
                logger.error("%s failed with %s: %s %s", operation, exc.kind.value, exc, exc.context)
            else:
                logger.debug("%s rejected with %s: %s", operation, exc.kind.value, exc)
            return SwapResult(error=exc.kind, message=str(exc))
        return SwapResult(value=value)


__all__ = ["AcceptedTrade", "SwapGateway", "SwapResult"]
