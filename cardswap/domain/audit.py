"""Append-only log of completed trades."""

from __future__ import annotations

from typing import Sequence

from .exceptions import storage_errors
from ..storage.base import TradeRecord, TradeRecordStore


class TradeLog:
    def __init__(self, store: TradeRecordStore) -> None:
        self._store = store

    async def append(self, record: TradeRecord) -> bool:
        """Write ``record``; returns False if the offer was already logged."""
        with storage_errors("trade_log.append"):
            return await self._store.append(record)

    async def get(self, offer_id: str) -> TradeRecord | None:
        with storage_errors("trade_log.get"):
            return await self._store.get(offer_id)

    async def history(self, player_id: str, limit: int = 50) -> Sequence[TradeRecord]:
        with storage_errors("trade_log.history"):
            return await self._store.list_for_player(player_id, limit=limit)
