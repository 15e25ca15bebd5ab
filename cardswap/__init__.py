"""CardSwap player-to-player card exchange."""

from .app import SwapApp
from .config import CardSwapConfig
from .gateway import AcceptedTrade, SwapGateway, SwapResult
from .registry import CardRegistry

__all__ = [
    "AcceptedTrade",
    "CardRegistry",
    "CardSwapConfig",
    "SwapApp",
    "SwapGateway",
    "SwapResult",
]
