"""Pytest fixtures for CardSwap."""

from __future__ import annotations

import pytest

from ..app import SwapApp
from ..config import CardSwapConfig


@pytest.fixture()
def memory_app() -> SwapApp:
    config = CardSwapConfig(bot_token="test", storage=CardSwapConfig().storage)
    return SwapApp(config)


def app_fixture(bot_token: str = "test", **kwargs) -> SwapApp:
    """Helper for ad-hoc tests where pytest is not available."""
    config = CardSwapConfig(bot_token=bot_token, **kwargs)
    return SwapApp(config)
