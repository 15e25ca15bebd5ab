"""Validation utilities for CardSwap applications."""

from __future__ import annotations

from .app import SwapApp


def validate_app(app: SwapApp) -> list[str]:
    """Return list of validation errors discovered in configured app."""
    errors: list[str] = []

    cards = list(app.cards.catalog.iter_cards())
    if len(cards) < 2:
        errors.append("At least two master cards are required for swaps.")

    names: dict[str, str] = {}
    for card in cards:
        if not card.name.strip():
            errors.append(f"Card '{card.card_id}' has an empty name.")
        elif card.name in names:
            errors.append(
                f"Cards '{names[card.name]}' and '{card.card_id}' share the name '{card.name}'."
            )
        else:
            names[card.name] = card.card_id
        if card.power_score <= 0:
            errors.append(f"Card '{card.card_id}' has non-positive power '{card.power_score}'.")
        if card.image_url is not None and not card.image_url.strip():
            errors.append(f"Card '{card.card_id}' has an empty image url.")

    market = app.config.market
    if market.max_limit <= 0:
        errors.append("Market configuration 'max_limit' must be positive.")
    if not 0 < market.default_limit <= market.max_limit:
        errors.append("Market configuration 'default_limit' must be between 1 and 'max_limit'.")

    executor = app.config.executor
    if executor.deadline_seconds < 0:
        errors.append("Executor configuration 'deadline_seconds' cannot be negative.")
    if executor.step_retries < 0:
        errors.append("Executor configuration 'step_retries' cannot be negative.")
    if executor.retry_delay_seconds < 0:
        errors.append("Executor configuration 'retry_delay_seconds' cannot be negative.")
    if executor.deadline_seconds and executor.retry_delay_seconds * executor.step_retries >= executor.deadline_seconds:
        errors.append("Executor retries cannot finish within 'deadline_seconds'.")

    return errors


__all__ = ["validate_app"]
