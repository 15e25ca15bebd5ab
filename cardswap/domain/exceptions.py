"""Exceptions raised by CardSwap domain services."""

from __future__ import annotations

from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterator, Mapping

from ..storage.base import ConstraintViolation, StorageFailure


class ErrorKind(str, Enum):
    """Stable error kinds surfaced to callers."""

    UNAUTHENTICATED = "Unauthenticated"
    NOT_OWNER = "NotOwner"
    NOT_ELIGIBLE = "NotEligible"
    INVALID_CARD = "InvalidCard"
    SAME_KIND_FORBIDDEN = "SameKindForbidden"
    INVALID_REQUEST = "InvalidRequest"
    NOT_FOUND = "NotFound"
    ALREADY_LOCKED = "AlreadyLocked"
    NO_LONGER_ACTIVE = "NoLongerActive"
    STORAGE_UNAVAILABLE = "StorageUnavailable"
    TIMEOUT = "Timeout"
    TRADE_INCOMPLETE = "TradeIncomplete"
    NEEDS_RECONCILIATION = "NeedsReconciliation"

    @property
    def user_correctable(self) -> bool:
        return self in _USER_CORRECTABLE

    @property
    def race_outcome(self) -> bool:
        return self in (ErrorKind.ALREADY_LOCKED, ErrorKind.NO_LONGER_ACTIVE)

    @property
    def retryable(self) -> bool:
        return self in (ErrorKind.STORAGE_UNAVAILABLE, ErrorKind.TIMEOUT)

    @property
    def fatal(self) -> bool:
        return self in (ErrorKind.TRADE_INCOMPLETE, ErrorKind.NEEDS_RECONCILIATION)


_USER_CORRECTABLE = frozenset(
    {
        ErrorKind.UNAUTHENTICATED,
        ErrorKind.NOT_OWNER,
        ErrorKind.NOT_ELIGIBLE,
        ErrorKind.INVALID_CARD,
        ErrorKind.SAME_KIND_FORBIDDEN,
        ErrorKind.INVALID_REQUEST,
        ErrorKind.NOT_FOUND,
    }
)


class CardSwapError(RuntimeError):
    """Base class for domain exceptions."""

    kind: ErrorKind = ErrorKind.STORAGE_UNAVAILABLE

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message or self.kind.value)
        self.context = dict(context or {})


class Unauthenticated(CardSwapError):
    """Raised when a session cannot be resolved to a player."""

    kind = ErrorKind.UNAUTHENTICATED


class NotEligible(CardSwapError):
    """Raised when a player or instance does not satisfy trade preconditions."""

    kind = ErrorKind.NOT_ELIGIBLE


class NotOwner(NotEligible):
    """Raised when the acting player does not own the instance or offer."""

    kind = ErrorKind.NOT_OWNER


class InvalidCard(CardSwapError):
    """Raised when a card or instance reference is unknown or inconsistent."""

    kind = ErrorKind.INVALID_CARD


class SameKindForbidden(CardSwapError):
    """Raised when an offer asks for the same master card it gives."""

    kind = ErrorKind.SAME_KIND_FORBIDDEN


class InvalidRequest(CardSwapError):
    """Raised for malformed caller input such as a tampered cursor."""

    kind = ErrorKind.INVALID_REQUEST


class NotFound(CardSwapError):
    kind = ErrorKind.NOT_FOUND


class OfferNotFound(NotFound):
    pass


class InstanceNotFound(NotFound):
    pass


class AlreadyLocked(CardSwapError):
    """Raised when an instance is already reserved by an offer."""

    kind = ErrorKind.ALREADY_LOCKED


class NoLongerActive(CardSwapError):
    """Raised when an offer left the Active state before the caller could act."""

    kind = ErrorKind.NO_LONGER_ACTIVE


class StorageUnavailable(CardSwapError):
    """Transient storage failure; no partial state was left behind."""

    kind = ErrorKind.STORAGE_UNAVAILABLE


class DeadlineExceeded(CardSwapError):
    """Raised when an operation ran out of time; issued writes were compensated."""

    kind = ErrorKind.TIMEOUT


class TradeIncomplete(CardSwapError):
    """Raised when a trade could neither finish nor be rolled back."""

    kind = ErrorKind.TRADE_INCOMPLETE


class NeedsReconciliation(CardSwapError):
    """Raised when state may be inconsistent and an operator must step in."""

    kind = ErrorKind.NEEDS_RECONCILIATION


@contextmanager
def storage_errors(action: str) -> Iterator[None]:
    """Translate backend failures into domain errors."""
    try:
        yield
    except ConstraintViolation as exc:
        raise AlreadyLocked(f"{action}: {exc}") from exc
    except StorageFailure as exc:
        raise StorageUnavailable(f"{action}: {exc}") from exc
