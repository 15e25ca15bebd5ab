"""Resolve callers to player identifiers."""

from __future__ import annotations

from typing import Any, Mapping, Protocol

from .exceptions import Unauthenticated


class IdentityProvider(Protocol):
    def resolve(self, session: Any) -> str:
        """Return the player id bound to ``session`` or raise Unauthenticated."""
        ...


class TrustedIdentityProvider:
    """Treat the session itself as the player id.

    Suitable when the transport already authenticated the user, e.g. the
    Telegram user id delivered with each update.
    """

    def resolve(self, session: Any) -> str:
        if session is None:
            raise Unauthenticated("No session")
        player_id = str(session).strip()
        if not player_id:
            raise Unauthenticated("Empty session")
        return player_id


class StaticIdentityProvider:
    """Look sessions up in a fixed token table."""

    def __init__(self, sessions: Mapping[str, str]) -> None:
        self._sessions = dict(sessions)

    def bind(self, token: str, player_id: str) -> None:
        self._sessions[token] = player_id

    def revoke(self, token: str) -> None:
        self._sessions.pop(token, None)

    def resolve(self, session: Any) -> str:
        try:
            return self._sessions[session]
        except (KeyError, TypeError) as exc:
            raise Unauthenticated("Unknown session") from exc
