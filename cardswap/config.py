"""Configuration models for CardSwap."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Literal


StorageBackend = Literal["memory", "sqlalchemy"]

_TRUTHY = {"1", "true", "yes"}


@dataclass(slots=True)
class StorageConfig:
    """Configure where offers, instances and trade records live."""

    backend: StorageBackend = "memory"
    dsn: str | None = None
    echo_sql: bool = False

    def resolve_dsn(self) -> str | None:
        if self.dsn:
            return self.dsn
        if self.backend == "sqlalchemy":
            return "sqlite+aiosqlite:///./cardswap.db"
        return None


@dataclass(slots=True)
class MarketConfig:
    """Paging rules for the market view."""

    default_limit: int = 50
    max_limit: int = 200

    def clamp(self, limit: int | None) -> int:
        if limit is None:
            return self.default_limit
        return max(1, min(int(limit), self.max_limit))


@dataclass(slots=True)
class ExecutorConfig:
    """Deadlines and retries for the trade executor."""

    deadline_seconds: float = 10.0
    step_retries: int = 1
    retry_delay_seconds: float = 0.0


@dataclass(slots=True)
class AdminCommandConfig:
    """Allows renaming admin bot commands."""

    reconcile: str = "reconcile"
    mint: str = "mint"


@dataclass(slots=True)
class AdminConfig:
    """Feature switches for admin tooling."""

    admin_ids: set[int] = field(default_factory=set)
    enable_activity_log: bool = True
    commands: AdminCommandConfig = field(default_factory=AdminCommandConfig)


@dataclass(slots=True)
class CardSwapConfig:
    """Top-level configuration container."""

    bot_token: str = ""
    storage: StorageConfig = field(default_factory=StorageConfig)
    market: MarketConfig = field(default_factory=MarketConfig)
    executor: ExecutorConfig = field(default_factory=ExecutorConfig)
    admin: AdminConfig = field(default_factory=AdminConfig)

    @classmethod
    def from_env(cls) -> "CardSwapConfig":
        """Create config from environment variables prefixed with CARDSWAP_."""
        prefix = "CARDSWAP_"
        storage_backend = os.getenv(f"{prefix}STORAGE_BACKEND", "memory")
        if storage_backend not in ("memory", "sqlalchemy"):
            raise ValueError(f"Unsupported {prefix}STORAGE_BACKEND '{storage_backend}'")

        admin_ids = {
            int(_id.strip())
            for _id in os.getenv(f"{prefix}ADMIN_IDS", "").split(",")
            if _id.strip()
        }

        market = MarketConfig(
            default_limit=_int_env(f"{prefix}MARKET_DEFAULT_LIMIT", 50),
            max_limit=_int_env(f"{prefix}MARKET_MAX_LIMIT", 200),
        )
        executor = ExecutorConfig(
            deadline_seconds=_float_env(f"{prefix}EXECUTOR_DEADLINE", 10.0),
            step_retries=_int_env(f"{prefix}EXECUTOR_STEP_RETRIES", 1),
            retry_delay_seconds=_float_env(f"{prefix}EXECUTOR_RETRY_DELAY", 0.0),
        )
        admin = AdminConfig(
            admin_ids=admin_ids,
            enable_activity_log=os.getenv(f"{prefix}ADMIN_ENABLE_ACTIVITY_LOG", "true").lower()
            in _TRUTHY,
            commands=AdminCommandConfig(
                reconcile=os.getenv(f"{prefix}ADMIN_CMD_RECONCILE", "reconcile") or "reconcile",
                mint=os.getenv(f"{prefix}ADMIN_CMD_MINT", "mint") or "mint",
            ),
        )

        return cls(
            bot_token=os.getenv(f"{prefix}BOT_TOKEN", ""),
            storage=StorageConfig(
                backend=storage_backend,
                dsn=os.getenv(f"{prefix}STORAGE_DSN"),
                echo_sql=os.getenv(f"{prefix}STORAGE_ECHO_SQL", "false").lower() in _TRUTHY,
            ),
            market=market,
            executor=executor,
            admin=admin,
        )


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got '{raw}'") from exc


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got '{raw}'") from exc
