"""Command line helpers for CardSwap."""

from __future__ import annotations

import argparse
import asyncio
import importlib
import sys
from pathlib import Path
from random import Random

from rich.console import Console

from .app import SwapApp
from .config import CardSwapConfig
from .diagnostics.checklist import run_checklist as checklist_run
from .diagnostics.market_simulator import MarketSimulator
from .loaders import load_catalog_from_json, seed_from_definition, validate_catalog_file
from .validators import validate_app

console = Console()


def run_simulator() -> None:
    parser = argparse.ArgumentParser(description="CardSwap market simulator")
    _add_source_arguments(parser)
    parser.add_argument("--players", type=int, default=6, help="Количество игроков")
    parser.add_argument("--rounds", type=int, default=20, help="Количество раундов")
    parser.add_argument("--seed", type=int, default=None, help="Seed генератора")
    args = parser.parse_args()

    async def _run() -> int:
        app = await _build_app(args, seed=False)
        try:
            simulator = MarketSimulator(app, rng=Random(args.seed))
            result = await simulator.simulate(players=args.players, rounds=args.rounds)
        finally:
            await app.close()
        console.print(f"Симулировано {result.rounds} раундов, обменов: {result.trades}.")
        for outcome, count in sorted(result.outcomes.items()):
            console.print(f"  {outcome}: {count}")
        if result.issues:
            for issue in result.issues:
                console.print(f"[red][{issue.severity.upper()}][/red] {issue.message}")
            return 1
        console.print("[bold green]Инварианты соблюдены ✅[/bold green]")
        return 0

    sys.exit(asyncio.run(_run()))


def run_checklist() -> None:
    parser = argparse.ArgumentParser(description="CardSwap invariant checks")
    _add_source_arguments(parser)
    args = parser.parse_args()

    async def _run() -> int:
        app = await _build_app(args, seed=True)
        try:
            issues = await checklist_run(app)
        finally:
            await app.close()
        if not issues:
            console.print("Проблем не обнаружено ✅")
            return 0
        for issue in issues:
            console.print(f"[{issue.severity.upper()}] {issue.message}", markup=False)
        return 1

    sys.exit(asyncio.run(_run()))


def run_validate() -> None:
    parser = argparse.ArgumentParser(description="CardSwap validator")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument(
        "--catalog",
        help="Path to catalog JSON file for validation",
    )
    group.add_argument(
        "--module",
        help="Python module with register(app) function to validate",
    )
    args = parser.parse_args()

    if args.catalog:
        errors = validate_catalog_file(Path(args.catalog))
        if errors:
            console.print("Ошибки каталога:")
            for err in errors:
                console.print(f"- {err}", markup=False)
            sys.exit(1)
        console.print("Каталог валиден ✅")
        return

    config = CardSwapConfig.from_env()
    app = SwapApp(config)
    _load_module(args.module, app)
    issues = validate_app(app)
    if issues:
        console.print("Обнаружены ошибки конфигурации:")
        for issue in issues:
            console.print(f"- {issue}", markup=False)
        sys.exit(1)
    console.print("Конфигурация валидна ✅")


def _add_source_arguments(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--catalog", help="Path to catalog JSON file")
    group.add_argument("--module", help="Python module with register(app) function")


async def _build_app(args: argparse.Namespace, *, seed: bool) -> SwapApp:
    app = SwapApp(CardSwapConfig.from_env())
    await app.init_backend()
    if args.catalog:
        definition = load_catalog_from_json(app, Path(args.catalog))
        if seed and app.config.storage.backend == "memory":
            await seed_from_definition(app, definition)
    else:
        _load_module(args.module, app)
    return app


def _load_module(path: str, app: SwapApp) -> None:
    cwd = str(Path.cwd())
    if cwd not in sys.path:
        sys.path.insert(0, cwd)
    module = importlib.import_module(path)
    if hasattr(module, "register"):
        module.register(app)
    else:
        raise RuntimeError(f"Модуль {path} не содержит функцию register(app).")
