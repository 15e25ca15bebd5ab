"""Admin command wiring for aiogram."""

from __future__ import annotations

from typing import Sequence

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message

from ..app import SwapApp
from ..domain.exceptions import CardSwapError
from ..domain.reconciliation import ReconciliationReport
from ..storage.base import ReconciliationEvent
from ..telegram.filters import AdminFilter
from .service import AdminService


def build_admin_router(app: SwapApp) -> Router:
    router = Router()
    router.message.filter(AdminFilter(app.config))
    service = app_admin_service(app)
    commands = app.config.admin.commands

    @router.message(Command(commands.reconcile))
    async def handle_reconcile(message: Message) -> None:
        parts = message.text.split(maxsplit=2)
        if len(parts) >= 3:
            resolved = await service.resolve_event(parts[1], parts[2])
            await message.answer(
                f"Событие {parts[1]} закрыто." if resolved else f"Событие {parts[1]} не найдено."
            )
            return
        try:
            report, events = await service.reconcile()
        except CardSwapError as exc:
            await message.answer(f"Сверка не выполнена: {exc}")
            return
        await message.answer(format_reconciliation_message(report, events))

    @router.message(Command(commands.mint))
    async def handle_mint(message: Message) -> None:
        parts = message.text.split()
        if len(parts) < 3:
            await message.answer(f"Использование: /{commands.mint} <user_id> <card_id> [уровень]")
            return
        target = parts[1]
        card_id = parts[2]
        level = int(parts[3]) if len(parts) > 3 else 1
        try:
            record = await service.mint_card(
                target, card_id, level=level, actor=str(message.from_user.id)
            )
        except CardSwapError as exc:
            await message.answer(f"Не удалось выдать карту: {exc}")
            return
        await message.answer(f"Выдан {card_id} [{record.instance_id}] пользователю {target}.")

    return router


def format_reconciliation_message(
    report: ReconciliationReport, events: Sequence[ReconciliationEvent]
) -> str:
    lines = ["🛠️ Сверка завершена."]
    if report.clean:
        lines.append("Блокировки в порядке.")
    else:
        lines.append(f"Восстановлено блокировок: {len(report.relocked)}")
        lines.append(f"Снято лишних блокировок: {len(report.released)}")
        lines.append(f"Отменено предложений: {len(report.cancelled_offers)}")
    if events:
        lines.append("")
        lines.append(f"Открытые события ({len(events)}):")
        for event in events:
            lines.append(f"• {event.event_id} {event.kind} offer={event.offer_id}")
    return "\n".join(lines)


def app_admin_service(app: SwapApp) -> AdminService:
    return AdminService(
        inventory=app.inventory_service,
        reconciler=app.reconciler,
        activity_log=app.activity_log,
        event_bus=app.event_bus,
    )
