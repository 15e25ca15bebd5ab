"""Invariant checks over live exchange state."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Mapping

from ..app import SwapApp


@dataclass(slots=True)
class ChecklistIssue:
    severity: str
    message: str


async def take_baseline(app: SwapApp) -> dict[str, str]:
    """Map every instance id to its master card, for later conservation checks."""
    return {record.instance_id: record.card_id for record in await app.instance_store.list_all()}


async def run_checklist(
    app: SwapApp, *, baseline: Mapping[str, str] | None = None
) -> list[ChecklistIssue]:
    issues: list[ChecklistIssue] = []
    if not list(app.cards.catalog.iter_cards()):
        issues.append(ChecklistIssue("error", "Не зарегистрировано ни одной карты."))

    instances = {record.instance_id: record for record in await app.instance_store.list_all()}
    active = await app.offer_store.list_active()

    for record in instances.values():
        if not record.owner_id:
            issues.append(ChecklistIssue("error", f"Экземпляр {record.instance_id} без владельца."))

    if baseline is not None:
        missing = sorted(set(baseline) - set(instances))
        extra = sorted(set(instances) - set(baseline))
        if missing:
            issues.append(ChecklistIssue("error", f"Пропали экземпляры: {', '.join(missing)}."))
        if extra:
            issues.append(ChecklistIssue("error", f"Появились лишние экземпляры: {', '.join(extra)}."))
        for instance_id, card_id in baseline.items():
            record = instances.get(instance_id)
            if record is not None and record.card_id != card_id:
                issues.append(
                    ChecklistIssue("error", f"Экземпляр {instance_id} сменил карту на {record.card_id}.")
                )

    per_instance = Counter(offer.offered_instance_id for offer in active)
    for instance_id, count in per_instance.items():
        if count > 1:
            issues.append(
                ChecklistIssue("error", f"Экземпляр {instance_id} выставлен в {count} активных предложениях.")
            )

    expected_locks = {offer.offered_instance_id: offer.offer_id for offer in active}
    for offer in active:
        record = instances.get(offer.offered_instance_id)
        if record is None:
            issues.append(
                ChecklistIssue("error", f"Предложение {offer.offer_id} ссылается на несуществующий экземпляр.")
            )
        elif record.owner_id != offer.maker_id:
            issues.append(
                ChecklistIssue(
                    "error",
                    f"Предложение {offer.offer_id} активно, но экземпляр принадлежит {record.owner_id}.",
                )
            )

    for record in instances.values():
        wanted = expected_locks.get(record.instance_id)
        if record.locked_by != wanted:
            issues.append(
                ChecklistIssue(
                    "error",
                    f"Блокировка экземпляра {record.instance_id} ({record.locked_by}) "
                    f"не совпадает с активным предложением ({wanted}).",
                )
            )

    open_events = await app.reconciliation_store.list_open()
    if open_events:
        issues.append(
            ChecklistIssue("warning", f"Открытых событий сверки: {len(open_events)}.")
        )

    return issues
