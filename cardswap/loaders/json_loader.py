"""Load master cards and seed instances from JSON definitions."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Sequence, TYPE_CHECKING

from ..domain.cards import MasterCard, Rarity

if TYPE_CHECKING:
    from ..app import SwapApp


@dataclass(slots=True)
class SeedInstance:
    owner: str
    card: str
    level: int = 1
    id: str | None = None


@dataclass(slots=True)
class CatalogDefinition:
    cards: Sequence[MasterCard]
    instances: Sequence[SeedInstance]


def load_catalog_from_json(app: "SwapApp", path: str | Path) -> CatalogDefinition:
    """Load master cards from a JSON file and register them on the app.

    Seed instances are parsed but not minted; call :func:`seed_from_definition`
    once the storage backend is initialised.
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    definition = parse_catalog_dict(data)
    for card in definition.cards:
        app.cards.catalog.register_card(card)
    return definition


async def seed_from_definition(app: "SwapApp", definition: CatalogDefinition) -> int:
    minted = await app.seed_instances(
        {"owner": seed.owner, "card": seed.card, "level": seed.level, "id": seed.id}
        for seed in definition.instances
    )
    return len(minted)


def parse_catalog_dict(data: dict[str, Any]) -> CatalogDefinition:
    """Parse a JSON dict (already decoded) into domain objects."""
    errors = validate_catalog_dict(data)
    if errors:
        raise ValueError(_format_errors("Catalog validation failed", errors))
    cards = tuple(parse_card(entry) for entry in data.get("cards", []))
    instances = tuple(parse_instance(entry) for entry in data.get("instances", []))
    return CatalogDefinition(cards=cards, instances=instances)


def parse_card(entry: dict[str, Any]) -> MasterCard:
    image_data = entry.get("image", {})
    return MasterCard(
        card_id=entry["id"],
        name=entry["name"],
        description=entry.get("description", ""),
        rarity=Rarity(entry.get("rarity", Rarity.COMMON.value)),
        image_url=image_data.get("url"),
        power_score=int(entry.get("power", 1)),
        tags=tuple(map(str, entry.get("tags", []))),
    )


def parse_instance(entry: dict[str, Any]) -> SeedInstance:
    return SeedInstance(
        owner=str(entry["owner"]),
        card=entry["card"],
        level=int(entry.get("level", 1)),
        id=entry.get("id"),
    )


def validate_catalog_file(path: str | Path) -> list[str]:
    """Validate catalog JSON file and return a list of errors."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return validate_catalog_dict(data)


def validate_catalog_dict(data: dict[str, Any]) -> list[str]:
    errors: list[str] = []

    cards_raw = data.get("cards")
    card_ids: set[str] = set()
    if not isinstance(cards_raw, list) or not cards_raw:
        errors.append("Catalog must contain non-empty 'cards' array.")
    else:
        for idx, entry in enumerate(cards_raw, start=1):
            if not isinstance(entry, dict):
                errors.append(f"Card #{idx} must be an object.")
                continue
            card_id = entry.get("id")
            if not isinstance(card_id, str) or not card_id.strip():
                errors.append(f"Card #{idx} must define non-empty 'id'.")
                continue
            if card_id in card_ids:
                errors.append(f"Card id '{card_id}' defined multiple times.")
            card_ids.add(card_id)

            name = entry.get("name")
            if not isinstance(name, str) or not name.strip():
                errors.append(f"Card '{card_id}' must define non-empty 'name'.")

            rarity_value = entry.get("rarity", Rarity.COMMON.value)
            try:
                Rarity(rarity_value)
            except ValueError:
                errors.append(f"Card '{card_id}' has invalid rarity '{rarity_value}'.")

            power = entry.get("power")
            if power is not None and (not isinstance(power, int) or power <= 0):
                errors.append(f"Card '{card_id}' has invalid 'power' value '{power}'.")

            image_data = entry.get("image")
            if image_data is not None:
                if not isinstance(image_data, dict):
                    errors.append(f"Card '{card_id}' image must be an object.")
                else:
                    image_url = image_data.get("url")
                    if not isinstance(image_url, str) or not image_url.strip():
                        errors.append(f"Card '{card_id}' image.url must be a non-empty string.")

    instances_raw = data.get("instances", [])
    if not isinstance(instances_raw, list):
        errors.append("Catalog 'instances' must be an array.")
        return errors

    instance_ids: set[str] = set()
    for idx, entry in enumerate(instances_raw, start=1):
        if not isinstance(entry, dict):
            errors.append(f"Instance #{idx} must be an object.")
            continue
        owner = entry.get("owner")
        if owner is None or not str(owner).strip():
            errors.append(f"Instance #{idx} must define 'owner'.")
        card_id = entry.get("card")
        if not isinstance(card_id, str) or not card_id.strip():
            errors.append(f"Instance #{idx} must define non-empty 'card'.")
        elif card_ids and card_id not in card_ids:
            errors.append(f"Instance #{idx} references unknown card '{card_id}'.")
        level = entry.get("level", 1)
        if not isinstance(level, int) or level <= 0:
            errors.append(f"Instance #{idx} has invalid 'level' value '{level}'.")
        instance_id = entry.get("id")
        if instance_id is not None:
            if not isinstance(instance_id, str) or not instance_id.strip():
                errors.append(f"Instance #{idx} 'id' must be a non-empty string.")
            elif instance_id in instance_ids:
                errors.append(f"Instance id '{instance_id}' defined multiple times.")
            else:
                instance_ids.add(instance_id)

    return errors


def _format_errors(prefix: str, errors: Iterable[str]) -> str:
    formatted = "\n".join(f"- {err}" for err in errors)
    return f"{prefix}:\n{formatted}"
