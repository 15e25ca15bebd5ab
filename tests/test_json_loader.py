import json
from pathlib import Path

import pytest

from cardswap.app import SwapApp
from cardswap.config import CardSwapConfig
from cardswap.loaders import (
    load_catalog_from_json,
    parse_catalog_dict,
    seed_from_definition,
    validate_catalog_dict,
)


def test_parse_catalog_dict_supports_images():
    data = {
        "cards": [
            {
                "id": "wizard",
                "name": "Wizard",
                "description": "Magic master",
                "rarity": "epic",
                "power": 12,
                "image": {"url": "https://example.com/wizard.png"},
                "tags": ["magic"],
            },
            {"id": "rogue", "name": "Rogue"},
        ],
        "instances": [{"owner": 7, "card": "wizard", "level": 2, "id": "w-1"}],
    }
    definition = parse_catalog_dict(data)
    assert definition.cards[0].image_url == "https://example.com/wizard.png"
    assert definition.cards[0].tags == ("magic",)
    assert definition.cards[0].power_score == 12
    assert definition.cards[1].power_score == 1
    assert definition.instances[0].owner == "7"
    assert definition.instances[0].id == "w-1"


def test_parse_catalog_dict_invalid_rarity_raises():
    data = {"cards": [{"id": "faulty", "name": "Faulty", "rarity": "mythic"}]}
    with pytest.raises(ValueError):
        parse_catalog_dict(data)


def test_validate_catalog_dict_unknown_card_in_instances():
    data = {
        "cards": [{"id": "alpha", "name": "Alpha"}],
        "instances": [
            {"owner": "1", "card": "ghost"},
            {"owner": "1", "card": "alpha", "id": "dup"},
            {"owner": "2", "card": "alpha", "id": "dup"},
        ],
    }
    errors = validate_catalog_dict(data)
    assert any("unknown card 'ghost'" in err for err in errors)
    assert any("'dup' defined multiple times" in err for err in errors)


@pytest.mark.asyncio()
async def test_load_catalog_from_json_registers_and_seeds(tmp_path: Path):
    payload = {
        "cards": [
            {"id": "rogue", "name": "Rogue", "rarity": "uncommon", "power": 3},
            {"id": "knight", "name": "Knight", "power": 5},
        ],
        "instances": [
            {"owner": "1", "card": "rogue", "id": "r-1"},
            {"owner": "2", "card": "knight", "level": 2},
        ],
    }
    json_path = tmp_path / "catalog.json"
    json_path.write_text(json.dumps(payload), encoding="utf-8")

    app = SwapApp(CardSwapConfig(bot_token="test"))
    definition = load_catalog_from_json(app, json_path)

    card_ids = {card.card_id for card in app.cards.catalog.iter_cards()}
    assert card_ids == {"rogue", "knight"}
    assert await seed_from_definition(app, definition) == 2
    (knight,) = await app.inventory_service.list_player_instances("2")
    assert knight.power_score == 10
    assert (await app.instance_store.get("r-1")).owner_id == "1"


def test_bundled_example_catalog_is_valid():
    path = Path(__file__).resolve().parents[1] / "examples" / "catalog" / "cards.json"
    data = json.loads(path.read_text(encoding="utf-8"))
    assert validate_catalog_dict(data) == []
