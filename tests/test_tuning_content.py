import json
from pathlib import Path

import pytest

from tallgrass.content.creatures import (
    DEFAULT_CREATURE_CATALOG_PATH,
    CreatureStats,
    load_creature_catalog_json,
    validate_creature_catalog_payload,
)
from tallgrass.content.tuning import DEFAULT_TUNING_PATH, SimulationTuning, load_tuning_json


def _write(path: Path, payload: object) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_default_tuning_file_matches_builtin_defaults() -> None:
    assert load_tuning_json(Path(DEFAULT_TUNING_PATH)) == SimulationTuning()


def test_tuning_defaults() -> None:
    tuning = SimulationTuning()

    assert tuning.tick_seconds == pytest.approx(1 / 60)
    assert tuning.tile_size == 60
    assert tuning.encounter_probability == 0.1
    assert tuning.catch_threshold == 0.3


def test_unknown_tuning_field_is_rejected(tmp_path: Path) -> None:
    path = _write(tmp_path / "tuning.json", {"schema_version": 1, "tuning": {"warp_speed": 9}})

    with pytest.raises(ValueError, match="unknown tuning field"):
        load_tuning_json(path)


def test_partial_tuning_file_keeps_other_defaults(tmp_path: Path) -> None:
    path = _write(tmp_path / "tuning.json", {"schema_version": 1, "tuning": {"encounter_probability": 0.5}})

    tuning = load_tuning_json(path)

    assert tuning.encounter_probability == 0.5
    assert tuning.base_speed == 4.0


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"tuning": {}},
        {"schema_version": 9, "tuning": {}},
        {"schema_version": 1, "tuning": []},
    ],
)
def test_malformed_tuning_files_are_rejected(tmp_path: Path, payload: object) -> None:
    path = _write(tmp_path / "tuning.json", payload)

    with pytest.raises(ValueError):
        load_tuning_json(path)


@pytest.mark.parametrize(
    "overrides",
    [
        {"base_speed": 0},
        {"fade_duration": -1.0},
        {"encounter_probability": 1.5},
        {"catch_threshold": True},
        {"tile_size": 60.5},
    ],
)
def test_out_of_range_tuning_values_are_rejected(overrides: dict) -> None:
    with pytest.raises(ValueError):
        SimulationTuning(**overrides)


def test_default_creature_catalog_loads() -> None:
    catalog = load_creature_catalog_json(Path(DEFAULT_CREATURE_CATALOG_PATH))

    assert catalog.catalog_id == "meadow_wilds"
    assert len(catalog.creatures) == 6
    assert catalog.by_name()["Mossnail"].types == ("grass", "bug")
    assert catalog.by_name()["Burrowbit"].types == ("normal",)


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({"catalog_id": "x", "creatures": []}, "schema_version"),
        ({"schema_version": 1, "catalog_id": "", "creatures": []}, "catalog_id"),
        ({"schema_version": 1, "catalog_id": "x", "creatures": []}, "non-empty list"),
        (
            {
                "schema_version": 1,
                "catalog_id": "x",
                "creatures": [
                    {"name": "A", "hp": 1, "attack": 1, "defense": 1, "special_attack": 1, "special_defense": 1, "speed": 1},
                    {"name": "A", "hp": 1, "attack": 1, "defense": 1, "special_attack": 1, "special_defense": 1, "speed": 1},
                ],
            },
            "duplicate creature name",
        ),
        (
            {"schema_version": 1, "catalog_id": "x", "creatures": [{"name": "A", "hp": "lots"}]},
            "integer field: hp",
        ),
    ],
)
def test_creature_catalog_validation(payload: dict, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        validate_creature_catalog_payload(payload)


def test_creature_stats_validation() -> None:
    with pytest.raises(ValueError, match="hp must be > 0"):
        CreatureStats(name="Ghost", type1="normal", hp=0, attack=1, defense=1, special_attack=1, special_defense=1, speed=1)
    with pytest.raises(ValueError, match="level"):
        CreatureStats(
            name="Baby", type1="normal", hp=1, attack=1, defense=1, special_attack=1, special_defense=1, speed=1, level=0
        )
    with pytest.raises(ValueError, match="missing field"):
        CreatureStats.from_dict({"name": "Half"})
