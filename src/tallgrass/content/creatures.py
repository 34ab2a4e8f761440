from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

CREATURE_CATALOG_SCHEMA_VERSION = 1
DEFAULT_CREATURE_CATALOG_PATH = "content/creatures/wild_creatures.json"
STAT_FIELDS = ("hp", "attack", "defense", "special_attack", "special_defense", "speed")


@dataclass(frozen=True)
class CreatureStats:
    name: str
    type1: str
    hp: int
    attack: int
    defense: int
    special_attack: int
    special_defense: int
    speed: int
    type2: str | None = None
    level: int = 1

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise ValueError("creature.name must be a non-empty string")
        if not isinstance(self.type1, str) or not self.type1:
            raise ValueError(f"creature {self.name}: type1 must be a non-empty string")
        if self.type2 is not None and (not isinstance(self.type2, str) or not self.type2):
            raise ValueError(f"creature {self.name}: type2 must be a non-empty string when present")
        for stat in STAT_FIELDS:
            value = getattr(self, stat)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"creature {self.name}: {stat} must be an integer >= 0")
        if self.hp <= 0:
            raise ValueError(f"creature {self.name}: hp must be > 0")
        if isinstance(self.level, bool) or not isinstance(self.level, int) or self.level < 1:
            raise ValueError(f"creature {self.name}: level must be an integer >= 1")

    @property
    def types(self) -> tuple[str, ...]:
        if self.type2 is None:
            return (self.type1,)
        return (self.type1, self.type2)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type1": self.type1,
            "type2": self.type2,
            "level": self.level,
            "hp": self.hp,
            "attack": self.attack,
            "defense": self.defense,
            "special_attack": self.special_attack,
            "special_defense": self.special_defense,
            "speed": self.speed,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "CreatureStats":
        if not isinstance(payload, dict):
            raise ValueError("creature payload must be an object")
        missing = [key for key in ("name", "type1", *STAT_FIELDS) if key not in payload]
        if missing:
            raise ValueError(f"creature payload missing field(s): {', '.join(missing)}")
        return cls(
            name=payload["name"],
            type1=payload["type1"],
            type2=payload.get("type2"),
            level=payload.get("level", 1),
            hp=payload["hp"],
            attack=payload["attack"],
            defense=payload["defense"],
            special_attack=payload["special_attack"],
            special_defense=payload["special_defense"],
            speed=payload["speed"],
        )


# Stand-in party used when the owned-creature store cannot be read at all.
FALLBACK_PARTY: tuple[CreatureStats, ...] = (
    CreatureStats(
        name="Sproutling",
        type1="grass",
        type2="poison",
        level=5,
        hp=45,
        attack=49,
        defense=49,
        special_attack=65,
        special_defense=65,
        speed=45,
    ),
    CreatureStats(
        name="Cindercub",
        type1="fire",
        level=5,
        hp=39,
        attack=52,
        defense=43,
        special_attack=60,
        special_defense=50,
        speed=65,
    ),
)

# Borrowed combatant for players without any owned creature.
GUEST_CREATURE = CreatureStats(
    name="Rental Pup",
    type1="normal",
    level=5,
    hp=40,
    attack=50,
    defense=40,
    special_attack=40,
    special_defense=40,
    speed=50,
)


@dataclass(frozen=True)
class CreatureCatalog:
    schema_version: int
    catalog_id: str
    creatures: tuple[CreatureStats, ...]

    def by_name(self) -> dict[str, CreatureStats]:
        return {creature.name: creature for creature in self.creatures}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "CreatureCatalog":
        validate_creature_catalog_payload(payload)
        return cls(
            schema_version=int(payload["schema_version"]),
            catalog_id=payload["catalog_id"],
            creatures=tuple(CreatureStats.from_dict(row) for row in payload["creatures"]),
        )


def validate_creature_catalog_payload(payload: dict[str, Any]) -> None:
    if not isinstance(payload, dict):
        raise ValueError("creature catalog payload must be an object")

    schema_version = payload.get("schema_version")
    if not isinstance(schema_version, int):
        raise ValueError("creature catalog must contain integer field: schema_version")
    if schema_version != CREATURE_CATALOG_SCHEMA_VERSION:
        raise ValueError(f"unsupported creature catalog schema_version: {schema_version}")

    catalog_id = payload.get("catalog_id")
    if not isinstance(catalog_id, str) or not catalog_id:
        raise ValueError("creature catalog must contain non-empty string field: catalog_id")

    creatures = payload.get("creatures")
    if not isinstance(creatures, list) or not creatures:
        raise ValueError("creature catalog must contain non-empty list field: creatures")

    seen_names: set[str] = set()
    for index, row in enumerate(creatures):
        if not isinstance(row, dict):
            raise ValueError(f"creatures[{index}] must be an object")
        name = row.get("name")
        if not isinstance(name, str) or not name:
            raise ValueError(f"creatures[{index}] must contain non-empty string field: name")
        if name in seen_names:
            raise ValueError(f"duplicate creature name: {name}")
        seen_names.add(name)
        for stat in STAT_FIELDS:
            value = row.get(stat)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"creatures[{index}] must contain integer field: {stat}")


def load_creature_catalog_json(path: str | Path) -> CreatureCatalog:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    return CreatureCatalog.from_payload(payload)
