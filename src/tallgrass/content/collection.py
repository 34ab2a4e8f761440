from __future__ import annotations

import copy
import json
from abc import ABC, abstractmethod
from dataclasses import replace
from pathlib import Path
from typing import Any

from tallgrass.content.creatures import CreatureCatalog, CreatureStats
from tallgrass.content.io import write_atomic_json

COLLECTION_SCHEMA_VERSION = 1
DEFAULT_COLLECTION_PATH = "saves/collection.json"


class CreatureStore(ABC):
    """Owned-creature persistence boundary.

    Implementations may raise or return False; callers treat both as a soft
    failure and carry on with in-memory state.
    """

    @abstractmethod
    def load_owned_creatures(self, user_id: str) -> list[CreatureStats]:
        raise NotImplementedError

    @abstractmethod
    def save_level(self, user_id: str, creature_name: str, new_level: int) -> bool:
        raise NotImplementedError

    @abstractmethod
    def add_creature_to_collection(self, user_id: str, creature_name: str) -> bool:
        raise NotImplementedError


class InMemoryCreatureStore(CreatureStore):
    def __init__(self, catalog: CreatureCatalog, owned: dict[str, list[CreatureStats]] | None = None) -> None:
        self._catalog = catalog
        self._owned: dict[str, list[CreatureStats]] = {
            user_id: list(creatures) for user_id, creatures in (owned or {}).items()
        }

    def load_owned_creatures(self, user_id: str) -> list[CreatureStats]:
        return list(self._owned.get(user_id, []))

    def save_level(self, user_id: str, creature_name: str, new_level: int) -> bool:
        creatures = self._owned.get(user_id, [])
        index = _level_up_index([(creature.name, creature.level) for creature in creatures], creature_name, new_level)
        if index is None:
            return False
        creatures[index] = replace(creatures[index], level=new_level)
        return True

    def add_creature_to_collection(self, user_id: str, creature_name: str) -> bool:
        stats = self._catalog.by_name().get(creature_name)
        if stats is None:
            return False
        self._owned.setdefault(user_id, []).append(stats)
        return True


class JsonCreatureStore(CreatureStore):
    """Collection file keyed by user id; every write replaces the file atomically."""

    def __init__(self, path: str | Path, catalog: CreatureCatalog) -> None:
        self.path = Path(path)
        self._catalog = catalog

    def load_owned_creatures(self, user_id: str) -> list[CreatureStats]:
        payload = self._read_payload()
        rows = payload["users"].get(user_id, [])
        return [CreatureStats.from_dict(row) for row in rows]

    def save_level(self, user_id: str, creature_name: str, new_level: int) -> bool:
        payload = self._read_payload()
        rows = payload["users"].get(user_id, [])
        index = _level_up_index([(row.get("name"), row.get("level", 1)) for row in rows], creature_name, new_level)
        if index is None:
            return False
        rows[index]["level"] = int(new_level)
        write_atomic_json(self.path, payload)
        return True

    def add_creature_to_collection(self, user_id: str, creature_name: str) -> bool:
        stats = self._catalog.by_name().get(creature_name)
        if stats is None:
            return False
        payload = self._read_payload()
        payload["users"].setdefault(user_id, []).append(stats.to_dict())
        write_atomic_json(self.path, payload)
        return True

    def seed_user(self, user_id: str, creatures: list[CreatureStats]) -> None:
        payload = self._read_payload()
        payload["users"][user_id] = [creature.to_dict() for creature in creatures]
        write_atomic_json(self.path, payload)

    def _read_payload(self) -> dict[str, Any]:
        if not self.path.exists():
            return {"schema_version": COLLECTION_SCHEMA_VERSION, "users": {}}
        payload = json.loads(self.path.read_text(encoding="utf-8"))
        validate_collection_payload(payload)
        return copy.deepcopy(payload)


def _level_up_index(entries: list[tuple[str, Any]], creature_name: str, new_level: int) -> int | None:
    """Pick the entry a level-up belongs to.

    Names repeat once a species is caught twice, so the copy one level below
    ``new_level`` wins; otherwise the first copy with that name.
    """
    first_match: int | None = None
    for index, (name, level) in enumerate(entries):
        if name != creature_name:
            continue
        if level == new_level - 1:
            return index
        if first_match is None:
            first_match = index
    return first_match


def validate_collection_payload(payload: Any) -> None:
    if not isinstance(payload, dict):
        raise ValueError("collection payload must be an object")
    schema_version = payload.get("schema_version")
    if not isinstance(schema_version, int):
        raise ValueError("collection payload must contain integer field: schema_version")
    if schema_version != COLLECTION_SCHEMA_VERSION:
        raise ValueError(f"unsupported collection schema_version: {schema_version}")
    users = payload.get("users")
    if not isinstance(users, dict):
        raise ValueError("collection payload must contain object field: users")
    for user_id, rows in users.items():
        if not isinstance(rows, list):
            raise ValueError(f"users[{user_id}] must be a list")
        for index, row in enumerate(rows):
            if not isinstance(row, dict):
                raise ValueError(f"users[{user_id}][{index}] must be an object")
