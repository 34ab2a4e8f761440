from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any

from tallgrass.sim.grid import TileGrid

SCHEMA_VERSION = 1
CANONICAL_JSON_INDENT = 2
CANONICAL_JSON_SEPARATORS = (",", ": ")


def grid_hash(grid: TileGrid) -> str:
    encoded = json.dumps(grid.to_dict(), sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def canonical_json(payload: dict[str, Any]) -> str:
    return json.dumps(
        payload,
        indent=CANONICAL_JSON_INDENT,
        separators=CANONICAL_JSON_SEPARATORS,
        sort_keys=True,
    )


def write_atomic_json(path: str | Path, payload: dict[str, Any]) -> None:
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    serialized = canonical_json(payload)

    temp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=destination.parent,
            delete=False,
            suffix=".tmp",
        ) as temp_file:
            temp_file.write(serialized)
            temp_file.flush()
            os.fsync(temp_file.fileno())
            temp_path = Path(temp_file.name)
        os.replace(temp_path, destination)
    except Exception:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        raise


def validate_grid_payload(payload: Any) -> None:
    if not isinstance(payload, dict):
        raise ValueError("map payload must be an object")
    schema_version = payload.get("schema_version")
    if not isinstance(schema_version, int):
        raise ValueError("map payload must contain integer field: schema_version")
    if schema_version != SCHEMA_VERSION:
        raise ValueError(f"unsupported map schema_version: {schema_version}")
    if not isinstance(payload.get("grid_hash"), str):
        raise ValueError("map payload must contain string field: grid_hash")
    if not isinstance(payload.get("grid"), dict):
        raise ValueError("map payload must contain object field: grid")
    if not isinstance(payload["grid"].get("tiles"), list):
        raise ValueError("map payload grid.tiles must be a list")


def save_grid_json(path: str | Path, grid: TileGrid) -> None:
    payload = {
        "schema_version": SCHEMA_VERSION,
        "grid_hash": grid_hash(grid),
        "grid": grid.to_dict(),
    }
    write_atomic_json(path, payload)


def load_grid_json(path: str | Path) -> TileGrid:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    validate_grid_payload(payload)
    grid = TileGrid.from_dict(payload["grid"])
    expected_hash = payload["grid_hash"]
    actual_hash = grid_hash(grid)
    if expected_hash != actual_hash:
        raise ValueError(f"grid_hash mismatch while loading map (stored={expected_hash}, recomputed={actual_hash})")
    return grid
