from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

TUNING_SCHEMA_VERSION = 1
DEFAULT_TUNING_PATH = "content/config/tuning.json"

_POSITIVE_FIELDS = {
    "tick_rate_hz",
    "tile_size",
    "base_speed",
    "movement_epsilon",
    "fade_duration",
    "ball_growth_rate",
    "ball_target_scale",
    "ball_hold_duration",
    "ball_shrink_duration",
    "faint_fade_duration",
}
_FRACTION_FIELDS = {
    "encounter_probability",
    "ball_growth_threshold",
    "catch_threshold",
    "level_up_chance",
    "heal_fraction",
}


@dataclass(frozen=True)
class SimulationTuning:
    """Simulation tuning constants.

    Durations are in seconds, distances in pixels, speeds in pixels per tick.
    """

    tick_rate_hz: int = 60
    tile_size: int = 60
    base_speed: float = 4.0
    movement_epsilon: float = 1.0
    encounter_probability: float = 0.1
    fade_duration: float = 1.0
    ball_growth_threshold: float = 0.5
    ball_growth_rate: float = 1.0
    ball_target_scale: float = 1.0
    ball_hold_duration: float = 0.5
    ball_shrink_duration: float = 0.5
    faint_fade_duration: float = 1.0
    catch_threshold: float = 0.30
    level_up_chance: float = 0.20
    heal_fraction: float = 0.2

    def __post_init__(self) -> None:
        for name in sorted(_POSITIVE_FIELDS):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ValueError(f"tuning.{name} must be a number > 0")
        if not isinstance(self.tick_rate_hz, int) or not isinstance(self.tile_size, int):
            raise ValueError("tuning.tick_rate_hz and tuning.tile_size must be integers")
        for name in sorted(_FRACTION_FIELDS):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
                raise ValueError(f"tuning.{name} must be a number in [0, 1]")

    @property
    def tick_seconds(self) -> float:
        return 1.0 / self.tick_rate_hz

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "SimulationTuning":
        if not isinstance(payload, dict):
            raise ValueError("tuning payload must be an object")
        known = {field.name for field in fields(cls)}
        unknown = sorted(key for key in payload if key not in known)
        if unknown:
            raise ValueError(f"unknown tuning field(s): {', '.join(unknown)}")
        return cls(**payload)


def load_tuning_json(path: str | Path) -> SimulationTuning:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    return _tuning_from_payload(payload)


def _tuning_from_payload(payload: Any) -> SimulationTuning:
    if not isinstance(payload, dict):
        raise ValueError("tuning file must contain an object")

    schema_version = payload.get("schema_version")
    if not isinstance(schema_version, int):
        raise ValueError("tuning file must contain integer field: schema_version")
    if schema_version != TUNING_SCHEMA_VERSION:
        raise ValueError(f"unsupported tuning schema_version: {schema_version}")

    values = payload.get("tuning", {})
    if not isinstance(values, dict):
        raise ValueError("tuning file field tuning must be an object")
    return SimulationTuning.from_dict(values)
