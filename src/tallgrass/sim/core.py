from __future__ import annotations

import copy
import random
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from tallgrass.content.tuning import SimulationTuning
from tallgrass.sim.grid import TileGrid
from tallgrass.sim.movement import (
    ActorState,
    advance_actor,
    press_direction,
    release_all_directions,
    release_direction,
)
from tallgrass.sim.rng import derive_stream_seed
from tallgrass.sim.rules import RuleModule

if TYPE_CHECKING:
    from tallgrass.sim.encounters import EncounterSession

MAX_EVENT_TRACE = 256

PRESS_DIRECTION_COMMAND = "press_direction"
RELEASE_DIRECTION_COMMAND = "release_direction"
SELECT_MOVE_COMMAND = "select_move"
THROW_BALL_COMMAND = "throw_ball"
NAVIGATE_SELECTION_COMMAND = "navigate_selection"
CONFIRM_SELECTION_COMMAND = "confirm_selection"
CANCEL_SELECTION_COMMAND = "cancel_selection"
ACKNOWLEDGE_COMMAND = "acknowledge"


def _is_json_primitive(value: Any) -> bool:
    return value is None or isinstance(value, (bool, int, float, str))


def _validate_json_value(value: Any, *, field_name: str) -> None:
    if _is_json_primitive(value):
        return
    if isinstance(value, list):
        for item in value:
            _validate_json_value(item, field_name=field_name)
        return
    if isinstance(value, dict):
        for key, nested_value in value.items():
            if not isinstance(key, str):
                raise ValueError(f"{field_name} keys must be strings")
            _validate_json_value(nested_value, field_name=field_name)
        return
    raise ValueError(f"{field_name} must contain only canonical JSON primitives")


@dataclass
class SimCommand:
    tick: int
    command_type: str
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.tick, int) or self.tick < 0:
            raise ValueError("command tick must be a non-negative integer")
        if not isinstance(self.command_type, str) or not self.command_type:
            raise ValueError("command_type must be a non-empty string")
        if not isinstance(self.params, dict):
            raise ValueError("params must be a dict")
        _validate_json_value(self.params, field_name="params")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tick": self.tick,
            "command_type": self.command_type,
            "params": self.params,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SimCommand":
        return cls(
            tick=int(data["tick"]),
            command_type=str(data["command_type"]),
            params=dict(data.get("params", {})),
        )


@dataclass
class SimulationState:
    grid: TileGrid
    player: ActorState
    tick: int = 0
    encounter: EncounterSession | None = None
    rules_state: dict[str, dict[str, Any]] = field(default_factory=dict)
    event_trace: list[dict[str, Any]] = field(default_factory=list)


class Simulation:
    """Fixed-rate simulation: player movement first, then registered rule modules."""

    def __init__(
        self,
        grid: TileGrid,
        seed: int,
        *,
        tuning: SimulationTuning | None = None,
        start_cell: tuple[int, int] | None = None,
    ) -> None:
        self.tuning = tuning if tuning is not None else SimulationTuning()
        if grid.tile_size != self.tuning.tile_size:
            raise ValueError(
                f"grid tile_size {grid.tile_size} does not match tuning tile_size {self.tuning.tile_size}"
            )
        if start_cell is None:
            start_cell = grid.find_start_cell()
        if start_cell is None:
            raise ValueError("grid has no walkable cell to start on")
        start_tile = grid.tile_at(*start_cell)
        if start_tile is None or not start_tile.walkable:
            raise ValueError(f"start cell {start_cell} is not walkable")

        player = ActorState.at_cell(start_cell[0], start_cell[1], grid.tile_size)
        self.state = SimulationState(grid=grid, player=player)
        self.seed = seed
        self._rng_streams: dict[str, random.Random] = {}
        self.rule_modules: list[RuleModule] = []
        self.input_log: list[SimCommand] = []
        self._pending_commands: dict[int, list[SimCommand]] = defaultdict(list)
        self._next_trace_id = 1

    @property
    def encounter_active(self) -> bool:
        return self.state.encounter is not None

    def append_command(self, command: SimCommand | dict[str, Any]) -> None:
        normalized = command if isinstance(command, SimCommand) else SimCommand.from_dict(command)
        if normalized.tick < self.state.tick:
            raise ValueError(f"command tick {normalized.tick} is in the past (current tick {self.state.tick})")
        self.input_log.append(normalized)
        self._pending_commands[normalized.tick].append(normalized)

    def queue(self, command_type: str, params: dict[str, Any] | None = None) -> SimCommand:
        """Schedule a command on the tick that runs next."""
        command = SimCommand(tick=self.state.tick, command_type=command_type, params=dict(params or {}))
        self.append_command(command)
        return command

    def advance_ticks(self, ticks: int) -> None:
        for _ in range(ticks):
            self._tick_once()

    def rng_stream(self, name: str) -> random.Random:
        if name not in self._rng_streams:
            self._rng_streams[name] = random.Random(
                derive_stream_seed(master_seed=self.seed, stream_name=name)
            )
        return self._rng_streams[name]

    def set_rng_stream(self, name: str, stream: random.Random) -> None:
        self._rng_streams[name] = stream

    def rng_state_payload(self) -> dict[str, Any]:
        stream_states = {
            name: stream.getstate()
            for name, stream in sorted(self._rng_streams.items(), key=lambda item: item[0])
        }
        return {"seed": self.seed, "rng_stream_states": stream_states}

    def get_rule_module(self, module_name: str) -> RuleModule | None:
        for module in self.rule_modules:
            if module.name == module_name:
                return module
        return None

    def register_rule_module(self, module: RuleModule) -> None:
        if any(existing.name == module.name for existing in self.rule_modules):
            raise ValueError(f"duplicate rule module name: {module.name}")
        self.rule_modules.append(module)
        module.on_simulation_start(self)

    def get_rules_state(self, module_name: str) -> dict[str, Any]:
        existing = self.state.rules_state.get(module_name, {})
        return copy.deepcopy(existing)

    def set_rules_state(self, module_name: str, state: dict[str, Any]) -> None:
        if not isinstance(module_name, str) or not module_name:
            raise ValueError("module_name must be a non-empty string")
        if not isinstance(state, dict):
            raise ValueError("rules_state value must be a dict")
        _validate_json_value(state, field_name="rules_state")
        self.state.rules_state[module_name] = copy.deepcopy(state)

    def get_event_trace(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self.state.event_trace)

    def append_trace(self, event_type: str, params: dict[str, Any]) -> dict[str, Any]:
        entry = {
            "tick": self.state.tick,
            "event_id": self._next_trace_id,
            "event_type": event_type,
            "params": params,
        }
        self._append_event_trace_entry(entry)
        self._next_trace_id += 1
        return entry

    def _tick_once(self) -> None:
        for module in self.rule_modules:
            module.on_tick_start(self, self.state.tick)
        self._apply_commands_for_tick(self.state.tick)
        advance_actor(
            self.state.player,
            self.state.grid,
            base_speed=self.tuning.base_speed,
            epsilon=self.tuning.movement_epsilon,
            allow_start=not self.encounter_active,
        )
        for module in self.rule_modules:
            module.on_tick_end(self, self.state.tick)
        self._pending_commands.pop(self.state.tick, None)
        self.state.tick += 1

    def _apply_commands_for_tick(self, tick: int) -> None:
        for command_index, command in enumerate(self._pending_commands.get(tick, [])):
            self._execute_command(command, command_index=command_index)

    def _execute_command(self, command: SimCommand, *, command_index: int) -> None:
        if command.command_type == PRESS_DIRECTION_COMMAND:
            direction = command.params.get("direction")
            if isinstance(direction, str) and not self.encounter_active:
                press_direction(self.state.player, direction)
            return
        if command.command_type == RELEASE_DIRECTION_COMMAND:
            direction = command.params.get("direction")
            if isinstance(direction, str):
                release_direction(self.state.player, direction)
            return

        for module in self.rule_modules:
            if module.on_command(self, command, command_index):
                return

    def clear_held_directions(self) -> None:
        release_all_directions(self.state.player)

    def _append_event_trace_entry(self, entry: dict[str, Any]) -> None:
        if not isinstance(entry, dict):
            raise ValueError("event_trace entries must be objects")
        required = {"tick", "event_id", "event_type", "params"}
        if not required.issubset(entry):
            raise ValueError("event_trace entries missing required fields")
        if not isinstance(entry["tick"], int) or entry["tick"] < 0:
            raise ValueError("event_trace tick must be a non-negative integer")
        if not isinstance(entry["event_id"], int):
            raise ValueError("event_trace event_id must be an integer")
        if not isinstance(entry["event_type"], str) or not entry["event_type"]:
            raise ValueError("event_trace event_type must be a non-empty string")
        if not isinstance(entry["params"], dict):
            raise ValueError("event_trace params must be an object")
        _validate_json_value(entry["params"], field_name="event_trace.params")
        self.state.event_trace.append(copy.deepcopy(entry))
        if len(self.state.event_trace) > MAX_EVENT_TRACE:
            overflow = len(self.state.event_trace) - MAX_EVENT_TRACE
            del self.state.event_trace[:overflow]


def run_replay(
    grid: TileGrid,
    command_log: list[SimCommand | dict[str, Any]],
    ticks_to_run: int,
    *,
    seed: int = 0,
    tuning: SimulationTuning | None = None,
    configure: Callable[[Simulation], None] | None = None,
) -> Simulation:
    """Rebuild a simulation from scratch and re-execute a recorded command log."""
    simulation = Simulation(grid=TileGrid.from_dict(grid.to_dict()), seed=seed, tuning=tuning)
    if configure is not None:
        configure(simulation)
    for command in command_log:
        simulation.append_command(command)
    simulation.advance_ticks(ticks_to_run)
    return simulation
