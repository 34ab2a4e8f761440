from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from tallgrass.sim.grid import TileGrid

DIRECTION_UP = "up"
DIRECTION_DOWN = "down"
DIRECTION_LEFT = "left"
DIRECTION_RIGHT = "right"

DIRECTION_VECTORS: dict[str, tuple[int, int]] = {
    DIRECTION_UP: (0, -1),
    DIRECTION_DOWN: (0, 1),
    DIRECTION_LEFT: (-1, 0),
    DIRECTION_RIGHT: (1, 0),
}
DEFAULT_FACING = DIRECTION_DOWN


@dataclass
class ActorState:
    """Grid-locked actor with a continuously interpolated visual position.

    ``cell_x``/``cell_y`` is the logical cell. While ``moving`` it already holds
    the committed target and ``visual_x``/``visual_y`` travel toward it.
    """

    cell_x: int
    cell_y: int
    visual_x: float
    visual_y: float
    facing: str = DEFAULT_FACING
    moving: bool = False
    move_speed_multiplier: float = 1.0
    held_directions: list[str] = field(default_factory=list)

    @classmethod
    def at_cell(cls, x: int, y: int, tile_size: int) -> "ActorState":
        return cls(cell_x=x, cell_y=y, visual_x=float(x * tile_size), visual_y=float(y * tile_size))

    @property
    def cell(self) -> tuple[int, int]:
        return (self.cell_x, self.cell_y)

    @property
    def mirrored(self) -> bool:
        return self.facing == DIRECTION_LEFT

    def to_dict(self) -> dict[str, Any]:
        return {
            "cell_x": self.cell_x,
            "cell_y": self.cell_y,
            "visual_x": self.visual_x,
            "visual_y": self.visual_y,
            "facing": self.facing,
            "moving": self.moving,
            "move_speed_multiplier": self.move_speed_multiplier,
            "held_directions": list(self.held_directions),
        }


def press_direction(actor: ActorState, direction: str) -> None:
    if direction not in DIRECTION_VECTORS:
        return
    if direction in actor.held_directions:
        return
    actor.held_directions.append(direction)


def release_direction(actor: ActorState, direction: str) -> None:
    if direction in actor.held_directions:
        actor.held_directions.remove(direction)


def release_all_directions(actor: ActorState) -> None:
    actor.held_directions.clear()


def distance_to_target(actor: ActorState, tile_size: int) -> float:
    target_x = float(actor.cell_x * tile_size)
    target_y = float(actor.cell_y * tile_size)
    return math.hypot(target_x - actor.visual_x, target_y - actor.visual_y)


def advance_actor(
    actor: ActorState,
    grid: TileGrid,
    *,
    base_speed: float,
    epsilon: float = 1.0,
    allow_start: bool = True,
) -> bool:
    """Advance one tick; return True when the actor moved or started moving.

    A finished transition hands straight over to the next held direction in the
    same tick so continuous movement has no idle frame between cells.
    """
    if actor.moving:
        target_x = float(actor.cell_x * grid.tile_size)
        target_y = float(actor.cell_y * grid.tile_size)
        delta_x = target_x - actor.visual_x
        delta_y = target_y - actor.visual_y
        distance = math.hypot(delta_x, delta_y)
        step = base_speed * actor.move_speed_multiplier

        if distance - step < epsilon:
            actor.visual_x = target_x
            actor.visual_y = target_y
            actor.moving = False
            if allow_start:
                try_start_transition(actor, grid)
            return True

        actor.visual_x += delta_x / distance * step
        actor.visual_y += delta_y / distance * step
        return True

    if not allow_start:
        return False
    return try_start_transition(actor, grid)


def try_start_transition(actor: ActorState, grid: TileGrid) -> bool:
    if actor.moving or not actor.held_directions:
        return False

    direction = actor.held_directions[0]
    step_x, step_y = DIRECTION_VECTORS[direction]
    target_x = actor.cell_x + step_x
    target_y = actor.cell_y + step_y

    departure = grid.tile_at(actor.cell_x, actor.cell_y)
    speed_multiplier = departure.speed_multiplier if departure is not None else 1.0

    target = grid.tile_at(target_x, target_y)
    if target is None or not target.walkable:
        return False

    actor.cell_x = target_x
    actor.cell_y = target_y
    actor.facing = direction
    actor.move_speed_multiplier = speed_multiplier
    actor.moving = True
    return True
