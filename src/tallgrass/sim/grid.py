from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

TERRAIN_GRASS = "grass"
TERRAIN_DIRT = "dirt"
TERRAIN_SAND = "sand"
TERRAIN_STONE = "stone"
TERRAIN_WATER = "water"

ROW_LEGEND: dict[str, str] = {
    "G": TERRAIN_GRASS,
    "D": TERRAIN_DIRT,
    "S": TERRAIN_SAND,
    "R": TERRAIN_STONE,
    "W": TERRAIN_WATER,
}
EMPTY_CELL_GLYPH = " "


@dataclass(frozen=True)
class TerrainDef:
    terrain_type: str
    walkable: bool
    speed_multiplier: float
    wild_zone: bool


TERRAIN_DEFS: dict[str, TerrainDef] = {
    TERRAIN_GRASS: TerrainDef(TERRAIN_GRASS, walkable=True, speed_multiplier=1.0, wild_zone=True),
    TERRAIN_DIRT: TerrainDef(TERRAIN_DIRT, walkable=True, speed_multiplier=1.2, wild_zone=False),
    TERRAIN_SAND: TerrainDef(TERRAIN_SAND, walkable=True, speed_multiplier=0.7, wild_zone=True),
    TERRAIN_STONE: TerrainDef(TERRAIN_STONE, walkable=False, speed_multiplier=1.0, wild_zone=False),
    TERRAIN_WATER: TerrainDef(TERRAIN_WATER, walkable=False, speed_multiplier=1.0, wild_zone=False),
}


@dataclass(frozen=True)
class Tile:
    x: int
    y: int
    terrain_type: str
    walkable: bool
    speed_multiplier: float = 1.0
    wild_zone: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.x, bool) or not isinstance(self.x, int):
            raise ValueError("tile.x must be an integer")
        if isinstance(self.y, bool) or not isinstance(self.y, int):
            raise ValueError("tile.y must be an integer")
        if not isinstance(self.terrain_type, str) or not self.terrain_type:
            raise ValueError("tile.terrain_type must be a non-empty string")
        if isinstance(self.speed_multiplier, bool) or not isinstance(self.speed_multiplier, (int, float)):
            raise ValueError("tile.speed_multiplier must be a number")
        if self.speed_multiplier <= 0:
            raise ValueError("tile.speed_multiplier must be > 0")
        if self.wild_zone and not self.walkable:
            raise ValueError(f"tile ({self.x},{self.y}) cannot be a wild zone without being walkable")

    @classmethod
    def from_terrain(cls, x: int, y: int, terrain_type: str) -> "Tile":
        terrain = TERRAIN_DEFS.get(terrain_type)
        if terrain is None:
            raise ValueError(f"unknown terrain_type: {terrain_type}")
        return cls(
            x=x,
            y=y,
            terrain_type=terrain.terrain_type,
            walkable=terrain.walkable,
            speed_multiplier=terrain.speed_multiplier,
            wild_zone=terrain.wild_zone,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "terrain_type": self.terrain_type,
            "walkable": self.walkable,
            "speed_multiplier": self.speed_multiplier,
            "wild_zone": self.wild_zone,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Tile":
        return cls(
            x=int(payload["x"]),
            y=int(payload["y"]),
            terrain_type=str(payload["terrain_type"]),
            walkable=bool(payload["walkable"]),
            speed_multiplier=float(payload.get("speed_multiplier", 1.0)),
            wild_zone=bool(payload.get("wild_zone", False)),
        )


@dataclass
class TileGrid:
    """Walkability/terrain grid keyed by integer cell coordinates."""

    width: int
    height: int
    tile_size: int
    tiles: dict[tuple[int, int], Tile] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.width, int) or self.width <= 0:
            raise ValueError("grid.width must be an integer > 0")
        if not isinstance(self.height, int) or self.height <= 0:
            raise ValueError("grid.height must be an integer > 0")
        if not isinstance(self.tile_size, int) or self.tile_size <= 0:
            raise ValueError("grid.tile_size must be an integer > 0")

    def tile_at(self, x: int, y: int) -> Tile | None:
        return self.tiles.get((x, y))

    def set_tile(self, tile: Tile) -> None:
        self.tiles[(tile.x, tile.y)] = tile

    def walkable_cells(self) -> list[tuple[int, int]]:
        return sorted(cell for cell, tile in self.tiles.items() if tile.walkable)

    def find_start_cell(self) -> tuple[int, int] | None:
        """Walkable cell closest to the grid centre; ties break on (y, x)."""
        center_x = self.width // 2
        center_y = self.height // 2
        candidates = self.walkable_cells()
        if not candidates:
            return None
        return min(
            candidates,
            key=lambda cell: (abs(cell[0] - center_x) + abs(cell[1] - center_y), cell[1], cell[0]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "tile_size": self.tile_size,
            "tiles": [self.tiles[cell].to_dict() for cell in sorted(self.tiles, key=lambda c: (c[1], c[0]))],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "TileGrid":
        grid = cls(
            width=int(payload["width"]),
            height=int(payload["height"]),
            tile_size=int(payload["tile_size"]),
        )
        for row in payload.get("tiles", []):
            tile = Tile.from_dict(row)
            if (tile.x, tile.y) in grid.tiles:
                raise ValueError(f"duplicate tile at ({tile.x},{tile.y})")
            grid.set_tile(tile)
        return grid

    @classmethod
    def from_rows(cls, rows: list[str], *, tile_size: int = 60) -> "TileGrid":
        if not rows:
            raise ValueError("grid rows must be a non-empty list")
        width = max(len(row) for row in rows)
        grid = cls(width=width, height=len(rows), tile_size=tile_size)
        for y, row in enumerate(rows):
            for x, glyph in enumerate(row):
                if glyph == EMPTY_CELL_GLYPH:
                    continue
                terrain_type = ROW_LEGEND.get(glyph)
                if terrain_type is None:
                    raise ValueError(f"unknown grid glyph {glyph!r} at ({x},{y})")
                grid.set_tile(Tile.from_terrain(x, y, terrain_type))
        return grid
