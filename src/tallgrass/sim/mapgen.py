from __future__ import annotations

import math
import random

from tallgrass.sim.grid import (
    TERRAIN_DIRT,
    TERRAIN_GRASS,
    TERRAIN_SAND,
    TERRAIN_STONE,
    TERRAIN_WATER,
    Tile,
    TileGrid,
)
from tallgrass.sim.rng import RNG_WORLDGEN_STREAM_NAME, build_stream

DEFAULT_MAP_SEED = 42
DEFAULT_MAP_WIDTH = 30
DEFAULT_MAP_HEIGHT = 20
STONE_FILL_CHANCE = 0.6

TerrainMap = list[list[str]]


def generate_map(
    width: int = DEFAULT_MAP_WIDTH,
    height: int = DEFAULT_MAP_HEIGHT,
    tile_size: int = 60,
    *,
    seed: int = DEFAULT_MAP_SEED,
) -> TileGrid:
    """Generate a terrain grid: grass base, lakes, rock formations, beaches, then dirt paths.

    The same (width, height, seed) always yields the same grid.
    """
    rng = build_stream(seed, RNG_WORLDGEN_STREAM_NAME)
    grid = TileGrid(width=width, height=height, tile_size=tile_size)

    terrain = [[TERRAIN_GRASS for _ in range(height)] for _ in range(width)]
    _add_water_bodies(terrain, width, height, rng)
    _add_stone_formations(terrain, width, height, rng)
    _add_sand_near_water(terrain, width, height)

    for x in range(width):
        for y in range(height):
            grid.set_tile(Tile.from_terrain(x, y, terrain[x][y]))

    _carve_paths(grid, width, height)
    return grid


def _randrange(rng: random.Random, low: int, high: int) -> int:
    if high <= low:
        return low
    return rng.randrange(low, high)


def _add_water_bodies(terrain: TerrainMap, width: int, height: int, rng: random.Random) -> None:
    lake_count = rng.randrange(2, 5)
    for _ in range(lake_count):
        center_x = _randrange(rng, width // 4, 3 * width // 4)
        center_y = _randrange(rng, height // 4, 3 * height // 4)
        radius = rng.randrange(3, 8)

        for x in range(max(0, center_x - radius), min(width, center_x + radius)):
            for y in range(max(0, center_y - radius), min(height, center_y + radius)):
                if math.hypot(x - center_x, y - center_y) <= radius:
                    terrain[x][y] = TERRAIN_WATER


def _add_stone_formations(terrain: TerrainMap, width: int, height: int, rng: random.Random) -> None:
    formation_count = rng.randrange(3, 7)
    for _ in range(formation_count):
        center_x = rng.randrange(width)
        center_y = rng.randrange(height)
        size = rng.randrange(2, 5)

        for x in range(max(0, center_x - size), min(width, center_x + size)):
            for y in range(max(0, center_y - size), min(height, center_y + size)):
                # Water cells never consume a draw.
                if terrain[x][y] != TERRAIN_WATER and rng.random() < STONE_FILL_CHANCE:
                    terrain[x][y] = TERRAIN_STONE


def _add_sand_near_water(terrain: TerrainMap, width: int, height: int) -> None:
    sand_cells: list[tuple[int, int]] = []
    for x in range(width):
        for y in range(height):
            if terrain[x][y] != TERRAIN_WATER:
                continue
            for dx in (-1, 0, 1):
                for dy in (-1, 0, 1):
                    nx = x + dx
                    ny = y + dy
                    if 0 <= nx < width and 0 <= ny < height and terrain[nx][ny] == TERRAIN_GRASS:
                        sand_cells.append((nx, ny))

    for x, y in sand_cells:
        terrain[x][y] = TERRAIN_SAND


def _carve_paths(grid: TileGrid, width: int, height: int) -> None:
    mid_y = height // 2
    mid_x = width // 2
    cells = [(x, mid_y) for x in range(width)] + [(mid_x, y) for y in range(height)]
    for x, y in cells:
        tile = grid.tile_at(x, y)
        if tile is None or tile.terrain_type in {TERRAIN_WATER, TERRAIN_STONE}:
            continue
        grid.set_tile(Tile.from_terrain(x, y, TERRAIN_DIRT))
