from __future__ import annotations

import argparse
import importlib.metadata
import os
import platform
import sys
from dataclasses import dataclass
from typing import Any

from tallgrass.content.collection import DEFAULT_COLLECTION_PATH, JsonCreatureStore
from tallgrass.content.creatures import DEFAULT_CREATURE_CATALOG_PATH, load_creature_catalog_json
from tallgrass.content.io import grid_hash, load_grid_json
from tallgrass.content.tuning import DEFAULT_TUNING_PATH, load_tuning_json
from tallgrass.sim.battle import MOVE_SET
from tallgrass.sim.core import (
    ACKNOWLEDGE_COMMAND,
    CANCEL_SELECTION_COMMAND,
    CONFIRM_SELECTION_COMMAND,
    NAVIGATE_SELECTION_COMMAND,
    PRESS_DIRECTION_COMMAND,
    RELEASE_DIRECTION_COMMAND,
    SELECT_MOVE_COMMAND,
    THROW_BALL_COMMAND,
    Simulation,
)
from tallgrass.sim.encounters import (
    PHASE_BATTLE_READY,
    PHASE_POKEMON_SELECTION,
    EncounterSession,
    register_encounter_modules,
)
from tallgrass.sim.grid import TERRAIN_DIRT, TERRAIN_GRASS, TERRAIN_SAND, TERRAIN_STONE, TERRAIN_WATER
from tallgrass.sim.hash import simulation_hash
from tallgrass.sim.mapgen import DEFAULT_MAP_HEIGHT, DEFAULT_MAP_SEED, DEFAULT_MAP_WIDTH, generate_map
from tallgrass.sim.movement import DIRECTION_DOWN, DIRECTION_LEFT, DIRECTION_RIGHT, DIRECTION_UP

WINDOW_SIZE = (960, 720)
BATTLE_PANEL_HEIGHT = 260
PANEL_MARGIN = 16
BALL_MAX_RADIUS = 120
ANNOUNCEMENT_LINES = 4

TERRAIN_COLORS: dict[str, tuple[int, int, int]] = {
    TERRAIN_GRASS: (96, 168, 72),
    TERRAIN_DIRT: (150, 112, 74),
    TERRAIN_SAND: (222, 204, 140),
    TERRAIN_STONE: (118, 118, 126),
    TERRAIN_WATER: (58, 112, 196),
}
EMPTY_CELL_COLOR = (20, 20, 26)

DIRECTION_KEYS: dict[str, str] = {
    "up": DIRECTION_UP,
    "w": DIRECTION_UP,
    "down": DIRECTION_DOWN,
    "s": DIRECTION_DOWN,
    "left": DIRECTION_LEFT,
    "a": DIRECTION_LEFT,
    "right": DIRECTION_RIGHT,
    "d": DIRECTION_RIGHT,
}
MOVE_KEYS: dict[str, int] = {str(index + 1): index for index in range(len(MOVE_SET))}
ACKNOWLEDGE_KEYS = {"space", "return", "enter"}

pygame: Any | None = None


@dataclass
class SimulationController:
    """Viewer command adapter; simulation remains source of truth."""

    sim: Simulation

    def _queue(self, command_type: str, params: dict[str, Any] | None = None) -> None:
        self.sim.queue(command_type, params)

    def press_direction(self, direction: str) -> None:
        self._queue(PRESS_DIRECTION_COMMAND, {"direction": direction})

    def release_direction(self, direction: str) -> None:
        self._queue(RELEASE_DIRECTION_COMMAND, {"direction": direction})

    def select_move(self, move_index: int) -> None:
        self._queue(SELECT_MOVE_COMMAND, {"move_index": move_index})

    def throw_ball(self) -> None:
        self._queue(THROW_BALL_COMMAND)

    def navigate_selection(self, delta: int) -> None:
        self._queue(NAVIGATE_SELECTION_COMMAND, {"delta": delta})

    def confirm_selection(self) -> None:
        self._queue(CONFIRM_SELECTION_COMMAND)

    def cancel_selection(self) -> None:
        self._queue(CANCEL_SELECTION_COMMAND)

    def acknowledge(self) -> None:
        self._queue(ACKNOWLEDGE_COMMAND)

    def tick_once(self) -> None:
        self.sim.advance_ticks(1)


def handle_key(controller: SimulationController, key_name: str, *, pressed: bool) -> bool:
    """Translate one key transition into commands for the current phase.

    Returns True when the key produced a command.
    """
    session = controller.sim.state.encounter
    if session is None:
        direction = DIRECTION_KEYS.get(key_name)
        if direction is None:
            return False
        if pressed:
            controller.press_direction(direction)
        else:
            controller.release_direction(direction)
        return True

    if not pressed:
        direction = DIRECTION_KEYS.get(key_name)
        if direction is not None:
            controller.release_direction(direction)
            return True
        return False

    if session.phase_name == PHASE_POKEMON_SELECTION:
        if key_name in {"up", "w"}:
            controller.navigate_selection(-1)
        elif key_name in {"down", "s"}:
            controller.navigate_selection(1)
        elif key_name in {"return", "enter", "space"}:
            controller.confirm_selection()
        elif key_name == "backspace":
            controller.cancel_selection()
        else:
            return False
        return True

    if session.phase_name == PHASE_BATTLE_READY:
        if key_name in MOVE_KEYS:
            controller.select_move(MOVE_KEYS[key_name])
        elif key_name == "c":
            controller.throw_ball()
        elif key_name in ACKNOWLEDGE_KEYS:
            controller.acknowledge()
        else:
            return False
        return True
    return False


def camera_offset(sim: Simulation, viewport: tuple[int, int]) -> tuple[float, float]:
    player = sim.state.player
    tile_size = sim.state.grid.tile_size
    return (
        viewport[0] / 2 - (player.visual_x + tile_size / 2),
        viewport[1] / 2 - (player.visual_y + tile_size / 2),
    )


def _draw_world(screen: Any, sim: Simulation, offset: tuple[float, float]) -> None:
    grid = sim.state.grid
    size = grid.tile_size
    for y in range(grid.height):
        for x in range(grid.width):
            tile = grid.tile_at(x, y)
            color = TERRAIN_COLORS.get(tile.terrain_type, EMPTY_CELL_COLOR) if tile is not None else EMPTY_CELL_COLOR
            rect = pygame.Rect(int(offset[0] + x * size), int(offset[1] + y * size), size, size)
            pygame.draw.rect(screen, color, rect)
            pygame.draw.rect(screen, (35, 35, 40), rect, 1)


def _draw_player(screen: Any, sim: Simulation, offset: tuple[float, float]) -> None:
    player = sim.state.player
    size = sim.state.grid.tile_size
    center_x = int(offset[0] + player.visual_x + size / 2)
    center_y = int(offset[1] + player.visual_y + size / 2)
    radius = size // 3
    pygame.draw.circle(screen, (255, 243, 130), (center_x, center_y), radius)
    pygame.draw.circle(screen, (15, 15, 15), (center_x, center_y), radius, 2)
    facing_dx = {DIRECTION_LEFT: -1, DIRECTION_RIGHT: 1}.get(player.facing, 0)
    facing_dy = {DIRECTION_UP: -1, DIRECTION_DOWN: 1}.get(player.facing, 0)
    pygame.draw.circle(
        screen,
        (15, 15, 15),
        (center_x + facing_dx * radius // 2, center_y + facing_dy * radius // 2),
        4,
    )


def _draw_transition(screen: Any, session: EncounterSession) -> None:
    alpha = int(max(0.0, min(1.0, session.fade_opacity)) * 255)
    if alpha > 0:
        overlay = pygame.Surface(WINDOW_SIZE, pygame.SRCALPHA)
        overlay.fill((255, 255, 255, alpha))
        screen.blit(overlay, (0, 0))
    radius = int(BALL_MAX_RADIUS * session.ball_scale)
    if radius > 0:
        center = (WINDOW_SIZE[0] // 2, WINDOW_SIZE[1] // 2)
        ball_rect = pygame.Rect(center[0] - radius, center[1] - radius, radius * 2, radius * 2)
        pygame.draw.circle(screen, (230, 240, 240), center, radius)
        pygame.draw.arc(screen, (214, 48, 49), ball_rect, 0, 3.14159, max(1, radius))
        pygame.draw.line(screen, (20, 20, 20), (center[0] - radius, center[1]), (center[0] + radius, center[1]), 4)
        pygame.draw.circle(screen, (20, 20, 20), center, max(2, radius // 4))
        pygame.draw.circle(screen, (250, 250, 250), center, max(1, radius // 6))


def _draw_combatant_card(screen: Any, font: Any, combatant: Any, origin: tuple[int, int]) -> None:
    label = f"{combatant.display_name}  Lv{combatant.level}  HP {combatant.current_hp}/{combatant.max_hp}"
    if combatant.guarded:
        label += "  [guard]"
    text = font.render(label, True, (20, 20, 20))
    text.set_alpha(int(combatant.sprite_opacity * 255))
    screen.blit(text, origin)
    bar_width = 240
    fill = int(bar_width * combatant.current_hp / combatant.max_hp) if combatant.max_hp else 0
    pygame.draw.rect(screen, (60, 60, 60), pygame.Rect(origin[0], origin[1] + 26, bar_width, 10), 1)
    pygame.draw.rect(screen, (72, 190, 90), pygame.Rect(origin[0] + 1, origin[1] + 27, max(0, fill - 2), 8))


def _draw_battle(screen: Any, session: EncounterSession, font: Any) -> None:
    screen.fill((238, 238, 230))
    battle = session.battle
    if battle is None:
        return
    _draw_combatant_card(screen, font, battle.wild, (WINDOW_SIZE[0] - 420, 40))
    if not battle.wild_in_ball:
        pygame.draw.circle(screen, (140, 90, 170), (WINDOW_SIZE[0] - 220, 200), 60)
    _draw_combatant_card(screen, font, battle.player, (40, WINDOW_SIZE[1] - BATTLE_PANEL_HEIGHT - 80))

    panel = pygame.Rect(
        PANEL_MARGIN,
        WINDOW_SIZE[1] - BATTLE_PANEL_HEIGHT + PANEL_MARGIN,
        WINDOW_SIZE[0] - PANEL_MARGIN * 2,
        BATTLE_PANEL_HEIGHT - PANEL_MARGIN * 2,
    )
    pygame.draw.rect(screen, (250, 250, 250), panel)
    pygame.draw.rect(screen, (40, 40, 40), panel, 2)

    if battle.announcements:
        lines = battle.announcements[-ANNOUNCEMENT_LINES:] + ["(space to continue)"]
    elif battle.accepts_action():
        lines = [f"{index + 1}: {move.name}" for index, move in enumerate(MOVE_SET)] + ["C: throw capture ball"]
    else:
        lines = []
    y = panel.y + 12
    for line in lines:
        screen.blit(font.render(line, True, (20, 20, 20)), (panel.x + 16, y))
        y += 28


def _draw_selection(screen: Any, session: EncounterSession, font: Any) -> None:
    screen.fill((238, 238, 230))
    screen.blit(font.render("Choose a creature (enter to confirm, backspace for the first)", True, (20, 20, 20)), (40, 40))
    index = session.selection_index or 0
    y = 100
    for row, creature in enumerate(session.owned):
        marker = ">" if row == index else " "
        line = f"{marker} {creature.name}  Lv{creature.level}  HP {creature.hp}  SPD {creature.speed}"
        screen.blit(font.render(line, True, (20, 20, 20)), (60, y))
        y += 30


def _draw_hud(screen: Any, sim: Simulation, font: Any) -> None:
    player = sim.state.player
    session = sim.state.encounter
    phase = session.phase_name if session is not None else "free_roam"
    lines = [
        f"cell=({player.cell_x},{player.cell_y}) facing={player.facing} tick={sim.state.tick} phase={phase}",
        "WASD/arrows move | ESC quit",
    ]
    y = 12
    for line in lines:
        surface = font.render(line, True, (240, 240, 240))
        screen.blit(surface, (12, y))
        y += 24


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m tallgrass.cli.pygame_viewer",
        description="Run the tallgrass pygame viewer.",
    )
    parser.add_argument("--seed", type=int, default=DEFAULT_MAP_SEED, help="Master seed for map and encounters.")
    parser.add_argument("--width", type=int, default=DEFAULT_MAP_WIDTH, help="Generated map width in cells.")
    parser.add_argument("--height", type=int, default=DEFAULT_MAP_HEIGHT, help="Generated map height in cells.")
    parser.add_argument("--map-path", help="Optional saved map JSON to use instead of generating one.")
    parser.add_argument("--user-id", help="Collection owner; omit to battle with a borrowed creature.")
    parser.add_argument(
        "--collection-path",
        default=DEFAULT_COLLECTION_PATH,
        help="Owned-creature collection JSON used when --user-id is set.",
    )
    parser.add_argument("--tuning-path", default=DEFAULT_TUNING_PATH, help="Simulation tuning JSON.")
    parser.add_argument(
        "--catalog-path",
        default=DEFAULT_CREATURE_CATALOG_PATH,
        help="Wild creature catalog JSON.",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Force SDL dummy video driver for CI/testing and exit without opening a real window.",
    )
    return parser


def _env_flag_enabled(var_name: str) -> bool:
    return os.environ.get(var_name, "").strip().lower() in {"1", "true", "yes", "on"}


def _print_startup_banner() -> None:
    try:
        pygame_version = importlib.metadata.version("pygame")
    except importlib.metadata.PackageNotFoundError:
        pygame_version = "not-installed"
    print(
        "[tallgrass.viewer] startup "
        f"python={platform.python_version()} "
        f"pygame={pygame_version} "
        f"platform={platform.platform()}"
    )
    for name in ("SDL_VIDEODRIVER", "SDL_AUDIODRIVER"):
        value = os.environ.get(name, "<unset>")
        print(f"[tallgrass.viewer] env {name}={value}")


def _ensure_pygame_imported() -> Any:
    global pygame
    if pygame is None:
        import pygame as pygame_module

        pygame = pygame_module
    return pygame


def _build_viewer_simulation(
    *,
    seed: int = DEFAULT_MAP_SEED,
    width: int = DEFAULT_MAP_WIDTH,
    height: int = DEFAULT_MAP_HEIGHT,
    map_path: str | None = None,
    user_id: str | None = None,
    collection_path: str = DEFAULT_COLLECTION_PATH,
    tuning_path: str = DEFAULT_TUNING_PATH,
    catalog_path: str = DEFAULT_CREATURE_CATALOG_PATH,
) -> Simulation:
    tuning = load_tuning_json(tuning_path)
    if map_path:
        grid = load_grid_json(map_path)
    else:
        grid = generate_map(width, height, tuning.tile_size, seed=seed)
    catalog = load_creature_catalog_json(catalog_path)
    sim = Simulation(grid=grid, seed=seed, tuning=tuning)
    store = JsonCreatureStore(collection_path, catalog) if user_id else None
    register_encounter_modules(sim, catalog, store=store, user_id=user_id)
    print(
        "[tallgrass.viewer] simulation ready "
        f"seed={seed} size={grid.width}x{grid.height} start={sim.state.player.cell} "
        f"user={user_id or '<guest>'} grid_hash={grid_hash(grid)}"
    )
    return sim


def run_pygame_viewer(
    *,
    seed: int = DEFAULT_MAP_SEED,
    width: int = DEFAULT_MAP_WIDTH,
    height: int = DEFAULT_MAP_HEIGHT,
    map_path: str | None = None,
    user_id: str | None = None,
    collection_path: str = DEFAULT_COLLECTION_PATH,
    tuning_path: str = DEFAULT_TUNING_PATH,
    catalog_path: str = DEFAULT_CREATURE_CATALOG_PATH,
    headless: bool = False,
) -> int:
    if headless:
        os.environ["SDL_VIDEODRIVER"] = "dummy"
        print("[tallgrass.viewer] warning: headless mode active; no window will open.")

    _print_startup_banner()
    pygame_module = _ensure_pygame_imported()

    try:
        pygame_module.init()
    except Exception as exc:
        print(
            "[tallgrass.viewer] failed during pygame.init(): "
            f"{exc}. Hint: verify a working SDL video driver (set SDL_VIDEODRIVER=dummy for headless mode).",
            file=sys.stderr,
        )
        return 1

    try:
        sim = _build_viewer_simulation(
            seed=seed,
            width=width,
            height=height,
            map_path=map_path,
            user_id=user_id,
            collection_path=collection_path,
            tuning_path=tuning_path,
            catalog_path=catalog_path,
        )
    except Exception as exc:
        print(f"[tallgrass.viewer] failed to initialize simulation: {exc}", file=sys.stderr)
        pygame_module.quit()
        return 1

    controller = SimulationController(sim=sim)

    try:
        pygame_module.display.set_caption("tallgrass")
        screen = pygame_module.display.set_mode(WINDOW_SIZE)
    except Exception as exc:
        print(
            "[tallgrass.viewer] failed during pygame.display.set_mode(...): "
            f"{exc}. Hint: GUI sessions require a valid display; use --headless or TALLGRASS_HEADLESS=1.",
            file=sys.stderr,
        )
        pygame_module.quit()
        return 1

    driver_name = pygame_module.display.get_driver()
    print(f"[tallgrass.viewer] display initialized: {driver_name}, window size={WINDOW_SIZE}")

    if headless:
        controller.tick_once()
        pygame_module.quit()
        return 0

    font = pygame_module.font.SysFont("consolas", 20)
    clock = pygame_module.time.Clock()
    tick_seconds = sim.tuning.tick_seconds
    accumulator = 0.0
    running = True
    last_encounter_id: int | None = None

    while running:
        accumulator += clock.tick(sim.tuning.tick_rate_hz) / 1000.0

        for event in pygame_module.event.get():
            if event.type == pygame_module.QUIT:
                running = False
            elif event.type == pygame_module.KEYDOWN and event.key == pygame_module.K_ESCAPE:
                running = False
            elif event.type in (pygame_module.KEYDOWN, pygame_module.KEYUP):
                handle_key(
                    controller,
                    pygame_module.key.name(event.key),
                    pressed=event.type == pygame_module.KEYDOWN,
                )

        while accumulator >= tick_seconds:
            controller.tick_once()
            accumulator -= tick_seconds

        session = sim.state.encounter
        current_encounter_id = session.started_tick if session is not None else None
        if current_encounter_id != last_encounter_id:
            state = "started" if session is not None else "ended"
            print(f"[tallgrass.viewer] encounter {state} tick={sim.state.tick} simulation_hash={simulation_hash(sim)}")
            last_encounter_id = current_encounter_id

        if session is not None and session.phase_name == PHASE_BATTLE_READY:
            _draw_battle(screen, session, font)
        elif session is not None and session.phase_name == PHASE_POKEMON_SELECTION:
            _draw_selection(screen, session, font)
        else:
            screen.fill(EMPTY_CELL_COLOR)
            offset = camera_offset(sim, WINDOW_SIZE)
            _draw_world(screen, sim, offset)
            _draw_player(screen, sim, offset)
            if session is not None:
                _draw_transition(screen, session)
            _draw_hud(screen, sim, font)
        pygame_module.display.flip()

    pygame_module.quit()
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    headless = args.headless or _env_flag_enabled("TALLGRASS_HEADLESS")
    raise SystemExit(
        run_pygame_viewer(
            seed=args.seed,
            width=args.width,
            height=args.height,
            map_path=args.map_path,
            user_id=args.user_id,
            collection_path=args.collection_path,
            tuning_path=args.tuning_path,
            catalog_path=args.catalog_path,
            headless=headless,
        )
    )


if __name__ == "__main__":
    main()
