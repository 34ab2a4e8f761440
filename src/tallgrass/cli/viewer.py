from __future__ import annotations

from tallgrass.content.creatures import DEFAULT_CREATURE_CATALOG_PATH, load_creature_catalog_json
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
from tallgrass.sim.encounters import register_encounter_modules
from tallgrass.sim.grid import TERRAIN_DIRT, TERRAIN_GRASS, TERRAIN_SAND, TERRAIN_STONE, TERRAIN_WATER
from tallgrass.sim.mapgen import generate_map
from tallgrass.sim.movement import DIRECTION_VECTORS

TERRAIN_GLYPHS = {
    TERRAIN_GRASS: '"',
    TERRAIN_DIRT: ".",
    TERRAIN_SAND: ":",
    TERRAIN_STONE: "#",
    TERRAIN_WATER: "~",
}
PLAYER_GLYPH = "@"
EMPTY_GLYPH = " "


class AsciiViewer:
    """Read-only projection of simulation state for terminal display."""

    def render(self, sim: Simulation) -> str:
        lines: list[str] = []
        player = sim.state.player
        session = sim.state.encounter
        phase = session.phase_name if session is not None else "free_roam"
        lines.append(f"tick={sim.state.tick} phase={phase}")

        grid = sim.state.grid
        for y in range(grid.height):
            row = []
            for x in range(grid.width):
                if (x, y) == player.cell:
                    row.append(PLAYER_GLYPH)
                    continue
                tile = grid.tile_at(x, y)
                row.append(TERRAIN_GLYPHS.get(tile.terrain_type, "?") if tile is not None else EMPTY_GLYPH)
            lines.append("".join(row))

        lines.append(
            f"player cell=({player.cell_x},{player.cell_y}) "
            f"pos=({player.visual_x:.2f},{player.visual_y:.2f}) facing={player.facing} moving={player.moving}"
        )
        if session is not None:
            lines.extend(self._render_session(session))
        return "\n".join(lines)

    @staticmethod
    def _render_session(session) -> list[str]:
        lines = [f"encounter fade={session.fade_opacity:.2f} ball={session.ball_scale:.2f}"]
        if session.selection_index is not None:
            for index, creature in enumerate(session.owned):
                marker = ">" if index == session.selection_index else " "
                lines.append(f"{marker} {creature.name} Lv{creature.level}")
        battle = session.battle
        if battle is not None:
            for combatant in (battle.player, battle.wild):
                lines.append(
                    f"{combatant.display_name} Lv{combatant.level} HP {combatant.current_hp}/{combatant.max_hp}"
                    f"{' guard' if combatant.guarded else ''}{' fainted' if combatant.fainted else ''}"
                )
            lines.extend(f"> {announcement}" for announcement in battle.announcements)
        return lines


class SimulationController:
    """Small command adapter; issues commands to sim but does not own state."""

    def __init__(self, sim: Simulation) -> None:
        self.sim = sim

    def step(self, direction: str) -> None:
        """Hold a direction for exactly one tick, enough to commit a single cell transition."""
        if direction not in DIRECTION_VECTORS:
            return
        self.sim.queue(PRESS_DIRECTION_COMMAND, {"direction": direction})
        self.sim.advance_ticks(1)
        self.sim.queue(RELEASE_DIRECTION_COMMAND, {"direction": direction})

    def select_move(self, move_index: int) -> None:
        self.sim.queue(SELECT_MOVE_COMMAND, {"move_index": move_index})

    def throw_ball(self) -> None:
        self.sim.queue(THROW_BALL_COMMAND)

    def navigate_selection(self, delta: int) -> None:
        self.sim.queue(NAVIGATE_SELECTION_COMMAND, {"delta": delta})

    def confirm_selection(self) -> None:
        self.sim.queue(CONFIRM_SELECTION_COMMAND)

    def cancel_selection(self) -> None:
        self.sim.queue(CANCEL_SELECTION_COMMAND)

    def acknowledge(self) -> None:
        self.sim.queue(ACKNOWLEDGE_COMMAND)

    def advance_ticks(self, ticks: int) -> None:
        self.sim.advance_ticks(ticks)


def run_demo(
    seed: int = 42,
    *,
    tuning_path: str = DEFAULT_TUNING_PATH,
    catalog_path: str = DEFAULT_CREATURE_CATALOG_PATH,
) -> None:
    tuning = load_tuning_json(tuning_path)
    sim = Simulation(grid=generate_map(20, 12, tuning.tile_size, seed=seed), seed=seed, tuning=tuning)
    register_encounter_modules(sim, load_creature_catalog_json(catalog_path))

    view = AsciiViewer()
    controller = SimulationController(sim)
    move_names = " ".join(f"{index}={move.move_id}" for index, move in enumerate(MOVE_SET))

    print(
        "tallgrass demo. Commands: show | go <up|down|left|right> | tick <n> | "
        f"move <n> ({move_names}) | ball | nav <delta> | confirm | cancel | ok | quit"
    )
    print(view.render(sim))

    while True:
        raw = input("> ").strip()
        if raw in {"quit", "exit"}:
            break
        if raw == "show":
            print(view.render(sim))
            continue

        parts = raw.split()
        if len(parts) == 2 and parts[0] == "go":
            controller.step(parts[1])
            controller.advance_ticks(tuning.tick_rate_hz // 2)
        elif len(parts) == 2 and parts[0] == "tick" and parts[1].isdigit():
            controller.advance_ticks(int(parts[1]))
        elif len(parts) == 2 and parts[0] == "move" and parts[1].isdigit():
            controller.select_move(int(parts[1]))
            controller.advance_ticks(1)
        elif len(parts) == 2 and parts[0] == "nav" and parts[1].lstrip("-").isdigit():
            controller.navigate_selection(int(parts[1]))
            controller.advance_ticks(1)
        elif raw == "ball":
            controller.throw_ball()
            controller.advance_ticks(1)
        elif raw == "confirm":
            controller.confirm_selection()
            controller.advance_ticks(1)
        elif raw == "cancel":
            controller.cancel_selection()
            controller.advance_ticks(1)
        elif raw == "ok":
            controller.acknowledge()
            controller.advance_ticks(1)
        else:
            print("unknown command")
            continue
        print(view.render(sim))


if __name__ == "__main__":
    run_demo()
