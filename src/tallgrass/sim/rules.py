from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tallgrass.sim.core import SimCommand, Simulation


class RuleModule:
    """Hook substrate for gameplay rules layered on top of the movement core.

    Modules are registered on a ``Simulation`` and every hook runs in stable
    registration order.
    """

    name: str

    def on_simulation_start(self, sim: Simulation) -> None:
        """Called once, immediately when the module is registered."""

    def on_tick_start(self, sim: Simulation, tick: int) -> None:
        """Called before commands for the tick are applied."""

    def on_tick_end(self, sim: Simulation, tick: int) -> None:
        """Called after the player actor has advanced for the tick."""

    def on_command(self, sim: Simulation, command: SimCommand, command_index: int) -> bool:
        """Called for each command the core does not handle; return True when consumed."""
        return False
