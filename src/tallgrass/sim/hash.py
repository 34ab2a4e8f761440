from __future__ import annotations

import hashlib
import json

from tallgrass.sim.core import Simulation


def simulation_hash(simulation: Simulation) -> str:
    player = simulation.state.player
    encounter = simulation.state.encounter
    payload = {
        "seed": simulation.seed,
        "rng_state": simulation.rng_state_payload(),
        "tick": simulation.state.tick,
        "tuning": simulation.tuning.to_dict(),
        "grid": simulation.state.grid.to_dict(),
        "player": {
            **player.to_dict(),
            "visual_x": round(player.visual_x, 8),
            "visual_y": round(player.visual_y, 8),
        },
        "encounter": encounter.to_dict() if encounter is not None else None,
        "input_log": [command.to_dict() for command in simulation.input_log],
        "rules_state": dict(sorted(simulation.state.rules_state.items())),
        "event_trace": simulation.get_event_trace(),
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()
