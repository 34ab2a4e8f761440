from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from typing import Any, ClassVar

from tallgrass.content.collection import CreatureStore
from tallgrass.content.creatures import FALLBACK_PARTY, GUEST_CREATURE, CreatureCatalog, CreatureStats
from tallgrass.content.tuning import SimulationTuning
from tallgrass.sim.battle import ACK_CAUGHT, ACK_ESCAPED, ACK_NONE, Battle, Combatant, Side
from tallgrass.sim.core import (
    ACKNOWLEDGE_COMMAND,
    CANCEL_SELECTION_COMMAND,
    CONFIRM_SELECTION_COMMAND,
    NAVIGATE_SELECTION_COMMAND,
    SELECT_MOVE_COMMAND,
    THROW_BALL_COMMAND,
    SimCommand,
    Simulation,
)
from tallgrass.sim.rng import (
    RNG_BATTLE_STREAM_NAME,
    RNG_ENCOUNTER_SETUP_STREAM_NAME,
    RNG_ENCOUNTER_TRIGGER_STREAM_NAME,
)
from tallgrass.sim.rules import RuleModule

logger = logging.getLogger(__name__)

PHASE_FADING_TO_WHITE = "fading_to_white"
PHASE_POKEBALL_GROWING = "pokeball_growing"
PHASE_POKEBALL_HOLDING = "pokeball_holding"
PHASE_POKEBALL_SHRINKING = "pokeball_shrinking"
PHASE_BATTLE_SETUP = "battle_setup"
PHASE_POKEMON_SELECTION = "pokemon_selection"
PHASE_BATTLE_READY = "battle_ready"

ENCOUNTER_STARTED_EVENT_TYPE = "encounter_started"
ENCOUNTER_PHASE_EVENT_TYPE = "encounter_phase"
ENCOUNTER_ENDED_EVENT_TYPE = "encounter_ended"
BATTLE_TURN_EVENT_TYPE = "battle_turn"
CATCH_OUTCOME_EVENT_TYPE = "catch_outcome"
LEVEL_UP_EVENT_TYPE = "level_up"
PERSISTENCE_OUTCOME_EVENT_TYPE = "persistence_outcome"

PARTY_SOURCE_STORE = "store"
PARTY_SOURCE_FALLBACK = "fallback"
PARTY_SOURCE_GUEST = "guest"

END_REASON_CAUGHT = "caught"
END_REASON_FAINTED = "fainted"

PHASE_TIME_EPSILON = 1e-9


@dataclass(frozen=True)
class FadingToWhite:
    name: ClassVar[str] = PHASE_FADING_TO_WHITE
    elapsed: float = 0.0
    fade_opacity: float = 0.0
    ball_scale: float = 0.0


@dataclass(frozen=True)
class PokeballGrowing:
    name: ClassVar[str] = PHASE_POKEBALL_GROWING
    elapsed: float
    ball_scale: float
    fade_opacity: float = 1.0


@dataclass(frozen=True)
class PokeballHolding:
    name: ClassVar[str] = PHASE_POKEBALL_HOLDING
    elapsed: float
    ball_scale: float
    fade_opacity: float = 1.0


@dataclass(frozen=True)
class PokeballShrinking:
    name: ClassVar[str] = PHASE_POKEBALL_SHRINKING
    elapsed: float
    ball_scale: float
    fade_opacity: float = 1.0


@dataclass(frozen=True)
class BattleSetup:
    name: ClassVar[str] = PHASE_BATTLE_SETUP
    fade_opacity: float = 1.0
    ball_scale: float = 0.0


@dataclass(frozen=True)
class PokemonSelection:
    name: ClassVar[str] = PHASE_POKEMON_SELECTION
    index: int = 0
    fade_opacity: float = 1.0
    ball_scale: float = 0.0


@dataclass(frozen=True)
class BattleReady:
    name: ClassVar[str] = PHASE_BATTLE_READY
    fade_opacity: float = 1.0
    ball_scale: float = 0.0


EncounterPhase = (
    FadingToWhite
    | PokeballGrowing
    | PokeballHolding
    | PokeballShrinking
    | BattleSetup
    | PokemonSelection
    | BattleReady
)


@dataclass
class EncounterSession:
    """Everything that lives only for one encounter; dropped as a whole when it ends."""

    started_tick: int
    cell: tuple[int, int]
    phase: EncounterPhase = field(default_factory=FadingToWhite)
    wild: CreatureStats | None = None
    owned: tuple[CreatureStats, ...] = ()
    party_source: str | None = None
    battle: Battle | None = None

    @property
    def phase_name(self) -> str:
        return self.phase.name

    @property
    def fade_opacity(self) -> float:
        return self.phase.fade_opacity

    @property
    def ball_scale(self) -> float:
        return self.phase.ball_scale

    @property
    def selection_index(self) -> int | None:
        if isinstance(self.phase, PokemonSelection):
            return self.phase.index
        return None

    def to_dict(self) -> dict[str, Any]:
        phase_payload = {
            key: round(value, 8) if isinstance(value, float) else value for key, value in asdict(self.phase).items()
        }
        return {
            "started_tick": self.started_tick,
            "cell": list(self.cell),
            "phase": self.phase.name,
            "phase_state": phase_payload,
            "wild": self.wild.name if self.wild is not None else None,
            "owned": [creature.name for creature in self.owned],
            "party_source": self.party_source,
            "battle": self.battle.to_dict() if self.battle is not None else None,
        }


def ball_scale_during_fade(elapsed: float, tuning: SimulationTuning) -> float:
    threshold = tuning.ball_growth_threshold * tuning.fade_duration
    if elapsed <= threshold:
        return 0.0
    return min(tuning.ball_target_scale, (elapsed - threshold) * tuning.ball_growth_rate)


class EncounterTriggerModule(RuleModule):
    """Rolls for a wild encounter each time the player enters a new wild-zone cell."""

    name = "encounter_trigger"
    _STATE_LAST_CELL = "last_cell"
    _STATE_ROLLS = "rolls"
    _STATE_ENCOUNTERS_STARTED = "encounters_started"

    def on_simulation_start(self, sim: Simulation) -> None:
        state = self._rules_state(sim)
        sim.set_rules_state(self.name, state)

    def on_tick_end(self, sim: Simulation, tick: int) -> None:
        state = self._rules_state(sim)
        current_cell = list(sim.state.player.cell)
        previous_cell = state[self._STATE_LAST_CELL]
        state[self._STATE_LAST_CELL] = current_cell

        if sim.encounter_active or previous_cell == current_cell:
            sim.set_rules_state(self.name, state)
            return

        tile = sim.state.grid.tile_at(current_cell[0], current_cell[1])
        if tile is None or not tile.wild_zone:
            sim.set_rules_state(self.name, state)
            return

        roll = sim.rng_stream(RNG_ENCOUNTER_TRIGGER_STREAM_NAME).random()
        state[self._STATE_ROLLS] = int(state[self._STATE_ROLLS]) + 1
        if roll < sim.tuning.encounter_probability:
            state[self._STATE_ENCOUNTERS_STARTED] = int(state[self._STATE_ENCOUNTERS_STARTED]) + 1
            start_encounter(sim, cell=(current_cell[0], current_cell[1]), roll=roll)
        sim.set_rules_state(self.name, state)

    def _rules_state(self, sim: Simulation) -> dict[str, Any]:
        state = sim.get_rules_state(self.name)
        last_cell = state.get(self._STATE_LAST_CELL)
        if not isinstance(last_cell, list) or len(last_cell) != 2:
            state[self._STATE_LAST_CELL] = list(sim.state.player.cell)
        state[self._STATE_ROLLS] = int(state.get(self._STATE_ROLLS, 0))
        state[self._STATE_ENCOUNTERS_STARTED] = int(state.get(self._STATE_ENCOUNTERS_STARTED, 0))
        return state


def start_encounter(sim: Simulation, *, cell: tuple[int, int], roll: float | None = None) -> EncounterSession:
    if sim.state.encounter is not None:
        raise ValueError("an encounter session is already active")
    session = EncounterSession(started_tick=sim.state.tick, cell=cell)
    sim.state.encounter = session
    sim.clear_held_directions()
    sim.append_trace(
        ENCOUNTER_STARTED_EVENT_TYPE,
        {"cell": list(cell), "roll": roll, "phase": session.phase_name},
    )
    return session


class EncounterPhaseModule(RuleModule):
    """Drives an active encounter from the white fade through to the end of the battle.

    Persistence goes through ``CreatureStore``; any failure there is logged and
    traced and the encounter carries on with in-memory state.
    """

    name = "encounter_phases"

    def __init__(
        self,
        catalog: CreatureCatalog,
        *,
        store: CreatureStore | None = None,
        user_id: str | None = None,
    ) -> None:
        if not catalog.creatures:
            raise ValueError("encounter catalog must contain at least one creature")
        self._catalog = catalog
        self._store = store
        self._user_id = user_id

    def on_tick_end(self, sim: Simulation, tick: int) -> None:
        session = sim.state.encounter
        if session is None or session.started_tick == tick:
            return

        tuning = sim.tuning
        dt = tuning.tick_seconds
        phase = session.phase

        if isinstance(phase, FadingToWhite):
            elapsed = phase.elapsed + dt
            scale = ball_scale_during_fade(elapsed, tuning)
            if elapsed >= tuning.fade_duration - PHASE_TIME_EPSILON:
                self._set_phase(sim, session, PokeballGrowing(elapsed=elapsed, ball_scale=scale))
            else:
                session.phase = FadingToWhite(
                    elapsed=elapsed,
                    fade_opacity=min(1.0, elapsed / tuning.fade_duration),
                    ball_scale=scale,
                )
        elif isinstance(phase, PokeballGrowing):
            elapsed = phase.elapsed + dt
            scale = ball_scale_during_fade(elapsed, tuning)
            if scale >= tuning.ball_target_scale - PHASE_TIME_EPSILON:
                self._set_phase(sim, session, PokeballHolding(elapsed=0.0, ball_scale=tuning.ball_target_scale))
            else:
                session.phase = PokeballGrowing(elapsed=elapsed, ball_scale=scale)
        elif isinstance(phase, PokeballHolding):
            elapsed = phase.elapsed + dt
            if elapsed >= tuning.ball_hold_duration - PHASE_TIME_EPSILON:
                self._set_phase(sim, session, PokeballShrinking(elapsed=0.0, ball_scale=tuning.ball_target_scale))
            else:
                session.phase = PokeballHolding(elapsed=elapsed, ball_scale=phase.ball_scale)
        elif isinstance(phase, PokeballShrinking):
            elapsed = phase.elapsed + dt
            if elapsed >= tuning.ball_shrink_duration - PHASE_TIME_EPSILON:
                session.phase = PokeballShrinking(elapsed=elapsed, ball_scale=0.0)
                self._setup_battle(sim, session)
            else:
                remaining = 1.0 - elapsed / tuning.ball_shrink_duration
                session.phase = PokeballShrinking(elapsed=elapsed, ball_scale=tuning.ball_target_scale * remaining)
        elif isinstance(phase, BattleReady):
            self._advance_faint_fade(sim, session)

    def on_command(self, sim: Simulation, command: SimCommand, command_index: int) -> bool:
        if command.command_type not in {
            SELECT_MOVE_COMMAND,
            THROW_BALL_COMMAND,
            NAVIGATE_SELECTION_COMMAND,
            CONFIRM_SELECTION_COMMAND,
            CANCEL_SELECTION_COMMAND,
            ACKNOWLEDGE_COMMAND,
        }:
            return False

        session = sim.state.encounter
        if session is None:
            return True

        if isinstance(session.phase, PokemonSelection):
            self._on_selection_command(sim, session, command)
        elif isinstance(session.phase, BattleReady) and session.battle is not None:
            self._on_battle_command(sim, session, command)
        return True

    def _set_phase(self, sim: Simulation, session: EncounterSession, phase: EncounterPhase) -> None:
        previous = session.phase.name
        session.phase = phase
        sim.append_trace(ENCOUNTER_PHASE_EVENT_TYPE, {"from": previous, "to": phase.name})

    def _setup_battle(self, sim: Simulation, session: EncounterSession) -> None:
        rng = sim.rng_stream(RNG_ENCOUNTER_SETUP_STREAM_NAME)
        session.wild = self._catalog.creatures[rng.randrange(len(self._catalog.creatures))]
        self._set_phase(sim, session, BattleSetup())

        owned, party_source = self._load_party(sim)
        session.owned = owned
        session.party_source = party_source
        if party_source == PARTY_SOURCE_GUEST:
            self._begin_battle(sim, session, GUEST_CREATURE)
            return
        self._set_phase(sim, session, PokemonSelection(index=0))

    def _load_party(self, sim: Simulation) -> tuple[tuple[CreatureStats, ...], str]:
        if self._user_id is None or self._store is None:
            return (), PARTY_SOURCE_GUEST
        try:
            owned = tuple(self._store.load_owned_creatures(self._user_id))
        except Exception as exc:
            logger.warning("loading owned creatures for %s failed: %s", self._user_id, exc)
            self._trace_persistence(sim, "load_owned_creatures", "error", detail=str(exc))
            return FALLBACK_PARTY, PARTY_SOURCE_FALLBACK
        self._trace_persistence(sim, "load_owned_creatures", "ok", detail=f"{len(owned)} owned")
        if not owned:
            return (), PARTY_SOURCE_GUEST
        return owned, PARTY_SOURCE_STORE

    def _begin_battle(self, sim: Simulation, session: EncounterSession, chosen: CreatureStats) -> None:
        if session.wild is None:
            raise ValueError("battle cannot begin before a wild creature is chosen")
        tuning = sim.tuning
        session.battle = Battle(
            Combatant.from_stats(Side.PLAYER, chosen),
            Combatant.from_stats(Side.WILD, session.wild),
            heal_fraction=tuning.heal_fraction,
            level_up_chance=tuning.level_up_chance,
            catch_threshold=tuning.catch_threshold,
        )
        self._set_phase(sim, session, BattleReady())

    def _on_selection_command(self, sim: Simulation, session: EncounterSession, command: SimCommand) -> None:
        phase = session.phase
        if not isinstance(phase, PokemonSelection) or not session.owned:
            return
        index = phase.index
        if command.command_type == NAVIGATE_SELECTION_COMMAND:
            delta = command.params.get("delta")
            if isinstance(delta, bool) or not isinstance(delta, int):
                return
            target = index + delta
            if 0 <= target < len(session.owned):
                session.phase = PokemonSelection(index=target)
        elif command.command_type == CONFIRM_SELECTION_COMMAND:
            self._begin_battle(sim, session, session.owned[index])
        elif command.command_type == CANCEL_SELECTION_COMMAND:
            self._begin_battle(sim, session, session.owned[0])

    def _on_battle_command(self, sim: Simulation, session: EncounterSession, command: SimCommand) -> None:
        battle = session.battle
        if battle is None:
            return
        if command.command_type == SELECT_MOVE_COMMAND:
            report = battle.take_turn(command.params.get("move_index"), sim.rng_stream(RNG_BATTLE_STREAM_NAME))
            if report is None:
                return
            sim.append_trace(BATTLE_TURN_EVENT_TYPE, report.to_dict())
            if report.level_up_to is not None:
                sim.append_trace(
                    LEVEL_UP_EVENT_TYPE,
                    {"creature": battle.player.name, "level": report.level_up_to},
                )
                if session.party_source == PARTY_SOURCE_STORE:
                    self._persist(
                        sim,
                        "save_level",
                        lambda store, user_id: store.save_level(user_id, battle.player.name, report.level_up_to),
                    )
                else:
                    self._trace_persistence(sim, "save_level", "skipped", detail=session.party_source)
        elif command.command_type == THROW_BALL_COMMAND:
            battle.throw_ball()
        elif command.command_type == ACKNOWLEDGE_COMMAND:
            outcome = battle.acknowledge()
            if outcome == ACK_NONE:
                return
            if outcome == ACK_CAUGHT:
                sim.append_trace(CATCH_OUTCOME_EVENT_TYPE, {"creature": battle.wild.name, "caught": True})
                self._persist(
                    sim,
                    "add_creature_to_collection",
                    lambda store, user_id: store.add_creature_to_collection(user_id, battle.wild.name),
                )
                self._end_session(sim, END_REASON_CAUGHT)
            elif outcome == ACK_ESCAPED:
                sim.append_trace(CATCH_OUTCOME_EVENT_TYPE, {"creature": battle.wild.name, "caught": False})

    def _advance_faint_fade(self, sim: Simulation, session: EncounterSession) -> None:
        battle = session.battle
        if battle is None or not battle.is_over:
            return
        if battle.advance_faint_fades(sim.tuning.tick_seconds, sim.tuning.faint_fade_duration):
            self._end_session(sim, END_REASON_FAINTED)

    def _end_session(self, sim: Simulation, reason: str) -> None:
        session = sim.state.encounter
        if session is None:
            return
        battle = session.battle
        sim.append_trace(
            ENCOUNTER_ENDED_EVENT_TYPE,
            {
                "reason": reason,
                "wild": session.wild.name if session.wild is not None else None,
                "player": battle.player.name if battle is not None else None,
                "player_fainted": battle.player.fainted if battle is not None else False,
                "wild_fainted": battle.wild.fainted if battle is not None else False,
            },
        )
        sim.state.encounter = None

    def _persist(self, sim: Simulation, operation: str, call: Callable[[CreatureStore, str], bool]) -> None:
        if self._store is None or self._user_id is None:
            self._trace_persistence(sim, operation, "skipped")
            return
        try:
            accepted = call(self._store, self._user_id)
        except Exception as exc:
            logger.warning("%s for %s failed: %s", operation, self._user_id, exc)
            self._trace_persistence(sim, operation, "error", detail=str(exc))
            return
        if not accepted:
            logger.info("%s for %s was rejected by the store", operation, self._user_id)
        self._trace_persistence(sim, operation, "ok" if accepted else "rejected")

    @staticmethod
    def _trace_persistence(sim: Simulation, operation: str, status: str, *, detail: str | None = None) -> None:
        sim.append_trace(
            PERSISTENCE_OUTCOME_EVENT_TYPE,
            {"operation": operation, "status": status, "detail": detail},
        )


def register_encounter_modules(
    sim: Simulation,
    catalog: CreatureCatalog,
    *,
    store: CreatureStore | None = None,
    user_id: str | None = None,
) -> None:
    sim.register_rule_module(EncounterTriggerModule())
    sim.register_rule_module(EncounterPhaseModule(catalog, store=store, user_id=user_id))
