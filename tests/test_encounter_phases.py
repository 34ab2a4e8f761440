import random
from dataclasses import replace

import pytest

from tallgrass.content.collection import CreatureStore, InMemoryCreatureStore
from tallgrass.content.creatures import FALLBACK_PARTY, GUEST_CREATURE, CreatureCatalog, CreatureStats
from tallgrass.sim.core import Simulation
from tallgrass.sim.encounters import (
    CATCH_OUTCOME_EVENT_TYPE,
    ENCOUNTER_ENDED_EVENT_TYPE,
    ENCOUNTER_PHASE_EVENT_TYPE,
    LEVEL_UP_EVENT_TYPE,
    PARTY_SOURCE_FALLBACK,
    PARTY_SOURCE_GUEST,
    PARTY_SOURCE_STORE,
    PERSISTENCE_OUTCOME_EVENT_TYPE,
    PHASE_BATTLE_READY,
    PHASE_BATTLE_SETUP,
    PHASE_FADING_TO_WHITE,
    PHASE_POKEBALL_GROWING,
    PHASE_POKEBALL_HOLDING,
    PHASE_POKEBALL_SHRINKING,
    PHASE_POKEMON_SELECTION,
    EncounterPhaseModule,
    register_encounter_modules,
    start_encounter,
)
from tallgrass.sim.grid import TileGrid
from tallgrass.sim.rng import RNG_BATTLE_STREAM_NAME

TACKLE = 0
TRANSITION_TICKS = 151

WILD = CreatureStats(
    name="Mossnail",
    type1="grass",
    hp=40,
    attack=30,
    defense=50,
    special_attack=40,
    special_defense=55,
    speed=20,
    level=2,
)
CATALOG = CreatureCatalog(schema_version=1, catalog_id="test", creatures=(WILD,))
OWNED = (
    CreatureStats(
        name="Emberkit",
        type1="fire",
        hp=39,
        attack=52,
        defense=43,
        special_attack=60,
        special_defense=50,
        speed=65,
        level=5,
    ),
    CreatureStats(
        name="Shellbud",
        type1="water",
        hp=44,
        attack=48,
        defense=65,
        special_attack=50,
        special_defense=64,
        speed=43,
        level=5,
    ),
)


class ScriptedRandom(random.Random):
    def __init__(self, *, values: tuple[float, ...] = (), ints: tuple[int, ...] = ()) -> None:
        super().__init__(0)
        self.values = list(values)
        self.ints = list(ints)

    def random(self) -> float:
        if self.values:
            return self.values.pop(0)
        return 0.99

    def randrange(self, start, stop=None, step=1):
        if self.ints:
            return self.ints.pop(0)
        return super().randrange(start, stop, step)


class BrokenStore(CreatureStore):
    def __init__(self) -> None:
        self.calls: list[str] = []

    def load_owned_creatures(self, user_id: str) -> list[CreatureStats]:
        self.calls.append("load")
        raise RuntimeError("database offline")

    def save_level(self, user_id: str, creature_name: str, new_level: int) -> bool:
        self.calls.append("save_level")
        raise RuntimeError("database offline")

    def add_creature_to_collection(self, user_id: str, creature_name: str) -> bool:
        self.calls.append("add")
        raise RuntimeError("database offline")


def _build_sim(*, store: CreatureStore | None = None, user_id: str | None = None) -> Simulation:
    sim = Simulation(TileGrid.from_rows(["GGG"]), seed=5, start_cell=(1, 0))
    register_encounter_modules(sim, CATALOG, store=store, user_id=user_id)
    return sim


def _store_with_party() -> InMemoryCreatureStore:
    return InMemoryCreatureStore(CATALOG, {"ash": list(OWNED)})


def _trace(sim: Simulation, event_type: str) -> list[dict]:
    return [entry for entry in sim.get_event_trace() if entry["event_type"] == event_type]


def _send(sim: Simulation, command_type: str, params: dict | None = None) -> None:
    sim.queue(command_type, params)
    sim.advance_ticks(1)


def test_phase_sequence_and_timing_for_guest() -> None:
    sim = _build_sim()
    start_encounter(sim, cell=(1, 0))

    sim.advance_ticks(TRANSITION_TICKS)

    transitions = [(entry["tick"], entry["params"]["from"], entry["params"]["to"]) for entry in _trace(sim, ENCOUNTER_PHASE_EVENT_TYPE)]
    assert transitions == [
        (60, PHASE_FADING_TO_WHITE, PHASE_POKEBALL_GROWING),
        (90, PHASE_POKEBALL_GROWING, PHASE_POKEBALL_HOLDING),
        (120, PHASE_POKEBALL_HOLDING, PHASE_POKEBALL_SHRINKING),
        (150, PHASE_POKEBALL_SHRINKING, PHASE_BATTLE_SETUP),
        (150, PHASE_BATTLE_SETUP, PHASE_BATTLE_READY),
    ]
    session = sim.state.encounter
    assert session.party_source == PARTY_SOURCE_GUEST
    assert session.battle.player.stats == GUEST_CREATURE
    assert session.battle.wild.current_hp == session.battle.wild.max_hp == WILD.hp


def test_fade_ramps_then_ball_grows_on_the_same_timer() -> None:
    sim = _build_sim()
    start_encounter(sim, cell=(1, 0))

    sim.advance_ticks(31)
    assert sim.state.encounter.fade_opacity == pytest.approx(0.5)
    assert sim.state.encounter.ball_scale == pytest.approx(0.0, abs=1e-6)

    sim.advance_ticks(15)
    assert sim.state.encounter.fade_opacity == pytest.approx(0.75)
    assert sim.state.encounter.ball_scale == pytest.approx(0.25)

    sim.advance_ticks(15)
    session = sim.state.encounter
    assert session.phase_name == PHASE_POKEBALL_GROWING
    assert session.fade_opacity == 1.0
    assert session.ball_scale == pytest.approx(0.5)
    assert session.phase.elapsed == pytest.approx(1.0)


def test_ball_holds_at_target_then_shrinks_linearly() -> None:
    sim = _build_sim()
    start_encounter(sim, cell=(1, 0))

    sim.advance_ticks(105)
    assert sim.state.encounter.phase_name == PHASE_POKEBALL_HOLDING
    assert sim.state.encounter.ball_scale == 1.0

    sim.advance_ticks(31)
    assert sim.state.encounter.phase_name == PHASE_POKEBALL_SHRINKING
    assert sim.state.encounter.ball_scale == pytest.approx(1.0 - 15 / 30)


def test_owned_party_goes_through_selection() -> None:
    store = _store_with_party()
    sim = _build_sim(store=store, user_id="ash")
    start_encounter(sim, cell=(1, 0))
    sim.advance_ticks(TRANSITION_TICKS)

    session = sim.state.encounter
    assert session.phase_name == PHASE_POKEMON_SELECTION
    assert session.party_source == PARTY_SOURCE_STORE
    assert session.selection_index == 0

    _send(sim, "navigate_selection", {"delta": 1})
    assert session.selection_index == 1
    _send(sim, "navigate_selection", {"delta": 1})
    assert session.selection_index == 1
    _send(sim, "navigate_selection", {"delta": -5})
    assert session.selection_index == 1

    _send(sim, "confirm_selection")
    assert session.phase_name == PHASE_BATTLE_READY
    assert session.battle.player.name == "Shellbud"
    assert session.battle.player.current_hp == 44


def test_cancel_selection_picks_first_creature() -> None:
    sim = _build_sim(store=_store_with_party(), user_id="ash")
    start_encounter(sim, cell=(1, 0))
    sim.advance_ticks(TRANSITION_TICKS)

    _send(sim, "navigate_selection", {"delta": 1})
    _send(sim, "cancel_selection")

    assert sim.state.encounter.battle.player.name == "Emberkit"


def test_empty_collection_uses_guest_creature() -> None:
    store = InMemoryCreatureStore(CATALOG, {})
    sim = _build_sim(store=store, user_id="nobody")
    start_encounter(sim, cell=(1, 0))
    sim.advance_ticks(TRANSITION_TICKS)

    session = sim.state.encounter
    assert session.phase_name == PHASE_BATTLE_READY
    assert session.battle.player.stats == GUEST_CREATURE


def test_failing_store_falls_back_to_builtin_party() -> None:
    store = BrokenStore()
    sim = _build_sim(store=store, user_id="ash")
    start_encounter(sim, cell=(1, 0))
    sim.advance_ticks(TRANSITION_TICKS)

    session = sim.state.encounter
    assert session.phase_name == PHASE_POKEMON_SELECTION
    assert session.party_source == PARTY_SOURCE_FALLBACK
    assert session.owned == FALLBACK_PARTY
    outcomes = _trace(sim, PERSISTENCE_OUTCOME_EVENT_TYPE)
    assert outcomes[-1]["params"]["operation"] == "load_owned_creatures"
    assert outcomes[-1]["params"]["status"] == "error"


def test_battle_commands_are_ignored_before_battle_ready() -> None:
    sim = _build_sim()
    start_encounter(sim, cell=(1, 0))

    _send(sim, "select_move", {"move_index": TACKLE})
    _send(sim, "throw_ball")
    _send(sim, "acknowledge")

    assert sim.state.encounter.phase_name == PHASE_FADING_TO_WHITE
    assert sim.state.encounter.battle is None


def test_knockout_fades_out_and_ends_session_once_with_level_up_saved() -> None:
    store = _store_with_party()
    sim = _build_sim(store=store, user_id="ash")
    sim.set_rng_stream(RNG_BATTLE_STREAM_NAME, ScriptedRandom(ints=(TACKLE,), values=(0.0,)))
    start_encounter(sim, cell=(1, 0))
    sim.advance_ticks(TRANSITION_TICKS)
    _send(sim, "confirm_selection")
    session = sim.state.encounter
    session.battle.wild.current_hp = 1

    _send(sim, "select_move", {"move_index": TACKLE})

    assert session.battle.wild.fainted is True
    assert session.battle.player.level == 6
    assert _trace(sim, LEVEL_UP_EVENT_TYPE)[-1]["params"] == {"creature": "Emberkit", "level": 6}
    assert store.load_owned_creatures("ash")[0].level == 6
    assert _trace(sim, PERSISTENCE_OUTCOME_EVENT_TYPE)[-1]["params"]["status"] == "ok"

    sim.advance_ticks(58)
    assert sim.state.encounter is session
    assert 0.0 < session.battle.wild.sprite_opacity < 1.0

    sim.advance_ticks(1)
    assert sim.state.encounter is None
    ended = _trace(sim, ENCOUNTER_ENDED_EVENT_TYPE)
    assert len(ended) == 1
    assert ended[0]["params"]["reason"] == "fainted"

    sim.advance_ticks(120)
    assert len(_trace(sim, ENCOUNTER_ENDED_EVENT_TYPE)) == 1


def test_successful_catch_ends_session_and_adds_to_collection() -> None:
    store = _store_with_party()
    sim = _build_sim(store=store, user_id="ash")
    start_encounter(sim, cell=(1, 0))
    sim.advance_ticks(TRANSITION_TICKS)
    _send(sim, "confirm_selection")
    sim.state.encounter.battle.wild.current_hp = 10

    _send(sim, "throw_ball")
    assert sim.state.encounter.battle.catch_pending is True
    _send(sim, "acknowledge")

    assert sim.state.encounter is None
    assert [creature.name for creature in store.load_owned_creatures("ash")] == ["Emberkit", "Shellbud", "Mossnail"]
    assert _trace(sim, CATCH_OUTCOME_EVENT_TYPE)[-1]["params"] == {"creature": "Mossnail", "caught": True}
    assert _trace(sim, ENCOUNTER_ENDED_EVENT_TYPE)[-1]["params"]["reason"] == "caught"


def test_failed_catch_keeps_battle_running() -> None:
    sim = _build_sim(store=_store_with_party(), user_id="ash")
    start_encounter(sim, cell=(1, 0))
    sim.advance_ticks(TRANSITION_TICKS)
    _send(sim, "confirm_selection")

    _send(sim, "throw_ball")
    _send(sim, "acknowledge")

    battle = sim.state.encounter.battle
    assert battle.wild.current_hp == 40
    assert battle.announcements == ["Wild Mossnail broke free!"]
    assert _trace(sim, CATCH_OUTCOME_EVENT_TYPE)[-1]["params"]["caught"] is False

    _send(sim, "acknowledge")
    assert battle.accepts_action() is True


def test_persistence_failures_do_not_stop_the_encounter() -> None:
    store = BrokenStore()
    sim = _build_sim(store=store, user_id="ash")
    start_encounter(sim, cell=(1, 0))
    sim.advance_ticks(TRANSITION_TICKS)
    _send(sim, "confirm_selection")
    sim.state.encounter.battle.wild.current_hp = 1

    _send(sim, "throw_ball")
    _send(sim, "acknowledge")

    assert sim.state.encounter is None
    assert store.calls == ["load", "add"]
    statuses = [entry["params"]["status"] for entry in _trace(sim, PERSISTENCE_OUTCOME_EVENT_TYPE)]
    assert statuses == ["error", "error"]


def test_guest_catch_skips_persistence() -> None:
    sim = _build_sim()
    start_encounter(sim, cell=(1, 0))
    sim.advance_ticks(TRANSITION_TICKS)
    sim.state.encounter.battle.wild.current_hp = 1

    _send(sim, "throw_ball")
    _send(sim, "acknowledge")

    assert sim.state.encounter is None
    assert _trace(sim, PERSISTENCE_OUTCOME_EVENT_TYPE)[-1]["params"]["status"] == "skipped"


def test_free_roam_resumes_after_encounter() -> None:
    sim = _build_sim()
    start_encounter(sim, cell=(1, 0))
    sim.advance_ticks(TRANSITION_TICKS)
    sim.state.encounter.battle.wild.current_hp = 1
    _send(sim, "throw_ball")
    _send(sim, "acknowledge")

    sim.queue("press_direction", {"direction": "right"})
    sim.advance_ticks(1)

    assert sim.state.player.cell == (2, 0)
    assert sim.state.player.moving is True


def test_phase_module_requires_a_non_empty_catalog() -> None:
    with pytest.raises(ValueError):
        EncounterPhaseModule(CreatureCatalog(schema_version=1, catalog_id="empty", creatures=()))


def test_double_knockout_ends_session_exactly_once() -> None:
    sim = _build_sim()
    start_encounter(sim, cell=(1, 0))
    sim.advance_ticks(TRANSITION_TICKS)
    battle = sim.state.encounter.battle
    for combatant in (battle.player, battle.wild):
        combatant.current_hp = 0
        combatant.fainted = True

    sim.advance_ticks(60)

    assert sim.state.encounter is None
    ended = _trace(sim, ENCOUNTER_ENDED_EVENT_TYPE)
    assert len(ended) == 1
    assert ended[0]["params"]["player_fainted"] is True
    assert ended[0]["params"]["wild_fainted"] is True

    sim.advance_ticks(120)
    assert len(_trace(sim, ENCOUNTER_ENDED_EVENT_TYPE)) == 1


def test_level_up_is_saved_to_the_chosen_duplicate() -> None:
    twins = [OWNED[0], replace(OWNED[0], level=20)]
    store = InMemoryCreatureStore(CATALOG, {"ash": twins})
    sim = _build_sim(store=store, user_id="ash")
    sim.set_rng_stream(RNG_BATTLE_STREAM_NAME, ScriptedRandom(ints=(TACKLE,), values=(0.0,)))
    start_encounter(sim, cell=(1, 0))
    sim.advance_ticks(TRANSITION_TICKS)
    _send(sim, "navigate_selection", {"delta": 1})
    _send(sim, "confirm_selection")
    sim.state.encounter.battle.wild.current_hp = 1

    _send(sim, "select_move", {"move_index": TACKLE})

    assert _trace(sim, LEVEL_UP_EVENT_TYPE)[-1]["params"] == {"creature": "Emberkit", "level": 21}
    assert [creature.level for creature in store.load_owned_creatures("ash")] == [5, 21]
