from __future__ import annotations

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from tallgrass.content.creatures import CreatureStats

MOVE_CATEGORY_PHYSICAL = "physical"
MOVE_CATEGORY_SPECIAL = "special"
MOVE_CATEGORY_GUARD = "guard"
MOVE_CATEGORY_HEAL = "heal"
ATTACK_CATEGORIES = {MOVE_CATEGORY_PHYSICAL, MOVE_CATEGORY_SPECIAL}

ACK_NONE = "none"
ACK_DISMISSED = "dismissed"
ACK_CAUGHT = "caught"
ACK_ESCAPED = "escaped"

FADE_TIME_EPSILON = 1e-9


class Side(str, Enum):
    PLAYER = "player"
    WILD = "wild"


@dataclass(frozen=True)
class MoveDef:
    move_id: str
    name: str
    category: str


MOVE_TACKLE = MoveDef("tackle", "Tackle", MOVE_CATEGORY_PHYSICAL)
MOVE_PROJECTILE = MoveDef("projectile", "Projectile", MOVE_CATEGORY_SPECIAL)
MOVE_GUARD = MoveDef("guard", "Guard", MOVE_CATEGORY_GUARD)
MOVE_HEAL = MoveDef("heal", "Heal", MOVE_CATEGORY_HEAL)
MOVE_SET: tuple[MoveDef, ...] = (MOVE_TACKLE, MOVE_PROJECTILE, MOVE_GUARD, MOVE_HEAL)


def compute_damage(attack_stat: int, defense_stat: int) -> int:
    """``max(1, (attack * 2 - defense) / 5)`` with division truncated toward zero."""
    numerator = attack_stat * 2 - defense_stat
    quotient = abs(numerator) // 5
    if numerator < 0:
        quotient = -quotient
    return max(1, quotient)


def heal_amount(max_hp: int, fraction: float = 0.2) -> int:
    return max(1, round(max_hp * fraction))


@dataclass
class Combatant:
    side: Side
    stats: CreatureStats
    max_hp: int
    current_hp: int
    level: int
    guarded: bool = False
    fainted: bool = False
    sprite_opacity: float = 1.0
    faint_elapsed: float = 0.0

    @classmethod
    def from_stats(cls, side: Side, stats: CreatureStats) -> "Combatant":
        return cls(side=side, stats=stats, max_hp=stats.hp, current_hp=stats.hp, level=stats.level)

    @property
    def name(self) -> str:
        return self.stats.name

    @property
    def display_name(self) -> str:
        if self.side == Side.WILD:
            return f"Wild {self.stats.name}"
        return self.stats.name

    @property
    def speed(self) -> int:
        return self.stats.speed

    def to_dict(self) -> dict[str, Any]:
        return {
            "side": self.side.value,
            "name": self.name,
            "level": self.level,
            "max_hp": self.max_hp,
            "current_hp": self.current_hp,
            "guarded": self.guarded,
            "fainted": self.fainted,
            "sprite_opacity": round(self.sprite_opacity, 8),
        }


@dataclass
class TurnReport:
    player_move: MoveDef
    wild_move: MoveDef
    order: tuple[Side, Side]
    announcements: list[str] = field(default_factory=list)
    knocked_out: list[Side] = field(default_factory=list)
    level_up_to: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_move": self.player_move.move_id,
            "wild_move": self.wild_move.move_id,
            "order": [side.value for side in self.order],
            "announcements": list(self.announcements),
            "knocked_out": [side.value for side in self.knocked_out],
            "level_up_to": self.level_up_to,
        }


class Battle:
    """One wild battle: turn resolution, knockouts, the catch sub-flow and faint fades."""

    def __init__(
        self,
        player: Combatant,
        wild: Combatant,
        *,
        heal_fraction: float = 0.2,
        level_up_chance: float = 0.2,
        catch_threshold: float = 0.3,
    ) -> None:
        if player.side != Side.PLAYER or wild.side != Side.WILD:
            raise ValueError("battle requires one player-side and one wild-side combatant")
        self.player = player
        self.wild = wild
        self.heal_fraction = heal_fraction
        self.level_up_chance = level_up_chance
        self.catch_threshold = catch_threshold
        self.announcements: list[str] = []
        self.catch_pending = False
        self.wild_in_ball = False
        self.turns_taken = 0

    def combatant(self, side: Side) -> Combatant:
        return self.player if side == Side.PLAYER else self.wild

    def opponent_of(self, side: Side) -> Combatant:
        return self.wild if side == Side.PLAYER else self.player

    @property
    def awaiting_acknowledgement(self) -> bool:
        return bool(self.announcements)

    @property
    def is_over(self) -> bool:
        return self.player.fainted or self.wild.fainted

    def accepts_action(self) -> bool:
        return not self.awaiting_acknowledgement and not self.catch_pending and not self.is_over

    def turn_order(self, player_move: MoveDef, wild_move: MoveDef) -> tuple[Side, Side]:
        if self.player.speed >= self.wild.speed:
            order = (Side.PLAYER, Side.WILD)
        else:
            order = (Side.WILD, Side.PLAYER)
        # Only the slower side's guard can jump the queue, even when both sides guard.
        slower_move = wild_move if order[1] == Side.WILD else player_move
        if slower_move.category == MOVE_CATEGORY_GUARD:
            order = (order[1], order[0])
        return order

    def take_turn(self, player_move_index: int, rng: random.Random) -> TurnReport | None:
        if not self.accepts_action():
            return None
        if isinstance(player_move_index, bool) or not isinstance(player_move_index, int):
            return None
        if not 0 <= player_move_index < len(MOVE_SET):
            return None

        player_move = MOVE_SET[player_move_index]
        wild_move = MOVE_SET[rng.randrange(len(MOVE_SET))]
        order = self.turn_order(player_move, wild_move)
        report = TurnReport(player_move=player_move, wild_move=wild_move, order=order)

        for side in order:
            actor = self.combatant(side)
            if actor.current_hp <= 0:
                continue
            move = player_move if side == Side.PLAYER else wild_move
            self._execute_move(actor, self.opponent_of(side), move, report.announcements)

        for side in (Side.PLAYER, Side.WILD):
            combatant = self.combatant(side)
            if combatant.current_hp <= 0 and not combatant.fainted:
                combatant.current_hp = 0
                combatant.fainted = True
                report.knocked_out.append(side)
                report.announcements.append(f"{combatant.display_name} fainted!")

        if Side.WILD in report.knocked_out and rng.random() < self.level_up_chance:
            self.player.level += 1
            report.level_up_to = self.player.level
            report.announcements.append(f"{self.player.display_name} grew to level {self.player.level}!")

        self.turns_taken += 1
        self.announcements = list(report.announcements)
        return report

    def _execute_move(self, actor: Combatant, target: Combatant, move: MoveDef, announcements: list[str]) -> None:
        if move.category in ATTACK_CATEGORIES:
            if target.guarded:
                target.guarded = False
                announcements.append(
                    f"{actor.display_name} used {move.name}, but {target.display_name} blocked it!"
                )
                return
            if move.category == MOVE_CATEGORY_PHYSICAL:
                damage = compute_damage(actor.stats.attack, target.stats.defense)
            else:
                damage = compute_damage(actor.stats.special_attack, target.stats.special_defense)
            target.current_hp = max(0, target.current_hp - damage)
            announcements.append(f"{actor.display_name} used {move.name}! It dealt {damage} damage.")
        elif move.category == MOVE_CATEGORY_GUARD:
            actor.guarded = True
            announcements.append(f"{actor.display_name} is guarding!")
        elif move.category == MOVE_CATEGORY_HEAL:
            restored = min(heal_amount(actor.max_hp, self.heal_fraction), actor.max_hp - actor.current_hp)
            actor.current_hp += restored
            announcements.append(f"{actor.display_name} used {move.name} and restored {restored} HP!")

    def throw_ball(self) -> bool:
        if not self.accepts_action():
            return False
        self.catch_pending = True
        self.wild_in_ball = True
        self.announcements = [f"You threw a capture ball at {self.wild.display_name}!"]
        return True

    def catch_succeeds(self) -> bool:
        return self.wild.current_hp <= self.catch_threshold * self.wild.max_hp

    def acknowledge(self) -> str:
        if not self.announcements:
            return ACK_NONE

        if self.catch_pending:
            self.catch_pending = False
            if self.catch_succeeds():
                self.announcements = []
                return ACK_CAUGHT
            self.wild_in_ball = False
            self._clear_guards()
            self.announcements = [f"{self.wild.display_name} broke free!"]
            return ACK_ESCAPED

        self.announcements = []
        self._clear_guards()
        return ACK_DISMISSED

    def _clear_guards(self) -> None:
        self.player.guarded = False
        self.wild.guarded = False

    def advance_faint_fades(self, dt: float, duration: float) -> bool:
        """Fade fainted sprites; return True once any side has fully faded."""
        fully_faded = False
        for combatant in (self.player, self.wild):
            if not combatant.fainted:
                continue
            combatant.faint_elapsed += dt
            if combatant.faint_elapsed >= duration - FADE_TIME_EPSILON:
                combatant.sprite_opacity = 0.0
            else:
                combatant.sprite_opacity = max(0.0, 1.0 - combatant.faint_elapsed / duration)
            if combatant.sprite_opacity == 0.0:
                fully_faded = True
        return fully_faded

    def to_dict(self) -> dict[str, Any]:
        return {
            "player": self.player.to_dict(),
            "wild": self.wild.to_dict(),
            "announcements": list(self.announcements),
            "catch_pending": self.catch_pending,
            "wild_in_ball": self.wild_in_ball,
            "turns_taken": self.turns_taken,
        }
