"""
Modifier Engine - Pure functions for boss quiz formula adjustments.

This module contains ONLY pure Python logic.
NO database, NO Flask, NO model dependencies allowed.

Modifiers are grouped in three categories that always run in the same order:

    FILTERING -> OFFENSE -> DEFENSE

FILTERING shapes the question pool (applied by the question sequencer),
OFFENSE adjusts damage dealt to the boss on a correct answer and DEFENSE
adjusts what happens to the student's HP.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence


class ModifierError(ValueError):
    """Raised when a modifier definition cannot be parsed."""


class ModifierType(str, Enum):
    PLAYER_DAMAGE_BOOST = 'PLAYER_DAMAGE_BOOST'
    BOSS_DAMAGE_BOOST = 'BOSS_DAMAGE_BOOST'
    HARD_ONLY = 'HARD_ONLY'
    DOUBLE_OR_NOTHING = 'DOUBLE_OR_NOTHING'
    CRIT_SURGE = 'CRIT_SURGE'
    ARMOR_BREAK = 'ARMOR_BREAK'
    HEALING_WAVE = 'HEALING_WAVE'
    SHIELD_WALL = 'SHIELD_WALL'
    STREAK_BONUS = 'STREAK_BONUS'
    GLASS_CANNON = 'GLASS_CANNON'
    LAST_STAND = 'LAST_STAND'
    TIME_PRESSURE = 'TIME_PRESSURE'


class ModifierCategory(Enum):
    FILTERING = 1
    OFFENSE = 2
    DEFENSE = 3


CATEGORY_ORDER = (ModifierCategory.FILTERING, ModifierCategory.OFFENSE, ModifierCategory.DEFENSE)

MODIFIER_CATEGORIES: Dict[ModifierType, ModifierCategory] = {
    ModifierType.HARD_ONLY: ModifierCategory.FILTERING,
    ModifierType.PLAYER_DAMAGE_BOOST: ModifierCategory.OFFENSE,
    ModifierType.CRIT_SURGE: ModifierCategory.OFFENSE,
    ModifierType.STREAK_BONUS: ModifierCategory.OFFENSE,
    ModifierType.LAST_STAND: ModifierCategory.OFFENSE,
    ModifierType.DOUBLE_OR_NOTHING: ModifierCategory.OFFENSE,
    ModifierType.BOSS_DAMAGE_BOOST: ModifierCategory.DEFENSE,
    ModifierType.ARMOR_BREAK: ModifierCategory.DEFENSE,
    ModifierType.HEALING_WAVE: ModifierCategory.DEFENSE,
    ModifierType.SHIELD_WALL: ModifierCategory.DEFENSE,
    ModifierType.GLASS_CANNON: ModifierCategory.DEFENSE,
    ModifierType.TIME_PRESSURE: ModifierCategory.DEFENSE,
}

# Types whose effect needs a numeric value.
VALUED_TYPES = frozenset({
    ModifierType.PLAYER_DAMAGE_BOOST,
    ModifierType.BOSS_DAMAGE_BOOST,
    ModifierType.CRIT_SURGE,
    ModifierType.HEALING_WAVE,
    ModifierType.SHIELD_WALL,
    ModifierType.STREAK_BONUS,
    ModifierType.TIME_PRESSURE,
})

DEFAULT_LABELS: Dict[ModifierType, str] = {
    ModifierType.PLAYER_DAMAGE_BOOST: 'Damage Boost +{value}',
    ModifierType.BOSS_DAMAGE_BOOST: 'Boss Fury +{value}',
    ModifierType.HARD_ONLY: 'Hard Questions Only',
    ModifierType.DOUBLE_OR_NOTHING: 'Double or Nothing',
    ModifierType.CRIT_SURGE: 'Crit Surge +{value}%',
    ModifierType.ARMOR_BREAK: 'Armor Break',
    ModifierType.HEALING_WAVE: 'Healing Wave +{value} HP',
    ModifierType.SHIELD_WALL: 'Shield Wall x{value}',
    ModifierType.STREAK_BONUS: 'Streak Bonus +{value}/streak',
    ModifierType.GLASS_CANNON: 'Glass Cannon',
    ModifierType.LAST_STAND: 'Last Stand',
    ModifierType.TIME_PRESSURE: 'Time Pressure -{value} HP',
}

LAST_STAND_MULTIPLIER = 1.5


@dataclass(frozen=True)
class Modifier:
    type: ModifierType
    value: Optional[int] = None
    label: Optional[str] = None

    @property
    def category(self) -> ModifierCategory:
        return MODIFIER_CATEGORIES[self.type]

    @property
    def display_label(self) -> str:
        if self.label:
            return self.label
        return DEFAULT_LABELS[self.type].format(value=self.value)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'type': self.type.value}
        if self.value is not None:
            data['value'] = self.value
        if self.label:
            data['label'] = self.label
        return data


@dataclass(frozen=True)
class BaseOutcome:
    """Unmodified result of one answer."""
    is_correct: bool
    damage: int = 0
    counter_damage: int = 0


@dataclass(frozen=True)
class ModifierContext:
    """Student and boss state the formulas depend on."""
    current_streak: int = 0
    boss_hp: int = 0
    boss_max_hp: int = 0
    crit_chance: float = 0.0
    crit_multiplier: float = 1.5
    # Uniform draw in [0, 1) made by the caller; the engine itself stays deterministic.
    crit_roll: float = 1.0
    armor_percent: float = 0.0
    shield_blocks_used: int = 0
    player_hp: int = 0
    player_max_hp: int = 0


@dataclass
class AdjustedOutcome:
    damage: int = 0
    is_crit: bool = False
    player_damage: int = 0
    damage_reduced: int = 0
    heal_amount: int = 0
    shield_blocked: bool = False
    attrition_damage: int = 0
    player_hp: int = 0
    knocked_out: bool = False
    applied: List[str] = field(default_factory=list)


class ActiveModifiers:
    """Lookup view over a modifier list; values of repeated types add up."""

    def __init__(self, modifiers: Iterable[Modifier]):
        self.modifiers: List[Modifier] = list(modifiers)
        self._values: Dict[ModifierType, int] = {}
        for modifier in self.modifiers:
            self._values[modifier.type] = self._values.get(modifier.type, 0) + (modifier.value or 0)

    def has(self, modifier_type: ModifierType) -> bool:
        return modifier_type in self._values

    def value(self, modifier_type: ModifierType) -> int:
        return self._values.get(modifier_type, 0)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse_modifier(raw: Any) -> Modifier:
    if isinstance(raw, Modifier):
        return raw
    if not isinstance(raw, Mapping):
        raise ModifierError(f"Modifier must be an object, got {type(raw).__name__}")

    type_name = str(raw.get('type') or '').strip().upper()
    try:
        modifier_type = ModifierType(type_name)
    except ValueError:
        raise ModifierError(f"Unknown modifier type: {raw.get('type')!r}") from None

    value = raw.get('value')
    if value is not None:
        try:
            value = int(value)
        except (TypeError, ValueError):
            raise ModifierError(f"{type_name} value must be an integer") from None
        if value < 0:
            raise ModifierError(f"{type_name} value must not be negative")
    if modifier_type in VALUED_TYPES and value is None:
        raise ModifierError(f"{type_name} requires a value")

    label = raw.get('label')
    return Modifier(type=modifier_type, value=value, label=str(label) if label else None)


def parse_modifiers(raw_list: Optional[Iterable[Any]]) -> List[Modifier]:
    """Parse the JSON modifier list stored on a quiz."""
    return [parse_modifier(raw) for raw in (raw_list or [])]


def sort_by_category(modifiers: Iterable[Modifier]) -> List[Modifier]:
    return sorted(modifiers, key=lambda m: CATEGORY_ORDER.index(m.category))


# ---------------------------------------------------------------------------
# FILTERING
# ---------------------------------------------------------------------------

def filter_question_pool(questions: Sequence[Any], modifiers: Iterable[Modifier]) -> List[Any]:
    """
    Apply FILTERING modifiers to a question pool.

    Questions only need a ``difficulty`` attribute. If HARD_ONLY leaves
    nothing to answer the full pool is kept.
    """
    active = ActiveModifiers(modifiers)
    pool = list(questions)
    if active.has(ModifierType.HARD_ONLY):
        hard = [q for q in pool if str(getattr(q, 'difficulty', '')).upper() == 'HARD']
        if hard:
            return hard
    return pool


def crit_chance_bonus(modifiers: Iterable[Modifier]) -> float:
    """CRIT_SURGE(v) adds v percentage points to the crit chance."""
    return ActiveModifiers(modifiers).value(ModifierType.CRIT_SURGE) / 100.0


# ---------------------------------------------------------------------------
# OFFENSE (correct answers only)
# ---------------------------------------------------------------------------

def _roll_crit(base, active, ctx, out):
    chance = ctx.crit_chance + crit_chance_bonus(active.modifiers)
    if ctx.crit_roll < chance:
        out.is_crit = True
        out.damage = int(math.floor(out.damage * ctx.crit_multiplier))
        if active.has(ModifierType.CRIT_SURGE):
            out.applied.append(ModifierType.CRIT_SURGE.value)


def _streak_bonus(base, active, ctx, out):
    if active.has(ModifierType.STREAK_BONUS) and ctx.current_streak > 0:
        out.damage += active.value(ModifierType.STREAK_BONUS) * ctx.current_streak
        out.applied.append(ModifierType.STREAK_BONUS.value)


def _last_stand(base, active, ctx, out):
    if not active.has(ModifierType.LAST_STAND) or ctx.boss_max_hp <= 0:
        return
    if ctx.boss_hp * 4 < ctx.boss_max_hp:
        out.damage = int(math.floor(out.damage * LAST_STAND_MULTIPLIER))
        out.applied.append(ModifierType.LAST_STAND.value)


def _double_damage_dealt(base, active, ctx, out):
    if active.has(ModifierType.DOUBLE_OR_NOTHING):
        out.damage *= 2
        out.applied.append(ModifierType.DOUBLE_OR_NOTHING.value)


def _player_damage_boost(base, active, ctx, out):
    if active.has(ModifierType.PLAYER_DAMAGE_BOOST):
        out.damage += active.value(ModifierType.PLAYER_DAMAGE_BOOST)
        out.applied.append(ModifierType.PLAYER_DAMAGE_BOOST.value)


# ---------------------------------------------------------------------------
# DEFENSE
# ---------------------------------------------------------------------------

def _time_pressure(base, active, ctx, out):
    if not active.has(ModifierType.TIME_PRESSURE):
        return
    out.attrition_damage = min(active.value(ModifierType.TIME_PRESSURE), out.player_hp)
    out.player_hp -= out.attrition_damage
    out.applied.append(ModifierType.TIME_PRESSURE.value)
    if out.player_hp == 0:
        # Knocked out by attrition: the answer no longer lands.
        out.knocked_out = True
        out.damage = 0
        out.is_crit = False


def _healing_wave(base, active, ctx, out):
    if out.knocked_out or not base.is_correct or not active.has(ModifierType.HEALING_WAVE):
        return
    out.heal_amount = max(0, min(active.value(ModifierType.HEALING_WAVE), ctx.player_max_hp - out.player_hp))
    out.player_hp += out.heal_amount
    out.applied.append(ModifierType.HEALING_WAVE.value)


def _counter_attack(base, active, ctx, out):
    if out.knocked_out or base.is_correct:
        return

    counter = base.counter_damage
    if active.has(ModifierType.BOSS_DAMAGE_BOOST):
        counter += active.value(ModifierType.BOSS_DAMAGE_BOOST)
        out.applied.append(ModifierType.BOSS_DAMAGE_BOOST.value)
    if active.has(ModifierType.DOUBLE_OR_NOTHING):
        counter *= 2
        out.applied.append(ModifierType.DOUBLE_OR_NOTHING.value)
    if active.has(ModifierType.GLASS_CANNON):
        counter *= 2
        out.applied.append(ModifierType.GLASS_CANNON.value)

    shield_size = active.value(ModifierType.SHIELD_WALL)
    if active.has(ModifierType.SHIELD_WALL) and ctx.shield_blocks_used < shield_size:
        out.shield_blocked = True
        out.player_damage = 0
        out.applied.append(ModifierType.SHIELD_WALL.value)
        return

    armor = ctx.armor_percent
    if active.has(ModifierType.ARMOR_BREAK) or active.has(ModifierType.GLASS_CANNON):
        armor = 0.0
        if active.has(ModifierType.ARMOR_BREAK):
            out.applied.append(ModifierType.ARMOR_BREAK.value)
    mitigated = int(math.floor(counter * max(0.0, min(armor, 100.0)) / 100.0))

    out.damage_reduced = mitigated
    out.player_damage = counter - mitigated
    out.player_hp = max(0, out.player_hp - out.player_damage)
    if out.player_hp == 0:
        out.knocked_out = True


StepFn = Callable[[BaseOutcome, ActiveModifiers, ModifierContext, AdjustedOutcome], None]

# Dispatch table: the step order inside each category is part of the formula.
PIPELINE: Dict[ModifierCategory, List[StepFn]] = {
    ModifierCategory.FILTERING: [],
    ModifierCategory.OFFENSE: [
        _roll_crit,
        _streak_bonus,
        _last_stand,
        _double_damage_dealt,
        _player_damage_boost,
    ],
    ModifierCategory.DEFENSE: [
        _time_pressure,
        _healing_wave,
        _counter_attack,
    ],
}


def apply_modifiers(
    base: BaseOutcome,
    modifiers: Iterable[Modifier],
    context: ModifierContext,
) -> AdjustedOutcome:
    """
    Run one answer through the modifier pipeline.

    Args:
        base: Unmodified damage (correct) or counter-damage (incorrect).
        modifiers: Active modifiers of the quiz.
        context: Student/boss state plus the pre-drawn crit roll.

    Returns:
        AdjustedOutcome with final damage, HP change and the list of
        modifiers that actually changed something.

    Examples:
        >>> ctx = ModifierContext(player_hp=100, player_max_hp=100)
        >>> apply_modifiers(BaseOutcome(True, damage=20), [], ctx).damage
        20
        >>> boost = [Modifier(ModifierType.PLAYER_DAMAGE_BOOST, 5)]
        >>> apply_modifiers(BaseOutcome(True, damage=20), boost, ctx).damage
        25
    """
    active = ActiveModifiers(modifiers)
    out = AdjustedOutcome(
        damage=max(0, base.damage) if base.is_correct else 0,
        player_hp=max(0, context.player_hp),
    )

    for category in CATEGORY_ORDER:
        if category is ModifierCategory.OFFENSE and not base.is_correct:
            continue
        for step in PIPELINE[category]:
            step(base, active, context, out)

    return out
