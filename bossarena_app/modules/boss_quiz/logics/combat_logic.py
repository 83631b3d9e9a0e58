"""
Combat Logic - Pure functions behind the boss quiz combat resolver.

This module contains ONLY pure Python logic.
NO database, NO Flask, NO model dependencies allowed.

Character stats (tech / focus / analysis / charisma) come from equipped gear
and translate into combat numbers:

    tech      -> attack bonus added to every hit
    focus     -> crit chance and crit multiplier
    analysis  -> armor (percent of counter-damage mitigated)
    charisma  -> max HP in boss fights (base 100 + 5 per charisma above 10)
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional

from .modifier_engine import (
    AdjustedOutcome,
    BaseOutcome,
    Modifier,
    ModifierContext,
    apply_modifiers,
)

STAT_KEYS = ('tech', 'focus', 'analysis', 'charisma')
BASE_STAT_VALUE = 10

BASE_MAX_HP = 100
HP_PER_CHARISMA = 5
MIN_MAX_HP = 50
MAX_CRIT_CHANCE = 0.5
BASE_CRIT_MULTIPLIER = 1.5
MAX_CRIT_MULTIPLIER_BONUS = 1.0
MAX_ARMOR_PERCENT = 60.0
TECH_PER_ATTACK_POINT = 5

DIFFICULTIES = ('EASY', 'MEDIUM', 'HARD')


@dataclass(frozen=True)
class CombatProfile:
    max_hp: int = BASE_MAX_HP
    crit_chance: float = 0.0
    crit_multiplier: float = BASE_CRIT_MULTIPLIER
    armor_percent: float = 0.0
    attack_bonus: int = 0


def calculate_player_stats(equipped: Optional[Mapping[str, Any]]) -> Dict[str, int]:
    """
    Base stats plus the ``stats`` of every equipped item.

    Examples:
        >>> calculate_player_stats(None)
        {'tech': 10, 'focus': 10, 'analysis': 10, 'charisma': 10}
        >>> calculate_player_stats({'head': {'stats': {'focus': 4}}})['focus']
        14
    """
    stats = {key: BASE_STAT_VALUE for key in STAT_KEYS}
    if not equipped:
        return stats

    for item in equipped.values():
        if not item:
            continue
        for key, value in (item.get('stats') or {}).items():
            if key in stats:
                try:
                    stats[key] += int(value)
                except (TypeError, ValueError):
                    continue
    return stats


def derive_combat_stats(stats: Mapping[str, int]) -> CombatProfile:
    """Turn character stats into combat numbers. Base stats give a neutral profile."""
    tech = int(stats.get('tech', BASE_STAT_VALUE))
    focus = int(stats.get('focus', BASE_STAT_VALUE))
    analysis = int(stats.get('analysis', BASE_STAT_VALUE))
    charisma = int(stats.get('charisma', BASE_STAT_VALUE))

    focus_above = max(0, focus - BASE_STAT_VALUE)
    return CombatProfile(
        max_hp=max(MIN_MAX_HP, BASE_MAX_HP + HP_PER_CHARISMA * (charisma - BASE_STAT_VALUE)),
        crit_chance=min(MAX_CRIT_CHANCE, focus_above * 0.01),
        crit_multiplier=BASE_CRIT_MULTIPLIER + min(MAX_CRIT_MULTIPLIER_BONUS, focus_above * 0.02),
        armor_percent=min(MAX_ARMOR_PERCENT, max(0, analysis - BASE_STAT_VALUE) * 0.5),
        attack_bonus=max(0, tech - BASE_STAT_VALUE) // TECH_PER_ATTACK_POINT,
    )


def combat_profile_for(equipped: Optional[Mapping[str, Any]]) -> CombatProfile:
    return derive_combat_stats(calculate_player_stats(equipped))


def is_correct_choice(correct_index: int, choice_index: int) -> bool:
    return int(correct_index) == int(choice_index)


def base_hit_damage(damage_per_correct: int, damage_bonus: Optional[int], attack_bonus: int = 0) -> int:
    return max(0, int(damage_per_correct or 0) + int(damage_bonus or 0) + int(attack_bonus or 0))


@dataclass(frozen=True)
class StudentCombatState:
    """The part of a student's progress the formulas read."""
    player_hp: int
    player_max_hp: int
    current_streak: int = 0
    shield_blocks_used: int = 0


def resolve_hit(
    *,
    is_correct: bool,
    damage_per_correct: int,
    damage_bonus: Optional[int],
    boss_damage: int,
    profile: CombatProfile,
    state: StudentCombatState,
    modifiers: Iterable[Modifier],
    boss_hp: int,
    boss_max_hp: int,
    crit_roll: float,
) -> AdjustedOutcome:
    """
    Compute the full effect of one answer.

    Correct answers deal ``damage_per_correct + damage_bonus + attack_bonus``
    before modifiers; wrong answers take ``boss_damage`` before modifiers and
    armor.
    """
    base = BaseOutcome(
        is_correct=is_correct,
        damage=base_hit_damage(damage_per_correct, damage_bonus, profile.attack_bonus) if is_correct else 0,
        counter_damage=0 if is_correct else max(0, int(boss_damage or 0)),
    )
    context = ModifierContext(
        current_streak=state.current_streak,
        boss_hp=boss_hp,
        boss_max_hp=boss_max_hp,
        crit_chance=profile.crit_chance,
        crit_multiplier=profile.crit_multiplier,
        crit_roll=crit_roll,
        armor_percent=profile.armor_percent,
        shield_blocks_used=state.shield_blocks_used,
        player_hp=state.player_hp,
        player_max_hp=state.player_max_hp,
    )
    return apply_modifiers(base, modifiers, context)


@dataclass
class CombatStatsDelta:
    """Increments to apply to a progress row for one resolved answer."""
    total_damage_dealt: int = 0
    critical_hits: int = 0
    damage_reduced: int = 0
    boss_damage_taken: int = 0
    shield_blocks_used: int = 0
    healing_received: int = 0
    questions_attempted: int = 1
    questions_correct: int = 0
    correct_by_difficulty: Dict[str, int] = field(default_factory=dict)
    incorrect_by_difficulty: Dict[str, int] = field(default_factory=dict)
    # None keeps the streak, 0 resets it, 1 extends it.
    streak_step: Optional[int] = None


def normalize_difficulty(difficulty: Optional[str]) -> str:
    value = str(difficulty or 'MEDIUM').upper()
    return value if value in DIFFICULTIES else 'MEDIUM'


def stats_delta_for(is_correct: bool, difficulty: Optional[str], outcome: AdjustedOutcome) -> CombatStatsDelta:
    """
    Translate an adjusted outcome into stat increments.

    A correct answer that TIME_PRESSURE knocked out before it landed counts
    as attempted only and ends the streak.
    """
    level = normalize_difficulty(difficulty)
    delta = CombatStatsDelta(
        damage_reduced=outcome.damage_reduced,
        boss_damage_taken=outcome.player_damage + outcome.attrition_damage,
        shield_blocks_used=1 if outcome.shield_blocked else 0,
        healing_received=outcome.heal_amount,
    )
    if is_correct and outcome.knocked_out:
        delta.streak_step = 0
    elif is_correct:
        delta.questions_correct = 1
        delta.correct_by_difficulty = {level: 1}
        delta.total_damage_dealt = outcome.damage
        delta.critical_hits = 1 if outcome.is_crit else 0
        delta.streak_step = 1
    else:
        delta.incorrect_by_difficulty = {level: 1}
        delta.streak_step = 0
    return delta
