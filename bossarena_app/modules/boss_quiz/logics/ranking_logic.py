"""
Ranking Logic - Pure functions for boss reward tiers.

This module contains ONLY pure Python logic.
NO database, NO Flask, NO model dependencies allowed.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence

TIER_MULTIPLIERS: Sequence[float] = (1.5, 1.4, 1.3, 1.2, 1.1)
BASE_MULTIPLIER = 1.0

MIN_ATTEMPTS = 5
MIN_CORRECT = 1

_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class Contribution:
    user_id: int
    total_damage: int
    questions_attempted: int
    questions_correct: int
    # When the student's damage total last changed (reached its final value).
    reached_at: Optional[datetime] = None


@dataclass(frozen=True)
class RankedReward:
    user_id: int
    rank: int
    multiplier: float
    xp: int
    flux: int
    total_damage: int


def is_participant(
    questions_attempted: int,
    questions_correct: int,
    min_attempts: int = MIN_ATTEMPTS,
    min_correct: int = MIN_CORRECT,
) -> bool:
    """
    Examples:
        >>> is_participant(5, 1)
        True
        >>> is_participant(4, 4)
        False
    """
    return questions_attempted >= min_attempts and questions_correct >= min_correct


def multiplier_for_rank(rank: int) -> float:
    """Rank is 1-based."""
    if 1 <= rank <= len(TIER_MULTIPLIERS):
        return TIER_MULTIPLIERS[rank - 1]
    return BASE_MULTIPLIER


def _as_utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return _FAR_FUTURE
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def rank_contributions(
    contributions: Iterable[Contribution],
    min_attempts: int = MIN_ATTEMPTS,
    min_correct: int = MIN_CORRECT,
) -> List[Contribution]:
    """
    Participants only, best first.

    Highest total damage wins; equal totals go to whoever reached that total
    first; user_id keeps the order total.
    """
    eligible = [
        c for c in contributions
        if is_participant(c.questions_attempted, c.questions_correct, min_attempts, min_correct)
    ]
    return sorted(eligible, key=lambda c: (-c.total_damage, _as_utc(c.reached_at), c.user_id))


def compute_rewards(
    contributions: Iterable[Contribution],
    reward_xp: int,
    reward_flux: int,
    min_attempts: int = MIN_ATTEMPTS,
    min_correct: int = MIN_CORRECT,
) -> List[RankedReward]:
    """
    Ranked payouts for every participant. Non-participants are absent.

    Examples:
        >>> c = [Contribution(1, 50, 5, 3), Contribution(2, 80, 6, 4)]
        >>> [(r.user_id, r.xp) for r in compute_rewards(c, 100, 10)]
        [(2, 150), (1, 140)]
    """
    rewards = []
    for index, contribution in enumerate(rank_contributions(contributions, min_attempts, min_correct)):
        rank = index + 1
        multiplier = multiplier_for_rank(rank)
        rewards.append(RankedReward(
            user_id=contribution.user_id,
            rank=rank,
            multiplier=multiplier,
            xp=int(round((reward_xp or 0) * multiplier)),
            flux=int(round((reward_flux or 0) * multiplier)),
            total_damage=contribution.total_damage,
        ))
    return rewards


def leaderboard_rows(contributions: Sequence[Any]) -> List[Contribution]:
    """All contributors by damage, participants or not (for display)."""
    return sorted(contributions, key=lambda c: (-c.total_damage, _as_utc(c.reached_at), c.user_id))
