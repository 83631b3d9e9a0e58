from typing import Any, Dict, List, Optional

from .services.scoring_service import ScoreService


def award_points(user_id: int, amount: int, reason: str, item_type: Optional[str] = None,
                 reference_id: Optional[int] = None, commit: bool = True):
    """Public API to award XP."""
    return ScoreService.award_points(user_id, amount, reason, item_type, reference_id, commit)


def award_reward(user_id: int, xp: int, currency: int, reason: str, item_type: Optional[str] = None,
                 reference_id: Optional[int] = None, commit: bool = True):
    """Public API to award XP and currency in one log entry."""
    return ScoreService.award(
        user_id, xp, reason, currency=currency, item_type=item_type, reference_id=reference_id, commit=commit
    )


def get_leaderboard(limit: int = 10, timeframe: str = 'all_time') -> List[Dict[str, Any]]:
    return ScoreService.get_leaderboard(timeframe, limit)
