"""Database models package for Boss Arena."""

from ..core.extensions import db

from .user import User
from ..modules.gamification.models import ScoreLog
from ..modules.boss_quiz.models import (
    BossQuizEvent,
    BossQuizProgress,
    BossQuizQuestion,
    DamageShard,
)

__all__ = [
    'db',
    'User',
    'ScoreLog',
    'BossQuizEvent',
    'BossQuizProgress',
    'BossQuizQuestion',
    'DamageShard',
]
