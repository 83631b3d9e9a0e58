"""
Progress Tracker
Per-student combat state for one boss quiz.
"""
from datetime import datetime
from typing import List, Optional

from flask import current_app

from bossarena_app.core.extensions import db
from bossarena_app.utils.time_utils import utcnow
from ..logics.combat_logic import CombatProfile, CombatStatsDelta
from ..logics.modifier_engine import AdjustedOutcome
from ..logics.ranking_logic import is_participant
from ..models import BossQuizProgress


class ProgressTracker:
    """Read-modify-write helpers. Nothing here commits; the resolver does."""

    @staticmethod
    def get(user_id: int, quiz_id: int) -> Optional[BossQuizProgress]:
        return BossQuizProgress.query.filter_by(user_id=user_id, quiz_id=quiz_id).first()

    @staticmethod
    def get_or_create(quiz, user, combat: CombatProfile) -> BossQuizProgress:
        progress = ProgressTracker.get(user.user_id, quiz.quiz_id)
        if progress:
            return progress

        progress = BossQuizProgress(
            quiz_id=quiz.quiz_id,
            user_id=user.user_id,
            answered_question_ids=[],
            player_hp=combat.max_hp,
            player_max_hp=combat.max_hp,
            knocked_out=False,
            total_damage_dealt=0,
            critical_hits=0,
            damage_reduced=0,
            boss_damage_taken=0,
            correct_easy=0,
            correct_medium=0,
            correct_hard=0,
            incorrect_easy=0,
            incorrect_medium=0,
            incorrect_hard=0,
            current_streak=0,
            longest_streak=0,
            shield_blocks_used=0,
            healing_received=0,
            questions_attempted=0,
            questions_correct=0,
            participated=False,
        )
        db.session.add(progress)
        current_app.logger.debug(f"[BossQuiz] New progress for user={user.user_id} quiz={quiz.quiz_id}")
        return progress

    @staticmethod
    def list_for_quiz(quiz_id: int) -> List[BossQuizProgress]:
        return BossQuizProgress.query.filter_by(quiz_id=quiz_id)\
            .order_by(BossQuizProgress.user_id).all()

    @staticmethod
    def has_answered(progress: Optional[BossQuizProgress], question_id: int) -> bool:
        if progress is None:
            return False
        return question_id in (progress.answered_question_ids or [])

    @staticmethod
    def mark_answered(progress: BossQuizProgress, question_id: int) -> None:
        # Reassign: in-place JSON mutation is not tracked.
        progress.answered_question_ids = list(progress.answered_question_ids or []) + [question_id]

    @staticmethod
    def apply_stats(
        progress: BossQuizProgress,
        delta: CombatStatsDelta,
        outcome: AdjustedOutcome,
        now: Optional[datetime] = None,
    ) -> BossQuizProgress:
        """Fold one answer's stat increments and HP change into the row."""
        now = now or utcnow()

        progress.total_damage_dealt += delta.total_damage_dealt
        progress.critical_hits += delta.critical_hits
        progress.damage_reduced += delta.damage_reduced
        progress.boss_damage_taken += delta.boss_damage_taken
        progress.shield_blocks_used += delta.shield_blocks_used
        progress.healing_received += delta.healing_received
        progress.questions_attempted += delta.questions_attempted
        progress.questions_correct += delta.questions_correct

        for level, count in delta.correct_by_difficulty.items():
            column = f'correct_{level.lower()}'
            setattr(progress, column, getattr(progress, column) + count)
        for level, count in delta.incorrect_by_difficulty.items():
            column = f'incorrect_{level.lower()}'
            setattr(progress, column, getattr(progress, column) + count)

        if delta.streak_step == 0:
            progress.current_streak = 0
        elif delta.streak_step:
            progress.current_streak += delta.streak_step
            progress.longest_streak = max(progress.longest_streak, progress.current_streak)

        if delta.total_damage_dealt > 0:
            progress.damage_reached_at = now

        progress.player_hp = max(0, outcome.player_hp)
        if outcome.knocked_out or progress.player_hp == 0:
            progress.knocked_out = True

        progress.participated = is_participant(
            progress.questions_attempted,
            progress.questions_correct,
            current_app.config.get('BOSS_QUIZ_PARTICIPATION_MIN_ATTEMPTS', 5),
            current_app.config.get('BOSS_QUIZ_PARTICIPATION_MIN_CORRECT', 1),
        )
        return progress
