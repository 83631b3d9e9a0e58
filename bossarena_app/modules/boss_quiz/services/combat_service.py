"""
Combat Resolver
Server-side resolution of one student's answer to one boss quiz question.
"""
import random
from datetime import datetime
from typing import Optional, Tuple

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from bossarena_app.core.error_handlers import (
    ArenaError,
    AuthorizationError,
    ConcurrencyConflictError,
    KnockedOutError,
    NotFoundError,
    ValidationError,
)
from bossarena_app.core.extensions import db
from bossarena_app.core.signals import boss_damage_dealt, boss_progress_updated
from bossarena_app.utils.time_utils import utcnow
from ..logics.combat_logic import (
    StudentCombatState,
    combat_profile_for,
    is_correct_choice,
    resolve_hit,
    stats_delta_for,
)
from ..logics.modifier_engine import ModifierError
from ..logics.question_sequencer import questions_for
from ..models import BossQuizEvent, BossQuizQuestion, DamageShard
from ..schemas import AnswerOutcome
from .ledger_service import DamageLedger
from .progress_service import ProgressTracker
from .reward_service import RewardDistributor


class CombatResolver:

    @staticmethod
    def resolve_answer(
        quiz_id: int,
        user,
        question_id: int,
        choice_index: int,
        *,
        rng: Optional[random.Random] = None,
        now: Optional[datetime] = None,
    ) -> AnswerOutcome:
        """
        Validate, compute and persist one answer.

        Shard and progress are committed together. Lost optimistic-lock races
        are retried up to BOSS_QUIZ_MAX_RETRIES times; a repeated submission
        comes back with ``already_answered=True`` and changes nothing.
        """
        rng = rng or random.Random()
        crit_roll = rng.random()
        max_retries = max(1, current_app.config.get('BOSS_QUIZ_MAX_RETRIES', 3))

        attempt = 0
        while True:
            attempt += 1
            try:
                outcome, shard = CombatResolver._resolve_once(
                    quiz_id, user, question_id, choice_index, crit_roll, now or utcnow()
                )
                if outcome.already_answered:
                    db.session.rollback()
                    return outcome
                db.session.commit()
                break
            except (StaleDataError, IntegrityError) as exc:
                db.session.rollback()
                current_app.logger.warning(
                    f"[BossQuiz] Conflict on quiz={quiz_id} user={user.user_id} "
                    f"question={question_id} (attempt {attempt}/{max_retries}): {exc.__class__.__name__}"
                )
                if attempt >= max_retries:
                    raise ConcurrencyConflictError(attempts=attempt) from exc
            except ArenaError:
                db.session.rollback()
                raise

        return CombatResolver._after_commit(quiz_id, user, outcome, shard)

    @staticmethod
    def _load(quiz_id: int, question_id: int) -> Tuple[BossQuizEvent, BossQuizQuestion]:
        quiz = db.session.get(BossQuizEvent, quiz_id)
        if not quiz:
            raise NotFoundError('Boss quiz not found', resource='boss_quiz')
        question = db.session.get(BossQuizQuestion, question_id)
        if not question or question.quiz_id != quiz.quiz_id:
            raise NotFoundError('Question not found in this boss quiz', resource='boss_quiz_question')
        return quiz, question

    @staticmethod
    def _resolve_once(quiz_id, user, question_id, choice_index, crit_roll, now):
        quiz, question = CombatResolver._load(quiz_id, question_id)
        if not user.is_admin and not quiz.is_visible_to(user.class_type, user.section):
            raise AuthorizationError('This boss quiz is not available for your class')

        existing = ProgressTracker.get(user.user_id, quiz.quiz_id)
        if ProgressTracker.has_answered(existing, question.question_id):
            return AnswerOutcome(
                already_answered=True,
                player_hp=existing.player_hp,
                player_max_hp=existing.player_max_hp,
                knocked_out=existing.knocked_out,
                boss_hp=DamageLedger.current_hp(quiz),
            ), None

        if not quiz.is_active:
            raise ValidationError('This boss quiz is not active', reason='INACTIVE')
        if quiz.is_expired(now):
            raise ValidationError('This boss quiz has expired', reason='EXPIRED')

        aggregate = DamageLedger.aggregate_damage(quiz.quiz_id)
        if quiz.rewards_distributed or aggregate >= quiz.max_hp:
            raise ValidationError('This boss has already been defeated', reason='DEFEATED')

        try:
            modifiers = quiz.modifier_list
        except ModifierError as exc:
            raise ValidationError(f'Invalid modifier configuration: {exc}', reason='BAD_MODIFIER') from exc

        pool_ids = {q.question_id for q in questions_for(quiz.questions, user.user_id, quiz.quiz_id, modifiers)}
        if question.question_id not in pool_ids:
            raise ValidationError('Question is not part of your question set', reason='NOT_IN_POOL')

        options = question.options or []
        if not isinstance(choice_index, int) or isinstance(choice_index, bool) \
                or not 0 <= choice_index < len(options):
            raise ValidationError('Choice index is out of range', reason='INVALID_CHOICE')

        profile = combat_profile_for(user.equipped)
        progress = existing or ProgressTracker.get_or_create(quiz, user, profile)
        if progress.knocked_out or progress.player_hp <= 0:
            raise KnockedOutError()

        correct = is_correct_choice(question.correct_index, choice_index)
        result = resolve_hit(
            is_correct=correct,
            damage_per_correct=quiz.damage_per_correct,
            damage_bonus=question.damage_bonus,
            boss_damage=quiz.boss_damage,
            profile=profile,
            state=StudentCombatState(
                player_hp=progress.player_hp,
                player_max_hp=progress.player_max_hp,
                current_streak=progress.current_streak,
                shield_blocks_used=progress.shield_blocks_used,
            ),
            modifiers=modifiers,
            boss_hp=max(0, quiz.max_hp - aggregate),
            boss_max_hp=quiz.max_hp,
            crit_roll=crit_roll,
        )

        delta = stats_delta_for(correct, question.difficulty, result)
        ProgressTracker.apply_stats(progress, delta, result, now)
        ProgressTracker.mark_answered(progress, question.question_id)

        shard = None
        if result.damage > 0:
            shard = DamageLedger.record_damage(
                quiz.quiz_id,
                user.user_id,
                question.question_id,
                result.damage,
                is_crit=result.is_crit,
                timestamp=now,
            )

        outcome = AnswerOutcome(
            correct=correct,
            damage=result.damage,
            is_crit=result.is_crit,
            player_damage=result.player_damage,
            player_hp=progress.player_hp,
            player_max_hp=progress.player_max_hp,
            knocked_out=progress.knocked_out,
            heal_amount=result.heal_amount,
            shield_blocked=result.shield_blocked,
            modifiers_applied=list(result.applied),
        )
        return outcome, shard

    @staticmethod
    def _after_commit(quiz_id: int, user, outcome: AnswerOutcome, shard: Optional[DamageShard]) -> AnswerOutcome:
        quiz = db.session.get(BossQuizEvent, quiz_id)
        aggregate = DamageLedger.aggregate_damage(quiz_id)
        outcome.boss_hp = max(0, quiz.max_hp - aggregate)
        outcome.boss_defeated = aggregate >= quiz.max_hp

        current_app.logger.info(
            f"[BossQuiz] user={user.user_id} quiz={quiz_id} correct={outcome.correct} "
            f"damage={outcome.damage} crit={outcome.is_crit} boss_hp={outcome.boss_hp}"
        )

        if shard is not None:
            boss_damage_dealt.send(
                None,
                quiz_id=quiz_id,
                user_id=user.user_id,
                question_id=shard.question_id,
                damage=shard.damage,
                is_crit=shard.is_crit,
                aggregate_damage=aggregate,
            )
        boss_progress_updated.send(None, quiz_id=quiz_id, user_id=user.user_id)

        if outcome.boss_defeated:
            try:
                RewardDistributor.distribute_if_defeated(quiz_id)
            except SQLAlchemyError:
                # The answer is committed; the sweep job retries the payout.
                current_app.logger.error(
                    f"[BossQuiz] Deferred reward distribution for quiz {quiz_id}", exc_info=True
                )

        return outcome
