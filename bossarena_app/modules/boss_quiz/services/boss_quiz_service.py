"""
Boss Quiz Service
Admin management of boss quiz events and read helpers for listings.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from flask import current_app
from pydantic import ValidationError as PydanticValidationError

from bossarena_app.core.error_handlers import NotFoundError, ValidationError
from bossarena_app.core.extensions import db
from bossarena_app.core.signals import boss_quiz_changed
from bossarena_app.utils.time_utils import ensure_utc, utcnow
from ..models import BossQuizEvent, BossQuizProgress, BossQuizQuestion, DamageShard
from ..schemas import BossQuizDTO, BossQuizPayload
from .ledger_service import DamageLedger


def _payload_errors(exc: PydanticValidationError) -> Dict[str, str]:
    errors = {}
    for err in exc.errors():
        loc = '.'.join(str(part) for part in err.get('loc', ())) or '__root__'
        errors[loc] = err.get('msg', 'Invalid value')
    return errors


class BossQuizService:

    @staticmethod
    def parse_payload(data: Optional[Dict[str, Any]]) -> BossQuizPayload:
        try:
            return BossQuizPayload(**(data or {}))
        except PydanticValidationError as exc:
            raise ValidationError('Invalid boss quiz definition', errors=_payload_errors(exc)) from exc

    @staticmethod
    def get_quiz(quiz_id: int) -> BossQuizEvent:
        quiz = db.session.get(BossQuizEvent, quiz_id)
        if not quiz:
            raise NotFoundError('Boss quiz not found', resource='boss_quiz')
        return quiz

    @staticmethod
    def _apply_definition(quiz: BossQuizEvent, payload: BossQuizPayload) -> None:
        quiz.boss_name = payload.boss_name
        quiz.description = payload.description
        quiz.class_type = payload.class_type
        quiz.target_sections = payload.target_sections or None
        quiz.max_hp = payload.max_hp
        quiz.damage_per_correct = payload.damage_per_correct
        quiz.boss_damage = payload.boss_damage if payload.boss_damage is not None \
            else current_app.config.get('BOSS_QUIZ_DEFAULT_BOSS_DAMAGE', 10)
        quiz.reward_xp = payload.reward_xp
        quiz.reward_flux = payload.reward_flux
        quiz.reward_item_rarity = payload.reward_item_rarity
        quiz.modifiers = payload.modifiers
        quiz.is_active = payload.is_active
        quiz.deadline = ensure_utc(payload.deadline)

    @staticmethod
    def _replace_questions(quiz: BossQuizEvent, payload: BossQuizPayload) -> None:
        quiz.questions = [
            BossQuizQuestion(
                stem=q.stem,
                options=list(q.options),
                correct_index=q.correct_index,
                difficulty=q.difficulty,
                damage_bonus=q.damage_bonus,
                position=index,
            )
            for index, q in enumerate(payload.questions)
        ]

    @staticmethod
    def create_quiz(data: Dict[str, Any], created_by: Optional[int] = None) -> BossQuizEvent:
        payload = BossQuizService.parse_payload(data)

        quiz = BossQuizEvent(created_by=created_by, rewards_distributed=False)
        BossQuizService._apply_definition(quiz, payload)
        BossQuizService._replace_questions(quiz, payload)
        db.session.add(quiz)
        db.session.commit()

        current_app.logger.info(
            f"[BossQuiz] Created quiz {quiz.quiz_id} '{quiz.boss_name}' "
            f"(hp={quiz.max_hp}, questions={len(quiz.questions)})"
        )
        boss_quiz_changed.send(None, quiz_id=quiz.quiz_id)
        return quiz

    @staticmethod
    def update_quiz(quiz_id: int, data: Dict[str, Any]) -> BossQuizEvent:
        """
        Replace a quiz definition.

        Once damage has been dealt the question pool and max HP are frozen,
        and a defeated quiz cannot be edited at all.
        """
        quiz = BossQuizService.get_quiz(quiz_id)
        if quiz.rewards_distributed:
            raise ValidationError('A defeated boss quiz cannot be edited', reason='DEFEATED')

        payload = BossQuizService.parse_payload(data)

        if DamageLedger.has_shards(quiz.quiz_id):
            if payload.max_hp != quiz.max_hp:
                raise ValidationError('Max HP cannot change after damage was dealt', reason='HAS_DAMAGE')
            if not BossQuizService._same_questions(quiz, payload):
                raise ValidationError('Questions cannot change after damage was dealt', reason='HAS_DAMAGE')
            BossQuizService._apply_definition(quiz, payload)
        else:
            BossQuizService._apply_definition(quiz, payload)
            BossQuizService._replace_questions(quiz, payload)

        db.session.commit()
        current_app.logger.info(f"[BossQuiz] Updated quiz {quiz.quiz_id}")
        boss_quiz_changed.send(None, quiz_id=quiz.quiz_id)
        return quiz

    @staticmethod
    def _same_questions(quiz: BossQuizEvent, payload: BossQuizPayload) -> bool:
        current = [
            (q.stem, list(q.options or []), q.correct_index, q.difficulty, q.damage_bonus)
            for q in quiz.questions
        ]
        incoming = [
            (q.stem, list(q.options), q.correct_index, q.difficulty, q.damage_bonus)
            for q in payload.questions
        ]
        return current == incoming

    @staticmethod
    def toggle_quiz(quiz_id: int) -> BossQuizEvent:
        quiz = BossQuizService.get_quiz(quiz_id)
        quiz.is_active = not quiz.is_active
        db.session.commit()

        current_app.logger.info(f"[BossQuiz] Quiz {quiz.quiz_id} is_active={quiz.is_active}")
        boss_quiz_changed.send(None, quiz_id=quiz.quiz_id)
        return quiz

    @staticmethod
    def delete_quiz(quiz_id: int) -> None:
        """Delete a quiz nobody has damaged yet, or one that is no longer running."""
        quiz = BossQuizService.get_quiz(quiz_id)
        aggregate = DamageLedger.aggregate_damage(quiz.quiz_id)
        if aggregate > 0 and quiz.status(aggregate) == BossQuizEvent.STATUS_ACTIVE:
            raise ValidationError('Cannot delete a boss quiz that is in progress', reason='IN_PROGRESS')

        # Children first: shards and progress reference the quiz and its questions.
        DamageShard.query.filter_by(quiz_id=quiz.quiz_id).delete(synchronize_session=False)
        BossQuizProgress.query.filter_by(quiz_id=quiz.quiz_id).delete(synchronize_session=False)
        db.session.delete(quiz)
        db.session.commit()

        current_app.logger.info(f"[BossQuiz] Deleted quiz {quiz_id}")
        boss_quiz_changed.send(None, quiz_id=quiz_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    def to_dto(quiz: BossQuizEvent, now: Optional[datetime] = None) -> BossQuizDTO:
        return BossQuizDTO.from_event(quiz, DamageLedger.aggregate_damage(quiz.quiz_id), now)

    @staticmethod
    def list_all() -> List[BossQuizDTO]:
        quizzes = BossQuizEvent.query.order_by(BossQuizEvent.created_at.desc(), BossQuizEvent.quiz_id.desc()).all()
        now = utcnow()
        return [BossQuizService.to_dto(q, now) for q in quizzes]

    @staticmethod
    def list_visible(class_type: Optional[str], section: Optional[str], active_only: bool = True) -> List[BossQuizDTO]:
        """Quizzes a student of ``class_type`` / ``section`` can see."""
        now = utcnow()
        query = BossQuizEvent.query
        if active_only:
            query = query.filter(BossQuizEvent.is_active.is_(True))
        quizzes = query.order_by(BossQuizEvent.deadline.asc(), BossQuizEvent.quiz_id.asc()).all()

        visible = []
        for quiz in quizzes:
            if not quiz.is_visible_to(class_type, section):
                continue
            dto = BossQuizService.to_dto(quiz, now)
            if active_only and dto.status != BossQuizEvent.STATUS_ACTIVE:
                continue
            visible.append(dto)
        return visible

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    @staticmethod
    def expire_overdue(now: Optional[datetime] = None) -> List[int]:
        """Deactivate quizzes whose deadline passed without a defeat."""
        now = now or utcnow()
        expired = []
        for quiz in BossQuizEvent.query.filter(BossQuizEvent.is_active.is_(True)).all():
            if quiz.rewards_distributed or not quiz.is_expired(now):
                continue
            if DamageLedger.aggregate_damage(quiz.quiz_id) >= quiz.max_hp:
                continue
            quiz.is_active = False
            expired.append(quiz.quiz_id)

        if expired:
            db.session.commit()
            current_app.logger.info(f"[BossQuiz] Expired quizzes: {expired}")
            for quiz_id in expired:
                boss_quiz_changed.send(None, quiz_id=quiz_id)
        return expired

    @staticmethod
    def pending_distribution_ids() -> List[int]:
        """Defeated quizzes whose rewards were never paid."""
        pending = []
        for quiz in BossQuizEvent.query.filter(BossQuizEvent.rewards_distributed.is_(False)).all():
            if DamageLedger.aggregate_damage(quiz.quiz_id) >= quiz.max_hp:
                pending.append(quiz.quiz_id)
        return pending
