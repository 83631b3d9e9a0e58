from typing import Any, Callable, List, Optional, Tuple

from .schemas import AnswerOutcome, BossQuizDTO, ProgressDTO
from .services.boss_quiz_service import BossQuizService
from .services.combat_service import CombatResolver
from .services.ledger_service import DamageLedger
from .services.progress_service import ProgressTracker
from .services.subscription_service import SubscriptionService

Unsubscribe = Callable[[], None]


def subscribe_to_boss_quizzes(scope: Tuple[Optional[str], Optional[str]],
                              callback: Callable[[List[BossQuizDTO]], Any]) -> Unsubscribe:
    """Live list of active boss quizzes visible to ``(class_type, section)``."""
    return SubscriptionService.subscribe_to_quizzes(scope, callback)


def subscribe_to_boss_quiz_shards(quiz_id: int, callback: Callable[[int], Any]) -> Unsubscribe:
    """Live aggregate damage of one boss quiz."""
    return SubscriptionService.subscribe_to_shards(quiz_id, callback)


def subscribe_to_boss_quiz_progress(user_id: int, quiz_id: int,
                                    callback: Callable[[Optional[ProgressDTO]], Any]) -> Unsubscribe:
    """Live progress of one student in one boss quiz."""
    return SubscriptionService.subscribe_to_progress(user_id, quiz_id, callback)


def answer_boss_quiz(quiz_id: int, user, question_id: int, choice_index: int) -> AnswerOutcome:
    """
    Submit one answer. Safe to call again with the same question:
    the repeat returns ``already_answered=True`` and changes nothing.
    """
    return CombatResolver.resolve_answer(quiz_id, user, question_id, choice_index)


def get_boss_hp(quiz_id: int) -> int:
    return DamageLedger.current_hp(BossQuizService.get_quiz(quiz_id))


def get_progress(user_id: int, quiz_id: int) -> Optional[ProgressDTO]:
    progress = ProgressTracker.get(user_id, quiz_id)
    return ProgressDTO.from_progress(progress) if progress else None
