"""
Subscription Service
Push-style views over boss quiz state, driven by blinker signals.

Each subscribe_* call delivers the current snapshot right away, then again
after every relevant change, and returns an ``unsubscribe()`` callable.
Callbacks run synchronously in the thread (and app context) that sent the
signal.
"""
from typing import Any, Callable, Iterable, Optional, Tuple

from blinker import Signal

from bossarena_app.core.signals import (
    boss_damage_dealt,
    boss_defeated,
    boss_progress_updated,
    boss_quiz_changed,
)
from ..schemas import ProgressDTO
from .boss_quiz_service import BossQuizService
from .ledger_service import DamageLedger
from .progress_service import ProgressTracker

Unsubscribe = Callable[[], None]


def _connect(signals: Iterable[Signal], receiver: Callable[..., Any]) -> Unsubscribe:
    signals = list(signals)
    for signal in signals:
        signal.connect(receiver, weak=False)

    def unsubscribe() -> None:
        for signal in signals:
            signal.disconnect(receiver)

    return unsubscribe


class SubscriptionService:

    @staticmethod
    def subscribe_to_quizzes(scope: Tuple[Optional[str], Optional[str]], callback: Callable) -> Unsubscribe:
        """callback(list of BossQuizDTO) for active quizzes visible to ``(class_type, section)``."""
        class_type, section = scope

        def push():
            callback(BossQuizService.list_visible(class_type, section))

        def receiver(sender, **kwargs):
            push()

        push()
        return _connect([boss_quiz_changed, boss_damage_dealt], receiver)

    @staticmethod
    def subscribe_to_shards(quiz_id: int, callback: Callable[[int], Any]) -> Unsubscribe:
        """callback(aggregate damage) for one quiz."""

        def receiver(sender, **kwargs):
            if kwargs.get('quiz_id') != quiz_id:
                return
            aggregate = kwargs.get('aggregate_damage')
            callback(aggregate if aggregate is not None else DamageLedger.aggregate_damage(quiz_id))

        callback(DamageLedger.aggregate_damage(quiz_id))
        return _connect([boss_damage_dealt, boss_quiz_changed], receiver)

    @staticmethod
    def subscribe_to_progress(user_id: int, quiz_id: int, callback: Callable) -> Unsubscribe:
        """callback(ProgressDTO or None) for one student in one quiz."""

        def push():
            progress = ProgressTracker.get(user_id, quiz_id)
            callback(ProgressDTO.from_progress(progress) if progress else None)

        def receiver(sender, **kwargs):
            if kwargs.get('quiz_id') != quiz_id:
                return
            if 'user_id' in kwargs and kwargs['user_id'] != user_id:
                return
            push()

        push()
        return _connect([boss_progress_updated, boss_defeated], receiver)
