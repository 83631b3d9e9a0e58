"""
Event Handlers for Gamification Module.

Listens to signals from other modules and logs or reacts to rewards without
the publishers knowing about gamification internals.
"""
from flask import current_app
from bossarena_app.core.signals import boss_defeated, score_awarded


@score_awarded.connect
def on_score_awarded(sender, **kwargs):
    """
    Expected kwargs:
        - user_id: int
        - amount: int (XP)
        - currency: int
        - reason: str
        - new_total: int
        - item_type: str
    """
    user_id = kwargs.get('user_id')
    if not user_id:
        return
    current_app.logger.debug(
        f"[Gamification] user={user_id} xp={kwargs.get('amount', 0)} "
        f"flux={kwargs.get('currency', 0)} reason={kwargs.get('reason')}"
    )


@boss_defeated.connect
def on_boss_defeated(sender, **kwargs):
    """Announce boss payouts; the distributor already committed them."""
    quiz_id = kwargs.get('quiz_id')
    rewarded = kwargs.get('rewarded') or []
    total_xp = sum(r.get('xp', 0) for r in rewarded)
    current_app.logger.info(
        f"[Gamification] Boss quiz {quiz_id} defeated: {len(rewarded)} students rewarded, {total_xp} XP total"
    )
    for entry in rewarded:
        score_awarded.send(
            None,
            user_id=entry.get('user_id'),
            amount=entry.get('xp', 0),
            currency=entry.get('flux', 0),
            reason='Boss quiz reward',
            new_total=None,
            item_type='BOSS_QUIZ'
        )
