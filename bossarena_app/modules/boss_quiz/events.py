"""
Event Handlers for the Boss Quiz Module.
"""
from flask import current_app
from bossarena_app.core.signals import boss_damage_dealt, boss_quiz_changed


@boss_damage_dealt.connect
def on_boss_damage_dealt(sender, **kwargs):
    """Log crits; every hit is already in the ledger."""
    if kwargs.get('is_crit'):
        current_app.logger.info(
            f"[BossQuiz] CRIT user={kwargs.get('user_id')} quiz={kwargs.get('quiz_id')} "
            f"damage={kwargs.get('damage')} total={kwargs.get('aggregate_damage')}"
        )


@boss_quiz_changed.connect
def on_boss_quiz_changed(sender, **kwargs):
    current_app.logger.debug(f"[BossQuiz] Quiz {kwargs.get('quiz_id')} changed")
