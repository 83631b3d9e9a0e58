"""
Central Signal Registry for Event-Driven Architecture.

Uses Flask's built-in blinker integration to enable decoupled
communication between modules.

Usage:
    # Publisher (sender)
    from bossarena_app.core.signals import boss_damage_dealt
    boss_damage_dealt.send(None, quiz_id=1, user_id=2, ...)

    # Subscriber (receiver) - in module's events.py
    @boss_damage_dealt.connect
    def on_boss_damage_dealt(sender, **kwargs):
        ...
"""
from blinker import Namespace

# ============================================
# Gamification Signals
# ============================================
gamification_signals = Namespace()

# Signal: Fired when score (XP) or currency is awarded to a user
# Payload includes: user_id, amount, currency, reason, new_total, item_type
score_awarded = gamification_signals.signal('score_awarded')

# ============================================
# Boss Quiz Signals
# ============================================
boss_quiz_signals = Namespace()

# Signal: Fired when a boss quiz definition is created, edited, toggled,
# expired or deleted.
# Payload: quiz_id
boss_quiz_changed = boss_quiz_signals.signal('boss_quiz_changed')

# Signal: Fired after a damage shard has been committed
# Payload: quiz_id, user_id, question_id, damage, is_crit, aggregate_damage
boss_damage_dealt = boss_quiz_signals.signal('boss_damage_dealt')

# Signal: Fired after a student's progress row has been committed
# Payload: quiz_id, user_id
boss_progress_updated = boss_quiz_signals.signal('boss_progress_updated')

# Signal: Fired once per quiz by the reward distributor after payouts commit
# Payload: quiz_id, rewarded (list of dicts: user_id, rank, multiplier, xp, flux)
boss_defeated = boss_quiz_signals.signal('boss_defeated')
