from .boss_quiz_service import BossQuizService
from .combat_service import CombatResolver
from .ledger_service import DamageLedger
from .progress_service import ProgressTracker
from .reward_service import RewardDistributor
from .subscription_service import SubscriptionService

__all__ = [
    'BossQuizService',
    'CombatResolver',
    'DamageLedger',
    'ProgressTracker',
    'RewardDistributor',
    'SubscriptionService',
]
