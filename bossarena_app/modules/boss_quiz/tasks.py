"""
Scheduled jobs for boss quizzes.
"""
from bossarena_app.core.extensions import scheduler
from bossarena_app.core.logging_config import get_logger
from .services.boss_quiz_service import BossQuizService
from .services.reward_service import RewardDistributor

logger = get_logger('bossarena.boss_quiz.tasks')


def run_sweep():
    """
    Deactivate overdue quizzes and pay out defeated ones that were missed.

    Must run inside an app context. Distribution goes through the same
    compare-and-set as the live path, so re-running it never pays twice.
    """
    expired = BossQuizService.expire_overdue()

    distributed = []
    for quiz_id in BossQuizService.pending_distribution_ids():
        result = RewardDistributor.distribute_if_defeated(quiz_id)
        if result is not None:
            distributed.append(quiz_id)

    return {'expired': expired, 'distributed': distributed}


def sweep_boss_quizzes():
    """Job entry point registered as ``boss_quiz_sweep``."""
    with scheduler.app.app_context():
        try:
            summary = run_sweep()
        except Exception as e:
            logger.error(f"[BossQuiz] Sweep failed: {e}", exc_info=True)
            return
        if summary['expired'] or summary['distributed']:
            logger.info(f"[BossQuiz] Sweep: {summary}")
