"""
Reward Distributor
Pays out a defeated boss exactly once.
"""
from datetime import datetime
from typing import List, Optional

from flask import current_app
from sqlalchemy import update

from bossarena_app.core.error_handlers import NotFoundError
from bossarena_app.core.extensions import db
from bossarena_app.core.signals import boss_defeated, boss_quiz_changed
from bossarena_app.modules.gamification.interface import award_reward
from bossarena_app.utils.time_utils import isoformat_utc, utcnow
from ..logics.ranking_logic import Contribution, compute_rewards
from ..models import BossQuizEvent
from ..schemas import DistributionResult
from .ledger_service import DamageLedger
from .progress_service import ProgressTracker

REWARD_ITEM_TYPE = 'BOSS_QUIZ'


class RewardDistributor:

    @staticmethod
    def _claim(quiz_id: int, now: datetime) -> bool:
        """
        Compare-and-set on ``rewards_distributed``.

        Only one caller ever sees rowcount == 1, no matter how many observe
        the defeat at the same time.
        """
        result = db.session.execute(
            update(BossQuizEvent)
            .where(BossQuizEvent.quiz_id == quiz_id)
            .where(BossQuizEvent.rewards_distributed.is_(False))
            .values(rewards_distributed=True, defeated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def distribute_if_defeated(quiz_id: int, now: Optional[datetime] = None) -> Optional[DistributionResult]:
        """
        Rank contributors and pay them if the boss is down and nobody has yet.

        Returns the payout for the caller that won the flag, None for everyone
        else (boss still alive, or already distributed).
        """
        quiz = db.session.get(BossQuizEvent, quiz_id)
        if not quiz:
            raise NotFoundError('Boss quiz not found', resource='boss_quiz')
        if quiz.rewards_distributed:
            return None
        if DamageLedger.aggregate_damage(quiz_id) < quiz.max_hp:
            return None

        now = now or utcnow()
        try:
            if not RewardDistributor._claim(quiz_id, now):
                db.session.rollback()
                current_app.logger.debug(f"[BossQuiz] Rewards for quiz {quiz_id} already claimed")
                return None

            result = RewardDistributor._pay_out(quiz, now)
            db.session.commit()
        except Exception:
            db.session.rollback()
            current_app.logger.error(f"[BossQuiz] Reward distribution failed for quiz {quiz_id}", exc_info=True)
            raise

        current_app.logger.info(
            f"[BossQuiz] Quiz {quiz_id} defeated, {len(result.rewarded)} students rewarded"
        )
        boss_defeated.send(None, quiz_id=quiz_id, rewarded=result.rewarded)
        boss_quiz_changed.send(None, quiz_id=quiz_id)
        return result

    @staticmethod
    def _pay_out(quiz: BossQuizEvent, now: datetime) -> DistributionResult:
        min_attempts = current_app.config.get('BOSS_QUIZ_PARTICIPATION_MIN_ATTEMPTS', 5)
        min_correct = current_app.config.get('BOSS_QUIZ_PARTICIPATION_MIN_CORRECT', 1)

        progress_rows = {p.user_id: p for p in ProgressTracker.list_for_quiz(quiz.quiz_id)}
        contributions = [
            Contribution(
                user_id=p.user_id,
                total_damage=p.total_damage_dealt,
                questions_attempted=p.questions_attempted,
                questions_correct=p.questions_correct,
                reached_at=p.damage_reached_at,
            )
            for p in progress_rows.values()
        ]
        rewards = compute_rewards(contributions, quiz.reward_xp, quiz.reward_flux, min_attempts, min_correct)

        rewarded: List[dict] = []
        for reward in rewards:
            progress = progress_rows[reward.user_id]
            if progress.is_rewarded:
                continue

            progress.reward_rank = reward.rank
            progress.reward_multiplier = reward.multiplier
            progress.reward_xp = reward.xp
            progress.reward_flux = reward.flux
            progress.reward_item_rarity = quiz.reward_item_rarity
            progress.rewarded_at = now
            progress.participated = True

            award_reward(
                reward.user_id,
                reward.xp,
                reward.flux,
                f"Boss defeated: {quiz.boss_name} (rank {reward.rank})"[:100],
                item_type=REWARD_ITEM_TYPE,
                reference_id=quiz.quiz_id,
                commit=False,
            )
            rewarded.append({
                'user_id': reward.user_id,
                'rank': reward.rank,
                'multiplier': reward.multiplier,
                'xp': reward.xp,
                'flux': reward.flux,
                'total_damage': reward.total_damage,
                'item_rarity': quiz.reward_item_rarity,
            })

        rewarded_ids = {r.user_id for r in rewards}
        non_participants = sorted(uid for uid in progress_rows if uid not in rewarded_ids)
        for user_id in non_participants:
            progress_rows[user_id].participated = False

        return DistributionResult(
            quiz_id=quiz.quiz_id,
            defeated_at=isoformat_utc(now),
            rewarded=rewarded,
            non_participants=non_participants,
            item_rarity=quiz.reward_item_rarity,
        )
