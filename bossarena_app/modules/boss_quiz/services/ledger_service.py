"""
Damage Ledger
Append-only store of damage shards plus the derived boss HP.
"""
from datetime import datetime
from typing import Dict, List, Optional

from flask import current_app
from sqlalchemy import func

from bossarena_app.core.error_handlers import ValidationError
from bossarena_app.core.extensions import db
from bossarena_app.utils.time_utils import utcnow
from ..models import DamageShard


class DamageLedger:
    """Shards are only ever inserted. Boss HP is ``max_hp - SUM(damage)``."""

    @staticmethod
    def record_damage(
        quiz_id: int,
        user_id: int,
        question_id: int,
        amount: int,
        *,
        is_crit: bool = False,
        timestamp: Optional[datetime] = None,
    ) -> DamageShard:
        """Add a shard to the current session. The caller commits."""
        if amount is None or int(amount) <= 0:
            raise ValidationError('Damage must be a positive amount', reason='NON_POSITIVE_DAMAGE')

        shard = DamageShard(
            quiz_id=quiz_id,
            user_id=user_id,
            question_id=question_id,
            damage=int(amount),
            is_crit=bool(is_crit),
            created_at=timestamp or utcnow(),
        )
        db.session.add(shard)
        return shard

    @staticmethod
    def aggregate_damage(quiz_id: int) -> int:
        total = db.session.query(func.coalesce(func.sum(DamageShard.damage), 0))\
            .filter(DamageShard.quiz_id == quiz_id)\
            .scalar()
        return int(total or 0)

    @staticmethod
    def current_hp(quiz) -> int:
        return max(0, quiz.max_hp - DamageLedger.aggregate_damage(quiz.quiz_id))

    @staticmethod
    def recent_shards(quiz_id: int, limit: Optional[int] = None) -> List[DamageShard]:
        """Newest shards first, for the battle feed."""
        if limit is None:
            limit = current_app.config.get('BOSS_QUIZ_FEED_SIZE', 10)
        return DamageShard.query.filter_by(quiz_id=quiz_id)\
            .order_by(DamageShard.created_at.desc(), DamageShard.shard_id.desc())\
            .limit(limit).all()

    @staticmethod
    def damage_by_user(quiz_id: int) -> Dict[int, int]:
        rows = db.session.query(DamageShard.user_id, func.sum(DamageShard.damage))\
            .filter(DamageShard.quiz_id == quiz_id)\
            .group_by(DamageShard.user_id)\
            .all()
        return {user_id: int(total or 0) for user_id, total in rows}

    @staticmethod
    def has_shards(quiz_id: int) -> bool:
        return db.session.query(DamageShard.shard_id).filter_by(quiz_id=quiz_id).first() is not None
