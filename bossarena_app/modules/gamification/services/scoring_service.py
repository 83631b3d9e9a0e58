"""
Score Service
XP / currency awarding and leaderboards.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from flask import current_app
from sqlalchemy import func

from bossarena_app.core.extensions import db
from bossarena_app.core.signals import score_awarded
from bossarena_app.models.user import User
from ..models import ScoreLog


class ScoreService:
    """XP and currency bookkeeping."""

    @staticmethod
    def award(
        user_id: int,
        xp: int,
        reason: str,
        *,
        currency: int = 0,
        item_type: Optional[str] = None,
        reference_id: Optional[int] = None,
        commit: bool = True,
    ) -> dict:
        """
        Add XP and/or currency to a user and write one ScoreLog row.

        With ``commit=False`` the change joins the caller's transaction and
        no signal is sent; the caller owns commit, rollback and notification.
        """
        if xp == 0 and currency == 0:
            return {'success': True, 'new_total': None, 'new_currency': None}

        user = db.session.get(User, user_id)
        if not user:
            current_app.logger.warning(f"User {user_id} not found, cannot award points.")
            return {'success': False, 'message': 'User not found'}

        user.total_score = (user.total_score or 0) + xp
        user.currency = (user.currency or 0) + currency

        log = ScoreLog(
            user_id=user_id,
            score_change=xp,
            currency_change=currency,
            reason=reason,
            item_type=item_type,
            reference_id=reference_id,
            timestamp=datetime.now(timezone.utc)
        )
        db.session.add(log)

        if commit:
            try:
                db.session.commit()
            except Exception:
                db.session.rollback()
                current_app.logger.error(f"Failed to award points to user {user_id}", exc_info=True)
                raise

            score_awarded.send(
                None,
                user_id=user_id,
                amount=xp,
                currency=currency,
                reason=reason,
                new_total=user.total_score,
                item_type=item_type
            )

        return {
            'success': True,
            'new_total': user.total_score,
            'new_currency': user.currency,
            'score_change': xp,
            'currency_change': currency,
        }

    @staticmethod
    def award_points(user_id, amount, reason, item_type=None, reference_id=None, commit=True):
        """Cộng/trừ XP cho user và ghi log."""
        return ScoreService.award(
            user_id, amount, reason, item_type=item_type, reference_id=reference_id, commit=commit
        )

    @staticmethod
    def award_currency(user_id, amount, reason, item_type=None, reference_id=None, commit=True):
        """Cộng/trừ flux cho user và ghi log."""
        return ScoreService.award(
            user_id, 0, reason, currency=amount, item_type=item_type, reference_id=reference_id, commit=commit
        )

    @staticmethod
    def get_score_history(user_id, page=1, per_page=20):
        """Paginated score history for a user."""
        pagination = ScoreLog.query.filter_by(user_id=user_id)\
            .order_by(ScoreLog.timestamp.desc(), ScoreLog.log_id.desc())\
            .paginate(page=page, per_page=per_page, error_out=False)

        return pagination.items, pagination.total

    @staticmethod
    def get_leaderboard(timeframe='all_time', limit=10):
        """
        Top users by XP.
        timeframe: 'day', 'week', 'month', 'all_time'
        """
        if timeframe == 'all_time':
            users = User.query.order_by(User.total_score.desc()).limit(limit).all()
            return [
                {
                    'username': u.username,
                    'user_id': u.user_id,
                    'score': u.total_score or 0
                } for u in users
            ]

        query = db.session.query(
            User.username,
            User.user_id,
            func.sum(ScoreLog.score_change).label('period_score')
        ).join(ScoreLog, User.user_id == ScoreLog.user_id)

        now = datetime.now(timezone.utc)
        if timeframe == 'day':
            query = query.filter(ScoreLog.timestamp >= now - timedelta(days=1))
        elif timeframe == 'week':
            query = query.filter(ScoreLog.timestamp >= now - timedelta(weeks=1))
        elif timeframe == 'month':
            query = query.filter(ScoreLog.timestamp >= now - timedelta(days=30))

        results = query.group_by(User.user_id, User.username)\
            .order_by(func.sum(ScoreLog.score_change).desc())\
            .limit(limit).all()

        return [
            {
                'username': r.username,
                'user_id': r.user_id,
                'score': int(r.period_score or 0)
            } for r in results
        ]
