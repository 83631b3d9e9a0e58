from bossarena_app.core.extensions import db
from sqlalchemy.sql import func


class ScoreLog(db.Model):
    """History of XP and currency changes for a user."""
    __tablename__ = 'score_logs'

    log_id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.user_id'), nullable=False)
    score_change = db.Column(db.Integer, nullable=False, default=0)
    currency_change = db.Column(db.Integer, nullable=False, default=0)
    reason = db.Column(db.String(100))
    timestamp = db.Column(db.DateTime(timezone=True), server_default=func.now())
    item_type = db.Column(db.String(50), nullable=True)
    # Source record (e.g. the boss quiz id for BOSS_QUIZ rewards)
    reference_id = db.Column(db.Integer, nullable=True)

    __table_args__ = (
        db.Index('ix_score_logs_user_timestamp', 'user_id', 'timestamp'),
        db.Index('ix_score_logs_timestamp', 'timestamp'),
    )

    def to_dict(self):
        return {
            'log_id': self.log_id,
            'score_change': self.score_change,
            'amount': self.score_change,
            'currency_change': self.currency_change,
            'reason': self.reason,
            'item_type': self.item_type,
            'reference_id': self.reference_id,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None
        }
