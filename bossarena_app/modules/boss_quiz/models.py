"""Database models dedicated to the boss quiz feature."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy.sql import func
from sqlalchemy.types import JSON

from bossarena_app.core.extensions import db
from bossarena_app.utils.time_utils import ensure_utc, utcnow

from .logics.modifier_engine import Modifier, parse_modifiers


class BossQuizEvent(db.Model):
    """A boss that a class (or everyone) fights by answering questions."""

    __tablename__ = 'boss_quiz_events'

    STATUS_INACTIVE = 'INACTIVE'
    STATUS_ACTIVE = 'ACTIVE'
    STATUS_EXPIRED = 'EXPIRED'
    STATUS_DEFEATED = 'DEFEATED'

    SCOPE_GLOBAL = 'GLOBAL'

    RARITIES = ('COMMON', 'UNCOMMON', 'RARE', 'UNIQUE')

    quiz_id = db.Column(db.Integer, primary_key=True)
    boss_name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)

    class_type = db.Column(db.String(50), default=SCOPE_GLOBAL, nullable=False)
    target_sections = db.Column(JSON, nullable=True)

    max_hp = db.Column(db.Integer, nullable=False)
    damage_per_correct = db.Column(db.Integer, nullable=False, default=50)
    boss_damage = db.Column(db.Integer, nullable=False, default=10)

    reward_xp = db.Column(db.Integer, nullable=False, default=0)
    reward_flux = db.Column(db.Integer, nullable=False, default=0)
    reward_item_rarity = db.Column(db.String(20), nullable=True)

    modifiers = db.Column(JSON, nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    deadline = db.Column(db.DateTime(timezone=True), nullable=False)

    # Compare-and-set guard: flipped exactly once by the reward distributor.
    rewards_distributed = db.Column(db.Boolean, default=False, nullable=False)
    defeated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey('users.user_id'), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), onupdate=func.now())

    questions = db.relationship(
        'BossQuizQuestion',
        backref='quiz',
        cascade='all, delete-orphan',
        order_by='BossQuizQuestion.position',
        lazy=True,
    )

    @property
    def modifier_list(self) -> list[Modifier]:
        return parse_modifiers(self.modifiers)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        deadline = ensure_utc(self.deadline)
        return deadline is not None and (now or utcnow()) >= deadline

    def is_visible_to(self, class_type: Optional[str], section: Optional[str]) -> bool:
        if self.class_type != self.SCOPE_GLOBAL and self.class_type != class_type:
            return False
        if self.target_sections:
            return section in self.target_sections
        return True

    def status(self, aggregate_damage: int, now: Optional[datetime] = None) -> str:
        if self.rewards_distributed or aggregate_damage >= self.max_hp:
            return self.STATUS_DEFEATED
        if not self.is_active:
            return self.STATUS_INACTIVE
        if self.is_expired(now):
            return self.STATUS_EXPIRED
        return self.STATUS_ACTIVE

    def __repr__(self):
        return f'<BossQuizEvent {self.quiz_id} {self.boss_name}>'


class BossQuizQuestion(db.Model):
    """One multiple-choice question in a boss quiz pool."""

    __tablename__ = 'boss_quiz_questions'

    DIFFICULTY_EASY = 'EASY'
    DIFFICULTY_MEDIUM = 'MEDIUM'
    DIFFICULTY_HARD = 'HARD'

    question_id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('boss_quiz_events.quiz_id'), nullable=False, index=True)
    stem = db.Column(db.Text, nullable=False)
    options = db.Column(JSON, nullable=False)
    correct_index = db.Column(db.Integer, nullable=False)
    difficulty = db.Column(db.String(10), default=DIFFICULTY_MEDIUM, nullable=False)
    damage_bonus = db.Column(db.Integer, default=0, nullable=False)
    position = db.Column(db.Integer, default=0, nullable=False)

    def __repr__(self):
        return f'<BossQuizQuestion {self.question_id} quiz={self.quiz_id}>'


class DamageShard(db.Model):
    """Immutable damage contribution. Rows are only ever inserted."""

    __tablename__ = 'boss_quiz_damage_shards'

    shard_id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('boss_quiz_events.quiz_id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.user_id'), nullable=False)
    question_id = db.Column(db.Integer, db.ForeignKey('boss_quiz_questions.question_id'), nullable=False)
    damage = db.Column(db.Integer, nullable=False)
    is_crit = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    user = db.relationship('User', lazy='joined')

    __table_args__ = (
        db.UniqueConstraint('quiz_id', 'user_id', 'question_id', name='uq_boss_quiz_shard'),
        db.Index('ix_boss_quiz_shards_quiz_created', 'quiz_id', 'created_at'),
    )

    def to_dict(self):
        return {
            'shard_id': self.shard_id,
            'quiz_id': self.quiz_id,
            'user_id': self.user_id,
            'user_name': self.user.username if self.user else None,
            'question_id': self.question_id,
            'damage': self.damage,
            'is_crit': self.is_crit,
            'timestamp': ensure_utc(self.created_at).isoformat() if self.created_at else None,
        }


class BossQuizProgress(db.Model):
    """Per (student, quiz) combat state. Updated only by that student's answers."""

    __tablename__ = 'boss_quiz_progress'

    progress_id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('boss_quiz_events.quiz_id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.user_id'), nullable=False)

    # Idempotency guard: ids of every question already resolved
    answered_question_ids = db.Column(JSON, nullable=False, default=list)

    player_hp = db.Column(db.Integer, nullable=False)
    player_max_hp = db.Column(db.Integer, nullable=False)
    knocked_out = db.Column(db.Boolean, default=False, nullable=False)

    # Combat stats
    total_damage_dealt = db.Column(db.Integer, default=0, nullable=False)
    critical_hits = db.Column(db.Integer, default=0, nullable=False)
    damage_reduced = db.Column(db.Integer, default=0, nullable=False)
    boss_damage_taken = db.Column(db.Integer, default=0, nullable=False)
    correct_easy = db.Column(db.Integer, default=0, nullable=False)
    correct_medium = db.Column(db.Integer, default=0, nullable=False)
    correct_hard = db.Column(db.Integer, default=0, nullable=False)
    incorrect_easy = db.Column(db.Integer, default=0, nullable=False)
    incorrect_medium = db.Column(db.Integer, default=0, nullable=False)
    incorrect_hard = db.Column(db.Integer, default=0, nullable=False)
    current_streak = db.Column(db.Integer, default=0, nullable=False)
    longest_streak = db.Column(db.Integer, default=0, nullable=False)
    shield_blocks_used = db.Column(db.Integer, default=0, nullable=False)
    healing_received = db.Column(db.Integer, default=0, nullable=False)
    questions_attempted = db.Column(db.Integer, default=0, nullable=False)
    questions_correct = db.Column(db.Integer, default=0, nullable=False)
    damage_reached_at = db.Column(db.DateTime(timezone=True), nullable=True)

    participated = db.Column(db.Boolean, default=False, nullable=False)

    # Reward fields are written once by the reward distributor
    reward_rank = db.Column(db.Integer, nullable=True)
    reward_multiplier = db.Column(db.Float, nullable=True)
    reward_xp = db.Column(db.Integer, nullable=True)
    reward_flux = db.Column(db.Integer, nullable=True)
    reward_item_rarity = db.Column(db.String(20), nullable=True)
    rewarded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), onupdate=func.now())

    # Optimistic lock: concurrent writers of the same row cannot both commit.
    version_id = db.Column(db.Integer, nullable=False)

    user = db.relationship('User', lazy='joined')

    __mapper_args__ = {'version_id_col': version_id}

    __table_args__ = (
        db.UniqueConstraint('quiz_id', 'user_id', name='uq_boss_quiz_progress'),
    )

    @property
    def is_rewarded(self) -> bool:
        return self.rewarded_at is not None

    def __repr__(self):
        return f'<BossQuizProgress quiz={self.quiz_id} user={self.user_id}>'
