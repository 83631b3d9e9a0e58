"""User model."""

from __future__ import annotations

from flask_login import UserMixin
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
from werkzeug.security import check_password_hash, generate_password_hash

from ..core.extensions import db


class User(UserMixin, db.Model):
    """Application user (student or admin)."""

    __tablename__ = 'users'

    ROLE_ADMIN = 'admin'
    ROLE_STUDENT = 'student'

    CLASS_GLOBAL = 'GLOBAL'

    user_id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False, default='')
    user_role = db.Column(db.String(50), default=ROLE_STUDENT, nullable=False)

    # Enrollment scope used to filter boss quizzes
    class_type = db.Column(db.String(50), nullable=True)
    section = db.Column(db.String(50), nullable=True)

    # XP and currency (flux)
    total_score = db.Column(db.Integer, default=0)
    currency = db.Column(db.Integer, default=0)

    # Equipped gear: {slot: {"name": ..., "rarity": ..., "stats": {"tech": 2, ...}}}
    equipped = db.Column(JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now())
    last_seen = db.Column(db.DateTime(timezone=True))

    def get_id(self):
        return str(self.user_id)

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self) -> bool:
        return self.user_role == self.ROLE_ADMIN

    def __repr__(self):
        return f'<User {self.username}>'
