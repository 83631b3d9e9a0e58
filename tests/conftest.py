import os
import sys
import tempfile
from datetime import timedelta

import pytest
from flask import g

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from bossarena_app import create_app, db
from bossarena_app.core.config import Config
from bossarena_app.models import User
from bossarena_app.modules.boss_quiz.services import BossQuizService, CombatResolver
from bossarena_app.utils.time_utils import utcnow


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ENGINE_OPTIONS = {
        'connect_args': {'check_same_thread': False}
    }
    WTF_CSRF_ENABLED = False
    SCHEDULER_ENABLED = False
    LOG_DIR = os.path.join(tempfile.gettempdir(), 'bossarena-test-logs')


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {'n': 0}

    def _make(username=None, role=User.ROLE_STUDENT, class_type='10A', section='A', equipped=None):
        counter['n'] += 1
        username = username or f'student{counter["n"]}'
        user = User(
            username=username,
            email=f'{username}@example.com',
            user_role=role,
            class_type=class_type,
            section=section,
            equipped=equipped or {},
        )
        user.set_password('password')
        db.session.add(user)
        db.session.commit()
        return user

    return _make


def question_defs(count, difficulty='MEDIUM', correct_index=0):
    return [
        {
            'stem': f'Question {i + 1}',
            'options': ['A', 'B', 'C', 'D'],
            'correct_index': correct_index,
            'difficulty': difficulty,
        }
        for i in range(count)
    ]


@pytest.fixture
def make_quiz(app):
    def _make(**overrides):
        data = {
            'boss_name': 'Syntax Hydra',
            'class_type': 'GLOBAL',
            'max_hp': 100,
            'damage_per_correct': 20,
            'boss_damage': 10,
            'reward_xp': 100,
            'reward_flux': 10,
            'deadline': (utcnow() + timedelta(days=1)).isoformat(),
            'questions': question_defs(10),
        }
        data.update(overrides)
        return BossQuizService.create_quiz(data)

    return _make


@pytest.fixture
def login(client):
    """Log ``user`` into the test client (None logs out)."""

    def _login(user):
        with client.session_transaction() as sess:
            if user is None:
                sess.pop('_user_id', None)
            else:
                sess['_user_id'] = str(user.user_id)
                sess['_fresh'] = True
        # The app context outlives requests here, so drop the cached user.
        g.pop('_login_user', None)
        return client

    return _login


def answer_all_correct(quiz, user, count=None):
    """Answer ``count`` questions of ``quiz`` correctly as ``user``."""
    outcomes = []
    questions = list(quiz.questions)[:count] if count else list(quiz.questions)
    for question in questions:
        outcomes.append(CombatResolver.resolve_answer(
            quiz.quiz_id, user, question.question_id, question.correct_index
        ))
    return outcomes
