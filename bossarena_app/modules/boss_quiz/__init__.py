from flask import Blueprint

boss_quiz_api_bp = Blueprint(
    'boss_quiz_api',
    __name__,
    url_prefix='/api/boss-quizzes'
)

from . import routes  # noqa: E402,F401
