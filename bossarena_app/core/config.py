# File: bossarena_app/core/config.py
# Core Infrastructure Layer: application configuration

import os
from dotenv import load_dotenv

load_dotenv()

# bossarena_app/core/ -> project root is two levels up
BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..'))

DATABASE_PATH = os.path.join(BASE_DIR, "database", "bossarena.db")


class Config:
    """Cấu hình ứng dụng Boss Arena."""

    SECRET_KEY = os.environ.get('SECRET_KEY')
    if not SECRET_KEY:
        # Fallback for development, though env is preferred
        SECRET_KEY = 'dev-secret-key-replace-in-production'

    SQLALCHEMY_DATABASE_URI = os.environ.get('SQLALCHEMY_DATABASE_URI') or f'sqlite:///{DATABASE_PATH}'
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'connect_args': {'timeout': 30},
    }
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_DIR = os.environ.get('LOG_DIR') or os.path.join(BASE_DIR, 'logs')
    LOG_JSON = os.environ.get('LOG_JSON', '0') == '1'

    # Background jobs
    SCHEDULER_ENABLED = os.environ.get('SCHEDULER_ENABLED', '1') == '1'
    BOSS_QUIZ_SWEEP_MINUTES = int(os.environ.get('BOSS_QUIZ_SWEEP_MINUTES', '5'))

    # Boss quiz combat
    BOSS_QUIZ_MAX_RETRIES = int(os.environ.get('BOSS_QUIZ_MAX_RETRIES', '3'))
    BOSS_QUIZ_FEED_SIZE = int(os.environ.get('BOSS_QUIZ_FEED_SIZE', '10'))
    BOSS_QUIZ_DEFAULT_BOSS_DAMAGE = int(os.environ.get('BOSS_QUIZ_DEFAULT_BOSS_DAMAGE', '10'))
    BOSS_QUIZ_PARTICIPATION_MIN_ATTEMPTS = int(os.environ.get('BOSS_QUIZ_PARTICIPATION_MIN_ATTEMPTS', '5'))
    BOSS_QUIZ_PARTICIPATION_MIN_CORRECT = int(os.environ.get('BOSS_QUIZ_PARTICIPATION_MIN_CORRECT', '1'))

    @classmethod
    def init_app(cls, app):
        """Khởi tạo các thư mục cần thiết."""
        os.makedirs(os.path.dirname(DATABASE_PATH), exist_ok=True)
        os.makedirs(app.config['LOG_DIR'], exist_ok=True)
