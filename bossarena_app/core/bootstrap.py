"""Bootstrap helpers for configuring the Flask application."""

from __future__ import annotations

import logging
import os

from flask import Flask

from .error_handlers import register_error_handlers as _register_error_handlers
from .extensions import csrf_protect, db, login_manager, migrate, scheduler
from .logging_config import setup_logging, share_file_handlers
from .module_registry import register_default_modules


def configure_logging(app: Flask) -> None:
    """Configure the shared logger and route the Flask app logger to its files."""

    logger = setup_logging(
        app,
        log_level=app.config.get('LOG_LEVEL', 'INFO'),
        log_dir=app.config.get('LOG_DIR'),
        json_format=app.config.get('LOG_JSON', False),
    )

    app.logger.setLevel(logging.DEBUG if app.debug else logger.level)
    share_file_handlers(logger, app.logger)

    if any(not isinstance(h, logging.FileHandler) for h in app.logger.handlers):
        return

    handler = logging.StreamHandler()
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    handler.setFormatter(formatter)
    app.logger.addHandler(handler)
    app.logger.propagate = False
    app.logger.info("Flask app logger configured successfully.")


def register_extensions(app: Flask) -> None:
    """Initialize shared extensions with the Flask app instance."""

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf_protect.init_app(app)

    if not app.config.get('SCHEDULER_ENABLED', True):
        app.logger.info("Scheduler disabled by configuration.")
        return

    # Scheduler Configuration
    if not app.debug or os.environ.get("WERKZEUG_RUN_MAIN") == "true":
        from apscheduler.schedulers import SchedulerAlreadyRunningError
        try:
            scheduler.init_app(app)
            if not scheduler.running:
                scheduler.start()

            from ..modules.boss_quiz.tasks import sweep_boss_quizzes
            if not scheduler.get_job('boss_quiz_sweep'):
                scheduler.add_job(
                    id='boss_quiz_sweep',
                    func=sweep_boss_quizzes,
                    trigger='interval',
                    minutes=app.config.get('BOSS_QUIZ_SWEEP_MINUTES', 5),
                    replace_existing=True,
                )
                app.logger.info("Registered boss quiz sweep job.")
        except SchedulerAlreadyRunningError:
            app.logger.info("Scheduler already running, skipping re-initialization.")
        except Exception as e:
            app.logger.error(f"Failed to initialize scheduler: {e}")


def register_user_loader(app: Flask) -> None:
    """Wire Flask-Login to the User model."""

    @login_manager.user_loader
    def load_user(user_id: str):
        from ..models import User

        return db.session.get(User, int(user_id))


def register_error_handlers(app: Flask) -> None:
    """Attach the JSON error handlers."""

    _register_error_handlers(app)


def register_blueprints(app: Flask) -> None:
    """Register all default blueprints with the app."""

    register_default_modules(app)


def initialize_database(app: Flask) -> None:
    """Create database tables and connect module event listeners."""

    from .. import models  # noqa: F401  (registers every table on db.metadata)
    from ..modules.boss_quiz import events as boss_quiz_events  # noqa: F401
    from ..modules.gamification import events as gamification_events  # noqa: F401

    db.create_all()
    app.logger.info("Database tables ready.")
