"""
Centralized Logging Configuration for Boss Arena

Provides consistent logging setup across the application with:
- Structured JSON format for production
- Human-readable format for development
- File rotation for log management
- A separate boss quiz log that only keeps ``[BossQuiz]`` lines
"""

import os
import logging
import logging.handlers
from typing import Optional


LOGGER_NAME = 'bossarena'
BOSS_QUIZ_TAG = 'BossQuiz'


class TagFilter(logging.Filter):
    """Pass only records whose message starts with ``[<tag>]``."""

    def __init__(self, tag: str):
        super().__init__()
        self.prefix = f'[{tag}]'

    def filter(self, record: logging.LogRecord) -> bool:
        return record.getMessage().startswith(self.prefix)


def _rotating_handler(path: str, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    app=None,
    log_level: str = 'INFO',
    log_dir: Optional[str] = None,
    json_format: bool = False
) -> logging.Logger:
    """
    Configure the shared ``bossarena`` logger.

    Args:
        app: Flask application instance (optional)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for log files (default: logs/ at project root)
        json_format: Use JSON format for structured logging

    Returns:
        Configured logger instance. It writes ``bossarena.log`` (everything)
        and ``boss_quiz.log`` (``[BossQuiz]`` lines only).
    """
    if log_dir is None:
        base_dir = os.path.dirname(os.path.dirname(os.path.dirname(__file__)))
        log_dir = os.path.join(base_dir, 'logs')

    os.makedirs(log_dir, exist_ok=True)

    level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if json_format:
        format_str = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(module)s", "message": "%(message)s"}'
    else:
        format_str = '%(asctime)s [%(levelname)s] %(module)s: %(message)s'

    formatter = logging.Formatter(format_str, datefmt='%Y-%m-%d %H:%M:%S')

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    logger.addHandler(_rotating_handler(os.path.join(log_dir, 'bossarena.log'), level, formatter))

    boss_quiz_handler = _rotating_handler(os.path.join(log_dir, 'boss_quiz.log'), level, formatter)
    boss_quiz_handler.addFilter(TagFilter(BOSS_QUIZ_TAG))
    logger.addHandler(boss_quiz_handler)

    if app:
        werkzeug_logger = logging.getLogger('werkzeug')
        werkzeug_logger.setLevel(logging.WARNING)

    logger.info(f"Logging initialized: level={log_level}, dir={log_dir}")

    return logger


def share_file_handlers(source: logging.Logger, target: logging.Logger) -> None:
    """
    Make ``target`` write to the log files of ``source``.

    Services log through ``current_app.logger``; this puts those lines in
    the same rotating files. File handlers left over from an earlier setup
    are dropped first.
    """
    for handler in list(target.handlers):
        if isinstance(handler, logging.FileHandler):
            target.removeHandler(handler)
    for handler in source.handlers:
        if isinstance(handler, logging.FileHandler):
            target.addHandler(handler)


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """Get a logger by name."""
    return logging.getLogger(name)
