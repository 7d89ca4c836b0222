"""
logging_config.py — Centralized logging configuration for stocksync

Sets up Loguru as the single logging backend. Intercepts Python's stdlib
logging module so SQLAlchemy, APScheduler and uvicorn records route
through Loguru with the same format and level.

Business Rules:
- All logs go through Loguru (no print())
- Sync verbosity uses the job's own level names: error | warn | info | debug
- JSON lines when LOG_JSON is set (machine parsing), colored text otherwise
- Optional file sink with rotation: 50MB files, 7-day retention

Called by: stocksync/__main__.py, stocksync/main.py (on startup)
Depends on: stocksync/config.py (sync_log_level, log_json, log_file)
"""

import logging
import sys

from loguru import logger

_LEVEL_NAMES = {
    "error": "ERROR",
    "warn": "WARNING",
    "warning": "WARNING",
    "info": "INFO",
    "debug": "DEBUG",
}


def loguru_level(level: str) -> str:
    """Translate a sync log level (error|warn|info|debug) to a Loguru level name."""
    return _LEVEL_NAMES.get(level.strip().lower(), "INFO")


def setup_logging(level: str | None = None, json_output: bool | None = None, log_file: str | None = None) -> None:
    """Configure Loguru and intercept stdlib logging.

    Arguments left as None fall back to settings. Call once at process start.
    """
    from .config import settings

    level = loguru_level(level if level is not None else settings.sync_log_level)
    json_output = settings.log_json if json_output is None else json_output
    log_file = settings.log_file if log_file is None else log_file

    logger.remove()

    if json_output:
        logger.add(sys.stdout, level=level, format="{message}", serialize=True)
    else:
        logger.add(
            sys.stdout,
            level=level,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "{message}"
            ),
            colorize=True,
        )

    if log_file:
        logger.add(
            log_file,
            level=level,
            rotation="50 MB",
            retention="7 days",
            compression="gz",
            serialize=json_output,
        )

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)

    for noisy in ("sqlalchemy.engine", "sqlalchemy.pool", "apscheduler.executors", "uvicorn.access", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger.info("Logging configured (level={}, json={})", level, json_output)


class _InterceptHandler(logging.Handler):
    """Route stdlib logging records to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip frames from stdlib logging internals to find the real caller
        frame, depth = logging.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())
