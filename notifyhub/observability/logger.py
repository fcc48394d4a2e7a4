"""Structured logging for notification events (topics, subscriptions, deliveries)."""

import logging
import os
import sys


def _level_from_env(default: int) -> int:
    name = (os.environ.get("NOTIFY_LOG_LEVEL") or "").strip().upper()
    if not name:
        return default
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else default


def get_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """Return a configured logger; NOTIFY_LOG_LEVEL overrides the level on first use."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
            )
        )
        logger.addHandler(handler)
        logger.setLevel(_level_from_env(level))
    return logger
