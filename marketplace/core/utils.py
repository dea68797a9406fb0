"""Shared utility functions for the marketplace payments service."""

import logging
from datetime import UTC, datetime

import colorlog


def get_logger(name: str) -> logging.Logger:
    """Get a logger with a colorized format for the project.

    Dotted names (``marketplace.api``) propagate to their top-level service logger,
    which owns the handlers.
    """
    logger = logging.getLogger(name)
    if "." in name:
        get_logger(name.split(".", 1)[0])
        return logger
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = colorlog.ColoredFormatter(
            "%(log_color)s%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "bold_red",
            },
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.propagate = False
    return logger


def safe_cast(val: object, to_type: type, default: object = None) -> object:
    """Safely cast a value to a type, returning default on failure."""
    try:
        return to_type(val)
    except (ValueError, TypeError):
        return default


def utcnow() -> datetime:
    """Get the current time as an aware UTC datetime."""
    return datetime.now(UTC)
