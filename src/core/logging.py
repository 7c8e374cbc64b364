"""
Structured logging for the dashboard service.

All modules obtain their logger through :func:`get_logger`; pipeline
milestones are rendered as ``key=value`` pairs via :func:`kv` so log lines
stay grep-able.
"""
from __future__ import annotations

import logging
import sys
from typing import Any

from src.core.config import get_settings

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str) -> logging.Logger:
    settings = get_settings()
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return logger


def kv(**fields: Any) -> str:
    """Render keyword fields as ``a=1 b='x'`` for single-line log messages."""
    parts = []
    for key, value in fields.items():
        if isinstance(value, str):
            value = value if len(value) <= 60 else value[:57] + "..."
            parts.append(f"{key}={value!r}")
        else:
            parts.append(f"{key}={value}")
    return " ".join(parts)
