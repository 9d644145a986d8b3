"""Process memory sampling for dispatcher back-pressure."""

from __future__ import annotations

import logging

import psutil

logger = logging.getLogger(__name__)


def process_memory_ratio() -> float:
    """Return this process's resident memory as a fraction of system memory."""
    try:
        rss = psutil.Process().memory_info().rss
        total = psutil.virtual_memory().total
    except psutil.Error as error:
        logger.debug("Memory sampling unavailable: %s", error)
        return 0.0
    if total <= 0:
        return 0.0
    return rss / total
