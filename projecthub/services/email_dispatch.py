"""
Best-effort email side effects.

State transitions commit first; the email is queued afterwards and an
enqueue failure is logged, never raised to the caller.
"""

from __future__ import annotations

import logging
from typing import Any

from celery import Task

logger = logging.getLogger(__name__)


def dispatch(task: Task, **kwargs: Any) -> bool:
    """Queue `task` with kwargs. Returns False if the broker rejected it."""
    try:
        task.delay(**kwargs)
    except Exception:
        logger.warning("Failed to queue %s", task.name, exc_info=True)
        return False
    return True
