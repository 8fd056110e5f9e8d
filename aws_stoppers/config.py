"""Runtime config for stopper modules (simple dependency injection)."""

from __future__ import annotations
from typing import Dict, Optional
import logging

LOGGER: Optional[logging.Logger] = None
MAX_WORKERS: Dict[str, Optional[int]] = {}


def setup(
    *,
    logger: Optional[logging.Logger] = None,
    max_workers: Optional[Dict[str, Optional[int]]] = None,
) -> None:
    """Provide shared dependencies to all stopper modules."""
    # pylint: disable=global-statement
    global LOGGER, MAX_WORKERS
    LOGGER = logger or logging.getLogger("aws_stoppers")
    MAX_WORKERS = dict(max_workers or {})


def reset() -> None:
    """Drop injected dependencies (tests)."""
    # pylint: disable=global-statement
    global LOGGER, MAX_WORKERS
    LOGGER = None
    MAX_WORKERS = {}
