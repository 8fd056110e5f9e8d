"""Common helpers for stopper modules (shared across AWS services).

- _logger: consistent logger selection with config fallback.
- Concurrency helpers: _pool_size, _safe_workers.
- Identifier helpers: _name_from_arn.

All functions are small and dependency-free; import what you need:
    from aws_stoppers.common import _logger, _safe_workers, _name_from_arn
"""

from __future__ import annotations

import logging
from typing import Optional

from aws_stoppers import config


def _logger(fallback: Optional[logging.Logger]) -> logging.Logger:
    """Return the given logger or a sensible default."""
    return fallback or config.LOGGER or logging.getLogger(__name__)


def _pool_size(client) -> Optional[int]:
    """Best-effort read of the client HTTP pool size; None when unknown."""
    cfg = getattr(getattr(client, "meta", None), "config", None)
    val = getattr(cfg, "max_pool_connections", None)
    try:
        return int(val) if val else None
    except (TypeError, ValueError):
        return None


def _safe_workers(client, category: str, requested: Optional[int] = None) -> Optional[int]:
    """Pick the fan-out width for a category.

    Explicit ``requested`` wins, then the injected per-category cap. None means
    unbounded. A bounded width never exceeds the client's HTTP pool size.
    """
    target = requested if requested is not None else config.MAX_WORKERS.get(category)
    if not target:
        return None
    pool = _pool_size(client)
    if pool:
        return max(1, min(int(target), pool))
    return max(1, int(target))


def _name_from_arn(arn: str) -> str:
    """Return the trailing 'type/NAME' component of an ARN (or the input)."""
    if not arn:
        return ""
    return arn.rsplit("/", 1)[-1]
