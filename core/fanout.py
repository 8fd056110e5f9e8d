"""
Concurrent fan-out with per-item outcomes.

Every job is submitted before any result is looked at, so one resource's
failure never prevents another resource's command from being issued. The
caller decides what to do with failed outcomes.
"""
from __future__ import annotations

import concurrent.futures as cf
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Sequence

from core.errors import ErrorKind, classify, error_code

OK = "ok"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class Outcome:
    """Result of one shutdown command against one resource."""

    category: str
    action: str
    resource_id: str
    status: str = OK
    error: Optional[BaseException] = None
    kind: Optional[ErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.status != FAILED

    def describe(self) -> str:
        text = f"{self.category}:{self.action} {self.resource_id} -> {self.status}"
        if self.error is not None:
            code = error_code(self.error) or type(self.error).__name__
            text += f" ({code}: {self.error})"
        return text


def failed(outcomes: Iterable[Outcome]) -> List[Outcome]:
    return [o for o in outcomes if not o.ok]


def fan_out(
    items: Sequence[Any],
    fn: Callable[[Any], Optional[List[Outcome]]],
    *,
    category: str,
    action: str,
    key: Callable[[Any], str] = str,
    max_workers: Optional[int] = None,
    benign_codes: Iterable[str] = (),
    logger: Optional[logging.Logger] = None,
) -> List[Outcome]:
    """Run ``fn(item)`` for every item concurrently and join on all of them.

    Returns one Outcome per item (submission order). When a job returns a list
    of Outcomes (nested fan-out) those follow the item's own outcome.
    ``max_workers`` caps the pool; None or 0 means one worker per item.
    """
    log = logger or logging.getLogger(__name__)
    items = list(items)
    if not items:
        return []
    benign = tuple(benign_codes)
    workers = max(1, min(len(items), max_workers or len(items)))

    out: List[Outcome] = []
    with cf.ThreadPoolExecutor(max_workers=workers) as pool:
        futs = [(item, pool.submit(fn, item)) for item in items]
        for item, fut in futs:
            rid = key(item)
            try:
                nested = fut.result()
            except Exception as exc:  # pylint: disable=broad-except
                kind = classify(exc, benign)
                if kind is ErrorKind.RECOVERABLE:
                    log.info(f"[{category}] {action} {rid} skipped: {error_code(exc)}")
                    out.append(Outcome(category, action, rid, SKIPPED, exc, kind))
                else:
                    log.error(f"[{category}] {action} {rid} failed ({kind.value}): {exc}")
                    out.append(Outcome(category, action, rid, FAILED, exc, kind))
                continue
            log.debug(f"[{category}] {action} {rid} ok")
            out.append(Outcome(category, action, rid))
            if isinstance(nested, list):
                out.extend(nested)
    return out
