"""
Provider error classification and job-level exceptions.

Every failure coming back from a fan-out is sorted into one of three kinds:

* ``RECOVERABLE`` - an expected rejection listed by the caller (for example
  ``InvalidParameterCombination`` from ``StopDBInstance`` on a read replica).
  Absorbed locally and reported as a skip.
* ``TRANSIENT``  - throttling, 5xx or transport errors. Reported as failures;
  the SDK config already retried them.
* ``PERMANENT``  - everything else (authorization, not-found, validation...).
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, List, Optional

from botocore.exceptions import BotoCoreError, ClientError  # type: ignore

THROTTLING_CODES = {
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "TooManyRequestsException",
}


class ErrorKind(str, Enum):
    RECOVERABLE = "recoverable"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class PaginationError(RuntimeError):
    """A list API handed back a continuation token it had already returned."""

    def __init__(self, cursor: Any, pages: int) -> None:
        super().__init__(f"pagination cursor repeated after {pages} page(s): {cursor!r}")
        self.cursor = cursor
        self.pages = pages


class ShutdownError(RuntimeError):
    """Raised at the end of a run that kept going past failed stages."""

    def __init__(self, failures: List[Any]) -> None:
        categories = sorted({f.category for f in failures})
        super().__init__(
            f"{len(failures)} shutdown operation(s) failed in: {', '.join(categories)}"
        )
        self.failures = failures


def error_code(exc: BaseException) -> str:
    """Return the AWS error code carried by a ClientError, else ''."""
    if isinstance(exc, ClientError):
        return str((exc.response or {}).get("Error", {}).get("Code", "") or "")
    return ""


def _http_status(exc: ClientError) -> Optional[int]:
    meta = (exc.response or {}).get("ResponseMetadata", {}) or {}
    try:
        return int(meta.get("HTTPStatusCode"))
    except (TypeError, ValueError):
        return None


def classify(exc: BaseException, benign_codes: Iterable[str] = ()) -> ErrorKind:
    """Map an exception onto an :class:`ErrorKind`."""
    if isinstance(exc, ClientError):
        code = error_code(exc)
        if code in set(benign_codes):
            return ErrorKind.RECOVERABLE
        status = _http_status(exc)
        if code in THROTTLING_CODES or (status is not None and status >= 500):
            return ErrorKind.TRANSIENT
        return ErrorKind.PERMANENT
    if isinstance(exc, BotoCoreError):
        return ErrorKind.TRANSIENT
    return ErrorKind.PERMANENT
