"""Cursor-following collectors for list/describe APIs.

Two entry points:
  * collect(list_page)          - generic: list_page(cursor) -> (items, next_cursor)
  * paginate(fn, page_key, ...) - boto3 style: fn(**params) -> dict page

Pages are fetched one at a time; page N+1 is requested only once page N's
cursor is known. A cursor returned twice within one collection raises
PaginationError instead of looping forever.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from core.errors import PaginationError

ListPage = Callable[[Optional[str]], Tuple[Sequence[Any], Optional[str]]]


def collect(list_page: ListPage) -> List[Any]:
    """Accumulate every item across all pages, in page order."""
    items: List[Any] = []
    seen: Set[str] = set()
    cursor: Optional[str] = None
    pages = 0
    while True:
        page_items, cursor = list_page(cursor)
        pages += 1
        items.extend(page_items or [])
        if not cursor:
            return items
        if cursor in seen:
            raise PaginationError(cursor, pages)
        seen.add(cursor)


def page_reader(
    fn: Callable[..., Dict[str, Any]],
    page_key: str,
    token_key: str,
    request_token_key: Optional[str] = None,
    extract: Optional[Callable[[Dict[str, Any]], Sequence[Any]]] = None,
    **params: Any,
) -> ListPage:
    """Wrap a boto3 call into a ``list_page(cursor)`` function.

    ``token_key`` is read from the response, ``request_token_key`` (defaults to
    ``token_key``) is sent back on the next request. ``extract`` overrides the
    plain ``page[page_key]`` lookup for nested shapes such as EC2 reservations.
    """
    send_key = request_token_key or token_key

    def _list_page(cursor: Optional[str]) -> Tuple[Sequence[Any], Optional[str]]:
        kwargs = dict(params)
        if cursor:
            kwargs[send_key] = cursor
        page = fn(**kwargs) or {}
        found = extract(page) if extract else (page.get(page_key) or [])
        return list(found), page.get(token_key)

    return _list_page


def paginate(
    fn: Callable[..., Dict[str, Any]],
    page_key: str,
    token_key: str,
    request_token_key: Optional[str] = None,
    **params: Any,
) -> List[Any]:
    """Collect every ``page_key`` item of a boto3 list/describe API."""
    return collect(page_reader(fn, page_key, token_key, request_token_key, **params))
