"""Page-number pagination over GitHub list endpoints."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, TypeVar

from gitlytics.errors import RateLimited

logger = logging.getLogger(__name__)

U = TypeVar("U")

MAX_PER_PAGE = 100


@dataclass(frozen=True)
class Page:
    items: List[Any]
    # True/False when GitHub sent a Link header, None when it did not.
    has_next: Optional[bool] = None


class PagedList(list):
    """A list of fetched items plus how the fetch ended.

    ``partial`` is set when pagination stopped early on a rate limit; the
    contents are then an incomplete prefix of the collection. ``next_page``
    is where a follow-up fetch should start.
    """

    def __init__(self, items: Iterable[Any] = (), partial: bool = False, next_page: int = 1):
        super().__init__(items)
        self.partial = partial
        self.next_page = next_page

    def map(self, fn: Callable[[Any], U]) -> "PagedList":
        return PagedList((fn(item) for item in self), partial=self.partial, next_page=self.next_page)


def fetch_all(
    client: Any,
    endpoint: str,
    per_page: int = MAX_PER_PAGE,
    max_items: Optional[int] = None,
    start_page: int = 1,
) -> PagedList:
    """
    Fetch consecutive pages of ``endpoint`` until it is exhausted.

    A page shorter than ``per_page`` ends the walk; when GitHub sends a Link
    header its ``rel="next"`` decides instead. With ``max_items`` the result
    is truncated to that many items, possibly mid-page.

    A rate limit hit after some items were gathered returns them with
    ``partial=True``; on the first page it propagates. Every other error
    propagates.
    """
    if not 1 <= per_page <= MAX_PER_PAGE:
        raise ValueError(f"per_page must be between 1 and {MAX_PER_PAGE}")
    if max_items is not None and max_items < 0:
        raise ValueError("max_items must not be negative")
    if start_page < 1:
        raise ValueError("start_page is 1-based")

    collected: List[Any] = []
    page = start_page
    if max_items == 0:
        return PagedList(collected, next_page=page)

    while True:
        try:
            result = client.get_page(endpoint, params={"per_page": per_page, "page": page})
        except RateLimited:
            if not collected:
                raise
            logger.warning(f"Rate limit reached on {endpoint} page {page}, returning {len(collected)} items")
            return PagedList(collected, partial=True, next_page=page)

        items = result.items
        if max_items is not None:
            room = max_items - len(collected)
            collected.extend(items[:room])
            if len(collected) >= max_items:
                # A page cut short is fetched again by the follow-up.
                return PagedList(collected, next_page=page if len(items) > room else page + 1)
        else:
            collected.extend(items)

        page += 1
        if result.has_next is not None:
            more = result.has_next and bool(items)
        else:
            more = len(items) == per_page
        if not more:
            return PagedList(collected, next_page=page)
