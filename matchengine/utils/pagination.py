from __future__ import annotations

import logging
import math
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from matchengine.utils.cache import ResultCache, matches_key

log = logging.getLogger(__name__)

__all__ = ["pagination_result", "MatchListPager"]

# fetch_page(user_id, status, page, page_size) -> (items, total_count)
FetchPage = Callable[[str, Optional[str], int, int], Tuple[Sequence[Any], int]]


def pagination_result(items: Sequence[Any], page: int, page_size: int, total_count: int) -> Dict[str, Any]:
    """Pages are 1-based."""
    if page < 1:
        raise ValueError("page must be >= 1")
    if page_size < 1:
        raise ValueError("page_size must be >= 1")
    total_pages = math.ceil(total_count / page_size)
    return {
        "data": list(items),
        "page": page,
        "page_size": page_size,
        "total_pages": total_pages,
        "total_count": total_count,
        "has_next_page": page < total_pages,
        "has_previous_page": page > 1,
    }


class MatchListPager:
    """
    One consumer's view of a paginated match list. Loads are serialized: a
    `load_more` issued while another load is running returns False without
    fetching, so pages are never appended twice or out of order.
    """

    def __init__(self, fetch_page: FetchPage, user_id: str, status: Optional[str] = None,
                 page_size: int = 20, cache: Optional[ResultCache] = None, ttl: float = 300):
        self._fetch_page = fetch_page
        self.user_id = str(user_id)
        self.status = status
        self.page_size = int(page_size)
        self.cache = cache
        self.ttl = ttl
        self._loading = threading.Lock()
        self._items: List[Any] = []
        self._page = 0
        self._last: Optional[Dict[str, Any]] = None

    @property
    def items(self) -> List[Any]:
        return list(self._items)

    @property
    def has_more(self) -> bool:
        return self._last is None or bool(self._last["has_next_page"])

    @property
    def loading(self) -> bool:
        return self._loading.locked()

    def _fetch(self, page: int) -> Dict[str, Any]:
        def fetch() -> Dict[str, Any]:
            items, total = self._fetch_page(self.user_id, self.status, page, self.page_size)
            return pagination_result(items, page, self.page_size, int(total))
        if self.cache is None:
            return fetch()
        key = matches_key(self.user_id, self.status, page, self.page_size)
        return self.cache.get_or_fetch(key, fetch, self.ttl)

    def _load(self, first: bool) -> bool:
        # page choice and the has-next check happen under the lock
        if not self._loading.acquire(blocking=False):
            return False
        try:
            if first or self._page == 0:
                page, reset = 1, True
            elif not self._last["has_next_page"]:
                return False
            else:
                page, reset = self._page + 1, False
            result = self._fetch(page)
            if reset:
                self._items = []
            self._items.extend(result["data"])
            self._page = page
            self._last = result
            return True
        finally:
            self._loading.release()

    def load_first(self) -> bool:
        return self._load(first=True)

    def load_more(self) -> bool:
        return self._load(first=False)

    def refresh(self) -> bool:
        """Drop cached pages for this consumer and reload from page 1."""
        if self.cache is not None:
            self.cache.clear(matches_key(self.user_id, self.status) + ":")
        return self.load_first()
