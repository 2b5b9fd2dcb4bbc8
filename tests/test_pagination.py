# tests/test_pagination.py
from __future__ import annotations

import threading

import pytest

from matchengine.utils.cache import matches_key
from matchengine.utils.pagination import MatchListPager, pagination_result


class FakeBackend:
    """In-memory match list; records every page request."""
    def __init__(self, total: int):
        self.rows = [{"id": f"m{i}"} for i in range(total)]
        self.calls = []

    def __call__(self, user_id, status, page, page_size):
        self.calls.append((user_id, status, page, page_size))
        start = (page - 1) * page_size
        return self.rows[start:start + page_size], len(self.rows)


def test_pagination_result_fields() -> None:
    r = pagination_result(["a", "b"], page=2, page_size=2, total_count=5)
    assert r == {
        "data": ["a", "b"],
        "page": 2,
        "page_size": 2,
        "total_pages": 3,
        "total_count": 5,
        "has_next_page": True,
        "has_previous_page": True,
    }


def test_pagination_result_edges() -> None:
    empty = pagination_result([], 1, 20, 0)
    assert empty["total_pages"] == 0
    assert not empty["has_next_page"] and not empty["has_previous_page"]
    last = pagination_result(["x"], 3, 2, 5)
    assert not last["has_next_page"]
    with pytest.raises(ValueError):
        pagination_result([], 0, 20, 0)
    with pytest.raises(ValueError):
        pagination_result([], 1, 0, 0)


def test_pager_appends_pages_in_order() -> None:
    backend = FakeBackend(5)
    pager = MatchListPager(backend, "u1", page_size=2)
    assert pager.has_more
    assert pager.load_first()
    assert pager.load_more()
    assert pager.load_more()
    assert [r["id"] for r in pager.items] == ["m0", "m1", "m2", "m3", "m4"]
    assert not pager.has_more
    assert pager.load_more() is False
    assert [c[2] for c in backend.calls] == [1, 2, 3]


def test_load_more_without_first_starts_at_page_one() -> None:
    backend = FakeBackend(3)
    pager = MatchListPager(backend, "u1", status="pending", page_size=2)
    assert pager.load_more()
    assert backend.calls == [("u1", "pending", 1, 2)]


def test_load_more_while_loading_is_a_no_op() -> None:
    nested = {}

    def fetch(user_id, status, page, page_size):
        # a second request issued from inside a load must not fetch
        nested.setdefault("result", pager.load_more())
        nested["loading"] = pager.loading
        return [page], 10

    pager = MatchListPager(fetch, "u1", page_size=1)
    assert pager.load_first()
    assert nested == {"result": False, "loading": True}
    assert pager.items == [1]
    assert not pager.loading


def test_fetch_error_releases_loading_flag() -> None:
    def fetch(*_a):
        raise ConnectionError("backend down")

    pager = MatchListPager(fetch, "u1")
    with pytest.raises(ConnectionError):
        pager.load_first()
    assert not pager.loading
    assert pager.items == []


def test_pages_are_cached_and_refresh_clears_them(cache) -> None:
    backend = FakeBackend(4)
    pager = MatchListPager(backend, "u1", page_size=2, cache=cache)
    pager.load_first()
    pager.load_more()
    assert cache.get(matches_key("u1", None, 2, 2)) is not None

    again = MatchListPager(backend, "u1", page_size=2, cache=cache)
    again.load_first()
    assert len(backend.calls) == 2

    backend.rows.insert(0, {"id": "new"})
    assert again.refresh()
    assert again.items[0]["id"] == "new"
    assert len(backend.calls) == 3
    assert cache.get(matches_key("u1", None, 2, 2)) is None


def test_refresh_only_touches_own_list(cache) -> None:
    cache.set(matches_key("u10", None, 1, 2), {"kept": True}, 60)
    pager = MatchListPager(FakeBackend(1), "u1", page_size=2, cache=cache)
    pager.refresh()
    assert cache.get(matches_key("u10", None, 1, 2)) == {"kept": True}


def test_concurrent_load_more_never_repeats_a_page() -> None:
    in_fetch = threading.Event()
    release = threading.Event()
    backend = FakeBackend(6)

    def slow_fetch(user_id, status, page, page_size):
        if page == 2:
            in_fetch.set()
            release.wait(5)
        return backend(user_id, status, page, page_size)

    pager = MatchListPager(slow_fetch, "u1", page_size=2)
    assert pager.load_first()

    worker = threading.Thread(target=pager.load_more)
    worker.start()
    assert in_fetch.wait(5)
    # issued while page 2 is in flight: no fetch, no append
    assert pager.load_more() is False
    release.set()
    worker.join(5)

    assert pager.load_more()
    assert [c[2] for c in backend.calls] == [1, 2, 3]
    assert [r["id"] for r in pager.items] == ["m0", "m1", "m2", "m3", "m4", "m5"]


def test_many_threads_append_each_page_once() -> None:
    backend = FakeBackend(40)
    pager = MatchListPager(backend, "u1", page_size=4)
    start = threading.Barrier(8)

    def hammer():
        start.wait(5)
        for _ in range(20):
            pager.load_more()

    threads = [threading.Thread(target=hammer) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(10)

    pages = [c[2] for c in backend.calls]
    assert pages == sorted(set(pages))
    ids = [r["id"] for r in pager.items]
    assert len(ids) == len(set(ids))


def test_refresh_is_case_sensitive_on_user_id(cache) -> None:
    cache.set(matches_key("u1", None, 1, 2), {"kept": True}, 60)
    MatchListPager(FakeBackend(1), "U1", page_size=2, cache=cache).refresh()
    assert cache.get(matches_key("u1", None, 1, 2)) == {"kept": True}
