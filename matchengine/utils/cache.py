from __future__ import annotations
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor, wait
import json, logging, sqlite3, time, os, threading
from typing import Any, Callable, Dict, List, Optional

from matchengine.utils.metrics import cache_event

log = logging.getLogger(__name__)

__all__ = [
    "LRUCache", "SQLiteCache", "ResultCache",
    "compatibility_key", "matches_key", "profile_key", "chart_key",
]


# ───────────────────────── key builders ─────────────────────────

def compatibility_key(id1: str, id2: str) -> str:
    """Order-independent: (a, b) and (b, a) share one entry."""
    lo, hi = sorted((str(id1), str(id2)))
    return f"cache:compatibility:{lo}:{hi}"

def matches_key(user_id: str, status: Optional[str] = None,
                page: Optional[int] = None, page_size: Optional[int] = None) -> str:
    key = f"cache:matches:{user_id}"
    if status:
        key += f":{status}"
    if page is not None and page_size is not None:
        key += f":{page}:{page_size}"
    return key

def profile_key(user_id: str) -> str:
    return f"cache:profile:{user_id}"

def chart_key(fingerprint: str) -> str:
    return f"chart:{fingerprint}"


# ───────────────────────── storage tiers ─────────────────────────

class LRUCache:
    def __init__(self, capacity: int = 1024):
        self.capacity = capacity
        self.store: "OrderedDict[str, Any]" = OrderedDict()
        self.lock = threading.Lock()

    def get(self, key: str):
        with self.lock:
            if key in self.store:
                self.store.move_to_end(key)
                return self.store[key]
            return None

    def set(self, key: str, value: Any):
        with self.lock:
            self.store[key] = value
            self.store.move_to_end(key)
            if len(self.store) > self.capacity:
                self.store.popitem(last=False)

    def delete(self, key: str):
        with self.lock:
            self.store.pop(key, None)

    def delete_prefix(self, prefix: str):
        with self.lock:
            for k in [k for k in self.store if k.startswith(prefix)]:
                del self.store[k]


class SQLiteCache:
    """
    Durable tier. Values are JSON. A row that fails to decode, or any
    sqlite3.Error (locked, corrupt or closed store), reads as a miss; a failed
    write or delete is logged and skipped.
    """
    def __init__(self, path: str = ":memory:"):
        self.path = path or ":memory:"
        parent = os.path.dirname(self.path)
        if self.path != ":memory:" and parent:
            os.makedirs(parent, exist_ok=True)
        self.conn = sqlite3.connect(self.path, check_same_thread=False)
        self.lock = threading.Lock()
        self._init()

    def _init(self):
        with self.lock:
            cur = self.conn.cursor()
            cur.execute("""CREATE TABLE IF NOT EXISTS cache (
                k TEXT PRIMARY KEY,
                v TEXT NOT NULL,
                created_at REAL NOT NULL
            )""")
            self.conn.commit()

    def _failed(self, op: str, key: str, e: Exception) -> None:
        log.warning("cache store %s %s failed (%s: %s)", op, key, type(e).__name__, e)
        cache_event("error")

    def get(self, key: str) -> Optional[Any]:
        try:
            with self.lock:
                cur = self.conn.cursor()
                cur.execute("SELECT v FROM cache WHERE k=?", (key,))
                row = cur.fetchone()
        except sqlite3.Error as e:
            self._failed("read", key, e)
            return None
        if not row:
            return None
        try:
            return json.loads(row[0])
        except ValueError as e:
            log.warning("cache row %s is not valid JSON (%s); treating as miss", key, e)
            cache_event("error")
            return None

    def set(self, key: str, value: Any):
        s = json.dumps(value, separators=(',', ':'))
        ts = time.time()
        try:
            with self.lock:
                cur = self.conn.cursor()
                cur.execute("REPLACE INTO cache (k,v,created_at) VALUES (?,?,?)", (key, s, ts))
                self.conn.commit()
        except sqlite3.Error as e:
            self._failed("write", key, e)

    def delete(self, key: str):
        try:
            with self.lock:
                self.conn.execute("DELETE FROM cache WHERE k=?", (key,))
                self.conn.commit()
        except sqlite3.Error as e:
            self._failed("delete", key, e)

    def delete_prefix(self, prefix: str):
        # substr compares case-sensitively; LIKE would fold ASCII case
        try:
            with self.lock:
                self.conn.execute("DELETE FROM cache WHERE substr(k, 1, ?) = ?", (len(prefix), prefix))
                self.conn.commit()
        except sqlite3.Error as e:
            self._failed("delete", prefix + "*", e)

    def close(self):
        with self.lock:
            self.conn.close()


# ───────────────────────── TTL cache with background refresh ─────────────────────────

class ResultCache:
    """
    Two-tier TTL cache: LRU in front of SQLite. Entries are stored as
    {"data": value, "expiry": epoch_seconds}; an entry is valid while
    clock() < expiry. `get_or_fetch` serves a valid entry and, when less than
    `refresh_fraction` of the TTL remains, refreshes it on a worker thread.
    At most one refresh per key is in flight; otherwise the last write wins.
    Values must be JSON-serializable.
    """
    def __init__(self, memory: Optional[LRUCache] = None, store: Optional[SQLiteCache] = None,
                 clock: Callable[[], float] = time.time, refresh_fraction: float = 0.25,
                 max_workers: int = 2):
        self.memory = memory if memory is not None else LRUCache()
        self.store = store if store is not None else SQLiteCache(":memory:")
        self.clock = clock
        self.refresh_fraction = float(refresh_fraction)
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="cache-refresh")
        self._lock = threading.Lock()
        self._inflight: Dict[str, Future] = {}

    @classmethod
    def from_config(cls, cfg: Any, clock: Callable[[], float] = time.time) -> "ResultCache":
        c = cfg.cache
        return cls(
            memory=LRUCache(int(c.capacity)),
            store=SQLiteCache(c.path or ":memory:"),
            clock=clock,
            refresh_fraction=float(c.refresh_fraction),
        )

    # ── entries ──
    def _entry(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self.memory.get(key)
        if entry is None:
            entry = self.store.get(key)
            if entry is not None:
                self.memory.set(key, entry)
        if entry is None:
            return None
        if not isinstance(entry, dict) or "data" not in entry or not isinstance(entry.get("expiry"), (int, float)):
            log.warning("cache entry %s has unexpected shape; dropping", key)
            cache_event("error")
            self.invalidate(key)
            return None
        if self.clock() >= entry["expiry"]:
            cache_event("evict")
            self.invalidate(key)
            return None
        return entry

    def get(self, key: str) -> Optional[Any]:
        entry = self._entry(key)
        cache_event("hit" if entry is not None else "miss")
        return None if entry is None else entry["data"]

    def set(self, key: str, value: Any, ttl: float) -> None:
        entry = {"data": value, "expiry": self.clock() + float(ttl)}
        self.memory.set(key, entry)
        self.store.set(key, entry)

    def get_or_fetch(self, key: str, fetch_fn: Callable[[], Any], ttl: float) -> Any:
        entry = self._entry(key)
        if entry is not None:
            cache_event("hit")
            if entry["expiry"] < self.clock() + float(ttl) * self.refresh_fraction:
                self._schedule_refresh(key, fetch_fn, ttl)
            return entry["data"]
        cache_event("miss")
        value = fetch_fn()
        self.set(key, value, ttl)
        return value

    def invalidate(self, key: str) -> None:
        self.memory.delete(key)
        self.store.delete(key)

    def clear(self, prefix: str = "cache:") -> None:
        self.memory.delete_prefix(prefix)
        self.store.delete_prefix(prefix)

    # ── background refresh ──
    def _schedule_refresh(self, key: str, fetch_fn: Callable[[], Any], ttl: float) -> None:
        with self._lock:
            if key in self._inflight:
                return
            self._inflight[key] = self._pool.submit(self._refresh, key, fetch_fn, ttl)
        cache_event("refresh")

    def _refresh(self, key: str, fetch_fn: Callable[[], Any], ttl: float) -> None:
        try:
            self.set(key, fetch_fn(), ttl)
        except Exception as e:
            # the still-valid entry stays in place until it expires
            log.warning("background refresh of %s failed: %s: %s", key, type(e).__name__, e)
            cache_event("error")
        finally:
            with self._lock:
                self._inflight.pop(key, None)

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for in-flight refreshes; True when none remain."""
        with self._lock:
            pending: List[Future] = list(self._inflight.values())
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def close(self) -> None:
        self._pool.shutdown(wait=True)
        self.store.close()
