"""Category Cache - process-wide, time-expiring copy of the serialized category list.

Invariants:
    - get() returns None when empty or older than ttl_seconds
    - get() and set() copy: callers can never mutate the cached list
    - Every category write calls invalidate() before responding

Design Decisions:
    - Module singleton category_cache: categories are read on every catalog page
      and change rarely (ADR: single-process deployment, no Redis)
"""

import copy
import time
from collections.abc import Callable


class CategoryCache:
    def __init__(self, ttl_seconds: int = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._items: list[dict] | None = None
        self._stored_at: float = 0.0

    def get(self) -> list[dict] | None:
        if self._items is None:
            return None
        if self._clock() - self._stored_at >= self.ttl_seconds:
            self._items = None
            return None
        return copy.deepcopy(self._items)

    def set(self, items: list[dict]) -> None:
        self._items = copy.deepcopy(items)
        self._stored_at = self._clock()

    def invalidate(self) -> None:
        self._items = None


category_cache = CategoryCache()
