from __future__ import annotations

import decimal
import logging
import threading
import weakref
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger("mortgage_num.cache")

T = TypeVar("T")

# Decimal("1") == Decimal("1.0") but they render differently, so the key keeps
# the exact representation.
CacheKey = tuple[int, tuple[int, ...], int | str]


def _cache_key(value: decimal.Decimal) -> CacheKey:
    sign, digits, exponent = value.as_tuple()
    return sign, digits, exponent


class LiteralCache(Generic[T]):
    """Deduplicating registry of literal nodes keyed by decimal value.

    Only weak references are held, so an entry never keeps a node alive.
    Dead references stay in the table until :meth:`prune` sweeps them; a
    lookup that finds a dead reference treats it as a miss and replaces it.
    Interning and pruning take the same lock, so a cache may be shared
    between threads.

    Typical usage::

        cache = LiteralCache(Literal)
        one = cache.intern(Decimal("1"))
        assert cache.intern(Decimal("1")) is one
        cache.prune()
    """

    def __init__(self, factory: Callable[[decimal.Decimal], T]):
        self._factory = factory
        self._refs: dict[CacheKey, weakref.ref[T]] = {}
        self._lock = threading.Lock()
        self._stats = {"hits": 0, "misses": 0}

    def intern(self, value: decimal.Decimal) -> T:
        key = _cache_key(value)
        with self._lock:
            ref = self._refs.get(key)
            node = ref() if ref is not None else None
            if node is not None:
                self._stats["hits"] += 1
                return node
            self._stats["misses"] += 1
            node = self._factory(value)
            self._refs[key] = weakref.ref(node)
            return node

    def prune(self) -> int:
        """Drop entries whose node has been reclaimed. Returns the number removed."""

        with self._lock:
            dead = [key for key, ref in self._refs.items() if ref() is None]
            for key in dead:
                del self._refs[key]
        if dead:
            logger.debug("pruned %d dead literal entries, %d remain", len(dead), len(self._refs))
        return len(dead)

    def stats(self) -> dict[str, int]:
        with self._lock:
            live = sum(1 for ref in self._refs.values() if ref() is not None)
            return {
                "hits": self._stats["hits"],
                "misses": self._stats["misses"],
                "live": live,
                "dead": len(self._refs) - live,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._refs)

    def __contains__(self, value: object) -> bool:
        if not isinstance(value, decimal.Decimal):
            return False
        with self._lock:
            ref = self._refs.get(_cache_key(value))
            return ref is not None and ref() is not None
