"""
Routing resolution cache

Thread-safe in-memory cache of resolved routing ids keyed by node
identity: ``("bom_item", id)`` or ``("order", id)``. A cached ``None``
means "resolved, no routing" and is distinct from a miss.

Invalidation is explicit and synchronous; callers invalidate inside the
same unit of work that changes a routing.
"""
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Hashable, Iterable, Optional, Tuple

from mesflow.core.settings import settings
from mesflow.logging_config import get_logger

logger = get_logger(__name__)

CacheKey = Tuple[str, int]

MISSING = object()


@dataclass
class CacheEntry:
    value: Optional[int]
    expires_at: Optional[float]

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    invalidations: int = 0


class RoutingCache:
    """Resolved-routing cache with a per-entry TTL."""

    def __init__(self, ttl_seconds: Optional[int] = None, clock: Callable[[], float] = time.monotonic):
        self._ttl = settings.ROUTING_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._lock = threading.RLock()
        self.stats = CacheStats()

    def get(self, key: CacheKey):
        """Cached routing id (possibly None), or ``MISSING``."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.stats.misses += 1
                return MISSING
            if entry.is_expired(self._clock()):
                del self._entries[key]
                self.stats.misses += 1
                return MISSING
            self.stats.hits += 1
            return entry.value

    def set(self, key: CacheKey, routing_id: Optional[int]) -> None:
        with self._lock:
            expires_at = self._clock() + self._ttl if self._ttl > 0 else None
            self._entries[key] = CacheEntry(value=routing_id, expires_at=expires_at)

    def invalidate(self, key: CacheKey) -> bool:
        with self._lock:
            removed = self._entries.pop(key, None) is not None
            if removed:
                self.stats.invalidations += 1
            return removed

    def invalidate_many(self, keys: Iterable[CacheKey]) -> int:
        with self._lock:
            return sum(1 for key in keys if self.invalidate(key))

    def invalidate_bom_item(self, bom_item, include_ancestors: bool = True, include_subtree: bool = True) -> int:
        """
        Drop a BOM item's entry plus its ancestors' and descendants' entries.

        Descendants resolve through this node; ancestors are dropped along
        the same parent chain used for lookup.
        """
        keys = [("bom_item", bom_item.id)]
        if include_ancestors:
            keys.extend(("bom_item", a.id) for a in bom_item.ancestors())
        if include_subtree:
            keys.extend(("bom_item", d.id) for d in bom_item.descendants())
        count = self.invalidate_many(keys)
        logger.debug(
            "Routing cache invalidated",
            extra={"bom_item_id": bom_item.id, "entries_removed": count},
        )
        return count

    def invalidate_order(self, order, include_subtree: bool = True) -> int:
        keys = [("order", order.id)]
        if include_subtree:
            stack = list(order.children)
            while stack:
                child = stack.pop()
                keys.append(("order", child.id))
                stack.extend(child.children)
        return self.invalidate_many(keys)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# Process-wide cache shared by resolver instances
routing_cache = RoutingCache()
