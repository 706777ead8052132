"""Rule Cache - bounded LRU memo of parsed rule handles.

Keys are derived from (task id, rule expression) with every reserved
character percent-encoded, so two different pairs can never collide:

    make_cache_key("a::b", "FREQ=DAILY") != make_cache_key("a", "b::FREQ=DAILY")

The cache is a pure performance layer: a hit returns exactly the handle a
fresh parse would have produced. When a task's anchor or timezone changes
under the same key, the stale entry is replaced on the next lookup.

Thread safety: mutating operations are serialized with an RLock. Statistics
reads are lock-free and may be momentarily stale.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
import threading
from typing import TYPE_CHECKING
from urllib.parse import quote

from .. import const
from ..utils.dt_utils import dt_now_utc
from . import rule_engine

if TYPE_CHECKING:
    from datetime import date, datetime, timedelta, tzinfo

    from ..type_defs import CacheStats
    from .rule_engine import RuleHandle


def make_cache_key(task_id: str, expression: str) -> str:
    """Build the deterministic cache key for a task's rule.

    Args:
        task_id: Task identifier (any characters)
        expression: Rule expression text (any characters)

    Returns:
        "<encoded task id>::<encoded expression>"
    """
    return (
        f"{quote(str(task_id), safe='')}"
        f"{const.CACHE_KEY_SEPARATOR}"
        f"{quote(str(expression), safe='')}"
    )


def _fingerprint(
    anchor: datetime | date | str, timezone: tzinfo | str | None
) -> tuple[str, str]:
    return str(anchor), str(timezone)


@dataclass
class CacheEntry:
    """A cached handle plus bookkeeping.

    Attributes:
        key: Cache key (see make_cache_key)
        handle: Parsed rule handle
        hit_count: Lookups served from this entry
        last_access: Last lookup time (UTC)
        created_at: Insertion time (UTC)
    """

    key: str
    handle: RuleHandle
    hit_count: int = 0
    last_access: datetime = field(default_factory=dt_now_utc)
    created_at: datetime = field(default_factory=dt_now_utc)
    fingerprint: tuple[str, str] = field(default=("", ""), repr=False)


class RuleCache:
    """Bounded least-recently-used cache of RuleHandles.

    Usage:
        cache = RuleCache(capacity=500)
        handle = cache.get_or_parse(
            make_cache_key(task_id, expr), expr, anchor, "Europe/Berlin"
        )
    """

    def __init__(self, capacity: int = const.DEFAULT_CACHE_SIZE) -> None:
        """Initialize the cache.

        Args:
            capacity: Maximum number of entries (>= 1)

        Raises:
            ValueError: If capacity < 1.
        """
        if capacity < 1:
            raise ValueError(f"Cache capacity must be at least 1, got {capacity}")
        self._capacity = capacity
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    @property
    def capacity(self) -> int:
        """Maximum number of entries."""
        return self._capacity

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> list[str]:
        """Current keys, least recently used first."""
        with self._lock:
            return list(self._entries)

    def get_entry(self, key: str) -> CacheEntry | None:
        """Inspect an entry without touching recency or counters."""
        return self._entries.get(key)

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_or_parse(
        self,
        key: str,
        expression: str,
        anchor: datetime | date | str,
        timezone: tzinfo | str | None = None,
    ) -> RuleHandle:
        """Return the cached handle for `key`, parsing on a miss.

        Args:
            key: Cache key (see make_cache_key)
            expression: Rule expression to parse on a miss
            anchor: Anchor instant for the handle
            timezone: Rule timezone (IANA name or tzinfo)

        Returns:
            The RuleHandle (identical object on repeated hits).

        Raises:
            MalformedRule: If parsing fails on a miss. Nothing is cached.
        """
        fingerprint = _fingerprint(anchor, timezone)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.fingerprint == fingerprint:
                entry.hit_count += 1
                entry.last_access = dt_now_utc()
                self._entries.move_to_end(key)
                self._hits += 1
                const.LOGGER.debug("RuleCache: hit for %s", key)
                return entry.handle

            self._misses += 1
            if entry is not None:
                const.LOGGER.debug("RuleCache: anchor changed for %s, reparsing", key)
                del self._entries[key]
            else:
                const.LOGGER.debug("RuleCache: miss for %s", key)

            handle = rule_engine.parse(expression, anchor, timezone)

            while len(self._entries) >= self._capacity:
                evicted_key, _ = self._entries.popitem(last=False)
                const.LOGGER.debug("RuleCache: evicted %s", evicted_key)

            self._entries[key] = CacheEntry(
                key=key, handle=handle, fingerprint=fingerprint
            )
            return handle

    # =========================================================================
    # Invalidation
    # =========================================================================

    def invalidate(self, key: str) -> bool:
        """Remove one entry. Returns True if it existed."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_task(self, task_id: str) -> int:
        """Remove every entry belonging to a task.

        Args:
            task_id: Task identifier

        Returns:
            Number of entries removed.
        """
        prefix = f"{quote(str(task_id), safe='')}{const.CACHE_KEY_SEPARATOR}"
        with self._lock:
            stale = [key for key in self._entries if key.startswith(prefix)]
            for key in stale:
                del self._entries[key]
        if stale:
            const.LOGGER.debug(
                "RuleCache: invalidated %d entries for task %s", len(stale), task_id
            )
        return len(stale)

    def prune_idle(self, max_idle: timedelta, now: datetime | None = None) -> int:
        """Remove entries not accessed within `max_idle`.

        Args:
            max_idle: Maximum idle time to keep an entry
            now: Reference time (defaults to current UTC time)

        Returns:
            Number of entries removed.
        """
        cutoff = (now or dt_now_utc()) - max_idle
        with self._lock:
            stale = [
                key
                for key, entry in self._entries.items()
                if entry.last_access < cutoff
            ]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        """Drop every entry and reset hit/miss counters."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    # =========================================================================
    # Statistics
    # =========================================================================

    def stats(self) -> CacheStats:
        """Return cache statistics (for tuning, never for correctness)."""
        total = self._hits + self._misses
        return {
            "size": len(self._entries),
            "capacity": self._capacity,
            "hit_rate": self._hits / total if total else 0.0,
            "total_hits": self._hits,
            "total_misses": self._misses,
        }
