"""Single-entry cache for ``/api/search/lookup`` results.

Lookups can be expensive on large OpenTSDB installations and autocomplete
widgets repeat the same lookup on every keystroke, so the most recent
``(type, query)`` result is kept and served again without a round trip. The
cache is a thin wrapper over :class:`cachetools.LRUCache` with ``maxsize=1``,
which gives the single-entry eviction policy.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from cachetools import LRUCache  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

LookupKey = Tuple[str, str]


class LookupCache:
    """Most-recent-only cache of sorted lookup results.

    Entries are stored as tuples and replaced wholesale, never mutated.
    ``begin`` marks the key of the lookup that was started last; a result
    that arrives for an older key is not stored, so a superseded lookup
    cannot overwrite the newer one.
    """

    def __init__(self) -> None:
        self._cache: LRUCache[LookupKey, Tuple[str, ...]] = LRUCache(maxsize=1)
        self._latest: Optional[LookupKey] = None

    def get(self, key: LookupKey) -> Optional[List[str]]:
        """Return a copy of the cached result for ``key``, or None."""
        values = self._cache.get(key)
        if values is None:
            return None
        return list(values)

    def begin(self, key: LookupKey) -> None:
        """Record ``key`` as the most recent lookup and evict other entries."""
        self._latest = key
        if key not in self._cache:
            self._cache.clear()

    def store(self, key: LookupKey, values: Sequence[str]) -> bool:
        """Store ``values`` for ``key`` if it is still the most recent lookup.

        Returns True when the values were stored.
        """
        if key != self._latest:
            logger.debug(
                "lookup_cache.stale_result_discarded",
                extra={"lookup_key": key, "latest_key": self._latest},
            )
            return False
        self._cache[key] = tuple(values)
        return True

    def clear(self) -> None:
        """Drop the cached entry."""
        self._cache.clear()
        self._latest = None

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: object) -> bool:
        return key in self._cache
