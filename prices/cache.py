"""
Tagged TTL cache on top of a Django cache backend.

Every tag has a version stamp stored in the backend. An entry is saved together
with the stamps of its tags and is served only while all of them are unchanged,
so invalidating one station bumps its stamp and only the entries that mention
that station go stale. No key set is shared between writers, so concurrent
requests in one process or across processes never lose each other's entries.
"""

from __future__ import annotations

import hashlib
import logging
import time
from typing import Any, Iterable

from django.conf import settings
from django.core.cache import caches
from django.core.cache.backends.base import BaseCache

from prices.constants import CONSOLIDATION_CACHE_PREFIX

logger = logging.getLogger(__name__)


def station_tag(station_id: int) -> str:
    return f"station:{station_id}"


class TaggedCache:
    def __init__(self, backend: BaseCache, *, prefix: str, timeout: int) -> None:
        self.backend = backend
        self.prefix = prefix
        self.timeout = timeout

    def make_key(self, *parts: Any) -> str:
        """Deterministic key for any repr-able parts."""
        raw = "|".join(repr(p) for p in parts)
        return f"{self.prefix}:{hashlib.md5(raw.encode()).hexdigest()}"

    def _tag_key(self, tag: str) -> str:
        return f"{self.prefix}:tag:{tag}"

    def _tag_versions(self, tags: Iterable[str]) -> dict[str, int]:
        """Current stamp of each tag, creating missing ones."""
        tag_keys = [self._tag_key(t) for t in tags]
        versions = self.backend.get_many(tag_keys)
        for tag_key in tag_keys:
            if tag_key not in versions:
                # Seeded from the clock so an evicted stamp never comes back
                # with a value an old entry was saved with.
                self.backend.add(tag_key, time.time_ns(), None)
                versions[tag_key] = self.backend.get(tag_key)
        return versions

    def get(self, key: str) -> Any | None:
        entry = self.backend.get(key)
        if entry is None:
            return None
        saved, value = entry
        if saved and self.backend.get_many(list(saved)) != saved:
            return None
        return value

    def set(self, key: str, value: Any, *, tags: Iterable[str] = ()) -> None:
        self.backend.set(key, (self._tag_versions(tags), value), self.timeout)

    def invalidate_tags(self, tags: Iterable[str]) -> int:
        """Make every entry stored under any of ``tags`` stale. Returns tags bumped."""
        bumped = 0
        for tag in tags:
            tag_key = self._tag_key(tag)
            # Nothing was ever cached under a tag without a stamp.
            current = self.backend.get(tag_key)
            if current is None:
                continue
            self.backend.set(tag_key, max(time.time_ns(), current + 1), None)
            bumped += 1
        if bumped:
            logger.debug("[CACHE] invalidated %d tags", bumped)
        return bumped


def get_consolidation_cache() -> TaggedCache:
    return TaggedCache(
        caches[settings.CONSOLIDATION_CACHE_ALIAS],
        prefix=CONSOLIDATION_CACHE_PREFIX,
        timeout=settings.CONSOLIDATION_CACHE_TTL,
    )


def invalidate_stations(station_ids: Iterable[int], *, cache: TaggedCache | None = None) -> int:
    cache = cache or get_consolidation_cache()
    return cache.invalidate_tags(station_tag(sid) for sid in station_ids)
