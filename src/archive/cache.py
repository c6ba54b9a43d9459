"""
TTL key/value cache backed by diskcache.

Optional: callers use it to skip redundant page-1 and embed fetches.
Values are stored JSON-encoded so entries stay readable across versions.
"""
from __future__ import annotations
import json
import logging
from pathlib import Path
from typing import Any, Optional

import diskcache

from . import config

log = logging.getLogger("camarchive.cache")


class TTLCache:
    def __init__(self, cache_dir: str = config.CACHE_DIR, *, default_ttl: int = config.CACHE_TTL):
        self._cache_dir = Path(cache_dir)
        self._cache_dir.mkdir(parents=True, exist_ok=True)
        self.default_ttl = default_ttl
        # cull_limit=0: expired rows stay until delete_expired() counts them
        self._cache = diskcache.Cache(directory=str(self._cache_dir), cull_limit=0)

    def get(self, key: str) -> Optional[Any]:
        raw = self._cache.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            log.warning(f"dropping undecodable cache entry {key!r}")
            self._cache.delete(key)
            return None

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        self._cache.set(key, json.dumps(value), expire=ttl)

    def delete(self, key: str) -> bool:
        return bool(self._cache.delete(key))

    def delete_expired(self) -> int:
        """Remove expired entries, return how many were removed."""
        removed = self._cache.expire()
        if removed:
            log.info(f"purged {removed} expired cache entries")
        return removed

    def close(self) -> None:
        self._cache.close()

    def __enter__(self) -> "TTLCache":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
