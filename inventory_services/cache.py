"""
inventory_services.cache -- Optional read-through cache.

Responsibility:
    CacheBackend protocol (get / set with TTL / invalidate by glob pattern),
    an in-process reference backend, and CacheKey, the typed builder that
    produces both the keys readers store under and the patterns writers
    invalidate.  Sharing the builder keeps the two from drifting apart.

Architecture position:
    Services -- optional infrastructure.  Every caller works with
    ``cache=None``; the cache only saves reads.

Invariants enforced:
    - Expiry is measured on the injected Clock, never on wall time.
    - Keys are ``inventory:<tenant>:<entity>:<part>:...``; parts are
      percent-encoded so they never contain ``:`` or glob metacharacters.
"""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol, runtime_checkable
from urllib.parse import quote

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.logging_config import get_logger

logger = get_logger("services.cache")

_PREFIX = "inventory"


@runtime_checkable
class CacheBackend(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    def invalidate_pattern(self, pattern: str) -> int: ...


class InMemoryCache:
    """Dictionary-backed cache with clock-driven TTL."""

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()
        self._entries: dict[str, tuple[Any, datetime]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock.now_utc() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        self._entries[key] = (value, self._clock.now_utc() + timedelta(seconds=ttl_seconds))

    def invalidate_pattern(self, pattern: str) -> int:
        doomed = [k for k in self._entries if fnmatch.fnmatchcase(k, pattern)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def __len__(self) -> int:
        return len(self._entries)


def _part(value: object) -> str:
    text = str(value)
    if not text:
        raise ValueError("Cache key parts must be non-empty")
    # Percent-encode separators and glob metacharacters.
    return quote(text, safe="")


@dataclass(frozen=True)
class CacheKey:
    """
    Typed cache key scoped to (tenant, entity, parts).

    ``CacheKey("t1", "level", ("P-1", "WH-A")).key`` is
    ``inventory:t1:level:P-1:WH-A``; ``.pattern`` matches it and every key
    extending it.
    """

    tenant_id: str
    entity: str
    parts: tuple[str, ...] = ()

    @property
    def key(self) -> str:
        return ":".join(
            [_PREFIX, _part(self.tenant_id), _part(self.entity)]
            + [_part(p) for p in self.parts]
        )

    @property
    def pattern(self) -> str:
        return self.key + "*"

    # Key families used by the coordinator and valuation service.

    @classmethod
    def status(cls, tenant_id: str, location_id: str) -> CacheKey:
        return cls(tenant_id, "status", (location_id,))

    @classmethod
    def level(cls, tenant_id: str, product_id: str, location_id: str) -> CacheKey:
        return cls(tenant_id, "level", (product_id, location_id))

    @classmethod
    def valuation(
        cls, tenant_id: str, product_id: str, location_id: str, variant_id: str | None = None
    ) -> CacheKey:
        parts: tuple[str, ...] = (product_id, location_id)
        if variant_id is not None:
            parts += (variant_id,)
        return cls(tenant_id, "valuation", parts)


def invalidate_stock(
    cache: CacheBackend | None, tenant_id: str, product_id: str, location_id: str
) -> None:
    """Drop every cached view that depends on one product at one location."""
    if cache is None:
        return
    patterns = (
        CacheKey.level(tenant_id, product_id, location_id).pattern,
        CacheKey.valuation(tenant_id, product_id, location_id).pattern,
        CacheKey.status(tenant_id, location_id).pattern,
    )
    for pattern in patterns:
        try:
            cache.invalidate_pattern(pattern)
        except Exception:
            logger.exception("cache_invalidation_failed", extra={"pattern": pattern})


def cache_get(cache: CacheBackend | None, key: CacheKey) -> Any | None:
    if cache is None:
        return None
    try:
        return cache.get(key.key)
    except Exception:
        logger.exception("cache_read_failed", extra={"key": key.key})
        return None


def cache_set(cache: CacheBackend | None, key: CacheKey, value: Any, ttl_seconds: int) -> None:
    if cache is None:
        return
    try:
        cache.set(key.key, value, ttl_seconds)
    except Exception:
        logger.exception("cache_write_failed", extra={"key": key.key})
