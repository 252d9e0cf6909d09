"""Fetch orchestration: cache first, upstream second, stale or empty on failure."""

import logging
import threading
from typing import Dict, Optional

from .cache import CacheStore
from .config import EngineConfig
from .errors import ConfigurationError, RateLimited, TransitStatusError
from .models import CacheKey, FetchResult

logger = logging.getLogger(__name__)


class FetchOrchestrator:
    """
    Returns the best available data for a cache key. Never raises.

    Every query kind shares the same degrade-gracefully algorithm:

    1. A fresh cache entry is returned without touching the upstream.
    2. Otherwise the upstream client is called; a success replaces the entry.
    3. On failure the last cached payload is served, however stale, or an
       empty payload if nothing was ever cached. A missing-credentials
       failure is latched and not retried per request.

    Concurrent fetches of the same key are serialized so only one of them
    reaches the upstream; the others observe the freshly cached value.
    """

    def __init__(self, client, cache: CacheStore, config: Optional[EngineConfig] = None):
        """
        Args:
            client: Upstream client exposing ``fetch(key) -> tuple``.
            cache: Cache store shared by all fetch chains.
            config: Supplies per-kind TTLs when ``fetch`` is called without one.
        """
        self.client = client
        self.cache = cache
        self.config = config or EngineConfig()
        self._key_locks: Dict[CacheKey, threading.Lock] = {}
        self._key_locks_guard = threading.Lock()
        self._configuration_error: Optional[str] = None

    @property
    def configuration_error(self) -> Optional[str]:
        return self._configuration_error

    def reset_configuration(self) -> None:
        """Allow upstream calls again after a missing-credentials failure."""
        self._configuration_error = None

    def _lock_for(self, key: CacheKey) -> threading.Lock:
        with self._key_locks_guard:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    def _fresh(self, key: CacheKey, ttl: float) -> Optional[FetchResult]:
        entry = self.cache.entry(key)
        if entry is None:
            return None
        age = self.cache.age_of(entry)
        if not self.cache.is_fresh(age, ttl):
            return None
        logger.debug(f"Using cached data for {key} (age {age:.1f}s)")
        return FetchResult(payload=entry.value, fetched_at=entry.fetched_at)

    def _fallback(self, key: CacheKey, ttl: float, reason: str) -> FetchResult:
        entry = self.cache.entry(key)
        if entry is None:
            logger.warning(f"No cached data for {key}; returning empty ({reason})")
            return FetchResult(reason=reason)
        age = self.cache.age_of(entry)
        logger.warning(f"Serving cached data for {key} aged {age:.1f}s ({reason})")
        return FetchResult(
            payload=entry.value,
            fetched_at=entry.fetched_at,
            stale=not self.cache.is_fresh(age, ttl),
            reason=reason,
        )

    def fetch(self, key: CacheKey, ttl: Optional[float] = None) -> FetchResult:
        """
        Get data for a cache key.

        Args:
            key: Entity identifier plus query kind.
            ttl: Freshness window in seconds; defaults to the kind's TTL class.

        Returns:
            FetchResult with the payload (possibly stale or empty) and an
            optional diagnostic reason.
        """
        if ttl is None:
            ttl = self.config.ttl_for(key.kind)

        result = self._fresh(key, ttl)
        if result is not None:
            return result

        if self._configuration_error is not None:
            return FetchResult(reason=self._configuration_error)

        with self._lock_for(key):
            # Another caller may have refreshed this key while we waited
            result = self._fresh(key, ttl)
            if result is not None:
                return result

            try:
                payload = tuple(self.client.fetch(key))
            except ConfigurationError as e:
                self._configuration_error = e.reason
                logger.error(f"Upstream integration not configured; disabling requests: {e}")
                return FetchResult(reason=e.reason)
            except RateLimited as e:
                return self._fallback(key, ttl, e.reason)
            except TransitStatusError as e:
                logger.warning(f"Failed to fetch {key}: {e}")
                return self._fallback(key, ttl, e.reason)
            except Exception as e:
                logger.error(f"Unexpected error fetching {key}: {e}", exc_info=True)
                return self._fallback(key, ttl, TransitStatusError.reason)

            entry = self.cache.set(key, payload)
            logger.info(f"Fetched {len(payload)} records for {key}")
            return FetchResult(payload=payload, fetched_at=entry.fetched_at)
