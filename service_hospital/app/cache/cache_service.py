"""
Cache-aside layer for the hospital service.

Reads and writes go to Redis while it is connected and to a bounded
in-process map while it is not. Cache failures never reach the caller: a
broken cache degrades to "not cached", never to a failed request or a value
served past its TTL.
"""

import inspect
import json
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from shared.errors import CacheBackendError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from .fallback import FallbackStore
from .patterns import compile_pattern, to_redis_glob
from .primary import ConnectionState, RedisPrimaryBackend

DEFAULT_TTL = 3600

Producer = Callable[[], Union[Any, Awaitable[Any]]]


class CacheService:
    """Cache-aside accelerator with Redis primary and in-memory fallback."""

    def __init__(
        self,
        primary: RedisPrimaryBackend,
        fallback: Optional[FallbackStore] = None,
        *,
        default_ttl: int = DEFAULT_TTL,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.primary = primary
        self.fallback = fallback or FallbackStore()
        self.default_ttl = default_ttl
        self.metrics = metrics
        self.logger = get_logger("hospital.cache")

        self.hits = 0
        self.misses = 0
        self.errors = 0

        self.primary.add_listener(self._on_state_change)

    @property
    def primary_connected(self) -> bool:
        return self.primary.connected

    async def start(self) -> None:
        """Connect to the primary backend; stay on the fallback if that fails."""
        try:
            connected = await self.primary.connect()
        except Exception as e:
            self.logger.warning("Failed to initialize Redis, using in-memory cache only", error=str(e))
            connected = False

        if not connected:
            self.logger.warning("Cache running on in-memory fallback", url=self.primary.redis_url)
        self._publish_state()

    async def stop(self) -> None:
        await self.primary.close()
        self.logger.info("Cache stopped")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value for ``key`` or None."""
        try:
            if self.primary.connected:
                return await self._get_primary(key)
            return self._get_fallback(key)
        except Exception as e:
            self._record_error("get", e, key=key)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        """Cache ``value`` under ``key``. Best effort; returns False on failure.

        The value is serialized once, before a backend is chosen, so both
        backends accept the same values and hold a snapshot the caller can't
        mutate afterwards.
        """
        ttl = self._resolve_ttl(ttl_seconds)
        try:
            payload = json.dumps(value)
            if self.primary.connected:
                await self.primary.set_with_expiry(key, payload.encode("utf-8"), ttl)
                self._record("set", "redis", "stored")
                self.logger.debug("Cache set (Redis)", key=key, ttl=ttl)
                return True

            self.fallback.set(key, payload, ttl)
            swept = self.fallback.sweep_expired()
            self._record("set", "memory", "stored")
            self._publish_fallback_size()
            self.logger.debug("Cache set (in-memory)", key=key, ttl=ttl, swept=swept)
            return True
        except Exception as e:
            self._record_error("set", e, key=key)
            return False

    async def delete(self, key: str) -> None:
        """Remove ``key`` from both backends."""
        try:
            if self.primary.connected:
                await self.primary.delete(key)
        except Exception as e:
            self._record_error("delete", e, key=key)

        self.fallback.delete(key)
        self._publish_fallback_size()
        self.logger.debug("Cache deleted", key=key)

    async def delete_pattern(self, pattern: str) -> int:
        """Remove every key matching ``pattern`` (``*`` is the wildcard).

        A malformed pattern raises; backend failures do not. Returns the
        number of keys removed across both backends.
        """
        matcher = compile_pattern(pattern)
        glob = to_redis_glob(pattern)
        removed = 0

        try:
            if self.primary.connected:
                keys = await self.primary.keys_matching(glob)
                # SCAN MATCH is a prefilter; the anchored regex decides.
                keys = [key for key in keys if matcher.fullmatch(key)]
                if keys:
                    removed += await self.primary.delete_many(keys)
                    self.logger.info("Cache pattern deleted (Redis)", pattern=pattern, count=len(keys))
        except Exception as e:
            self._record_error("delete_pattern", e, pattern=pattern)

        local = self.fallback.delete_matching(matcher)
        if local:
            self.logger.info("Cache pattern deleted (in-memory)", pattern=pattern, count=local)
        self._publish_fallback_size()
        return removed + local

    async def get_or_set(self, key: str, producer: Producer, ttl_seconds: Optional[int] = None) -> Any:
        """Return the cached value, or produce, cache and return a fresh one.

        Exceptions raised by ``producer`` propagate to the caller.
        """
        ttl = self._resolve_ttl(ttl_seconds)
        try:
            cached = await self.get(key)
        except Exception as e:
            self.logger.error("Cache getOrSet error", key=key, error=str(e))
            return await self._produce(producer)

        if cached is not None:
            return cached

        self.logger.debug("Cache miss, fetching data", key=key)
        value = await self._produce(producer)
        if value is not None:
            await self.set(key, value, ttl)
        return value

    async def get_stats(self) -> Dict[str, Any]:
        """Snapshot of cache state. Never raises."""
        stats: Dict[str, Any] = {
            "fallback_size": len(self.fallback),
            "fallback_evictions": self.fallback.evictions,
            "primary_connected": self.primary.connected,
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
        }
        if self.primary.connected:
            try:
                stats["primary_memory"] = await self.primary.memory_info()
            except Exception as e:
                self.logger.error("Error getting cache stats", error=str(e))
                stats["primary_memory"] = None
        return stats

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve_ttl(self, ttl_seconds: Optional[int]) -> int:
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl}")
        return ttl

    async def _get_primary(self, key: str) -> Optional[Any]:
        try:
            raw = await self.primary.get(key)
        except CacheBackendError as e:
            self._record_error("get", e, key=key)
            return None
        return self._decode(key, raw, "redis")

    def _get_fallback(self, key: str) -> Optional[Any]:
        return self._decode(key, self.fallback.get(key), "memory")

    def _decode(self, key: str, raw: Optional[Union[str, bytes]], backend: str) -> Optional[Any]:
        if raw is None:
            self.misses += 1
            self._record("get", backend, "miss")
            self.logger.debug("Cache miss", key=key, backend=backend)
            return None

        try:
            value = json.loads(raw)
        except (ValueError, TypeError) as e:
            self._record_error("get", e, key=key, reason="malformed payload")
            return None

        self.hits += 1
        self._record("get", backend, "hit")
        self.logger.debug("Cache hit", key=key, backend=backend)
        return value

    async def _produce(self, producer: Producer) -> Any:
        result = producer()
        if inspect.isawaitable(result):
            result = await result
        return result

    def _on_state_change(self, state: ConnectionState, error: Optional[BaseException]) -> None:
        if state is ConnectionState.CONNECTED:
            # Entries written during the outage must not resurface on the
            # next one; Redis is authoritative again.
            dropped = self.fallback.clear()
            self._publish_fallback_size()
            self.logger.info("Cache using Redis primary", fallback_dropped=dropped)
        else:
            self.logger.warning(
                "Cache using in-memory fallback",
                error=str(error) if error else None
            )
        self._publish_state()

    def _record(self, operation: str, backend: str, result: str) -> None:
        if self.metrics is not None:
            self.metrics.record_cache_operation(operation, backend, result)

    def _record_error(self, operation: str, error: BaseException, **context) -> None:
        self.errors += 1
        self.logger.error(f"Cache {operation} error", error=str(error), **context)
        if self.metrics is not None:
            self.metrics.record_cache_operation(operation, "redis" if self.primary.connected else "memory", "error")
            self.metrics.record_error(type(error).__name__)

    def _publish_state(self) -> None:
        if self.metrics is not None:
            self.metrics.set_backend_connected(self.primary.connected)

    def _publish_fallback_size(self) -> None:
        if self.metrics is not None:
            self.metrics.set_fallback_size(len(self.fallback))
