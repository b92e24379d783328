"""
Redis primary backend for the hospital cache layer.

Wraps a ``redis.asyncio`` client and owns the connection state flag. The flag
is written only from this driver's own notifications (a successful ping after
connect or reconnect, or a connectivity error on any call) and is read by the
cache layer before every operation. Listeners registered with
``add_listener`` are told about every transition.
"""

import asyncio
import math
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.backoff import NoBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from shared.errors import CacheBackendError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

# Errors that mean the backend is unreachable, as opposed to a bad command.
CONNECTIVITY_ERRORS = (
    RedisConnectionError,
    RedisTimeoutError,
    asyncio.TimeoutError,
    OSError,
)


class ConnectionState(Enum):
    """Primary backend connection states."""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


StateListener = Callable[[ConnectionState, Optional[BaseException]], None]


def is_connection_refused(error: BaseException) -> bool:
    """True if ``error`` (or what it wraps) is a refused TCP connection."""
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        if isinstance(current, ConnectionRefusedError):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return "connection refused" in str(error).lower()


def default_client_factory(redis_url: str, socket_timeout: Optional[float]) -> redis.Redis:
    """Build a client that makes exactly one attempt per command."""
    return redis.from_url(
        redis_url,
        socket_connect_timeout=socket_timeout,
        socket_timeout=socket_timeout,
        retry=Retry(NoBackoff(), 0),
        health_check_interval=30,
    )


class RedisPrimaryBackend:
    """Networked primary backend with connect/error notifications."""

    def __init__(
        self,
        redis_url: str,
        *,
        operation_timeout: Optional[float] = 2.0,
        retry_on_refused: bool = False,
        reconnect_base_delay: float = 0.1,
        reconnect_max_delay: float = 3.0,
        scan_count: int = 500,
        delete_batch_size: int = 500,
        metrics: Optional[MetricsCollector] = None,
        client_factory: Optional[Callable[[str, Optional[float]], redis.Redis]] = None,
    ):
        self.redis_url = redis_url
        self.operation_timeout = operation_timeout
        self.retry_on_refused = retry_on_refused
        self.reconnect_base_delay = reconnect_base_delay
        self.reconnect_max_delay = reconnect_max_delay
        self.scan_count = scan_count
        self.delete_batch_size = delete_batch_size
        self.metrics = metrics
        self.logger = get_logger("hospital.cache.redis")

        self._client_factory = client_factory or default_client_factory
        self._client: Optional[redis.Redis] = None
        self._state = ConnectionState.DISCONNECTED
        self._listeners: List[StateListener] = []
        self._reconnect_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def reconnecting(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback for connection state transitions."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        """Open the client and verify it with a ping.

        Returns False instead of raising when the server can't be reached;
        the reconnect loop takes over from there.
        """
        self._closed = False
        if self._client is None:
            self._client = self._client_factory(self.redis_url, self.operation_timeout)

        try:
            await self._execute("ping", self._client.ping)
        except CacheBackendError as e:
            self.logger.warning("Initial Redis connection failed", url=self.redis_url, error=str(e))
            return False

        self._mark_connected()
        return True

    async def close(self) -> None:
        """Stop reconnecting and release the client."""
        self._closed = True
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        client, self._client = self._client, None
        if client is not None:
            try:
                await client.aclose()
            except (RedisError, OSError) as e:
                self.logger.warning("Error closing Redis client", error=str(e))

        self._transition(ConnectionState.DISCONNECTED, None)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Optional[bytes]:
        return await self._execute("get", self._require_client().get, key)

    async def set_with_expiry(self, key: str, data: bytes, ttl_seconds: float) -> None:
        ttl = max(1, int(math.ceil(ttl_seconds)))
        await self._execute("setex", self._require_client().setex, key, ttl, data)

    async def delete(self, key: str) -> int:
        return await self._execute("delete", self._require_client().delete, key)

    async def delete_many(self, keys: List[str]) -> int:
        """Delete ``keys`` in batches of ``delete_batch_size``."""
        client = self._require_client()
        deleted = 0
        for start in range(0, len(keys), self.delete_batch_size):
            batch = keys[start:start + self.delete_batch_size]
            deleted += await self._execute("delete_many", client.delete, *batch)
        return deleted

    async def keys_matching(self, glob: str) -> List[str]:
        """List keys matching a Redis glob using SCAN."""
        return await self._execute("scan", self._scan, glob)

    async def memory_info(self) -> Dict[str, Any]:
        return await self._execute("info", self._require_client().info, "memory")

    async def _scan(self, glob: str) -> List[str]:
        keys = []
        async for key in self._require_client().scan_iter(match=glob, count=self.scan_count):
            keys.append(key.decode("utf-8") if isinstance(key, bytes) else key)
        return keys

    def _require_client(self) -> redis.Redis:
        if self._client is None:
            raise CacheBackendError("Redis client is not initialised")
        return self._client

    async def _execute(self, operation: str, func: Callable[..., Awaitable[Any]], *args) -> Any:
        """Run one command, bounded by ``operation_timeout``.

        Connectivity failures flip the state to DISCONNECTED and start the
        reconnect loop. Every failure surfaces as CacheBackendError.
        """
        try:
            if self.metrics is not None:
                with self.metrics.time_operation("cache_operation_duration_seconds", operation=operation):
                    return await self._await(func(*args))
            return await self._await(func(*args))
        except CONNECTIVITY_ERRORS as e:
            self.notify_error(e)
            raise CacheBackendError(
                f"{operation} failed: {e}",
                {"operation": operation, "connectivity": True}
            ) from e
        except RedisError as e:
            raise CacheBackendError(
                f"{operation} failed: {e}",
                {"operation": operation, "connectivity": False}
            ) from e

    async def _await(self, awaitable: Awaitable[Any]) -> Any:
        if self.operation_timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, self.operation_timeout)

    # ------------------------------------------------------------------
    # State notifications
    # ------------------------------------------------------------------

    def notify_error(self, error: BaseException) -> None:
        """Handle an error notification from the client."""
        if self._state is ConnectionState.CONNECTED:
            self.logger.error("Redis connection error, using in-memory cache", error=str(error))
        self._transition(ConnectionState.DISCONNECTED, error)
        self._schedule_reconnect(error)

    def _mark_connected(self) -> None:
        self.logger.info("Connected to Redis cache", url=self.redis_url)
        self._transition(ConnectionState.CONNECTED, None)

    def _transition(self, state: ConnectionState, error: Optional[BaseException]) -> None:
        if state is self._state:
            return
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state, error)
            except Exception as e:
                self.logger.error("Connection state listener failed", state=state.value, error=str(e))

    def _schedule_reconnect(self, error: BaseException) -> None:
        if self._closed or self.reconnecting:
            return
        if is_connection_refused(error) and not self.retry_on_refused:
            self.logger.warning("Redis connection refused, falling back to in-memory cache")
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._reconnect_task = loop.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        attempt = 0
        while not self._closed and self._state is ConnectionState.DISCONNECTED:
            attempt += 1
            delay = min(attempt * self.reconnect_base_delay, self.reconnect_max_delay)
            await asyncio.sleep(delay)
            if self._client is None:
                return
            try:
                await self._await(self._client.ping())
            except CONNECTIVITY_ERRORS + (RedisError,) as e:
                if is_connection_refused(e) and not self.retry_on_refused:
                    self.logger.warning("Redis connection refused, giving up reconnect", attempt=attempt)
                    return
                self.logger.debug("Redis reconnect attempt failed", attempt=attempt, error=str(e))
                continue
            self._mark_connected()
