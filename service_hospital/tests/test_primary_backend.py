"""
Unit tests for the Redis primary backend wrapper.
"""

import asyncio
from unittest.mock import patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_hospital.app.cache.primary import (
    ConnectionState,
    RedisPrimaryBackend,
    default_client_factory,
    is_connection_refused,
)
from shared.errors import CacheBackendError
from shared.test_helpers import refused_error


class SlowRedisClient:
    """Client whose commands never finish in time."""

    async def ping(self):
        return True

    async def get(self, key):
        await asyncio.sleep(10)

    async def aclose(self):
        pass


class TestRedisPrimaryBackend:
    """Test cases for RedisPrimaryBackend."""

    @pytest.fixture
    def transitions(self, primary):
        seen = []
        primary.add_listener(lambda state, error: seen.append(state))
        return seen

    @pytest.mark.asyncio
    async def test_initial_state(self, primary):
        """Test the backend starts disconnected."""
        assert primary.state is ConnectionState.DISCONNECTED
        assert primary.connected is False

    @pytest.mark.asyncio
    async def test_connect_success(self, primary, fake_redis, transitions):
        """Test a successful ping marks the backend connected."""
        assert await primary.connect() is True

        assert primary.connected
        assert transitions == [ConnectionState.CONNECTED]
        assert fake_redis.calls == ["ping"]
        await primary.close()

    @pytest.mark.asyncio
    async def test_connect_refused_does_not_retry(self, primary, fake_redis, transitions):
        """Test a refused connection stays down without a reconnect loop."""
        fake_redis.error = refused_error()

        assert await primary.connect() is False

        assert not primary.connected
        assert not primary.reconnecting
        assert transitions == []

    @pytest.mark.asyncio
    async def test_connect_refused_retries_when_allowed(self, fake_redis):
        """Test retry_on_refused keeps reconnecting until the server is back."""
        fake_redis.error = refused_error()
        primary = RedisPrimaryBackend(
            "redis://localhost:6379/0",
            retry_on_refused=True,
            reconnect_base_delay=0.01,
            reconnect_max_delay=0.02,
            client_factory=lambda url, timeout: fake_redis,
        )

        assert await primary.connect() is False
        assert primary.reconnecting

        fake_redis.error = None
        for _ in range(50):
            if primary.connected:
                break
            await asyncio.sleep(0.01)

        assert primary.connected
        await primary.close()

    @pytest.mark.asyncio
    async def test_error_notification_disconnects(self, primary, transitions):
        """Test an error notification flips CONNECTED to DISCONNECTED."""
        await primary.connect()

        primary.notify_error(refused_error())

        assert primary.state is ConnectionState.DISCONNECTED
        assert transitions == [ConnectionState.CONNECTED, ConnectionState.DISCONNECTED]

    @pytest.mark.asyncio
    async def test_connectivity_error_on_command(self, primary, fake_redis):
        """Test a connection error during a command raises and disconnects."""
        await primary.connect()
        fake_redis.error = RedisConnectionError("Connection reset by peer")

        with pytest.raises(CacheBackendError) as exc_info:
            await primary.get("k")

        assert exc_info.value.code == "CACHE_BACKEND_ERROR"
        assert exc_info.value.details["connectivity"] is True
        assert not primary.connected
        assert primary.reconnecting
        await primary.close()
        assert not primary.reconnecting

    @pytest.mark.asyncio
    async def test_command_error_keeps_connection(self, primary, fake_redis):
        """Test a rejected command doesn't count as a disconnect."""
        await primary.connect()
        fake_redis.error = ResponseError("WRONGTYPE")

        with pytest.raises(CacheBackendError) as exc_info:
            await primary.get("k")

        assert exc_info.value.details["connectivity"] is False
        assert primary.connected
        await primary.close()

    @pytest.mark.asyncio
    async def test_timeout_counts_as_connectivity_error(self):
        """Test a hung command is cut off and disconnects the backend."""
        primary = RedisPrimaryBackend(
            "redis://localhost:6379/0",
            operation_timeout=0.05,
            client_factory=lambda url, timeout: SlowRedisClient(),
        )
        await primary.connect()

        with pytest.raises(CacheBackendError):
            await primary.get("k")

        assert not primary.connected
        await primary.close()

    @pytest.mark.asyncio
    async def test_reconnect_restores_connection(self, primary, fake_redis, transitions):
        """Test the reconnect loop emits a fresh connected notification."""
        await primary.connect()
        fake_redis.error = RedisConnectionError("Connection reset by peer")
        with pytest.raises(CacheBackendError):
            await primary.get("k")

        fake_redis.error = None
        for _ in range(50):
            if primary.connected:
                break
            await asyncio.sleep(0.01)

        assert transitions == [
            ConnectionState.CONNECTED,
            ConnectionState.DISCONNECTED,
            ConnectionState.CONNECTED,
        ]
        await primary.close()

    @pytest.mark.asyncio
    async def test_commands(self, primary, fake_redis):
        """Test each command maps onto the client."""
        await primary.connect()

        await primary.set_with_expiry("a", b"1", 30)
        await primary.set_with_expiry("b", b"2", 0.2)
        assert await primary.get("a") == b"1"
        assert sorted(await primary.keys_matching("*")) == ["a", "b"]
        assert await primary.delete("a") == 1
        assert await primary.delete_many(["b", "missing"]) == 1
        assert await primary.memory_info() == {"used_memory": 1024, "used_memory_human": "1.00K"}
        await primary.close()

    @pytest.mark.asyncio
    async def test_delete_many_batches(self, fake_redis):
        """Test large deletes are split into batches."""
        primary = RedisPrimaryBackend(
            "redis://localhost:6379/0",
            delete_batch_size=2,
            client_factory=lambda url, timeout: fake_redis,
        )
        await primary.connect()
        for i in range(5):
            await fake_redis.setex(f"k{i}", 60, b"v")
        fake_redis.calls.clear()

        assert await primary.delete_many([f"k{i}" for i in range(5)]) == 5
        assert fake_redis.calls == ["delete", "delete", "delete"]
        await primary.close()

    @pytest.mark.asyncio
    async def test_command_without_client(self, primary):
        """Test commands before connect raise CacheBackendError."""
        with pytest.raises(CacheBackendError):
            await primary.get("k")

    @pytest.mark.asyncio
    async def test_close(self, primary, fake_redis, transitions):
        """Test close releases the client and reports the disconnect."""
        await primary.connect()

        await primary.close()

        assert fake_redis.closed
        assert transitions[-1] is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_listener_failure_is_contained(self, primary):
        """Test a failing listener doesn't break state tracking."""
        def broken(state, error):
            raise RuntimeError("listener bug")

        primary.add_listener(broken)

        assert await primary.connect() is True
        assert primary.connected
        await primary.close()


def test_is_connection_refused():
    """Test refused connections are detected directly and through wrapping."""
    assert is_connection_refused(ConnectionRefusedError(111, "refused"))
    assert is_connection_refused(refused_error())

    try:
        try:
            raise ConnectionRefusedError(111, "nope")
        except ConnectionRefusedError:
            raise RedisConnectionError("Error connecting")
    except RedisConnectionError as wrapped:
        assert is_connection_refused(wrapped)

    assert not is_connection_refused(RedisConnectionError("Connection reset by peer"))


def test_default_client_factory_disables_client_retries():
    """Test the client is built with one attempt per command."""
    with patch("service_hospital.app.cache.primary.redis.from_url") as mock_from_url:
        default_client_factory("redis://cache:6379/0", 1.5)

    args, kwargs = mock_from_url.call_args
    assert args == ("redis://cache:6379/0",)
    assert kwargs["socket_timeout"] == 1.5
    assert kwargs["socket_connect_timeout"] == 1.5
    assert kwargs["retry"]._retries == 0
