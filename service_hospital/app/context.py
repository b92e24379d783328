"""
Process-wide context for the Hospital Service.

Builds the configuration, logging, metrics, cache layer and hospital service
once at startup and hands them to request handlers by reference.
"""

from contextlib import contextmanager
from typing import Iterator, Optional

from shared.config import ServiceConfig, get_config
from shared.errors import PetHospitalException
from shared.logging import configure_logging, correlation_context, get_logger
from shared.metrics import MetricsCollector, get_metrics_collector

from .cache import CacheService, FallbackStore, RedisPrimaryBackend
from .hospitals import HospitalService, HospitalStore, InMemoryHospitalStore

SERVICE_NAME = "hospital"
SERVICE_PORT = 3000


class HospitalServiceContext:
    """Owns the long-lived collaborators of the hospital service."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        store: Optional[HospitalStore] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config or get_config(SERVICE_NAME, SERVICE_PORT)
        configure_logging(SERVICE_NAME, self.config.log_level)
        self.logger = get_logger(SERVICE_NAME)
        self.metrics = metrics or get_metrics_collector(SERVICE_NAME)

        self.cache = build_cache(self.config, self.metrics)
        self.store = store or InMemoryHospitalStore()
        self.hospitals = HospitalService(self.store, self.cache)

    async def start(self) -> None:
        if self.config.metrics_port:
            self.metrics.start_metrics_server(self.config.metrics_port)
        await self.cache.start()
        self.logger.info(
            "Hospital service context started",
            env=self.config.env,
            cache_primary_connected=self.cache.primary_connected
        )

    async def stop(self) -> None:
        await self.cache.stop()
        self.logger.info("Hospital service context stopped")

    @contextmanager
    def request(self, request_id: Optional[str] = None, user_id: Optional[str] = None) -> Iterator[str]:
        """Run one unit of work under its own correlation ids.

        Log lines and error responses produced inside the block carry the
        yielded request id.
        """
        with correlation_context(request_id, user_id) as scoped_id:
            self.logger.debug("Request started", user_id=user_id)
            try:
                yield scoped_id
            except PetHospitalException as e:
                self.logger.info("Request failed", code=e.code, error=e.message)
                raise

    async def __aenter__(self) -> "HospitalServiceContext":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()


def build_cache(config: ServiceConfig, metrics: Optional[MetricsCollector] = None) -> CacheService:
    """Wire a CacheService from configuration."""
    primary = RedisPrimaryBackend(
        config.redis_url,
        operation_timeout=config.cache_operation_timeout,
        retry_on_refused=config.cache_retry_on_refused,
        reconnect_max_delay=config.cache_reconnect_max_delay,
        metrics=metrics,
    )
    fallback = FallbackStore(max_entries=config.cache_fallback_max_entries)
    return CacheService(
        primary,
        fallback,
        default_ttl=config.cache_default_ttl,
        metrics=metrics,
    )
