"""Constructed, passed-in orchestrator context."""

import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional

import httpx

from polaris_orchestrator.config.settings import Settings, get_settings
from polaris_orchestrator.exceptions import ConfigurationError
from polaris_orchestrator.orchestrator.cache import InFlightRegistry, ResponseCache
from polaris_orchestrator.orchestrator.cascade import FallbackCascade
from polaris_orchestrator.orchestrator.executor import RequestExecutor
from polaris_orchestrator.orchestrator.jobs import JobOrchestrator
from polaris_orchestrator.orchestrator.polling import PollSchedule
from polaris_orchestrator.orchestrator.retry_handler import RetryPolicy
from polaris_orchestrator.orchestrator.router import ProviderRouter
from polaris_orchestrator.providers.base import BaseProvider, ProviderId
from polaris_orchestrator.providers.profiles import build_adapters
from polaris_orchestrator.telemetry.logger import get_logger
from polaris_orchestrator.telemetry.metrics import MetricsCollector

logger = get_logger(__name__)


@dataclass
class OrchestratorContext:
    """Provider configuration, shared clients and caches for one orchestrator.

    Nothing here is process-global; tests build a fresh context each time.
    """

    settings: Settings
    client: httpx.AsyncClient
    adapters: Dict[ProviderId, BaseProvider]
    executor: RequestExecutor
    router: Optional[ProviderRouter]
    jobs: Optional[JobOrchestrator]
    cascade: Optional[FallbackCascade]
    metrics: MetricsCollector
    cache: ResponseCache[str]
    research_inflight: InFlightRegistry[str] = field(default_factory=InFlightRegistry)
    owns_client: bool = False

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        metrics: Optional[MetricsCollector] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ) -> "OrchestratorContext":
        settings = settings or get_settings()
        owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(transport=transport, timeout=settings.request_timeout)
        metrics = metrics or MetricsCollector()

        policy = RetryPolicy(
            max_attempts=settings.max_attempts,
            base_delay=settings.retry_base_delay,
            backoff_multiplier=settings.retry_backoff_multiplier,
            jitter_ratio=settings.retry_jitter_ratio,
            timeout=settings.request_timeout,
            rate_limit_backoff_factor=settings.rate_limit_backoff_factor,
        )
        executor = RequestExecutor(client, policy=policy, metrics=metrics, sleep=sleep, clock=clock, rng=rng)

        adapters = build_adapters(settings)
        router = ProviderRouter([a.profile for a in adapters.values()]) if adapters else None
        if router is None:
            logger.warning("No AI providers configured")

        jobs = None
        if settings.has_job_endpoint:
            jobs = JobOrchestrator(
                executor,
                settings.job_endpoint_url,
                schedule=PollSchedule(
                    base_delay=settings.poll_base_delay,
                    growth=settings.poll_growth,
                    cap=settings.poll_cap,
                    max_window=settings.max_poll_window,
                ),
                idempotency_ttl=settings.idempotency_key_ttl,
                metrics=metrics,
                sleep=sleep,
                clock=clock,
            )

        cascade = (
            FallbackCascade.standard(settings, router, adapters, executor, jobs=jobs, metrics=metrics)
            if router
            else None
        )

        return cls(
            settings=settings,
            client=client,
            adapters=adapters,
            executor=executor,
            router=router,
            jobs=jobs,
            cascade=cascade,
            metrics=metrics,
            cache=ResponseCache(ttl_seconds=settings.cache_ttl_seconds, clock=clock),
            research_inflight=InFlightRegistry(clock=clock),
            owns_client=owns_client,
        )

    def require_providers(self) -> ProviderRouter:
        """Fail loudly when nothing upstream is configured."""
        if self.router is None or not self.adapters:
            raise ConfigurationError(
                "No AI providers are configured; set at least one provider API key",
                details={"providers": [p.value for p in ProviderId]},
            )
        return self.router

    async def aclose(self) -> None:
        if self.owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "OrchestratorContext":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
