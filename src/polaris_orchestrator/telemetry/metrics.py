"""Metrics collection with Prometheus integration."""

from collections import defaultdict

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest


class MetricsCollector:
    """Prometheus metrics for provider calls, retries, jobs and the cascade.

    Each collector owns its registry so that independently constructed
    orchestrator contexts never collide on metric names.
    """

    def __init__(self, namespace: str = "polaris_orchestrator", registry: CollectorRegistry | None = None):
        """Initialize metrics collector."""
        self.namespace = namespace
        self.registry = registry or CollectorRegistry()
        self._counters: dict[str, Counter] = {}
        self._histograms: dict[str, Histogram] = {}
        self._local: dict[str, float] = defaultdict(float)

        self._init_default_metrics()

    def _init_default_metrics(self):
        """Initialize default metrics."""
        self._counters["provider_requests"] = Counter(
            f"{self.namespace}_provider_requests_total",
            "Upstream provider calls by outcome",
            ["provider", "outcome"],
            registry=self.registry,
        )

        self._histograms["provider_latency"] = Histogram(
            f"{self.namespace}_provider_latency_seconds",
            "Upstream provider call latency",
            ["provider"],
            buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self.registry,
        )

        self._counters["retries"] = Counter(
            f"{self.namespace}_retries_total",
            "Executor retries by failure kind",
            ["kind"],
            registry=self.registry,
        )

        self._counters["cascade_attempts"] = Counter(
            f"{self.namespace}_cascade_attempts_total",
            "Cascade strategy attempts by outcome",
            ["strategy", "outcome"],
            registry=self.registry,
        )

        self._counters["job_polls"] = Counter(
            f"{self.namespace}_job_polls_total",
            "Job status polls by reported status",
            ["status"],
            registry=self.registry,
        )

        self._counters["cache"] = Counter(
            f"{self.namespace}_cache_lookups_total",
            "Response cache lookups",
            ["result"],
            registry=self.registry,
        )

    def record_provider_call(self, provider: str, outcome: str, latency_seconds: float | None = None):
        """Record an upstream provider call."""
        self._counters["provider_requests"].labels(provider=provider, outcome=outcome).inc()
        self._local[f"provider:{provider}:{outcome}"] += 1
        if latency_seconds is not None:
            self._histograms["provider_latency"].labels(provider=provider).observe(latency_seconds)

    def record_retry(self, kind: str):
        """Record one executor retry."""
        self._counters["retries"].labels(kind=kind).inc()
        self._local[f"retry:{kind}"] += 1

    def record_cascade_attempt(self, strategy: str, outcome: str):
        """Record a cascade strategy attempt."""
        self._counters["cascade_attempts"].labels(strategy=strategy, outcome=outcome).inc()
        self._local[f"cascade:{strategy}:{outcome}"] += 1

    def record_job_poll(self, status: str):
        """Record a job status poll."""
        self._counters["job_polls"].labels(status=status).inc()
        self._local[f"poll:{status}"] += 1

    def record_cache_hit(self):
        self._counters["cache"].labels(result="hit").inc()
        self._local["cache:hit"] += 1

    def record_cache_miss(self):
        self._counters["cache"].labels(result="miss").inc()
        self._local["cache:miss"] += 1

    def count(self, key: str) -> float:
        """Return a locally mirrored counter value, e.g. ``cascade:local:success``."""
        return self._local.get(key, 0.0)

    def export(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)
