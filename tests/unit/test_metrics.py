"""Test metrics collection."""

from polaris_orchestrator.telemetry.metrics import MetricsCollector


def test_counters_mirrored_locally():
    metrics = MetricsCollector()
    metrics.record_provider_call("openai", "success", 0.4)
    metrics.record_provider_call("openai", "rate_limit")
    metrics.record_retry("rate_limit")
    metrics.record_cascade_attempt("fast", "error")
    metrics.record_job_poll("running")
    metrics.record_cache_hit()
    metrics.record_cache_miss()

    assert metrics.count("provider:openai:success") == 1
    assert metrics.count("provider:openai:rate_limit") == 1
    assert metrics.count("retry:rate_limit") == 1
    assert metrics.count("cascade:fast:error") == 1
    assert metrics.count("poll:running") == 1
    assert metrics.count("cache:hit") == metrics.count("cache:miss") == 1
    assert metrics.count("cascade:local:success") == 0


def test_export_prometheus_text():
    metrics = MetricsCollector()
    metrics.record_cascade_attempt("local", "success")
    sample = metrics.registry.get_sample_value(
        "polaris_orchestrator_cascade_attempts_total", {"strategy": "local", "outcome": "success"}
    )
    assert sample == 1.0
    assert b"polaris_orchestrator_cascade_attempts_total" in metrics.export()


def test_collectors_are_independent():
    first = MetricsCollector()
    second = MetricsCollector()
    first.record_cache_hit()
    assert second.count("cache:hit") == 0
    assert b"cache_lookups_total" in second.export()
