"""Tests for the request executor and its backoff policy."""

import asyncio
import random
from types import SimpleNamespace

import httpx
import pytest
import pytest_asyncio

from polaris_orchestrator.exceptions import (
    AuthenticationFailure,
    ClientFailure,
    RateLimitFailure,
    ServerFailure,
    TimeoutFailure,
    TransportFailure,
    TruncatedOutputFailure,
)
from polaris_orchestrator.orchestrator.executor import RequestConfig, RequestExecutor, RequestTarget
from polaris_orchestrator.orchestrator.result import Failure, Success
from polaris_orchestrator.orchestrator.retry_handler import BackoffWait, RetryPolicy
from polaris_orchestrator.providers import DEFAULT_PROFILES, GenerationRequest, OpenAIProvider, ProviderId
from polaris_orchestrator.telemetry.metrics import MetricsCollector

from tests.conftest import OPENAI_HOST, connect_error, json_response, openai_body

TARGET = RequestTarget(url=f"https://{OPENAI_HOST}/v1/chat/completions", json_body={"x": 1}, label="openai")


@pytest_asyncio.fixture
async def make_executor(upstream, clock):
    clients = []

    def factory(policy: RetryPolicy, metrics: MetricsCollector = None) -> RequestExecutor:
        client = httpx.AsyncClient(transport=upstream.transport())
        clients.append(client)
        return RequestExecutor(client, policy=policy, metrics=metrics, sleep=clock.sleep, clock=clock, rng=random.Random(3))

    yield factory

    for client in clients:
        await client.aclose()


class TestRetries:
    @pytest.mark.asyncio
    async def test_rate_limited_three_times_then_success(self, upstream, clock, make_executor):
        upstream.on(
            OPENAI_HOST,
            json_response(429, {"error": {"message": "slow down"}}),
            json_response(429, {"error": {"message": "slow down"}}),
            json_response(429, {"error": {"message": "slow down"}}),
            json_response(200, {"ok": True}),
        )
        metrics = MetricsCollector()
        executor = make_executor(RetryPolicy(max_attempts=4, base_delay=1.0, jitter_ratio=0.2), metrics)

        result = await executor.execute(TARGET)

        assert isinstance(result, Success)
        assert result.value.status_code == 200
        assert result.attempts == 4
        assert len(upstream.calls(OPENAI_HOST)) == 4
        assert len(clock.sleeps) == 3
        assert metrics.count("retry:rate_limit") == 3
        assert metrics.count("provider:openai:success") == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries_return_last_failure(self, upstream, make_executor):
        upstream.on(OPENAI_HOST, json_response(503, {"message": "overloaded"}))
        executor = make_executor(RetryPolicy(max_attempts=3))

        result = await executor.execute(TARGET)

        assert isinstance(result, Failure)
        assert isinstance(result.error, ServerFailure)
        assert result.error.message == "overloaded"
        assert result.attempts == 3
        assert len(upstream.calls(OPENAI_HOST)) == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,error_type",
        [(400, ClientFailure), (401, AuthenticationFailure), (403, AuthenticationFailure), (404, ClientFailure)],
    )
    async def test_non_retryable_statuses_attempt_once(self, upstream, clock, make_executor, status, error_type):
        upstream.on(OPENAI_HOST, json_response(status, {"error": {"message": "nope"}}))
        executor = make_executor(RetryPolicy(max_attempts=5))

        result = await executor.execute(TARGET)

        assert isinstance(result, Failure)
        assert type(result.error) is error_type
        assert result.error.http_status == status
        assert len(upstream.calls(OPENAI_HOST)) == 1
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self, upstream, make_executor):
        upstream.on(OPENAI_HOST, connect_error, json_response(200, {"ok": True}))
        executor = make_executor(RetryPolicy(max_attempts=3))

        result = await executor.execute(TARGET)

        assert isinstance(result, Success)
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_transport_failure_cause_is_chained(self, upstream, make_executor):
        upstream.on(OPENAI_HOST, connect_error)
        executor = make_executor(RetryPolicy(max_attempts=2))

        result = await executor.execute(TARGET)

        assert isinstance(result.error, TransportFailure)
        assert isinstance(result.error.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_timeout_wins_and_is_not_retried(self, upstream, make_executor):
        async def slow(request):
            await asyncio.sleep(1)
            return json_response(200, {"late": True})

        upstream.on(OPENAI_HOST, slow)
        executor = make_executor(RetryPolicy(max_attempts=3, timeout=0.01))

        result = await executor.execute(TARGET)

        assert isinstance(result, Failure)
        assert isinstance(result.error, TimeoutFailure)
        assert len(upstream.calls(OPENAI_HOST)) == 1

    @pytest.mark.asyncio
    async def test_per_call_policy_override(self, upstream, make_executor):
        upstream.on(OPENAI_HOST, json_response(500))
        executor = make_executor(RetryPolicy(max_attempts=4))

        result = await executor.execute(TARGET, RequestConfig(policy=RetryPolicy.single_attempt()))

        assert result.attempts == 1
        assert len(upstream.calls(OPENAI_HOST)) == 1


class TestDelayBounds:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", [0, 1, 2, 3, 4])
    async def test_delays_non_decreasing_and_bounded(self, upstream, clock, seed):
        upstream.on(OPENAI_HOST, json_response(503))
        policy = RetryPolicy(max_attempts=5, base_delay=0.5, backoff_multiplier=2.0, jitter_ratio=0.5)
        async with httpx.AsyncClient(transport=upstream.transport()) as client:
            executor = RequestExecutor(client, policy=policy, sleep=clock.sleep, clock=clock, rng=random.Random(seed))
            await executor.execute(TARGET)

        bound = 0.5 * 2.0 ** (5 - 2) * (1 + 0.5)
        assert len(clock.sleeps) == 4
        assert clock.sleeps == sorted(clock.sleeps)
        assert all(0.5 <= d <= bound for d in clock.sleeps)

    def _state(self, attempt_number, error):
        outcome = SimpleNamespace(exception=lambda: error)
        return SimpleNamespace(attempt_number=attempt_number, outcome=outcome)

    def test_jitter_within_ratio(self):
        policy = RetryPolicy(max_attempts=3, base_delay=1.0, backoff_multiplier=2.0, jitter_ratio=0.2)
        wait = BackoffWait(policy, rng=random.Random(11))
        first = wait(self._state(1, ServerFailure("x")))
        second = wait(self._state(2, ServerFailure("x")))
        assert 1.0 <= first <= 1.2
        assert 2.0 <= second <= 2.4

    def test_rate_limit_stretches_delay_and_honours_retry_after(self):
        policy = RetryPolicy(
            max_attempts=4, base_delay=1.0, backoff_multiplier=2.0, jitter_ratio=0.0, rate_limit_backoff_factor=2.0
        )
        wait = BackoffWait(policy, rng=random.Random(0))
        assert wait(self._state(1, RateLimitFailure())) == 2.0
        assert wait(self._state(2, RateLimitFailure(retry_after=3.5))) == 4.0
        # Retry-After is a floor, but never beyond the policy bound.
        assert wait(self._state(3, RateLimitFailure(retry_after=100.0))) == policy.max_delay(rate_limited=True)


class TestComplete:
    @pytest.fixture
    def adapter(self):
        return OpenAIProvider("sk-test", f"https://{OPENAI_HOST}", DEFAULT_PROFILES[ProviderId.OPENAI])

    @pytest.mark.asyncio
    async def test_extracts_reply(self, upstream, make_executor, adapter):
        upstream.on(OPENAI_HOST, json_response(200, openai_body("report text")))
        executor = make_executor(RetryPolicy())

        result = await executor.complete(adapter, GenerationRequest(prompt="go"), "gpt-4o-mini", 100)

        assert isinstance(result, Success)
        assert result.value.content == "report text"
        assert result.value.provider == ProviderId.OPENAI
        assert result.value.model == "gpt-4o-mini"
        assert result.value.usage.total_tokens == 15
        assert result.value.usage.total_cost == pytest.approx(0.00015)
        sent = upstream.calls(OPENAI_HOST)[0]
        assert sent.headers["authorization"] == "Bearer sk-test"

    @pytest.mark.asyncio
    async def test_truncated_output_is_client_failure(self, upstream, make_executor, adapter):
        upstream.on(OPENAI_HOST, json_response(200, openai_body("partial", finish_reason="length")))
        executor = make_executor(RetryPolicy())

        result = await executor.complete(adapter, GenerationRequest(prompt="go"), "gpt-4o", 50)

        assert isinstance(result, Failure)
        assert isinstance(result.error, TruncatedOutputFailure)
        assert result.error.retryable is False
        assert len(upstream.calls(OPENAI_HOST)) == 1

    @pytest.mark.asyncio
    async def test_invalid_json_body(self, upstream, make_executor, adapter):
        upstream.on(OPENAI_HOST, httpx.Response(200, content=b"<html>"))
        executor = make_executor(RetryPolicy())

        result = await executor.complete(adapter, GenerationRequest(prompt="go"), "gpt-4o", 50)

        assert isinstance(result.error, ClientFailure)

    @pytest.mark.parametrize(
        "body",
        [
            {"choices": [{"message": {"content": [{"type": "text", "text": "x"}]}}]},
            {"choices": ["not a choice"]},
            {
                "choices": [{"message": {"content": "x"}, "finish_reason": "stop"}],
                "usage": {"prompt_tokens": None, "completion_tokens": None, "total_tokens": None},
            },
        ],
    )
    @pytest.mark.asyncio
    async def test_unexpected_shape_is_client_failure(self, upstream, make_executor, adapter, body):
        upstream.on(OPENAI_HOST, json_response(200, body))
        executor = make_executor(RetryPolicy())

        result = await executor.complete(adapter, GenerationRequest(prompt="go"), "gpt-4o", 50)

        assert isinstance(result, Failure)
        assert isinstance(result.error, ClientFailure)
        assert result.error.retryable is False
        assert len(upstream.calls(OPENAI_HOST)) == 1
