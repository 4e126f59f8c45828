"""Generic HTTP request executor with per-attempt timeout, retry and backoff."""

import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
import orjson
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from polaris_orchestrator.exceptions import (
    AuthenticationFailure,
    ClientFailure,
    ProviderFailure,
    RateLimitFailure,
    ServerFailure,
    TimeoutFailure,
    TransportFailure,
    TruncatedOutputFailure,
)
from polaris_orchestrator.orchestrator.result import Failure, Result, Success
from polaris_orchestrator.orchestrator.retry_handler import BackoffWait, RetryPolicy
from polaris_orchestrator.providers.base import BaseProvider, GenerationRequest, ProviderReply
from polaris_orchestrator.providers.budget import estimate_cost
from polaris_orchestrator.telemetry.logger import get_logger
from polaris_orchestrator.telemetry.metrics import MetricsCollector

logger = get_logger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RequestTarget:
    """Where and what to send."""

    url: str
    method: str = "POST"
    headers: Dict[str, str] = field(default_factory=dict)
    json_body: Optional[Dict[str, Any]] = None
    label: str = "upstream"


@dataclass(frozen=True)
class RequestConfig:
    """Per-call overrides of the executor's policy."""

    policy: Optional[RetryPolicy] = None
    timeout: Optional[float] = None


def _error_message(response: httpx.Response) -> str:
    try:
        body = orjson.loads(response.content)
    except orjson.JSONDecodeError:
        return response.text[:200] or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        if isinstance(body.get("message"), str):
            return body["message"]
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(error, str):
            return error
    return f"HTTP {response.status_code}"


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def classify_response(response: httpx.Response, label: str) -> None:
    """Raise the typed failure for a non-2xx response."""
    status = response.status_code
    if 200 <= status < 300:
        return
    message = _error_message(response)
    if status in (401, 403):
        raise AuthenticationFailure(message, provider=label, status_code=status)
    if status == 429:
        raise RateLimitFailure(message, retry_after=_retry_after(response), provider=label)
    if status >= 500:
        raise ServerFailure(message, provider=label, status_code=status)
    raise ClientFailure(message, provider=label, status_code=status)


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, ProviderFailure) and error.retryable


class RequestExecutor:
    """Runs HTTP calls against unreliable upstreams.

    Every call settles as a ``Success`` or a ``Failure``; HTTP and transport
    problems never escape as exceptions. The executor holds no per-call state
    between calls, so one instance serves concurrent requests.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        policy: Optional[RetryPolicy] = None,
        metrics: Optional[MetricsCollector] = None,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        self.client = client
        self.policy = policy or RetryPolicy()
        self.metrics = metrics
        self.sleep = sleep
        self.clock = clock
        self.rng = rng or random.Random()

    async def _attempt(self, target: RequestTarget, timeout: float) -> httpx.Response:
        try:
            response = await asyncio.wait_for(
                self.client.request(target.method, target.url, headers=target.headers, json=target.json_body),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise TimeoutFailure(f"No response within {timeout:.1f}s", provider=target.label) from e
        except httpx.TimeoutException as e:
            raise TimeoutFailure(str(e) or "Upstream timed out", provider=target.label) from e
        except httpx.TransportError as e:
            raise TransportFailure(str(e) or type(e).__name__, provider=target.label) from e
        classify_response(response, target.label)
        return response

    async def execute(self, target: RequestTarget, config: Optional[RequestConfig] = None) -> Result[httpx.Response]:
        """Send ``target`` under the effective retry policy."""
        config = config or RequestConfig()
        policy = config.policy or self.policy
        timeout = config.timeout or policy.timeout
        wait = BackoffWait(policy, rng=self.rng)
        attempts = 0

        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            kind = error.kind.value if isinstance(error, ProviderFailure) else "unknown"
            if self.metrics:
                self.metrics.record_retry(kind)
            logger.warning(
                "Retrying upstream call",
                target=target.label,
                attempt=retry_state.attempt_number,
                kind=kind,
                delay=wait.delays[-1] if wait.delays else 0.0,
            )

        started = self.clock()
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(policy.max_attempts),
                wait=wait,
                retry=retry_if_exception(_is_retryable),
                sleep=self.sleep,
                before_sleep=before_sleep,
                reraise=True,
            ):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    response = await self._attempt(target, timeout)
        except ProviderFailure as error:
            self._record(target.label, error.kind.value, started)
            logger.warning(
                "Upstream call failed",
                target=target.label,
                attempts=attempts,
                kind=error.kind.value,
                status=error.http_status,
                error=error.message,
            )
            return Failure(error=error, attempts=attempts)

        self._record(target.label, "success", started)
        return Success(value=response, attempts=attempts)

    def _record(self, label: str, outcome: str, started: float) -> None:
        if self.metrics:
            self.metrics.record_provider_call(label, outcome, self.clock() - started)

    async def complete(
        self,
        adapter: BaseProvider,
        request: GenerationRequest,
        model: str,
        max_tokens: int,
        timeout: Optional[float] = None,
        policy: Optional[RetryPolicy] = None,
    ) -> Result[ProviderReply]:
        """Run one completion through ``adapter`` and extract its text."""
        target = RequestTarget(
            url=adapter.endpoint(model),
            headers=adapter.headers(),
            json_body=adapter.build_payload(request, model, max_tokens),
            label=adapter.name,
        )
        started = self.clock()
        outcome = await self.execute(target, RequestConfig(policy=policy, timeout=timeout))
        if isinstance(outcome, Failure):
            return outcome

        try:
            data = orjson.loads(outcome.value.content)
        except orjson.JSONDecodeError as e:
            error = ClientFailure("Response body is not valid JSON", provider=adapter.name)
            error.__cause__ = e
            return Failure(error=error, attempts=outcome.attempts)
        if not isinstance(data, dict):
            return Failure(
                error=ClientFailure("Unexpected response shape", provider=adapter.name),
                attempts=outcome.attempts,
            )

        try:
            truncated = adapter.is_truncated(data)
            if not truncated:
                usage = adapter.extract_usage(data)
                if usage is not None and usage.total_cost is None:
                    usage.total_cost = estimate_cost(usage.total_tokens, adapter.profile.approx_cost_per_token)
                reply = ProviderReply(
                    content=adapter.extract_content(data),
                    provider=adapter.provider_id,
                    model=model,
                    finish_reason=adapter.extract_finish_reason(data),
                    usage=usage,
                    latency=self.clock() - started,
                )
        except (ValueError, TypeError, AttributeError, IndexError, KeyError) as e:
            logger.warning("Unexpected response shape", provider=adapter.name, error=str(e))
            error = ClientFailure("Unexpected response shape", provider=adapter.name)
            error.__cause__ = e
            return Failure(error=error, attempts=outcome.attempts)

        if truncated:
            return Failure(
                error=TruncatedOutputFailure(
                    f"Output truncated at {max_tokens} tokens", provider=adapter.name
                ),
                attempts=outcome.attempts,
            )
        return Success(value=reply, attempts=outcome.attempts)
