"""Pytest configuration and fixtures."""

import asyncio
import os
import random
from typing import Any, Callable, Dict, List, Optional, Set

import httpx
import orjson
import pytest
import pytest_asyncio

from polaris_orchestrator.config.settings import Settings, get_settings
from polaris_orchestrator.context import OrchestratorContext
from polaris_orchestrator.report.facts import ContextFacts
from polaris_orchestrator.telemetry.metrics import MetricsCollector

OPENAI_HOST = "api.openai.com"
ANTHROPIC_HOST = "api.anthropic.com"
GOOGLE_HOST = "generativelanguage.googleapis.com"
PERPLEXITY_HOST = "api.perplexity.ai"
JOB_ENDPOINT = "https://jobs.example.test/api/report-jobs"


def settings_env_names() -> Set[str]:
    """Every environment variable Settings reads, upper-cased."""
    names = set()
    for name, field in Settings.model_fields.items():
        alias = field.validation_alias
        names.add((alias if isinstance(alias, str) else name).upper())
    return names


class FakeClock:
    """Monotonic clock advanced only by the injected sleep."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


def json_response(status: int, body: Any = None, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
    content = orjson.dumps(body) if body is not None else b""
    merged = {"content-type": "application/json", **(headers or {})}
    return httpx.Response(status, content=content, headers=merged)


def openai_body(text: str, finish_reason: str = "stop") -> Dict[str, Any]:
    return {
        "choices": [{"message": {"role": "assistant", "content": text}, "finish_reason": finish_reason}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }


def anthropic_body(text: str, stop_reason: str = "end_turn") -> Dict[str, Any]:
    return {
        "content": [{"type": "text", "text": text}],
        "stop_reason": stop_reason,
        "usage": {"input_tokens": 10, "output_tokens": 5},
    }


def google_body(text: str, finish_reason: str = "STOP") -> Dict[str, Any]:
    return {
        "candidates": [{"content": {"parts": [{"text": text}]}, "finishReason": finish_reason}],
        "usageMetadata": {"promptTokenCount": 10, "candidatesTokenCount": 5, "totalTokenCount": 15},
    }


class Upstream:
    """Scripted upstream keyed by host. Each host answers from a queue or a callable."""

    def __init__(self):
        self.routes: Dict[str, Callable[[httpx.Request], Any]] = {}
        self.requests: List[httpx.Request] = []

    def on(self, host: str, *responses: Any) -> "Upstream":
        queue = list(responses)

        def answer(request: httpx.Request):
            item = queue.pop(0) if len(queue) > 1 else queue[0]
            if isinstance(item, Exception):
                raise item
            if callable(item):
                return item(request)
            return item

        self.routes[host] = answer
        return self

    def calls(self, host: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.host == host]

    def __call__(self, request: httpx.Request):
        self.requests.append(request)
        handler = self.routes.get(request.url.host)
        if handler is None:
            raise httpx.ConnectError(f"No route to {request.url.host}", request=request)
        return handler(request)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def connect_error(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Connection refused", request=request)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Keep real credentials and cached settings out of tests."""
    # Settings matches names case-insensitively
    settings_env = settings_env_names()
    for name in list(os.environ):
        if name.upper() in settings_env:
            monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    def factory(**overrides: Any) -> Settings:
        values = {
            "openai_api_key": "sk-test-openai-0000000000000000",
            "anthropic_api_key": "sk-ant-REDACTED",
            "log_format": "console",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return factory


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def facts() -> ContextFacts:
    return ContextFacts(
        organization="Acme Health",
        industry="Healthcare",
        audience="Frontline nurses",
        objectives=["Reduce medication errors by 20%", "Standardize handoff procedures"],
        constraints=["Shift work limits classroom time"],
        budget="USD 50,000 - 80,000",
        timeline_start="2025-01-06",
        timeline_end="2025-06-30",
        technology=["Cornerstone LMS", "Microsoft Teams"],
        experience_level="intermediate",
    )


@pytest_asyncio.fixture
async def make_context(upstream, clock):
    contexts: List[OrchestratorContext] = []

    def factory(settings: Settings, metrics: Optional[MetricsCollector] = None) -> OrchestratorContext:
        context = OrchestratorContext.from_settings(
            settings,
            transport=upstream.transport(),
            metrics=metrics,
            sleep=clock.sleep,
            clock=clock,
            rng=random.Random(7),
        )
        contexts.append(context)
        return context

    yield factory

    for context in contexts:
        await context.aclose()
