"""
Fallback cascade for report generation.

Strategies run strictly in order, from highest quality to the offline
report, and the first usable text wins:

1. job         - durable job with the primary model
2. fast        - direct call to the same family's fast model
3. simplified  - essential facts only, base model, small budget
4. minimal     - templated few-line prompt, economy model
5. local       - deterministic report, no network, never fails

Each strategy is attempted once. A direct strategy whose provider fails
outright gets one attempt on that provider's first fallback.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from polaris_orchestrator.config.settings import Settings
from polaris_orchestrator.exceptions import (
    ClientFailure,
    PollTransportError,
    ServerFailure,
    TimeoutFailure,
    is_outright_failure,
)
from polaris_orchestrator.orchestrator.executor import RequestExecutor
from polaris_orchestrator.orchestrator.jobs import JobOrchestrator, JobRequest, JobSnapshot
from polaris_orchestrator.orchestrator.result import Success
from polaris_orchestrator.orchestrator.router import ProviderRouter
from polaris_orchestrator.providers.base import (
    BaseProvider,
    Capability,
    GenerationRequest,
    ProviderId,
    ProviderProfile,
)
from polaris_orchestrator.providers.budget import budget_output_tokens
from polaris_orchestrator.report.facts import ContextFacts, idempotency_key
from polaris_orchestrator.report.local import build_local_report
from polaris_orchestrator.report.prompts import build_minimal_prompt, build_simplified_prompt
from polaris_orchestrator.report.repair import to_json
from polaris_orchestrator.telemetry.logger import StrategyContext, get_logger
from polaris_orchestrator.telemetry.metrics import MetricsCollector

logger = get_logger(__name__)

MIN_OUTPUT_TOKENS = 256


class GenerationSpec(BaseModel):
    """Everything one report generation needs."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    prompt: str
    system_prompt: Optional[str] = None
    facts: ContextFacts = Field(default_factory=ContextFacts)
    request: Optional[GenerationRequest] = None
    idempotency_key: Optional[str] = None
    on_progress: Optional[Callable[[JobSnapshot], None]] = None

    def routing_request(self) -> GenerationRequest:
        if self.request is not None:
            return self.request
        return GenerationRequest(
            prompt=self.prompt,
            system_prompt=self.system_prompt,
            required_capabilities={Capability.TEXT},
        )

    def output_budget(self, strategy_budget: int) -> int:
        """The strategy budget, capped by the caller's max_output_tokens."""
        if self.request is not None and self.request.max_output_tokens:
            return min(strategy_budget, self.request.max_output_tokens)
        return strategy_budget

    def key(self) -> str:
        return self.idempotency_key or idempotency_key(self.facts, self.prompt)


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    ERROR = "error"
    SKIPPED = "skipped"


class CascadeAttempt(BaseModel):
    strategy_name: str
    index: int
    started_at: datetime
    finished_at: datetime
    outcome: AttemptOutcome
    provider: Optional[str] = None
    model: Optional[str] = None
    error: Optional[str] = None
    result_ref: Optional[str] = None


class StrategyOutput(BaseModel):
    text: str
    provider: Optional[ProviderId] = None
    model: Optional[str] = None
    ref: Optional[str] = None


class CascadeResult(BaseModel):
    text: str
    strategy_used: str
    provider: Optional[str] = None
    model: Optional[str] = None
    attempts: List[CascadeAttempt] = Field(default_factory=list)
    degraded: bool = False


class Strategy(ABC):
    """One way of producing report text."""

    name: str = "strategy"
    timeout: Optional[float] = None

    def is_available(self) -> bool:
        return True

    @property
    def deadline(self) -> Optional[float]:
        """Wall-clock bound the cascade puts on one attempt."""
        return self.timeout

    @abstractmethod
    async def attempt(self, spec: GenerationSpec) -> Optional[StrategyOutput]:
        """Return usable text, None, or raise."""


def _output_budget(profile: ProviderProfile, system_prompt: Optional[str], prompt: str, desired: int) -> int:
    budget = budget_output_tokens(profile.context_window_tokens, [system_prompt, prompt], desired_max=desired)
    if budget < MIN_OUTPUT_TOKENS:
        raise ClientFailure(
            f"Prompt leaves only {budget} output tokens in a {profile.context_window_tokens}-token window",
            provider=profile.id.value,
        )
    return budget


class JobStrategy(Strategy):
    name = "job"

    def __init__(
        self,
        jobs: Optional[JobOrchestrator],
        router: ProviderRouter,
        adapters: Mapping[ProviderId, BaseProvider],
        max_tokens: int,
        temperature: float,
    ):
        self.jobs = jobs
        self.router = router
        self.adapters = adapters
        self.max_tokens = max_tokens
        self.temperature = temperature

    def is_available(self) -> bool:
        return self.jobs is not None

    async def attempt(self, spec: GenerationSpec) -> Optional[StrategyOutput]:
        provider = self.router.select(spec.routing_request())
        profile = self.adapters[provider].profile
        model = profile.default_model
        request = JobRequest(
            prompt=spec.prompt,
            model=model,
            provider=provider.value,
            temperature=self.temperature,
            max_tokens=_output_budget(profile, spec.system_prompt, spec.prompt, spec.output_budget(self.max_tokens)),
            metadata={"system_prompt": spec.system_prompt} if spec.system_prompt else {},
        )
        outcome = await self.jobs.run(request, spec.key(), on_progress=spec.on_progress)

        if outcome.status == "succeeded":
            return StrategyOutput(text=outcome.result or "", provider=provider, model=model, ref=outcome.job.id)
        if outcome.status == "timeout":
            raise TimeoutFailure(outcome.error or "Job wait timed out", provider="job")
        if outcome.status == "transport_error":
            raise PollTransportError(outcome.error or "Job status unreachable", provider="job")
        raise ServerFailure(outcome.error or "Job failed", provider="job")


PromptBuilder = Callable[[GenerationSpec], Tuple[Optional[str], str]]
ModelPicker = Callable[[ProviderProfile], str]


class DirectStrategy(Strategy):
    """Single direct completion with an optional hop to the first fallback."""

    def __init__(
        self,
        name: str,
        router: ProviderRouter,
        adapters: Mapping[ProviderId, BaseProvider],
        executor: RequestExecutor,
        build_prompt: PromptBuilder,
        pick_model: ModelPicker,
        max_tokens: int,
        timeout: float,
        temperature: float,
    ):
        self.name = name
        self.router = router
        self.adapters = adapters
        self.executor = executor
        self.build_prompt = build_prompt
        self.pick_model = pick_model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.temperature = temperature

    @property
    def deadline(self) -> Optional[float]:
        # Room for the primary call and one fallback call.
        return self.timeout * 2

    async def attempt(self, spec: GenerationSpec) -> Optional[StrategyOutput]:
        system_prompt, prompt = self.build_prompt(spec)
        routing = spec.routing_request()
        candidates = self.router.rank(routing)[:2]

        for index, provider in enumerate(candidates):
            adapter = self.adapters[provider]
            model = self.pick_model(adapter.profile)
            request = routing.with_prompt(prompt, system_prompt=system_prompt, temperature=self.temperature)
            max_tokens = _output_budget(adapter.profile, system_prompt, prompt, spec.output_budget(self.max_tokens))
            result = await self.executor.complete(adapter, request, model, max_tokens, timeout=self.timeout)

            if isinstance(result, Success):
                return StrategyOutput(text=result.value.content, provider=provider, model=model)

            error = result.error
            if index == 0 and len(candidates) > 1 and is_outright_failure(error):
                logger.warning(
                    "Provider failed outright, trying fallback",
                    provider=provider.value,
                    fallback=candidates[1].value,
                    kind=error.kind.value,
                )
                continue
            raise error
        return None


class LocalStrategy(Strategy):
    name = "local"

    async def attempt(self, spec: GenerationSpec) -> Optional[StrategyOutput]:
        report = build_local_report(spec.facts)
        return StrategyOutput(text=to_json(report), model="local")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class FallbackCascade:
    """Runs strategies in order and commits to the first usable text.

    ``generate`` never raises for upstream problems; the local strategy is
    the terminal safety net.
    """

    def __init__(self, strategies: Sequence[Strategy], metrics: Optional[MetricsCollector] = None):
        self.strategies = list(strategies)
        self.metrics = metrics

    @classmethod
    def standard(
        cls,
        settings: Settings,
        router: ProviderRouter,
        adapters: Mapping[ProviderId, BaseProvider],
        executor: RequestExecutor,
        jobs: Optional[JobOrchestrator] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> "FallbackCascade":
        temperature = settings.report_temperature
        strategies: List[Strategy] = [
            JobStrategy(jobs, router, adapters, settings.job_max_output_tokens, temperature),
            DirectStrategy(
                "fast",
                router,
                adapters,
                executor,
                build_prompt=lambda spec: (spec.system_prompt, spec.prompt),
                pick_model=lambda profile: profile.resolved_fast_model,
                max_tokens=settings.fast_max_output_tokens,
                timeout=settings.fast_timeout,
                temperature=temperature,
            ),
            DirectStrategy(
                "simplified",
                router,
                adapters,
                executor,
                build_prompt=lambda spec: build_simplified_prompt(spec.facts),
                pick_model=lambda profile: profile.default_model,
                max_tokens=settings.simplified_max_output_tokens,
                timeout=settings.simplified_timeout,
                temperature=temperature,
            ),
            DirectStrategy(
                "minimal",
                router,
                adapters,
                executor,
                build_prompt=lambda spec: build_minimal_prompt(spec.facts),
                pick_model=lambda profile: profile.resolved_economy_model,
                max_tokens=settings.minimal_max_output_tokens,
                timeout=settings.minimal_timeout,
                temperature=temperature,
            ),
            LocalStrategy(),
        ]
        return cls(strategies, metrics=metrics)

    def _record(self, attempts: List[CascadeAttempt], attempt: CascadeAttempt) -> None:
        attempts.append(attempt)
        if self.metrics:
            self.metrics.record_cascade_attempt(attempt.strategy_name, attempt.outcome.value)

    async def generate(self, spec: GenerationSpec) -> CascadeResult:
        attempts: List[CascadeAttempt] = []
        first_available: Optional[int] = None

        for index, strategy in enumerate(self.strategies):
            started = _now()
            if not strategy.is_available():
                self._record(
                    attempts,
                    CascadeAttempt(
                        strategy_name=strategy.name,
                        index=index,
                        started_at=started,
                        finished_at=started,
                        outcome=AttemptOutcome.SKIPPED,
                    ),
                )
                continue
            if first_available is None:
                first_available = index

            with StrategyContext(strategy.name):
                outcome, output, error = await self._run(strategy, spec)

            self._record(
                attempts,
                CascadeAttempt(
                    strategy_name=strategy.name,
                    index=index,
                    started_at=started,
                    finished_at=_now(),
                    outcome=outcome,
                    provider=output.provider.value if output and output.provider else None,
                    model=output.model if output else None,
                    error=error,
                    result_ref=output.ref if output else None,
                ),
            )

            if outcome == AttemptOutcome.SUCCESS:
                degraded = index != first_available
                logger.info(
                    "Cascade resolved",
                    strategy=strategy.name,
                    degraded=degraded,
                    attempts=len(attempts),
                )
                return CascadeResult(
                    text=output.text,
                    strategy_used=strategy.name,
                    provider=output.provider.value if output.provider else None,
                    model=output.model,
                    attempts=attempts,
                    degraded=degraded,
                )

        # Only reachable when the configured ladder lacks a local strategy.
        logger.error("Every strategy failed, building offline report")
        now = _now()
        self._record(
            attempts,
            CascadeAttempt(
                strategy_name="local",
                index=len(self.strategies),
                started_at=now,
                finished_at=now,
                outcome=AttemptOutcome.SUCCESS,
                model="local",
            ),
        )
        return CascadeResult(
            text=to_json(build_local_report(spec.facts)),
            strategy_used="local",
            model="local",
            attempts=attempts,
            degraded=True,
        )

    async def _run(
        self, strategy: Strategy, spec: GenerationSpec
    ) -> Tuple[AttemptOutcome, Optional[StrategyOutput], Optional[str]]:
        try:
            if strategy.deadline:
                output = await asyncio.wait_for(strategy.attempt(spec), timeout=strategy.deadline)
            else:
                output = await strategy.attempt(spec)
        except asyncio.TimeoutError:
            logger.warning("Strategy timed out", deadline=strategy.deadline)
            return AttemptOutcome.TIMEOUT, None, f"No result within {strategy.deadline:.0f}s"
        except TimeoutFailure as e:
            logger.warning("Strategy timed out", error=e.message)
            return AttemptOutcome.TIMEOUT, None, e.message
        except Exception as e:
            logger.warning("Strategy failed", error=str(e), error_type=type(e).__name__)
            return AttemptOutcome.ERROR, None, str(e) or type(e).__name__

        if output is None or not output.text.strip():
            logger.warning("Strategy returned no usable text")
            return AttemptOutcome.ERROR, output, "Empty output"
        return AttemptOutcome.SUCCESS, output, None
