"""Caller-facing report and research API."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

import orjson
from pydantic import BaseModel, Field

from polaris_orchestrator.context import OrchestratorContext
from polaris_orchestrator.orchestrator.cache import fingerprint
from polaris_orchestrator.orchestrator.cascade import CascadeAttempt, GenerationSpec
from polaris_orchestrator.orchestrator.result import Success
from polaris_orchestrator.providers.base import Capability, GenerationRequest
from polaris_orchestrator.report.repair import repair_with_diagnostics, to_json
from polaris_orchestrator.report.schema import SECTION_NAMES, StructuredReport
from polaris_orchestrator.telemetry.logger import GenerationContext, get_logger

logger = get_logger(__name__)

RESEARCH_UNAVAILABLE = "Research data temporarily unavailable. Please proceed with the information provided."


class ReportMetadata(BaseModel):
    generated_at: datetime
    word_count: int
    sections: List[str]
    synthesized_fields: List[str] = Field(default_factory=list)
    confidence: float
    parsed: bool


class GeneratedReport(BaseModel):
    content: str
    report: StructuredReport
    provider: Optional[str] = None
    model: Optional[str] = None
    degraded: bool = False
    strategy: str
    attempts: List[CascadeAttempt] = Field(default_factory=list)
    metadata: ReportMetadata


def _word_count(report: StructuredReport) -> int:
    words = 0

    def walk(node: Any) -> None:
        nonlocal words
        if isinstance(node, str):
            words += len(node.split())
        elif isinstance(node, dict):
            for value in node.values():
                walk(value)
        elif isinstance(node, list):
            for value in node:
                walk(value)

    walk(report.model_dump())
    return words


def build_research_prompt(topic: str, data: Any) -> str:
    if isinstance(data, str):
        context = data
    else:
        context = orjson.dumps(data, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS, default=str).decode()
    return (
        f"RESEARCH TOPIC: {topic}\n\n"
        f"INPUT (verbatim; do not normalize or guess):\n{context}\n\n"
        "Produce a concise Markdown brief with short sections and bulleted findings. "
        "Cite sources for non-obvious claims. If nothing is found for a point, write "
        '"None found / needs stakeholder input".'
    )


class ReportService:
    """Entry points the rest of the application uses."""

    def __init__(self, context: OrchestratorContext):
        self.context = context

    async def generate_report(self, spec: GenerationSpec) -> GeneratedReport:
        """Run the cascade and repair its output.

        Raises:
            ConfigurationError: when no provider is configured at all
        """
        self.context.require_providers()

        with GenerationContext():
            logger.info("Report generation started", key=spec.key())
            result = await self.context.cascade.generate(spec)
            outcome = repair_with_diagnostics(result.text, spec.facts)

        report = outcome.report
        metadata = ReportMetadata(
            generated_at=datetime.now(timezone.utc),
            word_count=_word_count(report),
            sections=list(SECTION_NAMES),
            synthesized_fields=outcome.synthesized,
            confidence=outcome.confidence,
            parsed=outcome.parsed,
        )
        return GeneratedReport(
            content=to_json(report),
            report=report,
            provider=result.provider,
            model=result.model,
            degraded=result.degraded,
            strategy=result.strategy_used,
            attempts=result.attempts,
            metadata=metadata,
        )

    def _research_request(self, topic: str, data: Any) -> GenerationRequest:
        settings = self.context.settings
        return GenerationRequest(
            prompt=build_research_prompt(topic, data),
            required_capabilities={Capability.RESEARCH},
            temperature=settings.research_temperature,
            max_output_tokens=settings.research_max_output_tokens,
        )

    async def research(self, topic: str, data: Any = None) -> str:
        """Research ``topic``; falls back to a fixed notice instead of raising."""
        router = self.context.require_providers()
        request = self._research_request(topic, data)
        key = fingerprint("research", {"prompt": request.prompt, "temperature": request.temperature})

        if self.context.settings.cache_enabled:
            cached = self.context.cache.get(key)
            if cached is not None:
                self.context.metrics.record_cache_hit()
                return cached
            self.context.metrics.record_cache_miss()

        return await self.context.research_inflight.run(key, lambda: self._research_uncached(router, request, key))

    async def _research_uncached(self, router, request: GenerationRequest, key: str) -> str:
        settings = self.context.settings
        for provider in router.rank(request):
            adapter = self.context.adapters[provider]
            result = await self.context.executor.complete(
                adapter,
                request,
                adapter.profile.default_model,
                request.max_output_tokens or settings.research_max_output_tokens,
                timeout=settings.research_timeout,
            )
            if isinstance(result, Success) and result.value.content.strip():
                content = result.value.content
                if settings.cache_enabled:
                    self.context.cache.set(key, content)
                return content
            logger.warning(
                "Research provider failed",
                provider=provider.value,
                error=result.error.message if not isinstance(result, Success) else "empty output",
            )

        logger.error("All research providers failed")
        return RESEARCH_UNAVAILABLE

    async def research_stages(self, stages: Mapping[str, Tuple[str, Any]]) -> Dict[str, str]:
        """Research independent stages concurrently. No ordering between them."""
        names = list(stages)
        results = await asyncio.gather(*(self.research(*stages[name]) for name in names))
        return dict(zip(names, results))
