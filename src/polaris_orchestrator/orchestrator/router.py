"""Capability-, latency- and cost-aware provider selection with static fallbacks."""

from typing import Dict, List, Mapping, Optional, Sequence

from polaris_orchestrator.exceptions import ConfigurationError
from polaris_orchestrator.providers.base import (
    Capability,
    GenerationRequest,
    InputKind,
    LatencyClass,
    ProviderId,
    ProviderProfile,
)
from polaris_orchestrator.telemetry.logger import get_logger

logger = get_logger(__name__)

# Hand-specified alternates, consulted when a provider fails outright.
FALLBACK_TABLE: Dict[ProviderId, List[ProviderId]] = {
    ProviderId.OPENAI: [ProviderId.ANTHROPIC, ProviderId.GOOGLE],
    ProviderId.ANTHROPIC: [ProviderId.OPENAI, ProviderId.GOOGLE],
    ProviderId.GOOGLE: [ProviderId.ANTHROPIC, ProviderId.OPENAI],
    ProviderId.PERPLEXITY: [ProviderId.GOOGLE, ProviderId.OPENAI],
}


def validate_fallback_table(table: Mapping[ProviderId, Sequence[ProviderId]]) -> None:
    """Reject tables that list a provider as its own fallback or exceed two alternates."""
    for provider, alternates in table.items():
        if provider in alternates:
            raise ConfigurationError(f"Provider {provider.value} lists itself as a fallback")
        if not 1 <= len(alternates) <= 2:
            raise ConfigurationError(f"Provider {provider.value} must have one or two fallbacks")
        if len(set(alternates)) != len(alternates):
            raise ConfigurationError(f"Provider {provider.value} has duplicate fallbacks")


class ProviderRouter:
    """Maps a request's declared needs to a provider.

    Profiles are kept in declaration order, which breaks every tie.
    """

    def __init__(
        self,
        profiles: Sequence[ProviderProfile],
        fallbacks: Optional[Mapping[ProviderId, Sequence[ProviderId]]] = None,
    ):
        if not profiles:
            raise ConfigurationError("No AI providers are configured")
        self.profiles: List[ProviderProfile] = list(profiles)
        self._by_id = {p.id: p for p in self.profiles}
        table = dict(fallbacks if fallbacks is not None else FALLBACK_TABLE)
        validate_fallback_table(table)
        self.fallback_table = table

    @property
    def provider_ids(self) -> List[ProviderId]:
        return [p.id for p in self.profiles]

    def profile(self, provider: ProviderId) -> ProviderProfile:
        return self._by_id[provider]

    def is_configured(self, provider: ProviderId) -> bool:
        return provider in self._by_id

    def _first(self, *capabilities: Capability, latency: Optional[LatencyClass] = None) -> Optional[ProviderProfile]:
        for profile in self.profiles:
            if profile.supports(*capabilities) and (latency is None or profile.latency_class == latency):
                return profile
        return None

    def _largest_window(self) -> ProviderProfile:
        # max() keeps the first of equal elements, so declaration order wins ties
        return max(self.profiles, key=lambda p: p.context_window_tokens)

    def _cheapest(self, *capabilities: Capability) -> Optional[ProviderProfile]:
        candidates = [p for p in self.profiles if p.supports(*capabilities)]
        if not candidates:
            return None
        return min(candidates, key=lambda p: p.approx_cost_per_token)

    def _select_profile(self, request: GenerationRequest) -> Optional[ProviderProfile]:
        needs = request.required_capabilities
        low_latency = request.max_latency == LatencyClass.LOW

        if Capability.RESEARCH in needs:
            research = self._first(Capability.RESEARCH)
            if research:
                return research

        kind = request.input_kind
        if kind == InputKind.IMAGE:
            if low_latency:
                return self._first(Capability.VISION, latency=LatencyClass.LOW) or self._first(Capability.VISION)
            return self._first(Capability.VISION, Capability.DOCUMENTS) or self._first(Capability.VISION)

        if kind in (InputKind.AUDIO, InputKind.VIDEO):
            return self._largest_window()

        if kind == InputKind.DOCUMENT:
            documents = self._first(Capability.DOCUMENTS)
            hint = request.context_size_hint
            if documents is None or (hint is not None and hint > documents.context_window_tokens):
                return self._largest_window()
            return documents

        if low_latency:
            fast = self._first(Capability.TEXT, latency=LatencyClass.LOW)
            if fast:
                return fast
        reasoning = self._first(Capability.REASONING)
        if reasoning:
            return reasoning
        return self._cheapest(Capability.TEXT)

    def select(self, request: GenerationRequest) -> ProviderId:
        """Pick the provider for ``request``."""
        if request.preferred_provider and self.is_configured(request.preferred_provider):
            return request.preferred_provider

        profile = self._select_profile(request) or self._cheapest()
        logger.debug(
            "Provider selected",
            provider=profile.id.value,
            input_kind=request.input_kind.value,
            capabilities=sorted(c.value for c in request.required_capabilities),
        )
        return profile.id

    def get_fallbacks(self, provider: ProviderId) -> List[ProviderId]:
        """Configured alternates for ``provider``, never including itself."""
        return [p for p in self.fallback_table.get(provider, []) if p != provider and self.is_configured(p)]

    def fallback_chain(self, provider: ProviderId) -> List[ProviderId]:
        """Breadth-first walk of the fallback table without revisiting a provider."""
        seen = {provider}
        chain: List[ProviderId] = []
        queue = [provider]
        while queue:
            current = queue.pop(0)
            for alternate in self.get_fallbacks(current):
                if alternate not in seen:
                    seen.add(alternate)
                    chain.append(alternate)
                    queue.append(alternate)
        return chain

    def rank(self, request: GenerationRequest) -> List[ProviderId]:
        """Selected provider followed by its fallback chain."""
        primary = self.select(request)
        return [primary, *self.fallback_chain(primary)]
