"""Static provider profiles and loading of the configured subset."""

from typing import Dict

from polaris_orchestrator.config.settings import Settings

from .anthropic_provider import AnthropicProvider
from .base import BaseProvider, Capability, LatencyClass, ProviderId, ProviderProfile
from .google_provider import GoogleProvider
from .openai_provider import OpenAIProvider
from .perplexity_provider import PerplexityProvider

# Declaration order is the router's tie-breaker.
DEFAULT_PROFILES: Dict[ProviderId, ProviderProfile] = {
    ProviderId.OPENAI: ProviderProfile(
        id=ProviderId.OPENAI,
        default_model="gpt-4o",
        fast_model="gpt-4o-mini",
        capabilities=frozenset({Capability.TEXT, Capability.VISION}),
        context_window_tokens=128_000,
        latency_class=LatencyClass.LOW,
        approx_cost_per_token=0.00001,
    ),
    ProviderId.ANTHROPIC: ProviderProfile(
        id=ProviderId.ANTHROPIC,
        default_model="claude-3-5-sonnet-latest",
        fast_model="claude-3-5-haiku-latest",
        capabilities=frozenset({Capability.TEXT, Capability.VISION, Capability.DOCUMENTS, Capability.REASONING}),
        context_window_tokens=200_000,
        latency_class=LatencyClass.MEDIUM,
        approx_cost_per_token=0.000003,
    ),
    ProviderId.GOOGLE: ProviderProfile(
        id=ProviderId.GOOGLE,
        default_model="gemini-2.0-flash-exp",
        fast_model="gemini-1.5-flash",
        capabilities=frozenset(
            {Capability.TEXT, Capability.VISION, Capability.AUDIO, Capability.VIDEO, Capability.DOCUMENTS}
        ),
        context_window_tokens=1_000_000,
        latency_class=LatencyClass.MEDIUM,
        approx_cost_per_token=0.000001,
    ),
    ProviderId.PERPLEXITY: ProviderProfile(
        id=ProviderId.PERPLEXITY,
        default_model="sonar-pro",
        fast_model="sonar",
        capabilities=frozenset({Capability.RESEARCH, Capability.TEXT}),
        context_window_tokens=32_000,
        latency_class=LatencyClass.HIGH,
        approx_cost_per_token=0.000005,
    ),
}


def _secret(value) -> str | None:
    if value is None:
        return None
    raw = value.get_secret_value().strip()
    return raw or None


def build_adapters(settings: Settings) -> Dict[ProviderId, BaseProvider]:
    """Build wire adapters for every provider that has an API key.

    Models from settings override the static profile defaults. The returned
    mapping keeps DEFAULT_PROFILES order.
    """
    adapters: Dict[ProviderId, BaseProvider] = {}

    openai_key = _secret(settings.openai_api_key)
    if openai_key:
        profile = DEFAULT_PROFILES[ProviderId.OPENAI].model_copy(
            update={"default_model": settings.openai_model, "fast_model": settings.openai_fast_model}
        )
        adapters[ProviderId.OPENAI] = OpenAIProvider(openai_key, settings.openai_base_url, profile)

    anthropic_key = _secret(settings.anthropic_api_key)
    if anthropic_key:
        profile = DEFAULT_PROFILES[ProviderId.ANTHROPIC].model_copy(
            update={"default_model": settings.anthropic_model, "fast_model": settings.anthropic_fast_model}
        )
        adapters[ProviderId.ANTHROPIC] = AnthropicProvider(
            anthropic_key, settings.anthropic_base_url, profile, version=settings.anthropic_version
        )

    google_key = _secret(settings.google_api_key)
    if google_key:
        profile = DEFAULT_PROFILES[ProviderId.GOOGLE].model_copy(
            update={"default_model": settings.google_model, "fast_model": settings.google_fast_model}
        )
        adapters[ProviderId.GOOGLE] = GoogleProvider(google_key, settings.google_base_url, profile)

    perplexity_key = _secret(settings.perplexity_api_key)
    if perplexity_key:
        profile = DEFAULT_PROFILES[ProviderId.PERPLEXITY].model_copy(
            update={"default_model": settings.perplexity_model, "fast_model": settings.perplexity_fast_model}
        )
        adapters[ProviderId.PERPLEXITY] = PerplexityProvider(perplexity_key, settings.perplexity_base_url, profile)

    return adapters
