from .anthropic_provider import AnthropicProvider
from .base import (
    BaseProvider,
    Capability,
    GenerationRequest,
    InputKind,
    LatencyClass,
    ProviderId,
    ProviderProfile,
    ProviderReply,
    TokenUsage,
)
from .google_provider import GoogleProvider
from .openai_provider import OpenAIProvider
from .perplexity_provider import PerplexityProvider
from .profiles import DEFAULT_PROFILES, build_adapters

__all__ = [
    "BaseProvider",
    "Capability",
    "GenerationRequest",
    "InputKind",
    "LatencyClass",
    "ProviderId",
    "ProviderProfile",
    "ProviderReply",
    "TokenUsage",
    "OpenAIProvider",
    "AnthropicProvider",
    "GoogleProvider",
    "PerplexityProvider",
    "DEFAULT_PROFILES",
    "build_adapters",
]
