"""
Provider profiles, generation requests and the base wire adapter.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class ProviderId(str, Enum):
    """Known upstream AI providers."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    PERPLEXITY = "perplexity"


class Capability(str, Enum):
    """Declared provider abilities used for routing."""

    TEXT = "text"
    VISION = "vision"
    AUDIO = "audio"
    VIDEO = "video"
    RESEARCH = "research"
    REASONING = "reasoning"
    DOCUMENTS = "documents"


class InputKind(str, Enum):
    """Kind of input the request carries."""

    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    DOCUMENT = "document"


class LatencyClass(str, Enum):
    """Coarse latency tolerance / latency class."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ProviderProfile(BaseModel):
    """Static configuration of one provider."""

    model_config = ConfigDict(frozen=True)

    id: ProviderId = Field(..., description="Provider identifier")
    default_model: str = Field(..., description="Primary model")
    fast_model: Optional[str] = Field(default=None, description="Faster, cheaper model of the same family")
    economy_model: Optional[str] = Field(default=None, description="Lowest-cost model")
    capabilities: FrozenSet[Capability] = Field(..., description="Declared capabilities")
    context_window_tokens: int = Field(..., gt=0, description="Context window in tokens")
    latency_class: LatencyClass = Field(..., description="Typical latency")
    approx_cost_per_token: float = Field(..., ge=0, description="Approximate USD cost per token")

    def supports(self, *capabilities: Capability) -> bool:
        return all(c in self.capabilities for c in capabilities)

    @property
    def resolved_fast_model(self) -> str:
        return self.fast_model or self.default_model

    @property
    def resolved_economy_model(self) -> str:
        return self.economy_model or self.fast_model or self.default_model


class GenerationRequest(BaseModel):
    """A prompt plus the routing needs it declares. Immutable once constructed."""

    model_config = ConfigDict(frozen=True)

    prompt: str = Field(..., description="User prompt")
    system_prompt: Optional[str] = Field(default=None, description="System instruction")
    input_kind: InputKind = Field(default=InputKind.TEXT, description="Kind of input")
    required_capabilities: FrozenSet[Capability] = Field(default_factory=frozenset)
    max_latency: Optional[LatencyClass] = Field(default=None)
    context_size_hint: Optional[int] = Field(default=None, ge=0)
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_output_tokens: Optional[int] = Field(default=None, gt=0)
    preferred_provider: Optional[ProviderId] = Field(default=None)

    @field_validator("required_capabilities", mode="before")
    @classmethod
    def coerce_capabilities(cls, v):
        if v is None:
            return frozenset()
        if isinstance(v, (str, Capability)):
            return frozenset([v])
        return frozenset(v)

    def with_prompt(self, prompt: str, **changes: Any) -> "GenerationRequest":
        """Return a copy with a different prompt (and optional field overrides)."""
        return self.model_copy(update={"prompt": prompt, **changes})


class TokenUsage(BaseModel):
    """Token usage statistics."""

    prompt_tokens: int = Field(default=0)
    completion_tokens: int = Field(default=0)
    total_tokens: int = Field(default=0)
    total_cost: Optional[float] = Field(default=None, description="Estimated cost in USD")


class ProviderReply(BaseModel):
    """Text extracted from a provider response."""

    content: str = Field(..., description="Generated text")
    provider: ProviderId = Field(..., description="Provider that produced the text")
    model: str = Field(..., description="Model used")
    finish_reason: Optional[str] = Field(default=None)
    usage: Optional[TokenUsage] = Field(default=None)
    cached: bool = Field(default=False)
    latency: Optional[float] = Field(default=None, description="Seconds spent in the executor")


class BaseProvider(ABC):
    """Wire adapter for one upstream AI provider.

    Adapters are pure translators between a GenerationRequest and the
    provider's HTTP shape. The RequestExecutor owns the network call.
    """

    provider_id: ProviderId
    TRUNCATION_REASONS: FrozenSet[str] = frozenset()

    def __init__(self, api_key: str, base_url: str, profile: ProviderProfile):
        """
        Initialize the adapter.

        Args:
            api_key: API key for the provider
            base_url: Base URL of the provider API
            profile: Static provider profile
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.profile = profile
        self.name = self.provider_id.value

    @abstractmethod
    def endpoint(self, model: str) -> str:
        """Absolute URL for a completion call."""

    @abstractmethod
    def headers(self) -> Dict[str, str]:
        """Request headers, including credentials."""

    @abstractmethod
    def build_payload(self, request: GenerationRequest, model: str, max_tokens: int) -> Dict[str, Any]:
        """JSON body for a completion call."""

    @abstractmethod
    def extract_content(self, data: Dict[str, Any]) -> str:
        """Generated text from a successful response body."""

    def extract_finish_reason(self, data: Dict[str, Any]) -> Optional[str]:
        return None

    def extract_usage(self, data: Dict[str, Any]) -> Optional[TokenUsage]:
        return None

    def is_truncated(self, data: Dict[str, Any]) -> bool:
        return self.extract_finish_reason(data) in self.TRUNCATION_REASONS

    def messages(self, request: GenerationRequest) -> List[Dict[str, str]]:
        """OpenAI-style message list with an optional leading system message."""
        messages: List[Dict[str, str]] = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})
        return messages

    def _log_request(self, model: str, request: GenerationRequest, max_tokens: int) -> None:
        logger.info(
            f"Provider {self.name} request",
            extra={
                "provider": self.name,
                "model": model,
                "prompt_chars": len(request.prompt),
                "temperature": request.temperature,
                "max_tokens": max_tokens,
            },
        )
