"""
Perplexity research wire adapter.
"""

from typing import Any, Dict, List

from .base import GenerationRequest, ProviderId
from .openai_provider import OpenAIProvider

RESEARCH_PREAMBLE = (
    "You are a helpful research assistant. Provide comprehensive, accurate information "
    "based on current web sources. Focus on facts and cite sources when possible."
)


class PerplexityProvider(OpenAIProvider):
    """Perplexity shares the OpenAI response shape but has no system role."""

    provider_id = ProviderId.PERPLEXITY

    def endpoint(self, model: str) -> str:
        return f"{self.base_url}/chat/completions"

    def messages(self, request: GenerationRequest) -> List[Dict[str, str]]:
        preamble = request.system_prompt or RESEARCH_PREAMBLE
        return [{"role": "user", "content": f"{preamble}\n\n{request.prompt}"}]

    def build_payload(self, request: GenerationRequest, model: str, max_tokens: int) -> Dict[str, Any]:
        payload = super().build_payload(request, model, max_tokens)
        payload.pop("stream", None)
        if request.temperature is None:
            payload["temperature"] = 0.1
        return payload
