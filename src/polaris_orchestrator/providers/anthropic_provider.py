"""
Anthropic messages-API wire adapter.
"""

from typing import Any, Dict, Optional

from .base import BaseProvider, GenerationRequest, ProviderId, ProviderProfile, TokenUsage


class AnthropicProvider(BaseProvider):
    """Anthropic provider adapter."""

    provider_id = ProviderId.ANTHROPIC
    TRUNCATION_REASONS = frozenset({"max_tokens"})

    def __init__(self, api_key: str, base_url: str, profile: ProviderProfile, version: str = "2023-06-01"):
        super().__init__(api_key, base_url, profile)
        self.version = version

    def endpoint(self, model: str) -> str:
        return f"{self.base_url}/v1/messages"

    def headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": self.version,
        }

    def build_payload(self, request: GenerationRequest, model: str, max_tokens: int) -> Dict[str, Any]:
        self._log_request(model, request, max_tokens)
        payload: Dict[str, Any] = {
            "model": model,
            "temperature": request.temperature if request.temperature is not None else 0.7,
            "messages": [{"role": "user", "content": request.prompt}],
            "max_tokens": max_tokens,
        }
        # System instructions are a top-level field, not a message role
        if request.system_prompt:
            payload["system"] = request.system_prompt
        return payload

    def extract_content(self, data: Dict[str, Any]) -> str:
        content = data.get("content")
        if isinstance(content, list):
            return "\n".join(
                part.get("text", "") for part in content if isinstance(part, dict) and part.get("type", "text") == "text"
            )
        if isinstance(content, str):
            return content
        return data.get("completion") or ""

    def extract_finish_reason(self, data: Dict[str, Any]) -> Optional[str]:
        return data.get("stop_reason")

    def extract_usage(self, data: Dict[str, Any]) -> Optional[TokenUsage]:
        usage = data.get("usage")
        if not usage:
            return None
        prompt_tokens = usage.get("input_tokens", 0)
        completion_tokens = usage.get("output_tokens", 0)
        return TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )
