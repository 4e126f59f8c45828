"""
OpenAI chat-completions wire adapter.
"""

from typing import Any, Dict, Optional

from .base import BaseProvider, GenerationRequest, ProviderId, TokenUsage


class OpenAIProvider(BaseProvider):
    """OpenAI provider adapter."""

    provider_id = ProviderId.OPENAI
    TRUNCATION_REASONS = frozenset({"length", "max_tokens"})

    def endpoint(self, model: str) -> str:
        return f"{self.base_url}/v1/chat/completions"

    def headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def build_payload(self, request: GenerationRequest, model: str, max_tokens: int) -> Dict[str, Any]:
        self._log_request(model, request, max_tokens)
        return {
            "model": model,
            "temperature": request.temperature if request.temperature is not None else 0.7,
            "messages": self.messages(request),
            "max_tokens": max_tokens,
            "stream": False,
        }

    def extract_content(self, data: Dict[str, Any]) -> str:
        choices = data.get("choices") or []
        if not choices:
            return ""
        message = choices[0].get("message") or {}
        return message.get("content") or ""

    def extract_finish_reason(self, data: Dict[str, Any]) -> Optional[str]:
        choices = data.get("choices") or []
        return choices[0].get("finish_reason") if choices else None

    def extract_usage(self, data: Dict[str, Any]) -> Optional[TokenUsage]:
        usage = data.get("usage")
        if not usage:
            return None
        return TokenUsage(
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            total_tokens=usage.get("total_tokens", 0),
        )
