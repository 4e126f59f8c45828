"""
Google Gemini generateContent wire adapter.
"""

from typing import Any, Dict, Optional

from .base import BaseProvider, GenerationRequest, ProviderId, TokenUsage


class GoogleProvider(BaseProvider):
    """Google Gemini provider adapter."""

    provider_id = ProviderId.GOOGLE
    TRUNCATION_REASONS = frozenset({"MAX_TOKENS"})

    def endpoint(self, model: str) -> str:
        return f"{self.base_url}/v1beta/models/{model}:generateContent"

    def headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": self.api_key,
        }

    def build_payload(self, request: GenerationRequest, model: str, max_tokens: int) -> Dict[str, Any]:
        self._log_request(model, request, max_tokens)
        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": request.prompt}]}],
            "generationConfig": {
                "temperature": request.temperature if request.temperature is not None else 0.7,
                "maxOutputTokens": max_tokens,
            },
        }
        if request.system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": request.system_prompt}]}
        return payload

    def extract_content(self, data: Dict[str, Any]) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))

    def extract_finish_reason(self, data: Dict[str, Any]) -> Optional[str]:
        candidates = data.get("candidates") or []
        return candidates[0].get("finishReason") if candidates else None

    def extract_usage(self, data: Dict[str, Any]) -> Optional[TokenUsage]:
        usage = data.get("usageMetadata")
        if not usage:
            return None
        return TokenUsage(
            prompt_tokens=usage.get("promptTokenCount", 0),
            completion_tokens=usage.get("candidatesTokenCount", 0),
            total_tokens=usage.get("totalTokenCount", 0),
        )
