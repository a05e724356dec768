"""
OpenAI-compatible Adapter
Serves ChatGPT directly and Groq-hosted models through the same wire format
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from brandlens.config import get_settings
from .base import (
    BaseLLMAdapter,
    LLMConfig,
    LLMMessage,
    LLMResponse,
    LLMUsage,
    LLMProviderType,
    LLMAdapterError,
    LLMRateLimitError,
    LLMAuthenticationError,
    LLMTimeoutError,
    LLMInvalidRequestError,
)


class OpenAIAdapter(BaseLLMAdapter):
    """Adapter for the OpenAI chat completions API"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        config: Optional[LLMConfig] = None,
        api_base: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        super().__init__(api_key or self._settings_api_key(settings), config)
        self.api_base = (api_base or self._settings_api_base(settings)).rstrip("/")
        self._default_model = self._settings_model(settings)
        self._transport = transport

    def _settings_api_key(self, settings) -> Optional[str]:
        return settings.OPENAI_API_KEY

    def _settings_api_base(self, settings) -> str:
        return settings.OPENAI_API_BASE

    def _settings_model(self, settings) -> str:
        return settings.OPENAI_DEFAULT_MODEL

    @property
    def provider(self) -> LLMProviderType:
        return LLMProviderType.OPENAI

    @property
    def default_model(self) -> str:
        return self._default_model

    def _build_payload(self, messages: List[LLMMessage], cfg: LLMConfig) -> Dict[str, Any]:
        payload = {
            "model": cfg.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": cfg.temperature,
            "max_tokens": cfg.max_tokens,
        }
        if cfg.top_p is not None:
            payload["top_p"] = cfg.top_p
        if cfg.stop_sequences:
            payload["stop"] = cfg.stop_sequences
        payload.update(cfg.extra_params)
        return payload

    def _extract_citations(self, data: Dict[str, Any]) -> List[str]:
        return []

    async def execute_chat(
        self,
        messages: List[LLMMessage],
        config: Optional[LLMConfig] = None,
    ) -> LLMResponse:
        """Execute a chat conversation"""
        cfg = config or self.config or LLMConfig(model=self.default_model)
        request_time = datetime.utcnow()

        if not self.api_key:
            raise LLMAuthenticationError(
                f"No API key configured for {self.provider.value}",
                self.provider,
            )

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=cfg.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.api_base}/chat/completions",
                    json=self._build_payload(messages, cfg),
                    headers=headers,
                )
        except httpx.TimeoutException:
            raise LLMTimeoutError(
                f"Request timed out after {cfg.timeout}s",
                self.provider,
            )
        except httpx.RequestError as e:
            raise LLMAdapterError(
                f"Request failed: {str(e)}",
                self.provider,
            )

        response_time = datetime.utcnow()

        if response.status_code == 401:
            raise LLMAuthenticationError(
                "Invalid API key",
                self.provider,
                {"status_code": response.status_code}
            )
        elif response.status_code == 429:
            raise LLMRateLimitError(
                "Rate limit exceeded",
                self.provider,
                {"status_code": response.status_code}
            )
        elif response.status_code == 400:
            raise LLMInvalidRequestError(
                f"Invalid request: {response.text}",
                self.provider,
                {"status_code": response.status_code}
            )
        elif response.status_code != 200:
            raise LLMAdapterError(
                f"API error: {response.text}",
                self.provider,
                {"status_code": response.status_code, "response": response.text}
            )

        try:
            data = response.json()
            choice = data["choices"][0]
            content = choice["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMAdapterError(
                f"Malformed response: {e}",
                self.provider,
                {"response": response.text[:500]}
            )

        usage_data = data.get("usage") or {}
        usage = LLMUsage(
            prompt_tokens=usage_data.get("prompt_tokens", 0),
            completion_tokens=usage_data.get("completion_tokens", 0),
            total_tokens=usage_data.get("total_tokens", 0),
        )

        return LLMResponse(
            content=content,
            raw_response=data,
            provider=self.provider,
            model=cfg.model,
            finish_reason=choice.get("finish_reason"),
            usage=usage,
            request_time=request_time,
            response_time=response_time,
            latency_ms=self._calculate_latency(request_time, response_time),
            citations=self._extract_citations(data),
        )


class GroqAdapter(OpenAIAdapter):
    """Groq serves open models behind an OpenAI-compatible endpoint"""

    def _settings_api_key(self, settings) -> Optional[str]:
        return settings.GROQ_API_KEY

    def _settings_api_base(self, settings) -> str:
        return settings.GROQ_API_BASE

    def _settings_model(self, settings) -> str:
        return settings.GROQ_DEFAULT_MODEL

    @property
    def provider(self) -> LLMProviderType:
        return LLMProviderType.GROQ
