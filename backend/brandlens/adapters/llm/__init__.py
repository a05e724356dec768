"""
LLM Adapters - Unified interface for the engines a brand is tracked in
"""

from typing import Dict, Optional

from brandlens.config import PERSONA_PROMPTS, Settings, get_settings
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
from .openai_adapter import OpenAIAdapter, GroqAdapter
from .perplexity_adapter import PerplexityAdapter


def get_adapter(
    provider: str,
    api_key: Optional[str] = None,
    config: Optional[LLMConfig] = None
) -> BaseLLMAdapter:
    """
    Factory function to get the appropriate LLM adapter.

    Args:
        provider: One of "openai", "groq", "perplexity"
        api_key: Optional API key (uses env var if not provided)
        config: Optional LLM configuration

    Returns:
        Configured LLM adapter instance

    Raises:
        ValueError: If provider is not supported
    """
    adapters = {
        "openai": OpenAIAdapter,
        "groq": GroqAdapter,
        "perplexity": PerplexityAdapter,
    }

    if provider not in adapters:
        raise ValueError(f"Unsupported provider: {provider}. Must be one of {list(adapters.keys())}")

    return adapters[provider](api_key=api_key, config=config)


class EngineRouter:
    """
    Answers a prompt "as" a tracked engine.

    Engines (ChatGPT, Gemini, Perplexity, Claude) map to the provider that
    answers for them. Where the engine is not called directly the provider is
    asked to respond the way that engine would, with the persona's framing.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        adapters: Optional[Dict[str, BaseLLMAdapter]] = None,
    ):
        self.settings = settings or get_settings()
        self._adapters: Dict[str, BaseLLMAdapter] = dict(adapters or {})

    def _adapter_for(self, engine: str) -> BaseLLMAdapter:
        provider = self.settings.ENGINE_PROVIDERS.get(engine)
        if provider is None:
            raise LLMInvalidRequestError(
                f"No provider configured for engine '{engine}'",
                LLMProviderType.OPENAI,
            )
        if provider not in self._adapters:
            self._adapters[provider] = get_adapter(provider)
        return self._adapters[provider]

    def build_system_prompt(self, engine: str, persona: str, context: Optional[str] = None) -> str:
        persona_context = PERSONA_PROMPTS.get(persona, "")
        lines = [f"You are simulating how {engine} would respond to a user query."]
        if persona_context:
            lines.append(f"The user has this persona: {persona_context}")
        lines.append(f"Respond naturally as if you ARE {engine} answering this question directly.")
        lines.append("Keep your response focused, helpful, and around 150-200 words.")
        lines.append(
            'If the query is about recommendations or "best" options, '
            "provide a list of options with brief explanations."
        )
        if context:
            lines.append(f"Current web search context:\n{context}")
        return "\n".join(lines)

    async def answer(
        self,
        prompt_text: str,
        engine: str,
        persona: str = "general",
        context: Optional[str] = None,
    ) -> LLMResponse:
        """Get the engine's free-text answer to a prompt"""
        adapter = self._adapter_for(engine)
        config = LLMConfig(
            model=adapter.default_model,
            temperature=self.settings.LLM_DEFAULT_TEMPERATURE,
            max_tokens=self.settings.LLM_DEFAULT_MAX_TOKENS,
            timeout=self.settings.LLM_REQUEST_TIMEOUT,
        )
        return await adapter.execute(
            prompt_text,
            config=config,
            system_prompt=self.build_system_prompt(engine, persona, context),
        )


__all__ = [
    # Factory
    "get_adapter",
    "EngineRouter",
    # Base classes
    "BaseLLMAdapter",
    "LLMConfig",
    "LLMMessage",
    "LLMResponse",
    "LLMUsage",
    "LLMProviderType",
    # Exceptions
    "LLMAdapterError",
    "LLMRateLimitError",
    "LLMAuthenticationError",
    "LLMTimeoutError",
    "LLMInvalidRequestError",
    # Adapters
    "OpenAIAdapter",
    "GroqAdapter",
    "PerplexityAdapter",
]
