"""
Perplexity Adapter
Specialized for citation-rich responses
"""

from typing import Any, Dict, List, Optional

from .base import LLMConfig, LLMMessage, LLMProviderType
from .openai_adapter import OpenAIAdapter


class PerplexityAdapter(OpenAIAdapter):
    """
    Adapter for Perplexity API
    Perplexity is especially valuable for citation tracking because it
    natively returns the source URLs behind each answer.
    """

    API_BASE = "https://api.perplexity.ai"

    def _settings_api_key(self, settings) -> Optional[str]:
        return settings.PERPLEXITY_API_KEY

    def _settings_api_base(self, settings) -> str:
        return self.API_BASE

    def _settings_model(self, settings) -> str:
        return settings.PERPLEXITY_DEFAULT_MODEL

    @property
    def provider(self) -> LLMProviderType:
        return LLMProviderType.PERPLEXITY

    def _build_payload(self, messages: List[LLMMessage], cfg: LLMConfig) -> Dict[str, Any]:
        payload = super()._build_payload(messages, cfg)
        payload["return_citations"] = True
        payload["return_related_questions"] = False
        return payload

    def _extract_citations(self, data: Dict[str, Any]) -> List[str]:
        # Newer responses carry search_results, older ones a flat citations list
        citations = data.get("citations") or []
        if not citations:
            citations = [r.get("url") for r in data.get("search_results") or [] if r.get("url")]
        return [str(url) for url in citations]
