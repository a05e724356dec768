"""
Base LLM Adapter Interface
The answering collaborator: every engine provider implements this interface
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from enum import Enum

from brandlens.errors import UpstreamError


class LLMProviderType(str, Enum):
    """Supported LLM providers"""
    OPENAI = "openai"
    GROQ = "groq"
    PERPLEXITY = "perplexity"


@dataclass
class LLMConfig:
    """Configuration for LLM request"""
    model: str
    temperature: float = 0.7
    max_tokens: int = 800
    timeout: int = 60  # seconds
    top_p: Optional[float] = None
    stop_sequences: Optional[List[str]] = None
    extra_params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LLMMessage:
    """A message in the conversation"""
    role: str  # "system", "user", "assistant"
    content: str


@dataclass
class LLMUsage:
    """Token usage information"""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class LLMResponse:
    """Standardized LLM response across all providers"""
    content: str
    raw_response: Dict[str, Any]

    provider: LLMProviderType
    model: str
    finish_reason: Optional[str] = None
    usage: Optional[LLMUsage] = None

    request_time: Optional[datetime] = None
    response_time: Optional[datetime] = None
    latency_ms: Optional[int] = None

    # Source URLs returned out of band (Perplexity and similar)
    citations: List[str] = field(default_factory=list)


class BaseLLMAdapter(ABC):
    """
    Abstract base class for LLM adapters.
    Each provider (OpenAI, Groq, Perplexity) implements this interface.
    """

    def __init__(self, api_key: Optional[str], config: Optional[LLMConfig] = None):
        self.api_key = api_key
        self.config = config

    @property
    @abstractmethod
    def provider(self) -> LLMProviderType:
        """Return the provider type"""
        pass

    @property
    @abstractmethod
    def default_model(self) -> str:
        """Return the default model for this provider"""
        pass

    @abstractmethod
    async def execute_chat(
        self,
        messages: List[LLMMessage],
        config: Optional[LLMConfig] = None,
    ) -> LLMResponse:
        """
        Execute a multi-turn chat conversation.

        Args:
            messages: List of messages in the conversation
            config: Optional configuration override

        Returns:
            LLMResponse with standardized response data
        """
        pass

    async def execute(
        self,
        prompt: str,
        config: Optional[LLMConfig] = None,
        system_prompt: Optional[str] = None,
    ) -> LLMResponse:
        """
        Execute a prompt against the LLM.

        Args:
            prompt: The user prompt to send
            config: Optional configuration override
            system_prompt: Optional system prompt

        Returns:
            LLMResponse with standardized response data
        """
        messages = []
        if system_prompt:
            messages.append(LLMMessage(role="system", content=system_prompt))
        messages.append(LLMMessage(role="user", content=prompt))
        return await self.execute_chat(messages, config)

    def _calculate_latency(self, start: datetime, end: datetime) -> int:
        """Calculate latency in milliseconds"""
        return int((end - start).total_seconds() * 1000)


class LLMAdapterError(UpstreamError):
    """Base exception for LLM adapter errors"""
    def __init__(self, message: str, provider: LLMProviderType, details: Optional[Dict] = None):
        super().__init__(message, collaborator=f"llm:{provider.value}", details=details)
        self.provider = provider


class LLMRateLimitError(LLMAdapterError):
    """Rate limit exceeded"""
    pass


class LLMAuthenticationError(LLMAdapterError):
    """Authentication failed"""
    pass


class LLMTimeoutError(LLMAdapterError):
    """Request timed out"""
    pass


class LLMInvalidRequestError(LLMAdapterError):
    """Invalid request parameters"""
    pass
