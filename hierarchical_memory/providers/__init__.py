"""httpx-based async providers behind LLMSummarizer."""

from .anthropic import AnthropicProvider
from .base import BaseProvider, LLMProviderError, is_retryable
from .generic_openai import GenericOpenAIProvider

__all__ = [
    "AnthropicProvider",
    "BaseProvider",
    "GenericOpenAIProvider",
    "LLMProviderError",
    "is_retryable",
]
