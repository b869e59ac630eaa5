"""
RFPFlow External Integrations

LLM client interface plus the OpenAI-compatible implementation used to reach
the extraction model (Ollama by default).
"""

from .llm_clients import (
    BaseLLMClient,
    TaskType,
    TokenUsage,
    LLMMessage,
    LLMResponse,
    GenerationConfig,
)
from .openai_compatible_client import OpenAICompatibleClient

__all__ = [
    "BaseLLMClient",
    "TaskType",
    "TokenUsage",
    "LLMMessage",
    "LLMResponse",
    "GenerationConfig",
    "OpenAICompatibleClient",
]
