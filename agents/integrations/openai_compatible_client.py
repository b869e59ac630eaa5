"""
OpenAI-compatible chat client for the extraction oracle.

Works against any OpenAI-compatible API (Ollama, vLLM, LM Studio, OpenAI).
The default target is a local Ollama server at http://localhost:11434/v1.
"""

import logging
import time
from typing import List, Optional

import openai
from openai import AsyncOpenAI

from core.config import LLMConfig
from core.errors import OracleError, OracleUnavailableError

from .llm_clients import (
    BaseLLMClient,
    GenerationConfig,
    LLMMessage,
    LLMResponse,
    TaskType,
    TokenUsage,
)

logger = logging.getLogger(__name__)


class OpenAICompatibleClient(BaseLLMClient):
    """Chat-completions client with JSON mode and no automatic retries."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434/v1",
        api_key: str = "ollama",
        model: str = "llama3.2",
        timeout_seconds: float = 120.0,
        default_config: Optional[GenerationConfig] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self._model = model
        self.default_config = default_config or GenerationConfig()
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url,
            timeout=timeout_seconds,
            max_retries=0,
        )

    @classmethod
    def from_config(cls, config: LLMConfig) -> "OpenAICompatibleClient":
        return cls(
            base_url=config.base_url,
            api_key=config.api_key,
            model=config.model,
            timeout_seconds=config.timeout_seconds,
            default_config=GenerationConfig(
                temperature=config.temperature,
                max_output_tokens=config.max_output_tokens,
            ),
        )

    @property
    def model_name(self) -> str:
        return self._model

    async def generate(
        self,
        messages: List[LLMMessage],
        config: Optional[GenerationConfig] = None,
        task_type: Optional[TaskType] = None
    ) -> LLMResponse:
        config = config or self.default_config
        kwargs = {
            "model": self._model,
            "messages": [m.to_dict() for m in messages],
            "temperature": config.temperature,
            "max_tokens": config.max_output_tokens,
        }
        if config.json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        start = time.time()
        try:
            response = await self.client.chat.completions.create(**kwargs)
        except openai.APIConnectionError as e:
            # APITimeoutError is a subclass
            logger.error("Extraction model unreachable at %s: %s", self.base_url, e)
            raise OracleUnavailableError(self.base_url, self._model, detail=str(e)) from e
        except openai.APIStatusError as e:
            if e.status_code == 404:
                raise OracleUnavailableError(
                    self.base_url, self._model, detail=f"model {self._model} not found"
                ) from e
            raise OracleError(
                f"Extraction model returned HTTP {e.status_code}: {e.message}"
            ) from e

        choice = response.choices[0]
        usage = TokenUsage()
        if response.usage is not None:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0,
                total_tokens=response.usage.total_tokens or 0,
            )

        result = LLMResponse(
            content=choice.message.content or "",
            model=response.model or self._model,
            task_type=task_type,
            token_usage=usage,
            finish_reason=str(choice.finish_reason or "stop"),
            latency_ms=(time.time() - start) * 1000,
        )
        self._record(result)
        return result
