"""
Extraction model client interface.

ProcurementExtractionAgent only sees BaseLLMClient. OpenAICompatibleClient is
the production implementation; tests plug in a scripted fake.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class TaskType(str, Enum):
    """Which extraction contract a request serves"""
    RFP_EXTRACTION = "rfp_extraction"
    PROPOSAL_EXTRACTION = "proposal_extraction"
    PROPOSAL_COMPARISON = "proposal_comparison"


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def add(self, other: "TokenUsage") -> None:
        self.prompt_tokens += other.prompt_tokens
        self.completion_tokens += other.completion_tokens
        self.total_tokens += other.total_tokens


@dataclass
class LLMMessage:
    role: str  # system | user | assistant
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class LLMResponse:
    content: str
    model: str
    task_type: Optional[TaskType] = None
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: str = "stop"
    latency_ms: float = 0.0


@dataclass
class GenerationConfig:
    """Sampling settings; extraction wants deterministic JSON"""
    temperature: float = 0.0
    max_output_tokens: int = 4096
    json_mode: bool = True


class BaseLLMClient(ABC):
    """
    A chat model that answers one request at a time.

    generate() raises OracleUnavailableError when the endpoint cannot be
    reached and OracleError for any other transport failure. It never retries.
    """

    def __init__(self):
        self.usage = TokenUsage()
        self.request_count = 0

    @property
    @abstractmethod
    def model_name(self) -> str:
        ...

    @abstractmethod
    async def generate(
        self,
        messages: List[LLMMessage],
        config: Optional[GenerationConfig] = None,
        task_type: Optional[TaskType] = None,
    ) -> LLMResponse:
        ...

    def _record(self, response: LLMResponse) -> None:
        self.usage.add(response.token_usage)
        self.request_count += 1
        logger.debug(
            "[%s] request #%d (%s): %d tokens",
            self.model_name,
            self.request_count,
            response.task_type.value if response.task_type else "generation",
            response.token_usage.total_tokens,
        )
