"""
Procurement Extraction Agent

Wraps the extraction model behind three fixed contracts:
- extract_rfp(): free-text request -> RFP draft fields
- parse_proposal_response(): vendor email + attachment text -> proposal fields
- compare_proposals(): RFP + received proposals -> scores and a recommendation

Every model answer passes through JSON recovery and strict schema validation
before it is returned. Dates derived from relative phrases ("within 10 days")
are computed here, not trusted to the model.
"""

import logging
import re
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from agents.integrations.llm_clients import BaseLLMClient, LLMMessage, TaskType
from agents.json_recovery import extract_json
from agents.prompts import (
    COMPARISON_SYSTEM_PROMPT,
    PROPOSAL_SYSTEM_PROMPT,
    RFP_SYSTEM_PROMPT,
    comparison_prompt,
    proposal_extraction_prompt,
    rfp_extraction_prompt,
)
from agents.schemas import (
    ComparisonResult,
    ProposalExtraction,
    RFPExtraction,
    validate_record,
)

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "USD"

# Bare "in N days" / "N days after" only count when a need/delivery word sits
# in the same clause
_DEADLINE_CUE = r"\b(?:need\w*|requir\w*|deliver\w*|due|ready|by)\b[^.,;\n]{0,30}?"

DEADLINE_PATTERNS = [
    re.compile(r"\bwithin\s+(\d+)\s+days?\b", re.IGNORECASE),
    re.compile(_DEADLINE_CUE + r"\bin\s+(\d+)\s+days?\b", re.IGNORECASE),
    re.compile(_DEADLINE_CUE + r"\b(\d+)\s+days?\s+(?:from|after)\b", re.IGNORECASE),
]

DELIVERY_PATTERNS = [
    re.compile(r"\bdeliver\w*\D{0,20}?\b(?:in|within)\s+(\d+)\s+days?\b", re.IGNORECASE),
    re.compile(r"\b(\d+)[\s-]+days?\s+delivery\b", re.IGNORECASE),
]

PAYMENT_CONTEXT = re.compile(r"\b(?:pay\w*|net|invoic\w*)\b", re.IGNORECASE)
CLAUSE_BREAK = re.compile(r"[.,;\n]")


def _clause_around(text: str, start: int, end: int) -> str:
    left = max((m.end() for m in CLAUSE_BREAK.finditer(text, 0, start)), default=0)
    right = CLAUSE_BREAK.search(text, end)
    return text[left:right.start() if right else len(text)]


def find_relative_days(text: Optional[str], patterns=DEADLINE_PATTERNS) -> Optional[int]:
    """
    Number of days in the first matching relative phrase, or None.

    Phrases inside a payment clause ("payment in 30 days", "net 60 days after
    invoice") are terms, not timing, and are skipped.
    """
    if not text:
        return None
    for pattern in patterns:
        for match in pattern.finditer(text):
            if PAYMENT_CONTEXT.search(_clause_around(text, match.start(), match.end())):
                continue
            return int(match.group(1))
    return None


def normalize_iso_date(value: Optional[str]) -> Optional[str]:
    """YYYY-MM-DD for a parseable ISO date or datetime string, else None"""
    if not value or not isinstance(value, str):
        return None
    candidate = value.strip()
    try:
        return date.fromisoformat(candidate[:10]).isoformat()
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(candidate).date().isoformat()
    except ValueError:
        return None


class ProcurementExtractionAgent:
    """
    Extraction oracle client for RFPs, proposals and comparisons.

    Args:
        llm_client: any BaseLLMClient (OpenAICompatibleClient in production)
        today: clock used for relative date arithmetic
    """

    def __init__(self, llm_client: BaseLLMClient, today: Callable[[], date] = date.today):
        self.llm = llm_client
        self.today = today

    async def _ask(self, system_prompt: str, prompt: str, task_type: TaskType) -> Dict[str, Any]:
        messages = [
            LLMMessage(role="system", content=system_prompt),
            LLMMessage(role="user", content=prompt),
        ]
        response = await self.llm.generate(messages, task_type=task_type)
        return extract_json(response.content)

    # ------------------------------------------------------------------
    # RFP extraction
    # ------------------------------------------------------------------

    async def extract_rfp(self, description: str) -> RFPExtraction:
        today = self.today()
        data = await self._ask(
            RFP_SYSTEM_PROMPT,
            rfp_extraction_prompt(description, today),
            TaskType.RFP_EXTRACTION,
        )
        extraction = validate_record(RFPExtraction, data, "RFP extraction")

        if not extraction.description:
            extraction.description = description

        days = find_relative_days(description)
        if days is None:
            days = find_relative_days(extraction.delivery_terms)

        if days is not None:
            computed = (today + timedelta(days=days)).isoformat()
            if extraction.deadline != computed:
                logger.debug(
                    "Overriding model deadline %r with %s (+%d days)",
                    extraction.deadline, computed, days,
                )
            extraction.deadline = computed
        else:
            extraction.deadline = normalize_iso_date(extraction.deadline)

        return extraction

    # ------------------------------------------------------------------
    # Proposal extraction
    # ------------------------------------------------------------------

    async def parse_proposal_response(
        self,
        email_body: str,
        attachments: Optional[List[Dict[str, str]]] = None,
        rfp_requirements: Optional[List[Dict[str, Any]]] = None,
        received_on: Optional[date] = None,
    ) -> ProposalExtraction:
        received_on = received_on or self.today()
        data = await self._ask(
            PROPOSAL_SYSTEM_PROMPT,
            proposal_extraction_prompt(email_body, attachments, rfp_requirements, received_on),
            TaskType.PROPOSAL_EXTRACTION,
        )
        extraction = validate_record(ProposalExtraction, data, "proposal extraction")

        if not extraction.currency:
            extraction.currency = DEFAULT_CURRENCY

        days = find_relative_days(email_body, DELIVERY_PATTERNS)
        if days is None:
            for att in attachments or []:
                days = find_relative_days(att.get("content"), DELIVERY_PATTERNS)
                if days is not None:
                    break

        if days is not None:
            extraction.delivery_date = (received_on + timedelta(days=days)).isoformat()
        else:
            extraction.delivery_date = normalize_iso_date(extraction.delivery_date)

        return extraction

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    async def compare_proposals(
        self, rfp: Dict[str, Any], proposals: List[Dict[str, Any]]
    ) -> ComparisonResult:
        data = await self._ask(
            COMPARISON_SYSTEM_PROMPT,
            comparison_prompt(rfp, proposals),
            TaskType.PROPOSAL_COMPARISON,
        )
        result = validate_record(ComparisonResult, data, "comparison")
        logger.info(
            "Comparison scored %d vendor(s), recommended vendor %s",
            len(result.scores), result.recommendation.vendor_id,
        )
        return result
