"""
RFPFlow Comparison Cache

Serves the stored AI comparison for an RFP while it is still valid and
recomputes it through the extraction agent when it is not.

A cached comparison is reused only when it exists, no refresh was forced,
no proposal was updated after the cache timestamp, and it scores as many
vendors as there are proposals.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence

from agents.procurement_agent import ProcurementExtractionAgent
from core.errors import NotFoundError
from database.connection import Database
from database.models import RFP, Proposal, utcnow
from database.repositories import ProposalRepository, RFPRepository

logger = logging.getLogger(__name__)

SCORE_WEIGHTS = {
    "priceScore": 0.40,
    "termsScore": 0.20,
    "completenessScore": 0.25,
    "complianceScore": 0.15,
}


class CacheDecision(str, Enum):
    REUSE = "reuse"
    RECOMPUTE = "recompute"


@dataclass(frozen=True)
class CacheVerdict:
    decision: CacheDecision
    reason: str

    @property
    def reuse(self) -> bool:
        return self.decision == CacheDecision.REUSE


def decide_cache(
    cached_result: Optional[Dict[str, Any]],
    cached_at: Optional[datetime],
    proposal_updated_ats: Sequence[Optional[datetime]],
    force_refresh: bool = False,
) -> CacheVerdict:
    """Pure cache decision over the stored comparison and the current proposals."""
    if cached_result is None or cached_at is None:
        return CacheVerdict(CacheDecision.RECOMPUTE, "no cached comparison")
    if force_refresh:
        return CacheVerdict(CacheDecision.RECOMPUTE, "refresh requested")
    if any(ts is not None and ts > cached_at for ts in proposal_updated_ats):
        return CacheVerdict(CacheDecision.RECOMPUTE, "proposal updated after comparison")

    scores = cached_result.get("scores") if isinstance(cached_result, dict) else None
    if not isinstance(scores, list):
        return CacheVerdict(CacheDecision.RECOMPUTE, "cached comparison has no scores")
    if len(scores) != len(proposal_updated_ats):
        return CacheVerdict(CacheDecision.RECOMPUTE, "vendor count changed")

    return CacheVerdict(CacheDecision.REUSE, "cache valid")


def apply_score_weights(comparison: Dict[str, Any]) -> Dict[str, Any]:
    """Recompute every totalScore from the four dimension scores."""
    for score in comparison.get("scores", []):
        total = sum(score[key] * weight for key, weight in SCORE_WEIGHTS.items())
        score["totalScore"] = round(total, 2)
    return comparison


@dataclass
class ComparisonOutcome:
    comparison: Dict[str, Any]
    cached: bool


class ComparisonCacheManager:
    """
    Reads, recomputes and persists RFP comparisons.

    A recompute runs in two transactions: first the RFP's cached result and
    timestamp, then the per-vendor ai_score writes.
    """

    def __init__(
        self,
        database: Database,
        agent: ProcurementExtractionAgent,
        enforce_weights: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.database = database
        self.agent = agent
        self.enforce_weights = enforce_weights
        self.clock = clock

    async def get_comparison(self, rfp_id: int, force_refresh: bool = False) -> ComparisonOutcome:
        async with self.database.session() as session:
            rfp = await RFPRepository(session).get_by_id(rfp_id)
            if rfp is None:
                raise NotFoundError("RFP not found")
            proposals = await ProposalRepository(session).list_for_rfp(rfp_id)
            if not proposals:
                raise NotFoundError("No proposals found for this RFP")

            verdict = decide_cache(
                rfp.ai_comparison_result,
                rfp.ai_comparison_updated_at,
                [p.updated_at for p in proposals],
                force_refresh,
            )
            if verdict.reuse:
                logger.debug("Serving cached comparison", extra={"rfp_id": rfp_id})
                return ComparisonOutcome(rfp.ai_comparison_result, cached=True)

            logger.info(
                "Recomputing comparison for RFP %s: %s", rfp_id, verdict.reason,
                extra={"rfp_id": rfp_id},
            )
            # Proposals written while the model runs must post-date the cache
            snapshot_at = self.clock()
            rfp_payload = self._rfp_payload(rfp)
            proposal_payloads = [self._proposal_payload(p) for p in proposals]

        result = await self.agent.compare_proposals(rfp_payload, proposal_payloads)
        comparison = result.to_json_dict()
        if self.enforce_weights:
            comparison = apply_score_weights(comparison)

        async with self.database.session() as session:
            await RFPRepository(session).save_comparison(rfp_id, comparison, snapshot_at)

        scores = {s["vendorId"]: s["totalScore"] for s in comparison["scores"]}
        async with self.database.session() as session:
            written = await ProposalRepository(session).set_ai_scores(rfp_id, scores)
        if written != len(scores):
            logger.warning(
                "Comparison for RFP %s scored %d vendor(s) but matched %d proposal(s)",
                rfp_id, len(scores), written, extra={"rfp_id": rfp_id},
            )

        return ComparisonOutcome(comparison, cached=False)

    @staticmethod
    def _rfp_payload(rfp: RFP) -> Dict[str, Any]:
        return {
            "id": rfp.id,
            "title": rfp.title,
            "description": rfp.description,
            "budget": rfp.budget,
            "deadline": rfp.deadline.isoformat() if rfp.deadline else None,
            "requirements": rfp.requirements or [],
            "paymentTerms": rfp.payment_terms,
            "warrantyReq": rfp.warranty_req,
            "deliveryTerms": rfp.delivery_terms,
        }

    @staticmethod
    def _proposal_payload(proposal: Proposal) -> Dict[str, Any]:
        return {
            "vendorId": proposal.vendor.id,
            "vendorName": proposal.vendor.name,
            "proposalId": proposal.id,
            "data": proposal.parsed_data,
            "totalPrice": proposal.total_price,
            "lineItems": proposal.line_items,
            "terms": proposal.terms,
            "completeness": proposal.completeness,
        }
