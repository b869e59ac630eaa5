"""RFPFlow Agents - extraction model contracts for RFPs, proposals and comparisons"""

from .json_recovery import extract_json
from .procurement_agent import ProcurementExtractionAgent
from .schemas import (
    ComparisonResult,
    LineItem,
    ProposalExtraction,
    Recommendation,
    RequirementItem,
    RFPExtraction,
    VendorScore,
)

__all__ = [
    "extract_json",
    "ProcurementExtractionAgent",
    "ComparisonResult",
    "LineItem",
    "ProposalExtraction",
    "Recommendation",
    "RequirementItem",
    "RFPExtraction",
    "VendorScore",
]
