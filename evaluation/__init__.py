"""RFPFlow Evaluation - completeness scoring and comparison caching"""

from .completeness import calculate_completeness, requirement_coverage
from .comparison_cache import (
    CacheDecision,
    CacheVerdict,
    ComparisonCacheManager,
    ComparisonOutcome,
    apply_score_weights,
    decide_cache,
)

__all__ = [
    "calculate_completeness",
    "requirement_coverage",
    "CacheDecision",
    "CacheVerdict",
    "ComparisonCacheManager",
    "ComparisonOutcome",
    "apply_score_weights",
    "decide_cache",
]
