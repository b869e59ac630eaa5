"""
Deterministic completeness score for a parsed proposal against RFP requirements.

Checklist (out of 100):
    price present           20  (10 if no total but at least one line item)
    delivery date present   20
    payment terms present   15
    warranty present        15
    requirement coverage    30  (matched / total requirements, or 30 with none)

A requirement is covered when any line item name contains the requirement's
item name, case-insensitively.
"""

import math
from typing import Any, Iterable, List, Mapping, Optional

PRICE_POINTS = 20
PRICE_PARTIAL_POINTS = 10
DELIVERY_POINTS = 20
PAYMENT_TERMS_POINTS = 15
WARRANTY_POINTS = 15
COVERAGE_POINTS = 30


def _name(entry: Any) -> str:
    if isinstance(entry, Mapping):
        value = entry.get("item")
    else:
        value = getattr(entry, "item", None)
    return str(value).lower() if value else ""


def requirement_coverage(
    line_items: Optional[Iterable[Any]], requirements: Optional[Iterable[Any]]
) -> float:
    """Coverage points in [0, 30]"""
    reqs: List[Any] = list(requirements or [])
    if not reqs:
        return float(COVERAGE_POINTS)

    item_names = [_name(li) for li in (line_items or [])]
    matched = 0
    for req in reqs:
        wanted = _name(req)
        if any(wanted in name for name in item_names):
            matched += 1
    return matched / len(reqs) * COVERAGE_POINTS


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_completeness(
    proposal: Mapping[str, Any], requirements: Optional[Iterable[Any]] = None
) -> int:
    """
    Score a proposal (camelCase parsed data) from 0 to 100.

    Presence is truthiness: a zero price or an empty string counts as absent.
    """
    line_items = proposal.get("lineItems") or []
    points = 0.0

    if proposal.get("totalPrice"):
        points += PRICE_POINTS
    elif line_items:
        points += PRICE_PARTIAL_POINTS

    if proposal.get("deliveryDate"):
        points += DELIVERY_POINTS
    if proposal.get("paymentTerms"):
        points += PAYMENT_TERMS_POINTS
    if proposal.get("warranty"):
        points += WARRANTY_POINTS

    points += requirement_coverage(line_items, requirements)

    return max(0, min(100, round_half_up(points)))
