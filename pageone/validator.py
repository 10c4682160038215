"""
Invariant Validator

Recomputes page sums and per-listing consistency after the last stage.
Everything is observability-only (logged as warnings, collected on the
report) except one impossible state: an organic, page-eligible listing with
zero units. That is a logic defect and aborts the request.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pageone.config import AllocationPolicy
from pageone.errors import HardInvariantViolation
from pageone.models.product import CanonicalProduct
from pageone.telemetry import TelemetryRecorder, ensure_recorder

logger = logging.getLogger(__name__)


@dataclass
class InvariantReport:
    target_units: float
    target_revenue: float
    units_sum: int
    revenue_sum: float
    share_sum: float
    violations: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_units": self.target_units,
            "target_revenue": self.target_revenue,
            "units_sum": self.units_sum,
            "revenue_sum": self.revenue_sum,
            "share_sum": self.share_sum,
            "violations": list(self.violations),
        }


def check_hard_invariant(products: List[CanonicalProduct], policy: AllocationPolicy) -> None:
    """Raise if any organic listing ranked within the page ended at zero units."""
    offenders = [
        p.asin for p in products
        if p.organic_rank is not None
        and p.organic_rank <= policy.guardrails.page_eligible_max_rank
        and p.estimated_monthly_units <= 0
    ]
    if offenders:
        raise HardInvariantViolation(
            f"{len(offenders)} organic listing(s) ended with zero units",
            details={"asins": offenders},
        )


def validate_page(
    products: List[CanonicalProduct],
    target_units: float,
    target_revenue: float,
    policy: AllocationPolicy,
    telemetry: Optional[TelemetryRecorder] = None,
) -> InvariantReport:
    telemetry = ensure_recorder(telemetry)
    rules = policy.validation

    units_sum = sum(p.estimated_monthly_units for p in products)
    revenue_sum = round(sum(p.estimated_monthly_revenue for p in products), 2)
    share_sum = round(sum(p.revenue_share_pct for p in products), 2)
    report = InvariantReport(
        target_units=target_units,
        target_revenue=target_revenue,
        units_sum=units_sum,
        revenue_sum=revenue_sum,
        share_sum=share_sum,
    )

    def soft(check: str, **details):
        report.violations.append({"check": check, **details})
        logger.warning(f"Soft invariant '{check}' failed: {details}")

    # Page sums
    if target_units > 0 and abs(units_sum - target_units) / target_units > rules.sum_tolerance:
        soft("units_sum", expected=target_units, actual=units_sum)
    if target_revenue > 0 and abs(revenue_sum - target_revenue) / target_revenue > rules.sum_tolerance:
        soft("revenue_sum", expected=target_revenue, actual=revenue_sum)

    # Revenue share
    if revenue_sum > 0:
        if abs(share_sum - 100.0) > rules.share_tolerance:
            soft("revenue_share_sum", actual=share_sum)
    elif any(p.revenue_share_pct != 0 for p in products):
        soft("revenue_share_nonzero_without_revenue", actual=share_sum)

    # Per-listing revenue vs units x price (variant children are re-split by weight)
    group_sizes = Counter(p.group_key for p in products)
    for p in products:
        if group_sizes[p.group_key] > 1:
            continue
        expected = p.estimated_monthly_units * p.price
        if expected > 0:
            diff_pct = abs(p.estimated_monthly_revenue - expected) / expected * 100
            if diff_pct > rules.revenue_mismatch_pct:
                soft("listing_revenue", asin=p.asin, expected=round(expected, 2),
                     actual=p.estimated_monthly_revenue)

    # Single-listing dominance
    for p in products:
        limit = rules.branded_dominance_pct if p.brand.brand else rules.unbranded_dominance_pct
        if len(products) > 1 and p.revenue_share_pct > limit:
            soft("dominance", asin=p.asin, share=p.revenue_share_pct, limit=limit)

    # Dense, duplicate-free organic ranks
    ranks = sorted(p.organic_rank for p in products if p.organic_rank is not None)
    if ranks != list(range(1, len(ranks) + 1)):
        soft("organic_rank_sequence", ranks=ranks[:10])

    telemetry.emit(
        "invariants.checked",
        level=logging.WARNING if report.violations else logging.INFO,
        units_sum=units_sum,
        target_units=target_units,
        revenue_sum=revenue_sum,
        target_revenue=target_revenue,
        share_sum=share_sum,
        violations=len(report.violations),
    )

    check_hard_invariant(products, policy)
    return report
