"""
PAGE-ONE PIPELINE - Listings in, allocated page out

Order of operations:
    normalize -> canonicalize -> page cap
    -> rough demand -> market calibration
    -> raw weights -> 3-phase refinement -> guardrails -> conserve
    -> scaling stages (a-e) -> final floor pass -> conserve
    -> parent/child re-split -> brand validation -> invariant check

build_page() is synchronous and deterministic. Keyword calibration
(apply_calibration) and history blending are separate async steps because
they are the only parts that wait on an external store.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pageone.allocator import allocate_by_weight, refine_allocation
from pageone.appearances import RawListing, canonicalize, coerce_listings, normalize_appearances
from pageone.calibration import calibrate_market_totals
from pageone.config import DEFAULT_POLICY, AllocationPolicy
from pageone.demand_estimator import estimate_rough_demand
from pageone.guardrails import apply_guardrails, conserve_page_total
from pageone.listing_signals import validate_brand_frequency
from pageone.models.market import MarketShape, MarketTotals, PageState
from pageone.models.product import CanonicalProduct
from pageone.page_cap import enforce_page_cap
from pageone.parent_child import normalize_variant_groups
from pageone.scaling_stages import run_scaling_stages
from pageone.telemetry import TelemetryRecorder
from pageone.validator import InvariantReport, validate_page

logger = logging.getLogger(__name__)


@dataclass
class PageResult:
    """Everything one build produced, for callers that want more than the tuple."""
    products: List[CanonicalProduct]
    totals: MarketTotals
    report: Optional[InvariantReport] = None
    telemetry: TelemetryRecorder = field(default_factory=TelemetryRecorder)

    @property
    def events(self) -> List[Dict[str, Any]]:
        return self.telemetry.to_list()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "products": [p.to_dict() for p in self.products],
            "totals": self.totals.to_dict(),
            "report": self.report.to_dict() if self.report else None,
            "events": self.events,
        }


def build_page_report(
    listings: Iterable[RawListing],
    search_volume_low: Optional[float] = None,
    search_volume_high: Optional[float] = None,
    policy: AllocationPolicy = DEFAULT_POLICY,
) -> PageResult:
    """Run the full synchronous pipeline and keep its telemetry and invariant report."""
    telemetry = TelemetryRecorder()

    raw = coerce_listings(listings)
    appearances = normalize_appearances(raw, policy.asin_pattern, telemetry)
    products = canonicalize(appearances, telemetry, raw_count=len(raw))
    products = enforce_page_cap(products, policy.page_size, telemetry)

    if not products:
        telemetry.emit("page.empty", raw=len(raw))
        return PageResult(products=[], totals=MarketTotals(), telemetry=telemetry)

    # Size the page
    rough = estimate_rough_demand(products, policy.demand, telemetry)
    totals = calibrate_market_totals(
        rough,
        products,
        policy.calibration,
        search_volume_low=search_volume_low,
        search_volume_high=search_volume_high,
        telemetry=telemetry,
    )

    # Split it
    state = PageState.start(products, totals)
    state = allocate_by_weight(state, policy.allocation, telemetry)
    state = refine_allocation(state, policy.allocation, telemetry)
    state = apply_guardrails(state, policy.guardrails, telemetry=telemetry)
    state = conserve_page_total(
        state, policy.guardrails, policy.allocation.conservation_tolerance, telemetry=telemetry
    )

    # Page-level scaling, then re-assert the floors on the emitted page
    state = run_scaling_stages(state, policy, telemetry)
    relax_tail = totals.shape is MarketShape.CONSUMABLE
    state = apply_guardrails(
        state, policy.guardrails, relax_tail=relax_tail, telemetry=telemetry, event="guardrails.final_pass"
    )
    state = conserve_page_total(
        state,
        policy.guardrails,
        policy.allocation.conservation_tolerance,
        relax_tail=relax_tail,
        telemetry=telemetry,
    )

    products = normalize_variant_groups(list(state.products), policy.parent_child, policy.guardrails, telemetry)
    products = validate_brand_frequency(products, policy.brands, telemetry)

    report = validate_page(products, state.target_units, state.target_revenue, policy, telemetry)

    final_totals = replace(
        totals,
        total_units=float(sum(p.estimated_monthly_units for p in products)),
        total_revenue=round(sum(p.estimated_monthly_revenue for p in products), 2),
    )
    telemetry.emit(
        "page.complete",
        products=len(products),
        organic=sum(1 for p in products if p.organic_rank is not None),
        total_units=final_totals.total_units,
        total_revenue=final_totals.total_revenue,
        shape=final_totals.shape.value,
    )
    return PageResult(products=products, totals=final_totals, report=report, telemetry=telemetry)


def build_page(
    listings: Iterable[RawListing],
    search_volume_low: Optional[float] = None,
    search_volume_high: Optional[float] = None,
    policy: AllocationPolicy = DEFAULT_POLICY,
) -> Tuple[List[CanonicalProduct], MarketTotals]:
    """
    Build the allocated page-one product set for one keyword.

    Raises HardInvariantViolation if an organic page listing ends at zero units.
    """
    result = build_page_report(listings, search_volume_low, search_volume_high, policy)
    return result.products, result.totals
