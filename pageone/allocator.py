"""
PER-LISTING ALLOCATOR - Split the calibrated page total across listings

Two passes:

1. RAW WEIGHTS: rank x reviews x rating x price, normalized, >= 1 unit each.
2. 3-PHASE REFINEMENT (supersedes the raw figures):
   - Phase 1: anchors (organic ranks 1-5) take a fixed, decaying share
   - Phase 2: the tail (ranks 6+) splits the remainder by review depth,
     rank and rating; sponsored-anywhere listings share a flat pool
   - Phase 3: rescale everything if the sum drifts past tolerance

Units are whole numbers; revenue is always units x price.
"""

import logging
import math
from dataclasses import replace
from typing import Dict, List, Optional

from pageone.config import AllocationPhasePolicy
from pageone.models.market import PageState
from pageone.models.product import CanonicalProduct
from pageone.numeric import clamp, revenue_shares, round_half_up, safe_median
from pageone.telemetry import TelemetryRecorder, ensure_recorder

logger = logging.getLogger(__name__)


def with_revenue_shares(products: List[CanonicalProduct]) -> List[CanonicalProduct]:
    """Recompute revenue_share_pct for the whole page."""
    shares = revenue_shares(
        [p.estimated_monthly_revenue for p in products],
        keys=[(p.page_position, p.asin) for p in products],
    )
    return [replace(p, revenue_share_pct=share) for p, share in zip(products, shares)]


# ==============================================================================
# RAW WEIGHTS
# ==============================================================================

def listing_weights(products: List[CanonicalProduct], policy: AllocationPhasePolicy) -> Dict[str, float]:
    """Unnormalized rank_weight x review_weight x rating_penalty x price_weight."""
    median_reviews = safe_median([p.review_count for p in products])
    median_rating = safe_median([p.rating for p in products]) or policy.default_median_rating
    prices = [p.price for p in products if p.price > 0]
    avg_price = sum(prices) / len(prices) if prices else 0.0

    lo, hi = policy.review_weight_bounds
    weights = {}
    for p in products:
        rank_weight = 1.0 / (max(p.effective_rank, 1) ** policy.rank_weight_exponent)

        if median_reviews and p.review_count is not None and p.review_count > 0:
            review_weight = clamp(p.review_count / median_reviews, lo, hi)
        else:
            review_weight = 1.0

        rating = p.rating if p.rating is not None else median_rating
        if rating >= median_rating:
            rating_penalty = 1.0
        else:
            rating_penalty = max(
                policy.rating_penalty_floor,
                1 - (median_rating - rating) * policy.rating_penalty_slope,
            )

        if avg_price > 0 and p.price > 0:
            price_weight = max(
                policy.price_weight_floor,
                1 - policy.price_weight_slope * abs(p.price - avg_price) / avg_price,
            )
        else:
            price_weight = 1.0

        weights[p.asin] = rank_weight * review_weight * rating_penalty * price_weight
    return weights


def allocate_by_weight(
    state: PageState,
    policy: AllocationPhasePolicy,
    telemetry: Optional[TelemetryRecorder] = None,
) -> PageState:
    telemetry = ensure_recorder(telemetry)
    products = list(state.products)
    if not products:
        return state

    weights = listing_weights(products, policy)
    total_weight = sum(weights.values())
    if total_weight <= 0:
        weights = {asin: 1.0 for asin in weights}
        total_weight = float(len(weights))

    allocated = [
        p.with_units(max(1, round_half_up(state.target_units * weights[p.asin] / total_weight)))
        for p in products
    ]

    telemetry.emit(
        "allocate.raw_weights",
        listings=len(allocated),
        target_units=state.target_units,
        allocated_units=sum(p.estimated_monthly_units for p in allocated),
    )
    return state.with_products(with_revenue_shares(allocated))


# ==============================================================================
# 3-PHASE REFINEMENT
# ==============================================================================

def _anchor_units(state: PageState, anchors: List[CanonicalProduct], policy: AllocationPhasePolicy) -> Dict[str, int]:
    total = state.target_units
    decay_sum = sum(math.exp(-policy.anchor_decay * i) for i in range(policy.anchor_ranks))
    median_price = safe_median([p.price for p in state.products]) or 0.0

    search_volume = state.totals.effective_search_volume
    if search_volume is None:
        search_volume = policy.search_volume_fallback_multiplier * total
    ceiling = policy.anchor_max_search_volume_share * search_volume

    units = {}
    for p in anchors:
        raw = total * policy.anchor_share * math.exp(-policy.anchor_decay * (p.organic_rank - 1)) / decay_sum
        if 0 < p.price < median_price:
            minimum = policy.anchor_min_units_below_median_price
        else:
            minimum = policy.anchor_min_units
        minimum = max(minimum, 1)
        units[p.asin] = round_half_up(max(minimum, min(ceiling, raw)))
    return units


def _tail_weight(p: CanonicalProduct, policy: AllocationPhasePolicy) -> float:
    reviews = p.review_count if p.review_count is not None and p.review_count > 0 else 0
    rating_factor = p.rating / 5 if p.rating and p.rating > 0 else policy.tail_missing_rating_factor
    return math.log(reviews + policy.tail_review_offset) / math.sqrt(p.organic_rank) * rating_factor


def refine_allocation(
    state: PageState,
    policy: AllocationPhasePolicy,
    telemetry: Optional[TelemetryRecorder] = None,
) -> PageState:
    """
    Anchor -> tail -> conserve.

    The returned state carries the phase-2 tail floor so the guardrails can
    use it, and targets revenue at the allocated units x price.
    """
    telemetry = ensure_recorder(telemetry)
    products = list(state.products)
    if not products:
        return state

    total = state.target_units
    organic = sorted(state.organic, key=lambda p: p.organic_rank)
    anchors = [p for p in organic if p.organic_rank <= policy.anchor_ranks]
    tail = [p for p in organic if p.organic_rank > policy.anchor_ranks]
    sponsored = [p for p in products if p.organic_rank is None]

    # Phase 1
    units = _anchor_units(state, anchors, policy)
    anchor_total = sum(units.values())

    # Phase 2
    tail_floor = 0.0
    if tail:
        tail_floor = policy.tail_floor_share * anchor_total / len(tail)
        remaining = max(total - anchor_total, 0.0)
        tail_weights = {p.asin: _tail_weight(p, policy) for p in tail}
        weight_sum = sum(tail_weights.values())
        for p in tail:
            share = tail_weights[p.asin] / weight_sum if weight_sum > 0 else 1 / len(tail)
            units[p.asin] = round_half_up(max(remaining * share, tail_floor))

    if sponsored:
        pool_each = policy.sponsored_pool_share * total / len(sponsored)
        for p in sponsored:
            units[p.asin] = round_half_up(pool_each)

    # Phase 3
    allocated = sum(units.values())
    rescaled = False
    if total > 0 and allocated > 0 and abs(allocated - total) / total > policy.conservation_tolerance:
        factor = total / allocated
        units = {asin: round_half_up(u * factor) for asin, u in units.items()}
        rescaled = True

    refined = with_revenue_shares([p.with_units(units.get(p.asin, 0)) for p in products])

    telemetry.emit(
        "allocate.refined",
        anchors=len(anchors),
        anchor_units=anchor_total,
        tail=len(tail),
        tail_floor=round(tail_floor, 2),
        sponsored=len(sponsored),
        pre_conservation_units=allocated,
        rescaled=rescaled,
        final_units=sum(p.estimated_monthly_units for p in refined),
    )

    new_state = state.with_products(refined)
    return replace(
        new_state,
        tail_floor=tail_floor,
        target_revenue=round(new_state.revenue_sum, 2),
    )
