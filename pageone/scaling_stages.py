"""
PAGE SCALING STAGES - Ordered page-level adjustments after allocation

    (a) market_expansion      rank-1 toward ~100k units (or page toward ~200k)
    (b) durable_absorption    durable only: cap rank-1 / top-3 share, overflow to 4-15
    (c) consumable_tail       consumable only: forced tail minimums decay
    (d) benchmark_alignment   one named multiplier
    (e) bsr_decay             BSR cutoff / exponential decay / per-listing cap

Every stage is a pure function PageState -> PageState. Stages that change
the page total move the running target with it, recompute revenue as
units x price and recompute revenue share.
"""

import logging
import math
from typing import Callable, Dict, List, Optional, Tuple

from pageone.allocator import with_revenue_shares
from pageone.config import AllocationPolicy, ScalingPolicy
from pageone.models.market import MarketShape, PageState
from pageone.models.product import CanonicalProduct
from pageone.numeric import clamp, largest_remainder, round_half_up
from pageone.telemetry import TelemetryRecorder, ensure_recorder

logger = logging.getLogger(__name__)

Stage = Callable[[PageState, AllocationPolicy, TelemetryRecorder], PageState]


def _rescale(products: List[CanonicalProduct], factor: float) -> List[CanonicalProduct]:
    return [p.with_units(round_half_up(p.estimated_monthly_units * factor)) for p in products]


def _commit(state: PageState, products: List[CanonicalProduct]) -> PageState:
    return state.with_products(with_revenue_shares(products), retarget=True)


def _by_rank(products: List[CanonicalProduct], lo: int, hi: int) -> List[int]:
    """Indexes of organic products with lo <= rank <= hi, in rank order."""
    hits = [(p.organic_rank, i) for i, p in enumerate(products)
            if p.organic_rank is not None and lo <= p.organic_rank <= hi]
    return [i for _, i in sorted(hits)]


def _spread(products: List[CanonicalProduct], indexes: List[int], extra: int) -> Tuple[List[CanonicalProduct], int]:
    """Add `extra` units across `indexes` proportionally to their current units."""
    weights = [products[i].estimated_monthly_units for i in indexes]
    if extra <= 0 or not indexes or sum(weights) <= 0:
        return products, 0
    parts = largest_remainder(weights, extra, keys=[products[i].organic_rank for i in indexes])
    products = list(products)
    for i, add in zip(indexes, parts):
        products[i] = products[i].with_units(products[i].estimated_monthly_units + add)
    return products, extra


# ==============================================================================
# (a) MARKET EXPANSION
# ==============================================================================

def market_expansion(state: PageState, policy: AllocationPolicy, telemetry: TelemetryRecorder) -> PageState:
    scaling = policy.scaling
    products = list(state.products)
    rank1 = next((p for p in products if p.organic_rank == 1), None)
    rank1_units = rank1.estimated_monthly_units if rank1 else 0
    current = state.units_sum

    factor = 1.0
    if rank1_units > 0:
        factor = scaling.expansion_rank1_reference / rank1_units
    elif current > 0:
        factor = scaling.expansion_page_reference / current
    factor = clamp(factor, *scaling.expansion_bounds)

    new_state = _commit(state, _rescale(products, factor))
    telemetry.emit(
        "scaling.market_expansion",
        factor=round(factor, 4),
        before_units=current,
        after_units=new_state.units_sum,
        rank1_units_before=rank1_units,
    )
    return new_state


# ==============================================================================
# (b) DURABLE RANK ABSORPTION
# ==============================================================================

def durable_absorption(state: PageState, policy: AllocationPolicy, telemetry: TelemetryRecorder) -> PageState:
    if state.totals.shape is not MarketShape.DURABLE:
        return state

    scaling = policy.scaling
    products = list(state.products)
    total = state.units_sum
    position: Dict[int, int] = {p.organic_rank: i for i, p in enumerate(products) if p.organic_rank is not None}

    rank1_cap = round_half_up(total * scaling.durable_rank1_cap_pct)
    top3_cap = round_half_up(total * scaling.durable_top3_cap_pct)
    excess = 0

    if 1 in position and products[position[1]].estimated_monthly_units > rank1_cap:
        i = position[1]
        excess += products[i].estimated_monthly_units - rank1_cap
        products[i] = products[i].with_units(rank1_cap)

    top3 = [position[r] for r in (1, 2, 3) if r in position]
    top3_units = sum(products[i].estimated_monthly_units for i in top3)
    if top3_units > top3_cap:
        top3_excess = top3_units - top3_cap
        rank23 = [position[r] for r in (2, 3) if r in position]
        rank23_units = sum(products[i].estimated_monthly_units for i in rank23)
        if rank23_units > 0:
            reductions = largest_remainder(
                [products[i].estimated_monthly_units for i in rank23],
                min(top3_excess, rank23_units),
                keys=[products[i].organic_rank for i in rank23],
            )
            for i, cut in zip(rank23, reductions):
                products[i] = products[i].with_units(products[i].estimated_monthly_units - cut)
                excess += cut

    lo, hi = scaling.absorption_ranks
    products, redistributed = _spread(products, _by_rank(products, lo, hi), excess)

    # Hard ceilings for durable pages
    page_units = sum(p.estimated_monthly_units for p in products)
    if page_units > scaling.durable_max_total_units:
        products = _rescale(products, scaling.durable_max_total_units / page_units)

    rank1_overflow = 0
    if 1 in position and products[position[1]].estimated_monthly_units > scaling.durable_max_rank1_units:
        i = position[1]
        rank1_overflow = products[i].estimated_monthly_units - scaling.durable_max_rank1_units
        products[i] = products[i].with_units(scaling.durable_max_rank1_units)
        lo2, hi2 = scaling.durable_rank1_overflow_ranks
        products, _ = _spread(products, _by_rank(products, lo2, hi2), rank1_overflow)
        page_units = sum(p.estimated_monthly_units for p in products)
        if page_units > scaling.durable_max_total_units:
            products = _rescale(products, scaling.durable_max_total_units / page_units)

    new_state = _commit(state, products)
    telemetry.emit(
        "scaling.durable_absorption",
        total_before=total,
        total_after=new_state.units_sum,
        excess=excess,
        redistributed=redistributed,
        rank1_overflow=rank1_overflow,
    )
    return new_state


# ==============================================================================
# (c) CONSUMABLE TAIL RELAXATION
# ==============================================================================

def consumable_tail(state: PageState, policy: AllocationPolicy, telemetry: TelemetryRecorder) -> PageState:
    """Listings that only had units because of the tail minimum decay toward zero."""
    if state.totals.shape is not MarketShape.CONSUMABLE:
        return state

    scaling = policy.scaling
    forced = set(state.forced_tail)
    decayed = []
    products = []
    for p in state.products:
        if p.asin in forced and p.organic_rank is not None and p.organic_rank > scaling.consumable_tail_rank:
            floor = policy.guardrails.organic_min_units if p.organic_rank <= policy.guardrails.page_eligible_max_rank else 0
            p = p.with_units(max(floor, round_half_up(p.estimated_monthly_units * scaling.consumable_tail_decay)))
            decayed.append(p.asin)
        products.append(p)

    new_state = _commit(state, products)
    telemetry.emit(
        "scaling.consumable_tail",
        decayed=len(decayed),
        total_after=new_state.units_sum,
    )
    return new_state


# ==============================================================================
# (d) BENCHMARK ALIGNMENT
# ==============================================================================

def benchmark_alignment(state: PageState, policy: AllocationPolicy, telemetry: TelemetryRecorder) -> PageState:
    multiplier = policy.scaling.alignment_multiplier
    new_state = _commit(state, _rescale(list(state.products), multiplier))
    telemetry.emit(
        "scaling.benchmark_alignment",
        multiplier=multiplier,
        total_after=new_state.units_sum,
    )
    return new_state


# ==============================================================================
# (e) BSR DECAY / CAP
# ==============================================================================

def bsr_units(units: int, bsr: Optional[int], scaling: ScalingPolicy) -> int:
    """Listings without a known BSR pass through unchanged."""
    if bsr is None:
        return units
    if bsr > scaling.bsr_cutoff:
        return 0
    decayed = round_half_up(units * math.exp(-bsr / scaling.bsr_decay_scale))
    return min(decayed, scaling.max_units_per_listing)


def bsr_decay(state: PageState, policy: AllocationPolicy, telemetry: TelemetryRecorder) -> PageState:
    scaling = policy.scaling
    zeroed = 0
    capped = 0
    products = []
    for p in state.products:
        units = bsr_units(p.estimated_monthly_units, p.bsr, scaling)
        if p.bsr is not None:
            if units == 0 and p.estimated_monthly_units > 0:
                zeroed += 1
            elif units == scaling.max_units_per_listing:
                capped += 1
        products.append(p.with_units(units))

    new_state = _commit(state, products)
    telemetry.emit(
        "scaling.bsr_decay",
        with_bsr=sum(1 for p in state.products if p.bsr is not None),
        zeroed=zeroed,
        capped=capped,
        total_after=new_state.units_sum,
    )
    return new_state


SCALING_STAGES: Tuple[Stage, ...] = (
    market_expansion,
    durable_absorption,
    consumable_tail,
    benchmark_alignment,
    bsr_decay,
)


def run_scaling_stages(
    state: PageState,
    policy: AllocationPolicy,
    telemetry: Optional[TelemetryRecorder] = None,
) -> PageState:
    telemetry = ensure_recorder(telemetry)
    for stage in SCALING_STAGES:
        state = stage(state, policy, telemetry)
    return state
