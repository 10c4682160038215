"""
Guardrail / Floor Enforcer

Clamp-only floors applied after allocation and again after the scaling
stages. Guardrails raise units, never lower them, and never re-rank.

    review_count > 20            => units >= 5
    organic, rank > 15, 0 units  => units >= max(2, 0.5 x tail floor)
    organic, rank <= 50          => units >= 1
"""

import logging
from dataclasses import replace
from typing import List, Optional

from pageone.config import GuardrailPolicy
from pageone.models.market import PageState
from pageone.models.product import CanonicalProduct
from pageone.numeric import round_half_up
from pageone.allocator import with_revenue_shares
from pageone.telemetry import TelemetryRecorder, ensure_recorder

logger = logging.getLogger(__name__)


def guardrail_minimum(
    product: CanonicalProduct,
    policy: GuardrailPolicy,
    tail_floor: float = 0.0,
    relax_tail: bool = False,
) -> int:
    """Smallest unit count this listing may end with."""
    minimum = 0
    if product.review_count is not None and product.review_count > policy.review_floor_min_reviews:
        minimum = max(minimum, policy.review_floor_units)

    rank = product.organic_rank
    if rank is not None:
        if rank <= policy.page_eligible_max_rank:
            minimum = max(minimum, policy.organic_min_units)
        if (
            not relax_tail
            and rank > policy.tail_rank_start
            and product.estimated_monthly_units == 0
        ):
            tail_min = max(policy.tail_min_units, round_half_up(policy.tail_floor_fraction * tail_floor))
            minimum = max(minimum, tail_min)
    return minimum


def apply_guardrails(
    state: PageState,
    policy: GuardrailPolicy,
    relax_tail: bool = False,
    telemetry: Optional[TelemetryRecorder] = None,
    event: str = "guardrails.applied",
) -> PageState:
    telemetry = ensure_recorder(telemetry)

    raised = []
    forced_tail = []
    products = []
    for p in state.products:
        minimum = guardrail_minimum(p, policy, state.tail_floor, relax_tail)
        if p.estimated_monthly_units < minimum:
            raised.append(p.asin)
            # Tail-only lift: no review or organic floor would have asked for this much
            if minimum > guardrail_minimum(p, policy, relax_tail=True):
                forced_tail.append(p.asin)
            p = p.with_units(minimum)
        products.append(p)

    if raised:
        products = with_revenue_shares(products)

    telemetry.emit(
        event,
        raised=len(raised),
        forced_tail=len(forced_tail),
        sample=raised[:5],
        relax_tail=relax_tail,
    )
    return replace(
        state.with_products(products),
        forced_tail=tuple(sorted(set(state.forced_tail) | set(forced_tail))),
    )


def conserve_page_total(
    state: PageState,
    policy: GuardrailPolicy,
    tolerance: float,
    relax_tail: bool = False,
    telemetry: Optional[TelemetryRecorder] = None,
) -> PageState:
    """
    Bring Σunits back to the running target after floors pushed it off.

    Only listings above their guardrail minimum are rescaled. When the
    floors alone exceed the target, the target moves to the floored sum.
    The running revenue target always ends at the exact page revenue.
    """
    telemetry = ensure_recorder(telemetry)
    target = state.target_units
    current = state.units_sum

    if target <= 0 or abs(current - target) / target <= tolerance:
        return state.with_products(state.products, retarget=True)

    minimums = [guardrail_minimum(p, policy, state.tail_floor, relax_tail) for p in state.products]
    fixed = sum(m for p, m in zip(state.products, minimums) if p.estimated_monthly_units <= m)
    free = sum(p.estimated_monthly_units for p, m in zip(state.products, minimums) if p.estimated_monthly_units > m)

    if free <= 0 or target - fixed <= 0:
        telemetry.emit(
            "conservation.retargeted",
            level=logging.WARNING,
            target_units=target,
            floored_units=current,
        )
        return state.with_products(state.products, retarget=True)

    factor = (target - fixed) / free
    products: List[CanonicalProduct] = []
    for p, m in zip(state.products, minimums):
        if p.estimated_monthly_units > m:
            p = p.with_units(max(m, round_half_up(p.estimated_monthly_units * factor)))
        products.append(p)

    products = with_revenue_shares(products)
    telemetry.emit(
        "conservation.rescaled",
        target_units=target,
        before=current,
        after=sum(p.estimated_monthly_units for p in products),
        factor=round(factor, 4),
    )
    return state.with_products(products, retarget=True)
