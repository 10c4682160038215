"""
Parent-Child Normalizer

Variant children on one page share their parent's demand. For every group
with more than one member, the group's combined units and revenue (as they
stood before this step) are re-split by

    weight = ln(reviews + 10) x (rating / 5, or 0.85) x price_norm
    price_norm = max(0.8, 1 - |price - group median| / group median)

Units are split as integers with largest remainder; the rounding remainder
and any floor overshoot are settled against the current-largest child.
Group revenue is split by the same weights, so both group totals are kept.
Revenue share computed here is the final externally visible value.
"""

import logging
import math
from dataclasses import replace
from typing import Dict, List, Optional

import numpy as np

from pageone.allocator import with_revenue_shares
from pageone.config import GuardrailPolicy, ParentChildPolicy
from pageone.guardrails import guardrail_minimum
from pageone.models.product import CanonicalProduct
from pageone.numeric import largest_remainder
from pageone.telemetry import TelemetryRecorder, ensure_recorder

logger = logging.getLogger(__name__)


def child_weight(product: CanonicalProduct, group_median_price: float, policy: ParentChildPolicy) -> float:
    reviews = product.review_count if product.review_count and product.review_count > 0 else 0
    rating_factor = product.rating / 5 if product.rating and product.rating > 0 else policy.missing_rating_factor
    if group_median_price > 0 and product.price > 0:
        price_norm = max(
            policy.price_weight_floor,
            1 - abs(product.price - group_median_price) / group_median_price,
        )
    else:
        price_norm = 1.0
    return math.log(reviews + policy.review_offset) * rating_factor * price_norm


def _sort_key(product: CanonicalProduct):
    return (product.page_position, product.asin)


def _split_group(
    children: List[CanonicalProduct],
    policy: ParentChildPolicy,
    guardrails: GuardrailPolicy,
) -> List[CanonicalProduct]:
    children = sorted(children, key=_sort_key)
    group_units = sum(c.estimated_monthly_units for c in children)
    group_revenue = sum(c.estimated_monthly_revenue for c in children)

    prices = [c.price for c in children if c.price > 0]
    median_price = float(np.median(prices)) if prices else 0.0
    weights = [child_weight(c, median_price, policy) for c in children]
    if sum(weights) <= 0:
        weights = [1.0] * len(children)

    units = largest_remainder(weights, group_units, keys=[_sort_key(c) for c in children])

    weight_sum = sum(weights)
    revenues = [round(group_revenue * w / weight_sum, 2) for w in weights]

    # Any child that had demand or is handed revenue keeps at least its guardrail minimum
    minimums = [
        max(1, guardrail_minimum(c, guardrails)) if (c.estimated_monthly_units > 0 or r > 0) else 0
        for c, r in zip(children, revenues)
    ]

    # Floors the group cannot fund: children that arrived without units give up their share
    folded = []
    for i in sorted(range(len(children)), key=lambda i: _sort_key(children[i]), reverse=True):
        if sum(minimums) <= group_units:
            break
        if children[i].estimated_monthly_units == 0 and minimums[i] > 0:
            minimums[i] = 0
            folded.append(i)
    for i in folded:
        units[i] = 0
        revenues[i] = 0.0
    units = [max(u, m) for u, m in zip(units, minimums)]

    # Settle overshoot/remainder against the current-largest child
    drift = sum(units) - group_units
    while drift != 0:
        order = sorted(range(len(children)), key=lambda i: (-units[i], _sort_key(children[i])))
        if drift < 0:
            units[order[0]] -= drift
            drift = 0
            continue
        movable = [i for i in order if units[i] > minimums[i]]
        if not movable:
            break
        i = movable[0]
        take = min(drift, units[i] - minimums[i])
        units[i] -= take
        drift -= take

    revenue_drift = round(group_revenue - sum(revenues), 2)
    if revenue_drift:
        largest = min(range(len(children)), key=lambda i: (-units[i], _sort_key(children[i])))
        revenues[largest] = round(revenues[largest] + revenue_drift, 2)

    return [
        replace(c, estimated_monthly_units=u, estimated_monthly_revenue=r)
        for c, u, r in zip(children, units, revenues)
    ]


def normalize_variant_groups(
    products: List[CanonicalProduct],
    policy: ParentChildPolicy,
    guardrails: GuardrailPolicy,
    telemetry: Optional[TelemetryRecorder] = None,
) -> List[CanonicalProduct]:
    telemetry = ensure_recorder(telemetry)

    groups: Dict[str, List[CanonicalProduct]] = {}
    for p in products:
        groups.setdefault(p.group_key, []).append(p)

    replaced: Dict[str, CanonicalProduct] = {}
    multi = 0
    for key in sorted(groups):
        children = groups[key]
        if len(children) < 2:
            continue
        multi += 1
        for child in _split_group(children, policy, guardrails):
            replaced[child.asin] = child

    normalized = with_revenue_shares([replaced.get(p.asin, p) for p in products])

    telemetry.emit(
        "parent_child.normalized",
        groups=len(groups),
        multi_child_groups=multi,
        children_resplit=len(replaced),
    )
    return normalized
