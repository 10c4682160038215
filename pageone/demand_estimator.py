"""
TOTAL DEMAND ESTIMATOR - Rough page-wide units and revenue

Sizes the whole page BEFORE anything is allocated, so per-listing numbers
are shares of a stable total instead of independently inflated guesses.

LOGIC:
1. Price stats over positive prices; category by majority vote of hints
2. Coarse volume = review-band estimate x coarse multiplier
3. Market shape from avg price + coarse volume (durable / hybrid / consumable)
4. Rough units = organic count x shape base units x price multiplier

The output is intentionally rough; the calibration layer corrects it.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from pageone.config import DemandPolicy
from pageone.models.market import MarketShape, PriceStats
from pageone.models.product import CanonicalProduct
from pageone.numeric import clamp, round_half_up, safe_median
from pageone.telemetry import TelemetryRecorder, ensure_recorder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoughDemand:
    units: float
    revenue: float
    shape: MarketShape
    price: PriceStats
    category: Optional[str]
    organic_count: int
    coarse_volume: float
    price_multiplier: float


def price_stats(products: List[CanonicalProduct]) -> PriceStats:
    prices = [p.price for p in products if p.price and p.price > 0]
    if not prices:
        return PriceStats()
    arr = np.asarray(prices, dtype=float)
    return PriceStats(
        min_price=float(arr.min()),
        avg_price=float(arr.mean()),
        max_price=float(arr.max()),
        median_price=float(np.median(arr)),
    )


def majority_category(hints: List[Optional[str]]) -> Optional[str]:
    """Most common non-empty hint; ties go to the alphabetically first."""
    cleaned = [h.strip() for h in hints if h and h.strip()]
    if not cleaned:
        return None
    counts = Counter(cleaned)
    best = max(counts.values())
    return sorted(c for c, n in counts.items() if n == best)[0]


def _category_key(category: Optional[str]) -> str:
    return (category or "default").strip().lower()


def price_multiplier(avg_price: float, policy: DemandPolicy) -> float:
    """Cheaper goods scaled up, pricier goods scaled down."""
    for ceiling, multiplier in policy.cheap_price_tiers:
        if avg_price < ceiling:
            return multiplier
    for floor, multiplier in policy.premium_price_tiers:
        if avg_price > floor:
            return multiplier
    return 1.0


def review_band_units(organic: List[CanonicalProduct], category: Optional[str], policy: DemandPolicy) -> float:
    """
    Review-band page estimate: organic count x base x review maturity x category,
    clamped into the competition band implied by count and median reviews.
    """
    count = len(organic)
    if count == 0:
        return 0.0

    median_reviews = safe_median([p.review_count for p in organic]) or 0.0

    review_mult = policy.mature_review_multiplier
    for ceiling, multiplier in policy.review_multiplier_tiers:
        if median_reviews < ceiling:
            review_mult = multiplier
            break

    cat_mult = policy.category_multipliers.get(
        _category_key(category), policy.category_multipliers.get("default", 1.0)
    )
    units = count * policy.review_band_units_per_listing * review_mult * cat_mult

    if count < policy.low_band_max_listings or median_reviews < policy.low_band_max_median_reviews:
        band = policy.review_bands["low"]
    elif count < policy.medium_band_max_listings and median_reviews < policy.medium_band_max_median_reviews:
        band = policy.review_bands["medium"]
    else:
        band = policy.review_bands["high"]
    return clamp(units, band[0], band[1])


def classify_shape(avg_price: float, coarse_volume: float, policy: DemandPolicy) -> MarketShape:
    if avg_price >= policy.durable_min_avg_price:
        return MarketShape.DURABLE
    if avg_price <= policy.consumable_max_avg_price and coarse_volume >= policy.consumable_min_coarse_volume:
        return MarketShape.CONSUMABLE
    return MarketShape.HYBRID


def estimate_rough_demand(
    products: List[CanonicalProduct],
    policy: DemandPolicy,
    telemetry: Optional[TelemetryRecorder] = None,
) -> RoughDemand:
    telemetry = ensure_recorder(telemetry)

    organic = [p for p in products if p.organic_rank is not None]
    stats = price_stats(products)
    category = majority_category([p.category for p in products])

    coarse_volume = review_band_units(organic, category, policy) * policy.coarse_volume_multiplier
    shape = classify_shape(stats.avg_price, coarse_volume, policy)
    multiplier = price_multiplier(stats.avg_price, policy)

    units = float(round_half_up(len(organic) * policy.base_units_per_listing[shape.value] * multiplier))
    revenue = units * stats.avg_price

    telemetry.emit(
        "demand.estimated",
        organic_count=len(organic),
        avg_price=round(stats.avg_price, 2),
        category=category,
        coarse_volume=round(coarse_volume),
        shape=shape.value,
        price_multiplier=multiplier,
        raw_units=units,
    )
    return RoughDemand(
        units=units,
        revenue=revenue,
        shape=shape,
        price=stats,
        category=category,
        organic_count=len(organic),
        coarse_volume=coarse_volume,
        price_multiplier=multiplier,
    )
