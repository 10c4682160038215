"""
MARKET CALIBRATION - Pull rough totals into trusted bands

Rules:
- Competition level from listing count, review dispersion, sponsored density
- Soft factor (band midpoint / raw, clamped) x category multiplier
- Units clamped into the band; revenue never below units x price-band midpoint
- One named alignment scalar applied last
- Never changes ranking order (this module only adjusts totals)
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from pageone.config import CalibrationPolicy
from pageone.demand_estimator import RoughDemand
from pageone.models.market import CompetitionLevel, MarketTotals
from pageone.models.product import CanonicalProduct
from pageone.numeric import clamp, round_half_up
from pageone.telemetry import TelemetryRecorder, ensure_recorder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MarketSignals:
    listing_count: int
    review_dispersion: float
    sponsored_density: float     # percent of canonical products


def market_signals(products: List[CanonicalProduct]) -> MarketSignals:
    reviews = [p.review_count for p in products if p.review_count and p.review_count > 0]
    dispersion = float(np.std(reviews)) if reviews else 0.0
    sponsored = sum(1 for p in products if p.appears_sponsored)
    density = sponsored / len(products) * 100 if products else 0.0
    return MarketSignals(
        listing_count=sum(1 for p in products if p.organic_rank is not None),
        review_dispersion=dispersion,
        sponsored_density=density,
    )


def competition_level(signals: MarketSignals, policy: CalibrationPolicy) -> CompetitionLevel:
    if signals.listing_count < policy.low_listing_count or (
        signals.review_dispersion < policy.low_review_dispersion
        and signals.sponsored_density < policy.low_sponsored_density
    ):
        return CompetitionLevel.LOW
    if signals.listing_count >= policy.high_listing_count and (
        signals.review_dispersion > policy.high_review_dispersion
        or signals.sponsored_density > policy.high_sponsored_density
    ):
        return CompetitionLevel.HIGH
    return CompetitionLevel.MEDIUM


_COVERAGE_REASONS = ("Strong listing coverage", "Moderate listing coverage", "Limited listing coverage")
_DISPERSION_REASONS = (
    "High review diversity indicates established market",
    "Moderate review diversity",
    "Low review diversity - market may be new",
)
_DENSITY_REASONS = (
    "Low sponsored density suggests organic competition",
    "Moderate sponsored density",
)


def calibration_confidence(signals: MarketSignals, policy: CalibrationPolicy) -> Tuple[str, str]:
    """Score coverage + dispersion + density into Low/Medium/High."""
    score = 0
    reasons = []

    for (min_listings, points), label in zip(policy.confidence_coverage_points, _COVERAGE_REASONS):
        if signals.listing_count >= min_listings:
            score += points
            reasons.append(f"{label} ({min_listings}+ products)")
            break
    else:
        reasons.append("Sparse listing coverage")

    for (min_dispersion, points), label in zip(policy.confidence_dispersion_points, _DISPERSION_REASONS):
        if signals.review_dispersion > min_dispersion:
            score += points
            reasons.append(label)
            break
    else:
        reasons.append("No review data available")

    for (max_density, points), label in zip(policy.confidence_density_points, _DENSITY_REASONS):
        if signals.sponsored_density < max_density:
            score += points
            reasons.append(label)
            break
    else:
        score += policy.confidence_crowded_density_points
        reasons.append("High sponsored density may indicate paid competition")

    confidence = policy.lowest_confidence
    for min_score, tier in policy.confidence_tiers:
        if score >= min_score:
            confidence = tier
            break
    return confidence, ". ".join(reasons) + "."


def calibrate_market_totals(
    rough: RoughDemand,
    products: List[CanonicalProduct],
    policy: CalibrationPolicy,
    search_volume_low: Optional[float] = None,
    search_volume_high: Optional[float] = None,
    telemetry: Optional[TelemetryRecorder] = None,
) -> MarketTotals:
    telemetry = ensure_recorder(telemetry)

    signals = market_signals(products)
    level = competition_level(signals, policy)
    confidence, reason = calibration_confidence(signals, policy)

    if rough.units <= 0:
        # No organic listings: nothing to size
        units = 0.0
        revenue = 0.0
        factor = 1.0
    else:
        units_min, units_max, rev_min, rev_max = policy.market_ranges[level.value]
        category_key = (rough.category or "default").strip().lower()
        category_mult = policy.category_multipliers.get(
            category_key, policy.category_multipliers.get("default", 1.0)
        )

        factor = clamp((units_min + units_max) / 2 / rough.units, *policy.factor_bounds)
        units = clamp(round_half_up(rough.units * factor * category_mult), units_min, units_max)
        scaled_revenue = rough.revenue * factor * category_mult
        revenue = clamp(max(units * rough.price.band_midpoint, scaled_revenue), rev_min, rev_max)

        units = float(round_half_up(units * policy.trusted_band_alignment))
        revenue = round(revenue * policy.trusted_band_alignment, 2)

    totals = MarketTotals(
        total_units=units,
        total_revenue=revenue,
        shape=rough.shape,
        category=rough.category,
        price=rough.price,
        raw_units=rough.units,
        raw_revenue=round(rough.revenue, 2),
        calibrated_units=units,
        calibrated_revenue=revenue,
        competition_level=level,
        calibration_factor=round(factor, 4),
        confidence=confidence,
        confidence_reason=reason,
        search_volume_low=search_volume_low,
        search_volume_high=search_volume_high,
    )

    telemetry.emit(
        "calibration.market_totals",
        competition_level=level.value,
        raw_units=rough.units,
        calibration_factor=totals.calibration_factor,
        alignment=policy.trusted_band_alignment,
        calibrated_units=units,
        calibrated_revenue=revenue,
        confidence=confidence,
    )
    return totals
