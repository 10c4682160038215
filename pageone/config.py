# pageone/config.py

"""
ALLOCATION_POLICY - Every tuned constant of the Page-One engine

This file is the single place where the allocator's numbers live.
It defines:
1. How rough page demand is sized (DemandPolicy)
2. How rough totals are pulled toward trusted bands (CalibrationPolicy)
3. How demand is split across listings (AllocationPhasePolicy)
4. Which floors and caps clamp individual listings (GuardrailPolicy)
5. The ordered page-level scaling stages (ScalingPolicy)
6. How variant groups are re-split (ParentChildPolicy)
7. What the validator tolerates (ValidationPolicy)
8. History blending, brand validation and snapshot labels

ARCHITECTURE:
- Constants are empirical fits against a third-party benchmark, not first principles
- The policy is passed INTO every stage; algorithm code never holds literals
- Swap a policy (dataclasses.replace) to tune or test without touching stage code
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Tuple


# ==============================================================================
# PAGE SHAPE
# ==============================================================================

PAGE_SIZE = 49                       # Organic results per marketplace page
ASIN_PATTERN = r"^[A-Z0-9]{10}$"     # Fixed-format product identifier


# ==============================================================================
# BUCKET 1: DEMAND SIZING
# ==============================================================================

@dataclass(frozen=True)
class DemandPolicy:
    """Rough page-wide demand from price distribution and market shape."""

    # Market shape thresholds
    durable_min_avg_price: float = 300.0
    consumable_max_avg_price: float = 30.0
    consumable_min_coarse_volume: float = 80_000

    # Base monthly units per organic listing, by shape
    base_units_per_listing: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({
        "durable": 300.0,
        "hybrid": 800.0,
        "consumable": 1500.0,
    }))

    # Price multiplier tiers: cheaper goods sell more, pricier goods sell less
    cheap_price_tiers: Tuple[Tuple[float, float], ...] = ((10.0, 1.5), (25.0, 1.2))
    premium_price_tiers: Tuple[Tuple[float, float], ...] = ((100.0, 0.6), (50.0, 0.8))

    # Review-band estimate used for the coarse volume that classifies shape
    review_band_units_per_listing: float = 400.0
    review_multiplier_tiers: Tuple[Tuple[float, float], ...] = (
        (100.0, 0.7),    # median reviews < 100: new / niche market
        (500.0, 1.0),    # standard
        (1500.0, 1.3),   # established
    )
    mature_review_multiplier: float = 1.6
    category_multipliers: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({
        "electronics": 1.3,
        "home": 1.1,
        "beauty": 1.2,
        "health": 1.0,
        "default": 1.0,
    }))
    review_bands: Mapping[str, Tuple[float, float]] = field(default_factory=lambda: MappingProxyType({
        "low": (2_000.0, 6_000.0),
        "medium": (6_000.0, 15_000.0),
        "high": (15_000.0, 35_000.0),
    }))

    # Band selection: low if either cut is missed, medium if both stay under the medium cuts
    low_band_max_listings: int = 8
    low_band_max_median_reviews: float = 100.0
    medium_band_max_listings: int = 15
    medium_band_max_median_reviews: float = 1_500.0
    coarse_volume_multiplier: float = 10.0


# ==============================================================================
# BUCKET 2: MARKET CALIBRATION
# ==============================================================================

@dataclass(frozen=True)
class CalibrationPolicy:
    """Trusted bands and the keyword-profile multiplier limits."""

    # Known page-total ranges by competition level (units_min, units_max, rev_min, rev_max)
    market_ranges: Mapping[str, Tuple[float, float, float, float]] = field(default_factory=lambda: MappingProxyType({
        "low_competition": (2_000.0, 6_000.0, 50_000.0, 150_000.0),
        "medium_competition": (6_000.0, 15_000.0, 150_000.0, 375_000.0),
        "high_competition": (15_000.0, 35_000.0, 375_000.0, 875_000.0),
    }))

    # Competition level thresholds
    low_listing_count: int = 8
    low_review_dispersion: float = 500.0
    low_sponsored_density: float = 20.0
    high_listing_count: int = 15
    high_review_dispersion: float = 2_000.0
    high_sponsored_density: float = 40.0

    # Soft factor range toward the band midpoint
    factor_bounds: Tuple[float, float] = (0.8, 1.2)
    category_multipliers: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({
        "electronics": 1.15,
        "home": 1.05,
        "beauty": 1.10,
        "health": 1.00,
        "default": 1.00,
    }))

    # Externally tuned alignment of the calibrated band against the benchmark
    trusted_band_alignment: float = 0.95

    # Confidence score: (threshold, points) tiers, first match wins
    confidence_coverage_points: Tuple[Tuple[int, int], ...] = ((15, 40), (8, 25), (5, 10))   # listings >=
    confidence_dispersion_points: Tuple[Tuple[float, int], ...] = ((1_000.0, 30), (500.0, 20), (0.0, 10))   # std >
    confidence_density_points: Tuple[Tuple[float, int], ...] = ((20.0, 30), (40.0, 15))   # sponsored % <
    confidence_crowded_density_points: int = 5
    confidence_tiers: Tuple[Tuple[int, str], ...] = ((70, "High"), (40, "Medium"))
    lowest_confidence: str = "Low"

    # Keyword calibration profile limits
    profile_multiplier_bounds: Tuple[float, float] = (0.1, 10.0)
    profile_lookup_timeout: float = 2.0


# ==============================================================================
# BUCKET 3: PER-LISTING ALLOCATION
# ==============================================================================

@dataclass(frozen=True)
class AllocationPhasePolicy:
    """Raw weights plus the 3-phase refinement (anchor -> tail -> conserve)."""

    # Raw weights
    rank_weight_exponent: float = 0.7
    review_weight_bounds: Tuple[float, float] = (0.5, 2.0)
    default_median_rating: float = 4.0
    rating_penalty_slope: float = 0.5
    rating_penalty_floor: float = 0.3
    price_weight_slope: float = 0.2
    price_weight_floor: float = 0.8

    # Phase 1: anchors
    anchor_ranks: int = 5
    anchor_share: float = 0.6
    anchor_decay: float = 0.45
    anchor_min_units_below_median_price: float = 50.0
    anchor_min_units: float = 25.0
    anchor_max_search_volume_share: float = 0.35
    search_volume_fallback_multiplier: float = 10.0

    # Phase 2: tail
    tail_review_offset: float = 10.0
    tail_missing_rating_factor: float = 0.85
    tail_floor_share: float = 0.15
    sponsored_pool_share: float = 0.15

    # Phase 3: conservation
    conservation_tolerance: float = 0.03


# ==============================================================================
# BUCKET 4: GUARDRAILS
# ==============================================================================

@dataclass(frozen=True)
class GuardrailPolicy:
    """Clamp-only floors. Guardrails never re-rank."""

    review_floor_min_reviews: int = 20     # strictly greater than this
    review_floor_units: int = 5
    tail_rank_start: int = 15              # organic rank strictly greater than this
    tail_min_units: int = 2
    tail_floor_fraction: float = 0.5
    organic_min_units: int = 1
    page_eligible_max_rank: int = 50


# ==============================================================================
# BUCKET 5: PAGE SCALING STAGES (applied in this order)
# ==============================================================================

@dataclass(frozen=True)
class ScalingPolicy:
    # (a) market-size expansion
    expansion_rank1_reference: float = 100_000.0
    expansion_page_reference: float = 200_000.0
    expansion_bounds: Tuple[float, float] = (1.0, 50.0)

    # (b) durable rank absorption
    durable_rank1_cap_pct: float = 0.11
    durable_top3_cap_pct: float = 0.425
    absorption_ranks: Tuple[int, int] = (4, 15)
    durable_max_total_units: int = 30_000
    durable_max_rank1_units: int = 6_000
    durable_rank1_overflow_ranks: Tuple[int, int] = (2, 10)

    # (c) consumable tail relaxation
    consumable_tail_rank: int = 15
    consumable_tail_decay: float = 0.3

    # (d) final benchmark alignment
    alignment_multiplier: float = 1.85

    # (e) BSR decay / cap
    bsr_cutoff: int = 300
    bsr_decay_scale: float = 120.0
    max_units_per_listing: int = 4_000


# ==============================================================================
# BUCKET 6: PARENT / CHILD
# ==============================================================================

@dataclass(frozen=True)
class ParentChildPolicy:
    review_offset: float = 10.0
    missing_rating_factor: float = 0.85
    price_weight_floor: float = 0.8


# ==============================================================================
# BUCKET 7: VALIDATION, HISTORY, BRANDS
# ==============================================================================

@dataclass(frozen=True)
class ValidationPolicy:
    sum_tolerance: float = 0.03            # fraction of target
    share_tolerance: float = 0.1           # percentage points
    revenue_mismatch_pct: float = 1.0
    unbranded_dominance_pct: float = 35.0
    branded_dominance_pct: float = 50.0


@dataclass(frozen=True)
class HistoryPolicy:
    current_weight: float = 0.6
    history_weight: float = 0.4
    min_points: int = 3
    lookback_days: int = 45


@dataclass(frozen=True)
class BrandPolicy:
    min_frequency: int = 2
    min_revenue_share_pct: float = 3.0
    zero_revenue_stand_in_units: float = 50.0    # units x price for listings left at zero


@dataclass(frozen=True)
class SnapshotPolicy:
    # (minimum total units, label), highest first
    demand_levels: Tuple[Tuple[float, str], ...] = (
        (300_000, "high"),
        (100_000, "medium"),
        (30_000, "low"),
    )
    lowest_demand_level: str = "very_low"
    top_brand_count: int = 5
    hidden_brand_buckets: Tuple[str, ...] = ("unknown", "generic", "unbranded")


# ==============================================================================
# MASTER POLICY
# ==============================================================================

@dataclass(frozen=True)
class AllocationPolicy:
    """
    Complete tuned-constant set for one engine run.

    Every stage receives this object. Nothing in the algorithm modules
    reads a module-level constant except PAGE_SIZE and ASIN_PATTERN defaults.
    """
    page_size: int = PAGE_SIZE
    asin_pattern: str = ASIN_PATTERN
    demand: DemandPolicy = field(default_factory=DemandPolicy)
    calibration: CalibrationPolicy = field(default_factory=CalibrationPolicy)
    allocation: AllocationPhasePolicy = field(default_factory=AllocationPhasePolicy)
    guardrails: GuardrailPolicy = field(default_factory=GuardrailPolicy)
    scaling: ScalingPolicy = field(default_factory=ScalingPolicy)
    parent_child: ParentChildPolicy = field(default_factory=ParentChildPolicy)
    validation: ValidationPolicy = field(default_factory=ValidationPolicy)
    history: HistoryPolicy = field(default_factory=HistoryPolicy)
    brands: BrandPolicy = field(default_factory=BrandPolicy)
    snapshot: SnapshotPolicy = field(default_factory=SnapshotPolicy)

    def __post_init__(self):
        """Reject policies that would make the stages meaningless."""
        if self.page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {self.page_size}")
        for name, (lo, hi) in (
            ("calibration.factor_bounds", self.calibration.factor_bounds),
            ("calibration.profile_multiplier_bounds", self.calibration.profile_multiplier_bounds),
            ("allocation.review_weight_bounds", self.allocation.review_weight_bounds),
            ("scaling.expansion_bounds", self.scaling.expansion_bounds),
        ):
            if lo > hi:
                raise ValueError(f"{name} lower bound {lo} exceeds upper bound {hi}")
        if self.scaling.max_units_per_listing < 0:
            raise ValueError("scaling.max_units_per_listing must be >= 0")
        if not 0 < self.allocation.anchor_share <= 1:
            raise ValueError("allocation.anchor_share must be in (0, 1]")


DEFAULT_POLICY = AllocationPolicy()
