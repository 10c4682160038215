"""
Market-Level Data Models

MarketTotals is the page-wide target the allocator distributes.
PageState is the immutable snapshot handed from one pipeline stage to the next.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pageone.models.product import CanonicalProduct


class MarketShape(Enum):
    """Coarse purchase-velocity classification."""
    DURABLE = "durable"          # High-ticket, bought rarely
    HYBRID = "hybrid"
    CONSUMABLE = "consumable"    # Cheap, high-velocity repeat purchase


class CompetitionLevel(Enum):
    LOW = "low_competition"
    MEDIUM = "medium_competition"
    HIGH = "high_competition"


@dataclass(frozen=True)
class PriceStats:
    min_price: float = 0.0
    avg_price: float = 0.0
    max_price: float = 0.0
    median_price: float = 0.0

    @property
    def band(self) -> Tuple[float, float]:
        return (self.min_price, self.max_price)

    @property
    def band_midpoint(self) -> float:
        return (self.min_price + self.max_price) / 2


@dataclass(frozen=True)
class MarketTotals:
    """Page-wide target units/revenue plus the context that produced them."""
    total_units: float = 0.0
    total_revenue: float = 0.0
    shape: MarketShape = MarketShape.HYBRID
    category: Optional[str] = None
    price: PriceStats = field(default_factory=PriceStats)

    # Calibration context
    raw_units: float = 0.0
    raw_revenue: float = 0.0
    calibrated_units: float = 0.0        # Before the scaling stages moved the total
    calibrated_revenue: float = 0.0
    competition_level: CompetitionLevel = CompetitionLevel.MEDIUM
    calibration_factor: float = 1.0
    confidence: str = "Low"
    confidence_reason: str = ""

    # External search-volume bounds, if the caller had them
    search_volume_low: Optional[float] = None
    search_volume_high: Optional[float] = None

    @property
    def effective_search_volume(self) -> Optional[float]:
        bounds = [v for v in (self.search_volume_low, self.search_volume_high) if v is not None]
        if not bounds:
            return None
        return sum(bounds) / len(bounds)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_units": self.total_units,
            "total_revenue": self.total_revenue,
            "shape": self.shape.value,
            "category": self.category,
            "min_price": self.price.min_price,
            "avg_price": self.price.avg_price,
            "max_price": self.price.max_price,
            "median_price": self.price.median_price,
            "raw_units": self.raw_units,
            "raw_revenue": self.raw_revenue,
            "calibrated_units": self.calibrated_units,
            "calibrated_revenue": self.calibrated_revenue,
            "competition_level": self.competition_level.value,
            "calibration_factor": self.calibration_factor,
            "confidence": self.confidence,
            "confidence_reason": self.confidence_reason,
            "search_volume_low": self.search_volume_low,
            "search_volume_high": self.search_volume_high,
        }


@dataclass(frozen=True)
class PageState:
    """
    Products plus running totals, passed between stages.

    target_units / target_revenue start at the calibrated MarketTotals and are
    moved only by stages that intentionally change the page total.
    """
    products: Tuple[CanonicalProduct, ...]
    totals: MarketTotals
    target_units: float
    target_revenue: float
    tail_floor: float = 0.0      # Phase-2 per-listing tail floor, read by the guardrails
    forced_tail: Tuple[str, ...] = ()   # Listings lifted only by the tail minimum

    @classmethod
    def start(cls, products: List[CanonicalProduct], totals: MarketTotals) -> "PageState":
        return cls(
            products=tuple(products),
            totals=totals,
            target_units=totals.total_units,
            target_revenue=totals.total_revenue,
        )

    @property
    def units_sum(self) -> int:
        return sum(p.estimated_monthly_units for p in self.products)

    @property
    def revenue_sum(self) -> float:
        return sum(p.estimated_monthly_revenue for p in self.products)

    @property
    def organic(self) -> List[CanonicalProduct]:
        return [p for p in self.products if p.organic_rank is not None]

    def with_products(self, products, retarget: bool = False) -> "PageState":
        """Swap in new products; retarget=True makes their sums the new running totals."""
        products = tuple(products)
        if not retarget:
            return replace(self, products=products)
        return replace(
            self,
            products=products,
            target_units=float(sum(p.estimated_monthly_units for p in products)),
            target_revenue=round(sum(p.estimated_monthly_revenue for p in products), 2),
        )
