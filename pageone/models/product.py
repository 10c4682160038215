"""
Canonical Product Data Model

The single deduplicated representation of an identifier that appeared one
or more times on a results page, plus the demand the engine allocated to it.

Stages never mutate a CanonicalProduct; they return a copy via
dataclasses.replace() so every stage is independently testable.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class Fulfillment(Enum):
    """Who ships the order."""
    FBA = "FBA"            # Fulfilled by Amazon (Prime-eligible)
    FBM = "FBM"            # Fulfilled by merchant
    AMZ = "AMZ"            # Amazon Retail
    UNKNOWN = "UNKNOWN"    # Never defaulted to FBM


class BrandStatus(Enum):
    """Confidence tier of a brand resolution."""
    CANONICAL = "canonical"              # Stated by the source
    LOW_CONFIDENCE = "low_confidence"    # Parsed from the title
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class BrandResolution:
    raw_brand: Optional[str] = None
    brand: Optional[str] = None          # None once rejected by frequency validation
    status: BrandStatus = BrandStatus.UNKNOWN
    source: str = "fallback"             # "listing" | "metadata" | "title_parse" | "fallback"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "raw_brand": self.raw_brand,
            "brand": self.brand,
            "status": self.status.value,
            "source": self.source,
        }


@dataclass(frozen=True)
class CanonicalProduct:
    """
    One identifier on the page.

    organic_rank is dense (1..n) once the page cap has run; before that the
    canonicalizer stores the raw lowest organic slot there.
    """
    # Identity
    asin: str
    page_position: int                        # Best slot across all appearances
    organic_rank: Optional[int] = None        # None if not in the capped organic set
    organic_slot: Optional[int] = None        # Lowest non-sponsored slot seen

    # ASIN-level sponsored aggregate (never per-instance)
    appears_sponsored: bool = False
    sponsored_positions: Tuple[int, ...] = ()
    appearance_count: int = 1
    algorithm_boosted: bool = False

    # Representative listing signals
    price: float = 0.0
    rating: Optional[float] = None
    review_count: Optional[int] = None
    bsr: Optional[int] = None
    category: Optional[str] = None
    variant_group: Optional[str] = None
    title: Optional[str] = None
    fulfillment: Fulfillment = Fulfillment.UNKNOWN
    brand: BrandResolution = field(default_factory=BrandResolution)

    # Allocation
    estimated_monthly_units: int = 0
    estimated_monthly_revenue: float = 0.0
    revenue_share_pct: float = 0.0

    @property
    def is_organic(self) -> bool:
        return self.organic_rank is not None

    @property
    def effective_rank(self) -> int:
        """Organic rank if organic, else page position."""
        return self.organic_rank if self.organic_rank is not None else self.page_position

    @property
    def group_key(self) -> str:
        """Variant-group key, falling back to the identifier itself."""
        return self.variant_group or self.asin

    def with_units(self, units: int) -> "CanonicalProduct":
        """Copy with new units and revenue recomputed as units x price."""
        units = max(0, int(units))
        return replace(
            self,
            estimated_monthly_units=units,
            estimated_monthly_revenue=round(units * self.price, 2),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "asin": self.asin,
            "organic_rank": self.organic_rank,
            "page_position": self.page_position,
            "organic_slot": self.organic_slot,
            "appears_sponsored": self.appears_sponsored,
            "sponsored_positions": list(self.sponsored_positions),
            "appearance_count": self.appearance_count,
            "algorithm_boosted": self.algorithm_boosted,
            "price": self.price,
            "rating": self.rating,
            "review_count": self.review_count,
            "bsr": self.bsr,
            "category": self.category,
            "variant_group": self.variant_group,
            "title": self.title,
            "fulfillment": self.fulfillment.value,
            "brand": self.brand.to_dict(),
            "estimated_monthly_units": self.estimated_monthly_units,
            "estimated_monthly_revenue": self.estimated_monthly_revenue,
            "revenue_share_pct": self.revenue_share_pct,
        }
