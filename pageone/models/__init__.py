"""Data structures shared by every pipeline stage."""

from pageone.models.listing import Listing, Appearance
from pageone.models.product import (
    BrandResolution,
    BrandStatus,
    CanonicalProduct,
    Fulfillment,
)
from pageone.models.market import (
    CompetitionLevel,
    MarketShape,
    MarketTotals,
    PageState,
    PriceStats,
)
from pageone.models.calibration import CalibrationProfile, CalibrationResult, IntentType

__all__ = [
    "Listing",
    "Appearance",
    "BrandResolution",
    "BrandStatus",
    "CanonicalProduct",
    "Fulfillment",
    "CompetitionLevel",
    "MarketShape",
    "MarketTotals",
    "PageState",
    "PriceStats",
    "CalibrationProfile",
    "CalibrationResult",
    "IntentType",
]
