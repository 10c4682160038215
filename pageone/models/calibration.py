"""
Keyword Calibration Data Models

CalibrationProfile is owned by an external store and is read-only here.
CalibrationResult reports what (if anything) was applied to a page.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class IntentType(Enum):
    """Shopper-intent archetype inferred from the keyword text."""
    BRAND = "brand"
    REPLACEMENT = "replacement"
    ACCESSORY = "accessory"
    APPLIANCE = "appliance"
    CONSUMABLE = "consumable"
    GENERIC = "generic"


@dataclass(frozen=True)
class CalibrationProfile:
    keyword: str
    intent: str = IntentType.GENERIC.value
    category: Optional[str] = None
    revenue_multiplier: float = 1.0
    units_multiplier: float = 1.0
    confidence: str = "low"

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CalibrationProfile":
        """Build from a store row (column names as stored)."""
        return cls(
            keyword=row.get("keyword", ""),
            intent=row.get("intent_type") or row.get("intent") or IntentType.GENERIC.value,
            category=row.get("category"),
            revenue_multiplier=float(row.get("revenue_multiplier") or 1.0),
            units_multiplier=float(row.get("units_multiplier") or 1.0),
            confidence=row.get("confidence") or "low",
        )


@dataclass(frozen=True)
class CalibrationResult:
    applied: bool = False
    revenue_multiplier: float = 1.0
    units_multiplier: float = 1.0
    confidence: str = "low"
    source: str = "default"             # "profile" | "default"
    intent: IntentType = IntentType.GENERIC
    category: Optional[str] = None
    normalized_keyword: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "applied": self.applied,
            "revenue_multiplier": self.revenue_multiplier,
            "units_multiplier": self.units_multiplier,
            "confidence": self.confidence,
            "source": self.source,
            "intent": self.intent.value,
            "category": self.category,
            "normalized_keyword": self.normalized_keyword,
        }
