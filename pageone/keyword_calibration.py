"""
KEYWORD CALIBRATION - Optional per-keyword profile applied to a built page

Rules:
- The profile store is external and read-only; it is awaited with a timeout
- Any lookup failure or timeout means "no profile", never an error
- A found profile scales every listing by the same clamped multipliers,
  then the page is renormalized so pre/post totals are conserved
- No profile => products unchanged, multiplier 1.0, confidence "low"
"""

import asyncio
import inspect
import logging
import re
from dataclasses import replace
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Tuple, Union

from pageone.allocator import with_revenue_shares
from pageone.config import DEFAULT_POLICY, CalibrationPolicy
from pageone.demand_estimator import majority_category
from pageone.errors import ProfileLookupError
from pageone.models.calibration import CalibrationProfile, CalibrationResult, IntentType
from pageone.models.listing import Listing
from pageone.models.product import CanonicalProduct
from pageone.numeric import clamp, largest_remainder
from pageone.telemetry import TelemetryRecorder, ensure_recorder

logger = logging.getLogger(__name__)

ProfileLookup = Callable[[str], Awaitable[Optional[CalibrationProfile]]]


# ==============================================================================
# KEYWORD INTENT
# ==============================================================================

INTENT_PATTERNS: Tuple[Tuple[IntentType, "re.Pattern"], ...] = (
    (IntentType.BRAND, re.compile(
        r"\b(apple|samsung|sony|nike|adidas|coca.?cola|pepsi|dell|hp|lenovo|lg|philips|bosch"
        r"|dyson|shark|instant.?pot|ninja|kitchenaid|cuisinart)\b")),
    (IntentType.REPLACEMENT, re.compile(
        r"\b(replacement|refill|replacement for|compatible with|for [a-z]+)\b")),
    (IntentType.ACCESSORY, re.compile(
        r"\b(accessory|case|cover|stand|holder|mount|adapter|cable|charger|protector|screen protector)\b")),
    (IntentType.APPLIANCE, re.compile(
        r"\b(air fryer|microwave|blender|mixer|toaster|coffee maker|kettle|vacuum|washer|dryer"
        r"|refrigerator|oven|stove)\b")),
    (IntentType.CONSUMABLE, re.compile(
        r"\b(paper|tissue|wipes|soap|shampoo|conditioner|toothpaste|razor|blade|filter|cartridge|ink|toner)\b")),
)


def normalize_keyword(keyword: str) -> str:
    """Lowercase, trimmed, inner whitespace collapsed."""
    return re.sub(r"\s+", " ", (keyword or "").strip().lower())


def infer_intent(keyword: str) -> IntentType:
    normalized = normalize_keyword(keyword)
    for intent, pattern in INTENT_PATTERNS:
        if pattern.search(normalized):
            return intent
    return IntentType.GENERIC


def resolve_category(
    category: Optional[str],
    listings: Optional[Iterable[Union[Listing, dict]]] = None,
) -> Optional[str]:
    if category and category.strip():
        return category.strip()
    hints = []
    for listing in listings or []:
        if isinstance(listing, Listing):
            hints.append(listing.category)
        elif isinstance(listing, dict):
            hints.append(listing.get("main_category") or listing.get("category") or listing.get("category_hint"))
    return majority_category(hints)


# ==============================================================================
# PROFILE LOOKUP
# ==============================================================================

async def fetch_profile(
    profile_lookup: Optional[ProfileLookup],
    keyword: str,
    timeout: float,
) -> Optional[CalibrationProfile]:
    """Await the lookup with a timeout. Failure of any kind is 'not found'."""
    if profile_lookup is None:
        return None
    try:
        result = profile_lookup(keyword)
        if inspect.isawaitable(result):
            result = await asyncio.wait_for(result, timeout=timeout)
        if isinstance(result, dict):
            result = CalibrationProfile.from_row(result)
        return result
    except asyncio.TimeoutError:
        logger.warning(f"Calibration profile lookup timed out after {timeout}s for '{keyword}'")
        return None
    except ProfileLookupError as e:
        logger.warning(f"Calibration profile store error for '{keyword}': {e}")
        return None
    except Exception as e:
        logger.warning(f"Calibration profile lookup failed for '{keyword}': {e}")
        return None


# ==============================================================================
# APPLICATION
# ==============================================================================

def _scale_and_conserve(
    products: List[CanonicalProduct],
    units_multiplier: float,
    revenue_multiplier: float,
) -> List[CanonicalProduct]:
    keys = [(p.page_position, p.asin) for p in products]
    original_units = sum(p.estimated_monthly_units for p in products)
    original_revenue_cents = int(round(sum(p.estimated_monthly_revenue for p in products) * 100))

    scaled_units = [p.estimated_monthly_units * units_multiplier for p in products]
    scaled_revenue = [p.estimated_monthly_revenue * revenue_multiplier for p in products]

    units = largest_remainder(scaled_units, original_units, keys) if original_units > 0 else [0] * len(products)
    cents = largest_remainder(scaled_revenue, original_revenue_cents, keys) if original_revenue_cents > 0 else [0] * len(products)

    return [
        replace(p, estimated_monthly_units=u, estimated_monthly_revenue=c / 100)
        for p, u, c in zip(products, units, cents)
    ]


async def apply_calibration(
    products: List[CanonicalProduct],
    keyword: str,
    category: Optional[str] = None,
    profile_lookup: Optional[ProfileLookup] = None,
    listings: Optional[Iterable[Union[Listing, dict]]] = None,
    policy: CalibrationPolicy = DEFAULT_POLICY.calibration,
    telemetry: Optional[TelemetryRecorder] = None,
) -> Tuple[List[CanonicalProduct], CalibrationResult]:
    """
    Apply an optional keyword calibration profile to a built page.

    Returns the (possibly) calibrated products and what was applied.
    """
    telemetry = ensure_recorder(telemetry)
    normalized = normalize_keyword(keyword)
    intent = infer_intent(normalized)
    resolved_category = resolve_category(category, listings)

    default = CalibrationResult(
        intent=intent,
        category=resolved_category,
        normalized_keyword=normalized,
    )

    if not products or not resolved_category:
        telemetry.emit(
            "calibration.profile_skipped",
            keyword=normalized,
            reason="no_products" if not products else "no_category",
        )
        return list(products or []), default

    profile = await fetch_profile(profile_lookup, normalized, policy.profile_lookup_timeout)
    if profile is None:
        telemetry.emit(
            "calibration.profile_absent",
            keyword=normalized,
            category=resolved_category,
            intent=intent.value,
        )
        return list(products), default

    lo, hi = policy.profile_multiplier_bounds
    revenue_multiplier = clamp(float(profile.revenue_multiplier), lo, hi)
    units_multiplier = clamp(float(profile.units_multiplier), lo, hi)

    calibrated = with_revenue_shares(_scale_and_conserve(list(products), units_multiplier, revenue_multiplier))

    result = CalibrationResult(
        applied=True,
        revenue_multiplier=revenue_multiplier,
        units_multiplier=units_multiplier,
        confidence=profile.confidence,
        source="profile",
        intent=intent,
        category=resolved_category,
        normalized_keyword=normalized,
    )
    telemetry.emit(
        "calibration.profile_applied",
        keyword=normalized,
        category=resolved_category,
        intent=intent.value,
        revenue_multiplier=revenue_multiplier,
        units_multiplier=units_multiplier,
        confidence=profile.confidence,
        units_total=sum(p.estimated_monthly_units for p in calibrated),
        revenue_total=round(sum(p.estimated_monthly_revenue for p in calibrated), 2),
    )
    return calibrated, result


def apply_calibration_sync(*args: Any, **kwargs: Any) -> Tuple[List[CanonicalProduct], CalibrationResult]:
    """Synchronous wrapper for callers without an event loop."""
    return asyncio.run(apply_calibration(*args, **kwargs))
