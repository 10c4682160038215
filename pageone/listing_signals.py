"""
LISTING SIGNALS - Fulfillment class and brand resolution

Two per-listing signals that ride along with the allocation:

1. FULFILLMENT: Amazon Retail > FBA (Prime or stated FBA) > FBM (stated only).
   Missing data is UNKNOWN, never silently FBM.

2. BRAND: stated brand is canonical; a brand parsed from the title is
   low-confidence; otherwise unknown. Title-parsed junk ("Under Sink Organizer")
   is removed page-wide by frequency validation once revenue is known.
"""

import logging
import re
from dataclasses import replace
from typing import Dict, List, Optional

from pageone.config import BrandPolicy
from pageone.models.listing import Listing
from pageone.models.product import (
    BrandResolution,
    BrandStatus,
    CanonicalProduct,
    Fulfillment,
)
from pageone.telemetry import TelemetryRecorder, ensure_recorder

logger = logging.getLogger(__name__)

AMAZON_SELLER_NAMES = {"amazon", "amazon.com", "amazon retail"}

# Known brand spellings seen in titles
BRAND_NORMALIZATIONS: Dict[str, str] = {
    "amazon basics": "Amazon Basics",
    "amazonbasics": "Amazon Basics",
    "bella": "BELLA",
    "chefman": "Chefman",
    "cuisinart": "Cuisinart",
    "hamilton beach": "Hamilton Beach",
    "instant pot": "Instant Pot",
    "kitchenaid": "KitchenAid",
    "ninja": "Ninja",
    "oster": "Oster",
    "presto": "Presto",
    "sunbeam": "Sunbeam",
}

_CAPITALIZED_LEAD = re.compile(r"^([A-Z][a-zA-Z]+(?:\s+[A-Z][a-zA-Z]+){0,2})")
_ALL_CAPS_LEAD = re.compile(r"^([A-Z]{2,}(?:\s+[A-Z]{2,})?)")


# ==============================================================================
# FULFILLMENT
# ==============================================================================

def infer_fulfillment(listing: Listing) -> Fulfillment:
    """Classify who ships the listing."""
    seller = (listing.seller or "").strip().lower()
    brand = (listing.brand or "").strip().lower()
    hint = (listing.fulfillment_hint or "").strip().upper()

    if seller in AMAZON_SELLER_NAMES or brand == "amazon" or hint in {"AMAZON", "AMZ"}:
        return Fulfillment.AMZ
    if listing.is_prime is True or hint == "FBA":
        return Fulfillment.FBA
    if hint == "FBM":
        return Fulfillment.FBM
    return Fulfillment.UNKNOWN


# ==============================================================================
# BRAND RESOLUTION
# ==============================================================================

def extract_brand_from_title(title: Optional[str]) -> Optional[str]:
    """Leading 1-3 capitalized words, or a leading ALL-CAPS token. No lookups."""
    if not title or not title.strip():
        return None
    title = title.strip()

    match = _CAPITALIZED_LEAD.match(title)
    if match:
        candidate = match.group(1).strip()
        return BRAND_NORMALIZATIONS.get(candidate.lower(), candidate)

    match = _ALL_CAPS_LEAD.match(title)
    if match:
        return match.group(1).strip()
    return None


def resolve_brand(listing: Listing) -> BrandResolution:
    stated = (listing.brand or "").strip()
    if stated:
        source = "metadata" if listing.brand_source == "metadata" else "listing"
        return BrandResolution(
            raw_brand=stated,
            brand=stated,
            status=BrandStatus.CANONICAL,
            source=source,
        )

    parsed = extract_brand_from_title(listing.title)
    if parsed:
        return BrandResolution(
            raw_brand=parsed,
            brand=parsed,
            status=BrandStatus.LOW_CONFIDENCE,
            source="title_parse",
        )

    return BrandResolution()


def _revenue_for_brand_check(product: CanonicalProduct, policy: BrandPolicy) -> float:
    if product.estimated_monthly_revenue > 0:
        return product.estimated_monthly_revenue
    # Conservative stand-in for listings the allocator left at zero
    return product.price * policy.zero_revenue_stand_in_units if product.price > 0 else 0.0


def validate_brand_frequency(
    products: List[CanonicalProduct],
    policy: BrandPolicy,
    telemetry: Optional[TelemetryRecorder] = None,
) -> List[CanonicalProduct]:
    """
    Drop brands that are not corroborated on the page.

    A brand survives if it appears on >= min_frequency products, OR any of its
    products got it from metadata, OR it holds >= min_revenue_share_pct of page
    revenue. Rejected brands keep raw_brand but lose brand and drop to UNKNOWN.
    """
    telemetry = ensure_recorder(telemetry)

    by_brand: Dict[str, List[CanonicalProduct]] = {}
    for product in products:
        if product.brand.brand:
            by_brand.setdefault(product.brand.brand, []).append(product)

    page_revenue = sum(_revenue_for_brand_check(p, policy) for p in products)

    valid = set()
    for brand, items in by_brand.items():
        if len(items) >= policy.min_frequency:
            valid.add(brand)
        elif any(p.brand.source == "metadata" for p in items):
            valid.add(brand)
        elif page_revenue > 0:
            share = sum(_revenue_for_brand_check(p, policy) for p in items) / page_revenue * 100
            if share >= policy.min_revenue_share_pct:
                valid.add(brand)

    rejected = sorted(set(by_brand) - valid)
    resolved = []
    for product in products:
        if product.brand.brand and product.brand.brand in rejected:
            product = replace(
                product,
                brand=replace(product.brand, brand=None, status=BrandStatus.UNKNOWN),
            )
        resolved.append(product)

    telemetry.emit(
        "brands.resolved",
        brands_before=len(by_brand),
        brands_after=len(valid),
        removed=rejected[:10],
    )
    return resolved
