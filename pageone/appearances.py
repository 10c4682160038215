"""
APPEARANCE NORMALIZER + CANONICALIZER

Raw search hits -> Appearance records -> one CanonicalProduct per identifier.

The sponsored aggregate (appears_sponsored / sponsored_positions) is computed
here, once, at the ASIN level. Downstream stages read these fields and never
look at a per-instance sponsored flag.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Union

from pageone.config import ASIN_PATTERN
from pageone.listing_signals import infer_fulfillment, resolve_brand
from pageone.models.listing import Appearance, Listing
from pageone.models.product import CanonicalProduct
from pageone.telemetry import TelemetryRecorder, ensure_recorder

logger = logging.getLogger(__name__)

RawListing = Union[Listing, Dict[str, Any]]


def coerce_listings(raw_listings: Iterable[RawListing]) -> List[Listing]:
    """Accept Listing objects or marketplace dicts."""
    listings = []
    for raw in raw_listings or []:
        if isinstance(raw, Listing):
            listings.append(raw)
        elif isinstance(raw, dict):
            listings.append(Listing.from_raw(raw))
        else:
            logger.debug(f"Skipping non-listing input of type {type(raw).__name__}")
    return listings


def normalize_appearances(
    listings: List[Listing],
    asin_pattern: str = ASIN_PATTERN,
    telemetry: Optional[TelemetryRecorder] = None,
) -> List[Appearance]:
    """
    One Appearance per listing with a valid identifier.

    Listings with no usable slot take their 1-based arrival index.
    """
    telemetry = ensure_recorder(telemetry)
    pattern = re.compile(asin_pattern)

    appearances = []
    dropped = []
    for index, listing in enumerate(listings, start=1):
        if not listing.asin or not pattern.match(listing.asin):
            dropped.append(listing.asin)
            continue
        slot = listing.slot if listing.slot is not None and listing.slot >= 1 else index
        appearances.append(Appearance(
            asin=listing.asin,
            slot=slot,
            is_sponsored=listing.is_sponsored,
            listing=listing,
        ))

    if dropped:
        telemetry.emit(
            "normalize.dropped_invalid",
            level=logging.DEBUG,
            count=len(dropped),
            sample=dropped[:5],
        )
    return appearances


def canonicalize(
    appearances: List[Appearance],
    telemetry: Optional[TelemetryRecorder] = None,
    raw_count: Optional[int] = None,
) -> List[CanonicalProduct]:
    """
    Merge repeat appearances into one product per identifier.

    organic_rank holds the lowest organic slot here; the page cap turns it
    into a dense rank. Output is ordered by page_position, then identifier.
    """
    telemetry = ensure_recorder(telemetry)

    grouped: Dict[str, List[Appearance]] = {}
    for appearance in appearances:
        grouped.setdefault(appearance.asin, []).append(appearance)

    products = []
    for asin, group in grouped.items():
        # Lowest slot wins; sponsored flag and then arrival break exact-slot ties
        ordered = sorted(group, key=lambda a: (a.slot, a.is_sponsored))
        best = ordered[0]

        organic_slots = [a.slot for a in group if not a.is_sponsored]
        sponsored_slots = tuple(sorted(a.slot for a in group if a.is_sponsored))
        organic_slot = min(organic_slots) if organic_slots else None

        listing = best.listing
        products.append(CanonicalProduct(
            asin=asin,
            page_position=best.slot,
            organic_rank=organic_slot,
            organic_slot=organic_slot,
            appears_sponsored=bool(sponsored_slots),
            sponsored_positions=sponsored_slots,
            appearance_count=len(group),
            algorithm_boosted=len(group) >= 2,
            price=listing.price if listing.price is not None else 0.0,
            rating=listing.rating,
            review_count=listing.review_count,
            bsr=listing.bsr,
            category=listing.category,
            variant_group=listing.variant_group,
            title=listing.title,
            fulfillment=infer_fulfillment(listing),
            brand=resolve_brand(listing),
        ))

    products.sort(key=lambda p: (p.page_position, p.asin))

    telemetry.emit(
        "canonicalize.complete",
        raw=raw_count if raw_count is not None else len(appearances),
        valid=len(appearances),
        deduped=len(products),
        duplicates_removed=len(appearances) - len(products),
    )
    return products
