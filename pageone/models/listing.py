"""
Listing Data Models

Input side of the engine: one Listing per search-result slot, and the
lightweight Appearance record derived from it. Marketplace payloads use
many field spellings, so Listing.from_raw() accepts the common aliases.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
import re


def _to_float(value: Any) -> Optional[float]:
    """Parse numbers, '$1,299.00' strings and {'value': x} dicts."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, dict):
        return _to_float(value.get("value", value.get("raw")))
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = re.sub(r"[^0-9.\-]", "", value)
        if not cleaned or cleaned in {".", "-"}:
            return None
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


def _to_int(value: Any) -> Optional[int]:
    if isinstance(value, dict):
        value = value.get("count", value.get("rank"))
    number = _to_float(value)
    if number is None:
        return None
    return int(number)


def _first(raw: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


@dataclass(frozen=True)
class Listing:
    """
    One raw search hit on the results page.

    The identifier is kept as received (trimmed, upper-cased); validity is
    decided by the appearance normalizer, never here.
    """
    asin: str
    slot: Optional[int]                   # 1-based page slot (organic + sponsored)
    is_sponsored: bool = False
    price: Optional[float] = None
    rating: Optional[float] = None        # 0-5 stars
    review_count: Optional[int] = None
    category: Optional[str] = None        # category hint from the search result
    variant_group: Optional[str] = None   # parent ASIN / variation family key

    # Optional enrichment signals
    title: Optional[str] = None
    brand: Optional[str] = None
    brand_source: Optional[str] = None    # "metadata" when brand came from a catalog API
    seller: Optional[str] = None
    is_prime: Optional[bool] = None
    fulfillment_hint: Optional[str] = None  # "FBA" | "FBM" if the source states it
    bsr: Optional[int] = None             # main-category best seller rank

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "Listing":
        """Build a Listing from a marketplace search-result dict."""
        asin = _first(raw, "asin", "ASIN") or ""

        bsr = None
        ranks = raw.get("bestsellers_rank")
        if isinstance(ranks, list) and ranks:
            bsr = _to_int(ranks[0].get("rank") if isinstance(ranks[0], dict) else ranks[0])
        if bsr is None:
            bsr = _to_int(_first(raw, "main_category_bsr", "bsr", "BSR"))

        sponsored = _first(raw, "is_sponsored", "isSponsored", "sponsored", "IsSponsored")

        rating = _to_float(_first(raw, "rating", "Rating"))
        if rating is not None and not 0 <= rating <= 5:
            rating = None

        review_count = _to_int(_first(raw, "review_count", "reviews", "ratings_total", "Reviews"))
        if review_count is not None and review_count < 0:
            review_count = None

        price = _to_float(_first(raw, "price", "Price"))
        if price is not None and price < 0:
            price = None

        is_prime = raw.get("is_prime")

        return cls(
            asin=str(asin).strip().upper(),
            slot=_to_int(_first(raw, "position", "slot", "Position")),
            is_sponsored=bool(sponsored),
            price=price,
            rating=rating,
            review_count=review_count,
            category=_first(raw, "main_category", "category", "category_hint"),
            variant_group=_first(raw, "variant_group", "parent_asin", "parentAsin"),
            title=_first(raw, "title", "Title"),
            brand=_first(raw, "brand", "Brand"),
            brand_source=raw.get("brand_source"),
            seller=raw.get("seller"),
            is_prime=is_prime if isinstance(is_prime, bool) else None,
            fulfillment_hint=_first(raw, "fulfillment", "fulfillment_type"),
            bsr=bsr if bsr is not None and bsr > 0 else None,
        )


@dataclass(frozen=True)
class Appearance:
    """(identifier, slot, sponsored) - one per valid Listing, many per identifier."""
    asin: str
    slot: int
    is_sponsored: bool
    listing: Listing
