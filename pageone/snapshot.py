"""
Page Snapshot

Persistable record of one built page: market aggregates plus one row per
product. Consumers store it, chart it, or export it; the engine never
persists it itself.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from pageone.config import DEFAULT_POLICY, SnapshotPolicy
from pageone.keyword_calibration import normalize_keyword
from pageone.models.market import MarketTotals
from pageone.models.product import CanonicalProduct, Fulfillment
from pageone.numeric import largest_remainder

logger = logging.getLogger(__name__)


def demand_level(total_units: float, policy: SnapshotPolicy) -> str:
    for minimum, label in policy.demand_levels:
        if total_units >= minimum:
            return label
    return policy.lowest_demand_level


def fulfillment_mix(products: List[CanonicalProduct]) -> Dict[str, int]:
    """Whole-percent share per fulfillment class; sums to 100 when non-empty."""
    classes = [f for f in Fulfillment]
    counts = [sum(1 for p in products if p.fulfillment is f) for f in classes]
    if not products:
        return {f.value: 0 for f in classes}
    parts = largest_remainder(counts, 100)
    return {f.value: pct for f, pct in zip(classes, parts)}


def brand_concentration(products: List[CanonicalProduct], policy: SnapshotPolicy) -> Dict[str, Any]:
    """
    Brand count (unknown bucket included) and top-N brand revenue share.

    Unknown/generic revenue stays in the denominator but never counts as a top brand.
    """
    revenue_by_brand: Dict[str, float] = {}
    for p in products:
        bucket = (p.brand.brand or "").strip().lower() or "unknown"
        if bucket in policy.hidden_brand_buckets:
            bucket = "unknown"
        revenue_by_brand[bucket] = revenue_by_brand.get(bucket, 0.0) + p.estimated_monthly_revenue

    total = sum(revenue_by_brand.values())
    visible = sorted(
        ((b, r) for b, r in revenue_by_brand.items() if b != "unknown"),
        key=lambda item: (-item[1], item[0]),
    )
    top = sum(r for _, r in visible[:policy.top_brand_count])
    return {
        "brand_count": len(revenue_by_brand),
        "top_brand_share_pct": round(top / total * 100, 1) if total > 0 else 0.0,
    }


def top_listing_share(products: List[CanonicalProduct], n: int = 3) -> float:
    shares = sorted((p.revenue_share_pct for p in products), reverse=True)
    return round(sum(shares[:n]), 2)


def _mean(values) -> Optional[float]:
    usable = [v for v in values if v is not None and v > 0]
    return round(float(np.mean(usable)), 2) if usable else None


@dataclass
class PageSnapshot:
    keyword: str
    totals: MarketTotals
    products: List[CanonicalProduct]
    marketplace: str = "US"
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    policy: SnapshotPolicy = field(default=DEFAULT_POLICY.snapshot, repr=False)

    @property
    def demand_level(self) -> str:
        return demand_level(self.totals.total_units, self.policy)

    def aggregates(self) -> Dict[str, Any]:
        organic = [p for p in self.products if p.organic_rank is not None]
        aggregates = {
            "total_monthly_units": self.totals.total_units,
            "total_monthly_revenue": self.totals.total_revenue,
            "product_count": len(self.products),
            "organic_count": len(organic),
            "sponsored_count": len(self.products) - len(organic),
            "algorithm_boosted_count": sum(1 for p in self.products if p.algorithm_boosted),
            "average_price": _mean(p.price for p in self.products),
            "average_rating": _mean(p.rating for p in self.products),
            "average_reviews": _mean(p.review_count for p in self.products),
            "average_bsr": _mean(p.bsr for p in self.products),
            "demand_level": self.demand_level,
            "market_shape": self.totals.shape.value,
            "top3_revenue_share_pct": top_listing_share(self.products, 3),
            "fulfillment_mix": fulfillment_mix(self.products),
        }
        aggregates.update(brand_concentration(self.products, self.policy))
        return aggregates

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyword": self.keyword,
            "marketplace": self.marketplace,
            "created_at": self.created_at,
            "aggregates": self.aggregates(),
            "totals": self.totals.to_dict(),
            "products": [p.to_dict() for p in self.products],
        }

    def to_dataframe(self) -> pd.DataFrame:
        """One row per product, brand fields flattened, ordered like the page."""
        rows = []
        for p in self.products:
            row = p.to_dict()
            brand = row.pop("brand")
            row["brand"] = brand["brand"]
            row["raw_brand"] = brand["raw_brand"]
            row["brand_status"] = brand["status"]
            row["sponsored_positions"] = ",".join(str(s) for s in p.sponsored_positions)
            row["keyword"] = self.keyword
            rows.append(row)

        df = pd.DataFrame(rows)
        if df.empty:
            return df
        df["organic_rank"] = df["organic_rank"].astype("Int64")
        return df.sort_values(["page_position", "asin"]).reset_index(drop=True)


def build_snapshot(
    products: List[CanonicalProduct],
    totals: MarketTotals,
    keyword: str,
    marketplace: str = "US",
    created_at: Optional[str] = None,
    policy: SnapshotPolicy = DEFAULT_POLICY.snapshot,
) -> PageSnapshot:
    snapshot = PageSnapshot(
        keyword=normalize_keyword(keyword),
        totals=totals,
        products=list(products),
        marketplace=marketplace,
        policy=policy,
    )
    if created_at:
        snapshot.created_at = created_at
    logger.info(
        f"Snapshot built for '{snapshot.keyword}': {len(products)} products, "
        f"{totals.total_units:,.0f} units, demand {snapshot.demand_level}"
    )
    return snapshot
