"""
Page Cap Enforcer

Organic = products that NEVER appeared sponsored (ASIN-level aggregate).
Organic products are sorted by slot, truncated to the page size and given
dense ranks 1..n. Sponsored-anywhere products stay on the page unranked and
never backfill the organic set.
"""

import logging
from dataclasses import replace
from typing import List, Optional

from pageone.config import PAGE_SIZE
from pageone.models.product import CanonicalProduct
from pageone.telemetry import TelemetryRecorder, ensure_recorder

logger = logging.getLogger(__name__)


def enforce_page_cap(
    products: List[CanonicalProduct],
    page_size: int = PAGE_SIZE,
    telemetry: Optional[TelemetryRecorder] = None,
) -> List[CanonicalProduct]:
    telemetry = ensure_recorder(telemetry)

    organic = [p for p in products if not p.appears_sponsored]
    sponsored = [p for p in products if p.appears_sponsored]

    organic.sort(key=lambda p: (
        p.organic_slot if p.organic_slot is not None else p.page_position,
        p.asin,
    ))
    kept = organic[:page_size]
    dropped = organic[page_size:]

    ranked = [replace(p, organic_rank=rank) for rank, p in enumerate(kept, start=1)]
    unranked = [replace(p, organic_rank=None) for p in sponsored]

    capped = ranked + sorted(unranked, key=lambda p: (p.page_position, p.asin))

    telemetry.emit(
        "page_cap.applied",
        pre_organic=len(organic),
        post_organic=len(ranked),
        sponsored=len(unranked),
        dropped=len(dropped),
    )
    return capped
