"""
PageOne Allocation Pipeline
===========================
Runs the page-one engine over a saved search-results dump.

This pipeline:
1. Loads raw search hits from a JSON file
2. Builds the allocated page (canonicalize, cap, size, allocate, scale)
3. Optionally applies a keyword calibration profile and history blend (Supabase)
4. Writes the snapshot as JSON and, optionally, a per-product CSV

Usage: python pipelines/run_page_one.py --input results.json --keyword "air fryer"
"""

import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

# Setup path for imports
ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from pageone import settings
from pageone.config import DEFAULT_POLICY, AllocationPolicy
from pageone.errors import HardInvariantViolation
from pageone.history_blend import blend_with_history
from pageone.keyword_calibration import apply_calibration
from pageone.pipeline import build_page_report
from pageone.snapshot import PageSnapshot, build_snapshot

logger = logging.getLogger(__name__)

# Keys marketplace dumps use for the hit list
RESULT_KEYS = ("search_results", "organic_results", "results", "listings")


def load_listings(path: Path) -> List[Dict[str, Any]]:
    """Read a JSON dump: either a bare list of hits or an object wrapping one."""
    with open(path, "r", encoding="utf-8") as f:
        payload = json.load(f)

    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in RESULT_KEYS:
            if isinstance(payload.get(key), list):
                return payload[key]
    raise ValueError(f"No listing array found in {path} (expected a list or one of {RESULT_KEYS})")


def policy_from_settings(policy: AllocationPolicy = DEFAULT_POLICY) -> AllocationPolicy:
    return replace(
        policy,
        calibration=replace(
            policy.calibration,
            profile_lookup_timeout=settings.PROFILE_LOOKUP_TIMEOUT_SECONDS,
        ),
    )


async def run_page_one(
    listings: List[Dict[str, Any]],
    keyword: str,
    category: Optional[str] = None,
    search_volume_low: Optional[float] = None,
    search_volume_high: Optional[float] = None,
    profile_lookup=None,
    history_lookup=None,
    policy: AllocationPolicy = DEFAULT_POLICY,
) -> PageSnapshot:
    result = build_page_report(listings, search_volume_low, search_volume_high, policy)
    products, calibration = await apply_calibration(
        result.products,
        keyword,
        category=category,
        profile_lookup=profile_lookup,
        listings=listings,
        policy=policy.calibration,
        telemetry=result.telemetry,
    )
    products = await blend_with_history(products, history_lookup, policy, result.telemetry)

    totals = replace(
        result.totals,
        total_units=float(sum(p.estimated_monthly_units for p in products)),
        total_revenue=round(sum(p.estimated_monthly_revenue for p in products), 2),
    )
    logger.info(
        f"Calibration source={calibration.source} intent={calibration.intent.value} "
        f"confidence={calibration.confidence}"
    )
    return build_snapshot(products, totals, keyword, policy=policy.snapshot)


def main(argv: Optional[List[str]] = None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Allocate page-one demand for a saved keyword search")
    parser.add_argument("--input", required=True, type=Path, help="JSON file of raw search hits")
    parser.add_argument("--keyword", required=True, help="Search keyword the hits came from")
    parser.add_argument("--category", help="Category override (else majority of listing hints)")
    parser.add_argument("--sv-low", type=float, help="Search volume lower bound (optional)")
    parser.add_argument("--sv-high", type=float, help="Search volume upper bound (optional)")
    parser.add_argument("--use-supabase", action="store_true", help="Read calibration profiles and history from Supabase")
    parser.add_argument("--output", type=Path, help="Write snapshot JSON here (default: stdout)")
    parser.add_argument("--csv", type=Path, help="Also write a per-product CSV")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    profile_lookup = history_lookup = None
    if args.use_supabase:
        from pageone.stores import SupabaseHistoryStore, SupabaseProfileStore, create_supabase_client
        client = create_supabase_client()
        profile_lookup = SupabaseProfileStore(client)
        history_lookup = SupabaseHistoryStore(client)

    try:
        listings = load_listings(args.input)
        snapshot = asyncio.run(run_page_one(
            listings,
            args.keyword,
            category=args.category,
            search_volume_low=args.sv_low,
            search_volume_high=args.sv_high,
            profile_lookup=profile_lookup,
            history_lookup=history_lookup,
            policy=policy_from_settings(),
        ))
    except HardInvariantViolation as e:
        logger.error(f"Market data unavailable: {e} {e.details}")
        return 1
    except (OSError, ValueError) as e:
        logger.error(f"Could not load {args.input}: {e}")
        return 1

    body = json.dumps(snapshot.to_dict(), indent=2)
    if args.output:
        args.output.write_text(body, encoding="utf-8")
        logger.info(f"Snapshot written to {args.output}")
    else:
        print(body)

    if args.csv:
        snapshot.to_dataframe().to_csv(args.csv, index=False)
        logger.info(f"Product table written to {args.csv}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
