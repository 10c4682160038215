"""
External Stores - Calibration profiles and listing history

Both are read-only capabilities the engine awaits:
    profile lookup : keyword      -> CalibrationProfile | None
    history lookup : [asin, ...]  -> {asin: HistoryAverage}

Store failures are logged and reported as "nothing found"; they never
propagate into the engine.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import httpx
import pandas as pd
from supabase import Client, create_client

from pageone import settings
from pageone.config import DEFAULT_POLICY, HistoryPolicy
from pageone.errors import ProfileLookupError
from pageone.history_blend import HistoryAverage
from pageone.keyword_calibration import normalize_keyword
from pageone.models.calibration import CalibrationProfile

logger = logging.getLogger(__name__)


def create_supabase_client(url: Optional[str] = None, key: Optional[str] = None) -> Client:
    """
    Supabase client with a stable HTTP session.

    Raises ValueError when credentials are missing.
    """
    url = url or settings.SUPABASE_URL
    key = key or settings.SUPABASE_SERVICE_KEY
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")

    stable_session = httpx.Client(
        http2=False,
        timeout=httpx.Timeout(60.0, connect=10.0)
    )
    client = create_client(url, key)
    client.postgrest.session = stable_session
    return client


# ==============================================================================
# CALIBRATION PROFILES
# ==============================================================================

class StaticProfileStore:
    """In-memory profiles keyed by normalized keyword."""

    def __init__(self, profiles: Optional[List[CalibrationProfile]] = None):
        self._profiles: Dict[str, CalibrationProfile] = {
            normalize_keyword(p.keyword): p for p in (profiles or [])
        }

    async def __call__(self, keyword: str) -> Optional[CalibrationProfile]:
        return self._profiles.get(normalize_keyword(keyword))


class SupabaseProfileStore:
    """Profiles from the keyword calibration table, one row per keyword."""

    def __init__(self, client: Client, table: str = settings.PROFILE_TABLE):
        self.client = client
        self.table = table

    def fetch(self, keyword: str) -> Optional[CalibrationProfile]:
        try:
            result = self.client.table(self.table) \
                .select("*") \
                .eq("keyword", normalize_keyword(keyword)) \
                .limit(1) \
                .execute()
        except Exception as e:
            logger.error(f"Failed to fetch calibration profile for '{keyword}': {e}")
            raise ProfileLookupError(f"profile store unavailable: {e}") from e

        if not result.data:
            return None
        return CalibrationProfile.from_row(result.data[0])

    async def __call__(self, keyword: str) -> Optional[CalibrationProfile]:
        return await asyncio.to_thread(self.fetch, keyword)


# ==============================================================================
# LISTING HISTORY
# ==============================================================================

def summarize_history(rows: List[Dict], policy: HistoryPolicy = DEFAULT_POLICY.history) -> Dict[str, HistoryAverage]:
    """Average positive unit estimates per ASIN over the stored rows."""
    if not rows:
        return {}
    df = pd.DataFrame(rows)
    if "asin" not in df.columns or "estimated_monthly_units" not in df.columns:
        return {}

    df["estimated_monthly_units"] = pd.to_numeric(df["estimated_monthly_units"], errors="coerce")
    df = df[df["estimated_monthly_units"] > 0]
    if df.empty:
        return {}

    grouped = df.groupby("asin")["estimated_monthly_units"].agg(["mean", "count"])
    return {
        asin: HistoryAverage(avg_units=float(row["mean"]), points=int(row["count"]))
        for asin, row in grouped.iterrows()
    }


class SupabaseHistoryStore:
    """Trailing per-ASIN unit estimates from previously persisted snapshots."""

    def __init__(
        self,
        client: Client,
        table: str = settings.HISTORY_TABLE,
        policy: HistoryPolicy = DEFAULT_POLICY.history,
    ):
        self.client = client
        self.table = table
        self.policy = policy

    def fetch(self, asins: List[str]) -> Dict[str, HistoryAverage]:
        if not asins:
            return {}
        since = (datetime.now(timezone.utc) - timedelta(days=self.policy.lookback_days)).isoformat()
        try:
            result = self.client.table(self.table) \
                .select("asin, estimated_monthly_units, last_updated") \
                .in_("asin", list(asins)) \
                .gte("last_updated", since) \
                .execute()
        except Exception as e:
            logger.error(f"Failed to fetch listing history: {e}")
            return {}
        return summarize_history(result.data or [], self.policy)

    async def __call__(self, asins: List[str]) -> Dict[str, HistoryAverage]:
        return await asyncio.to_thread(self.fetch, asins)
