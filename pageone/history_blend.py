"""
History Blend

Optionally pulls each estimate toward the listing's trailing average from
an external history store:

    blended = 0.6 x current + 0.4 x history_avg     (needs >= 3 points)

History may move an estimate but never null it. The store is awaited once
for the whole page; failures mean "no history".
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Union

from pageone.allocator import with_revenue_shares
from pageone.config import DEFAULT_POLICY, AllocationPolicy
from pageone.guardrails import guardrail_minimum
from pageone.models.product import CanonicalProduct
from pageone.numeric import round_half_up
from pageone.telemetry import TelemetryRecorder, ensure_recorder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryAverage:
    avg_units: float
    points: int


HistoryValue = Union[HistoryAverage, float, int]
HistoryLookup = Callable[[List[str]], Awaitable[Dict[str, HistoryValue]]]


def _as_average(value: HistoryValue, min_points: int) -> Optional[HistoryAverage]:
    if isinstance(value, HistoryAverage):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # Bare averages are trusted as-is
        return HistoryAverage(avg_units=float(value), points=min_points)
    return None


def blend_units(current: int, history: HistoryAverage, policy: AllocationPolicy) -> int:
    rules = policy.history
    if history.points < rules.min_points or history.avg_units <= 0:
        return current
    return round_half_up(rules.current_weight * current + rules.history_weight * history.avg_units)


async def blend_with_history(
    products: List[CanonicalProduct],
    history_lookup: Optional[HistoryLookup],
    policy: AllocationPolicy = DEFAULT_POLICY,
    telemetry: Optional[TelemetryRecorder] = None,
) -> List[CanonicalProduct]:
    telemetry = ensure_recorder(telemetry)
    products = list(products)
    if not products or history_lookup is None:
        return products

    asins = [p.asin for p in products]
    try:
        history = history_lookup(asins)
        if inspect.isawaitable(history):
            history = await asyncio.wait_for(history, timeout=policy.calibration.profile_lookup_timeout)
    except asyncio.TimeoutError:
        logger.warning("History lookup timed out; keeping current estimates")
        return products
    except Exception as e:
        logger.warning(f"History lookup failed; keeping current estimates: {e}")
        return products

    blended = []
    moved = 0
    for p in products:
        average = _as_average((history or {}).get(p.asin), policy.history.min_points)
        if average is None:
            blended.append(p)
            continue
        units = blend_units(p.estimated_monthly_units, average, policy)
        floor = guardrail_minimum(p, policy.guardrails)
        if p.estimated_monthly_units > 0:
            floor = max(floor, 1)
        units = max(units, floor)
        if units != p.estimated_monthly_units:
            moved += 1
            p = p.with_units(units)
        blended.append(p)

    blended = with_revenue_shares(blended)
    telemetry.emit(
        "history.blended",
        with_history=sum(1 for a in asins if a in (history or {})),
        moved=moved,
    )
    return blended
