"""
Rounding and share helpers used by every allocation stage.

Units are whole numbers. Rounding is half-up (never banker's rounding) so the
same page always lands on the same integers.
"""

import math
from typing import Dict, List, Optional, Sequence

import numpy as np


def round_half_up(value: float) -> int:
    if value is None or not math.isfinite(value):
        return 0
    return int(math.floor(value + 0.5))


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def safe_median(values: Sequence[Optional[float]], positive_only: bool = True) -> Optional[float]:
    """Median of the usable values, or None when there are none."""
    usable = [float(v) for v in values if v is not None and (v > 0 or not positive_only)]
    if not usable:
        return None
    return float(np.median(usable))


def largest_remainder(weights: Sequence[float], total: int, keys: Optional[Sequence] = None) -> List[int]:
    """
    Split an integer total proportionally to weights so parts sum exactly to total.

    Leftover units go to the largest fractional parts; ties resolve by `keys`
    (defaults to index order).
    """
    n = len(weights)
    if n == 0:
        return []
    total = max(0, int(total))
    weight_sum = float(sum(weights))
    if weight_sum <= 0:
        weights = [1.0] * n
        weight_sum = float(n)

    exact = [total * w / weight_sum for w in weights]
    parts = [int(math.floor(x)) for x in exact]
    leftover = total - sum(parts)
    order_keys = keys if keys is not None else list(range(n))
    order = sorted(range(n), key=lambda i: (-(exact[i] - parts[i]), order_keys[i]))
    for i in order[:leftover]:
        parts[i] += 1
    return parts


def revenue_shares(revenues: Sequence[float], keys: Optional[Sequence] = None) -> List[float]:
    """
    Percent-of-page shares at two decimals.

    Shares sum to exactly 100.00 when total revenue > 0, else all 0.0.
    """
    total = float(sum(revenues))
    if total <= 0:
        return [0.0] * len(revenues)
    hundredths = largest_remainder([max(r, 0.0) for r in revenues], 10_000, keys)
    return [h / 100 for h in hundredths]


def distribution_stats(values: Sequence[float]) -> Dict[str, float]:
    """Population std dev and mean, as used for review dispersion."""
    if not values:
        return {"mean": 0.0, "std": 0.0}
    arr = np.asarray(values, dtype=float)
    return {"mean": float(arr.mean()), "std": float(arr.std())}
