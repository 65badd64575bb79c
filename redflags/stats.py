from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

import numpy as np


def safe_div(n: float, d: Optional[float]) -> Optional[float]:
    """Divide with None on zero denominator."""

    if d is None or d == 0:
        return None
    return n / d


def round1(x: float) -> float:
    """Round half up to one decimal place."""

    return math.floor(x * 10.0 + 0.5) / 10.0


def to_number(v) -> Optional[float]:
    """Coerce ints, floats and numeric strings; None for anything else, NaN and inf included."""

    if v is None or isinstance(v, bool):
        return None
    try:
        x = float(v)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(x):
        return None
    return x


def quartiles(samples: Sequence[float]) -> Tuple[float, float]:
    """Return (Q1, Q3) of the samples.

    Uses the averaged inverted-CDF definition: the order statistic at
    ceil(n*p), or the mean of two neighbours when n*p is whole.
    """

    arr = np.asarray(samples, dtype=float)
    q1, q3 = np.quantile(arr, [0.25, 0.75], method="averaged_inverted_cdf")
    return float(q1), float(q3)


def iqr_upper_fence(samples: Sequence[float], multiplier: float) -> float:
    """Q3 + multiplier * (Q3 - Q1)"""

    q1, q3 = quartiles(samples)
    return q3 + multiplier * (q3 - q1)


def zscore_upper_fence(samples: Sequence[float], threshold: float) -> float:
    """mean + threshold * population standard deviation"""

    arr = np.asarray(samples, dtype=float)
    return float(arr.mean() + threshold * arr.std())


def mean(samples: Sequence[float]) -> float:
    if len(samples) == 0:
        return 0.0
    return float(np.mean(np.asarray(samples, dtype=float)))
