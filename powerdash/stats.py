from __future__ import annotations

import math
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np

from powerdash.models import ControlBand


def _finite(value: object) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        out = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return out if math.isfinite(out) else None


def growth_pct(current: object, previous: object) -> Optional[float]:
    """(current - previous) / previous * 100; None for a missing or zero baseline."""
    cur = _finite(current)
    prev = _finite(previous)
    if cur is None or prev is None or prev == 0:
        return None
    return (cur - prev) / prev * 100.0


def mean_or_none(values: Iterable[object]) -> Optional[float]:
    arr = [v for v in (_finite(x) for x in values) if v is not None]
    if not arr:
        return None
    return float(np.mean(arr))


def control_band(observations: Iterable[object], variance_mode: str = "population") -> Optional[ControlBand]:
    """Mean with +/-1 and +/-2 standard deviation lines.

    `variance_mode` is "population" (divide by n) or "sample" (divide by n-1).
    Non-finite observations are skipped; fewer than two remaining gives None.
    """
    if variance_mode not in ("population", "sample"):
        raise ValueError(f"unknown variance_mode: {variance_mode!r}")
    arr = np.array([v for v in (_finite(x) for x in observations) if v is not None], dtype=float)
    if arr.size < 2:
        return None

    mean = float(arr.mean())
    sd = float(arr.std(ddof=0 if variance_mode == "population" else 1))
    return ControlBand(
        mean=mean,
        std_dev=sd,
        plus1=mean + sd,
        plus2=mean + 2 * sd,
        minus1=mean - sd,
        minus2=mean - 2 * sd,
    )


def pearson_correlation(pairs: Iterable[Tuple[object, object]]) -> Optional[float]:
    xs = []
    ys = []
    for x, y in pairs:
        fx, fy = _finite(x), _finite(y)
        if fx is None or fy is None:
            continue
        xs.append(fx)
        ys.append(fy)
    if len(xs) < 2:
        return None

    x = np.array(xs)
    y = np.array(ys)
    dx = x - x.mean()
    dy = y - y.mean()
    sxx = float((dx * dx).sum())
    syy = float((dy * dy).sum())
    if sxx == 0 or syy == 0:
        return None
    r = float((dx * dy).sum()) / math.sqrt(sxx * syy)
    return max(-1.0, min(1.0, r))


def axis_domain(
    values: Sequence[object], pad_pct: float = 0.05, min_abs_pad: float = 1.0
) -> Optional[Tuple[float, float]]:
    """Padded [min, max] for a chart axis; a flat series pads by its own magnitude."""
    arr = [v for v in (_finite(x) for x in values) if v is not None]
    if not arr:
        return None
    lo, hi = min(arr), max(arr)
    spread = abs(lo) if lo == hi else hi - lo
    pad = max(min_abs_pad, spread * pad_pct)
    return lo - pad, hi + pad
