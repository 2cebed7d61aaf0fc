from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

import pandas as pd

from powerdash.calendar_keys import EMPTY_LABEL


def _is_missing(value: object) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value)) or not math.isfinite(float(value))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return True


def round_half_up(value: object, ndigits: int = 0) -> Optional[float]:
    if _is_missing(value):
        return None
    q = Decimal(10) ** -ndigits
    return float(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP))


def group_indian(digits: str) -> str:
    """12345678 -> 1,23,45,678 (last three digits, then pairs)."""
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_value(value: object, decimals: int = 2, suffix: str = "") -> str:
    rounded = round_half_up(value, decimals)
    if rounded is None:
        return EMPTY_LABEL
    text = f"{abs(rounded):.{decimals}f}"
    int_part, _, frac = text.partition(".")
    sign = "-" if rounded < 0 else ""
    body = group_indian(int_part) + (f".{frac}" if frac else "")
    return f"{sign}{body}{suffix}"


def format_pct(value: object, decimals: int = 2) -> str:
    rounded = round_half_up(value, decimals)
    if rounded is None:
        return EMPTY_LABEL
    sign = "+" if rounded > 0 else ""
    return f"{sign}{rounded:.{decimals}f}%"


def format_value_columns(df: pd.DataFrame, cols: Iterable[str], decimals: int = 2, suffix: str = "") -> pd.DataFrame:
    formatted = df.copy()
    for c in cols:
        if c in formatted.columns:
            formatted[c] = formatted[c].apply(lambda v: format_value(v, decimals, suffix))
    return formatted


def format_percent_columns(df: pd.DataFrame, cols: Iterable[str], decimals: int = 2) -> pd.DataFrame:
    formatted = df.copy()
    for c in cols:
        if c in formatted.columns:
            formatted[c] = formatted[c].apply(lambda v: format_pct(v, decimals))
    return formatted
