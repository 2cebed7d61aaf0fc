from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

CombinationMode = Literal["sum", "average"]
VarianceMode = Literal["population", "sample"]
ViewMode = Literal["daily", "rolling", "weekly_rolling", "monthly"]


@dataclass(frozen=True)
class DailyPoint:
    date: str  # YYYY-MM-DD
    value: float


@dataclass(frozen=True)
class PeriodAggregate:
    """One week / month / fiscal year of a series.

    `comparable_*` hold the baseline actually used for the growth figures: the
    day-restricted prior sum in sum mode, the full prior value otherwise.
    """

    period_key: str
    value: float
    count: int
    prior_period_value: Optional[float] = None
    prior_year_value: Optional[float] = None
    comparable_prior_period_value: Optional[float] = None
    comparable_prior_year_value: Optional[float] = None
    pop_pct: Optional[float] = None
    yoy_pct: Optional[float] = None
    is_complete: Optional[bool] = None


@dataclass(frozen=True)
class RollingPoint:
    anchor_date: str
    window_value: Optional[float]
    window_count: int
    prior_year_window_value: Optional[float] = None
    yoy_pct: Optional[float] = None
    prior_week_window_value: Optional[float] = None
    wow_pct: Optional[float] = None


@dataclass(frozen=True)
class ControlBand:
    mean: float
    std_dev: float
    plus1: float
    plus2: float
    minus1: float
    minus2: float


@dataclass(frozen=True)
class ChartPoint:
    label: str
    key: str
    value: Optional[float]
    prior_year_value: Optional[float] = None
    yoy_pct: Optional[float] = None
    pop_pct: Optional[float] = None  # MoM for daily/monthly, WoW for weekly rolling


@dataclass(frozen=True)
class KpiSummary:
    latest_date: Optional[str] = None
    latest_value: Optional[float] = None
    latest_yoy_pct: Optional[float] = None
    avg7: Optional[float] = None
    avg7_yoy_pct: Optional[float] = None
    avg30: Optional[float] = None
    avg30_yoy_pct: Optional[float] = None
    ytd_value: Optional[float] = None
    ytd_yoy_pct: Optional[float] = None
    mtd_avg: Optional[float] = None
    mtd_yoy_pct: Optional[float] = None
