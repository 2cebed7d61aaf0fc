from __future__ import annotations

import bisect
import calendar
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from powerdash.calendar_keys import (
    FY_FIRST_DAY,
    FY_LAST_DAY,
    add_days,
    add_months,
    add_years_same_day,
    day_of_month,
    fiscal_year_end,
    fiscal_year_label,
    fiscal_year_start,
    fiscal_year_start_for,
    format_ddmmyyyy,
    iter_days,
    month_key,
    previous_fiscal_year,
    same_day_previous_month,
    start_of_week,
)
from powerdash.config import AggregationConfig, resolve_range
from powerdash.models import ChartPoint, CombinationMode, DailyPoint, KpiSummary, PeriodAggregate, RollingPoint
from powerdash.stats import growth_pct

logger = logging.getLogger(__name__)

PRIOR_YEAR_SHIFT_DAYS = 365
PRIOR_YEAR_WEEK_SHIFT_DAYS = 364


def sorted_points(series: Mapping[str, float]) -> List[DailyPoint]:
    return [DailyPoint(date=k, value=float(series[k])) for k in sorted(series)]


def _combine(total: Optional[float], count: int, mode: CombinationMode) -> Optional[float]:
    """Sum or mean of a (sum, count) pair; None when nothing contributed."""
    if total is None or count == 0:
        return None
    return total if mode == "sum" else total / count


def _check_mode(mode: str) -> None:
    if mode not in ("sum", "average"):
        raise ValueError(f"unknown combination mode: {mode!r}")


# ---------------- Months ----------------
@dataclass
class MonthBucket:
    sum: float = 0.0
    count: int = 0
    max_day_of_month: int = 0
    daily_sum_by_day: Dict[int, float] = field(default_factory=dict)
    daily_count_by_day: Dict[int, int] = field(default_factory=dict)


def build_month_aggregation_map(points: Iterable[DailyPoint]) -> Dict[str, MonthBucket]:
    buckets: Dict[str, MonthBucket] = {}
    for p in points:
        bucket = buckets.setdefault(month_key(p.date), MonthBucket())
        day = day_of_month(p.date)
        bucket.sum += p.value
        bucket.count += 1
        bucket.max_day_of_month = max(bucket.max_day_of_month, day)
        bucket.daily_sum_by_day[day] = bucket.daily_sum_by_day.get(day, 0.0) + p.value
        bucket.daily_count_by_day[day] = bucket.daily_count_by_day.get(day, 0) + 1
    return buckets


def sum_month_up_to_day(bucket: Optional[MonthBucket], day_limit: int) -> Optional[float]:
    if bucket is None:
        return None
    days = [d for d in bucket.daily_sum_by_day if d <= day_limit]
    if not days:
        return None
    return sum(bucket.daily_sum_by_day[d] for d in days)


def average_month_full(bucket: Optional[MonthBucket]) -> Optional[float]:
    if bucket is None or not bucket.count:
        return None
    return bucket.sum / bucket.count


def _month_value(bucket: Optional[MonthBucket], mode: CombinationMode) -> Optional[float]:
    if bucket is None:
        return None
    return bucket.sum if mode == "sum" else average_month_full(bucket)


def monthly_aggregates(series: Mapping[str, float], mode: CombinationMode) -> List[PeriodAggregate]:
    """One aggregate per month with data.

    Sum mode compares against the prior month / prior-year month restricted to
    days 1..max_day_of_month of the current month; average mode compares full
    month means.
    """
    _check_mode(mode)
    buckets = build_month_aggregation_map(sorted_points(series))
    out: List[PeriodAggregate] = []
    for m in sorted(buckets):
        bucket = buckets[m]
        value = _month_value(bucket, mode)
        prev = buckets.get(add_months(m, -1))
        py = buckets.get(add_months(m, -12))

        prior_period = _month_value(prev, mode)
        prior_year = _month_value(py, mode)
        if mode == "sum":
            comparable_prev = sum_month_up_to_day(prev, bucket.max_day_of_month)
            comparable_py = sum_month_up_to_day(py, bucket.max_day_of_month)
        else:
            comparable_prev = prior_period
            comparable_py = prior_year

        last_day = calendar.monthrange(int(m[0:4]), int(m[5:7]))[1]
        out.append(
            PeriodAggregate(
                period_key=m,
                value=value,  # type: ignore[arg-type]
                count=bucket.count,
                prior_period_value=prior_period,
                prior_year_value=prior_year,
                comparable_prior_period_value=comparable_prev,
                comparable_prior_year_value=comparable_py,
                pop_pct=growth_pct(value, comparable_prev),
                yoy_pct=growth_pct(value, comparable_py),
                is_complete=bucket.max_day_of_month >= last_day,
            )
        )
    return out


# ---------------- Windows ----------------
def sum_count_between(lookup: Mapping[str, float], start: str, end: str) -> Tuple[Optional[float], int]:
    """(sum, count) of present values in [start, end]; sum is None when nothing is present."""
    if start > end:
        return None, 0
    total = 0.0
    count = 0
    for d in iter_days(start, end):
        v = lookup.get(d)
        if v is None:
            continue
        total += v
        count += 1
    return (total if count else None), count


def _check_window(window_days: int) -> None:
    if window_days < 1:
        raise ValueError(f"window_days must be >= 1, got {window_days}")


def rolling_calendar_window(
    series: Mapping[str, float], anchor: str, window_days: int, mode: CombinationMode
) -> Optional[float]:
    """Sum or present-count mean over the calendar days [anchor-(N-1), anchor].

    An empty window is 0.0 in sum mode and None in average mode.
    """
    _check_window(window_days)
    _check_mode(mode)
    total, count = sum_count_between(series, add_days(anchor, -(window_days - 1)), anchor)
    if mode == "sum":
        return total if total is not None else 0.0
    return _combine(total, count, mode)


def rolling_trading_window(
    series: Mapping[str, float], anchor: str, window_days: int, dates: Optional[Sequence[str]] = None
) -> Optional[float]:
    """Mean of the last N dates present in `series` at or before `anchor`.

    `dates` may be passed as the pre-sorted keys of `series` when calling repeatedly.
    """
    _check_window(window_days)
    keys = dates if dates is not None else sorted(series)
    end = bisect.bisect_right(keys, anchor)
    window = keys[max(0, end - window_days):end]
    if not window:
        return None
    return sum(series[d] for d in window) / len(window)


def rolling_points(
    series: Mapping[str, float],
    from_date: str,
    to_date: str,
    window_days: int,
    mode: CombinationMode,
    include_wow: bool = False,
) -> List[RollingPoint]:
    """One calendar-window point per day in [from_date, to_date].

    The prior-year window is the same window shifted back 365 days; in sum mode
    an empty prior-year window is None so it never acts as a zero baseline.
    With `include_wow`, the window ending 7 days earlier gives week-over-week.
    """
    _check_window(window_days)
    _check_mode(mode)
    if from_date > to_date:
        from_date, to_date = to_date, from_date

    points: List[RollingPoint] = []
    for anchor in iter_days(from_date, to_date):
        total, count = sum_count_between(series, add_days(anchor, -(window_days - 1)), anchor)
        value = (total if total is not None else 0.0) if mode == "sum" else _combine(total, count, mode)

        py_anchor = add_days(anchor, -PRIOR_YEAR_SHIFT_DAYS)
        py_total, py_count = sum_count_between(series, add_days(py_anchor, -(window_days - 1)), py_anchor)
        py_value = _combine(py_total, py_count, mode)

        pw_value = None
        if include_wow:
            pw_anchor = add_days(anchor, -7)
            pw_total, pw_count = sum_count_between(series, add_days(pw_anchor, -(window_days - 1)), pw_anchor)
            pw_value = _combine(pw_total, pw_count, mode)

        points.append(
            RollingPoint(
                anchor_date=anchor,
                window_value=value,
                window_count=count,
                prior_year_window_value=py_value,
                yoy_pct=growth_pct(value, py_value),
                prior_week_window_value=pw_value,
                wow_pct=growth_pct(value, pw_value) if include_wow else None,
            )
        )
    return points


# ---------------- Daily / weekly / fiscal year ----------------
def daily_points(series: Mapping[str, float], from_date: str, to_date: str) -> List[ChartPoint]:
    if from_date > to_date:
        from_date, to_date = to_date, from_date
    out: List[ChartPoint] = []
    for d in sorted(k for k in series if from_date <= k <= to_date):
        value = series[d]
        py = series.get(add_years_same_day(d, -1))
        pm_date = same_day_previous_month(d)
        pm = series.get(pm_date) if pm_date else None
        out.append(
            ChartPoint(
                label=format_ddmmyyyy(d),
                key=d,
                value=value,
                prior_year_value=py,
                yoy_pct=growth_pct(value, py),
                pop_pct=growth_pct(value, pm),
            )
        )
    return out


def _frame(series: Mapping[str, float]) -> pd.DataFrame:
    keys = sorted(series)
    return pd.DataFrame({"date": keys, "value": [float(series[k]) for k in keys]})


def weekly_aggregates(series: Mapping[str, float], mode: CombinationMode, limit: int = 104) -> List[PeriodAggregate]:
    """Monday-start weeks; WoW vs the week 7 days earlier, YoY vs 364 days earlier."""
    _check_mode(mode)
    df = _frame(series)
    if df.empty:
        return []
    df["week"] = df["date"].map(start_of_week)
    grouped = df.groupby("week")["value"].agg(total="sum", count="count")
    values = {
        wk: _combine(float(row["total"]), int(row["count"]), mode) for wk, row in grouped.iterrows()
    }
    counts = grouped["count"].astype(int).to_dict()

    weeks = sorted(values)
    if limit > 0:
        weeks = weeks[-limit:]

    out: List[PeriodAggregate] = []
    for wk in weeks:
        value = values[wk]
        prev = values.get(add_days(wk, -7))
        py = values.get(add_days(wk, -PRIOR_YEAR_WEEK_SHIFT_DAYS))
        out.append(
            PeriodAggregate(
                period_key=wk,
                value=value,  # type: ignore[arg-type]
                count=counts[wk],
                prior_period_value=prev,
                prior_year_value=py,
                comparable_prior_period_value=prev,
                comparable_prior_year_value=py,
                pop_pct=growth_pct(value, prev),
                yoy_pct=growth_pct(value, py),
                is_complete=counts[wk] >= 7,
            )
        )
    return out


def fiscal_year_aggregates(series: Mapping[str, float], mode: CombinationMode) -> List[PeriodAggregate]:
    """April-March years.

    A complete year (data through Mar 31 of its end year) compares full values;
    an incomplete one compares [FY start, latest] against [prior FY start,
    latest one year earlier]. YoY only when the prior FY has data at all.
    """
    _check_mode(mode)
    df = _frame(series)
    labelled = df["date"].between(FY_FIRST_DAY, FY_LAST_DAY)
    if not labelled.all():
        logger.warning(
            "skipping %d points outside %s..%s for fiscal years", int((~labelled).sum()), FY_FIRST_DAY, FY_LAST_DAY
        )
        df = df[labelled].copy()
    if df.empty:
        return []
    df["fy"] = df["date"].map(fiscal_year_label)
    grouped = df.groupby("fy").agg(total=("value", "sum"), count=("value", "count"), max_date=("date", "max"))
    grouped = grouped.sort_values("max_date")

    totals = grouped["total"].astype(float).to_dict()
    counts = grouped["count"].astype(int).to_dict()

    out: List[PeriodAggregate] = []
    for fy, row in grouped.iterrows():
        value = _combine(totals[fy], counts[fy], mode)
        prev_fy = previous_fiscal_year(fy)
        prior = _combine(totals[prev_fy], counts[prev_fy], mode) if prev_fy in totals else None

        max_date = str(row["max_date"])
        is_complete = max_date >= fiscal_year_end(fy)
        comparable = None
        yoy = None
        if prev_fy in totals:
            if is_complete:
                comparable = prior
                yoy = growth_pct(value, prior)
            else:
                cur_total, cur_count = sum_count_between(series, fiscal_year_start(fy), max_date)
                py_total, py_count = sum_count_between(
                    series, fiscal_year_start(prev_fy), add_years_same_day(max_date, -1)
                )
                cur_val = _combine(cur_total, cur_count, mode)
                comparable = _combine(py_total, py_count, mode)
                yoy = growth_pct(cur_val, comparable)

        out.append(
            PeriodAggregate(
                period_key=fy,
                value=value,  # type: ignore[arg-type]
                count=counts[fy],
                prior_year_value=prior,
                comparable_prior_year_value=comparable,
                yoy_pct=yoy,
                is_complete=is_complete,
            )
        )
    return out


# ---------------- KPIs ----------------
def _window_avg(series: Mapping[str, float], start: str, end: str) -> Optional[float]:
    total, count = sum_count_between(series, start, end)
    return _combine(total, count, "average")


def _trailing_avg_yoy(series: Mapping[str, float], latest: str, n: int) -> Tuple[Optional[float], Optional[float]]:
    start = add_days(latest, -(n - 1))
    avg = _window_avg(series, start, latest)
    py_avg = _window_avg(series, add_years_same_day(start, -1), add_years_same_day(latest, -1))
    return avg, growth_pct(avg, py_avg)


def compute_kpis(series: Mapping[str, float], mode: CombinationMode) -> KpiSummary:
    _check_mode(mode)
    if not series:
        return KpiSummary()

    latest = max(series)
    latest_value = series[latest]
    latest_py = series.get(add_years_same_day(latest, -1))

    avg7, avg7_yoy = _trailing_avg_yoy(series, latest, 7)
    avg30, avg30_yoy = _trailing_avg_yoy(series, latest, 30)

    # Fiscal YTD: total in sum mode, daily mean otherwise.
    ytd_start = fiscal_year_start_for(latest)
    ytd_total, ytd_count = sum_count_between(series, ytd_start, latest)
    py_total, py_count = sum_count_between(
        series, add_years_same_day(ytd_start, -1), add_years_same_day(latest, -1)
    )
    ytd_value = _combine(ytd_total, ytd_count, mode)
    ytd_py = _combine(py_total, py_count, mode)

    month_start = f"{month_key(latest)}-01"
    mtd_avg = _window_avg(series, month_start, latest)
    mtd_py = _window_avg(series, add_years_same_day(month_start, -1), add_years_same_day(latest, -1))

    return KpiSummary(
        latest_date=latest,
        latest_value=latest_value,
        latest_yoy_pct=growth_pct(latest_value, latest_py),
        avg7=avg7,
        avg7_yoy_pct=avg7_yoy,
        avg30=avg30,
        avg30_yoy_pct=avg30_yoy,
        ytd_value=ytd_value,
        ytd_yoy_pct=growth_pct(ytd_value, ytd_py),
        mtd_avg=mtd_avg,
        mtd_yoy_pct=growth_pct(mtd_avg, mtd_py),
    )


# ---------------- View dispatcher ----------------
def _rolling_to_chart(points: List[RollingPoint], wow: bool) -> List[ChartPoint]:
    return [
        ChartPoint(
            label=format_ddmmyyyy(p.anchor_date),
            key=p.anchor_date,
            value=p.window_value,
            prior_year_value=p.prior_year_window_value,
            yoy_pct=p.yoy_pct,
            pop_pct=p.wow_pct if wow else None,
        )
        for p in points
    ]


def build_view_points(series: Mapping[str, float], config: AggregationConfig) -> List[ChartPoint]:
    """Chart points for the configured view over the configured date range."""
    if not series:
        return []
    bounds = resolve_range(config, max(series))
    if bounds is None:
        return []
    from_date, to_date = bounds
    logger.debug("view %s %s..%s (window=%d)", config.view, from_date, to_date, config.window_days)

    if config.view == "daily":
        return daily_points(series, from_date, to_date)

    if config.view == "rolling":
        rolling_mode: CombinationMode = config.rolling_mode if config.mode == "sum" else "average"
        pts = rolling_points(series, from_date, to_date, config.window_days, rolling_mode)
        return _rolling_to_chart(pts, wow=False)

    if config.view == "weekly_rolling":
        pts = rolling_points(series, from_date, to_date, 7, "average", include_wow=True)
        return _rolling_to_chart(pts, wow=True)

    if config.view == "monthly":
        first, last = month_key(from_date), month_key(to_date)
        return [
            ChartPoint(
                label=m.period_key,
                key=m.period_key,
                value=m.value,
                prior_year_value=m.prior_year_value,
                yoy_pct=m.yoy_pct,
                pop_pct=m.pop_pct,
            )
            for m in monthly_aggregates(series, config.mode)
            if first <= m.period_key <= last
        ]

    raise ValueError(f"unknown view: {config.view!r}")
