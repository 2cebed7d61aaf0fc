from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from powerdash.aggregation import rolling_calendar_window, rolling_trading_window
from powerdash.calendar_keys import add_days, format_ddmmyyyy, is_calendar_key, iter_days
from powerdash.ingest import SheetSeries
from powerdash.stats import growth_pct

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlignedSeriesSpec:
    name: str
    values: Mapping[str, float]
    lagged: bool = False


@dataclass(frozen=True)
class AlignedCell:
    shown_date: str
    queried_date: str
    value: Optional[float]


@dataclass(frozen=True)
class AlignedRow:
    date: str
    label: str
    cells: Dict[str, AlignedCell] = field(default_factory=dict)


def align_and_window(
    specs: Sequence[AlignedSeriesSpec], from_date: str, to_date: str, lag_days: int = 0
) -> List[AlignedRow]:
    """One row per calendar day in [from_date, to_date].

    Lagged series are looked up `lag_days` earlier than the row date; every cell
    keeps both the date shown and the date actually queried.
    """
    for bound in (from_date, to_date):
        if not is_calendar_key(bound):
            raise ValueError(f"invalid date: {bound!r} (expected YYYY-MM-DD)")
    if lag_days < 0:
        raise ValueError(f"lag_days must be >= 0, got {lag_days}")
    names = [s.name for s in specs]
    if len(set(names)) != len(names):
        raise ValueError(f"duplicate series names: {names}")
    if from_date > to_date:
        from_date, to_date = to_date, from_date

    rows: List[AlignedRow] = []
    for d in iter_days(from_date, to_date):
        cells: Dict[str, AlignedCell] = {}
        for spec in specs:
            queried = add_days(d, -lag_days) if spec.lagged else d
            cells[spec.name] = AlignedCell(shown_date=d, queried_date=queried, value=spec.values.get(queried))
        rows.append(AlignedRow(date=d, label=format_ddmmyyyy(d), cells=cells))
    return rows


def aligned_pairs(rows: Sequence[AlignedRow], x_name: str, y_name: str) -> List[Tuple[float, float]]:
    """(x, y) pairs for rows where both series have a value."""
    out: List[Tuple[float, float]] = []
    for row in rows:
        x = row.cells.get(x_name)
        y = row.cells.get(y_name)
        if x is None or y is None or x.value is None or y.value is None:
            continue
        out.append((x.value, y.value))
    return out


@dataclass(frozen=True)
class ComparisonRow:
    date: str
    label: str
    anchor_value: Optional[float]
    anchor_yoy_pct: Optional[float] = None
    values: Dict[str, Optional[float]] = field(default_factory=dict)
    yoy_pct: Dict[str, Optional[float]] = field(default_factory=dict)


def rolling_comparison(
    anchor_series: Mapping[str, float],
    sheet: SheetSeries,
    selected: Sequence[str],
    window_days: int,
    show_days: int = 180,
    include_yoy: bool = True,
) -> List[ComparisonRow]:
    """Continuous series (calendar window) against sparse sheet columns (trading window).

    Rows cover the `show_days` calendar days ending at the sheet's latest date;
    YoY compares each value with the same window 365 days earlier.
    """
    if window_days < 1:
        raise ValueError(f"window_days must be >= 1, got {window_days}")
    if show_days < 1:
        raise ValueError(f"show_days must be >= 1, got {show_days}")
    if sheet.latest_date is None or not anchor_series:
        return []
    missing = [s for s in selected if s not in sheet.values]
    if missing:
        logger.warning("columns not in sheet %s: %s", sheet.name, missing)
    columns = [s for s in selected if s in sheet.values]
    sorted_dates = {c: sorted(sheet.values[c]) for c in columns}

    end = sheet.latest_date
    start = add_days(end, -(show_days - 1))
    rows: List[ComparisonRow] = []
    for d in iter_days(start, end):
        anchor_value = rolling_calendar_window(anchor_series, d, window_days, "average")
        values = {
            c: rolling_trading_window(sheet.values[c], d, window_days, dates=sorted_dates[c]) for c in columns
        }

        anchor_yoy = None
        yoy: Dict[str, Optional[float]] = {}
        if include_yoy:
            py = add_days(d, -365)
            anchor_yoy = growth_pct(anchor_value, rolling_calendar_window(anchor_series, py, window_days, "average"))
            for c in columns:
                prior = rolling_trading_window(sheet.values[c], py, window_days, dates=sorted_dates[c])
                yoy[c] = growth_pct(values[c], prior)

        rows.append(
            ComparisonRow(
                date=d,
                label=format_ddmmyyyy(d),
                anchor_value=anchor_value,
                anchor_yoy_pct=anchor_yoy,
                values=values,
                yoy_pct=yoy,
            )
        )
    return rows
