from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from powerdash.aggregation import (
    build_view_points,
    compute_kpis,
    fiscal_year_aggregates,
    monthly_aggregates,
    weekly_aggregates,
)
from powerdash.alignment import AlignedSeriesSpec, align_and_window, aligned_pairs, rolling_comparison
from powerdash.calendar_keys import format_ddmmyy, format_ddmmyyyy, format_ddmmyyyy_slash
from powerdash.capacity import (
    CAPACITY_SOURCES,
    CapacityHistory,
    capacity_growth,
    clamp_month,
    default_addition_months,
    net_additions,
    rated_capacity,
    to_month_key,
)
from powerdash.charts import build_period_bar_chart, build_series_chart
from powerdash.config import AggregationConfig, SeriesPreset, resolve_range
from powerdash.formatting import format_pct, format_percent_columns, format_value, format_value_columns
from powerdash.ingest import SpreadsheetBook
from powerdash.models import ChartPoint, ControlBand, KpiSummary
from powerdash.stats import axis_domain, control_band, mean_or_none, pearson_correlation

logger = logging.getLogger(__name__)

CAPACITY_TITLE = "Installed Capacity (GW)"


def _band_lines(band: Optional[ControlBand]) -> List[float]:
    if band is None:
        return []
    return [band.mean, band.plus1, band.plus2, band.minus1, band.minus2]


def _range_payload(bounds: Optional[Tuple[str, str]]) -> Optional[Dict[str, str]]:
    if bounds is None:
        return None
    return {"from": bounds[0], "to": bounds[1], "label": f"{format_ddmmyy(bounds[0])} to {format_ddmmyy(bounds[1])}"}


def _kpi_display(kpis: KpiSummary, preset: Optional[SeriesPreset]) -> Dict[str, str]:
    decimals = preset.decimals if preset else 2
    suffix = preset.unit_suffix if preset else ""
    return {
        "latest_date": format_ddmmyyyy(kpis.latest_date),
        "latest_value": format_value(kpis.latest_value, decimals, suffix),
        "latest_yoy_pct": format_pct(kpis.latest_yoy_pct),
        "avg7": format_value(kpis.avg7, decimals, suffix),
        "avg7_yoy_pct": format_pct(kpis.avg7_yoy_pct),
        "avg30": format_value(kpis.avg30, decimals, suffix),
        "avg30_yoy_pct": format_pct(kpis.avg30_yoy_pct),
        "ytd_value": format_value(kpis.ytd_value, decimals, suffix),
        "ytd_yoy_pct": format_pct(kpis.ytd_yoy_pct),
        "mtd_avg": format_value(kpis.mtd_avg, decimals, suffix),
        "mtd_yoy_pct": format_pct(kpis.mtd_yoy_pct),
    }


def compute_series_view(
    series: Mapping[str, float],
    config: AggregationConfig,
    *,
    preset: Optional[SeriesPreset] = None,
    include_chart: bool = False,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "config": asdict(config),
        "preset": asdict(preset) if preset else None,
        "range": None,
        "points": [],
        "control_bands": {"value": None, "prior_year": None, "yoy": None},
        "axis_domains": {"left": None, "right": None},
        "kpis": asdict(KpiSummary()),
        "kpis_display": _kpi_display(KpiSummary(), preset),
        "monthly": [],
        "monthly_mean": None,
        "weekly": [],
        "fiscal_years": [],
        "charts": {},
    }
    if not series:
        return payload

    bounds = resolve_range(config, max(series))
    payload["range"] = _range_payload(bounds)

    points: List[ChartPoint] = build_view_points(series, config)
    value_band = control_band([p.value for p in points], config.variance_mode)
    prior_band = control_band([p.prior_year_value for p in points], config.variance_mode)
    yoy_band = control_band([p.yoy_pct for p in points], config.variance_mode)

    left_domain = axis_domain(
        [p.value for p in points] + [p.prior_year_value for p in points] + _band_lines(value_band), 0.05, 0.5
    )
    right_domain = axis_domain(
        [p.yoy_pct for p in points] + [p.pop_pct for p in points] + _band_lines(yoy_band), 0.05, 1.0
    )

    kpis = compute_kpis(series, config.mode)
    monthly = monthly_aggregates(series, config.mode)[-config.monthly_limit:]
    weekly = weekly_aggregates(series, config.mode, limit=config.weekly_limit)
    fiscal_years = fiscal_year_aggregates(series, config.mode)

    payload.update(
        {
            "points": [asdict(p) for p in points],
            "control_bands": {
                "value": asdict(value_band) if value_band else None,
                "prior_year": asdict(prior_band) if prior_band else None,
                "yoy": asdict(yoy_band) if yoy_band else None,
            },
            "axis_domains": {"left": left_domain, "right": right_domain},
            "kpis": asdict(kpis),
            "kpis_display": _kpi_display(kpis, preset),
            "monthly": [asdict(m) for m in monthly],
            "monthly_mean": mean_or_none(m.value for m in monthly),
            "weekly": [{**asdict(w), "label": f"Week starting {format_ddmmyy(w.period_key)}"} for w in weekly],
            "fiscal_years": [asdict(f) for f in fiscal_years],
        }
    )

    if include_chart:
        title = preset.title if preset else "Value"
        payload["charts"] = {
            "series": build_series_chart(
                points,
                band=value_band,
                pct_band=yoy_band,
                value_title=title,
                value_domain=left_domain,
                pct_domain=right_domain,
            ),
            "monthly": build_period_bar_chart(payload["monthly"], period_field="period_key", value_title=title),
            "fiscal_years": build_period_bar_chart(
                payload["fiscal_years"], period_field="period_key", value_title=title
            ),
        }
    logger.debug("series view: %d points, %d months", len(points), len(monthly))
    return payload


def compute_comparison_view(
    anchor_series: Mapping[str, float],
    book: SpreadsheetBook,
    *,
    use_companion: bool = False,
    selected: Optional[Sequence[str]] = None,
    window_days: int = 30,
    show_days: int = 180,
    include_yoy: bool = True,
) -> Dict[str, Any]:
    sheet = book.companion if use_companion and book.companion is not None else book.primary
    chosen = list(selected) if selected else sheet.columns[:2]
    rows = rolling_comparison(
        anchor_series, sheet, chosen, window_days, show_days=show_days, include_yoy=include_yoy
    )
    return {
        "sheet": sheet.name,
        "columns": sheet.columns,
        "selected": [c for c in chosen if c in sheet.values],
        "anchor_date": sheet.latest_date,
        "window_days": window_days,
        "rows": [asdict(r) for r in rows],
    }


def compute_alignment_view(
    specs: Sequence[AlignedSeriesSpec],
    from_date: str,
    to_date: str,
    *,
    lag_days: int = 0,
    correlate: Optional[Sequence[str]] = None,
) -> Dict[str, Any]:
    rows = align_and_window(specs, from_date, to_date, lag_days=lag_days)
    correlation = None
    pair_count = 0
    if correlate and len(correlate) == 2:
        pairs = aligned_pairs(rows, correlate[0], correlate[1])
        pair_count = len(pairs)
        correlation = pearson_correlation(pairs)
    return {
        "lag_days": lag_days,
        "rows": [asdict(r) for r in rows],
        "correlation": correlation,
        "pair_count": pair_count,
    }


def _month_arg(value: Optional[str], options: Sequence[str], fallback: str) -> str:
    if not value:
        return fallback
    key = to_month_key(value)
    if key is None:
        raise ValueError(f"invalid month: {value!r} (expected YYYY-MM or MM/YYYY)")
    return clamp_month(key, options)


def _capacity_table(history: CapacityHistory, growth: Sequence[Any]) -> pd.DataFrame:
    rows = []
    for month, g in zip(history.months, growth):
        rows.append(
            {
                "month": month.month,
                "label": format_ddmmyyyy_slash(f"{month.month}-01"),
                **month.by_source,
                "total": month.total,
                "prior_year_total": g.prior_year_value,
                "yoy_pct": g.yoy_pct,
                "mom_pct": g.pop_pct,
            }
        )
    return pd.DataFrame(rows)


def compute_capacity_view(
    history: CapacityHistory,
    config: AggregationConfig,
    *,
    plf_pct: Optional[Mapping[str, float]] = None,
    installed: Optional[Mapping[str, float]] = None,
    start_month: Optional[str] = None,
    end_month: Optional[str] = None,
    include_chart: bool = False,
) -> Dict[str, Any]:
    """Installed-capacity history, rated capacity and net additions.

    Installed capacity defaults to the latest month of the history and PLF to
    0%. Net additions default to the latest month against twelve months
    earlier; requested months snap to the nearest earlier month with data.
    """
    payload: Dict[str, Any] = {
        "sources": list(CAPACITY_SOURCES),
        "latest_month": None,
        "range": None,
        "history": [],
        "history_display": [],
        "points": [],
        "control_bands": {"value": None, "yoy": None},
        "axis_domains": {"left": None, "right": None},
        "rated": None,
        "net_additions": None,
        "input_errors": list(history.errors),
        "charts": {},
    }
    if not history.months:
        return payload

    options = history.month_keys
    latest = history.months[-1]
    growth = capacity_growth(history)
    table = _capacity_table(history, growth)

    bounds = resolve_range(config, f"{latest.month}-01")
    payload["range"] = _range_payload(bounds)
    points = [
        ChartPoint(
            label=format_ddmmyyyy_slash(f"{g.period_key}-01"),
            key=f"{g.period_key}-01",
            value=g.value,
            prior_year_value=g.prior_year_value,
            yoy_pct=g.yoy_pct,
            pop_pct=g.pop_pct,
        )
        for g in growth
        if bounds is None or bounds[0] <= f"{g.period_key}-01" <= bounds[1]
    ]
    value_band = control_band([p.value for p in points], config.variance_mode)
    yoy_band = control_band([p.yoy_pct for p in points], config.variance_mode)
    left_domain = axis_domain(
        [p.value for p in points] + [p.prior_year_value for p in points] + _band_lines(value_band), 0.05, 0.5
    )
    right_domain = axis_domain(
        [p.yoy_pct for p in points] + [p.pop_pct for p in points] + _band_lines(yoy_band), 0.05, 1.0
    )

    default_start, default_end = default_addition_months(history)  # type: ignore[misc]
    start = _month_arg(start_month, options, default_start)
    end = _month_arg(end_month, options, default_end)
    additions = net_additions(history, start, end)
    rated = rated_capacity(installed if installed is not None else latest.by_source, plf_pct or {})

    display = format_value_columns(table, [*CAPACITY_SOURCES, "total", "prior_year_total"], suffix=" GW")
    display = format_percent_columns(display, ["yoy_pct", "mom_pct"])

    payload.update(
        {
            "latest_month": latest.month,
            "history": table.to_dict(orient="records"),
            "history_display": display.to_dict(orient="records"),
            "points": [asdict(p) for p in points],
            "control_bands": {
                "value": asdict(value_band) if value_band else None,
                "yoy": asdict(yoy_band) if yoy_band else None,
            },
            "axis_domains": {"left": left_domain, "right": right_domain},
            "rated": asdict(rated),
            "net_additions": asdict(additions),
        }
    )

    if include_chart:
        payload["charts"] = {
            "history": build_series_chart(
                points,
                band=value_band,
                pct_band=yoy_band,
                value_title=CAPACITY_TITLE,
                value_domain=left_domain,
                pct_domain=right_domain,
            ),
            "net_additions": build_period_bar_chart(
                [{"source": s, "value": v, "yoy_pct": None} for s, v in additions.by_source.items()],
                period_field="source",
                value_title="Net Addition (GW)",
            ),
        }
    logger.debug("capacity view: %d months, %d in range", len(history.months), len(points))
    return payload
