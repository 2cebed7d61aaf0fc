from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Optional, Sequence, Tuple

import altair as alt
import pandas as pd

from powerdash.models import ChartPoint, ControlBand

alt.data_transformers.disable_max_rows()

SERIES_LABELS = {
    "value": "Value",
    "prior_year_value": "Prior year",
    "yoy_pct": "YoY %",
    "pop_pct": "Period %",
}


def to_vega_spec(chart: alt.TopLevelMixin) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def _scale(domain: Optional[Tuple[float, float]]) -> alt.Scale:
    return alt.Scale(domain=list(domain)) if domain else alt.Scale(zero=False)


def _band_rules(band: ControlBand, field: str) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "line": ["mean", "+1σ", "+2σ", "-1σ", "-2σ"],
            field: [band.mean, band.plus1, band.plus2, band.minus1, band.minus2],
        }
    )


def build_series_chart(
    points: Sequence[ChartPoint],
    *,
    band: Optional[ControlBand] = None,
    pct_band: Optional[ControlBand] = None,
    value_title: str = "Value",
    pct_title: str = "Growth %",
    value_domain: Optional[Tuple[float, float]] = None,
    pct_domain: Optional[Tuple[float, float]] = None,
) -> Dict[str, Any]:
    """Dual-axis chart: value and prior-year on the left, growth % on the right."""
    if not points:
        return {}
    df = pd.DataFrame([asdict(p) for p in points])
    df["order"] = range(len(df))
    x = alt.X("label:N", sort=alt.EncodingSortField(field="order", op="min"), title=None)

    values_long = df.melt(
        id_vars=["label", "order"], value_vars=["value", "prior_year_value"], var_name="series", value_name="amount"
    )
    values_long["series"] = values_long["series"].map(SERIES_LABELS)
    left = (
        alt.Chart(values_long)
        .mark_line()
        .encode(
            x=x,
            y=alt.Y("amount:Q", title=value_title, scale=_scale(value_domain)),
            color=alt.Color("series:N", title=None),
            tooltip=["label", "series", alt.Tooltip("amount:Q", format=",.2f")],
        )
    )
    left_layers = [left]
    if band is not None:
        left_layers.append(
            alt.Chart(_band_rules(band, "amount"))
            .mark_rule(strokeDash=[4, 4], opacity=0.6)
            .encode(y="amount:Q", tooltip=["line", alt.Tooltip("amount:Q", format=",.2f")])
        )

    pct_long = df.melt(
        id_vars=["label", "order"], value_vars=["yoy_pct", "pop_pct"], var_name="series", value_name="pct"
    )
    pct_long["series"] = pct_long["series"].map(SERIES_LABELS)
    right = (
        alt.Chart(pct_long)
        .mark_line(strokeDash=[2, 2])
        .encode(
            x=x,
            y=alt.Y("pct:Q", title=pct_title, scale=_scale(pct_domain), axis=alt.Axis(orient="right")),
            color=alt.Color("series:N", title=None),
            tooltip=["label", "series", alt.Tooltip("pct:Q", format="+.2f")],
        )
    )
    right_layers = [right]
    if pct_band is not None:
        right_layers.append(
            alt.Chart(_band_rules(pct_band, "pct"))
            .mark_rule(strokeDash=[4, 4], opacity=0.4)
            .encode(y="pct:Q", tooltip=["line", alt.Tooltip("pct:Q", format="+.2f")])
        )

    chart = alt.layer(alt.layer(*left_layers), alt.layer(*right_layers)).resolve_scale(y="independent")
    return to_vega_spec(chart)


def build_period_bar_chart(
    rows: Sequence[Dict[str, Any]], *, period_field: str, value_title: str = "Value"
) -> Dict[str, Any]:
    """Bars for monthly / fiscal-year tables with the YoY % as a tooltip."""
    if not rows:
        return {}
    df = pd.DataFrame(list(rows))
    chart = (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X(f"{period_field}:N", sort=None, title=None),
            y=alt.Y("value:Q", title=value_title),
            tooltip=[period_field, alt.Tooltip("value:Q", format=",.2f"), alt.Tooltip("yoy_pct:Q", format="+.2f")],
        )
    )
    return to_vega_spec(chart)
