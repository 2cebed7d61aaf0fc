from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

from powerdash.calendar_keys import add_days, parse_date
from powerdash.models import CombinationMode, VarianceMode, ViewMode

WINDOW_OPTIONS: Tuple[int, ...] = (7, 14, 30, 45)
VIEW_MODES: Tuple[str, ...] = ("daily", "rolling", "weekly_rolling", "monthly")
COMBINATION_MODES: Tuple[str, ...] = ("sum", "average")
VARIANCE_MODES: Tuple[str, ...] = ("population", "sample")
RANGE_DAYS_MIN = 7
RANGE_DAYS_MAX = 3650
LOG_LEVELS: Tuple[str, ...] = ("debug", "info", "warning", "error", "critical")
CAPACITY_CSV_FILE = "capacity.csv"


@dataclass(frozen=True)
class AggregationConfig:
    mode: CombinationMode = "sum"
    view: ViewMode = "rolling"
    window_days: int = 30
    rolling_mode: CombinationMode = "average"
    range_days: int = 730
    from_date: Optional[str] = None
    to_date: Optional[str] = None
    variance_mode: VarianceMode = "population"
    weekly_limit: int = 104
    monthly_limit: int = 24


@dataclass(frozen=True)
class SeriesPreset:
    name: str
    title: str
    value_column_key: str
    mode: CombinationMode
    unit_suffix: str
    decimals: int = 2
    csv_file: Optional[str] = None


SERIES_PRESETS: Dict[str, SeriesPreset] = {
    p.name: p
    for p in (
        SeriesPreset("generation", "Electricity Generation", "total", "sum", " MU", csv_file="generation.csv"),
        SeriesPreset("generation-coal", "Coal Generation", "coal", "sum", " MU", csv_file="generation.csv"),
        SeriesPreset("generation-renewable", "Renewable Generation", "renewable", "sum", " MU", csv_file="generation.csv"),
        SeriesPreset("demand", "Peak Demand Met", "demand_gwh", "average", " GW", csv_file="demand.csv"),
        SeriesPreset("supply", "Energy Supply", "supply_gwh", "sum", " MU", csv_file="supply.csv"),
        SeriesPreset("coal-plf", "Coal PLF", "coal_plf", "average", "%", csv_file="coal_plf.csv"),
        SeriesPreset("rtm-prices", "RTM Prices", "rtm_price", "average", " Rs/Unit", csv_file="rtm_prices.csv"),
    )
}


def _choice(value: object, options: Tuple[str, ...], default: str) -> str:
    s = str(value).strip().lower() if value is not None else ""
    return s if s in options else default


def _as_int(value: object, default: int) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


def normalize_config(raw: dict, *, preset: Optional[SeriesPreset] = None) -> AggregationConfig:
    """Coerce a raw (UI / request) dict into an AggregationConfig.

    Unknown or malformed values fall back to defaults; the preset, when given,
    decides the combination mode unless the raw dict names one.
    """
    default_mode = preset.mode if preset is not None else "sum"
    mode = _choice(raw.get("mode"), COMBINATION_MODES, default_mode)
    view = _choice(raw.get("view"), VIEW_MODES, "rolling")

    window_days = _as_int(raw.get("window_days"), 30)
    if window_days not in WINDOW_OPTIONS:
        window_days = 30

    # Rolling sums only make sense for additive series.
    rolling_mode = _choice(raw.get("rolling_mode"), COMBINATION_MODES, "average")
    if mode != "sum":
        rolling_mode = "average"

    range_days = _as_int(raw.get("range_days"), 730)
    range_days = max(RANGE_DAYS_MIN, min(RANGE_DAYS_MAX, range_days))

    from_date = parse_date(raw.get("from_date"), allow_serial=False)
    to_date = parse_date(raw.get("to_date"), allow_serial=False)
    if from_date and to_date and from_date > to_date:
        from_date, to_date = to_date, from_date

    variance_mode = _choice(raw.get("variance_mode"), VARIANCE_MODES, "population")
    weekly_limit = max(1, _as_int(raw.get("weekly_limit"), 104))
    monthly_limit = max(1, _as_int(raw.get("monthly_limit"), 24))

    return AggregationConfig(
        mode=mode,  # type: ignore[arg-type]
        view=view,  # type: ignore[arg-type]
        window_days=window_days,
        rolling_mode=rolling_mode,  # type: ignore[arg-type]
        range_days=range_days,
        from_date=from_date,
        to_date=to_date,
        variance_mode=variance_mode,  # type: ignore[arg-type]
        weekly_limit=weekly_limit,
        monthly_limit=monthly_limit,
    )


def resolve_range(config: AggregationConfig, latest_date: Optional[str]) -> Optional[Tuple[str, str]]:
    """Effective [from, to] for a series whose last date is `latest_date`."""
    to_date = config.to_date or latest_date
    if to_date is None:
        return None
    from_date = config.from_date or add_days(to_date, -config.range_days)
    if from_date > to_date:
        from_date, to_date = to_date, from_date
    return from_date, to_date


@dataclass(frozen=True)
class Settings:
    data_dir: Optional[Path] = None
    log_level: str = "INFO"


def get_settings() -> Settings:
    raw_dir = os.getenv("POWERDASH_DATA_DIR")
    log_level = _choice(os.getenv("POWERDASH_LOG_LEVEL"), LOG_LEVELS, "info").upper()
    return Settings(data_dir=Path(raw_dir) if raw_dir else None, log_level=log_level)
