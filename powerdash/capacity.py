from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from powerdash.calendar_keys import add_months, month_key, parse_date
from powerdash.formatting import round_half_up
from powerdash.ingest import IngestionError, normalize_header_key, parse_delimited_table
from powerdash.models import PeriodAggregate
from powerdash.stats import growth_pct

logger = logging.getLogger(__name__)

CAPACITY_SOURCES: Tuple[str, ...] = (
    "Coal",
    "Oil & Gas",
    "Nuclear",
    "Hydro",
    "Solar",
    "Wind",
    "Small-Hydro",
    "Bio Power",
)
MONTH_HEADERS: Tuple[str, ...] = ("month", "date", "capacity (gw)")
DEFAULT_NET_ADDITION_MONTHS = 12

_MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{2})$")
_SOURCE_BY_HEADER = {normalize_header_key(s): s for s in CAPACITY_SOURCES}


@dataclass(frozen=True)
class CapacityMonth:
    month: str  # YYYY-MM
    by_source: Dict[str, float]
    total: float


@dataclass(frozen=True)
class CapacityHistory:
    months: List[CapacityMonth] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def month_keys(self) -> List[str]:
        return [m.month for m in self.months]

    def get(self, month: str) -> Optional[CapacityMonth]:
        return next((m for m in self.months if m.month == month), None)


@dataclass(frozen=True)
class RatedCapacity:
    installed: Dict[str, float]
    plf_pct: Dict[str, float]
    rated: Dict[str, float]
    installed_total: float
    rated_total: float


@dataclass(frozen=True)
class NetAdditions:
    start_month: str
    end_month: str
    by_source: Dict[str, float]
    total: float


def to_month_key(value: object) -> Optional[str]:
    """`YYYY-MM`, or the month of any date notation `parse_date` accepts."""
    if isinstance(value, str):
        m = _MONTH_KEY_RE.match(value.strip())
        if m:
            return value.strip() if 1 <= int(m.group(2)) <= 12 else None
    key = parse_date(value, allow_serial=False)
    return month_key(key) if key else None


def _source_values(raw: Mapping[str, float]) -> Dict[str, float]:
    return {s: float(raw.get(s, 0.0)) for s in CAPACITY_SOURCES}


def parse_capacity_history(text: str) -> CapacityHistory:
    """Month-keyed installed capacity (GW) per source, one row per month.

    The month column is the one headed Month / Date / Capacity (GW); its cells
    may be MM/YYYY, MM/YY or a full date. Sources missing from a row count as
    0; the last row for a month wins.
    """
    table = parse_delimited_table(text, date_headers=MONTH_HEADERS)
    by_month: Dict[str, Dict[str, float]] = {}
    for d, vals in table.rows.items():
        picked = {_SOURCE_BY_HEADER[c]: v for c, v in vals.items() if c in _SOURCE_BY_HEADER}
        by_month[month_key(d)] = _source_values(picked)

    if not by_month:
        raise IngestionError("no capacity rows with a month and source values were found")
    unknown = [c for c in table.columns if c not in _SOURCE_BY_HEADER]
    if unknown:
        logger.info("ignoring non-source capacity columns: %s", unknown)

    months = [
        CapacityMonth(month=m, by_source=vals, total=sum(vals.values())) for m, vals in sorted(by_month.items())
    ]
    return CapacityHistory(months=months, errors=table.errors)


def capacity_growth(history: CapacityHistory) -> List[PeriodAggregate]:
    """Total capacity per month with MoM (previous month) and YoY (same month last year)."""
    totals = {m.month: m.total for m in history.months}
    out: List[PeriodAggregate] = []
    for m in history.months:
        prev = totals.get(add_months(m.month, -1))
        py = totals.get(add_months(m.month, -12))
        out.append(
            PeriodAggregate(
                period_key=m.month,
                value=m.total,
                count=1,
                prior_period_value=prev,
                prior_year_value=py,
                comparable_prior_period_value=prev,
                comparable_prior_year_value=py,
                pop_pct=growth_pct(m.total, prev),
                yoy_pct=growth_pct(m.total, py),
                is_complete=True,
            )
        )
    return out


def rated_capacity(installed: Mapping[str, float], plf_pct: Mapping[str, float]) -> RatedCapacity:
    """Rated = installed x PLF / 100 per source, rounded to 2 places; totals sum the sources."""
    inst = _source_values(installed)
    plf = _source_values(plf_pct)
    rated = {s: round_half_up(inst[s] * plf[s] / 100, 2) or 0.0 for s in CAPACITY_SOURCES}
    return RatedCapacity(
        installed=inst,
        plf_pct=plf,
        rated=rated,
        installed_total=sum(inst.values()),
        rated_total=sum(rated.values()),
    )


def clamp_month(target: str, options: Sequence[str]) -> str:
    """`target` when present, else the latest option before it, else the earliest option."""
    if not options or target in options:
        return target
    ordered = sorted(options)
    earlier = [m for m in ordered if m <= target]
    return earlier[-1] if earlier else ordered[0]


def default_addition_months(history: CapacityHistory) -> Optional[Tuple[str, str]]:
    """(latest month - 12, latest month), clamped to months that have data."""
    options = history.month_keys
    if not options:
        return None
    end = options[-1]
    return clamp_month(add_months(end, -DEFAULT_NET_ADDITION_MONTHS), options), end


def net_additions(history: CapacityHistory, start_month: str, end_month: str) -> NetAdditions:
    """Capacity at the end month minus capacity at the start month, per source.

    A start month after the end month is pulled back to the end month.
    """
    if start_month > end_month:
        start_month = end_month
    start = history.get(start_month)
    end = history.get(end_month)
    if start is None or end is None:
        missing = start_month if start is None else end_month
        raise ValueError(f"no capacity row for {missing}")

    per = {s: round_half_up(end.by_source[s] - start.by_source[s], 2) or 0.0 for s in CAPACITY_SOURCES}
    total = round_half_up(end.total - start.total, 2) or 0.0
    return NetAdditions(start_month=start_month, end_month=end_month, by_source=per, total=total)
