from __future__ import annotations

import io
import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from powerdash.calendar_keys import format_ddmmyyyy_slash, parse_date
from powerdash.models import DailyPoint

logger = logging.getLogger(__name__)

DEFAULT_VALUE_INDEX = 1


class IngestionError(ValueError):
    """A whole file could not be read (no rows, unreadable workbook)."""


@dataclass(frozen=True)
class SeriesParseResult:
    points: List[DailyPoint]
    errors: List[str]
    value_column: int = DEFAULT_VALUE_INDEX
    used_default_column: bool = False

    def to_series(self) -> Dict[str, float]:
        return merge_records({}, self.points)


@dataclass(frozen=True)
class TableParseResult:
    columns: List[str]
    rows: Dict[str, Dict[str, float]]
    errors: List[str]


@dataclass(frozen=True)
class SheetSeries:
    name: str
    dates: List[str] = field(default_factory=list)
    columns: List[str] = field(default_factory=list)
    values: Dict[str, Dict[str, float]] = field(default_factory=dict)
    latest_date: Optional[str] = None


@dataclass(frozen=True)
class SpreadsheetBook:
    primary: SheetSeries
    companion: Optional[SheetSeries] = None


# ---------------- Field helpers ----------------
def normalize_header_key(value: object) -> str:
    s = str(value or "").strip().lower()
    s = s.replace("–", "-").replace("—", "-")
    return re.sub(r"\s+", "", s)


def coerce_numeric(raw: pd.Series) -> pd.Series:
    """Numbers from mixed cells: thousands commas stripped, anything non-finite -> NaN."""
    cleaned = raw.astype(str).str.strip().str.replace(",", "", regex=False)
    values = pd.to_numeric(cleaned, errors="coerce").astype(float)
    return values.where(np.isfinite(values))


def read_delimited_rows(text: str) -> pd.DataFrame:
    """Comma-delimited text as a string frame indexed by 1-based line number.

    Blank lines and lines without a comma (fewer than two fields) are left out;
    short rows are padded with empty strings.
    """
    lines = [(n, ln.strip()) for n, ln in enumerate(re.split(r"\r\n|\r|\n", text or ""), start=1)]
    kept = [(n, ln) for n, ln in lines if "," in ln]
    if not kept:
        raise IngestionError("no rows with a date and a value were found")

    width = max(ln.count(",") for _, ln in kept) + 1
    try:
        frame = pd.read_csv(
            io.StringIO("\n".join(ln for _, ln in kept)),
            header=None,
            names=range(width),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            skipinitialspace=True,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise IngestionError(f"could not read delimited text: {exc}") from exc
    if len(frame) != len(kept):
        raise IngestionError("unbalanced quotes in delimited text")

    frame.index = [n for n, _ in kept]
    return frame.fillna("").apply(lambda col: col.str.strip())


def _has_header(frame: pd.DataFrame) -> bool:
    return "date" in str(frame.iat[0, 0]).lower()


def _parse_dates(raw: pd.Series, allow_serial: bool = False) -> pd.Series:
    return raw.map(lambda v: parse_date(v, allow_serial=allow_serial))


# ---------------- Delimited text ----------------
def parse_delimited_series(text: str, value_column_key: str) -> SeriesParseResult:
    """Parse `date,<value>[,...]` text into points, collecting per-row errors.

    A first line whose first field contains "date" is a header; the value
    column is the header matching `value_column_key` after normalization,
    else the second column. Errors name the line number in `text`.
    """
    frame = read_delimited_rows(text)

    value_idx = DEFAULT_VALUE_INDEX
    used_default = True
    if _has_header(frame):
        header = [normalize_header_key(h) for h in frame.iloc[0]]
        want = normalize_header_key(value_column_key)
        if want in header:
            value_idx = header.index(want)
            used_default = False
        else:
            logger.warning("value column %r not in header %s; using column %d", value_column_key, header, value_idx)
        frame = frame.iloc[1:]

    dates = _parse_dates(frame[0])
    values = coerce_numeric(frame[value_idx])

    points: List[DailyPoint] = []
    errors: List[str] = []
    for line_no, d_raw, key, v_raw, value in zip(frame.index, frame[0], dates, frame[value_idx], values):
        if key is None:
            errors.append(f"Row {line_no}: invalid date '{d_raw}' (expected DD/MM/YYYY)")
        elif pd.isna(value):
            errors.append(f"Row {line_no}: invalid value '{v_raw}'")
        else:
            points.append(DailyPoint(date=key, value=float(value)))

    logger.debug("parsed %d points (%d row errors)", len(points), len(errors))
    return SeriesParseResult(points=points, errors=errors, value_column=value_idx, used_default_column=used_default)


def parse_delimited_table(text: str, date_headers: Sequence[str] = ()) -> TableParseResult:
    """Multi-column variant: `date,total,coal,renewable` -> date -> {column -> value}.

    The date column is the first one unless a header cell matches one of
    `date_headers` (e.g. "Month" in monthly files), which also marks the first
    line as a header. Cells that are blank or not numbers are left out of a
    row; a row with no numeric cell at all is an error.
    """
    frame = read_delimited_rows(text)
    header = [normalize_header_key(h) for h in frame.iloc[0]]
    wanted = {normalize_header_key(h) for h in date_headers}
    date_idx = next((idx for idx, h in enumerate(header) if h in wanted), None)

    if date_idx is not None or _has_header(frame):
        date_idx = date_idx or 0
        names = {idx: h for idx, h in enumerate(header) if idx != date_idx and h}
        frame = frame.iloc[1:]
    else:
        date_idx = 0
        names = {idx: f"col{idx}" for idx in range(1, frame.shape[1]) if (frame[idx] != "").any()}

    numbers = pd.DataFrame({name: coerce_numeric(frame[idx]) for idx, name in names.items()}, index=frame.index)
    dates = _parse_dates(frame[date_idx])

    out: Dict[str, Dict[str, float]] = {}
    errors: List[str] = []
    for line_no, d_raw, key in zip(frame.index, frame[date_idx], dates):
        if key is None:
            errors.append(f"Row {line_no}: invalid date '{d_raw}' (expected DD/MM/YYYY)")
            continue
        vals = {col: float(v) for col, v in numbers.loc[line_no].dropna().items()}
        if not vals:
            errors.append(f"Row {line_no}: no numeric values")
            continue
        out[key] = vals
    return TableParseResult(columns=list(numbers.columns), rows=out, errors=errors)


# ---------------- Spreadsheets ----------------
def _header_name(value: object) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return ""
    return str(value).strip()


def parse_sheet(name: str, raw: pd.DataFrame) -> SheetSeries:
    if raw.empty or len(raw) < 2:
        return SheetSeries(name=name)

    header = [_header_name(h) for h in raw.iloc[0].tolist()]
    named_cols: List[Tuple[int, str]] = [(idx, h) for idx, h in enumerate(header) if idx > 0 and h]

    body = raw.iloc[1:]
    dates = _parse_dates(body.iloc[:, 0], allow_serial=True)
    dated = dates.notna()
    values: Dict[str, Dict[str, float]] = {}
    has_value = pd.Series(False, index=body.index)
    for idx, col in named_cols:
        numbers = coerce_numeric(body.iloc[:, idx])
        valid = dated & numbers.notna()
        values[col] = {d: float(v) for d, v in zip(dates[valid], numbers[valid])}
        has_value |= valid

    ordered = sorted(set(dates[has_value]))
    return SheetSeries(
        name=name,
        dates=ordered,
        columns=[h for _, h in named_cols],
        values=values,
        latest_date=ordered[-1] if ordered else None,
    )


def parse_spreadsheet_series(data: bytes) -> SpreadsheetBook:
    """Sheet 1 is the primary metric; sheet 2 (when present) its companion."""
    try:
        sheets = pd.read_excel(io.BytesIO(data), sheet_name=None, header=None)
    except Exception as exc:
        raise IngestionError(f"could not read workbook: {exc}") from exc
    if not sheets:
        raise IngestionError("workbook has no sheets")

    names = list(sheets.keys())
    primary = parse_sheet(str(names[0]), sheets[names[0]])
    companion = parse_sheet(str(names[1]), sheets[names[1]]) if len(names) > 1 else None
    logger.info(
        "workbook parsed: %s (%d dates)%s",
        primary.name,
        len(primary.dates),
        f", {companion.name} ({len(companion.dates)} dates)" if companion else "",
    )
    return SpreadsheetBook(primary=primary, companion=companion)


# ---------------- Series maps ----------------
def merge_records(
    existing: Mapping[str, float], incoming: Union[Iterable[DailyPoint], Mapping[str, float]]
) -> Dict[str, float]:
    """Upsert: later values replace earlier ones for the same date."""
    out = dict(existing)
    items = incoming.items() if isinstance(incoming, Mapping) else ((p.date, p.value) for p in incoming)
    for d, v in items:
        out[d] = float(v)
    return out


def coerce_series(raw: Mapping[object, object]) -> Tuple[Dict[str, float], List[str]]:
    """Clean a caller-supplied date->value mapping (keys in any supported notation)."""
    if not raw:
        return {}, []
    keys = list(raw.keys())
    originals = pd.Series(list(raw.values()), dtype=object)
    values = coerce_numeric(originals)

    out: Dict[str, float] = {}
    errors: List[str] = []
    for k, v_raw, value in zip(keys, originals, values):
        key = parse_date(k, allow_serial=False)
        if key is None:
            errors.append(f"invalid date '{k}'")
        elif pd.isna(value):
            errors.append(f"{key}: invalid value '{v_raw}'")
        else:
            out[key] = float(value)
    return out, errors


def series_to_csv(series: Mapping[str, float], value_column_key: str) -> str:
    keys = sorted(series)
    df = pd.DataFrame(
        {"date": [format_ddmmyyyy_slash(k) for k in keys], value_column_key: [series[k] for k in keys]}
    )
    return df.to_csv(index=False, lineterminator="\n")


def load_series_file(path: Union[str, Path], value_column_key: str) -> SeriesParseResult:
    text = Path(path).read_text(encoding="utf-8-sig")
    return parse_delimited_series(text, value_column_key)
