from __future__ import annotations

import calendar
import math
import re
from datetime import date, datetime, timedelta
from typing import Iterator, Optional

import numpy as np
import pandas as pd

SPREADSHEET_EPOCH = date(1899, 12, 30)
SERIAL_MIN = 20000
SERIAL_MAX = 80000
EMPTY_LABEL = "—"

_ISO_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_DMY_SLASH_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_DMY_SLASH_SHORT_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2})$")
_MY_RE = re.compile(r"^(\d{1,2})/(\d{4})$")
_MY_SHORT_RE = re.compile(r"^(\d{1,2})/(\d{2})$")
_DMY_DASH_RE = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
_DMY_DASH_SHORT_RE = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{2})$")


def _key(year: int, month: int, day: int) -> Optional[str]:
    try:
        d = date(year, month, day)
    except ValueError:
        return None
    return from_date(d)


def from_date(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"


def to_date(key: str) -> date:
    return date(int(key[0:4]), int(key[5:7]), int(key[8:10]))


def is_calendar_key(value: object) -> bool:
    if not isinstance(value, str):
        return False
    m = _ISO_RE.match(value)
    return bool(m) and _key(int(m.group(1)), int(m.group(2)), int(m.group(3))) is not None


def _from_serial(value: float) -> Optional[str]:
    if not math.isfinite(value) or not (SERIAL_MIN < value < SERIAL_MAX):
        return None
    return from_date(SPREADSHEET_EPOCH + timedelta(days=int(math.floor(value))))


def _parse_text(t: str) -> Optional[str]:
    m = _ISO_RE.match(t)
    if m:
        return _key(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = _DMY_SLASH_RE.match(t)
    if m:
        return _key(int(m.group(3)), int(m.group(2)), int(m.group(1)))

    m = _DMY_SLASH_SHORT_RE.match(t)
    if m:
        return _key(2000 + int(m.group(3)), int(m.group(2)), int(m.group(1)))

    # Month-only notations land on day 1 of the month.
    m = _MY_RE.match(t)
    if m:
        month, year = int(m.group(1)), int(m.group(2))
        if 1 <= month <= 12 and year >= 1900:
            return _key(year, month, 1)
        return None

    m = _MY_SHORT_RE.match(t)
    if m:
        month, year = int(m.group(1)), 2000 + int(m.group(2))
        if 1 <= month <= 12:
            return _key(year, month, 1)
        return None

    m = _DMY_DASH_RE.match(t)
    if m:
        return _key(int(m.group(3)), int(m.group(2)), int(m.group(1)))

    m = _DMY_DASH_SHORT_RE.match(t)
    if m:
        return _key(2000 + int(m.group(3)), int(m.group(2)), int(m.group(1)))

    return None


def parse_date(value: object, *, allow_serial: bool = True) -> Optional[str]:
    """Parse text, a spreadsheet serial or a native date into a YYYY-MM-DD key.

    Native values use their own calendar fields (no UTC conversion). Numeric
    values are only read as serials (1899-12-30 epoch) inside the
    SERIAL_MIN..SERIAL_MAX band; numeric *strings* are never serials.
    """
    if value is None or value is pd.NaT or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return from_date(value.date())
    if isinstance(value, date):
        return from_date(value)
    if isinstance(value, np.datetime64):
        if np.isnat(value):
            return None
        return from_date(pd.Timestamp(value).date())
    if isinstance(value, (int, float, np.integer, np.floating)):
        return _from_serial(float(value)) if allow_serial else None
    if isinstance(value, str):
        return _parse_text(value.strip())
    return None


# ---------------- Key arithmetic ----------------
def add_days(key: str, n: int) -> str:
    return from_date(to_date(key) + timedelta(days=n))


def days_between(start: str, end: str) -> int:
    return (to_date(end) - to_date(start)).days


def iter_days(start: str, end: str) -> Iterator[str]:
    cur = to_date(start)
    stop = to_date(end)
    while cur <= stop:
        yield from_date(cur)
        cur += timedelta(days=1)


def month_key(key: str) -> str:
    return key[:7]


def day_of_month(key: str) -> int:
    return int(key[8:10])


def add_months(ym: str, n: int) -> str:
    total = int(ym[0:4]) * 12 + (int(ym[5:7]) - 1) + n
    return f"{total // 12:04d}-{total % 12 + 1:02d}"


def start_of_week(key: str) -> str:
    d = to_date(key)
    return from_date(d - timedelta(days=d.weekday()))


def add_years_same_day(key: str, n: int) -> str:
    year, month, day = int(key[0:4]) + n, int(key[5:7]), int(key[8:10])
    last = calendar.monthrange(year, month)[1]
    return f"{year:04d}-{month:02d}-{min(day, last):02d}"


def same_day_previous_month(key: str) -> Optional[str]:
    prev = add_months(month_key(key), -1)
    return _key(int(prev[0:4]), int(prev[5:7]), day_of_month(key))


# ---------------- Fiscal years (April-March) ----------------
# Two-digit labels cover the years ending 2000..2099.
FY_FIRST_DAY = "1999-04-01"
FY_LAST_DAY = "2099-03-31"


def fiscal_year_label(key: str) -> str:
    if not (FY_FIRST_DAY <= key <= FY_LAST_DAY):
        raise ValueError(f"{key} is outside the FY00-FY99 label range")
    year, month = int(key[0:4]), int(key[5:7])
    end_year = year + 1 if month >= 4 else year
    return f"FY{end_year % 100:02d}"


def fiscal_year_end_year(label: str) -> int:
    return 2000 + int(label[2:])


def fiscal_year_start(label: str) -> str:
    return f"{fiscal_year_end_year(label) - 1:04d}-04-01"


def fiscal_year_end(label: str) -> str:
    return f"{fiscal_year_end_year(label):04d}-03-31"


def fiscal_year_start_for(key: str) -> str:
    year, month = int(key[0:4]), int(key[5:7])
    return f"{year if month >= 4 else year - 1:04d}-04-01"


def previous_fiscal_year(label: str) -> str:
    return f"FY{(int(label[2:]) - 1) % 100:02d}"


# ---------------- Display ----------------
def format_ddmmyyyy(key: object) -> str:
    if not is_calendar_key(key):
        return EMPTY_LABEL
    y, m, d = str(key).split("-")
    return f"{d}-{m}-{y}"


def format_ddmmyyyy_slash(key: object) -> str:
    if not is_calendar_key(key):
        return EMPTY_LABEL
    y, m, d = str(key).split("-")
    return f"{d}/{m}/{y}"


def format_ddmmyy(key: object) -> str:
    if not is_calendar_key(key):
        return EMPTY_LABEL
    y, m, d = str(key).split("-")
    return f"{d}/{m}/{y[2:]}"
