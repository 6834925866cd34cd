"""Cell-level normalization shared by importers and matchers."""
import re
from datetime import datetime
from typing import Any, Optional, Sequence

import pandas as pd


DATE_FORMATS = [
    "%Y-%m-%d",           # ISO
    "%Y-%m-%dT%H:%M:%S",  # ISO timestamp
    "%m/%d/%Y",           # US
    "%m/%d/%y",           # US short year
    "%d-%b-%Y",           # 15-Jan-2024
    "%Y/%m/%d",           # Alternative ISO
    "%d/%m/%Y",           # European
]

_NUMERIC_PREFIX = re.compile(r"-?(?:\d+(?:\.\d*)?|\.\d+)")


def clean_cell(row: Sequence[Any], index: Optional[int]) -> str:
    """Return the trimmed text of a cell, or "" when the column is absent."""
    if index is None or index < 0 or index >= len(row):
        return ""
    value = row[index]
    if value is None:
        return ""
    return str(value).replace('"', "").strip()


def parse_date(value: Any) -> Optional[datetime]:
    """Parse a date cell permissively. Returns None when nothing fits."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value

    date_str = str(value).strip()
    if not date_str:
        return None

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(date_str, fmt)
        except ValueError:
            continue

    # pandas handles offsets, "Z" suffixes and long-form month names
    try:
        ts = pd.to_datetime(date_str)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert(None)
    return ts.to_pydatetime()


def to_iso(dt: datetime) -> str:
    """Format a datetime as the canonical ISO-8601 timestamp."""
    return dt.strftime("%Y-%m-%dT%H:%M:%S")


def normalize_date(value: Any) -> str:
    """Normalize a date cell to ISO-8601, falling back to now."""
    parsed = parse_date(value)
    if parsed is None:
        parsed = datetime.now()
    return to_iso(parsed)


def date_key(value: Any) -> str:
    """Calendar-date part (YYYY-MM-DD) of a stored date, time-of-day ignored."""
    parsed = parse_date(value)
    if parsed is not None:
        return parsed.date().isoformat()
    return str(value or "").split("T")[0].strip()


def parse_amount(value: Any) -> float:
    """Parse an amount cell, keeping only digits, '.' and '-'.

    Follows leading-number semantics: "12.50.1" reads as 12.5 and anything
    without a numeric prefix reads as 0.
    """
    if value is None:
        return 0.0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return 0.0 if pd.isna(value) else float(value)

    cleaned = re.sub(r"[^0-9.\-]", "", str(value))
    match = _NUMERIC_PREFIX.match(cleaned)
    if not match:
        return 0.0
    return float(match.group(0))
