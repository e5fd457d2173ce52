from __future__ import annotations

import math
import re
from typing import Iterable

import pandas as pd

DATE_PREFIX = re.compile(r"^(\d{4})[/-](\d{1,2})[/-](\d{1,2})")
NUMBER_TEXT = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")
LEADING_DECIMAL = re.compile(r"^(?:\d+(?:\.\d*)?|\.\d+)")


def _is_missing(value: object) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def normalize_key(value: object) -> str:
    """Canonical string for join keys.

    Trimmed and lower-cased; date-like values (``2024/1/5``, ``2024-01-05 10:00``)
    become ``YYYY-MM-DD``. Never raises.
    """
    if _is_missing(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    s = str(value).strip().lower()
    match = DATE_PREFIX.match(s)
    if match:
        year, month, day = match.groups()
        return f"{year}-{month.zfill(2)}-{day.zfill(2)}"
    return s


def normalize_key_columns(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    out = pd.DataFrame(index=df.index)
    for c in cols:
        if c in df.columns:
            out[c] = df[c].map(normalize_key).astype(object)
        else:
            out[c] = ""
    return out


def to_number(value: object) -> float:
    """Count-like cell -> float. Blank or unparseable cells count as 0."""
    if _is_missing(value) or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        out = float(value)
    else:
        s = str(value).strip().replace(",", "")
        if not NUMBER_TEXT.match(s):
            return 0.0
        out = float(s)
    if math.isnan(out) or math.isinf(out):
        return 0.0
    return out


def to_amount(value: object) -> float:
    """Money cell -> float. Currency symbols and separators are stripped."""
    if _is_missing(value) or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        out = float(value)
        return 0.0 if math.isnan(out) or math.isinf(out) else out
    cleaned = re.sub(r"[^0-9.]", "", str(value))
    match = LEADING_DECIMAL.match(cleaned)
    if not match:
        return 0.0
    return float(match.group(0))
