from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

import pandas as pd

from lpdash.lp_sort import sort_lp_numbers
from lpdash.normalize import normalize_key

CATEGORY_FIELDS = ["media", "method", "method2", "lp_number"]


@dataclass(frozen=True)
class ReportFilters:
    start_date: str = ""
    end_date: str = ""
    media: str = ""
    method: str = ""
    method2: str = ""
    lp_number: str = ""

    @property
    def is_empty(self) -> bool:
        return not any([self.start_date, self.end_date, self.media, self.method, self.method2, self.lp_number])


def _as_text(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def normalize_filters(raw: Optional[dict]) -> ReportFilters:
    raw = raw or {}
    return ReportFilters(
        start_date=_as_text(raw.get("start_date", raw.get("startDate"))),
        end_date=_as_text(raw.get("end_date", raw.get("endDate"))),
        media=_as_text(raw.get("media")),
        method=_as_text(raw.get("method")),
        method2=_as_text(raw.get("method2")),
        lp_number=_as_text(raw.get("lp_number")),
    )


def parse_day(value: object) -> Optional[pd.Timestamp]:
    day = pd.to_datetime(normalize_key(value), format="%Y-%m-%d", errors="coerce")
    return None if pd.isna(day) else day


def filter_records(df: pd.DataFrame, filters: ReportFilters) -> pd.DataFrame:
    """Rows matching every non-empty criterion, in input order.

    Date bounds are inclusive calendar days. A row whose date cannot be parsed
    is never dropped by a bound, and an unparseable bound means no bound.
    """
    if df.empty or filters.is_empty:
        return df.copy()

    mask = pd.Series(True, index=df.index)
    for field in CATEGORY_FIELDS:
        wanted = getattr(filters, field)
        if wanted and field in df.columns:
            mask &= df[field].astype(str) == wanted

    start = parse_day(filters.start_date) if filters.start_date else None
    end = parse_day(filters.end_date) if filters.end_date else None
    if (start is not None or end is not None) and "date" in df.columns:
        days = pd.to_datetime(df["date"].map(normalize_key), format="%Y-%m-%d", errors="coerce")
        if start is not None:
            mask &= ~(days < start)
        if end is not None:
            mask &= ~(days > end)
    return df[mask]


def _distinct(series: pd.Series) -> List[str]:
    values = [str(v) for v in series.tolist() if not (v is None or v == "" or (isinstance(v, float) and pd.isna(v)))]
    return list(dict.fromkeys(values))


def filter_options(df: pd.DataFrame) -> Dict[str, List[str]]:
    options: Dict[str, List[str]] = {}
    for field in CATEGORY_FIELDS:
        values = _distinct(df[field]) if field in df.columns else []
        options[field] = sort_lp_numbers(values) if field == "lp_number" else values
    return options
