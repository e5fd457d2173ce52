from __future__ import annotations

from dataclasses import asdict, dataclass, is_dataclass
from enum import Enum
from typing import Any, Iterable, List, Mapping, NamedTuple, Union

import pandas as pd

from lpdash.normalize import normalize_key, to_amount, to_number

KEY_COLUMNS = ["date", "media", "lp_number", "method", "method2"]
MEDIA_KEY_COLUMNS = ["date", "media"]
COUNT_COLUMNS = ["mcv", "rcv", "results"]
SUM_COLUMNS = COUNT_COLUMNS + ["cost"]

COLUMN_ALIASES = {
    "mCV": "mcv",
    "rCV": "rcv",
    "lp": "lp_number",
    "totalCost": "total_cost",
}

# Cost rows tagged with these LP numbers were never assigned to a page.
UNASSIGNED_LP_NUMBERS = frozenset({"未振分", "none", ""})
NONE_LP_NUMBER = "LP_None"


class Merchant(str, Enum):
    """Known merchants, in display order."""

    ACOM = "acom"
    PROMISE = "promise"
    MOBIT = "mobit"
    AIFUL = "aiful"


BASELINE_MERCHANTS = [m.value for m in Merchant]
# Emitted during row expansion even when every count is zero.
ALWAYS_INCLUDED_MERCHANT = Merchant.AIFUL.value


def canonical_merchant(value: object) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value).strip().lower()


def merchant_order(merchants: Iterable[str]) -> List[str]:
    """Baseline merchants first (always), then the rest in encounter order."""
    extra: List[str] = []
    for m in merchants:
        if m and m not in BASELINE_MERCHANTS and m not in extra:
            extra.append(m)
    return BASELINE_MERCHANTS + extra


class CompositeKey(NamedTuple):
    date: str
    media: str
    lp_number: str
    method: str
    method2: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CompositeKey":
        return cls(*(normalize_key(row.get(c)) for c in KEY_COLUMNS))


@dataclass(frozen=True)
class ConversionRecord:
    date: str = ""
    lp_number: str = ""
    media: str = ""
    method: str = ""
    method2: str = ""
    merchant: str = ""
    mcv: float = 0.0
    rcv: float = 0.0
    results: float = 0.0
    cost: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "merchant", canonical_merchant(self.merchant))

    @property
    def key(self) -> CompositeKey:
        return CompositeKey.from_row(asdict(self))


@dataclass(frozen=True)
class CostRecord:
    date: str = ""
    media: str = ""
    method: str = ""
    method2: str = ""
    lp_number: str = ""
    total_cost: float = 0.0

    @property
    def key(self) -> CompositeKey:
        return CompositeKey.from_row(asdict(self))

    @property
    def is_unassigned(self) -> bool:
        return self.key.lp_number in UNASSIGNED_LP_NUMBERS


Records = Union[pd.DataFrame, Iterable[Any], None]


def _as_frame(records: Records) -> pd.DataFrame:
    if records is None:
        return pd.DataFrame()
    if isinstance(records, pd.DataFrame):
        return records.copy()
    rows = [asdict(r) if is_dataclass(r) else dict(r) for r in records]
    return pd.DataFrame(rows)


def _text_column(df: pd.DataFrame, col: str) -> pd.Series:
    if col not in df.columns:
        return pd.Series([""] * len(df), index=df.index, dtype=object)
    return df[col].map(lambda v: "" if v is None or (isinstance(v, float) and pd.isna(v)) else v).astype(object)


def conversions_frame(records: Records) -> pd.DataFrame:
    """Coerce conversion rows (frame, dicts or ConversionRecord) to the canonical frame."""
    df = _as_frame(records).rename(columns=COLUMN_ALIASES)
    out = pd.DataFrame(index=df.index)
    for c in KEY_COLUMNS:
        out[c] = _text_column(df, c)
    out["merchant"] = df["merchant"].map(canonical_merchant) if "merchant" in df.columns else ""
    for c in SUM_COLUMNS:
        out[c] = df[c].map(to_number).astype(float) if c in df.columns else 0.0
    extra = [c for c in df.columns if c not in out.columns]
    out = pd.concat([out, df[extra]], axis=1) if extra else out
    return out.reset_index(drop=True)


def costs_frame(records: Records) -> pd.DataFrame:
    """Coerce cost rows to the canonical frame; amounts are parsed and clipped at 0."""
    df = _as_frame(records).rename(columns=COLUMN_ALIASES)
    out = pd.DataFrame(index=df.index)
    for c in KEY_COLUMNS:
        out[c] = _text_column(df, c)
    out["total_cost"] = df["total_cost"].map(to_amount).astype(float).clip(lower=0.0) if "total_cost" in df.columns else 0.0
    return out.reset_index(drop=True)
