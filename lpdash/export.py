from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

import pandas as pd

from lpdash.config import Assumptions
from lpdash.metrics import PortfolioAggregate, adjusted_est_allowable_cpa, est_rate_for, unit_price_for

TOTAL_LABEL = "TOTAL"
EXPORT_COLUMNS = [
    "商材名",
    "mCV",
    "rCV",
    "rCVR",
    "成果数",
    "成果率",
    "単価",
    "許容CPA",
    "成果率(想定)",
    "許容CPA(想定)",
]


def round_half_up(value: object, ndigits: int = 0) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    # Infinite ratios render like missing ones.
    if isinstance(value, (int, float)) and math.isinf(value):
        return None
    q = Decimal(10) ** -ndigits
    return float(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP))


def format_currency(value: object) -> str:
    rounded = round_half_up(value)
    if rounded is None:
        return "-"
    return f"¥{rounded:,.0f}"


def format_percent(value: object) -> str:
    rounded = round_half_up(value, 2)
    if rounded is None:
        return "-"
    return f"{rounded:.2f}%"


def format_count(value: object) -> str:
    rounded = round_half_up(value)
    if rounded is None:
        return "-"
    return f"{rounded:,.0f}"


def _as_int(value: object) -> Optional[int]:
    rounded = round_half_up(value)
    return None if rounded is None else int(rounded)


def summary_table(merchants: pd.DataFrame, totals: PortfolioAggregate, assumptions: Assumptions) -> pd.DataFrame:
    """Flat export: one row per merchant plus the TOTAL row."""
    rows: List[dict] = []
    for r in merchants.to_dict(orient="records"):
        m = r["merchant"]
        rows.append(
            {
                "商材名": m.upper(),
                "mCV": _as_int(r["mcv"]),
                "rCV": _as_int(r["rcv"]),
                "rCVR": format_percent(r["rcvr"]),
                "成果数": _as_int(r["results"]),
                "成果率": format_percent(r["conversion_rate"]),
                "単価": _as_int(unit_price_for(assumptions.unit_prices, m)),
                "許容CPA": _as_int(r["allowable_cpa_per_item"]),
                "成果率(想定)": format_percent(est_rate_for(assumptions.unit_est_rates, m)),
                "許容CPA(想定)": _as_int(r["est_allowable_cpa"]),
            }
        )
    rows.append(
        {
            "商材名": TOTAL_LABEL,
            "mCV": _as_int(totals.mcv),
            "rCV": _as_int(totals.rcv),
            "rCVR": format_percent(totals.rcvr),
            "成果数": _as_int(totals.results),
            "成果率": format_percent(totals.conversion_rate),
            "単価": "-",
            "許容CPA": _as_int(totals.allowable_cpa),
            "成果率(想定)": "-",
            "許容CPA(想定)": _as_int(totals.est_allowable_cpa),
        }
    )
    return pd.DataFrame(rows, columns=EXPORT_COLUMNS)


def display_table(merchants: pd.DataFrame, totals: PortfolioAggregate, diff_rate: float) -> pd.DataFrame:
    """Formatted on-screen table. Per-merchant cost / CPA / ROAS cells show ``-``."""
    rows: List[dict] = []
    for r in merchants.to_dict(orient="records"):
        rows.append(
            {
                "商材名": r["merchant"].upper(),
                "mCV": format_count(r["mcv"]),
                "mCPA": "-",
                "rCV": format_count(r["rcv"]),
                "rCVR": format_percent(r["rcvr"]),
                "rCV比率": format_percent(r["rcv_ratio"]),
                "成果数": format_count(r["results"]),
                "成果率": format_percent(r["conversion_rate"]),
                "単価": format_currency(r["unit_price"]),
                "許容CPA": format_currency(r["allowable_cpa_per_item"]),
                "rCPA": "-",
                "広告費": "-",
                "ROAS(実績)": "-",
                "成果率(想定)": format_percent(r["est_conversion_rate"]),
                "許容CPA(想定)": format_currency(r["est_allowable_cpa"]),
                "差分率": "-",
                "許容CPA(想定)_差分込み": "-",
                "ROAS(想定)": "-",
            }
        )
    rows.append(
        {
            "商材名": TOTAL_LABEL,
            "mCV": format_count(totals.mcv),
            "mCPA": format_currency(totals.mcpa),
            "rCV": format_count(totals.rcv),
            "rCVR": format_percent(totals.rcvr),
            "rCV比率": format_percent(100.0),
            "成果数": format_count(totals.results),
            "成果率": format_percent(totals.conversion_rate),
            "単価": "-",
            "許容CPA": format_currency(totals.allowable_cpa),
            "rCPA": format_currency(totals.rcpa),
            "広告費": format_currency(totals.cost),
            "ROAS(実績)": format_percent(totals.actual_roas),
            "成果率(想定)": "-",
            "許容CPA(想定)": format_currency(totals.est_allowable_cpa),
            "差分率": format_percent(diff_rate),
            "許容CPA(想定)_差分込み": format_currency(adjusted_est_allowable_cpa(totals.est_allowable_cpa, diff_rate)),
            "ROAS(想定)": format_percent(totals.est_roas),
        }
    )
    return pd.DataFrame(rows)


def to_csv_bytes(df: pd.DataFrame) -> bytes:
    return df.to_csv(index=False).encode("utf-8-sig")
