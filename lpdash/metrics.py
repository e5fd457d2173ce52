from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Mapping, Optional

import pandas as pd

from lpdash.schema import SUM_COLUMNS, Records, conversions_frame, merchant_order

# Used when a merchant is missing from the caller's price / rate tables.
FALLBACK_UNIT_PRICE = 50000.0
FALLBACK_EST_RATE = 20.0

MERCHANT_COLUMNS = [
    "merchant",
    "mcv",
    "rcv",
    "results",
    "cost",
    "unit_price",
    "mcpa",
    "rcvr",
    "rcv_ratio",
    "conversion_rate",
    "cvr_unit_price",
    "allowable_cpa_per_item",
    "actual_roas",
    "rcpa",
    "est_conversion_rate",
    "est_allowable_cpa",
    "est_roas",
]


@dataclass(frozen=True)
class PortfolioAggregate:
    mcv: float = 0.0
    rcv: float = 0.0
    results: float = 0.0
    cost: float = 0.0
    mcpa: float = 0.0
    rcvr: float = 0.0
    rcpa: float = 0.0
    conversion_rate: float = 0.0
    actual_roas: float = 0.0
    allowable_cpa: float = 0.0
    est_allowable_cpa: float = 0.0
    est_roas: float = 0.0


def _configured(table: Optional[Mapping[str, object]], merchant: str, fallback: float) -> float:
    value = (table or {}).get(merchant)
    try:
        out = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return fallback
    if not out or math.isnan(out):
        return fallback
    return out


def unit_price_for(unit_prices: Optional[Mapping[str, object]], merchant: str) -> float:
    return _configured(unit_prices, merchant, FALLBACK_UNIT_PRICE)


def est_rate_for(unit_est_rates: Optional[Mapping[str, object]], merchant: str) -> float:
    return _configured(unit_est_rates, merchant, FALLBACK_EST_RATE)


def _ratio(num: pd.Series, den: pd.Series, scale: float = 1.0) -> pd.Series:
    return (num * scale / den.where(den > 0)).fillna(0.0)


def _div(num: float, den: float, scale: float = 1.0) -> float:
    return num * scale / den if den > 0 else 0.0


def aggregate_by_merchant(
    records: Records,
    unit_prices: Optional[Mapping[str, object]],
    unit_est_rates: Optional[Mapping[str, object]],
) -> pd.DataFrame:
    """One KPI row per merchant.

    The baseline merchants are always present so the table layout is stable;
    rows without a merchant are ignored. ``rcv_ratio`` is each merchant's share
    of the rCV in ``records``.
    """
    df = conversions_frame(records)
    df = df[df["merchant"] != ""]
    sums = df.groupby("merchant", sort=False)[SUM_COLUMNS].sum()
    stats = sums.reindex(merchant_order(sums.index), fill_value=0.0).astype(float)
    stats.index.name = "merchant"
    stats = stats.reset_index()

    total_rcv = float(stats["rcv"].sum())
    price = stats["merchant"].map(lambda m: unit_price_for(unit_prices, m)).astype(float)
    est_rate = stats["merchant"].map(lambda m: est_rate_for(unit_est_rates, m)).astype(float)

    stats["unit_price"] = price
    stats["mcpa"] = _ratio(stats["cost"], stats["mcv"])
    stats["rcvr"] = _ratio(stats["rcv"], stats["mcv"], 100.0)
    stats["rcv_ratio"] = stats["rcv"] * 100.0 / total_rcv if total_rcv > 0 else 0.0
    stats["conversion_rate"] = _ratio(stats["results"], stats["rcv"], 100.0)
    stats["cvr_unit_price"] = stats["conversion_rate"] / 100.0 * price
    # rCV share x realized close rate x unit price; both rates are in percent.
    stats["allowable_cpa_per_item"] = (stats["rcv_ratio"] / 100.0) * (stats["conversion_rate"] / 100.0) * price
    stats["actual_roas"] = _ratio(stats["results"] * price, stats["cost"], 100.0)
    stats["rcpa"] = _ratio(stats["cost"], stats["rcv"])
    stats["est_conversion_rate"] = est_rate
    stats["est_allowable_cpa"] = (stats["rcv_ratio"] / 100.0) * (est_rate / 100.0) * price
    stats["est_roas"] = _ratio(stats["rcv"] * (est_rate / 100.0) * price, stats["cost"], 100.0)
    return stats[MERCHANT_COLUMNS]


def aggregate_metrics(
    records: Records,
    unit_prices: Optional[Mapping[str, object]],
    unit_est_rates: Optional[Mapping[str, object]],
) -> PortfolioAggregate:
    """Dataset-wide KPIs.

    Allowable CPA figures and the estimated ROAS numerator are rebuilt from
    per-merchant groups of ``records`` against the same totals, not summed from
    ``aggregate_by_merchant`` rows.
    """
    df = conversions_frame(records)
    if df.empty:
        return PortfolioAggregate()

    totals = {c: float(df[c].sum()) for c in SUM_COLUMNS}
    groups = df.groupby("merchant", sort=False)[["rcv", "results"]].sum()
    total_rcv = float(groups["rcv"].sum())

    allowable_cpa = 0.0
    est_allowable_cpa = 0.0
    est_revenue = 0.0
    revenue = 0.0
    for merchant, row in groups.iterrows():
        price = unit_price_for(unit_prices, merchant)
        est_rate = est_rate_for(unit_est_rates, merchant)
        rcv_ratio = _div(float(row["rcv"]), total_rcv, 100.0)
        conversion_rate = _div(float(row["results"]), float(row["rcv"]), 100.0)
        allowable_cpa += (rcv_ratio / 100.0) * (conversion_rate / 100.0) * price
        est_allowable_cpa += (rcv_ratio / 100.0) * (est_rate / 100.0) * price
        est_revenue += float(row["rcv"]) * (est_rate / 100.0) * price
        revenue += float(row["results"]) * price

    return PortfolioAggregate(
        mcv=totals["mcv"],
        rcv=totals["rcv"],
        results=totals["results"],
        cost=totals["cost"],
        mcpa=_div(totals["cost"], totals["mcv"]),
        rcvr=_div(totals["rcv"], totals["mcv"], 100.0),
        rcpa=_div(totals["cost"], totals["rcv"]),
        conversion_rate=_div(totals["results"], totals["rcv"], 100.0),
        actual_roas=_div(revenue, totals["cost"], 100.0),
        allowable_cpa=allowable_cpa,
        est_allowable_cpa=est_allowable_cpa,
        est_roas=_div(est_revenue, totals["cost"], 100.0),
    )


def adjusted_est_allowable_cpa(est_allowable_cpa: float, diff_rate: float) -> float:
    """Presentation-time diff-rate adjustment; never stored back into an aggregate."""
    return est_allowable_cpa * (1 + (diff_rate or 0.0) / 100.0)
