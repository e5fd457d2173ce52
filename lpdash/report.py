from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

import pandas as pd

from lpdash.charts import daily_trend_chart, to_vega_spec
from lpdash.config import Assumptions
from lpdash.export import display_table
from lpdash.filters import ReportFilters, filter_records
from lpdash.metrics import adjusted_est_allowable_cpa, aggregate_by_merchant, aggregate_metrics


def prepare_context(records: pd.DataFrame, filters: ReportFilters, assumptions: Assumptions) -> Dict[str, Any]:
    """Filtered rows and both aggregate views, recomputed from scratch."""
    filtered = filter_records(records, filters)
    merchants = aggregate_by_merchant(filtered, assumptions.unit_prices, assumptions.unit_est_rates)
    totals = aggregate_metrics(filtered, assumptions.unit_prices, assumptions.unit_est_rates)
    return {
        "filters": filters,
        "assumptions": assumptions,
        "filtered": filtered,
        "merchants": merchants,
        "totals": totals,
        "est_allowable_cpa_adjusted": adjusted_est_allowable_cpa(totals.est_allowable_cpa, assumptions.diff_rate),
    }


def compute_report(records: pd.DataFrame, filters: ReportFilters, assumptions: Assumptions) -> Dict[str, Any]:
    ctx = prepare_context(records, filters, assumptions)
    chart = daily_trend_chart(ctx["filtered"])
    return {
        "filters": asdict(filters),
        "assumptions": asdict(assumptions),
        "row_counts": {"records": int(len(records)), "filtered": int(len(ctx["filtered"]))},
        "merchants": ctx["merchants"].to_dict(orient="records"),
        "totals": asdict(ctx["totals"]),
        "est_allowable_cpa_adjusted": ctx["est_allowable_cpa_adjusted"],
        "table": display_table(ctx["merchants"], ctx["totals"], assumptions.diff_rate).to_dict(orient="records"),
        "trend_chart": to_vega_spec(chart) if chart is not None else None,
    }
