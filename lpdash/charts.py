from __future__ import annotations

from typing import Any, Dict, Optional

import altair as alt
import pandas as pd

from lpdash.normalize import normalize_key

alt.data_transformers.disable_max_rows()


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def daily_trend_frame(records: pd.DataFrame) -> pd.DataFrame:
    if records.empty:
        return pd.DataFrame(columns=["day", "cost", "rcv"])
    df = records.assign(day=pd.to_datetime(records["date"].map(normalize_key), format="%Y-%m-%d", errors="coerce"))
    df = df.dropna(subset=["day"])
    return df.groupby("day")[["cost", "rcv"]].sum().reset_index().sort_values("day")


def daily_trend_chart(records: pd.DataFrame) -> Optional[alt.LayerChart]:
    daily = daily_trend_frame(records)
    if daily.empty:
        return None
    base = alt.Chart(daily).encode(x=alt.X("day:T", title="Date"))
    cost = base.mark_bar(opacity=0.6).encode(
        y=alt.Y("cost:Q", title="広告費", axis=alt.Axis(format=",.0f")),
        tooltip=[alt.Tooltip("day:T"), alt.Tooltip("cost:Q", format=",.0f")],
    )
    rcv = base.mark_line(point=True, color="#7c3aed").encode(
        y=alt.Y("rcv:Q", title="rCV"),
        tooltip=[alt.Tooltip("day:T"), alt.Tooltip("rcv:Q", format=",.0f")],
    )
    return alt.layer(cost, rcv).resolve_scale(y="independent")
