from contextlib import contextmanager
from dataclasses import asdict, replace
from typing import Dict, List, Optional

import pandas as pd
import streamlit as st

from lpdash.allocation import reconciliation_summary
from lpdash.charts import daily_trend_chart
from lpdash.config import AssumptionStore, Settings
from lpdash.data import ORIGIN_CACHE, build_source, load_cached_report_data, load_report_data
from lpdash.errors import TransportFailure
from lpdash.export import display_table, format_currency, format_percent, summary_table, to_csv_bytes
from lpdash.filters import ReportFilters, normalize_filters
from lpdash.report import prepare_context
from lpdash.schema import merchant_order


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #6b7280;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #111827;}
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-header {display: flex;justify-content: space-between;align-items: center;margin-bottom: 8px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        .chip.mock {background: #fef3c7;border-color: #f59e0b;color: #92400e;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(
        f"""
        <div class="card">
          <div class="card-header">
            <div class="card-title">{title}</div>
          </div>
        """,
        unsafe_allow_html=True,
    )
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def format_filter_summary(filters: ReportFilters, origin: str, uses_fixture: bool) -> str:
    date_chip = (
        f"Dates: {filters.start_date or '…'} – {filters.end_date or '…'}"
        if filters.start_date or filters.end_date
        else "Dates: All"
    )
    chips = [
        date_chip,
        f"Media: {filters.media or 'All'}",
        f"Method: {filters.method or 'All'}",
        f"Method2: {filters.method2 or 'All'}",
        f"LP: {filters.lp_number or 'All'}",
    ]
    html = "".join([f"<span class='chip'>{txt}</span>" for txt in chips])
    if origin == ORIGIN_CACHE:
        html += "<span class='chip'>Cached data (refreshing)</span>"
    if uses_fixture:
        html += "<span class='chip mock'>Using sample data (check .env)</span>"
    return html


def render_page_header(title: str, breadcrumb: str, filter_summary_html: str, export_df: Optional[pd.DataFrame] = None, export_name: str = "export.csv"):
    inject_base_styles()
    top = st.container()
    c1, c2 = top.columns([7, 3])
    with c1:
        st.markdown(
            f"<div class='app-top-bar'><div class='breadcrumb'>{breadcrumb}</div><div class='page-title'>{title}</div></div>",
            unsafe_allow_html=True,
        )
    with c2:
        btn_cols = st.columns(3)
        if btn_cols[0].button("Refresh"):
            st.session_state.pop("report_data", None)
            st.session_state["force_refresh"] = True
            st.rerun()
        if btn_cols[1].button("Clear cache"):
            cache = getattr(source, "cache", None)
            if cache is not None:
                cache.clear()
            st.session_state.pop("report_data", None)
            st.rerun()
        if export_df is not None and not export_df.empty:
            btn_cols[2].download_button(
                "CSV",
                data=to_csv_bytes(export_df),
                file_name=export_name,
                mime="text/csv",
            )
    st.markdown(f"<div class='chip-row'>{filter_summary_html}</div>", unsafe_allow_html=True)


# ---------- Data ----------
st.set_page_config(page_title="LP Performance Analysis", layout="wide")
inject_base_styles()
st.title("LP Performance Analysis")
st.caption("Analyze landing page performance: reconciled ad cost, merchant KPIs and allowable CPA.")

settings = Settings.from_env()
source = build_source(settings)
store = AssumptionStore(settings.assumptions_path)

if "report_data" not in st.session_state:
    force_refresh = st.session_state.pop("force_refresh", False)
    cached = None if force_refresh else load_cached_report_data(source)
    if cached is not None:
        st.session_state["report_data"] = cached
        st.session_state["revalidate"] = True
    else:
        try:
            st.session_state["report_data"] = load_report_data(source, force_refresh=force_refresh, timeout=settings.load_timeout)
        except TransportFailure as exc:
            st.error(f"Could not load spreadsheet data: {exc}")
            st.stop()

data = st.session_state["report_data"]
records: pd.DataFrame = data.records
options: Dict[str, List[str]] = data.options()

if "assumptions" not in st.session_state:
    st.session_state["assumptions"] = store.load("main")

# ----- Sidebar: navigation + filters + assumptions -----
with st.sidebar:
    st.markdown("### Navigate")
    current_page = st.radio("Navigate", ["Report", "Data Quality / Debug"], index=0)

    st.markdown("---")
    st.markdown("### Analysis filters")
    with st.form("filters"):
        start_date = st.date_input("Start date", value=None)
        end_date = st.date_input("End date", value=None)
        media = st.selectbox("Media", options=[""] + options["media"], format_func=lambda v: v or "All Media")
        method = st.selectbox("Method", options=[""] + options["method"], format_func=lambda v: v or "All Methods")
        method2 = st.selectbox("Method 2", options=[""] + options["method2"], format_func=lambda v: v or "All")
        lp_number = st.selectbox("LP number", options=[""] + options["lp_number"], format_func=lambda v: v or "All LPs")
        applied = st.form_submit_button("Apply filters")
    if applied or "filters" not in st.session_state:
        st.session_state["filters"] = normalize_filters(
            {
                "start_date": start_date.isoformat() if start_date else "",
                "end_date": end_date.isoformat() if end_date else "",
                "media": media,
                "method": method,
                "method2": method2,
                "lp_number": lp_number,
            }
        )

    st.markdown("---")
    with st.expander("Assumptions (unit price / est. rate)", expanded=False):
        assumptions = st.session_state["assumptions"]
        merchants = merchant_order(records["merchant"].tolist() if not records.empty else [])
        for m in merchants:
            cols = st.columns(2)
            price = cols[0].number_input(
                f"{m.upper()} 単価 (¥)",
                min_value=0.0,
                value=float(assumptions.unit_prices.get(m, 0.0)),
                step=1000.0,
                key=f"price_{m}",
            )
            rate = cols[1].number_input(
                f"{m.upper()} 成果率(想定) %",
                min_value=0.0,
                max_value=100.0,
                value=float(assumptions.unit_est_rates.get(m, 0.0)),
                step=0.1,
                key=f"rate_{m}",
            )
            assumptions = assumptions.with_unit_price(m, price).with_est_rate(m, rate)
        diff_rate = st.number_input("差分率 %", value=float(assumptions.diff_rate), step=0.1, key="diff_rate")
        assumptions = replace(assumptions, diff_rate=diff_rate)
        st.session_state["assumptions"] = assumptions
        if st.button("Save assumptions"):
            store.save(assumptions, "main")
            st.success("Saved.")

filters: ReportFilters = st.session_state["filters"]
assumptions = st.session_state["assumptions"]
ctx = prepare_context(records, filters, assumptions)
filter_summary_html = format_filter_summary(filters, data.origin, data.uses_fixture)


def render_kpi_tiles(totals, adjusted: float):
    cols = st.columns(5)
    cols[0].metric("広告費", format_currency(totals.cost), help="Reconciled ad cost for the filtered rows.")
    cols[1].metric("rCPA", format_currency(totals.rcpa), help="Cost / rCV.")
    cols[2].metric("ROAS (実績)", format_percent(totals.actual_roas), help="Σ results × unit price / cost.")
    cols[3].metric("ROAS (想定)", format_percent(totals.est_roas), help="Σ rCV × est. rate × unit price / cost.")
    cols[4].metric(
        "許容CPA (想定・差分込み)",
        format_currency(adjusted),
        help="Estimated allowable CPA adjusted by the diff rate.",
    )


def render_report_page():
    export_df = summary_table(ctx["merchants"], ctx["totals"], assumptions)
    render_page_header("Report", "LP Dashboard / Report", filter_summary_html, export_df=export_df, export_name="lp_report.csv")
    if ctx["filtered"].empty:
        st.info("表示するデータがありません。")
        return
    render_kpi_tiles(ctx["totals"], ctx["est_allowable_cpa_adjusted"])
    with card("実績 / 想定"):
        st.dataframe(
            display_table(ctx["merchants"], ctx["totals"], assumptions.diff_rate),
            hide_index=True,
            use_container_width=True,
        )
    chart = daily_trend_chart(ctx["filtered"])
    if chart is not None:
        with card("Daily cost and rCV"):
            st.altair_chart(chart, use_container_width=True)


def render_debug_page():
    render_page_header("Data Quality / Debug", "LP Dashboard / Debug", filter_summary_html)
    summary = reconciliation_summary(records, data.costs)
    cols = st.columns(4)
    cols[0].metric("Reported cost", format_currency(summary["reported_cost"]))
    cols[1].metric("Allocated cost", format_currency(summary["allocated_cost"]))
    cols[2].metric("Unassigned (未振分)", format_currency(summary["unassigned_cost"]))
    cols[3].metric("Unallocated", format_currency(summary["unallocated_cost"]))
    st.write(
        {
            "conversion_rows": summary["conversion_rows"],
            "cost_rows": summary["cost_rows"],
            "direct_rows": summary["direct_rows"],
            "fallback_rows": summary["fallback_rows"],
            "unallocated_rows": summary["unallocated_rows"],
            "origin": data.origin,
            "fixture_sources": list(data.fixture_sources),
            "loaded_at": data.loaded_at.isoformat(),
        }
    )
    with st.expander("Filters / assumptions"):
        st.json({"filters": asdict(filters), "assumptions": asdict(assumptions)})
    st.markdown("**Reconciled rows (filtered)**")
    st.dataframe(ctx["filtered"], hide_index=True, use_container_width=True)


if current_page == "Report":
    render_report_page()
else:
    render_debug_page()

# Stale-while-revalidate: the cached view is already on screen, now fetch fresh data.
if st.session_state.pop("revalidate", False):
    try:
        st.session_state["report_data"] = load_report_data(source, force_refresh=True, timeout=settings.load_timeout)
    except TransportFailure as exc:
        st.warning(f"Showing cached data; refresh failed: {exc}")
    else:
        st.rerun()
