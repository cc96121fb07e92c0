from contextlib import contextmanager
from datetime import date
from typing import Dict, Optional

import pandas as pd
import streamlit as st

from retail_core.data import load_dashboard_data, prepare_context
from retail_core.filter_bar import FilterBar
from retail_core.filters import FilterCriteria
from retail_core.metrics_cohorts import compute_cohorts
from retail_core.metrics_flow import compute_flow
from retail_core.metrics_overview import compute_overview
from retail_core.metrics_trend import GRANULARITIES, compute_trend
from retail_core.settings import CohortSettings

FACET_WIDGETS = {
    "genders": "Gender",
    "categories": "Category",
    "payment_methods": "Payment Method",
    "malls": "Shopping Mall",
}


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;margin-bottom: 8px;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        .no-data {color: #94a3b8;text-align: center;padding: 40px 0;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(f"<div class='card'><div class='card-title'>{title}</div>", unsafe_allow_html=True)
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def no_data():
    st.markdown("<div class='no-data'>No data available</div>", unsafe_allow_html=True)


def format_filter_summary(criteria: FilterCriteria) -> str:
    dr = criteria.date_range
    chips = [f"Dates: {dr.start:%d %b %Y} – {dr.end:%d %b %Y}" if dr.start and dr.end else "Dates: All"]
    for attr, label in FACET_WIDGETS.items():
        values = sorted(getattr(criteria, attr))
        chips.append(f"{label}: {', '.join(values)}" if values else f"{label}: All")
    ar = criteria.age_range
    chips.append(f"Age: {ar.min}–{ar.max}")
    return "".join([f"<span class='chip'>{txt}</span>" for txt in chips])


# ---------- filter bar state ----------
def _store_criteria(criteria: FilterCriteria):
    st.session_state["criteria"] = criteria


def get_filter_bar(options: Dict[str, object]) -> FilterBar:
    bar: Optional[FilterBar] = st.session_state.get("filter_bar")
    if bar is None:
        bar = FilterBar(options, _store_criteria)
        st.session_state["filter_bar"] = bar
        st.session_state["criteria"] = bar.criteria()
        _push_widget_state(bar)
    return bar


def _push_widget_state(bar: FilterBar):
    """Copy the controller's fields and selection into the widget keys."""
    start, end = bar.range.field_interval()
    st.session_state["start_date"] = start
    st.session_state["end_date"] = end
    st.session_state["date_slider"] = bar.range.selection_interval()
    st.session_state["age_min"] = bar.age_range().min
    st.session_state["age_max"] = bar.age_range().max
    for facet in FACET_WIDGETS:
        st.session_state[f"facet_{facet}"] = sorted(bar.selected[facet])


def _on_slider():
    bar: FilterBar = st.session_state["filter_bar"]
    start, end = st.session_state["date_slider"]
    bar.drag_dates((bar.range.scale(start), bar.range.scale(end)))
    _push_widget_state(bar)


def _on_date_fields():
    bar: FilterBar = st.session_state["filter_bar"]
    start: Optional[date] = st.session_state.get("start_date")
    end: Optional[date] = st.session_state.get("end_date")
    bar.edit_dates(start.isoformat() if start else "", end.isoformat() if end else "")
    _push_widget_state(bar)


def _on_facet(facet: str):
    bar: FilterBar = st.session_state["filter_bar"]
    bar.set_selection(facet, st.session_state.get(f"facet_{facet}") or [])


def _on_age():
    bar: FilterBar = st.session_state["filter_bar"]
    bar.set_age(st.session_state.get("age_min"), st.session_state.get("age_max"))
    _push_widget_state(bar)


def _on_reset():
    bar: FilterBar = st.session_state["filter_bar"]
    bar.reset()
    _push_widget_state(bar)


# ---------- UI setup ----------
st.set_page_config(page_title="Shopper Pulse", layout="wide")
inject_base_styles()
st.title("Shopper Pulse")
st.caption("Customer shopping behaviour across malls, categories and payment methods.")

data_ctx = load_dashboard_data()
records: pd.DataFrame = data_ctx.get("records", pd.DataFrame())
if records.empty:
    st.error("No records found. Set RETAIL_DASHBOARD_DATA or place customer_shopping_data.csv under data/.")
    st.stop()

options = data_ctx.get("options", {})
bar = get_filter_bar(options)

with st.sidebar:
    head = st.columns([3, 1])
    head[0].markdown("### Filters")
    head[1].button("Reset", on_click=_on_reset)

    st.markdown("#### Date Range")
    span_start, span_end = bar.date_span
    dcols = st.columns(2)
    dcols[0].date_input("Start", key="start_date", min_value=span_start, max_value=span_end, on_change=_on_date_fields)
    dcols[1].date_input("End", key="end_date", min_value=span_start, max_value=span_end, on_change=_on_date_fields)
    st.slider("Date range", min_value=span_start, max_value=span_end, key="date_slider", format="MMM YY", on_change=_on_slider, label_visibility="collapsed")

    for facet, label in FACET_WIDGETS.items():
        st.multiselect(label, options=options.get(facet, []), key=f"facet_{facet}", on_change=_on_facet, args=(facet,))

    st.markdown("#### Age Range")
    acols = st.columns(2)
    acols[0].number_input("Min", min_value=0, max_value=120, step=1, key="age_min", on_change=_on_age)
    acols[1].number_input("Max", min_value=0, max_value=120, step=1, key="age_max", on_change=_on_age)

# Release the sync latch now that every callback for this run has fired.
bar.range.tick()

criteria: FilterCriteria = st.session_state["criteria"]
ctx = prepare_context(criteria, data_ctx)
st.markdown(f"<div class='chip-row'>{format_filter_summary(criteria)}</div>", unsafe_allow_html=True)

# ----- Overview -----
overview = compute_overview(criteria, ctx, previous=st.session_state.get("last_overview"))
st.session_state["last_overview"] = overview
kpis, prev = overview["kpis"], overview["previous"]


def _delta(key: str) -> Optional[str]:
    cur, before = kpis.get(key), prev.get(key)
    if cur is None or not before:
        return None
    return f"{(cur - before) / before:.1%}"


cols = st.columns(5)
cols[0].metric("Revenue", f"${kpis['revenue']:,.0f}", delta=_delta("revenue"))
cols[1].metric("Transactions", f"{kpis['transactions']:,}", delta=_delta("transactions"))
cols[2].metric("Customers", f"{kpis['customers']:,}", delta=_delta("customers"))
cols[3].metric("Items Sold", f"{kpis['items_sold']:,}", delta=_delta("items_sold"))
cols[4].metric("Avg Order Value", f"${kpis['avg_order_value']:,.2f}" if kpis["avg_order_value"] is not None else "N/A")

# ----- Revenue trend -----
with card("Revenue Over Time"):
    granularity = st.selectbox("Granularity", list(GRANULARITIES), index=0, key="granularity")
    trend = compute_trend(criteria, ctx, granularity=granularity)
    if trend["empty"]:
        no_data()
    else:
        st.vega_lite_chart(trend["charts"]["revenue_trend"], use_container_width=True)

# ----- Age cohorts -----
with card("Customer Segments by Age"):
    c1, c2, c3 = st.columns(3)
    segment_by = c1.radio("Segment by", ["spend", "facet"], horizontal=True, format_func=lambda v: "Spend tier" if v == "spend" else "Mall share")
    measure = c2.radio("Measure", ["count", "revenue"], horizontal=True, format_func=lambda v: "Client Contribution" if v == "count" else "Total Income")
    policy = c3.radio("Spend thresholds", ["fixed", "tertile"], horizontal=True, disabled=segment_by != "spend")
    focus = st.multiselect("Categories in chart", options=options.get("categories", []), default=[], key="cohort_categories")
    cohorts = compute_cohorts(
        criteria,
        ctx,
        segment_by=segment_by,
        measure=measure,
        settings=CohortSettings(policy=policy),
        focus_categories=focus,
    )
    if cohorts["empty"]:
        no_data()
    else:
        st.vega_lite_chart(cohorts["charts"]["cohort_stack"], use_container_width=True)
        if cohorts["thresholds"]:
            t = cohorts["thresholds"]
            st.caption(f"High > ${t['high']:,.2f} · Medium > ${t['medium']:,.2f} · Low otherwise")

# ----- Revenue flow -----
with card("Revenue Flow: Gender → Category → Payment"):
    flow = compute_flow(criteria, ctx)
    if flow["empty"]:
        no_data()
    else:
        nodes = pd.DataFrame(flow["graph"]["nodes"]).set_index("id")
        edges = pd.DataFrame(flow["graph"]["edges"])
        edges["from"] = edges["source"].map(nodes["label"])
        edges["to"] = edges["target"].map(nodes["label"])
        edges["stage"] = edges["source"].map(nodes["tier"]) + " → " + edges["target"].map(nodes["tier"])
        st.dataframe(
            edges[["stage", "from", "to", "weight"]].sort_values(["stage", "weight"], ascending=[False, False]),
            hide_index=True,
            use_container_width=True,
            column_config={"weight": st.column_config.NumberColumn("Revenue", format="$%.2f")},
        )
