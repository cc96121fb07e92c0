from __future__ import annotations

from typing import Any, Dict, Literal, Optional

import altair as alt
import pandas as pd

from retail_core.charts import to_vega_spec
from retail_core.data import with_revenue
from retail_core.filters import FilterCriteria

Granularity = Literal["daily", "weekly", "monthly", "quarterly"]
GRANULARITIES = ("daily", "weekly", "monthly", "quarterly")


def period_start(dates: pd.Series, granularity: str) -> pd.Series:
    """Map each date to the canonical first day of its bucket."""
    days = dates.dt.normalize()
    if granularity == "weekly":
        # Weeks start on Sunday; weekday() counts Monday as 0.
        return days - pd.to_timedelta((days.dt.weekday + 1) % 7, unit="D")
    if granularity == "monthly":
        return days.dt.to_period("M").dt.start_time
    if granularity == "quarterly":
        return days.dt.to_period("Q").dt.start_time
    return days


def aggregate_revenue_by_period(df: pd.DataFrame, granularity: str = "daily") -> pd.DataFrame:
    """Sum revenue per time bucket, ascending by ``period_start``.

    Rows without a usable invoice date are left out. Unknown granularities
    fall back to daily buckets.
    """
    if granularity not in GRANULARITIES:
        granularity = "daily"
    if df.empty or "invoice_date" not in df.columns:
        return pd.DataFrame({"period_start": pd.Series(dtype="object"), "value": pd.Series(dtype="float64")})

    base = with_revenue(df.dropna(subset=["invoice_date"]))
    if base.empty:
        return pd.DataFrame({"period_start": pd.Series(dtype="object"), "value": pd.Series(dtype="float64")})

    base["period_start"] = period_start(pd.to_datetime(base["invoice_date"]), granularity)
    out = (
        base.groupby("period_start")["revenue"]
        .sum()
        .reset_index()
        .rename(columns={"revenue": "value"})
        .sort_values("period_start")
        .reset_index(drop=True)
    )
    out["period_start"] = out["period_start"].dt.date
    out["value"] = out["value"].astype(float)
    return out


def compute_trend(
    criteria: FilterCriteria,
    ctx: Dict[str, Any],
    *,
    granularity: Granularity = "daily",
    height: Optional[int] = 300,
) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    buckets = aggregate_revenue_by_period(df, granularity)
    if buckets.empty:
        return {
            "criteria": criteria.to_dict(),
            "granularity": granularity,
            "empty": True,
            "buckets": [],
            "total_revenue": 0.0,
            "charts": {},
        }

    chart_df = buckets.assign(period_start=pd.to_datetime(buckets["period_start"]))
    line = (
        alt.Chart(chart_df)
        .mark_line(interpolate="monotone", strokeWidth=2, color="#1f77b4")
        .encode(
            x=alt.X("period_start:T", title="Date", axis=alt.Axis(grid=False)),
            y=alt.Y("value:Q", title="Revenue", scale=alt.Scale(zero=True, nice=True), axis=alt.Axis(format="$~s", gridDash=[4, 4], domain=False, ticks=False)),
            tooltip=[
                alt.Tooltip("period_start:T", title="Period"),
                alt.Tooltip("value:Q", title="Revenue", format="$,.2f"),
            ],
        )
        .properties(height=height)
    )
    return {
        "criteria": criteria.to_dict(),
        "granularity": granularity,
        "empty": False,
        "buckets": [
            {"period_start": r.period_start.isoformat(), "value": float(r.value)}
            for r in buckets.itertuples(index=False)
        ],
        "total_revenue": float(buckets["value"].sum()),
        "charts": {"revenue_trend": to_vega_spec(line)},
    }
