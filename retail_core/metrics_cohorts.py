from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Literal, Optional

import altair as alt
import numpy as np
import pandas as pd

from retail_core.charts import segment_color_scale, to_vega_spec
from retail_core.data import empty_records, with_revenue
from retail_core.filters import FilterCriteria
from retail_core.settings import OTHERS_LABEL, CohortSettings, SpendThresholds

SegmentBy = Literal["spend", "facet"]
Measure = Literal["count", "revenue"]

COHORTS = ["18-25", "26-35", "36-45", "46-55", "56-65", "65+"]
COHORT_EDGES = [-np.inf, 25, 35, 45, 55, 65, np.inf]
SPEND_SEGMENTS = ["High", "Medium", "Low"]
UNKNOWN_LABEL = "Unknown"


@dataclass(frozen=True)
class CohortResult:
    rows: pd.DataFrame
    segments: List[str]
    thresholds: Optional[SpendThresholds] = None
    n_records: int = 0


def age_cohort(ages: pd.Series) -> pd.Series:
    """Assign each age to one of the six fixed cohorts (open-ended at both ends)."""
    return pd.cut(ages.astype(float), bins=COHORT_EDGES, labels=COHORTS, right=True).astype(str)


def spend_thresholds(revenue: pd.Series, settings: CohortSettings) -> SpendThresholds:
    if settings.policy == "tertile" and not revenue.empty:
        return SpendThresholds(
            high=float(revenue.quantile(settings.upper_quantile)),
            medium=float(revenue.quantile(settings.lower_quantile)),
        )
    return settings.fixed


def classify_spend(revenue: pd.Series, thresholds: SpendThresholds) -> pd.Series:
    labels = np.select(
        [revenue > thresholds.high, revenue > thresholds.medium],
        ["High", "Medium"],
        default="Low",
    )
    return pd.Series(labels, index=revenue.index)


def top_facet_segments(values: pd.Series, top_n: int) -> List[str]:
    """Segment keys for a facet: every value when there are few, else the top N by count plus Others.

    A real value spelled like the catch-all label is folded into the
    catch-all bucket rather than ranked, so the label appears once.
    """
    counts = values.value_counts()
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    keys = [str(k) for k, _ in ranked]
    if len(keys) <= top_n:
        return keys
    named = [k for k in keys if k != OTHERS_LABEL]
    return named[:top_n] + [OTHERS_LABEL]


def aggregate_cohorts(
    df: pd.DataFrame,
    *,
    segment_by: SegmentBy = "spend",
    measure: Measure = "count",
    facet: str = "shopping_mall",
    settings: Optional[CohortSettings] = None,
    focus_categories: Optional[Iterable[str]] = None,
) -> CohortResult:
    """Cross age cohorts with spend tiers or facet shares.

    Every cohort row carries every segment key, zero-filled, so stacked
    rendering never gets sparse rows. Thresholds and the top-N facet set
    are computed once from ``df`` and shared by all rows.
    """
    settings = settings or CohortSettings()
    base = with_revenue(df if "quantity" in df.columns else empty_records())
    focus = [str(c) for c in (focus_categories or [])]
    if focus and "category" in base.columns:
        base = base[base["category"].astype(str).isin(focus)]

    thresholds: Optional[SpendThresholds] = None
    if segment_by == "facet":
        values = base[facet].astype("string").fillna(UNKNOWN_LABEL).astype(str) if facet in base.columns else pd.Series(dtype=str)
        segments = top_facet_segments(values, settings.facet_top_n)
        named = set(segments) - {OTHERS_LABEL}
        base = base.assign(segment=values.where(values.isin(named), OTHERS_LABEL))
    else:
        thresholds = spend_thresholds(base["revenue"], settings)
        segments = list(SPEND_SEGMENTS)
        base = base.assign(segment=classify_spend(base["revenue"], thresholds))

    base = base.assign(
        cohort=age_cohort(base["age"]),
        value=(base["revenue"] if measure == "revenue" else 1),
    )
    grid = (
        base.groupby(["cohort", "segment"])["value"].sum().unstack("segment")
        if not base.empty
        else pd.DataFrame()
    )
    grid = grid.reindex(index=COHORTS, columns=segments).fillna(0)
    grid = grid.astype(float) if measure == "revenue" else grid.astype(int)
    rows = grid.rename_axis(index="cohort", columns=None).reset_index()
    return CohortResult(rows=rows, segments=segments, thresholds=thresholds, n_records=int(len(base)))


def compute_cohorts(
    criteria: FilterCriteria,
    ctx: Dict[str, Any],
    *,
    segment_by: SegmentBy = "spend",
    measure: Measure = "count",
    facet: str = "shopping_mall",
    settings: Optional[CohortSettings] = None,
    focus_categories: Optional[List[str]] = None,
) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    result = aggregate_cohorts(
        df,
        segment_by=segment_by,
        measure=measure,
        facet=facet,
        settings=settings,
        focus_categories=focus_categories,
    )
    total = float(result.rows[result.segments].to_numpy().sum()) if result.segments else 0.0
    payload: Dict[str, Any] = {
        "criteria": criteria.to_dict(),
        "segment_by": segment_by,
        "measure": measure,
        "facet": facet if segment_by == "facet" else None,
        "segments": result.segments,
        "rows": result.rows.to_dict(orient="records"),
        "thresholds": asdict(result.thresholds) if result.thresholds else None,
        "total": total,
        "empty": result.n_records == 0,
        "charts": {},
    }
    if payload["empty"]:
        return payload

    long_df = result.rows.melt(id_vars="cohort", value_vars=result.segments, var_name="segment", value_name="value")
    long_df["stack_order"] = long_df["segment"].map({s: i for i, s in enumerate(result.segments)})
    value_title = "Total Income" if measure == "revenue" else "Clients"
    value_format = "$,.0f" if measure == "revenue" else ",d"
    hover = alt.selection_point(fields=["segment"], on="mouseover", empty="all")
    area = (
        alt.Chart(long_df)
        .mark_area(interpolate="monotone", opacity=0.85)
        .encode(
            x=alt.X("cohort:O", title="Age Group", sort=COHORTS, axis=alt.Axis(grid=False, labelAngle=0)),
            y=alt.Y("value:Q", title=value_title, stack="zero", axis=alt.Axis(gridDash=[4, 4], domain=False, ticks=False)),
            color=alt.Color("segment:N", title="Segment", scale=segment_color_scale(result.segments), sort=result.segments),
            order=alt.Order("stack_order:Q"),
            opacity=alt.condition(hover, alt.value(0.85), alt.value(0.3)),
            tooltip=[
                alt.Tooltip("cohort:N", title="Age"),
                alt.Tooltip("segment:N", title="Segment"),
                alt.Tooltip("value:Q", title=value_title, format=value_format),
            ],
        )
        .add_params(hover)
    )
    payload["charts"] = {"cohort_stack": to_vega_spec(area)}
    return payload
