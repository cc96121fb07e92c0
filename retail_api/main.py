from __future__ import annotations

import logging
import math
from datetime import date
from typing import Literal

import numpy as np
import pandas as pd
from fastapi import FastAPI, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from retail_api.schemas import FilterCriteriaModel, OverviewRequest
from retail_core.data import load_dashboard_data, prepare_context, with_revenue
from retail_core.filters import FilterCriteria, normalize_criteria
from retail_core.metrics_cohorts import aggregate_cohorts, compute_cohorts
from retail_core.metrics_flow import build_flow_graph, compute_flow, node_flows
from retail_core.metrics_overview import compute_overview
from retail_core.metrics_trend import aggregate_revenue_by_period, compute_trend
from retail_core.settings import CohortSettings

app = FastAPI(title="Shopper Pulse API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _criteria_from_model(model: FilterCriteriaModel) -> FilterCriteria:
    return normalize_criteria(model.model_dump())


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.date().isoformat(),
                date: lambda d: d.isoformat(),
            },
        )
    )


def _error(exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


@app.get("/meta/options")
def meta_options():
    try:
        options = load_dashboard_data().get("options", {})
        return _json(
            {
                "genders": options.get("genders", []),
                "categories": options.get("categories", []),
                "payment_methods": options.get("payment_methods", []),
                "malls": options.get("malls", []),
                "age_span": list(options.get("age_span", (0, 100))),
                "date_span": list(options.get("date_span", (None, None))),
            }
        )
    except Exception as exc:
        logger.exception("meta_options failed")
        return _error(exc)


@app.post("/overview")
def overview(body: OverviewRequest):
    try:
        data_ctx = load_dashboard_data()
        crit = _criteria_from_model(body.criteria)
        ctx = prepare_context(crit, data_ctx)
        return _json(compute_overview(crit, ctx, previous=body.previous))
    except Exception as exc:
        logger.exception("overview failed")
        return _error(exc)


@app.post("/trend")
def trend(
    criteria: FilterCriteriaModel,
    granularity: Literal["daily", "weekly", "monthly", "quarterly"] = Query(default="daily"),
):
    try:
        data_ctx = load_dashboard_data()
        crit = _criteria_from_model(criteria)
        ctx = prepare_context(crit, data_ctx)
        return _json(compute_trend(crit, ctx, granularity=granularity))
    except Exception as exc:
        logger.exception("trend failed")
        return _error(exc)


@app.post("/cohorts")
def cohorts(
    criteria: FilterCriteriaModel,
    segment_by: Literal["spend", "facet"] = Query(default="spend"),
    measure: Literal["count", "revenue"] = Query(default="count"),
    facet: Literal["shopping_mall", "category", "payment_method", "gender"] = Query(default="shopping_mall"),
    policy: Literal["fixed", "tertile"] = Query(default="fixed"),
):
    try:
        data_ctx = load_dashboard_data()
        crit = _criteria_from_model(criteria)
        ctx = prepare_context(crit, data_ctx)
        return _json(
            compute_cohorts(
                crit,
                ctx,
                segment_by=segment_by,
                measure=measure,
                facet=facet,
                settings=CohortSettings(policy=policy),
            )
        )
    except Exception as exc:
        logger.exception("cohorts failed")
        return _error(exc)


@app.post("/flow")
def flow(criteria: FilterCriteriaModel):
    try:
        data_ctx = load_dashboard_data()
        crit = _criteria_from_model(criteria)
        ctx = prepare_context(crit, data_ctx)
        return _json(compute_flow(crit, ctx))
    except Exception as exc:
        logger.exception("flow failed")
        return _error(exc)


@app.post("/export/{page}")
def export_page(page: str, criteria: FilterCriteriaModel, granularity: str = Query(default="daily")):
    data_ctx = load_dashboard_data()
    crit = _criteria_from_model(criteria)
    ctx = prepare_context(crit, data_ctx)
    filtered: pd.DataFrame = ctx["filtered"]

    filename = f"{page}.csv"
    if page == "records":
        export_df = with_revenue(filtered)
    elif page == "trend":
        export_df = aggregate_revenue_by_period(filtered, granularity)
    elif page == "cohorts":
        export_df = aggregate_cohorts(filtered).rows
    elif page == "flow":
        export_df = node_flows(build_flow_graph(filtered))
    else:
        export_df = pd.DataFrame()

    csv_bytes = export_df.to_csv(index=False).encode("utf-8")
    return Response(content=csv_bytes, media_type="text/csv", headers={"Content-Disposition": f"attachment; filename={filename}"})
