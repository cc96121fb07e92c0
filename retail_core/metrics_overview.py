from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

import pandas as pd

from retail_core.data import with_revenue
from retail_core.filters import FilterCriteria

KPI_KEYS = ("revenue", "transactions", "customers", "items_sold", "avg_order_value")


def round_half_up(value: object, ndigits: int = 0) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    q = Decimal(10) ** -ndigits
    return float(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP))


def compute_kpis(df: pd.DataFrame) -> Dict[str, Any]:
    if df.empty or "quantity" not in df.columns:
        return {"revenue": 0.0, "transactions": 0, "customers": 0, "items_sold": 0, "avg_order_value": None}
    base = with_revenue(df)
    revenue = float(base["revenue"].sum())
    transactions = int(base["invoice_no"].nunique()) if "invoice_no" in base.columns else int(len(base))
    return {
        "revenue": round_half_up(revenue, 2),
        "transactions": transactions,
        "customers": int(base["customer_id"].nunique()) if "customer_id" in base.columns else 0,
        "items_sold": int(base["quantity"].sum()),
        "avg_order_value": round_half_up(revenue / transactions, 2) if transactions else None,
    }


def compute_overview(
    criteria: FilterCriteria,
    ctx: Dict[str, Any],
    *,
    previous: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """KPI cards for the current filter.

    ``previous`` is the caller's last overview payload; its KPI values are
    echoed back as the starting point of the counter animation.
    """
    df: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    records: pd.DataFrame = ctx.get("records", pd.DataFrame())
    kpis = compute_kpis(df)
    prev_kpis = (previous or {}).get("kpis") or {}
    return {
        "criteria": criteria.to_dict(),
        "empty": bool(df.empty),
        "kpis": kpis,
        "previous": {k: prev_kpis.get(k, 0) for k in KPI_KEYS},
        "row_counts": {
            "records": int(len(records)),
            "filtered": int(len(df)),
            "removed_malformed": int(ctx.get("dq_removed_rows", 0) or 0),
            "missing_dates": int(df["invoice_date"].isna().sum()) if "invoice_date" in df.columns else 0,
        },
    }
