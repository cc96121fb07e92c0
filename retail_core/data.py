from __future__ import annotations

import logging
import re
from datetime import date, datetime
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

import numpy as np
import pandas as pd

from retail_core.filters import FACET_FIELDS, FilterCriteria, apply_filters, normalize_criteria
from retail_core.settings import DATA_FILE

logger = logging.getLogger(__name__)

RECORD_COLUMNS = {
    "invoice_no": "invoice_no",
    "Invoice No": "invoice_no",
    "customer_id": "customer_id",
    "Customer ID": "customer_id",
    "gender": "gender",
    "Gender": "gender",
    "age": "age",
    "Age": "age",
    "category": "category",
    "Category": "category",
    "quantity": "quantity",
    "Quantity": "quantity",
    "price": "price",
    "Price": "price",
    "payment_method": "payment_method",
    "Payment Method": "payment_method",
    "invoice_date": "invoice_date",
    "Invoice Date": "invoice_date",
    "shopping_mall": "shopping_mall",
    "Shopping Mall": "shopping_mall",
}

TEXT_COLUMNS = ["invoice_no", "customer_id", "gender", "category", "payment_method", "shopping_mall"]
NUMERIC_COLUMNS = ["age", "quantity", "price"]
SCHEMA = TEXT_COLUMNS[:3] + ["age", "category", "quantity", "price", "payment_method", "invoice_date", "shopping_mall"]


def parse_invoice_date(value: object) -> Optional[date]:
    """Parse a source date string into a calendar date.

    Slash-separated dates with three numeric parts are disambiguated by
    whichever of the first two parts exceeds 12 (that part is the day);
    when neither does, month-first is assumed. Anything else goes through
    pandas' generic parser. Impossible dates return None.
    """
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    parts = s.split("/")
    if len(parts) == 3 and all(re.fullmatch(r"\d+", p.strip()) for p in parts):
        p0, p1, year = (int(p) for p in parts)
        if p0 > 12:
            day, month = p0, p1
        elif p1 > 12:
            day, month = p1, p0
        else:
            month, day = p0, p1
        try:
            return date(year, month, day)
        except (ValueError, OverflowError):
            return None
    parsed = pd.to_datetime(s, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.date()


def coerce_str_safe(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    for col in cols:
        if col in df.columns:
            series = df[col].astype("string").str.strip()
            series = series.replace({"nan": pd.NA, "None": pd.NA, "": pd.NA})
            df[col] = series
    return df


def numericize(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    for col in cols:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce")
    return df


def empty_records() -> pd.DataFrame:
    df = pd.DataFrame({c: pd.Series(dtype="string") for c in SCHEMA})
    df["age"] = pd.Series(dtype="int64")
    df["quantity"] = pd.Series(dtype="int64")
    df["price"] = pd.Series(dtype="float64")
    df["invoice_date"] = pd.Series(dtype="datetime64[ns]")
    return df[SCHEMA]


def coerce_records(raw: pd.DataFrame) -> Tuple[pd.DataFrame, int]:
    """Coerce raw textual rows into the record schema.

    Returns the record frame and the number of rows dropped because age,
    quantity or price were not numeric.
    """
    if raw is None or raw.empty:
        return empty_records(), 0

    df = raw.rename(columns={k: v for k, v in RECORD_COLUMNS.items() if k in raw.columns}).copy()
    df = df.loc[:, ~df.columns.duplicated()]
    for col in SCHEMA:
        if col not in df.columns:
            df[col] = pd.NA

    df = coerce_str_safe(df, TEXT_COLUMNS)
    df = numericize(df, NUMERIC_COLUMNS)
    df[NUMERIC_COLUMNS] = df[NUMERIC_COLUMNS].replace([np.inf, -np.inf], np.nan)
    before = len(df)
    df = df.dropna(subset=NUMERIC_COLUMNS)
    removed = before - len(df)

    df["age"] = df["age"].astype("int64")
    df["quantity"] = df["quantity"].astype("int64")
    df["price"] = df["price"].astype("float64")
    df["invoice_date"] = pd.to_datetime(df["invoice_date"].map(parse_invoice_date), errors="coerce")
    return df[SCHEMA].reset_index(drop=True), removed


def with_revenue(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    out["revenue"] = (out["quantity"] * out["price"]).astype("float64")
    return out


def date_span(df: pd.DataFrame) -> Tuple[Optional[date], Optional[date]]:
    if df.empty or "invoice_date" not in df.columns:
        return None, None
    dates = df["invoice_date"].dropna()
    if dates.empty:
        return None, None
    return dates.min().date(), dates.max().date()


def facet_options(df: pd.DataFrame) -> Dict[str, object]:
    """Distinct facet values, age span and date span for the filter bar."""
    options: Dict[str, object] = {}
    for key, col in FACET_FIELDS.items():
        values = df[col].dropna().astype(str).unique().tolist() if col in df.columns else []
        options[key] = sorted(values)
    ages = df["age"].dropna() if "age" in df.columns else pd.Series(dtype="int64")
    options["age_span"] = (int(ages.min()), int(ages.max())) if not ages.empty else (0, 100)
    options["date_span"] = date_span(df)
    return options


# ---------------- Loaders ----------------
def get_source_file() -> Path:
    return DATA_FILE


def file_signature(path: Path) -> Tuple[str, float]:
    return (str(path), path.stat().st_mtime)


def load_records(path: Path) -> Tuple[pd.DataFrame, int]:
    raw = pd.read_csv(path, dtype=str, keep_default_na=False)
    records, removed = coerce_records(raw)
    logger.info("Loaded %d records from %s (%d dropped as malformed)", len(records), path.name, removed)
    return records, removed


# ---------------- Public API (Streamlit parity + FastAPI use) ----------------
@lru_cache(maxsize=4)
def _load_dashboard_data_cached(file_sig: Tuple[str, float]) -> Dict[str, object]:
    records, removed = load_records(Path(file_sig[0]))
    return {
        "files": [Path(file_sig[0]).name],
        "records": records,
        "options": facet_options(records),
        "dq_removed_rows": removed,
    }


def load_dashboard_data() -> Dict[str, object]:
    path = get_source_file()
    if not path.exists():
        logger.warning("Data file %s not found", path)
        records = empty_records()
        return {"files": [], "records": records, "options": facet_options(records), "dq_removed_rows": 0}
    return _load_dashboard_data_cached(file_signature(path))


def build_data_context(records: pd.DataFrame, *, dq_removed_rows: int = 0) -> Dict[str, object]:
    """Data context for an in-memory record frame (tests, notebooks)."""
    return {"files": [], "records": records, "options": facet_options(records), "dq_removed_rows": dq_removed_rows}


def prepare_context(criteria: dict | FilterCriteria, data_ctx: Dict[str, object]) -> Dict[str, object]:
    records: pd.DataFrame = data_ctx.get("records")
    if records is None:
        records = empty_records()
    crit = criteria if isinstance(criteria, FilterCriteria) else normalize_criteria(criteria)
    filtered = apply_filters(records, crit)
    return {
        "criteria": crit,
        "records": records,
        "filtered": filtered,
        "options": data_ctx.get("options") or facet_options(records),
        "dq_removed_rows": int(data_ctx.get("dq_removed_rows", 0) or 0),
    }
