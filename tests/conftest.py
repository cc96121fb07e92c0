from typing import Dict, List

import pandas as pd
import pytest

from retail_core.data import build_data_context, coerce_records


def make_records(rows: List[Dict[str, object]]) -> pd.DataFrame:
    """Coerce loosely specified rows into the record schema, filling defaults."""
    defaults = {
        "invoice_no": None,
        "customer_id": "C0",
        "gender": "Female",
        "age": 30,
        "category": "Clothing",
        "quantity": 1,
        "price": 10.0,
        "payment_method": "Cash",
        "invoice_date": "1/5/2024",
        "shopping_mall": "Kanyon",
    }
    full = []
    for i, row in enumerate(rows):
        r = {**defaults, **row}
        if r["invoice_no"] is None:
            r["invoice_no"] = f"I{i:04d}"
        full.append({k: (None if v is None else str(v)) for k, v in r.items()})
    records, _ = coerce_records(pd.DataFrame(full))
    return records


@pytest.fixture
def records() -> pd.DataFrame:
    return make_records(
        [
            {"gender": "Female", "age": 22, "category": "Clothing", "quantity": 5, "price": 100.0, "payment_method": "Credit Card", "invoice_date": "5/1/2024", "shopping_mall": "Kanyon"},
            {"gender": "Male", "age": 31, "category": "Shoes", "quantity": 2, "price": 60.0, "payment_method": "Cash", "invoice_date": "13/01/2024", "shopping_mall": "Metrocity"},
            {"gender": "Female", "age": 40, "category": "Books", "quantity": 1, "price": 15.0, "payment_method": "Debit Card", "invoice_date": "02/14/2024", "shopping_mall": "Kanyon"},
            {"gender": "Male", "age": 52, "category": "Clothing", "quantity": 3, "price": 50.0, "payment_method": "Credit Card", "invoice_date": "3/3/2024", "shopping_mall": "Zorlu Center"},
            {"gender": "Female", "age": 60, "category": "Technology", "quantity": 1, "price": 1050.0, "payment_method": "Credit Card", "invoice_date": "4/20/2024", "shopping_mall": "Istinye Park"},
            {"gender": "Male", "age": 70, "category": "Toys", "quantity": 4, "price": 20.0, "payment_method": "Cash", "invoice_date": "6/30/2024", "shopping_mall": "Kanyon"},
            {"gender": "Female", "age": 18, "category": "Cosmetics", "quantity": 2, "price": 40.0, "payment_method": "Cash", "invoice_date": "not a date", "shopping_mall": "Metrocity"},
        ]
    )


@pytest.fixture
def data_ctx(records):
    return build_data_context(records)
