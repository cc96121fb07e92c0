from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, FrozenSet, Iterable, Optional

import pandas as pd


@dataclass(frozen=True)
class DateRange:
    start: Optional[date] = None
    end: Optional[date] = None

    def ordered(self) -> "DateRange":
        if self.start is not None and self.end is not None and self.start > self.end:
            return DateRange(self.end, self.start)
        return self


@dataclass(frozen=True)
class AgeRange:
    min: Optional[int] = None
    max: Optional[int] = None

    def ordered(self) -> "AgeRange":
        if self.min is not None and self.max is not None and self.min > self.max:
            return AgeRange(self.max, self.min)
        return self


@dataclass(frozen=True)
class FilterCriteria:
    date_range: DateRange = field(default_factory=DateRange)
    genders: FrozenSet[str] = frozenset()
    categories: FrozenSet[str] = frozenset()
    payment_methods: FrozenSet[str] = frozenset()
    malls: FrozenSet[str] = frozenset()
    age_range: AgeRange = field(default_factory=AgeRange)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date_range": [
                self.date_range.start.isoformat() if self.date_range.start else None,
                self.date_range.end.isoformat() if self.date_range.end else None,
            ],
            "genders": sorted(self.genders),
            "categories": sorted(self.categories),
            "payment_methods": sorted(self.payment_methods),
            "malls": sorted(self.malls),
            "age_range": [self.age_range.min, self.age_range.max],
        }


FACET_FIELDS = {
    "genders": "gender",
    "categories": "category",
    "payment_methods": "payment_method",
    "malls": "shopping_mall",
}


def _as_date(value: object) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = pd.to_datetime(str(value), errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.date()


def _as_int(value: object) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except Exception:
        return None


def _as_str_set(values: Optional[Iterable[object]]) -> FrozenSet[str]:
    if not values:
        return frozenset()
    return frozenset(str(v) for v in values if v is not None and str(v) != "")


def _bounds(raw: object, *keys: str) -> tuple:
    if raw is None:
        return None, None
    if isinstance(raw, dict):
        return raw.get(keys[0]), raw.get(keys[1])
    # A lone scalar (date string, date, number) is a lower bound only.
    if not isinstance(raw, (list, tuple)):
        return raw, None
    items = list(raw)
    items += [None] * (2 - len(items))
    return items[0], items[1]


def normalize_criteria(raw: Optional[dict]) -> FilterCriteria:
    """Build a complete FilterCriteria from loosely typed UI/API input.

    Unparseable bounds become unbounded and inverted bounds are swapped, so
    the filter engine never sees start > end or min > max.
    """
    raw = raw or {}
    start, end = _bounds(raw.get("date_range"), "start", "end")
    age_min, age_max = _bounds(raw.get("age_range"), "min", "max")
    return FilterCriteria(
        date_range=DateRange(_as_date(start), _as_date(end)).ordered(),
        genders=_as_str_set(raw.get("genders")),
        categories=_as_str_set(raw.get("categories")),
        payment_methods=_as_str_set(raw.get("payment_methods")),
        malls=_as_str_set(raw.get("malls")),
        age_range=AgeRange(_as_int(age_min), _as_int(age_max)).ordered(),
    )


def apply_filters(records: pd.DataFrame, criteria: FilterCriteria) -> pd.DataFrame:
    """Return the rows of ``records`` that satisfy every dimension of ``criteria``.

    An empty facet set places no constraint on that facet. Rows whose
    invoice date is missing cannot be compared against a date bound and are
    kept. Bounds are used as given; callers normalize them.
    """
    if records.empty:
        return records.copy()

    mask = pd.Series(True, index=records.index)

    dates = records["invoice_date"]
    if criteria.date_range.start is not None:
        mask &= dates.isna() | (dates >= pd.Timestamp(criteria.date_range.start))
    if criteria.date_range.end is not None:
        mask &= dates.isna() | (dates <= pd.Timestamp(criteria.date_range.end))

    for attr, col in FACET_FIELDS.items():
        allowed = getattr(criteria, attr)
        if allowed:
            mask &= records[col].astype(str).isin(sorted(allowed))

    if criteria.age_range.min is not None:
        mask &= records["age"] >= criteria.age_range.min
    if criteria.age_range.max is not None:
        mask &= records["age"] <= criteria.age_range.max

    return records[mask].copy()
