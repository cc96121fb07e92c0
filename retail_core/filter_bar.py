from __future__ import annotations

from datetime import date
from typing import Callable, Dict, Iterable, Optional, Set, Tuple

import pandas as pd

from retail_core.filters import FACET_FIELDS, AgeRange, DateRange, FilterCriteria
from retail_core.range_sync import RangeSyncController, Scheduler

FACETS = tuple(FACET_FIELDS)


def fallback_date_span(today: Optional[date] = None) -> Tuple[date, date]:
    """Six months up to today, used when the data has no valid dates."""
    end = today or date.today()
    start = (pd.Timestamp(end) - pd.DateOffset(months=6)).date()
    return start, end


def _age_or(value: object, default: int) -> int:
    try:
        return int(float(value))  # type: ignore[arg-type]
    except Exception:
        return default


class FilterBar:
    """State behind the filter sidebar.

    Every discrete action (checkbox toggle, age edit, date gesture or field
    edit, reset) rebuilds the whole FilterCriteria and calls
    ``on_filter_change`` exactly once.
    """

    def __init__(
        self,
        options: Dict[str, object],
        on_filter_change: Callable[[FilterCriteria], None],
        *,
        scheduler: Optional[Scheduler] = None,
        today: Optional[date] = None,
    ):
        self.options = options
        self.on_filter_change = on_filter_change
        self.selected: Dict[str, Set[str]] = {f: set() for f in FACETS}

        age_span = options.get("age_span") or (0, 100)
        self.age_span: Tuple[int, int] = (int(age_span[0]), int(age_span[1]))
        self.age_min_text: str = str(self.age_span[0])
        self.age_max_text: str = str(self.age_span[1])

        span = options.get("date_span") or (None, None)
        if span[0] is None or span[1] is None:
            span = fallback_date_span(today)
        self.date_span: Tuple[date, date] = (span[0], span[1])
        self.range = RangeSyncController(
            self.date_span[0],
            self.date_span[1],
            on_change=self._on_date_range,
            scheduler=scheduler,
        )

    # ---------- criteria ----------
    def age_range(self) -> AgeRange:
        lo = _age_or(self.age_min_text, self.age_span[0])
        hi = _age_or(self.age_max_text, self.age_span[1])
        return AgeRange(lo, hi).ordered()

    def criteria(self, date_range: Optional[DateRange] = None) -> FilterCriteria:
        return FilterCriteria(
            date_range=(date_range or self.range.date_range).ordered(),
            genders=frozenset(self.selected["genders"]),
            categories=frozenset(self.selected["categories"]),
            payment_methods=frozenset(self.selected["payment_methods"]),
            malls=frozenset(self.selected["malls"]),
            age_range=self.age_range(),
        )

    def _emit(self, date_range: Optional[DateRange] = None) -> FilterCriteria:
        crit = self.criteria(date_range)
        self.on_filter_change(crit)
        return crit

    def _on_date_range(self, date_range: DateRange) -> None:
        self._emit(date_range)

    # ---------- actions ----------
    def toggle(self, facet: str, value: str, checked: bool) -> FilterCriteria:
        if facet not in self.selected:
            raise KeyError(f"unknown facet {facet!r}")
        if checked:
            self.selected[facet].add(str(value))
        else:
            self.selected[facet].discard(str(value))
        return self._emit()

    def set_selection(self, facet: str, values: Iterable[str]) -> FilterCriteria:
        if facet not in self.selected:
            raise KeyError(f"unknown facet {facet!r}")
        self.selected[facet] = {str(v) for v in values}
        return self._emit()

    def set_age(self, min_text: Optional[object] = None, max_text: Optional[object] = None) -> FilterCriteria:
        if min_text is not None:
            self.age_min_text = str(min_text)
        if max_text is not None:
            self.age_max_text = str(max_text)
        return self._emit()

    def drag_dates(self, selection: Tuple[float, float]) -> bool:
        return self.range.on_gesture(selection)

    def edit_dates(self, start_text: Optional[str] = None, end_text: Optional[str] = None) -> bool:
        return self.range.on_fields_changed(start_text, end_text)

    def reset(self) -> None:
        """Clear every facet, restore the age span, then reset the date range (which emits)."""
        for facet in FACETS:
            self.selected[facet].clear()
        self.age_min_text = str(self.age_span[0])
        self.age_max_text = str(self.age_span[1])
        self.range.reset()
