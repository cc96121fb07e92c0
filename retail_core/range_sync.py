"""Two-way sync between the date range slider and the start/end date inputs.

The slider (a brushed selection over a time scale) and the two text fields
both set the same date range. Writing one programmatically makes the other
widget fire its own change notification; the controller latches while it
syncs and releases on the next idle tick so those echoes are ignored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Callable, List, Optional, Tuple

import pandas as pd

from retail_core.filters import DateRange

logger = logging.getLogger(__name__)

Selection = Tuple[float, float]
Scheduler = Callable[[Callable[[], None]], None]


class SyncState(str, Enum):
    IDLE = "idle"
    SYNCING_FROM_GESTURE = "syncing_from_gesture"
    SYNCING_FROM_FIELDS = "syncing_from_fields"


class InvalidTransition(RuntimeError):
    pass


@dataclass(frozen=True)
class TimeScale:
    """Linear date <-> pixel scale, day resolution."""

    domain_start: date
    domain_end: date
    range_start: float = 10.0
    range_end: float = 210.0
    clamp: bool = True

    @property
    def span_days(self) -> int:
        return max(0, (self.domain_end - self.domain_start).days)

    def __call__(self, value: date) -> float:
        if self.span_days == 0:
            return self.range_start
        frac = (value - self.domain_start).days / self.span_days
        if self.clamp:
            frac = min(1.0, max(0.0, frac))
        return self.range_start + frac * (self.range_end - self.range_start)

    def invert(self, position: float) -> date:
        width = self.range_end - self.range_start
        if self.span_days == 0 or width == 0:
            return self.domain_start
        frac = (position - self.range_start) / width
        if self.clamp:
            frac = min(1.0, max(0.0, frac))
        return self.domain_start + timedelta(days=int(round(frac * self.span_days)))


def parse_field_date(text: Optional[str], fallback: date) -> date:
    if text is None or not str(text).strip():
        return fallback
    parsed = pd.to_datetime(str(text).strip(), errors="coerce")
    if pd.isna(parsed):
        return fallback
    return parsed.date()


def to_field_text(value: date) -> str:
    return value.isoformat()


class RangeSyncController:
    """Keeps the slider selection and the date fields on the same interval.

    Legal transitions are IDLE -> SYNCING_FROM_GESTURE -> IDLE and
    IDLE -> SYNCING_FROM_FIELDS -> IDLE. While syncing, incoming
    notifications from either widget are dropped. The release back to IDLE
    goes through ``scheduler``; by default it is queued and runs on
    ``tick()``.
    """

    def __init__(
        self,
        min_date: date,
        max_date: date,
        *,
        on_change: Optional[Callable[[DateRange], None]] = None,
        range_start: float = 10.0,
        range_end: float = 210.0,
        scheduler: Optional[Scheduler] = None,
        on_fields_written: Optional[Callable[[str, str], None]] = None,
        on_selection_moved: Optional[Callable[[Selection], None]] = None,
    ):
        if min_date > max_date:
            min_date, max_date = max_date, min_date
        self.min_date = min_date
        self.max_date = max_date
        self.scale = TimeScale(min_date, max_date, range_start, range_end)
        self.state = SyncState.IDLE
        self.on_change = on_change
        self.on_fields_written = on_fields_written
        self.on_selection_moved = on_selection_moved
        self._pending: List[Callable[[], None]] = []
        self._scheduler: Scheduler = scheduler or self._pending.append
        self._generation = 0

        self.start_text = to_field_text(min_date)
        self.end_text = to_field_text(max_date)
        self.selection: Selection = (self.scale(min_date), self.scale(max_date))
        self.date_range = DateRange(min_date, max_date)

    # ---------- state machine ----------
    @property
    def latched(self) -> bool:
        return self.state is not SyncState.IDLE

    def _enter(self, state: SyncState) -> int:
        if self.state is not SyncState.IDLE or state is SyncState.IDLE:
            raise InvalidTransition(f"{self.state.value} -> {state.value}")
        self.state = state
        self._generation += 1
        return self._generation

    def _release(self, generation: int) -> None:
        # A newer sync owns the latch; let its own release handle it.
        if generation != self._generation or self.state is SyncState.IDLE:
            return
        self.state = SyncState.IDLE

    def _defer_release(self, generation: int) -> None:
        self._scheduler(lambda: self._release(generation))

    def tick(self) -> int:
        """Run the callbacks queued on the default scheduler."""
        ran = 0
        while self._pending:
            self._pending.pop(0)()
            ran += 1
        return ran

    # ---------- helpers ----------
    def _clamp(self, value: date) -> date:
        return min(self.max_date, max(self.min_date, value))

    def _ordered(self, start: date, end: date) -> Tuple[date, date]:
        start, end = self._clamp(start), self._clamp(end)
        return (end, start) if start > end else (start, end)

    def _write_fields(self, start: date, end: date) -> None:
        self.start_text = to_field_text(start)
        self.end_text = to_field_text(end)
        if self.on_fields_written:
            self.on_fields_written(self.start_text, self.end_text)

    def _move_selection(self, start: date, end: date) -> None:
        self.selection = (self.scale(start), self.scale(end))
        if self.on_selection_moved:
            self.on_selection_moved(self.selection)

    def _emit(self, start: date, end: date) -> None:
        self.date_range = DateRange(start, end)
        if self.on_change:
            self.on_change(self.date_range)

    # ---------- inputs ----------
    def on_gesture(self, selection: Optional[Selection]) -> bool:
        """Slider moved or released. Returns False when the event was ignored."""
        if selection is None or self.latched:
            return False
        lo, hi = sorted(selection)
        start, end = self._ordered(self.scale.invert(lo), self.scale.invert(hi))
        generation = self._enter(SyncState.SYNCING_FROM_GESTURE)
        self.selection = (lo, hi)
        self._write_fields(start, end)
        self._defer_release(generation)
        self._emit(start, end)
        return True

    def on_fields_changed(self, start_text: Optional[str] = None, end_text: Optional[str] = None) -> bool:
        """Either date field was edited. Returns False when the event was ignored."""
        if self.latched:
            return False
        if start_text is not None:
            self.start_text = start_text
        if end_text is not None:
            self.end_text = end_text
        self._sync_from_fields(emit=True)
        return True

    def reset(self) -> None:
        """Restore the full span. Supersedes any sync still waiting for release."""
        if self.latched:
            logger.debug("reset while %s; releasing latch early", self.state.value)
            self.state = SyncState.IDLE
        self.start_text = to_field_text(self.min_date)
        self.end_text = to_field_text(self.max_date)
        self._sync_from_fields(emit=True)

    def resize(self, range_start: float, range_end: float) -> None:
        """Rebuild the scale for a new slider width and re-place the selection."""
        self.scale = TimeScale(self.min_date, self.max_date, range_start, range_end)
        if self.latched:
            self.state = SyncState.IDLE
        self._sync_from_fields(emit=False)

    def _sync_from_fields(self, *, emit: bool) -> None:
        start = parse_field_date(self.start_text, self.min_date)
        end = parse_field_date(self.end_text, self.max_date)
        start, end = self._ordered(start, end)
        generation = self._enter(SyncState.SYNCING_FROM_FIELDS)
        self._write_fields(start, end)
        self._move_selection(start, end)
        self._defer_release(generation)
        if emit:
            self._emit(start, end)

    # ---------- views ----------
    def selection_interval(self) -> Tuple[date, date]:
        lo, hi = self.selection
        return self.scale.invert(lo), self.scale.invert(hi)

    def field_interval(self) -> Tuple[date, date]:
        return (
            parse_field_date(self.start_text, self.min_date),
            parse_field_date(self.end_text, self.max_date),
        )
