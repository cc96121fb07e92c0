from datetime import date

import pytest

from retail_core.data import facet_options
from retail_core.filter_bar import FilterBar, fallback_date_span
from retail_core.filters import AgeRange, DateRange


@pytest.fixture
def emitted():
    return []


@pytest.fixture
def bar(records, emitted):
    return FilterBar(facet_options(records), emitted.append)


def test_initial_criteria_span_the_data(bar):
    crit = bar.criteria()
    assert crit.date_range == DateRange(date(2024, 1, 13), date(2024, 6, 30))
    assert crit.age_range == AgeRange(18, 70)
    assert not crit.genders and not crit.malls


def test_toggle_emits_once_with_full_criteria(bar, emitted):
    bar.toggle("malls", "Kanyon", True)
    assert len(emitted) == 1
    assert emitted[0].malls == frozenset({"Kanyon"})
    assert emitted[0].date_range == DateRange(date(2024, 1, 13), date(2024, 6, 30))

    bar.toggle("malls", "Kanyon", False)
    assert len(emitted) == 2
    assert emitted[1].malls == frozenset()


def test_set_selection_replaces_facet(bar, emitted):
    bar.set_selection("genders", ["Male", "Female"])
    bar.set_selection("genders", ["Male"])
    assert emitted[-1].genders == frozenset({"Male"})
    assert len(emitted) == 2


def test_unknown_facet_raises(bar, emitted):
    with pytest.raises(KeyError):
        bar.toggle("colors", "Red", True)
    with pytest.raises(KeyError):
        bar.set_selection("colors", ["Red"])
    assert emitted == []


def test_age_edits_are_ordered_and_fall_back(bar, emitted):
    bar.set_age("50", "20")
    assert emitted[-1].age_range == AgeRange(20, 50)
    bar.set_age("abc", None)
    assert emitted[-1].age_range == AgeRange(18, 20)
    bar.set_age(None, "")
    assert emitted[-1].age_range == AgeRange(18, 70)
    assert len(emitted) == 3


def test_date_edit_emits_once_and_syncs_slider(bar, emitted):
    assert bar.edit_dates("2024-02-01", "2024-03-31")
    assert len(emitted) == 1
    assert emitted[0].date_range == DateRange(date(2024, 2, 1), date(2024, 3, 31))
    bar.range.tick()
    assert bar.range.selection_interval() == (date(2024, 2, 1), date(2024, 3, 31))


def test_drag_emits_once_and_writes_fields(bar, emitted):
    scale = bar.range.scale
    assert bar.drag_dates((scale(date(2024, 3, 1)), scale(date(2024, 4, 15))))
    assert len(emitted) == 1
    assert (bar.range.start_text, bar.range.end_text) == ("2024-03-01", "2024-04-15")


def test_drag_while_latched_is_ignored(bar, emitted):
    scale = bar.range.scale
    bar.edit_dates("2024-02-01", "2024-03-31")
    assert bar.drag_dates((scale(date(2024, 5, 1)), scale(date(2024, 6, 1)))) is False
    assert len(emitted) == 1
    bar.range.tick()
    assert bar.drag_dates((scale(date(2024, 5, 1)), scale(date(2024, 6, 1))))
    assert len(emitted) == 2


def test_facet_edit_keeps_current_date_range(bar, emitted):
    bar.edit_dates("2024-02-01", "2024-03-31")
    bar.range.tick()
    bar.toggle("categories", "Shoes", True)
    assert emitted[-1].date_range == DateRange(date(2024, 2, 1), date(2024, 3, 31))
    assert emitted[-1].categories == frozenset({"Shoes"})


def test_reset_clears_everything_and_emits_once(bar, emitted):
    bar.toggle("malls", "Kanyon", True)
    bar.set_age("30", "40")
    bar.edit_dates("2024-02-01", "2024-03-31")
    emitted.clear()

    bar.reset()
    assert len(emitted) == 1
    crit = emitted[0]
    assert crit.malls == frozenset()
    assert crit.age_range == AgeRange(18, 70)
    assert crit.date_range == DateRange(date(2024, 1, 13), date(2024, 6, 30))
    bar.range.tick()
    assert bar.range.field_interval() == (date(2024, 1, 13), date(2024, 6, 30))


def test_reset_twice_is_stable(bar, emitted):
    bar.reset()
    bar.range.tick()
    bar.reset()
    bar.range.tick()
    assert emitted[0] == emitted[1]


def test_fallback_date_span():
    assert fallback_date_span(date(2024, 8, 31)) == (date(2024, 2, 29), date(2024, 8, 31))


def test_bar_without_dated_records_uses_fallback_span(emitted):
    options = {"genders": [], "categories": [], "payment_methods": [], "malls": [], "date_span": (None, None)}
    bar = FilterBar(options, emitted.append, today=date(2024, 8, 31))
    assert bar.date_span == (date(2024, 2, 29), date(2024, 8, 31))
    assert bar.age_span == (0, 100)
