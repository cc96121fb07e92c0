import pandas as pd
import pytest

from retail_core.data import empty_records, with_revenue
from retail_core.filters import FilterCriteria
from retail_core.metrics_cohorts import (
    COHORTS,
    age_cohort,
    aggregate_cohorts,
    classify_spend,
    compute_cohorts,
    top_facet_segments,
)
from retail_core.settings import CohortSettings, SpendThresholds

from tests.conftest import make_records


def test_age_cohort_bins_are_exhaustive():
    ages = pd.Series([5, 18, 25, 26, 35, 36, 45, 46, 55, 56, 65, 66, 120])
    assert age_cohort(ages).tolist() == [
        "18-25", "18-25", "18-25",
        "26-35", "26-35",
        "36-45", "36-45",
        "46-55", "46-55",
        "56-65", "56-65",
        "65+", "65+",
    ]


def test_classify_spend_fixed_thresholds():
    revenue = pd.Series([50.0, 100.0, 100.01, 300.0, 300.5])
    assert classify_spend(revenue, SpendThresholds()).tolist() == ["Low", "Low", "Medium", "Medium", "High"]


@pytest.mark.parametrize("measure", ["count", "revenue"])
def test_spend_rows_are_dense_and_conserve_total(records, measure):
    result = aggregate_cohorts(records, segment_by="spend", measure=measure)
    assert result.segments == ["High", "Medium", "Low"]
    assert result.rows["cohort"].tolist() == COHORTS
    assert list(result.rows.columns) == ["cohort", "High", "Medium", "Low"]
    assert not result.rows[result.segments].isna().any().any()

    expected = len(records) if measure == "count" else with_revenue(records)["revenue"].sum()
    assert result.rows[result.segments].to_numpy().sum() == pytest.approx(expected)


def test_spend_cells(records):
    rows = aggregate_cohorts(records, segment_by="spend", measure="count").rows.set_index("cohort")
    # 22y 500 -> High, 18y 80 -> Low
    assert rows.loc["18-25"].to_dict() == {"High": 1, "Medium": 0, "Low": 1}
    assert rows.loc["26-35"].to_dict() == {"High": 0, "Medium": 1, "Low": 0}
    assert rows.loc["65+"].to_dict() == {"High": 0, "Medium": 0, "Low": 1}


def test_tertile_policy_uses_filtered_distribution():
    df = make_records([{"quantity": 1, "price": p, "age": 30} for p in [1, 2, 3, 4, 5, 6, 7, 8, 9]])
    result = aggregate_cohorts(df, segment_by="spend", settings=CohortSettings(policy="tertile"))
    revenue = with_revenue(df)["revenue"]
    assert result.thresholds == SpendThresholds(high=revenue.quantile(0.66), medium=revenue.quantile(0.33))
    row = result.rows.set_index("cohort").loc["26-35"]
    assert row.sum() == 9
    assert row["High"] == 3
    assert row["Low"] == 3


def test_fixed_policy_reports_thresholds(records):
    result = aggregate_cohorts(records)
    assert result.thresholds == SpendThresholds(high=300.0, medium=100.0)


def test_facet_mode_seven_malls_collapses_to_top_five_plus_others():
    malls = {"A": 7, "B": 6, "C": 5, "D": 4, "E": 3, "F": 2, "G": 1}
    rows = [{"shopping_mall": m, "age": 30} for m, n in malls.items() for _ in range(n)]
    df = make_records(rows)
    result = aggregate_cohorts(df, segment_by="facet", measure="count")
    assert result.segments == ["A", "B", "C", "D", "E", "Others"]
    row = result.rows.set_index("cohort").loc["26-35"]
    assert row["Others"] == 3
    assert result.rows[result.segments].to_numpy().sum() == len(df)


def test_facet_value_named_like_catch_all_is_counted_once():
    malls = {"Others": 6, "A": 5, "B": 4, "C": 3, "D": 2, "E": 1, "F": 1}
    rows = [{"shopping_mall": m, "age": 30} for m, n in malls.items() for _ in range(n)]
    df = make_records(rows)
    result = aggregate_cohorts(df, segment_by="facet", measure="count")
    assert result.segments == ["A", "B", "C", "D", "E", "Others"]
    assert list(result.rows.columns) == ["cohort"] + result.segments
    row = result.rows.set_index("cohort").loc["26-35"]
    assert row["Others"] == 7
    assert result.rows[result.segments].to_numpy().sum() == len(df) == 22


def test_facet_mode_few_values_each_its_own_segment(records):
    result = aggregate_cohorts(records, segment_by="facet")
    assert "Others" not in result.segments
    assert sorted(result.segments) == ["Istinye Park", "Kanyon", "Metrocity", "Zorlu Center"]
    assert result.segments[0] == "Kanyon"


def test_top_facet_segments_breaks_ties_by_label():
    values = pd.Series(["b", "a", "c", "d", "e", "f", "b", "a"])
    assert top_facet_segments(values, 5) == ["a", "b", "c", "d", "e", "Others"]


def test_top_five_comes_from_filtered_set():
    df = make_records(
        [{"shopping_mall": m} for m in ["A", "A", "B", "C", "D", "E", "F"]]
        + [{"shopping_mall": "Z", "gender": "Male"} for _ in range(5)]
    )
    female = df[df["gender"] == "Female"]
    assert "Z" not in aggregate_cohorts(female, segment_by="facet").segments
    assert "Z" in aggregate_cohorts(df, segment_by="facet").segments


def test_focus_categories_restrict_records(records):
    result = aggregate_cohorts(records, focus_categories=["Clothing"])
    assert result.n_records == 2
    assert result.rows[result.segments].to_numpy().sum() == 2


def test_empty_input_gives_zero_rows():
    result = aggregate_cohorts(empty_records(), segment_by="spend", measure="revenue")
    assert result.rows["cohort"].tolist() == COHORTS
    assert result.rows[result.segments].to_numpy().sum() == 0
    assert result.n_records == 0


def test_compute_cohorts_payload(records):
    payload = compute_cohorts(FilterCriteria(), {"filtered": records}, segment_by="facet", measure="revenue")
    assert payload["empty"] is False
    assert payload["facet"] == "shopping_mall"
    assert len(payload["rows"]) == 6
    assert payload["total"] == pytest.approx(1995.0)
    assert "cohort_stack" in payload["charts"]


def test_compute_cohorts_empty():
    payload = compute_cohorts(FilterCriteria(), {"filtered": empty_records()})
    assert payload["empty"] is True
    assert payload["charts"] == {}
    assert all(sum(r[s] for s in payload["segments"]) == 0 for r in payload["rows"])
