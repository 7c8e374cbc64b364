"""
Unit tests -- Aggregation engine.
"""
import pytest

from src.dashboard.spec import Aggregation, MetricRef, Visual
from src.dataset.aggregation import (
    AggregationConfig,
    aggregate,
    calculate_aggregate,
    calculate_histogram,
    calculate_scatter,
    execute_visual,
)


DATA = [
    {"R": "North", "S": 100},
    {"R": "South", "S": 200},
    {"R": "North", "S": 50},
]


def _by_name(rows):
    return {r["name"]: r for r in rows}


# ── Grouping ────────────────────────────────────────────

def test_sum_by_dimension():
    rows = aggregate(DATA, AggregationConfig(metrics=["SUM(S)"], dimensions=["R"]))
    assert len(rows) == 2
    grouped = _by_name(rows)
    assert grouped["North"]["value"] == 150
    assert grouped["South"]["value"] == 200
    assert grouped["North"]["SUM(S)"] == 150
    assert grouped["North"]["R"] == "North"


def test_sort_and_top_n():
    rows = aggregate(DATA, AggregationConfig(metrics=["SUM(S)"], dimensions=["R"], sort="desc", top_n=1))
    assert len(rows) == 1
    assert rows[0]["name"] == "South"
    assert rows[0]["value"] == 200


def test_sort_ascending():
    rows = aggregate(DATA, AggregationConfig(metrics=["SUM(S)"], dimensions=["R"], sort="asc"))
    assert [r["name"] for r in rows] == ["North", "South"]


def test_no_dimensions_gives_total_row():
    rows = aggregate(DATA, AggregationConfig(metrics=["SUM(S)", "COUNT(S)"]))
    assert rows == [{"name": "Total", "value": 350, "SUM(S)": 350, "COUNT(S)": 3}]


def test_missing_dimension_value_is_unknown():
    rows = aggregate(DATA + [{"S": 5}], AggregationConfig(metrics=["SUM(S)"], dimensions=["R"]))
    assert _by_name(rows)["Unknown"]["value"] == 5


def test_multiple_dimensions():
    data = [
        {"R": "North", "P": "A", "S": 1},
        {"R": "North", "P": "B", "S": 2},
        {"R": "North", "P": "A", "S": 3},
    ]
    rows = aggregate(data, AggregationConfig(metrics=["SUM(S)"], dimensions=["R", "P"]))
    assert len(rows) == 2
    first = next(r for r in rows if r["P"] == "A")
    assert first["name"] == "North"
    assert first["value"] == 4


def test_filters_applied_before_grouping():
    config = AggregationConfig(metrics=["SUM(S)"], dimensions=["R"], filters={"R": ["South"]})
    rows = aggregate(DATA, config)
    assert [r["name"] for r in rows] == ["South"]


def test_bare_metric_means_sum():
    rows = aggregate(DATA, AggregationConfig(metrics=["S"]))
    assert rows[0]["value"] == 350


def test_inputs_not_mutated():
    snapshot = [dict(r) for r in DATA]
    aggregate(DATA, AggregationConfig(metrics=["SUM(S)"], dimensions=["R"], sort="desc"))
    assert DATA == snapshot


# ── Aggregate functions ─────────────────────────────────

@pytest.mark.parametrize("agg,expected", [
    (Aggregation.SUM, 350),
    (Aggregation.AVG, 350 / 3),
    (Aggregation.COUNT, 3),
    (Aggregation.MIN, 50),
    (Aggregation.MAX, 200),
])
def test_calculate_aggregate(agg, expected):
    assert calculate_aggregate(DATA, MetricRef(agg, "S")) == pytest.approx(expected)


def test_unparseable_values_count_as_zero():
    data = [{"S": 10}, {"S": "n/a"}, {"S": "20"}]
    assert calculate_aggregate(data, MetricRef(Aggregation.SUM, "S")) == 30
    assert calculate_aggregate(data, MetricRef(Aggregation.AVG, "S")) == 10
    assert calculate_aggregate(data, MetricRef(Aggregation.MIN, "S")) == 0


def test_empty_group_is_zero():
    assert calculate_aggregate([], MetricRef(Aggregation.AVG, "S")) == 0


def test_grouped_unparseable_values_stay_in_the_group():
    data = [
        {"R": "South", "S": "n/a"},
        {"R": "North", "S": 30},
        {"R": "South", "S": 40},
        {"R": None, "S": 5},
    ]
    config = AggregationConfig(metrics=["AVG(S)", "MIN(S)", "COUNT(S)"], dimensions=["R"])
    rows = aggregate(data, config)
    assert [r["name"] for r in rows] == ["South", "North", "Unknown"]
    south = _by_name(rows)["South"]
    assert south["AVG(S)"] == 20
    assert south["MIN(S)"] == 0
    assert south["COUNT(S)"] == 2
    assert south["value"] == 20


def test_numeric_dimension_values_group_by_display_text():
    data = [{"Y": 2023.0, "S": 1}, {"Y": 2023, "S": 2}, {"Y": "2024", "S": 4}]
    rows = aggregate(data, AggregationConfig(metrics=["SUM(S)"], dimensions=["Y"]))
    assert [(r["name"], r["value"]) for r in rows] == [("2023", 3), ("2024", 4)]


def test_filter_leaving_nothing_gives_no_groups():
    config = AggregationConfig(metrics=["SUM(S)"], dimensions=["R"], filters={"R": ["West"]})
    assert aggregate(DATA, config) == []


# ── Histogram / scatter ─────────────────────────────────

def test_histogram_buckets():
    data = [{"v": x} for x in [0, 1, 2, 3, 4, 5, 6, 7, 8, 10]]
    buckets = calculate_histogram(data, "SUM(v)", bins=5)
    assert len(buckets) == 5
    assert sum(b["value"] for b in buckets) == 10
    assert buckets[0]["name"] == "0-2"
    assert buckets[-1]["binEnd"] == pytest.approx(10)
    assert buckets[-1]["value"] == 2  # 8 and 10, upper edge inclusive


def test_histogram_skips_unparseable():
    data = [{"v": 1}, {"v": "abc"}, {"v": None}, {"v": 3}]
    buckets = calculate_histogram(data, "v", bins=2)
    assert sum(b["value"] for b in buckets) == 2


def test_histogram_empty():
    assert calculate_histogram([{"v": "x"}], "v") == []


def test_scatter_points():
    data = [{"x": 1, "y": 2, "l": "a"}, {"x": "bad", "y": 3, "l": "b"}, {"x": 4, "y": 5}]
    points = calculate_scatter(data, "SUM(x)", "SUM(y)", "l")
    assert points == [
        {"x": 1, "y": 2, "label": "a"},
        {"x": 4, "y": 5, "label": "Point 2"},
    ]


# ── Visual dispatch ─────────────────────────────────────

def test_execute_visual_histogram():
    visual = Visual(id="v1", type="histogram", title="h", metrics=["SUM(S)"], bins=2)
    rows = execute_visual(DATA, visual)
    assert len(rows) == 2
    assert "binStart" in rows[0]


def test_execute_visual_scatter_needs_two_metrics():
    data = [{"a": 1, "b": 2}]
    two = Visual(id="v1", type="scatter", title="s", metrics=["SUM(a)", "SUM(b)"])
    one = Visual(id="v2", type="scatter", title="s", metrics=["SUM(a)"])
    assert execute_visual(data, two) == [{"x": 1, "y": 2, "label": "Point 0"}]
    assert execute_visual(data, one)[0]["name"] == "Total"


def test_execute_visual_bar():
    visual = Visual(id="v1", type="bar", title="b", metrics=["SUM(S)"], dimensions=["R"], sort="desc", topN=1)
    assert execute_visual(DATA, visual)[0]["name"] == "South"
