"""
Unit tests -- Spec validation & repair.
"""
import copy
import json

import pytest

from src.dashboard.repair import find_similar_column, find_spec_issues, repair_spec
from src.dashboard.spec import CHART_TYPES, ColumnSchema, DashboardSpec, Visual, parse_metric


SCHEMA = [
    ColumnSchema(name="Order Date", type="date", data_type="date"),
    ColumnSchema(name="Region", type="dimension", data_type="string"),
    ColumnSchema(name="Total_Sales", type="measure", data_type="number"),
    ColumnSchema(name="Quantity", type="measure", data_type="number"),
]
NAMES = [c.name for c in SCHEMA]


def _assert_consistent(spec: DashboardSpec):
    assert spec.visuals
    for visual in spec.visuals:
        assert visual.type in CHART_TYPES
        for metric in visual.metrics:
            assert parse_metric(metric).column in NAMES
        for dim in visual.dimensions:
            assert dim in NAMES


# ── Fuzzy lookup ────────────────────────────────────────

def test_similar_exact_case_insensitive():
    assert find_similar_column("region", NAMES) == "Region"


def test_similar_substring():
    assert find_similar_column("Sales", NAMES) == "Total_Sales"
    assert find_similar_column("Quantity Sold", NAMES) == "Quantity"


def test_similar_token_overlap():
    assert find_similar_column("order-day", NAMES) == "Order Date"


def test_similar_no_match():
    assert find_similar_column("Profit", NAMES) is None
    assert find_similar_column("", NAMES) is None


# ── repair_spec ─────────────────────────────────────────

def test_valid_spec_unchanged():
    spec = DashboardSpec(title="D", visuals=[
        Visual(id="v1", type="bar", title="t", metrics=["SUM(Quantity)"], dimensions=["Region"]),
    ])
    assert repair_spec(spec, SCHEMA) == spec


def test_metric_column_fuzzy_fixed():
    raw = {"title": "D", "visuals": [
        {"id": "v1", "type": "bar", "title": "t", "metrics": ["AVG(sales)"], "dimensions": ["region"]},
    ]}
    visual = repair_spec(raw, SCHEMA).visuals[0]
    assert visual.metrics == ["AVG(Total_Sales)"]
    assert visual.dimensions == ["Region"]


def test_unknown_metric_falls_back_to_first_measure():
    raw = {"title": "D", "visuals": [{"id": "v1", "type": "card", "title": "t", "metrics": ["SUM(Profit)"]}]}
    assert repair_spec(raw, SCHEMA).visuals[0].metrics == ["SUM(Total_Sales)"]


def test_unknown_dimension_falls_back():
    raw = {"title": "D", "visuals": [
        {"id": "v1", "type": "bar", "title": "t", "metrics": ["SUM(Quantity)"], "dimensions": ["Country"]},
    ]}
    assert repair_spec(raw, SCHEMA).visuals[0].dimensions == ["Region"]


def test_unknown_type_becomes_bar():
    raw = {"title": "D", "visuals": [{"id": "v1", "type": "donut", "title": "t", "metrics": ["SUM(Quantity)"]}]}
    assert repair_spec(raw, SCHEMA).visuals[0].type == "bar"


def test_missing_fields_backfilled():
    raw = {"visuals": [{"metrics": ["SUM(Quantity)"]}, {"metrics": "oops", "dimensions": None}]}
    spec = repair_spec(raw, SCHEMA)
    assert spec.title == "Dashboard"
    assert [v.id for v in spec.visuals] == ["v1", "v2"]
    assert [v.title for v in spec.visuals] == ["Visual 1", "Visual 2"]
    assert spec.visuals[1].metrics == ["SUM(Total_Sales)"]
    assert spec.visuals[1].dimensions == []


def test_table_keeps_zero_metrics():
    raw = {"title": "D", "visuals": [{"id": "v1", "type": "table", "title": "t", "dimensions": ["Region"]}]}
    assert repair_spec(raw, SCHEMA).visuals[0].metrics == []


def test_non_dict_visual_dropped():
    raw = {"title": "D", "visuals": ["garbage", {"id": "v2", "type": "pie", "title": "t"}]}
    spec = repair_spec(raw, SCHEMA)
    assert [v.id for v in spec.visuals] == ["v2"]


def test_empty_visuals_get_default_bar():
    spec = repair_spec({"title": "D", "visuals": "not a list"}, SCHEMA)
    assert len(spec.visuals) == 1
    assert spec.visuals[0].type == "bar"
    assert spec.visuals[0].metrics == ["SUM(Total_Sales)"]


def test_filters_sort_and_limits_sanitised():
    raw = {"title": "D", "visuals": [{
        "id": "v1", "type": "bar", "title": "t", "metrics": ["SUM(Quantity)"],
        "filters": {"region": "North", "Nope": ["x"]},
        "sort": "sideways", "topN": -4, "bins": "12",
    }]}
    visual = repair_spec(raw, SCHEMA).visuals[0]
    assert visual.filters == {"Region": ["North"]}
    assert visual.sort is None
    assert visual.top_n is None
    assert visual.bins == 12


def test_duplicate_ids_made_unique():
    raw = {"title": "D", "visuals": [
        {"id": "v1", "type": "card", "title": "a"},
        {"id": "v1", "type": "card", "title": "b"},
    ]}
    ids = [v.id for v in repair_spec(raw, SCHEMA).visuals]
    assert len(set(ids)) == 2


def test_input_not_mutated():
    raw = {"title": "D", "visuals": [{"id": "v1", "type": "donut", "title": "t", "metrics": ["SUM(x)"]}]}
    snapshot = copy.deepcopy(raw)
    repair_spec(raw, SCHEMA)
    assert raw == snapshot


def test_no_measures_drops_metrics():
    schema = [ColumnSchema(name="Region", type="dimension", data_type="string")]
    raw = {"title": "D", "visuals": [{"id": "v1", "type": "bar", "title": "t", "metrics": ["SUM(Sales)"]}]}
    assert repair_spec(raw, schema).visuals[0].metrics == []


@pytest.mark.parametrize("garbage", [
    None,
    42,
    "spec",
    [],
    {"title": 7, "visuals": None},
    {"title": "", "visuals": [None, 3, {"type": 9, "metrics": [1, None], "dimensions": [{}]}]},
    {"visuals": [{"id": "v1", "type": "scatter", "title": "t", "metrics": ["MEDIAN(zzz)", "SUM()"]}]},
    json.loads('{"title": "D", "visuals": [{"id": "v1", "type": "bar", "title": "t", "metrics": ["SUM(Sales)"], "topN": Infinity}]}'),
    json.loads('{"title": "D", "visuals": [{"id": "v1", "type": "histogram", "title": "t", "metrics": ["Sales"], "bins": 1e400}]}'),
    {"visuals": [{"id": "v1", "type": "bar", "title": "t", "topN": float("nan"), "bins": "Infinity"}]},
])
def test_repair_closure(garbage):
    _assert_consistent(repair_spec(garbage, SCHEMA))


# ── find_spec_issues ────────────────────────────────────

def test_issues_reported():
    raw = {"title": "", "visuals": [{"id": "v1", "type": "donut", "title": "t", "metrics": ["SUM(Profit)"]}]}
    issues = find_spec_issues(raw, SCHEMA)
    assert "Missing dashboard title" in issues
    assert any("donut" in i for i in issues)
    assert any("Profit" in i for i in issues)


def test_no_issues_for_repaired_spec():
    raw = {"visuals": [{"type": "donut", "metrics": ["SUM(Profit)"], "dimensions": ["Country"]}]}
    assert find_spec_issues(repair_spec(raw, SCHEMA), SCHEMA) == []


def test_non_finite_limits_cleared():
    raw = json.loads(
        '{"title": "D", "visuals": [{"id": "v1", "type": "bar", "title": "t",'
        ' "metrics": ["SUM(Sales)"], "topN": Infinity, "bins": -Infinity}]}'
    )
    visual = repair_spec(raw, SCHEMA).visuals[0]
    assert visual.id == "v1"
    assert visual.top_n is None
    assert visual.bins is None
