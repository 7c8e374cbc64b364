"""
Unit tests -- Schema detection.
"""
from src.dataset.schema_detector import SAMPLE_SIZE, detect_column, detect_schema


ROWS = [
    {"Date": "2024-01-01", "Region": "North", "Sales": 100, "Units": "5"},
    {"Date": "2024-01-02", "Region": "South", "Sales": 200, "Units": "7"},
    {"Date": "2024-01-03", "Region": "North", "Sales": 50, "Units": "3"},
]


def _by_name(schema):
    return {c.name: c for c in schema}


# ── Roles ───────────────────────────────────────────────

def test_detects_all_three_roles():
    cols = _by_name(detect_schema(ROWS))
    assert cols["Date"].type == "date"
    assert cols["Date"].data_type == "date"
    assert cols["Region"].type == "dimension"
    assert cols["Region"].data_type == "string"
    assert cols["Sales"].type == "measure"
    assert cols["Sales"].data_type == "number"


def test_numeric_strings_are_measures():
    cols = _by_name(detect_schema(ROWS))
    assert cols["Units"].type == "measure"


def test_column_order_follows_first_row():
    assert [c.name for c in detect_schema(ROWS)] == ["Date", "Region", "Sales", "Units"]


def test_date_formats():
    for value in ("2024-03-01", "03/01/2024", "03-01-2024"):
        assert detect_column("d", [value]).type == "date"


def test_single_date_value_wins():
    col = detect_column("mixed", ["hello", "2024-01-01", "world"])
    assert col.type == "date"


def test_eighty_percent_numeric_is_measure():
    col = detect_column("x", ["1", "2", "3", "4", "n/a"])
    assert col.type == "measure"
    assert col.sample_values == ["1", "2", "3"]


def test_below_threshold_is_dimension():
    col = detect_column("x", ["1", "2", "3", "a", "b"])
    assert col.type == "dimension"


def test_empty_values_make_dimension():
    col = detect_column("blank", [])
    assert col.type == "dimension"
    assert col.sample_values == []


def test_missing_values_ignored():
    rows = [{"v": 1}, {"v": None}, {"v": ""}, {"v": 4}]
    assert detect_schema(rows)[0].type == "measure"


def test_sample_values_capped_at_three():
    col = _by_name(detect_schema(ROWS))["Region"]
    assert col.sample_values == ["North", "South", "North"]


# ── Edge cases ──────────────────────────────────────────

def test_empty_rows_give_empty_schema():
    assert detect_schema([]) == []


def test_only_first_rows_sampled():
    rows = [{"v": "text"} for _ in range(SAMPLE_SIZE)] + [{"v": 1} for _ in range(500)]
    assert detect_schema(rows)[0].type == "dimension"


def test_detection_is_idempotent():
    assert detect_schema(ROWS) == detect_schema(ROWS)


def test_wire_aliases():
    dumped = detect_schema(ROWS)[2].model_dump(by_alias=True)
    assert dumped["dataType"] == "number"
    assert dumped["sampleValues"] == [100, 200, 50]
