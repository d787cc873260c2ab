"""Test scheme files and option parsing."""
from datetime import date

import pytest

from partplan.core.config import (
    dump_scheme,
    load_scheme,
    parse_selectivities,
    scheme_from_dict,
    scheme_to_dict,
)
from partplan.core.errors import InvalidSchemeError
from partplan.core.months import add_months, parse_date, partition_name
from partplan.core.types import PartitionKeyRange, PartitionScheme


def test_scheme_from_dict_chains_bounds():
    scheme = scheme_from_dict({
        "table": "bookings_partitioned",
        "key": "start_date",
        "partitions": [
            {"name": "p_2024_01", "lower": "2024-01-01"},
            {"name": "p_2024_02", "lower": "2024-02"},
            {"name": "p_future", "lower": "2024-03-01", "weight": 3},
        ],
    })

    assert scheme.names == ("p_2024_01", "p_2024_02", "p_future")
    assert scheme.get("p_2024_01").key_range == PartitionKeyRange(
        date(2024, 1, 1), date(2024, 2, 1)
    )
    assert scheme.catch_all.name == "p_future"
    assert scheme.catch_all.row_weight == 3.0
    assert scheme.validate() is scheme


def test_scheme_from_dict_unbounded_leading_partition():
    scheme = scheme_from_dict({"partitions": [
        {"name": "p_old", "lower": None},
        {"name": "p_future", "lower": "2024-01-01"},
    ]})

    assert scheme.partitions[0].lower is None
    assert scheme.key_column == "start_date"
    assert scheme.table_name == "bookings_partitioned"


@pytest.mark.parametrize("data", [
    {},
    {"partitions": [{"lower": "2024-01-01"}]},
    {"partitions": [{"name": "p", "lower": "January"}]},
    {"partitions": [{"name": "p", "lower": "2024-01-01", "weight": "heavy"}]},
])
def test_scheme_from_dict_rejects_malformed(data):
    with pytest.raises(InvalidSchemeError):
        scheme_from_dict(data)


def test_dump_and_load(tmp_path):
    scheme = PartitionScheme.monthly(date(2024, 1, 1), date(2024, 6, 1))
    scheme = scheme.add_trailing_partition("p_future_2", date(2024, 7, 1))
    path = tmp_path / "scheme.json"

    dump_scheme(scheme, path)

    assert load_scheme(path) == scheme
    assert scheme_to_dict(scheme)["partitions"][0]["lower"] is None
    assert scheme_to_dict(scheme)["partitions"][-1] == {
        "name": "p_future_2", "lower": "2024-07-01", "upper": None, "weight": 0.5,
    }


def test_load_invalid_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")

    with pytest.raises(InvalidSchemeError) as excinfo:
        load_scheme(path)

    assert "broken.json" in str(excinfo.value)


def test_load_non_utf8_file(tmp_path):
    path = tmp_path / "latin1.json"
    path.write_bytes('{"partitions": [{"name": "p_año", "lower": null}]}'.encode("latin-1"))

    with pytest.raises(InvalidSchemeError) as excinfo:
        load_scheme(path)

    assert "latin1.json" in str(excinfo.value)


def test_nan_weight_in_file_fails_validation(tmp_path):
    path = tmp_path / "nan.json"
    path.write_text(
        '{"partitions": ['
        '{"name": "a", "lower": null, "upper": "2024-01-01"}, '
        '{"name": "b", "lower": "2024-01-01", "weight": NaN}]}'
    )
    scheme = load_scheme(path)

    with pytest.raises(InvalidSchemeError) as excinfo:
        scheme.validate()

    assert excinfo.value.partitions == ("b",)


def test_parse_selectivities():
    assert parse_selectivities(["status=0.25", " property_id = 0.01"]) == {
        "status": 0.25,
        "property_id": 0.01,
    }


@pytest.mark.parametrize("value", ["status", "=0.5", "status=high", "status=1.5"])
def test_parse_selectivities_rejects(value):
    with pytest.raises(ValueError):
        parse_selectivities([value])


def test_month_helpers():
    assert add_months(date(2024, 11, 15), 2) == date(2025, 1, 1)
    assert add_months(date(2024, 1, 1), -1) == date(2023, 12, 1)
    assert partition_name(date(2024, 6, 1)) == "p_2024_06"
    assert parse_date("2024-06") == date(2024, 6, 1)
    assert parse_date("2024-06-15T08:30:00") == date(2024, 6, 15)
