"""Tests for field type inference and per-field summary statistics."""

import copy

import pytest

from ingestion.statistics import (
    calculate_median,
    find_most_common,
    is_date_string,
    summarize,
    summarize_categorical,
    summarize_numeric,
)
from ingestion.tabular_parser import parse
from ingestion.type_inference import (
    FirstValueInferrer,
    MajorityTypeInferrer,
    get_inferrer,
    value_type_name,
)


def test_scores_scenario(scores_csv):
    summary = summarize(parse(scores_csv, "csv"))

    assert summary["row_count"] == 3
    assert summary["fields"] == ["name", "score"]
    assert summary["field_types"] == {"name": "string", "score": "number"}
    assert summary["numeric_fields"] == {
        "score": {
            "min": 85,
            "max": 95,
            "mean": 90,
            "median": 90,
            "has_negative": False,
            "has_decimal": False,
        }
    }

    name = summary["categorical_fields"]["name"]
    assert name["unique_count"] == 3
    assert name["most_common"] == {"value": "Alice", "count": 1}
    assert name["is_date"] is False
    assert name["avg_length"] == pytest.approx(13 / 3)
    assert name["distribution"] == {"Alice": 1, "Bob": 1, "Cara": 1}


def test_header_types_from_csv():
    summary = summarize(parse("a,b,c\n1,2.5,x\n3,4,y", "csv"))
    assert summary["field_types"] == {"a": "number", "b": "number", "c": "string"}
    assert summary["row_count"] == 2


def test_empty_records_summarize_to_empty_dict():
    assert summarize([]) == {}


def test_fields_match_field_types():
    records = [{"a": 1, "b": "x", "c": None}, {"a": 2, "b": "y", "c": None}]
    summary = summarize(records)

    assert list(summary["field_types"]) == summary["fields"]
    assert summary["field_types"]["c"] == "empty"
    assert "c" not in summary["numeric_fields"]
    assert "c" not in summary["categorical_fields"]


def test_field_set_comes_from_first_record():
    summary = summarize([{"a": 1}, {"a": 2, "b": 3}])
    assert summary["fields"] == ["a"]


def test_first_present_value_decides_type():
    summary = summarize([{"x": None}, {"x": "a"}, {"x": 5}, {"x": "b"}])

    assert summary["field_types"]["x"] == "string"
    assert summary["categorical_fields"]["x"]["unique_count"] == 2
    assert "x" not in summary["numeric_fields"]


def test_majority_inferrer_overrides_first_value():
    records = [{"x": "a"}, {"x": 1}, {"x": 2}]
    summary = summarize(records, MajorityTypeInferrer())

    assert summary["field_types"]["x"] == "number"
    assert summary["numeric_fields"]["x"]["min"] == 1
    assert summary["numeric_fields"]["x"]["max"] == 2


def test_nan_counts_as_missing():
    summary = summarize([{"a": float("nan")}, {"a": 2}, {"a": 4}])
    assert summary["numeric_fields"]["a"]["min"] == 2
    assert summary["numeric_fields"]["a"]["mean"] == 3


def test_booleans_and_objects_get_no_statistics():
    summary = summarize([{"flag": True, "meta": {"k": 1}}])

    assert summary["field_types"] == {"flag": "boolean", "meta": "object"}
    assert summary["numeric_fields"] == {}
    assert summary["categorical_fields"] == {}


def test_records_not_mutated():
    records = [{"a": 3, "b": "x"}, {"a": None, "b": "y"}]
    original = copy.deepcopy(records)
    summarize(records)
    assert records == original


class TestNumeric:
    def test_median_even(self):
        assert calculate_median([4, 1, 3, 2]) == 2.5

    def test_median_odd(self):
        assert calculate_median([3, 1, 2]) == 2

    def test_flags(self):
        stats = summarize_numeric([-1, 2.5, 4])
        assert stats["has_negative"] is True
        assert stats["has_decimal"] is True
        assert stats["min"] == -1
        assert stats["max"] == 4

    def test_integral_floats_are_not_decimal(self):
        assert summarize_numeric([1.0, 2.0])["has_decimal"] is False

    def test_integers_beyond_float_range(self):
        huge = int("9" * 400)
        records = parse(f"n\n{huge}\n-{huge}\n1", "csv")
        stats = summarize(records)["numeric_fields"]["n"]

        assert stats["max"] == huge
        assert stats["min"] == -huge
        assert stats["has_decimal"] is False
        assert stats["has_negative"] is True
        assert stats["median"] == 1


class TestCategorical:
    def test_distribution_at_cutoff(self):
        values = [f"v{i}" for i in range(20)]
        assert "distribution" in summarize_categorical(values)

    def test_no_distribution_above_cutoff(self):
        values = [f"v{i}" for i in range(21)]
        stats = summarize_categorical(values)
        assert "distribution" not in stats
        assert stats["unique_count"] == 21

    def test_custom_cutoff(self):
        assert "distribution" not in summarize_categorical(["a", "b", "c"], distribution_cutoff=2)

    def test_most_common_tie_goes_to_first_seen(self):
        assert find_most_common(["b", "a", "a", "b"]) == {"value": "b", "count": 2}

    def test_most_common_empty(self):
        assert find_most_common([]) == {"value": None, "count": 0}


class TestDates:
    def test_iso_dates(self):
        assert summarize_categorical(["2023-01-15", "2023-02-20"])["is_date"] is True

    def test_shape_without_valid_date(self):
        assert summarize_categorical(["99-99-9999"])["is_date"] is False

    @pytest.mark.parametrize("value", ["2023-01-15", "01-15-2023", "1/5/2023", "2023/12/31"])
    def test_supported_shapes(self, value):
        assert is_date_string(value)

    @pytest.mark.parametrize("value", ["2023-02-30", "15/01/2023", "Jan 5 2023", "2023-01-15T10:00"])
    def test_rejected(self, value):
        assert not is_date_string(value)

    def test_one_non_date_spoils_the_field(self):
        assert summarize_categorical(["2023-01-15", "soon"])["is_date"] is False


class TestTypeInference:
    @pytest.mark.parametrize(
        "value, expected",
        [(1, "number"), (2.5, "number"), ("x", "string"), (False, "boolean"), (None, "null"), ([1], "object")],
    )
    def test_value_type_name(self, value, expected):
        assert value_type_name(value) == expected

    def test_empty_field(self):
        assert FirstValueInferrer().infer([]) == "empty"
        assert MajorityTypeInferrer().infer([]) == "empty"

    def test_majority_tie_goes_to_first_type(self):
        assert MajorityTypeInferrer().infer(["a", 1]) == "string"

    def test_lookup(self):
        assert isinstance(get_inferrer("majority"), MajorityTypeInferrer)
        with pytest.raises(ValueError):
            get_inferrer("vote")
