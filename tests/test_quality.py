"""Tests for the data quality checks."""

import pytest

from ingestion.quality import (
    assess_quality,
    calculate_missing_values,
    detect_type_inconsistencies,
    find_duplicate_records,
)


def test_missing_values_over_union_of_keys():
    records = [{"a": 1, "b": ""}, {"a": None}, {"a": 3, "b": "x", "c": 1}, {"a": 4, "b": "y"}]
    missing = calculate_missing_values(records)

    assert missing["a"] == pytest.approx(25.0)
    assert missing["b"] == pytest.approx(50.0)
    assert missing["c"] == pytest.approx(75.0)


def test_type_counts():
    counts = detect_type_inconsistencies([{"a": 1}, {"a": "x"}, {"a": 2}, {"a": None}])
    assert counts["a"] == {"number": 2, "string": 1, "null": 1}


def test_duplicates():
    records = [{"a": 1, "b": "x"}, {"a": 1, "b": "x"}, {"a": 2, "b": "x"}, {"a": 1, "b": "x"}]
    assert find_duplicate_records(records) == 2


def test_duplicates_of_empty_rows():
    assert find_duplicate_records([{}, {}, {}]) == 2


def test_assess_quality():
    report = assess_quality([{"a": 1, "b": "x"}, {"a": "one", "b": None}, {"a": 1, "b": "x"}])

    assert report["row_count"] == 3
    assert report["inconsistent_fields"] == ["a"]
    assert report["duplicate_records"] == 1
    assert report["missing_values"]["b"] == pytest.approx(100 / 3)


def test_empty_input():
    assert assess_quality([]) == {}
    assert calculate_missing_values([]) == {}
    assert detect_type_inconsistencies([]) == {}
    assert find_duplicate_records([]) == 0
