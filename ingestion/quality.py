"""Data quality checks: missing values, mixed types and duplicate rows."""

from typing import Any, Dict, List, Mapping, Sequence

import pandas as pd

from .type_inference import NULL, value_type_name


def _to_frame(records: Sequence[Mapping[str, Any]]) -> pd.DataFrame:
    # Union of keys across rows; absent keys become NaN
    return pd.DataFrame.from_records([dict(row) for row in records])


def calculate_missing_values(records: Sequence[Mapping[str, Any]]) -> Dict[str, float]:
    """Percentage of missing values per field (null, absent or empty string)."""
    if not records:
        return {}

    frame = _to_frame(records)
    missing = frame.isna() | frame.apply(lambda column: column.map(lambda value: value == ""))
    return {str(column): float(missing[column].mean() * 100) for column in frame.columns}


def detect_type_inconsistencies(records: Sequence[Mapping[str, Any]]) -> Dict[str, Dict[str, int]]:
    """Count of each value type per field."""
    if not records:
        return {}

    frame = _to_frame(records)
    return {
        str(column): {
            type_name: int(count)
            for type_name, count in frame[column].map(value_type_name).value_counts(sort=False).items()
        }
        for column in frame.columns
    }


def find_duplicate_records(records: Sequence[Mapping[str, Any]]) -> int:
    """Number of rows identical to an earlier row."""
    if not records:
        return 0

    frame = _to_frame(records)
    if frame.shape[1] == 0:
        # Every row is {} and so identical to the first
        return len(records) - 1
    return int(frame.astype(str).duplicated().sum())


def assess_quality(records: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    """All quality checks in one report."""
    if not records:
        return {}

    type_counts = detect_type_inconsistencies(records)
    inconsistent_fields: List[str] = [
        field
        for field, counts in type_counts.items()
        if len([type_name for type_name in counts if type_name != NULL]) > 1
    ]

    return {
        "row_count": len(records),
        "missing_values": calculate_missing_values(records),
        "type_counts": type_counts,
        "inconsistent_fields": inconsistent_fields,
        "duplicate_records": find_duplicate_records(records),
    }
