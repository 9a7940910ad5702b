"""
statistics.py - Per-field summary statistics for parsed datasets

Builds the dataset summary attached to a processing job:

    {
        "row_count": 3,
        "fields": ["name", "score"],
        "field_types": {"name": "string", "score": "number"},
        "numeric_fields": {"score": {"min": 85, "max": 95, ...}},
        "categorical_fields": {"name": {"unique_count": 3, ...}},
    }

An empty record list summarizes to {} (no row_count key). Callers branch on
that shape to fall back to sample data.
"""

import math
import re
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd
from loguru import logger

from .type_inference import (
    NUMBER,
    STRING,
    FieldTypeInferrer,
    FirstValueInferrer,
    is_missing,
    value_type_name,
)

DEFAULT_DISTRIBUTION_CUTOFF = 20

# Month-first for the non-ISO shapes, matching how browsers read them
DATE_FORMATS = [
    (re.compile(r"^\d{4}-\d{1,2}-\d{1,2}$"), "%Y-%m-%d"),
    (re.compile(r"^\d{1,2}-\d{1,2}-\d{4}$"), "%m-%d-%Y"),
    (re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$"), "%m/%d/%Y"),
    (re.compile(r"^\d{4}/\d{1,2}/\d{1,2}$"), "%Y/%m/%d"),
]


def is_date_string(value: str) -> bool:
    """True when the string has a known date shape and is a real calendar date."""
    for pattern, date_format in DATE_FORMATS:
        if not pattern.match(value):
            continue
        try:
            datetime.strptime(value, date_format)
            return True
        except ValueError:
            continue
    return False


def _as_float(value: float) -> float:
    try:
        return float(value)
    except OverflowError:
        # Integers beyond float range
        return math.inf if value > 0 else -math.inf


def calculate_median(numbers: Sequence[float]) -> float:
    """Median; mean of the two middle values for an even count."""
    return float(pd.Series([_as_float(number) for number in numbers], dtype=float).median())


def find_most_common(values: Sequence[str]) -> Dict[str, Any]:
    """Most frequent value and its count. Ties go to the value encountered first."""
    if not values:
        return {"value": None, "count": 0}
    value, count = Counter(values).most_common(1)[0]
    return {"value": value, "count": count}


def _native(value: Any) -> Any:
    """Unwrap numpy scalars so summaries serialize cleanly."""
    return value.item() if hasattr(value, "item") else value


def summarize_numeric(values: Sequence[float]) -> Dict[str, Any]:
    """Min/max/mean/median plus sign and fraction flags for numeric values."""
    series = pd.Series(list(values))
    floats = pd.Series([_as_float(value) for value in values], dtype=float)
    return {
        "min": _native(series.min()),
        "max": _native(series.max()),
        "mean": float(floats.mean()),
        "median": float(floats.median()),
        "has_negative": bool((series < 0).any()),
        "has_decimal": any(not isinstance(value, int) and not float(value).is_integer() for value in values),
    }


def summarize_categorical(
    values: Sequence[str], distribution_cutoff: int = DEFAULT_DISTRIBUTION_CUTOFF
) -> Dict[str, Any]:
    """Cardinality, mode, date flag, average length and (small) distribution."""
    counts = Counter(values)
    stats: Dict[str, Any] = {
        "unique_count": len(counts),
        "most_common": find_most_common(values),
        "is_date": all(is_date_string(value) for value in values),
        "avg_length": sum(len(value) for value in values) / len(values),
    }

    if len(counts) <= distribution_cutoff:
        stats["distribution"] = dict(counts)

    return stats


def summarize(
    records: Sequence[Mapping[str, Any]],
    inferrer: Optional[FieldTypeInferrer] = None,
    distribution_cutoff: int = DEFAULT_DISTRIBUTION_CUTOFF,
) -> Dict[str, Any]:
    """Summarize every field of a record list.

    Args:
        records: Parsed records; the first record's keys define the field set
        inferrer: Field type strategy, first-present-value by default
        distribution_cutoff: Max distinct values for which a distribution is kept

    Returns:
        Dataset summary dict, or {} for an empty record list
    """
    if not records:
        return {}

    inferrer = inferrer or FirstValueInferrer()
    fields: List[str] = list(records[0].keys())

    summary: Dict[str, Any] = {
        "row_count": len(records),
        "fields": fields,
        "field_types": {},
        "numeric_fields": {},
        "categorical_fields": {},
    }

    for field in fields:
        present = [row.get(field) for row in records if not is_missing(row.get(field))]
        field_type = inferrer.infer(present)
        summary["field_types"][field] = field_type

        if field_type == NUMBER:
            numeric_values = [value for value in present if value_type_name(value) == NUMBER]
            if numeric_values:
                summary["numeric_fields"][field] = summarize_numeric(numeric_values)
        elif field_type == STRING:
            string_values = [value for value in present if isinstance(value, str)]
            if string_values:
                summary["categorical_fields"][field] = summarize_categorical(
                    string_values, distribution_cutoff
                )

    logger.debug(
        f"  📊 Summarized {len(fields)} fields over {len(records):,} rows "
        f"({len(summary['numeric_fields'])} numeric, "
        f"{len(summary['categorical_fields'])} categorical)"
    )

    return summary
