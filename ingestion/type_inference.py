"""
Field type inference for untyped tabular records.

The analyzer asks an inferrer for the type category of a field given the
field's present (non-missing) values in row order.
"""

import math
from collections import Counter
from typing import Any, Sequence

NUMBER = "number"
STRING = "string"
BOOLEAN = "boolean"
OBJECT = "object"
NULL = "null"
EMPTY = "empty"


def is_missing(value: Any) -> bool:
    """None and float NaN both count as missing."""
    return value is None or (isinstance(value, float) and math.isnan(value))


def value_type_name(value: Any) -> str:
    """Type category of a single value."""
    if is_missing(value):
        return NULL
    # bool is an int subclass, check it first
    if isinstance(value, bool):
        return BOOLEAN
    if isinstance(value, (int, float)):
        return NUMBER
    if isinstance(value, str):
        return STRING
    return OBJECT


class FieldTypeInferrer:
    """Decides a field's type category from its present values."""

    name = "base"

    def infer(self, present_values: Sequence[Any]) -> str:
        raise NotImplementedError


class FirstValueInferrer(FieldTypeInferrer):
    """Type of the first present value wins. Fast, but blind to mixed columns."""

    name = "first_value"

    def infer(self, present_values: Sequence[Any]) -> str:
        if not present_values:
            return EMPTY
        return value_type_name(present_values[0])


class MajorityTypeInferrer(FieldTypeInferrer):
    """Most frequent type among present values; ties go to the type seen first."""

    name = "majority"

    def infer(self, present_values: Sequence[Any]) -> str:
        if not present_values:
            return EMPTY
        counts = Counter(value_type_name(value) for value in present_values)
        return counts.most_common(1)[0][0]


INFERRERS = {
    FirstValueInferrer.name: FirstValueInferrer,
    MajorityTypeInferrer.name: MajorityTypeInferrer,
}


def get_inferrer(name: str) -> FieldTypeInferrer:
    """Look up an inferrer by its config name."""
    try:
        return INFERRERS[name]()
    except KeyError:
        raise ValueError(f"Unknown type inference strategy: {name}") from None
