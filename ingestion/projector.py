"""
projector.py - Chart-ready {name, value} points from records or summaries

Generic charts take a short list of points:

    {"name": "Alice", "value": 90, "rawData": {...}}

An empty list means "not chartable" (no numeric field); callers fall back to
sample data instead of treating it as an error.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence

from .geojson_processor import features_to_records
from .type_inference import NUMBER, STRING, is_missing, value_type_name

DEFAULT_MAX_POINTS = 20
DEFAULT_MAX_CATEGORY_VALUES = 10

GEO_VALUE_HINTS = ["population", "density", "area", "count", "value"]
GEO_NAME_HINTS = ["name", "region", "country", "state", "province", "city", "district", "county"]
NAME_EXCLUDED_HINTS = ("lat", "lon", "geometry")


def _first_match(candidates: Sequence[str], hints: Sequence[str]) -> Optional[str]:
    for hint in hints:
        for candidate in candidates:
            if hint in candidate.lower():
                return candidate
    return None


def _is_geographic(records: Sequence[Mapping[str, Any]], category: Optional[str]) -> bool:
    if category and "geo" in category.lower():
        return True
    return any("latitude" in record or "lat" in record for record in records)


def _point_value(value: Any) -> float:
    if is_missing(value) or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0


def _coordinates(record: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    if record.get("latitude") is not None and record.get("longitude") is not None:
        return {"lat": record["latitude"], "lng": record["longitude"]}
    if record.get("lat") is not None:
        lng = record.get("lng") if record.get("lng") is not None else record.get("lon")
        if lng is not None:
            return {"lat": record["lat"], "lng": lng}
    return None


def project(
    records: Sequence[Mapping[str, Any]],
    category: Optional[str] = None,
    max_points: int = DEFAULT_MAX_POINTS,
) -> List[Dict[str, Any]]:
    """
    Project records onto {name, value, rawData} points.

    The value field is the alphabetically first numeric field of the first
    record and the name field the first string field (geographic datasets
    prefer population/density-like values and place-like names).

    Args:
        records: Parsed records
        category: Dataset category
        max_points: Maximum number of points

    Returns:
        Up to max_points points; [] when no numeric field exists
    """
    if not records:
        return []

    first = records[0]
    numeric_fields = sorted(key for key, value in first.items() if value_type_name(value) == NUMBER)
    name_candidates = sorted(
        key
        for key, value in first.items()
        if value_type_name(value) == STRING and not any(hint in key.lower() for hint in NAME_EXCLUDED_HINTS)
    )

    if not numeric_fields:
        return []

    value_field = numeric_fields[0]
    name_field = name_candidates[0] if name_candidates else None

    if _is_geographic(records, category):
        value_field = _first_match(numeric_fields, GEO_VALUE_HINTS) or value_field
        name_field = _first_match(name_candidates, GEO_NAME_HINTS) or name_field

    points: List[Dict[str, Any]] = []
    for index, record in enumerate(records[:max_points]):
        label = record.get(name_field) if name_field else None
        point: Dict[str, Any] = {
            "name": str(label) if label not in (None, "") else f"Item {index}",
            "value": _point_value(record.get(value_field)),
            "rawData": dict(record),
        }
        coordinates = _coordinates(record)
        if coordinates:
            point.update(coordinates)
        points.append(point)

    return points


def project_geojson(
    geojson: Dict[str, Any], category: Optional[str] = None, max_points: int = DEFAULT_MAX_POINTS
) -> List[Dict[str, Any]]:
    """Project the flattened feature properties of a GeoJSON document."""
    return project(features_to_records(geojson), category, max_points)


def project_summary(
    summary: Mapping[str, Any], max_category_values: int = DEFAULT_MAX_CATEGORY_VALUES
) -> List[Dict[str, Any]]:
    """
    Build points from a stored dataset summary when row data is unavailable.

    Numeric fields contribute their min, max and mean; categorical fields
    with a distribution contribute their most frequent values.

    Args:
        summary: Dataset summary as produced by statistics.summarize
        max_category_values: Top values taken from each distribution

    Returns:
        List of {name, value} points
    """
    points: List[Dict[str, Any]] = []

    for field, stats in (summary.get("numeric_fields") or {}).items():
        points.append({"name": f"{field} (min)", "value": stats["min"]})
        points.append({"name": f"{field} (max)", "value": stats["max"]})
        points.append({"name": f"{field} (avg)", "value": stats["mean"]})

    for field, stats in (summary.get("categorical_fields") or {}).items():
        distribution = stats.get("distribution")
        if not distribution:
            continue
        top_values = sorted(distribution.items(), key=lambda item: item[1], reverse=True)
        for value, count in top_values[:max_category_values]:
            points.append({"name": f"{field}: {value}", "value": count})

    return points
