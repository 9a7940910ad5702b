"""
geojson_processor.py - GeoJSON analysis, enhancement and size-bounded simplification

Operations on plain GeoJSON dicts (no geometry engine involved):
1. Loading and structural validation (FeatureCollection or single Feature)
2. Flattening feature properties into records for the statistics analyzer
3. Summary metadata: feature count, geometry types, property fields, bounds
4. Numeric property ranges for choropleth coloring (enhance, in place)
5. Lossy simplification to fit size-constrained storage
6. Time-index filtering for time-series maps

Coordinate nesting depth by geometry type:
    Point=0, LineString/MultiPoint=1, Polygon/MultiLineString=2, MultiPolygon=3
"""

import json
import math
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

from loguru import logger

from .tabular_parser import DatasetParseError, Record, decode_text, parse_number

GEOMETRY_DEPTH = {
    "Point": 0,
    "LineString": 1,
    "MultiPoint": 1,
    "Polygon": 2,
    "MultiLineString": 2,
    "MultiPolygon": 3,
}

ENERGY_KEYWORDS = ("electricity", "energy", "power")
ENERGY_PRIORITY_FIELDS = ["electricity", "consumption", "power", "energy", "kwh", "mwh", "watts"]
DEFAULT_PRIORITY_FIELDS = ["value", "data"]

DEFAULT_MAX_FEATURES = 100
DEFAULT_EVERY_NTH = 5
DEFAULT_MAX_MULTIPOINT = 50
DEFAULT_SIZE_THRESHOLD = 5_000_000


def has_feature_list(geojson: Any) -> bool:
    """True for a dict carrying a list of features."""
    return isinstance(geojson, dict) and isinstance(geojson.get("features"), list)


def load_geojson(raw: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
    """
    Load GeoJSON from raw text, bytes or an already-decoded dict.

    Args:
        raw: GeoJSON document

    Returns:
        FeatureCollection dict (a single Feature is wrapped)

    Raises:
        DatasetParseError: Malformed JSON or not a feature document
    """
    if isinstance(raw, dict):
        document = raw
    else:
        try:
            document = json.loads(decode_text(raw))
        except json.JSONDecodeError as e:
            logger.error(f"❌ Malformed GeoJSON: {e}")
            raise DatasetParseError(f"Malformed GeoJSON: {e}") from e

    if isinstance(document, dict) and document.get("type") == "Feature":
        logger.debug("  🔄 Wrapping single Feature in a FeatureCollection")
        return {"type": "FeatureCollection", "features": [document]}

    if not has_feature_list(document):
        raise DatasetParseError("Invalid GeoJSON format")

    return document


def _is_position(value: Any) -> bool:
    return (
        isinstance(value, (list, tuple))
        and len(value) >= 2
        and all(isinstance(axis, (int, float)) and not isinstance(axis, bool) for axis in value[:2])
    )


def _walk_depth(coordinates: Any, depth: int) -> Iterator[Sequence[float]]:
    if depth == 0:
        if _is_position(coordinates):
            yield coordinates
        return
    if not isinstance(coordinates, (list, tuple)):
        return
    for child in coordinates:
        yield from _walk_depth(child, depth - 1)


def _walk_any(coordinates: Any) -> Iterator[Sequence[float]]:
    if _is_position(coordinates):
        yield coordinates
    elif isinstance(coordinates, (list, tuple)):
        for child in coordinates:
            yield from _walk_any(child)


def iter_positions(geometry: Optional[Dict[str, Any]]) -> Iterator[Sequence[float]]:
    """Yield every [lon, lat, ...] position of a geometry."""
    if not isinstance(geometry, dict):
        return

    geometry_type = geometry.get("type")
    if geometry_type == "GeometryCollection":
        for member in geometry.get("geometries") or []:
            yield from iter_positions(member)
        return

    coordinates = geometry.get("coordinates")
    if geometry_type in GEOMETRY_DEPTH:
        yield from _walk_depth(coordinates, GEOMETRY_DEPTH[geometry_type])
    else:
        yield from _walk_any(coordinates)


def calculate_bounds(geojson: Dict[str, Any]) -> Dict[str, Optional[float]]:
    """Longitude/latitude extent over all feature geometries."""
    longitudes: List[float] = []
    latitudes: List[float] = []

    for feature in geojson.get("features") or []:
        for position in iter_positions((feature or {}).get("geometry")):
            longitudes.append(position[0])
            latitudes.append(position[1])

    if not longitudes:
        return {
            "min_longitude": None,
            "max_longitude": None,
            "min_latitude": None,
            "max_latitude": None,
        }

    return {
        "min_longitude": min(longitudes),
        "max_longitude": max(longitudes),
        "min_latitude": min(latitudes),
        "max_latitude": max(latitudes),
    }


def features_to_records(geojson: Dict[str, Any]) -> List[Record]:
    """
    Flatten features into analysis-friendly records.

    Each record is the feature's properties plus geometry_type and
    coordinates_count; Point features also get longitude/latitude.

    Args:
        geojson: FeatureCollection dict

    Returns:
        One record per feature
    """
    if not has_feature_list(geojson):
        return []

    records: List[Record] = []
    for feature in geojson["features"]:
        feature = feature or {}
        record: Record = dict(feature.get("properties") or {})
        geometry = feature.get("geometry")

        if isinstance(geometry, dict):
            record["geometry_type"] = geometry.get("type")
            coordinates = geometry.get("coordinates")
            if not coordinates:
                record["coordinates_count"] = 0
            elif isinstance(coordinates[0], (list, tuple)):
                record["coordinates_count"] = len(coordinates)
            else:
                record["coordinates_count"] = 1

            if geometry.get("type") == "Point" and _is_position(coordinates):
                record["longitude"] = coordinates[0]
                record["latitude"] = coordinates[1]
        else:
            record["geometry_type"] = None
            record["coordinates_count"] = 0

        records.append(record)

    return records


def summarize_geojson(geojson: Dict[str, Any]) -> Dict[str, Any]:
    """Feature count, geometry types, property fields and bounds."""
    features = geojson.get("features") or []

    geometry_types: List[str] = []
    for feature in features:
        geometry = (feature or {}).get("geometry")
        geometry_type = geometry.get("type") if isinstance(geometry, dict) else None
        if geometry_type and geometry_type not in geometry_types:
            geometry_types.append(geometry_type)

    first_properties = (features[0] or {}).get("properties") if features else None

    return {
        "feature_count": len(features),
        "geometry_types": geometry_types,
        "property_fields": list((first_properties or {}).keys()),
        "bounds": calculate_bounds(geojson),
    }


def _numeric_property(value: Any) -> Optional[float]:
    """Numeric value of a property: finite numbers and strings holding one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = parse_number(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return value
    return None


def _track_range(numeric_fields: Dict[str, Dict[str, float]], field: str, value: Any) -> None:
    number = _numeric_property(value)
    if number is None:
        return
    if field not in numeric_fields:
        numeric_fields[field] = {"min": number, "max": number}
    else:
        numeric_fields[field]["min"] = min(numeric_fields[field]["min"], number)
        numeric_fields[field]["max"] = max(numeric_fields[field]["max"], number)


def priority_fields_for(category: Optional[str]) -> List[str]:
    """Fields scanned first for a dataset category."""
    lowered = (category or "").lower()
    if any(keyword in lowered for keyword in ENERGY_KEYWORDS):
        return ENERGY_PRIORITY_FIELDS + DEFAULT_PRIORITY_FIELDS
    return list(DEFAULT_PRIORITY_FIELDS)


def enhance_geojson(geojson: Dict[str, Any], category: Optional[str] = None) -> None:
    """
    Record min/max of every numeric property under metadata.numericFields.

    Mutates the document in place. Priority fields for the category are
    scanned before the remaining properties of each feature.

    Args:
        geojson: FeatureCollection dict
        category: Dataset category, e.g. "Electricity consumption"
    """
    if not has_feature_list(geojson):
        return

    priority_fields = priority_fields_for(category)
    numeric_fields: Dict[str, Dict[str, float]] = {}

    for feature in geojson["features"]:
        properties = (feature or {}).get("properties")
        if not properties:
            continue

        for field in priority_fields:
            if field in properties:
                _track_range(numeric_fields, field, properties[field])

        for key, value in properties.items():
            if key not in priority_fields:
                _track_range(numeric_fields, key, value)

    if not isinstance(geojson.get("metadata"), dict):
        geojson["metadata"] = {}
    geojson["metadata"]["numericFields"] = numeric_fields

    if category:
        geojson["metadata"]["category"] = category

    logger.debug(f"  🎨 Found {len(numeric_fields)} numeric properties for coloring")


def reduce_points(points: Sequence[Any], every_nth: int = DEFAULT_EVERY_NTH) -> List[Any]:
    """Keep the first and last point plus every nth point in between."""
    if every_nth < 1:
        raise ValueError(f"every_nth must be at least 1, got {every_nth}")
    if points is None:
        return points
    if len(points) <= 2:
        return list(points)

    last = len(points) - 1
    return [point for index, point in enumerate(points) if index in (0, last) or index % every_nth == 0]


def simplify_geometry(
    geometry: Optional[Dict[str, Any]],
    every_nth: int = DEFAULT_EVERY_NTH,
    max_multipoint: int = DEFAULT_MAX_MULTIPOINT,
) -> Optional[Dict[str, Any]]:
    """Point-reduce one geometry according to its type."""
    if not geometry:
        return geometry

    geometry_type = geometry.get("type")

    if geometry_type == "GeometryCollection":
        return {
            "type": geometry_type,
            "geometries": [
                simplify_geometry(member, every_nth, max_multipoint)
                for member in geometry.get("geometries") or []
            ],
        }

    coordinates = geometry.get("coordinates")
    if not coordinates:
        return {"type": geometry_type, "coordinates": coordinates}

    if geometry_type == "LineString":
        coordinates = reduce_points(coordinates, every_nth)
    elif geometry_type in ("Polygon", "MultiLineString"):
        coordinates = [reduce_points(part, every_nth) for part in coordinates]
    elif geometry_type == "MultiPolygon":
        coordinates = [[reduce_points(ring, every_nth) for ring in polygon] for polygon in coordinates]
    elif geometry_type == "MultiPoint":
        coordinates = list(coordinates[:max_multipoint])

    return {"type": geometry_type, "coordinates": coordinates}


def simplify_geojson(
    geojson: Dict[str, Any],
    max_features: int = DEFAULT_MAX_FEATURES,
    every_nth: int = DEFAULT_EVERY_NTH,
    max_multipoint: int = DEFAULT_MAX_MULTIPOINT,
) -> Dict[str, Any]:
    """
    Build a smaller copy of a document for size-constrained storage.

    Keeps the first max_features features and point-reduces their geometry.
    The input document is not modified.

    Args:
        geojson: FeatureCollection dict
        max_features: Hard cap on feature count (truncation, not sampling)
        every_nth: Stride for line and ring point reduction
        max_multipoint: Cap on MultiPoint positions

    Returns:
        Simplified FeatureCollection dict
    """
    if not has_feature_list(geojson):
        return geojson

    features = [
        {
            "type": (feature or {}).get("type", "Feature"),
            "properties": (feature or {}).get("properties"),
            "geometry": simplify_geometry((feature or {}).get("geometry"), every_nth, max_multipoint),
        }
        for feature in geojson["features"][:max_features]
    ]

    simplified: Dict[str, Any] = {"type": geojson.get("type"), "features": features}
    if "metadata" in geojson:
        simplified["metadata"] = geojson["metadata"]

    logger.debug(f"  ✂️ Simplified {len(geojson['features']):,} → {len(features):,} features")
    return simplified


def serialized_size(document: Any) -> int:
    """Length of the compact JSON serialization."""
    return len(json.dumps(document, separators=(",", ":"), ensure_ascii=False))


def prepare_for_storage(
    geojson: Dict[str, Any],
    threshold: int = DEFAULT_SIZE_THRESHOLD,
    max_features: int = DEFAULT_MAX_FEATURES,
    every_nth: int = DEFAULT_EVERY_NTH,
    max_multipoint: int = DEFAULT_MAX_MULTIPOINT,
) -> Dict[str, Any]:
    """Return the document unchanged when it fits, else its simplified copy."""
    size = serialized_size(geojson)
    if size <= threshold:
        return geojson

    logger.warning(f"⚠️ GeoJSON is {size / 1024 / 1024:.2f}MB, storing simplified version")
    return simplify_geojson(geojson, max_features, every_nth, max_multipoint)


def _has_time_properties(feature: Any) -> bool:
    properties = (feature or {}).get("properties")
    return bool(properties) and any(key in properties for key in ("timeIndex", "year", "date"))


def _matches_time_index(feature: Any, time_index: Any) -> bool:
    properties = (feature or {}).get("properties")
    if not properties:
        return True

    if "timeIndex" in properties:
        return properties["timeIndex"] == time_index
    if isinstance(properties.get("year"), list):
        return time_index in properties["year"]
    if isinstance(properties.get("date"), list):
        return time_index in properties["date"]

    return True


def filter_by_time_index(geojson: Dict[str, Any], time_index: Any = None) -> Dict[str, Any]:
    """
    Keep the features belonging to one time step.

    A feature matches when properties.timeIndex equals time_index, or its
    year/date list contains it. Features without time properties always pass.
    Without a time index, or without any temporal feature, the document is
    returned as-is.

    Args:
        geojson: FeatureCollection dict
        time_index: Time step to keep

    Returns:
        Filtered FeatureCollection dict (a new dict when filtering happened)
    """
    if not has_feature_list(geojson) or time_index is None:
        return geojson

    if not any(_has_time_properties(feature) for feature in geojson["features"]):
        return geojson

    features = [feature for feature in geojson["features"] if _matches_time_index(feature, time_index)]
    return {**geojson, "features": features}
