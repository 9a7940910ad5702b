"""
Storage package for the dataset ingestion engine

- GeoJSON persistence tiers and the fallback chain (geojson_store)
- Supabase client wrapper (supabase_integration)
- Processing job records (repositories)
"""

from .geojson_store import (
    FallbackGeoJSONStore,
    GeoJSONStore,
    KeyValueTier,
    ObjectStoreTier,
    StorageCapacityError,
    create_geojson_store,
)

__all__ = [
    "FallbackGeoJSONStore",
    "GeoJSONStore",
    "KeyValueTier",
    "ObjectStoreTier",
    "StorageCapacityError",
    "create_geojson_store",
]
