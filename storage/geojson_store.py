"""
geojson_store.py - Tiered persistence for map-ready GeoJSON

Two storage tiers keyed by dataset id:
- ObjectStoreTier: larger durable store (sqlite3), rows of {id, data, timestamp}
- KeyValueTier: small string key-value store, simplifies oversized documents
  before writing

Every tier turns write/read problems (capacity exceeded, unavailable
database, unserializable data) into a logged False/None instead of raising.
A single tier only reads back what was written to it; FallbackGeoJSONStore
composes tiers into one store that writes to the first tier that accepts the
document and reads from the first tier that has it.

Usage:
    from storage.geojson_store import create_geojson_store

    store = create_geojson_store(config)
    if not store.store("42", geojson):
        logger.warning("Map data unavailable offline")
"""

import contextlib
import json
import sqlite3
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from loguru import logger

from ingestion.config_loader import Config
from ingestion.geojson_processor import DEFAULT_SIZE_THRESHOLD, simplify_geojson

DEFAULT_KV_CAPACITY = 5_000_000
DEFAULT_KEY_PREFIX = "geojson_"


class StorageCapacityError(Exception):
    """A write would exceed the tier's capacity."""


def _serialize(document: Any) -> str:
    return json.dumps(document, separators=(",", ":"), ensure_ascii=False)


class GeoJSONStore:
    """Interface shared by storage tiers and the fallback chain."""

    name = "store"

    def store(self, key: str, geojson: Dict[str, Any]) -> bool:
        """Persist a document; False when it could not be stored."""
        raise NotImplementedError

    def retrieve(self, key: str) -> Optional[Dict[str, Any]]:
        """Stored document, or None when absent or unreadable."""
        raise NotImplementedError

    def remove(self, key: str) -> None:
        """Delete a document if present."""
        raise NotImplementedError

    def usage(self) -> Dict[str, int]:
        """Number of stored documents and their total size in KB."""
        raise NotImplementedError


class ObjectStoreTier(GeoJSONStore):
    """
    Durable object store backed by a sqlite3 table.

    Example:
        tier = ObjectStoreTier("geojson_store.db", capacity_bytes=50_000_000)
        tier.store("42", geojson)
    """

    name = "object_store"

    def __init__(self, db_path: Union[str, Path] = ":memory:", capacity_bytes: Optional[int] = None):
        """Open (or create) the store.

        Args:
            db_path: sqlite database file, ":memory:" for a process-local store
            capacity_bytes: Maximum total payload size, None for unbounded
        """
        self.db_path = str(db_path)
        self.capacity_bytes = capacity_bytes
        self._shared: Optional[sqlite3.Connection] = None
        self.available = True

        if self.db_path == ":memory:":
            self._shared = sqlite3.connect(":memory:", check_same_thread=False)

        try:
            with self._connect() as connection:
                with connection:
                    connection.execute(
                        """
                        CREATE TABLE IF NOT EXISTS geojson (
                            id TEXT PRIMARY KEY,
                            data TEXT NOT NULL,
                            timestamp INTEGER NOT NULL
                        )
                        """
                    )
            logger.debug(f"🗄️ GeoJSON object store ready at {self.db_path}")
        except sqlite3.Error as e:
            self.available = False
            logger.warning(f"⚠️ GeoJSON object store unavailable ({self.db_path}): {e}")

    def _connect(self):
        if self._shared is not None:
            return contextlib.nullcontext(self._shared)
        return contextlib.closing(sqlite3.connect(self.db_path))

    def _check_capacity(self, connection: sqlite3.Connection, key: str, size: int) -> None:
        if self.capacity_bytes is None:
            return
        (used,) = connection.execute(
            "SELECT COALESCE(SUM(LENGTH(data)), 0) FROM geojson WHERE id != ?", (key,)
        ).fetchone()
        if used + size > self.capacity_bytes:
            raise StorageCapacityError(
                f"{size:,} bytes would exceed capacity ({used:,}/{self.capacity_bytes:,} used)"
            )

    def store(self, key: str, geojson: Dict[str, Any]) -> bool:
        if not self.available:
            return False

        try:
            payload = _serialize(geojson)
            with self._connect() as connection:
                self._check_capacity(connection, key, len(payload))
                with connection:
                    connection.execute(
                        "INSERT OR REPLACE INTO geojson (id, data, timestamp) VALUES (?, ?, ?)",
                        (key, payload, int(time.time() * 1000)),
                    )
        except StorageCapacityError as e:
            logger.warning(f"⚠️ Object store full, could not store GeoJSON {key}: {e}")
            return False
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.warning(f"⚠️ Failed to store GeoJSON {key} in object store: {e}")
            return False

        logger.debug(f"  💾 Stored GeoJSON {key} in object store ({len(payload):,} bytes)")
        return True

    def retrieve(self, key: str) -> Optional[Dict[str, Any]]:
        if not self.available:
            return None

        try:
            with self._connect() as connection:
                row = connection.execute("SELECT data FROM geojson WHERE id = ?", (key,)).fetchone()
            return json.loads(row[0]) if row else None
        except (sqlite3.Error, json.JSONDecodeError) as e:
            logger.warning(f"⚠️ Error retrieving GeoJSON {key} from object store: {e}")
            return None

    def remove(self, key: str) -> None:
        if not self.available:
            return

        try:
            with self._connect() as connection:
                with connection:
                    connection.execute("DELETE FROM geojson WHERE id = ?", (key,))
        except sqlite3.Error as e:
            logger.error(f"Error clearing GeoJSON {key} from object store: {e}")

    def usage(self) -> Dict[str, int]:
        if not self.available:
            return {"count": 0, "size_kb": 0}

        try:
            with self._connect() as connection:
                count, total = connection.execute(
                    "SELECT COUNT(*), COALESCE(SUM(LENGTH(data)), 0) FROM geojson"
                ).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Error calculating object store usage: {e}")
            return {"count": 0, "size_kb": 0}

        return {"count": count, "size_kb": round(total / 1024)}


class KeyValueTier(GeoJSONStore):
    """
    Small string key-value store, kept in memory or mirrored to a JSON file.

    Documents whose serialization exceeds simplify_threshold are simplified
    before writing. Capacity counts key and value characters.
    """

    name = "key_value"

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        capacity_bytes: int = DEFAULT_KV_CAPACITY,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        simplify_threshold: int = DEFAULT_SIZE_THRESHOLD,
        attempt_simplification: bool = True,
        simplify_options: Optional[Dict[str, int]] = None,
    ):
        """Open the store.

        Args:
            path: JSON file mirroring the store, None for memory only
            capacity_bytes: Maximum total size of keys and values
            key_prefix: Prefix added to every dataset id
            simplify_threshold: Serialized size above which documents are simplified
            attempt_simplification: If False, oversized documents are written as-is
            simplify_options: max_features/every_nth/max_multipoint overrides
        """
        self.path = Path(path) if path else None
        self.capacity_bytes = capacity_bytes
        self.key_prefix = key_prefix
        self.simplify_threshold = simplify_threshold
        self.attempt_simplification = attempt_simplification
        self.simplify_options = simplify_options or {}
        self._items: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not self.path or not self.path.exists():
            return {}
        try:
            items = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"⚠️ Could not read key-value store {self.path}, starting empty: {e}")
            return {}
        return {str(key): str(value) for key, value in items.items()} if isinstance(items, dict) else {}

    def _persist(self) -> None:
        if self.path:
            self.path.write_text(json.dumps(self._items), encoding="utf-8")

    def _storage_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def store(self, key: str, geojson: Dict[str, Any]) -> bool:
        storage_key = self._storage_key(key)
        previous = self._items.get(storage_key)

        try:
            payload = _serialize(geojson)
            if len(payload) > self.simplify_threshold and self.attempt_simplification:
                logger.info(f"  ✂️ GeoJSON {key} is {len(payload):,} chars, simplifying for key-value store")
                payload = _serialize(simplify_geojson(geojson, **self.simplify_options))

            used = sum(len(k) + len(v) for k, v in self._items.items() if k != storage_key)
            if used + len(storage_key) + len(payload) > self.capacity_bytes:
                raise StorageCapacityError(
                    f"{len(payload):,} chars would exceed capacity ({used:,}/{self.capacity_bytes:,} used)"
                )

            self._items[storage_key] = payload
            self._persist()
        except StorageCapacityError as e:
            logger.warning(f"⚠️ Key-value store full, could not store GeoJSON {key}: {e}")
            return False
        except (OSError, TypeError, ValueError) as e:
            if previous is None:
                self._items.pop(storage_key, None)
            else:
                self._items[storage_key] = previous
            logger.warning(f"⚠️ Failed to store GeoJSON {key} in key-value store: {e}")
            return False

        logger.debug(f"  💾 Stored GeoJSON {key} in key-value store ({len(payload):,} chars)")
        return True

    def retrieve(self, key: str) -> Optional[Dict[str, Any]]:
        raw = self._items.get(self._storage_key(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"⚠️ Failed to retrieve GeoJSON {key} from key-value store: {e}")
            return None

    def remove(self, key: str) -> None:
        if self._items.pop(self._storage_key(key), None) is None:
            return
        try:
            self._persist()
        except OSError as e:
            logger.error(f"Error clearing GeoJSON {key} from key-value store: {e}")

    def usage(self) -> Dict[str, int]:
        sizes = [len(value) for key, value in self._items.items() if key.startswith(self.key_prefix)]
        return {"count": len(sizes), "size_kb": round(sum(sizes) / 1024)}


class FallbackGeoJSONStore(GeoJSONStore):
    """
    Tiers tried in order: writes go to the first tier that accepts the
    document, reads come from the first tier holding it.

    A successful write clears the key from every other tier, so a key lives
    in exactly one tier and reads always see the last accepted write.
    """

    name = "fallback"

    def __init__(self, tiers: Iterable[GeoJSONStore]):
        self.tiers: List[GeoJSONStore] = list(tiers)

    def store(self, key: str, geojson: Dict[str, Any]) -> bool:
        for tier in self.tiers:
            if tier.store(key, geojson):
                for other in self.tiers:
                    if other is not tier:
                        other.remove(key)
                return True
            logger.info(f"  🔄 {tier.name} rejected GeoJSON {key}, trying next tier")

        logger.error(f"❌ Could not store GeoJSON {key} in any storage tier")
        return False

    def retrieve(self, key: str) -> Optional[Dict[str, Any]]:
        for tier in self.tiers:
            geojson = tier.retrieve(key)
            if geojson is not None:
                return geojson
        return None

    def remove(self, key: str) -> None:
        for tier in self.tiers:
            tier.remove(key)

    def usage(self) -> Dict[str, int]:
        usages = [tier.usage() for tier in self.tiers]
        return {
            "count": sum(usage["count"] for usage in usages),
            "size_kb": sum(usage["size_kb"] for usage in usages),
        }


def create_geojson_store(config: Optional[Config] = None) -> FallbackGeoJSONStore:
    """Build the object-store → key-value fallback chain from config."""
    config = config or Config()

    object_store = ObjectStoreTier(
        config.get_storage_setting("object_store_path"),
        capacity_bytes=config.get_storage_setting("object_store_capacity"),
    )
    key_value = KeyValueTier(
        config.get_storage_setting("kv_store_path"),
        capacity_bytes=config.get_storage_setting("kv_store_capacity"),
        key_prefix=config.get_storage_setting("key_prefix"),
        simplify_threshold=config.get_geojson_setting("size_threshold"),
        simplify_options={
            "max_features": config.get_geojson_setting("max_features"),
            "every_nth": config.get_geojson_setting("every_nth"),
            "max_multipoint": config.get_geojson_setting("max_multipoint"),
        },
    )
    return FallbackGeoJSONStore([object_store, key_value])
