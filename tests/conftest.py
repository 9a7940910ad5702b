"""Shared fixtures for the ingestion test suite."""

from typing import Any, Dict, List, Optional

import pytest

from ingestion.config_loader import Config

SCORES_CSV = "name,score\nAlice,90\nBob,85\nCara,95"


def make_feature(geometry: Optional[Dict[str, Any]], **properties: Any) -> Dict[str, Any]:
    return {"type": "Feature", "properties": properties, "geometry": geometry}


def point(lon: float, lat: float) -> Dict[str, Any]:
    return {"type": "Point", "coordinates": [lon, lat]}


def line(count: int) -> Dict[str, Any]:
    return {"type": "LineString", "coordinates": [[float(i), float(i) / 2] for i in range(count)]}


def feature_collection(features: List[Dict[str, Any]], **extra: Any) -> Dict[str, Any]:
    return {"type": "FeatureCollection", "features": features, **extra}


class FakeDatabase:
    """In-memory stand-in for SupabaseDatabase: insert/update/select on dict rows."""

    def __init__(self, fail_on: Optional[str] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.fail_on = fail_on
        self.calls: List[tuple] = []
        self._next_id = 1

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_on == operation:
            raise ConnectionError(f"{operation} unavailable")

    def insert(self, table, data):
        self._maybe_fail("insert")
        rows = data if isinstance(data, list) else [data]
        stored = []
        for row in rows:
            row = {"id": self._next_id, "created_at": self._next_id, **row}
            self._next_id += 1
            self.tables.setdefault(table, []).append(row)
            stored.append(dict(row))
        self.calls.append(("insert", table, data))
        return stored

    def update(self, table, data, filters):
        self._maybe_fail("update")
        updated = []
        for row in self.tables.get(table, []):
            if all(row.get(key) == value for key, value in filters.items()):
                row.update(data)
                updated.append(dict(row))
        self.calls.append(("update", table, data, filters))
        return updated

    def select(self, table, columns=None, filters=None, order_by=None, descending=False, limit=None):
        self._maybe_fail("select")
        rows = list(self.tables.get(table, []))
        for key, condition in (filters or {}).items():
            if isinstance(condition, dict) and "like" in condition:
                prefix = condition["like"].rstrip("%")
                rows = [row for row in rows if str(row.get(key, "")).startswith(prefix)]
            else:
                rows = [row for row in rows if row.get(key) == condition]
        if order_by:
            rows.sort(key=lambda row: row.get(order_by), reverse=descending)
        self.calls.append(("select", table, filters))
        return rows[:limit] if limit else rows


@pytest.fixture
def scores_csv() -> str:
    return SCORES_CSV


@pytest.fixture
def config(tmp_path) -> Config:
    """Defaults, with storage pointed at the test's temporary directory."""
    return Config.from_dict(
        {
            "storage": {
                "object_store_path": str(tmp_path / "geojson_store.db"),
                "kv_store_path": str(tmp_path / "kv_store.json"),
            },
            "worker": {"enabled": False},
        }
    )


@pytest.fixture
def sqlite_path(tmp_path):
    return tmp_path / "geojson_store.db"


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()
