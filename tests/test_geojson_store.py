"""Tests for the GeoJSON storage tiers and the fallback chain."""

import json

import pytest

from conftest import feature_collection, line, make_feature, point
from ingestion.geojson_processor import serialized_size
from storage.geojson_store import (
    FallbackGeoJSONStore,
    GeoJSONStore,
    KeyValueTier,
    ObjectStoreTier,
    create_geojson_store,
)


@pytest.fixture
def small_doc():
    return feature_collection([make_feature(point(1, 2), name="a")])


@pytest.fixture
def large_doc():
    return feature_collection([make_feature(line(60), n=i) for i in range(200)])


class TestObjectStoreTier:
    def test_round_trip(self, sqlite_path, small_doc):
        tier = ObjectStoreTier(sqlite_path)
        assert tier.store("42", small_doc) is True
        assert tier.retrieve("42") == small_doc

    def test_persists_across_instances(self, sqlite_path, small_doc):
        ObjectStoreTier(sqlite_path).store("42", small_doc)
        assert ObjectStoreTier(sqlite_path).retrieve("42") == small_doc

    def test_overwrite_last_writer_wins(self, small_doc, large_doc):
        tier = ObjectStoreTier()
        tier.store("42", small_doc)
        tier.store("42", large_doc)
        assert tier.retrieve("42") == large_doc
        assert tier.usage()["count"] == 1

    def test_missing_key(self):
        assert ObjectStoreTier().retrieve("nope") is None

    def test_quota_exceeded_returns_false(self, small_doc, large_doc):
        tier = ObjectStoreTier(capacity_bytes=serialized_size(small_doc) + 10)

        assert tier.store("small", small_doc) is True
        assert tier.store("large", large_doc) is False
        assert tier.retrieve("large") is None

    def test_unserializable_returns_false(self):
        assert ObjectStoreTier().store("42", {"features": [object()]}) is False

    def test_unavailable_database(self, tmp_path, small_doc):
        tier = ObjectStoreTier(tmp_path / "missing_dir" / "store.db")

        assert tier.available is False
        assert tier.store("42", small_doc) is False
        assert tier.retrieve("42") is None
        tier.remove("42")
        assert tier.usage() == {"count": 0, "size_kb": 0}

    def test_remove_and_usage(self, small_doc, large_doc):
        tier = ObjectStoreTier()
        tier.store("a", small_doc)
        tier.store("b", large_doc)

        assert tier.usage() == {"count": 2, "size_kb": round((serialized_size(small_doc) + serialized_size(large_doc)) / 1024)}
        tier.remove("b")
        tier.remove("never-stored")
        assert tier.usage()["count"] == 1


class TestKeyValueTier:
    def test_round_trip_with_prefix(self, small_doc):
        tier = KeyValueTier(key_prefix="map_")
        assert tier.store("7", small_doc) is True
        assert tier.retrieve("7") == small_doc
        assert list(tier._items) == ["map_7"]

    def test_simplifies_above_threshold(self, large_doc):
        tier = KeyValueTier(simplify_threshold=1000)
        assert tier.store("7", large_doc) is True

        stored = tier.retrieve("7")
        assert len(stored["features"]) == 100
        assert len(stored["features"][0]["geometry"]["coordinates"]) == 13

    def test_below_threshold_stored_unmodified(self, large_doc):
        tier = KeyValueTier()
        tier.store("7", large_doc)
        assert tier.retrieve("7") == large_doc

    def test_quota_exceeded_returns_false(self, large_doc):
        tier = KeyValueTier(capacity_bytes=500, simplify_threshold=100)
        assert tier.store("7", large_doc) is False
        assert tier.retrieve("7") is None

    def test_quota_without_simplification(self, large_doc):
        tier = KeyValueTier(capacity_bytes=serialized_size(large_doc), simplify_threshold=1000, attempt_simplification=False)
        assert tier.store("7", large_doc) is False

    def test_file_persistence(self, tmp_path, small_doc):
        path = tmp_path / "kv.json"
        KeyValueTier(path).store("7", small_doc)

        assert json.loads(path.read_text())["geojson_7"]
        assert KeyValueTier(path).retrieve("7") == small_doc

        KeyValueTier(path).remove("7")
        assert KeyValueTier(path).retrieve("7") is None

    def test_bad_simplify_setting_returns_false(self, large_doc):
        tier = KeyValueTier(simplify_threshold=1000, simplify_options={"every_nth": 0})
        assert tier.store("7", large_doc) is False
        assert tier.retrieve("7") is None

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "kv.json"
        path.write_text("{broken")
        assert KeyValueTier(path).usage() == {"count": 0, "size_kb": 0}

    def test_unwritable_file_returns_false(self, tmp_path, small_doc):
        tier = KeyValueTier(tmp_path / "missing_dir" / "kv.json")
        assert tier.store("7", small_doc) is False
        assert tier.retrieve("7") is None

    def test_corrupt_value_returns_none(self):
        tier = KeyValueTier()
        tier._items["geojson_7"] = "{oops"
        assert tier.retrieve("7") is None


class RejectingTier(GeoJSONStore):
    name = "rejecting"

    def __init__(self):
        self.attempts = 0

    def store(self, key, geojson):
        self.attempts += 1
        return False

    def retrieve(self, key):
        return None

    def remove(self, key):
        pass

    def usage(self):
        return {"count": 0, "size_kb": 0}


class TestFallback:
    def test_first_tier_preferred(self, small_doc):
        first, second = ObjectStoreTier(), KeyValueTier()
        store = FallbackGeoJSONStore([first, second])

        assert store.store("1", small_doc) is True
        assert first.retrieve("1") == small_doc
        assert second.retrieve("1") is None

    def test_falls_back_when_first_tier_full(self, large_doc):
        first = ObjectStoreTier(capacity_bytes=100)
        second = KeyValueTier(simplify_threshold=1000)
        store = FallbackGeoJSONStore([first, second])

        assert store.store("1", large_doc) is True
        assert first.retrieve("1") is None
        assert len(store.retrieve("1")["features"]) == 100

    def test_overwrite_in_second_tier_replaces_first_tier_copy(self, small_doc, large_doc):
        first = ObjectStoreTier(capacity_bytes=serialized_size(small_doc) + 10)
        second = KeyValueTier()
        store = FallbackGeoJSONStore([first, second])

        assert store.store("1", small_doc) is True
        assert store.store("1", large_doc) is True

        assert first.retrieve("1") is None
        assert store.retrieve("1") == large_doc
        assert store.usage()["count"] == 1

    def test_overwrite_in_first_tier_clears_second_tier_copy(self, small_doc, large_doc):
        first = ObjectStoreTier(capacity_bytes=serialized_size(small_doc) + 10)
        second = KeyValueTier()
        store = FallbackGeoJSONStore([first, second])

        store.store("1", large_doc)
        store.store("1", small_doc)

        assert second.retrieve("1") is None
        assert store.retrieve("1") == small_doc

    def test_all_tiers_rejecting(self, small_doc):
        tiers = [RejectingTier(), RejectingTier()]
        store = FallbackGeoJSONStore(tiers)

        assert store.store("1", small_doc) is False
        assert [tier.attempts for tier in tiers] == [1, 1]
        assert store.retrieve("1") is None

    def test_remove_and_usage_cover_all_tiers(self, small_doc):
        first, second = ObjectStoreTier(), KeyValueTier()
        first.store("1", small_doc)
        second.store("2", small_doc)
        store = FallbackGeoJSONStore([first, second])

        assert store.usage()["count"] == 2
        store.remove("1")
        store.remove("2")
        assert store.usage()["count"] == 0


def test_create_from_config(config, small_doc):
    store = create_geojson_store(config)

    assert [tier.name for tier in store.tiers] == ["object_store", "key_value"]
    assert store.store("9", small_doc) is True
    assert create_geojson_store(config).retrieve("9") == small_doc
