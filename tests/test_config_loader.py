"""Tests for configuration loading and defaults."""

import pytest

from ingestion.config_loader import Config, load_config


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("INGEST_CONFIG_PATH", raising=False)


def test_defaults_without_file():
    config = Config()

    assert config.config_path is None
    assert config.get("geojson.max_features") == 100
    assert config.get_parser_setting("csv_mode") == "rfc4180"
    assert config.get_analysis_setting("distribution_cutoff") == 20
    assert config.get_visualization_setting("max_points") == 20
    assert config.get_storage_setting("key_prefix") == "geojson_"
    assert config.get_storage_setting("object_store_capacity") is None


def test_file_values_override_defaults(tmp_path):
    path = tmp_path / "custom.yaml"
    path.write_text("geojson:\n  every_nth: 10\nparser:\n  csv_mode: simple\n")
    config = Config(path)

    assert config.get_geojson_setting("every_nth") == 10
    assert config.get_geojson_setting("max_features") == 100
    assert config.get_parser_setting("csv_mode") == "simple"


def test_config_yaml_in_working_directory(tmp_path):
    (tmp_path / "config.yaml").write_text("visualization:\n  max_points: 5\n")
    assert Config().get_visualization_setting("max_points") == 5


def test_environment_variable(tmp_path, monkeypatch):
    path = tmp_path / "elsewhere.yaml"
    path.write_text("analysis:\n  type_inference: majority\n")
    monkeypatch.setenv("INGEST_CONFIG_PATH", str(path))

    assert Config().get_analysis_setting("type_inference") == "majority"


def test_null_falls_back_to_default(tmp_path):
    path = tmp_path / "nulls.yaml"
    path.write_text("storage:\n  kv_store_capacity: null\n")
    assert Config(path).get_storage_setting("kv_store_capacity") == 5_000_000


def test_empty_file(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert Config(path).get("worker.enabled") is True


def test_false_value_is_kept():
    assert Config.from_dict({"worker": {"enabled": False}}).get("worker.enabled") is False


def test_unknown_key_returns_default():
    config = Config.from_dict({})
    assert config.get("nope.missing") is None
    assert config.get("nope.missing", "fallback") == "fallback"


def test_missing_explicit_file():
    with pytest.raises(FileNotFoundError):
        load_config("does-not-exist.yaml")


def test_print_summary_runs():
    Config().print_config_summary()
