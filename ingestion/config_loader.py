"""
Configuration Loader for the Dataset Ingestion Engine

This module provides a centralized way to load and access configuration
settings from a config.yaml file. Every setting has a built-in default so the
engine also runs without any config file at all.

Usage:
    from ingestion.config_loader import Config

    config = Config()
    cutoff = config.get_analysis_setting('distribution_cutoff')
    threshold = config.get('geojson.size_threshold')
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml  # type: ignore[import-untyped]
from loguru import logger


class Config:
    """Configuration manager for dataset ingestion."""

    # Default values that can be overridden in config
    DEFAULTS: Dict[str, Any] = {
        "parser": {
            "csv_mode": "rfc4180",
            "max_rows": 1000,
        },
        "analysis": {
            "distribution_cutoff": 20,
            "type_inference": "first_value",
        },
        "geojson": {
            "max_features": 100,
            "every_nth": 5,
            "max_multipoint": 50,
            "size_threshold": 5_000_000,
        },
        "visualization": {
            "max_points": 20,
            "max_category_values": 10,
        },
        "storage": {
            "object_store_path": "geojson_store.db",
            "object_store_capacity": None,
            "kv_store_path": None,
            "kv_store_capacity": 5_000_000,
            "key_prefix": "geojson_",
        },
        "worker": {
            "enabled": True,
            "max_workers": 1,
        },
        "supabase": {
            "processed_files_table": "processed_files",
        },
    }

    def __init__(self, config_file: Optional[Union[str, Path]] = None):
        """
        Initialize configuration manager.

        Args:
            config_file: Path to config file. If None, looks for:
                        1. Environment variable INGEST_CONFIG_PATH
                        2. config.yaml in current directory
                        Falls back to DEFAULTS when neither exists.
        """
        if config_file is None:
            env_config = os.environ.get("INGEST_CONFIG_PATH")
            if env_config and Path(env_config).exists():
                config_file = env_config
                logger.debug(f"Using config from environment: {config_file}")
            elif Path("config.yaml").exists():
                config_file = "config.yaml"

        self.data: Dict[str, Any] = {}
        self.config_path: Optional[Path] = None

        if config_file is None:
            logger.debug("No config.yaml found, using built-in defaults")
            return

        self.config_path = Path(config_file).resolve()
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        logger.debug(f"Loading config from: {self.config_path}")

        with open(self.config_path, "r") as f:
            self.data = yaml.safe_load(f) or {}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Build a config from an in-memory mapping (tests, embedding callers)."""
        config = cls.__new__(cls)
        config.data = data
        config.config_path = None
        return config

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation with intelligent defaults.

        Args:
            key_path: Dot-separated path to the configuration value
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key_path.split(".")

        value: Any = self.data
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                value = None
                break

        if value is None:
            value = self.DEFAULTS
            for key in keys:
                if isinstance(value, dict) and key in value:
                    value = value[key]
                else:
                    return default

        if value is None:
            return default

        return value

    def get_parser_setting(self, setting_key: str) -> Any:
        """Get parser setting with intelligent defaults."""
        return self.get(f"parser.{setting_key}")

    def get_analysis_setting(self, setting_key: str) -> Any:
        """Get analysis setting with intelligent defaults."""
        return self.get(f"analysis.{setting_key}")

    def get_geojson_setting(self, setting_key: str) -> Any:
        """Get GeoJSON simplification setting with intelligent defaults."""
        return self.get(f"geojson.{setting_key}")

    def get_visualization_setting(self, setting_key: str) -> Any:
        """Get visualization setting with intelligent defaults."""
        return self.get(f"visualization.{setting_key}")

    def get_storage_setting(self, setting_key: str) -> Any:
        """Get storage setting with intelligent defaults."""
        return self.get(f"storage.{setting_key}")

    def print_config_summary(self) -> None:
        """Log a summary of the current configuration."""
        logger.debug("📋 Configuration Summary")
        logger.debug("=" * 50)
        logger.debug(f"Config file: {self.config_path or 'built-in defaults'}")
        for section in self.DEFAULTS:
            logger.debug(f"📁 {section}:")
            for key in self.DEFAULTS[section]:
                logger.debug(f"  {key}: {self.get(f'{section}.{key}')}")


# Convenience function for easy importing
def load_config(config_file: Optional[str] = None) -> Config:
    """
    Load configuration from file.

    Args:
        config_file: Path to configuration file

    Returns:
        Config instance
    """
    return Config(config_file)
