"""
Dataset ingestion engine

Turns uploaded CSV, JSON and GeoJSON files into flat records, per-field
summary statistics, data quality reports and chart-ready points, and prepares
GeoJSON for size-constrained storage.

The most used entry points are exposed at the package level:
    from ingestion import Config, DatasetProcessor
"""

from .config_loader import Config
from .pipeline import DatasetProcessor, ProcessingResult
from .tabular_parser import DatasetParseError

__version__ = "0.1.0"

__all__ = ["Config", "DatasetParseError", "DatasetProcessor", "ProcessingResult"]
