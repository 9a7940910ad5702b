"""Repository classes for ingestion data access."""

from .processed_files import COMPLETED, PROCESSING, ProcessedFileRepository

__all__ = ["ProcessedFileRepository", "PROCESSING", "COMPLETED"]
