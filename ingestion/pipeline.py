"""
pipeline.py - End-to-end processing of one uploaded dataset file

    raw bytes → format detection → records → summary / chart points / quality

GeoJSON uploads additionally get numeric-range metadata for coloring and are
persisted (simplified when oversized) through the GeoJSON store.

When a job repository is attached, a processing job record is created before
parsing starts and marked completed with the summary afterwards. Job tracking
is best effort: a failing database is logged and processing carries on.
Parse failures propagate to the caller and leave the job record in the
processing state.

Usage:
    from ingestion.pipeline import DatasetProcessor

    processor = DatasetProcessor(config)
    result = processor.process_file("data/sales.csv")
    print(result.summary["row_count"])
"""

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from .config_loader import Config
from .geojson_processor import (
    enhance_geojson,
    features_to_records,
    load_geojson,
    prepare_for_storage,
    summarize_geojson,
)
from .projector import project, project_summary
from .quality import assess_quality
from .statistics import summarize
from .tabular_parser import DatasetParseError, Record, detect_format, parse
from .type_inference import get_inferrer, is_missing


@dataclass
class ProcessingResult:
    """Everything produced for one processed file."""

    format: str
    records: List[Record]
    summary: Dict[str, Any]
    visualization: List[Dict[str, Any]]
    quality: Dict[str, Any]
    geojson: Optional[Dict[str, Any]] = None
    stored: Optional[bool] = None
    job: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class DatasetProcessor:
    """
    Runs the parse → analyze → project pipeline for uploaded files.

    Example:
        store = create_geojson_store(config)
        jobs = ProcessedFileRepository.from_config(config)
        processor = DatasetProcessor(config, job_records=jobs, geojson_store=store)
        result = processor.process_bytes(raw, "zones.geojson", dataset_id="42")
    """

    def __init__(self, config: Optional[Config] = None, job_records: Any = None, geojson_store: Any = None):
        """Initialize the processor.

        Args:
            config: Config instance. If None, creates new instance.
            job_records: ProcessedFileRepository (or compatible) for job tracking
            geojson_store: GeoJSONStore receiving processed map data
        """
        self.config = config or Config()
        self.job_records = job_records
        self.geojson_store = geojson_store

        self.csv_mode = self.config.get_parser_setting("csv_mode")
        self.max_rows = self.config.get_parser_setting("max_rows")
        self.distribution_cutoff = self.config.get_analysis_setting("distribution_cutoff")
        self.inferrer = get_inferrer(self.config.get_analysis_setting("type_inference"))
        self.max_points = self.config.get_visualization_setting("max_points")

    def process_file(
        self, path: Union[str, Path], dataset_id: Optional[str] = None, category: Optional[str] = None
    ) -> ProcessingResult:
        """Read a file from disk and process it."""
        path = Path(path)
        logger.info(f"📂 Processing {path}")
        return self.process_bytes(path.read_bytes(), path.name, dataset_id=dataset_id, category=category)

    def process_bytes(
        self,
        raw: Union[str, bytes],
        filename: str,
        mime_type: Optional[str] = None,
        dataset_id: Optional[str] = None,
        category: Optional[str] = None,
    ) -> ProcessingResult:
        """
        Process uploaded file contents.

        Args:
            raw: File contents
            filename: Original file name (format detection, job record)
            mime_type: Uploaded MIME type, preferred over the extension
            dataset_id: Owning dataset; enables GeoJSON storage
            category: Dataset category used for chart and color hints

        Returns:
            ProcessingResult

        Raises:
            DatasetParseError: Unsupported format or unparseable contents
        """
        source_format = detect_format(filename, mime_type)
        if source_format is None:
            logger.error(f"❌ Unsupported file type: {filename} ({mime_type})")
            raise DatasetParseError(f"Unsupported file type: {filename}")

        job = self._start_job(raw, filename, mime_type, dataset_id)

        try:
            if source_format == "geojson":
                result = self._process_geojson(raw, dataset_id, category)
            else:
                result = self._process_tabular(raw, source_format, category)
        except DatasetParseError as e:
            logger.error(f"❌ Failed to process {filename}: {e}")
            raise

        if job is not None:
            result.job = self._complete_job(job, result.summary)

        logger.success(f"✅ Processed {filename}: {len(result.visualization)} chart points")
        return result

    def _process_tabular(self, raw: Union[str, bytes], source_format: str, category: Optional[str]) -> ProcessingResult:
        records = parse(raw, source_format, self.csv_mode)

        if source_format == "csv":
            records = [record for record in records if any(not is_missing(value) for value in record.values())]

        return ProcessingResult(
            format=source_format,
            records=records[: self.max_rows],
            summary=summarize(records, self.inferrer, self.distribution_cutoff),
            visualization=project(records, category, self.max_points),
            quality=assess_quality(records),
        )

    def _process_geojson(
        self, raw: Union[str, bytes], dataset_id: Optional[str], category: Optional[str]
    ) -> ProcessingResult:
        geojson = load_geojson(raw)
        records = features_to_records(geojson)

        summary = summarize_geojson(geojson)
        summary["properties_summary"] = summarize(records, self.inferrer, self.distribution_cutoff)
        logger.info(
            f"  🗺️ {summary['feature_count']:,} features, geometry types: {', '.join(summary['geometry_types']) or 'none'}"
        )

        enhance_geojson(geojson, category)

        stored = None
        if dataset_id is not None and self.geojson_store is not None:
            prepared = prepare_for_storage(
                geojson,
                threshold=self.config.get_geojson_setting("size_threshold"),
                max_features=self.config.get_geojson_setting("max_features"),
                every_nth=self.config.get_geojson_setting("every_nth"),
                max_multipoint=self.config.get_geojson_setting("max_multipoint"),
            )
            stored = self.geojson_store.store(str(dataset_id), prepared)
            if not stored:
                logger.warning(f"⚠️ GeoJSON for dataset {dataset_id} could not be stored for map display")

        return ProcessingResult(
            format="geojson",
            records=records[: self.max_rows],
            summary=summary,
            visualization=project(records, category, self.max_points),
            quality=assess_quality(records),
            geojson=geojson,
            stored=stored,
        )

    def _start_job(
        self, raw: Union[str, bytes], filename: str, mime_type: Optional[str], dataset_id: Optional[str]
    ) -> Optional[Dict[str, Any]]:
        if self.job_records is None:
            return None

        storage_path = f"{dataset_id}/{filename}" if dataset_id is not None else filename
        try:
            return self.job_records.create_job(
                original_filename=filename,
                file_type=mime_type,
                file_size_kb=round(len(raw) / 1024),
                storage_path=storage_path,
            )
        except Exception as e:
            logger.error(f"Error creating processing record for {filename}: {e}")
            return None

    def _complete_job(self, job: Dict[str, Any], summary: Dict[str, Any]) -> Dict[str, Any]:
        try:
            updated = self.job_records.complete_job(job["id"], summary)
        except Exception as e:
            logger.error(f"Error completing processing record {job.get('id')}: {e}")
            return job
        return updated[0] if updated else job

    def visualization_for_dataset(self, dataset_id: str) -> List[Dict[str, Any]]:
        """Chart points rebuilt from the latest stored summary of a dataset."""
        if self.job_records is None:
            return []

        record = self.job_records.latest_for_dataset(dataset_id)
        if not record or not record.get("summary"):
            logger.debug(f"No processed summary for dataset {dataset_id}")
            return []

        summary = record["summary"]
        if isinstance(summary, str):
            summary = json.loads(summary)
        # GeoJSON summaries keep their field statistics one level down
        summary = summary.get("properties_summary") or summary

        return project_summary(summary, self.config.get_visualization_setting("max_category_values"))

    def geojson_for_dataset(self, dataset_id: str) -> Optional[Dict[str, Any]]:
        """Stored map data for a dataset, None when unavailable."""
        if self.geojson_store is None:
            return None
        return self.geojson_store.retrieve(str(dataset_id))
