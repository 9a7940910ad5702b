"""Processing job records kept in the processed_files table."""

from typing import Any, Dict, List, Optional

from loguru import logger

from ingestion.config_loader import Config

from ..supabase_integration import SupabaseDatabase

PROCESSING = "processing"
COMPLETED = "completed"


class ProcessedFileRepository:
    """
    Reads and writes processing job records.

    The ingestion engine only creates a record when processing starts and
    marks it completed with the dataset summary. Failure marking and the
    rest of the record lifecycle belong to the calling application.

    Example:
        db = SupabaseDatabase(config)
        jobs = ProcessedFileRepository(db)
        job = jobs.create_job("sales.csv", "text/csv", 12, "42/sales.csv")
        jobs.complete_job(job["id"], summary)
    """

    def __init__(self, db: SupabaseDatabase, table: str = "processed_files"):
        """Initialize the repository.

        Args:
            db: SupabaseDatabase instance for executing queries
            table: Job record table name
        """
        self.db = db
        self.table = table

    @classmethod
    def from_config(cls, config: Config) -> "ProcessedFileRepository":
        """Repository on a Supabase connection built from config."""
        return cls(SupabaseDatabase(config), table=config.get("supabase.processed_files_table"))

    def create_job(
        self,
        original_filename: str,
        file_type: Optional[str],
        file_size_kb: int,
        storage_path: str,
    ) -> Optional[Dict[str, Any]]:
        """Insert a job record in the processing state.

        Returns:
            The stored record, or None if the insert returned nothing
        """
        rows = self.db.insert(
            self.table,
            {
                "original_filename": original_filename,
                "file_type": file_type,
                "file_size_kb": file_size_kb,
                "storage_path": storage_path,
                "processing_status": PROCESSING,
            },
        )
        if not rows:
            logger.warning(f"⚠️ No job record returned for {original_filename}")
            return None
        return rows[0]

    def complete_job(self, job_id: Any, summary: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Mark a job completed and attach the dataset summary."""
        return self.db.update(
            self.table,
            {"processing_status": COMPLETED, "summary": summary},
            filters={"id": job_id},
        )

    def latest_for_dataset(self, dataset_id: str) -> Optional[Dict[str, Any]]:
        """Most recent job record whose file belongs to the dataset."""
        try:
            rows = self.db.select(
                self.table,
                filters={"storage_path": {"like": f"{dataset_id}/%"}},
                order_by="created_at",
                descending=True,
                limit=1,
            )
        except Exception as e:
            logger.error(f"Error getting processed data for dataset {dataset_id}: {str(e)}")
            return None
        return rows[0] if rows else None
