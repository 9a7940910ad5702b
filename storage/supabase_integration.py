#!/usr/bin/env python3
"""
supabase_integration.py - Supabase access for processing job records

The ingestion engine only touches the processed_files table: it records that
a file is being processed and attaches the dataset summary when it is done.
Dataset CRUD, auth and the admin verification workflow belong to the web
application.

Credentials are resolved in order:
    1. SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY environment variables
       (a .env file at the project root is loaded first)
    2. url / service_key under the supabase section of config.yaml

Usage:
    from storage.supabase_integration import SupabaseDatabase

    db = SupabaseDatabase()
    rows = db.select("processed_files", filters={"processing_status": "completed"})
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv
from loguru import logger
from supabase import Client, create_client

from ingestion.config_loader import Config

ENV_PATH = Path(__file__).parent.parent / ".env"

if ENV_PATH.exists():
    load_dotenv(ENV_PATH)
    logger.debug(f"✅ Loaded environment variables from {ENV_PATH}")

# Operators accepted as {"op": value} in select filters
FILTER_OPERATORS = ("in", "neq", "like")


def resolve_credentials(config: Config) -> Dict[str, str]:
    """
    Find the project URL and service role key.

    Raises:
        ValueError: When either value is missing from both sources
    """
    section = config.get("supabase", {}) or {}
    url = os.getenv("SUPABASE_URL") or section.get("url")
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or section.get("service_key")

    if not url or not key:
        logger.error("❌ Supabase credentials not found")
        logger.error("   Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY,")
        logger.error("   or supabase.url / supabase.service_key in config.yaml")
        raise ValueError("Missing required Supabase configuration.")

    return {"url": url, "service_key": key}


def apply_filters(query: Any, filters: Dict[str, Any]) -> Any:
    """Chain filter calls onto a postgrest query builder."""
    for column, condition in filters.items():
        if isinstance(condition, dict):
            operator = next((op for op in FILTER_OPERATORS if op in condition), None)
            if operator is None:
                raise ValueError(f"Unsupported filter for {column}: {sorted(condition)}")
            method = "in_" if operator == "in" else operator
            query = getattr(query, method)(column, condition[operator])
        else:
            query = query.eq(column, condition)
    return query


class SupabaseDatabase:
    """Processing job table access through the supabase-py client."""

    def __init__(self, config: Optional[Config] = None, client: Optional[Client] = None):
        """Connect with the service role key.

        Args:
            config: Config instance. If None, creates new instance.
            client: Ready-made client; skips credential lookup
        """
        self.config = config or Config()
        self.client: Client = client if client is not None else self._connect()

    def _connect(self) -> Client:
        credentials = resolve_credentials(self.config)
        try:
            client = create_client(credentials["url"], credentials["service_key"])
        except Exception as e:
            logger.error(f"❌ Could not create Supabase client: {e}")
            raise ValueError(f"Failed to initialize Supabase client: {e}") from e
        logger.debug("🔌 Supabase client ready")
        return client

    def select(
        self,
        table: str,
        columns: Optional[List[str]] = None,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Read rows from a table.

        Args:
            table: Table name
            columns: Columns to return, all when None
            filters: Column conditions; plain values match with eq, dict
                     values use one of "in", "neq" or "like"
            order_by: Sort column
            descending: Sort direction for order_by
            limit: Maximum number of rows

        Returns:
            Matching rows
        """
        try:
            query = self.client.table(table).select(",".join(columns) if columns else "*")
            query = apply_filters(query, filters or {})
            if order_by:
                query = query.order(order_by, desc=descending)
            if limit:
                query = query.limit(limit)
            return query.execute().data
        except Exception as e:
            logger.error(f"Database error selecting from {table}: {e}")
            raise

    def insert(self, table: str, data: Union[Dict[str, Any], List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        """Insert one row or a list of rows and return what was stored."""
        try:
            rows = self.client.table(table).insert(data).execute().data
        except Exception as e:
            logger.error(f"Database error inserting into {table}: {e}")
            raise

        if not isinstance(rows, list):
            logger.warning(f"⚠️ Insert into {table} returned no rows")
            return []
        return rows

    def update(self, table: str, data: Dict[str, Any], filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Update rows matching the filters and return them."""
        try:
            query = apply_filters(self.client.table(table).update(data), filters)
            return query.execute().data
        except Exception as e:
            logger.error(f"Database error updating {table}: {e}")
            raise
