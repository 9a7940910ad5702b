"""
tabular_parser.py - Raw CSV/JSON text to flat records

Turns uploaded file contents into a list of flat records (field name -> scalar).
CSV values are coerced to numbers when they are plain numeric literals; JSON
values are taken as-is.

Two CSV modes are supported:
- "rfc4180": quoted fields may contain commas and newlines (pandas reader).
- "simple": naive comma split, no quote handling. Kept for parity with data
  produced by older upload tooling.
"""

import io
import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd
from loguru import logger

Record = Dict[str, Any]

SUPPORTED_FORMATS = ("csv", "json")

INT_PATTERN = re.compile(r"^[+-]?\d+$")
FLOAT_PATTERN = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$")

MIME_FORMATS = {
    "text/csv": "csv",
    "application/csv": "csv",
    "application/json": "json",
    "application/geo+json": "geojson",
}

EXTENSION_FORMATS = {
    ".csv": "csv",
    ".json": "json",
    ".geojson": "geojson",
}


class DatasetParseError(ValueError):
    """Raised when an uploaded file cannot be parsed."""


def parse_number(text: str) -> Optional[Union[int, float]]:
    """Return the number a plain decimal literal represents, else None.

    Integer literals stay ints; anything with a fraction or exponent is a float.
    Words such as "nan" or "inf" are not numeric literals.
    """
    candidate = text.strip()
    if INT_PATTERN.match(candidate):
        return int(candidate)
    if FLOAT_PATTERN.match(candidate):
        return float(candidate)
    return None


def coerce_value(raw: Optional[str]) -> Any:
    """Coerce one CSV cell: numeric literal -> number, blank -> None, else trimmed text."""
    if raw is None:
        return None
    text = raw.strip()
    if not text:
        return None
    number = parse_number(text)
    return number if number is not None else text


def detect_format(filename: Optional[str] = None, mime_type: Optional[str] = None) -> Optional[str]:
    """Map a MIME type or file extension to "csv", "json" or "geojson"."""
    if filename:
        suffix = Path(filename).suffix.lower()
        # .geojson uploads are often labelled application/json by browsers
        if suffix == ".geojson":
            return "geojson"
    if mime_type and mime_type.lower() in MIME_FORMATS:
        return MIME_FORMATS[mime_type.lower()]
    if filename:
        return EXTENSION_FORMATS.get(Path(filename).suffix.lower())
    return None


def decode_text(raw: Union[str, bytes]) -> str:
    """Decode uploaded bytes as UTF-8, dropping a leading byte-order mark."""
    if isinstance(raw, bytes):
        try:
            return raw.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise DatasetParseError(f"File is not valid UTF-8 text: {e}") from e
    return raw.lstrip("\ufeff")


def parse(raw: Union[str, bytes], source_format: str, csv_mode: str = "rfc4180") -> List[Record]:
    """Parse raw CSV or JSON text into records.

    Args:
        raw: File contents as text or bytes
        source_format: "csv" or "json"
        csv_mode: "rfc4180" or "simple" (CSV only)

    Returns:
        List of records. Empty and header-only CSV input yields [].

    Raises:
        DatasetParseError: malformed JSON, undecodable bytes or unknown format
    """
    text = decode_text(raw)
    source_format = source_format.lower()

    if source_format == "csv":
        if csv_mode == "simple":
            records = _parse_csv_simple(text)
        elif csv_mode == "rfc4180":
            records = _parse_csv_quoted(text)
        else:
            raise ValueError(f"Unknown CSV mode: {csv_mode}")
        logger.debug(f"  📄 Parsed {len(records):,} CSV rows ({csv_mode})")
        return records

    if source_format == "json":
        records = _parse_json(text)
        logger.debug(f"  📄 Parsed {len(records):,} JSON records")
        return records

    raise DatasetParseError(f"Unsupported source format: {source_format}")


def _parse_csv_simple(text: str) -> List[Record]:
    lines = text.splitlines()
    if len(lines) <= 1:
        return []

    headers = [header.strip() for header in lines[0].split(",")]
    records: List[Record] = []

    for line in lines[1:]:
        if not line.strip():
            continue
        values = line.split(",")
        record = {
            header: coerce_value(values[index]) if index < len(values) else None
            for index, header in enumerate(headers)
        }
        records.append(record)

    return records


def _parse_csv_quoted(text: str) -> List[Record]:
    if not text.strip():
        return []

    try:
        width = pd.read_csv(io.StringIO(text), header=None, nrows=1, dtype=str, engine="python").shape[1]
        frame = pd.read_csv(
            io.StringIO(text),
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            index_col=False,
            engine="python",
            # Rows longer than the header keep only the leading fields
            on_bad_lines=lambda bad_line: bad_line[:width],
        )
    except pd.errors.EmptyDataError:
        return []
    except pd.errors.ParserError as e:
        raise DatasetParseError(f"Malformed CSV: {e}") from e

    rows = [
        [None if pd.isna(value) else str(value) for value in row] for row in frame.itertuples(index=False, name=None)
    ]
    # Header names come from the first row as written; a repeated name keeps its last column
    headers = [(header or "").strip() for header in rows[0]]

    return [{header: coerce_value(value) for header, value in zip(headers, values)} for values in rows[1:]]


def _parse_json(text: str) -> List[Record]:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        logger.error(f"❌ Malformed JSON: {e}")
        raise DatasetParseError(f"Malformed JSON: {e}") from e

    if document is None:
        raise DatasetParseError("JSON document is null")

    items = document if isinstance(document, list) else [document]
    return [dict(item) if isinstance(item, dict) else {"value": item} for item in items]
