"""
File Import Parser for Review Desk

Turns an uploaded CSV or JSON payload into an ordered list of
IntermediateRecord objects. Structurally unusable rows are skipped and
counted as malformed; whether a record has the required fields is left to
the normalizer.
"""
import csv
import io
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Dict, Any, Optional, Union

import pandas as pd
from pydantic import ValidationError as SchemaError

from . import config
from .schemas import IntermediateRecord
from .utils import (
    ImportFileError, detect_column, normalize_column_name, sniff_csv_format,
)

logger = logging.getLogger(__name__)

# Accepted header spellings per intermediate field. The first entry is the
# template/export header; the rest cover common hand-made files.
COLUMN_ALIASES: Dict[str, List[str]] = {
    "title": ["Title", "review_title", "subject", "headline"],
    "content": ["Content", "text", "body", "review", "review_text", "comment"],
    "customer_name": [
        "Customer Name", "customer", "name", "author", "reviewer",
        "reviewer_name", "user_name",
    ],
    "customer_email": ["Customer Email", "email", "customer_mail"],
    "rating": ["Rating", "stars", "score"],
    "created_at": ["Created At", "date", "review_date", "created", "createdAt"],
    "external_review_id": ["External Review ID", "review_id", "externalReviewId", "external_id"],
    "product_id": ["Product ID", "productId", "sku"],
    "product_name": ["Product Name", "product", "productName"],
    "asin": ["ASIN"],
    "verified": ["Verified", "verified_purchase"],
}


@dataclass
class ParseResult:
    """Output of the file parser"""
    records: List[IntermediateRecord] = field(default_factory=list)
    malformed: int = 0

    @property
    def total_rows(self) -> int:
        return len(self.records) + self.malformed


# =========================
# Upload Checks
# =========================
def validate_upload(filename: str, size: int):
    """
    Reject uploads by extension and size before parsing

    Raises:
        ImportFileError: Unsupported extension, empty or oversized file
    """
    suffix = Path(filename or "").suffix.lower()
    allowed = config.IMPORT_CONFIG["allowed_suffixes"]
    if suffix not in allowed:
        raise ImportFileError(
            f"Unsupported file type '{suffix or filename}'. Allowed: {', '.join(allowed)}"
        )

    max_bytes = config.IMPORT_CONFIG["max_file_bytes"]
    if size > max_bytes:
        raise ImportFileError(
            f"File too large ({size} bytes). Maximum is {max_bytes // (1024 * 1024)}MB"
        )
    if size == 0:
        raise ImportFileError("File is empty")


def _decode(raw: bytes, encoding: str) -> str:
    try:
        return raw.decode(encoding)
    except UnicodeDecodeError:
        logger.warning(f"File is not valid {encoding}, falling back to latin-1")
        return raw.decode("latin-1")


def _to_record(values: Dict[str, Any], row_number: int) -> Optional[IntermediateRecord]:
    try:
        return IntermediateRecord(row_number=row_number, **values)
    except SchemaError as e:
        logger.warning(f"Malformed row {row_number}: {e.errors()[0].get('msg')}")
        return None


# =========================
# CSV
# =========================
def parse_csv(raw: bytes) -> ParseResult:
    """
    Parse CSV bytes (header row required)

    Rows with more fields than the header are malformed; short rows are
    padded with blanks and handed on.

    Raises:
        ImportFileError: No header, no recognizable content column, or the
                         file cannot be tokenized at all
    """
    delimiter, encoding = sniff_csv_format(raw)
    logger.debug(f"CSV format: delimiter='{delimiter}', encoding='{encoding}'")
    text = _decode(raw, encoding)

    bad_lines: List[List[str]] = []

    def on_bad_line(fields: List[str]):
        bad_lines.append(fields)
        return None

    try:
        df = pd.read_csv(
            io.StringIO(text),
            sep=delimiter,
            dtype=str,
            engine="python",
            on_bad_lines=on_bad_line,
            skipinitialspace=True,
        )
    except pd.errors.EmptyDataError:
        raise ImportFileError("CSV file has no header row")
    except (pd.errors.ParserError, csv.Error) as e:
        raise ImportFileError(f"Could not parse CSV: {e}")

    detect_column(df, COLUMN_ALIASES["content"], required=True)
    mapping = {
        name: detect_column(df, aliases)
        for name, aliases in COLUMN_ALIASES.items()
    }
    mapping = {name: col for name, col in mapping.items() if col is not None}
    logger.info(f"CSV columns mapped: {mapping}")

    result = ParseResult(malformed=len(bad_lines))
    for i, row in enumerate(df.itertuples(index=False), start=1):
        row_dict = dict(zip(df.columns, row))
        values = {name: row_dict[col] for name, col in mapping.items()}
        record = _to_record(values, row_number=i)
        if record is None:
            result.malformed += 1
        else:
            result.records.append(record)

    if bad_lines:
        logger.warning(f"{len(bad_lines)} CSV line(s) had too many fields and were skipped")
    return result


# =========================
# JSON
# =========================
def _map_json_object(obj: Dict[str, Any]) -> Dict[str, Any]:
    by_normalized = {normalize_column_name(k): k for k in obj}
    values = {}
    for name, aliases in COLUMN_ALIASES.items():
        for alias in [name] + aliases:
            key = by_normalized.get(normalize_column_name(alias))
            if key is not None:
                values[name] = obj[key]
                break
    return values


def parse_json(raw: bytes) -> ParseResult:
    """
    Parse a JSON array of review objects (or {"reviews": [...]})

    Non-object items and items whose values have the wrong shape count as
    malformed.

    Raises:
        ImportFileError: Invalid JSON or no array of items
    """
    try:
        data = json.loads(_decode(raw, "utf-8-sig"))
    except json.JSONDecodeError as e:
        raise ImportFileError(f"Invalid JSON: {e}")

    if isinstance(data, dict) and isinstance(data.get("reviews"), list):
        data = data["reviews"]
    if not isinstance(data, list):
        raise ImportFileError("JSON import must be an array of review objects")

    result = ParseResult()
    for i, item in enumerate(data, start=1):
        if not isinstance(item, dict):
            logger.warning(f"Malformed item {i}: expected an object, got {type(item).__name__}")
            result.malformed += 1
            continue
        record = _to_record(_map_json_object(item), row_number=i)
        if record is None:
            result.malformed += 1
        else:
            result.records.append(record)
    return result


# =========================
# Entry Points
# =========================
def parse_upload(filename: str, raw: bytes) -> ParseResult:
    """
    Validate and parse an uploaded file by extension

    Args:
        filename: Original file name (extension selects the parser)
        raw: File content

    Returns:
        ParseResult with records in file order and the malformed count
    """
    validate_upload(filename, len(raw))
    if Path(filename).suffix.lower() == ".json":
        result = parse_json(raw)
    else:
        result = parse_csv(raw)

    logger.info(
        f"Parsed {filename}: {len(result.records)} record(s), {result.malformed} malformed"
    )
    return result


def parse_file(file_path: Union[str, Path]) -> ParseResult:
    """Parse a file from disk (CLI entry point)"""
    file_path = Path(file_path)
    if not file_path.exists():
        raise ImportFileError(f"File not found: {file_path}")
    return parse_upload(file_path.name, file_path.read_bytes())
