"""
Shared utilities for Review Desk
Exception taxonomy, CSV/JSON helpers, coercion helpers and progress tracking
"""
import csv
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import pandas as pd

from . import config

logger = logging.getLogger(__name__)


# =========================
# Custom Exceptions
# =========================
class ReviewDeskError(Exception):
    """Base exception for Review Desk"""
    pass


class ValidationError(ReviewDeskError, ValueError):
    """Raised when caller input is outside the accepted domain"""
    pass


class NotFoundError(ReviewDeskError, LookupError):
    """Raised when a review or product does not exist"""
    pass


class ImportFileError(ValidationError):
    """Raised when an uploaded file cannot be accepted or parsed"""
    pass


class ExternalServiceError(ReviewDeskError):
    """Base exception for third-party service failures"""
    pass


class AuthenticationError(ExternalServiceError):
    """Raised when a credential is missing or rejected"""
    pass


class RateLimitError(ExternalServiceError):
    """Raised when a provider rate limit is hit (retried)"""
    pass


class MarketplaceAPIError(ExternalServiceError):
    """Raised when a marketplace data provider fails"""
    pass


class ClassifierError(ExternalServiceError):
    """Raised when the AI completion service fails"""
    pass


# =========================
# CSV Utilities
# =========================
def sniff_csv_format(raw: bytes) -> Tuple[str, str]:
    """
    Detect CSV delimiter and encoding from raw upload bytes

    Args:
        raw: File content

    Returns:
        Tuple of (delimiter, encoding)
    """
    encoding = "utf-8-sig" if raw.startswith(b"\xef\xbb\xbf") else "utf-8"
    sample = raw[:2048].decode(encoding, errors="replace")

    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=[",", ";", "\t", "|"])
        return dialect.delimiter, encoding
    except csv.Error:
        return ",", encoding


def normalize_column_name(name: str) -> str:
    """Lowercase a column name and drop spaces/underscores"""
    return str(name).lower().strip().replace(" ", "").replace("_", "")


def detect_column(
    df: pd.DataFrame,
    possible_names: List[str],
    required: bool = False
) -> Optional[str]:
    """
    Detect column from list of possible names (case-insensitive)

    Args:
        df: DataFrame to search
        possible_names: List of possible column names
        required: Raise error if not found

    Returns:
        Detected column name or None

    Raises:
        ImportFileError: If required=True and column not found
    """
    normalized_cols = {normalize_column_name(col): col for col in df.columns}

    for name in possible_names:
        original = normalized_cols.get(normalize_column_name(name))
        if original is not None:
            return original

    if required:
        raise ImportFileError(
            f"Required column not found. Tried: {possible_names}. "
            f"Available columns: {list(df.columns)}"
        )

    return None


# =========================
# Coercion Utilities
# =========================
def utcnow() -> datetime:
    """Current time as a naive UTC datetime (the store's convention)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def clean_text(value: Any) -> str:
    """Convert a raw cell into a stripped string ('' for missing)"""
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return str(value).strip()


def optional_text(value: Any) -> Optional[str]:
    """Like clean_text, but returns None for empty values"""
    text = clean_text(value)
    return text or None


def parse_rating(value: Any) -> Optional[int]:
    """
    Coerce a raw rating to an int within MIN_RATING..MAX_RATING

    Missing, non-numeric or non-positive ratings return None (never zero).
    """
    text = clean_text(value)
    if not text:
        return None
    try:
        rating = int(round(float(text)))
    except (TypeError, ValueError, OverflowError):
        return None
    if rating < config.MIN_RATING:
        return None
    return min(rating, config.MAX_RATING)


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a date/time value into a naive UTC datetime

    Returns None when the value is missing or unparseable.
    """
    if isinstance(value, datetime):
        ts = pd.Timestamp(value)
    else:
        text = clean_text(value)
        if not text:
            return None
        ts = pd.to_datetime(text, errors="coerce", utc=True)
        if pd.isna(ts) and " on " in text:
            # "Reviewed in the United States on January 5, 2024"
            ts = pd.to_datetime(text.rsplit(" on ", 1)[1], errors="coerce", utc=True)
    if ts is None or pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    return ts.to_pydatetime()


def parse_bool(value: Any) -> Optional[bool]:
    """Coerce common truthy/falsy representations"""
    if isinstance(value, bool):
        return value
    text = clean_text(value).lower()
    if text in ("true", "1", "yes", "y", "verified"):
        return True
    if text in ("false", "0", "no", "n"):
        return False
    return None


# =========================
# JSON Utilities
# =========================
def read_json(file_path: Path) -> Any:
    """
    Read a JSON file supplied as import input

    Args:
        file_path: Path to JSON file

    Returns:
        Parsed JSON value

    Raises:
        ImportFileError: If the file is missing, unreadable or not valid JSON
    """
    if not file_path.exists():
        raise ImportFileError(f"File not found: {file_path}")

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except UnicodeDecodeError as e:
        raise ImportFileError(f"{file_path} is not UTF-8 text: {e}") from e
    except json.JSONDecodeError as e:
        raise ImportFileError(f"Malformed JSON in {file_path}: {e}") from e
    except OSError as e:
        raise ImportFileError(f"Failed to read {file_path}: {e}") from e


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Pull the first {...} block out of a model reply and parse it

    Raises:
        ValueError: If no JSON object is present or it does not parse
    """
    if not text:
        raise ValueError("Empty response")
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("No JSON found in response")
    parsed = json.loads(text[start:end + 1])
    if not isinstance(parsed, dict):
        raise ValueError("Response JSON is not an object")
    return parsed


# =========================
# Progress Tracking
# =========================
def create_progress_bar(total: int, desc: str = "Processing", enabled: bool = True):
    """
    Create progress bar (using tqdm if available)

    Args:
        total: Total items
        desc: Description
        enabled: Return None when False (e.g. inside the HTTP API)

    Returns:
        Progress bar or None
    """
    if not enabled:
        return None
    try:
        from tqdm import tqdm
        return tqdm(total=total, desc=desc)
    except ImportError:
        logger.warning("tqdm not installed, progress bar disabled")
        return None
