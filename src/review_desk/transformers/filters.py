"""
Filtering, search and sorting of review frames

Works on the DataFrame returned by DatabaseManager.get_reviews_df().
Sorting is always by the reported creation time (created_at), newest first.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, List

import pandas as pd

from ..utils import ValidationError, parse_datetime, utcnow

logger = logging.getLogger(__name__)

DATE_PRESETS = {
    "7days": 7,
    "30days": 30,
    "90days": 90,
}

SEARCH_COLUMNS: List[str] = [
    "customer_name", "product_name", "title", "content", "marketplace", "category",
]


def sort_newest_first(df: pd.DataFrame) -> pd.DataFrame:
    """Order by created_at descending (id as tie-breaker)"""
    if df is None or df.empty:
        return df
    by = ["created_at", "id"] if "id" in df.columns else ["created_at"]
    return df.sort_values(by, ascending=[False] + [True] * (len(by) - 1), kind="mergesort").reset_index(drop=True)


def _match_any(series: pd.Series, values) -> pd.Series:
    if isinstance(values, str):
        values = [values]
    wanted = {str(v).lower() for v in values if v}
    return series.fillna("").astype(str).str.lower().isin(wanted)


def _date_bounds(
    date_range: Optional[str],
    start: Optional[datetime],
    end: Optional[datetime],
    now: Optional[datetime],
):
    if date_range and date_range != "all":
        if date_range not in DATE_PRESETS:
            raise ValidationError(
                f"Unknown date range '{date_range}'. Use one of {list(DATE_PRESETS)} or 'all'"
            )
        now = now or utcnow()
        return now - timedelta(days=DATE_PRESETS[date_range]), None
    return parse_datetime(start) if start else None, parse_datetime(end) if end else None


def filter_reviews_df(
    df: pd.DataFrame,
    search: Optional[str] = None,
    marketplace=None,
    sentiment=None,
    severity=None,
    status=None,
    category: Optional[str] = None,
    min_rating: Optional[int] = None,
    max_rating: Optional[int] = None,
    date_range: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> pd.DataFrame:
    """
    Apply dashboard filters to a review frame

    Args:
        df: Reviews frame (columns as in v_reviews_full)
        search: Case-insensitive substring over customer, product, title,
                content, marketplace and category
        marketplace/sentiment/severity/status: A value or list of values
        category: Exact category label (case-insensitive)
        min_rating/max_rating: Inclusive rating bounds; unrated reviews are
                               excluded as soon as one bound is set
        date_range: "7days", "30days", "90days" or "all"
        start/end: Explicit created_at bounds (ignored when date_range is set)
        now: Reference time for presets (defaults to current UTC)

    Returns:
        Filtered frame sorted newest first

    Raises:
        ValidationError: Unknown date range preset
    """
    if df is None or df.empty:
        return df

    mask = pd.Series(True, index=df.index)

    if marketplace:
        mask &= _match_any(df["marketplace"], marketplace)
    if sentiment:
        mask &= _match_any(df["sentiment"], sentiment)
    if severity:
        mask &= _match_any(df["severity"], severity)
    if status:
        mask &= _match_any(df["status"], status)
    if category:
        mask &= _match_any(df["category"], category)

    if min_rating is not None or max_rating is not None:
        ratings = pd.to_numeric(df["rating"], errors="coerce")
        mask &= ratings.notna()
        if min_rating is not None:
            mask &= ratings >= min_rating
        if max_rating is not None:
            mask &= ratings <= max_rating

    lower, upper = _date_bounds(date_range, start, end, now)
    if lower is not None or upper is not None:
        created = pd.to_datetime(df["created_at"], errors="coerce")
        if lower is not None:
            mask &= created >= lower
        if upper is not None:
            mask &= created <= upper

    if search and search.strip():
        needle = search.strip().lower()
        hit = pd.Series(False, index=df.index)
        for col in SEARCH_COLUMNS:
            if col in df.columns:
                hit |= df[col].fillna("").astype(str).str.lower().str.contains(needle, regex=False)
        mask &= hit

    result = df[mask]
    logger.debug(f"Filters kept {len(result)}/{len(df)} reviews")
    return sort_newest_first(result)
