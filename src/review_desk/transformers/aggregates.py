"""
Aggregates Module - Roll-ups of classified reviews

Creates aggregated views for:
- Dashboard charts
- Marketplace comparison
- Trend analysis
"""

import logging
from pathlib import Path
from typing import Optional, List, Dict

import pandas as pd

logger = logging.getLogger(__name__)


def _share(series: pd.Series, value: str) -> float:
    return float((series.fillna("").str.lower() == value).mean())


def build_aggregates(
    df_reviews: pd.DataFrame,
    output_dir: Optional[Path] = None
) -> Dict[str, pd.DataFrame]:
    """
    Build aggregated views of classified reviews

    Args:
        df_reviews: Reviews frame (must have marketplace, sentiment, rating)
        output_dir: When given, each view is also written as CSV there

    Returns:
        Dictionary of view name -> DataFrame

    Raises:
        ValueError: If the frame is empty or required columns are missing

    Note:
        Creates aggregates by:
        - marketplace
        - category
        - severity
        - marketplace + month (temporal, from created_at)
    """
    if df_reviews is None or df_reviews.empty:
        raise ValueError("Cannot build aggregates from empty DataFrame")

    required = ["marketplace", "sentiment", "rating"]
    missing = [col for col in required if col not in df_reviews.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")

    df = df_reviews.copy()
    df["rating"] = pd.to_numeric(df["rating"], errors="coerce")
    if "created_at" in df.columns:
        df["month"] = (
            pd.to_datetime(df["created_at"], errors="coerce")
            .dt.to_period("M")
            .dt.to_timestamp()
        )

    def agg_by(cols: List[str]) -> Optional[pd.DataFrame]:
        available = [c for c in cols if c in df.columns]
        if len(available) != len(cols):
            logger.warning(f"Skipping aggregate by {cols}: missing columns")
            return None

        rows = []
        for key, group in df.groupby(cols, dropna=False):
            key = key if isinstance(key, tuple) else (key,)
            row = dict(zip(cols, key))
            row.update({
                "review_count": len(group),
                "avg_rating": round(group["rating"].mean(), 2) if group["rating"].notna().any() else None,
                "positive_share": _share(group["sentiment"], "positive"),
                "negative_share": _share(group["sentiment"], "negative"),
                "neutral_share": _share(group["sentiment"], "neutral"),
            })
            rows.append(row)
        return pd.DataFrame(rows).sort_values("review_count", ascending=False).reset_index(drop=True)

    views = {
        "by_marketplace": agg_by(["marketplace"]),
        "by_category": agg_by(["category"]),
        "by_severity": agg_by(["severity"]),
        "by_marketplace_month": agg_by(["marketplace", "month"]),
    }
    views = {name: view for name, view in views.items() if view is not None}

    if output_dir is not None:
        output_dir.mkdir(parents=True, exist_ok=True)
        for name, view in views.items():
            path = output_dir / f"{name}.csv"
            view.to_csv(path, index=False)
            logger.info(f"Saved {name}: {len(view)} rows -> {path}")

    return views
