"""
CSV export and import template
"""
import csv
import logging
from pathlib import Path
from typing import Optional

import pandas as pd

from . import config

logger = logging.getLogger(__name__)

TEMPLATE_FILENAME = "review_import_template.csv"

TEMPLATE_CSV = (
    "Title,Content,Customer Name,Customer Email,Rating,Created At\n"
    '"Sample Review Title","This is a sample review content","John Doe","john@example.com",5,2024-01-15\n'
    '"Another Review","Great product!","Jane Smith","jane@example.com",4,2024-01-14'
)

# Export header -> reviews column
EXPORT_FIELD_MAP = {
    "ID": "id",
    "Marketplace": "marketplace",
    "Title": "title",
    "Content": "content",
    "Customer Name": "customer_name",
    "Customer Email": "customer_email",
    "Rating": "rating",
    "Sentiment": "sentiment",
    "Category": "category",
    "Severity": "severity",
    "Status": "status",
    "Created At": "created_at",
    "AI Suggested Reply": "ai_suggested_reply",
}


def template_csv() -> str:
    """Fixed-format CSV template for manual imports"""
    return TEMPLATE_CSV


def export_filename(prefix: str = "reviews-export", when: Optional[pd.Timestamp] = None) -> str:
    when = when or pd.Timestamp.now()
    return f"{prefix}-{when.strftime('%Y-%m-%d')}.csv"


def reviews_to_csv(df: pd.DataFrame) -> str:
    """
    Serialize reviews to CSV

    Every field is quoted and internal quotes are doubled. Missing values
    are written as empty quoted fields.

    Args:
        df: Reviews frame (columns as in the reviews table)

    Returns:
        CSV text with the EXPORT_COLUMNS header
    """
    header = list(config.EXPORT_COLUMNS)
    columns = [EXPORT_FIELD_MAP[h] for h in header]

    if df is None:
        df = pd.DataFrame()
    out = df.reindex(columns=columns)

    # ratings come back as floats when the column holds NULLs
    out["rating"] = pd.to_numeric(out["rating"], errors="coerce").round().astype("Int64")
    out["created_at"] = pd.to_datetime(out["created_at"], errors="coerce").dt.strftime(
        "%Y-%m-%dT%H:%M:%S"
    )
    out.columns = header

    return out.to_csv(index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")


def export_reviews(df: pd.DataFrame, output_path: Optional[Path] = None) -> Path:
    """Write a reviews frame to the exports directory (or a given path)"""
    if output_path is None:
        output_path = config.get_export_path(export_filename())
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(reviews_to_csv(df), encoding="utf-8")
    logger.info(f"Exported {0 if df is None else len(df)} reviews to {output_path}")
    return output_path
