"""
Transformers Module - Normalization, deduplication and roll-ups

This module provides the data transformation steps of the import pipeline:
- normalize_reviews: Map intermediate records onto canonical reviews
- dedup: Recognize already-imported reviews (batch and store)
- filters: Dashboard filtering, search and newest-first sorting
- aggregates: Roll-ups for analytics and charts

Pipeline Stage: Between parsing/collection and classification
"""

from .dedup import (
    DedupFilter,
    build_dedup_key,
)

from .normalize_reviews import (
    normalize_record,
    normalize_records,
)

from .filters import (
    filter_reviews_df,
    sort_newest_first,
    DATE_PRESETS,
)

from .aggregates import (
    build_aggregates,
)

__all__ = [
    # Deduplication
    "DedupFilter",
    "build_dedup_key",
    # Normalization
    "normalize_record",
    "normalize_records",
    # Filtering
    "filter_reviews_df",
    "sort_newest_first",
    "DATE_PRESETS",
    # Aggregation
    "build_aggregates",
]
