"""
Database module for Review Desk
Provides DuckDB-based storage for reviews, products and import runs
"""
from .manager import DatabaseManager
from .models import (
    Review, Product, ProcessingRun,
    Marketplace, Sentiment, Severity, ReviewStatus, ProcessingStatus,
)
from .queries import AnalyticsQueries

__all__ = [
    "DatabaseManager",
    "Review",
    "Product",
    "ProcessingRun",
    "Marketplace",
    "Sentiment",
    "Severity",
    "ReviewStatus",
    "ProcessingStatus",
    "AnalyticsQueries",
]
