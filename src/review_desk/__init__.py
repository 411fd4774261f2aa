"""
Review Desk - Marketplace Review Import, Classification and Triage

A pipeline for:
1. Importing customer reviews from CSV/JSON files, marketplace APIs and email
2. Normalizing and deduplicating them into canonical reviews
3. Classifying reviews (sentiment, severity, category) with an AI service
4. Triaging them on a status board backed by DuckDB

Usage:
    from review_desk import config, utils
    from review_desk.importer import ReviewImporter
    from review_desk.classify import ReviewClassifier
    from review_desk.workflow import WorkflowService
    from review_desk.database import DatabaseManager, AnalyticsQueries
"""

__version__ = "1.0.0"

# Make key modules available at package level
from . import config
from . import utils


# Database module (lazy import to avoid duckdb dependency for basic usage)
def get_database_manager(*args, **kwargs):
    """Get a DatabaseManager instance (lazy import)"""
    from .database import DatabaseManager
    return DatabaseManager(*args, **kwargs)


def get_analytics_queries(db_manager):
    """Get an AnalyticsQueries instance (lazy import)"""
    from .database import AnalyticsQueries
    return AnalyticsQueries(db_manager)


__all__ = [
    "config",
    "utils",
    "__version__",
    "get_database_manager",
    "get_analytics_queries",
]
