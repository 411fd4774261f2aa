"""
Pre-built analytics queries for Review Desk
Provides the dashboard roll-ups using DuckDB aggregations
"""
import logging
from typing import Optional, Dict, Any

import pandas as pd

logger = logging.getLogger(__name__)


class AnalyticsQueries:
    """
    Collection of analytical queries over the review store
    """

    def __init__(self, db_manager):
        """
        Initialize with database manager

        Args:
            db_manager: DatabaseManager instance
        """
        self.db = db_manager

    # =========================
    # Overview Statistics
    # =========================
    def get_overview_stats(self) -> Dict[str, Any]:
        """Get high-level statistics about the store"""
        sql = """
        SELECT
            COUNT(*) AS total_reviews,
            COUNT(DISTINCT marketplace) AS total_marketplaces,
            AVG(rating) AS avg_rating,
            COUNT(CASE WHEN status = 'open' THEN 1 END) AS open_count,
            COUNT(CASE WHEN severity IN ('high', 'critical') THEN 1 END) AS urgent_count,
            COUNT(CASE WHEN ai_suggested_reply IS NOT NULL THEN 1 END) AS replied_count,
            MIN(created_at) AS earliest_review,
            MAX(created_at) AS latest_review
        FROM reviews
        """
        result = self.db.query_df(sql)
        row = result.iloc[0]
        total = int(row["total_reviews"])

        products = self.db.query_df("SELECT COUNT(*) AS n FROM products")

        return {
            "total_reviews": total,
            "total_marketplaces": int(row["total_marketplaces"]),
            "total_products": int(products.iloc[0]["n"]),
            "avg_rating": round(float(row["avg_rating"]), 2) if pd.notna(row["avg_rating"]) else None,
            "open_count": int(row["open_count"]),
            "urgent_count": int(row["urgent_count"]),
            "replied_count": int(row["replied_count"]),
            "earliest_review": row["earliest_review"] if total else None,
            "latest_review": row["latest_review"] if total else None,
            "sentiment_distribution": self.get_distribution("sentiment").to_dict("records"),
            "severity_distribution": self.get_distribution("severity").to_dict("records"),
            "status_counts": self.get_status_counts(),
        }

    # =========================
    # Distributions
    # =========================
    def get_distribution(
        self,
        column: str,
        marketplace: Optional[str] = None
    ) -> pd.DataFrame:
        """
        Count reviews by one classification column

        Args:
            column: sentiment, severity, category, marketplace or status
            marketplace: Optional marketplace filter

        Returns:
            DataFrame with value, count, percentage
        """
        valid = {"sentiment", "severity", "category", "marketplace", "status"}
        if column not in valid:
            raise ValueError(f"Unknown distribution column: {column}")

        where = "WHERE marketplace = ?" if marketplace else ""
        params = [marketplace] if marketplace else []

        sql = f"""
        SELECT
            {column} AS value,
            COUNT(*) AS count,
            ROUND(COUNT(*) * 100.0 / SUM(COUNT(*)) OVER (), 2) AS percentage
        FROM reviews
        {where}
        GROUP BY {column}
        ORDER BY count DESC, value
        """
        return self.db.query_df(sql, params)

    def get_status_counts(self) -> Dict[str, int]:
        """Number of cards in each board column (all three always present)"""
        df = self.db.query_df(
            "SELECT status, COUNT(*) AS n FROM reviews GROUP BY status"
        )
        counts = {"open": 0, "in_progress": 0, "resolved": 0}
        for _, row in df.iterrows():
            counts[row["status"]] = int(row["n"])
        return counts

    # =========================
    # Marketplace Analytics
    # =========================
    def get_marketplace_stats(self) -> pd.DataFrame:
        """Review volume, average rating and negative rate per marketplace"""
        sql = """
        SELECT
            marketplace,
            COUNT(*) AS total_reviews,
            ROUND(AVG(rating), 2) AS avg_rating,
            COUNT(CASE WHEN sentiment = 'negative' THEN 1 END) AS negative_count,
            ROUND(COUNT(CASE WHEN sentiment = 'negative' THEN 1 END) * 100.0 / NULLIF(COUNT(*), 0), 2) AS negative_rate
        FROM reviews
        GROUP BY marketplace
        ORDER BY total_reviews DESC
        """
        return self.db.query_df(sql)

    def get_product_stats(self, platform: Optional[str] = None) -> pd.DataFrame:
        """Per-product roll-up; products without reviews still listed"""
        where = "WHERE p.platform = ?" if platform else ""
        params = [platform] if platform else []
        sql = f"""
        SELECT
            p.platform,
            p.product_id,
            p.product_name,
            p.review_count,
            p.last_imported,
            ROUND(AVG(r.rating), 2) AS avg_rating,
            COUNT(CASE WHEN r.sentiment = 'negative' THEN 1 END) AS negative_count
        FROM products p
        LEFT JOIN reviews r
            ON r.marketplace = p.platform AND r.product_id = p.product_id
        {where}
        GROUP BY p.platform, p.product_id, p.product_name, p.review_count, p.last_imported
        ORDER BY p.last_imported DESC
        """
        return self.db.query_df(sql, params)

    # =========================
    # Temporal Analytics
    # =========================
    def get_temporal_trends(
        self,
        granularity: str = "month",
        marketplace: Optional[str] = None
    ) -> pd.DataFrame:
        """
        Review volume over time (by reported creation time)

        Args:
            granularity: Time granularity (day, week, month, quarter, year)
            marketplace: Optional marketplace filter
        """
        trunc = granularity if granularity in ("day", "week", "month", "quarter", "year") else "month"
        where = "WHERE marketplace = ?" if marketplace else ""
        params = [marketplace] if marketplace else []

        sql = f"""
        SELECT
            DATE_TRUNC('{trunc}', created_at) AS period,
            COUNT(*) AS review_count,
            ROUND(AVG(rating), 2) AS avg_rating,
            COUNT(CASE WHEN sentiment = 'positive' THEN 1 END) AS positive_count,
            COUNT(CASE WHEN sentiment = 'negative' THEN 1 END) AS negative_count
        FROM reviews
        {where}
        GROUP BY DATE_TRUNC('{trunc}', created_at)
        ORDER BY period
        """
        return self.db.query_df(sql, params)

    def get_urgent_open_reviews(self, limit: int = 20) -> pd.DataFrame:
        """Open high/critical reviews, newest first"""
        sql = f"""
        SELECT id, marketplace, title, customer_name, severity, category, created_at
        FROM reviews
        WHERE status = 'open' AND severity IN ('high', 'critical')
        ORDER BY created_at DESC
        LIMIT {int(limit)}
        """
        return self.db.query_df(sql)
