"""
Database Manager for Review Desk
Handles DuckDB connections and the review store operations
"""
import json
import logging
import threading
from pathlib import Path
from typing import Optional, List, Dict, Any, Union, Iterable, Set

import duckdb
import pandas as pd

from ..utils import NotFoundError, utcnow
from .models import (
    Review, Product, ProcessingRun, ReviewStatus, ProcessingStatus,
    Sentiment, Severity, SCHEMA_SQL, REVIEW_COLUMNS,
)

logger = logging.getLogger(__name__)

MEMORY = ":memory:"


class DatabaseManager:
    """
    Manages the DuckDB review store

    Features:
    - Schema management
    - Insert / query / status update for reviews
    - Product tracking keyed by (platform, product_id)
    - Import run tracking
    - Export of the joined review view

    Every statement runs under one re-entrant lock so the manager can be
    shared by the threads of the HTTP server.
    """

    def __init__(
        self,
        db_path: Optional[Union[str, Path]] = None,
        read_only: bool = False
    ):
        """
        Initialize database manager

        Args:
            db_path: Path to DuckDB file, or ":memory:". If None, uses
                     config.DB_PATH (data/review_desk.duckdb)
            read_only: Open database in read-only mode
        """
        if db_path is None:
            from .. import config
            db_path = config.DB_PATH

        self.db_path = None if str(db_path) == MEMORY else Path(db_path)
        self.read_only = read_only
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.RLock()

        if self.db_path:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        logger.info(f"DatabaseManager initialized: {self.db_path or 'in-memory'}")

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        """Get or create database connection"""
        if self._connection is None:
            if self.db_path:
                self._connection = duckdb.connect(
                    str(self.db_path),
                    read_only=self.read_only
                )
            else:
                self._connection = duckdb.connect(MEMORY)
        return self._connection

    def close(self):
        """Close database connection"""
        if self._connection:
            self._connection.close()
            self._connection = None
            logger.debug("Database connection closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # =========================
    # Low-level helpers
    # =========================
    def _execute(self, sql: str, params: Optional[List[Any]] = None):
        with self._lock:
            self.connection.execute(sql, params or [])

    def _fetch_dicts(self, sql: str, params: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        with self._lock:
            cursor = self.connection.execute(sql, params or [])
            columns = [d[0] for d in cursor.description]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def _fetchdf(self, sql: str, params: Optional[List[Any]] = None) -> pd.DataFrame:
        with self._lock:
            return self.connection.execute(sql, params or []).fetchdf()

    def query_df(self, sql: str, params: Optional[List[Any]] = None) -> pd.DataFrame:
        """Run a read query and return a DataFrame"""
        return self._fetchdf(sql, params)

    # =========================
    # Schema Management
    # =========================
    def initialize_schema(self):
        """Create database schema if not exists"""
        logger.info("Initializing database schema...")

        statements = [s.strip() for s in SCHEMA_SQL.split(";") if s.strip()]
        for stmt in statements:
            self._execute(stmt)

        logger.info("Database schema initialized")

    def get_table_stats(self) -> Dict[str, int]:
        """Get row counts for all tables"""
        stats = {}
        for table in ["reviews", "products", "processing_runs"]:
            rows = self._fetch_dicts(f"SELECT COUNT(*) AS n FROM {table}")
            stats[table] = int(rows[0]["n"]) if rows else 0
        return stats

    # =========================
    # Review Operations
    # =========================
    def insert_review(self, review: Review) -> Optional[str]:
        """
        Insert a validated review

        Returns:
            The review id, or None when the dedup key already exists
        """
        review.validate()
        columns = ", ".join(REVIEW_COLUMNS)
        placeholders = ", ".join(["?"] * len(REVIEW_COLUMNS))

        rows = self._fetch_dicts(
            f"""
            INSERT INTO reviews ({columns}) VALUES ({placeholders})
            ON CONFLICT DO NOTHING
            RETURNING id
            """,
            [getattr(review, col) for col in REVIEW_COLUMNS]
        )
        return rows[0]["id"] if rows else None

    def get_review(self, review_id: str) -> Review:
        """
        Get one review by id (product name joined)

        Raises:
            NotFoundError: If no review has this id
        """
        rows = self._fetch_dicts(
            "SELECT * FROM v_reviews_full WHERE id = ?", [review_id]
        )
        if not rows:
            raise NotFoundError(f"Review not found: {review_id}")
        return Review.from_row(rows[0])

    def review_exists(self, review_id: str) -> bool:
        rows = self._fetch_dicts("SELECT 1 AS x FROM reviews WHERE id = ?", [review_id])
        return bool(rows)

    def list_reviews(
        self,
        marketplace: Optional[str] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[Review]:
        """List reviews newest first (by reported creation time)"""
        where, params = self._review_filters(marketplace, status)
        sql = f"SELECT * FROM v_reviews_full WHERE {where} ORDER BY created_at DESC, id"
        if limit:
            sql += f" LIMIT {int(limit)}"
        return [Review.from_row(r) for r in self._fetch_dicts(sql, params)]

    def get_reviews_df(
        self,
        marketplace: Optional[str] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None
    ) -> pd.DataFrame:
        """Get reviews as DataFrame, newest first"""
        where, params = self._review_filters(marketplace, status)
        sql = f"SELECT * FROM v_reviews_full WHERE {where} ORDER BY created_at DESC, id"
        if limit:
            sql += f" LIMIT {int(limit)}"
        return self._fetchdf(sql, params)

    @staticmethod
    def _review_filters(marketplace: Optional[str], status: Optional[str]):
        conditions = []
        params = []
        if marketplace:
            conditions.append("marketplace = ?")
            params.append(marketplace)
        if status:
            conditions.append("status = ?")
            params.append(ReviewStatus.parse(status).value)
        return (" AND ".join(conditions) if conditions else "1=1"), params

    def update_review_status(self, review_id: str, status: Any) -> Review:
        """
        Persist a new workflow status

        Raises:
            ValidationError: If status is outside the enumerated set
            NotFoundError: If no review has this id
        """
        new_status = ReviewStatus.parse(status)
        with self._lock:
            if not self.review_exists(review_id):
                raise NotFoundError(f"Review not found: {review_id}")
            self._execute(
                "UPDATE reviews SET status = ? WHERE id = ?",
                [new_status.value, review_id]
            )
        return self.get_review(review_id)

    def update_review_reply(self, review_id: str, reply: str) -> Review:
        """Store a drafted reply for a review"""
        with self._lock:
            if not self.review_exists(review_id):
                raise NotFoundError(f"Review not found: {review_id}")
            self._execute(
                "UPDATE reviews SET ai_suggested_reply = ? WHERE id = ?",
                [reply, review_id]
            )
        return self.get_review(review_id)

    def update_review_classification(
        self,
        review_id: str,
        sentiment: Any,
        severity: Any,
        category: str,
        details: Optional[Dict[str, Any]] = None
    ) -> Review:
        """Overwrite classification fields after a re-analysis"""
        values = [
            Sentiment.parse(sentiment).value,
            Severity.parse(severity).value,
            category or "general",
            json.dumps(details or {}, ensure_ascii=False),
            review_id,
        ]
        with self._lock:
            if not self.review_exists(review_id):
                raise NotFoundError(f"Review not found: {review_id}")
            self._execute(
                """
                UPDATE reviews
                SET sentiment = ?, severity = ?, category = ?, ai_analysis_details = ?
                WHERE id = ?
                """,
                values
            )
        return self.get_review(review_id)

    def get_dedup_keys(self, marketplace: Optional[str] = None) -> Set[str]:
        """All stored dedup keys, optionally for one marketplace"""
        if marketplace:
            rows = self._fetch_dicts(
                "SELECT dedup_key FROM reviews WHERE dedup_key IS NOT NULL AND marketplace = ?",
                [marketplace]
            )
        else:
            rows = self._fetch_dicts(
                "SELECT dedup_key FROM reviews WHERE dedup_key IS NOT NULL"
            )
        return {r["dedup_key"] for r in rows}

    def existing_dedup_keys(self, keys: Iterable[str]) -> Set[str]:
        """Return the subset of keys already present in the store"""
        keys = [k for k in set(keys) if k]
        if not keys:
            return set()
        placeholders = ",".join(["?"] * len(keys))
        rows = self._fetch_dicts(
            f"SELECT dedup_key FROM reviews WHERE dedup_key IN ({placeholders})",
            keys
        )
        return {r["dedup_key"] for r in rows}

    def count_reviews(self) -> int:
        rows = self._fetch_dicts("SELECT COUNT(*) AS n FROM reviews")
        return int(rows[0]["n"])

    # =========================
    # Product Operations
    # =========================
    def upsert_product(
        self,
        platform: str,
        product_id: str,
        product_name: Optional[str] = None,
        new_reviews: int = 0
    ) -> Product:
        """
        Create a product on first reference, otherwise bump its counters

        Args:
            platform: Marketplace of the product
            product_id: Marketplace-scoped product id (e.g. ASIN)
            product_name: Display name (kept when not supplied)
            new_reviews: Number of reviews this import added
        """
        now = utcnow()
        with self._lock:
            existing = self.get_product(platform, product_id)
            if existing is None:
                product = Product(
                    platform=platform,
                    product_id=product_id,
                    product_name=product_name or product_id,
                    review_count=new_reviews,
                    last_imported=now,
                )
                self._execute(
                    """
                    INSERT INTO products (
                        id, platform, product_id, product_name,
                        review_count, last_imported, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        product.id, product.platform, product.product_id,
                        product.product_name, product.review_count,
                        product.last_imported, product.created_at,
                    ]
                )
                logger.info(f"Tracking new product {platform}/{product_id}")
            else:
                self._execute(
                    """
                    UPDATE products
                    SET review_count = review_count + ?,
                        last_imported = ?,
                        product_name = ?
                    WHERE platform = ? AND product_id = ?
                    """,
                    [
                        new_reviews, now,
                        product_name or existing.product_name,
                        platform, product_id,
                    ]
                )
            return self.get_product(platform, product_id)

    def get_product(self, platform: str, product_id: str) -> Optional[Product]:
        """Get a product by its composite key"""
        rows = self._fetch_dicts(
            "SELECT * FROM products WHERE platform = ? AND product_id = ?",
            [platform, product_id]
        )
        return Product.from_row(rows[0]) if rows else None

    def get_products_df(self, platform: Optional[str] = None) -> pd.DataFrame:
        """Get products as DataFrame with optional platform filter"""
        if platform:
            return self._fetchdf(
                "SELECT * FROM products WHERE platform = ? ORDER BY last_imported DESC",
                [platform]
            )
        return self._fetchdf("SELECT * FROM products ORDER BY last_imported DESC")

    # =========================
    # Processing Run Operations
    # =========================
    def start_processing_run(
        self,
        run_type: str,
        config_dict: Optional[Dict] = None,
        total_items: int = 0
    ) -> int:
        """Start a new processing run, returns run ID"""
        rows = self._fetch_dicts(
            """
            INSERT INTO processing_runs (
                id, run_type, status, started_at, config_json, total_items
            ) VALUES (
                nextval('seq_runs_id'), ?, ?, ?, ?, ?
            )
            RETURNING id
            """,
            [
                run_type,
                ProcessingStatus.IN_PROGRESS.value,
                utcnow(),
                json.dumps(config_dict or {}, default=str),
                total_items,
            ]
        )
        run_id = rows[0]["id"] if rows else None
        logger.info(f"Started processing run {run_id}: {run_type}")
        return run_id

    def update_processing_run(
        self,
        run_id: int,
        status: Optional[str] = None,
        total_items: Optional[int] = None,
        processed_items: Optional[int] = None,
        failed_items: Optional[int] = None,
        stats_dict: Optional[Dict] = None,
        error_message: Optional[str] = None
    ):
        """Update a processing run"""
        updates = []
        params = []

        if status:
            updates.append("status = ?")
            params.append(status)
            if status != ProcessingStatus.IN_PROGRESS.value:
                updates.append("completed_at = ?")
                params.append(utcnow())

        if total_items is not None:
            updates.append("total_items = ?")
            params.append(total_items)

        if processed_items is not None:
            updates.append("processed_items = ?")
            params.append(processed_items)

        if failed_items is not None:
            updates.append("failed_items = ?")
            params.append(failed_items)

        if stats_dict:
            updates.append("stats_json = ?")
            params.append(json.dumps(stats_dict, default=str))

        if error_message:
            updates.append("error_message = ?")
            params.append(error_message)

        if not updates:
            return

        params.append(run_id)
        self._execute(
            f"UPDATE processing_runs SET {', '.join(updates)} WHERE id = ?",
            params
        )

    def get_last_run(self, run_type: Optional[str] = None) -> Optional[ProcessingRun]:
        """Get the most recent processing run (optionally of one type)"""
        if run_type:
            rows = self._fetch_dicts(
                "SELECT * FROM processing_runs WHERE run_type = ? ORDER BY id DESC LIMIT 1",
                [run_type]
            )
        else:
            rows = self._fetch_dicts(
                "SELECT * FROM processing_runs ORDER BY id DESC LIMIT 1"
            )
        return ProcessingRun(**rows[0]) if rows else None

    # =========================
    # Export Operations
    # =========================
    def export_to_csv(self, output_path: Path, df: Optional[pd.DataFrame] = None) -> int:
        """Write reviews (all, or the given filtered frame) to a CSV file"""
        from ..export import reviews_to_csv

        if df is None:
            df = self.get_reviews_df()

        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(reviews_to_csv(df), encoding="utf-8")
        logger.info(f"Exported {len(df)} rows to {output_path}")
        return len(df)
