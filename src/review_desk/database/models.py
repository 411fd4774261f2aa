"""
Data models and schema definitions for Review Desk database
Uses dataclasses for Python-side representation, DuckDB for storage
"""
import json
import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any

from ..utils import ValidationError, utcnow


class _ClosedEnum(str, Enum):
    """String enum that validates raw values at the boundary"""

    @classmethod
    def values(cls):
        return [m.value for m in cls]

    @classmethod
    def parse(cls, value: Any) -> "_ClosedEnum":
        """
        Convert a raw value into a member

        Raises:
            ValidationError: If the value is outside the enumerated set
        """
        if isinstance(value, cls):
            return value
        text = str(value).strip() if value is not None else ""
        for member in cls:
            if member.value == text or member.value.lower() == text.lower():
                return member
        raise ValidationError(
            f"Invalid {cls.__name__} '{value}'. Must be one of: {cls.values()}"
        )

    @classmethod
    def coerce(cls, value: Any, default: "_ClosedEnum") -> "_ClosedEnum":
        """Like parse, but falls back to a default instead of raising"""
        try:
            return cls.parse(value)
        except ValidationError:
            return default


class Marketplace(_ClosedEnum):
    """Originating sales channel of a review"""
    AMAZON = "Amazon"
    SHOPIFY = "Shopify"
    WALMART = "Walmart"
    WEBSITE = "Website"
    MAILBOX = "Mailbox"


class Sentiment(_ClosedEnum):
    """Review sentiment classification"""
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class Severity(_ClosedEnum):
    """Urgency classification"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ReviewStatus(_ClosedEnum):
    """Workflow triage state"""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


class ProcessingStatus(str, Enum):
    """Status of import runs"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Review:
    """
    Canonical unit of customer feedback

    created_at is the time reported by the source, imported_at is when this
    system ingested it. Sorting newest-first always uses created_at.
    """
    marketplace: str
    title: str
    content: str
    customer_name: str
    id: str = field(default_factory=new_id)
    customer_email: Optional[str] = None
    rating: Optional[int] = None
    sentiment: str = Sentiment.NEUTRAL.value
    severity: str = Severity.MEDIUM.value
    category: str = "general"
    status: str = ReviewStatus.OPEN.value
    ai_suggested_reply: Optional[str] = None
    ai_analysis_details: Optional[str] = None  # JSON text
    external_review_id: Optional[str] = None
    product_id: Optional[str] = None
    asin: Optional[str] = None
    verified: Optional[bool] = None
    created_at: datetime = field(default_factory=utcnow)
    imported_at: datetime = field(default_factory=utcnow)
    dedup_key: Optional[str] = None

    # Read-side only, joined from products
    product_name: Optional[str] = None

    def validate(self):
        """
        Parse-and-validate every enumerated field before a write

        Raises:
            ValidationError: If any field is outside its closed set
        """
        self.marketplace = Marketplace.parse(self.marketplace).value
        self.sentiment = Sentiment.parse(self.sentiment).value
        self.severity = Severity.parse(self.severity).value
        self.status = ReviewStatus.parse(self.status).value
        for name in ("title", "content", "customer_name"):
            if not (getattr(self, name) or "").strip():
                raise ValidationError(f"Review field '{name}' must not be empty")
        if not (self.category or "").strip():
            self.category = "general"

    @property
    def analysis_details(self) -> Dict[str, Any]:
        if not self.ai_analysis_details:
            return {}
        try:
            return json.loads(self.ai_analysis_details)
        except json.JSONDecodeError:
            return {}

    @property
    def display_product(self) -> Optional[str]:
        """Product display name, falling back to the raw product id"""
        return self.product_name or self.product_id

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Review":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in row.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class Product:
    """
    A marketplace product being tracked
    (platform, product_id) is the composite external key
    """
    platform: str
    product_id: str
    product_name: str = ""
    id: str = field(default_factory=new_id)
    review_count: int = 0
    last_imported: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Product":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in row.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "platform": self.platform,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "review_count": self.review_count,
            "last_imported": self.last_imported,
            "created_at": self.created_at,
        }


@dataclass
class ProcessingRun:
    """
    Tracks import batches for audit trail
    """
    id: Optional[int] = None
    run_type: str = ""  # file_import, marketplace_import, mailbox_import
    status: str = ProcessingStatus.PENDING.value
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    config_json: str = "{}"
    stats_json: str = "{}"
    error_message: Optional[str] = None

    # Counts
    total_items: int = 0
    processed_items: int = 0
    failed_items: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "run_type": self.run_type,
            "status": self.status,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "config_json": self.config_json,
            "stats_json": self.stats_json,
            "error_message": self.error_message,
            "total_items": self.total_items,
            "processed_items": self.processed_items,
            "failed_items": self.failed_items,
        }


REVIEW_COLUMNS = [
    "id", "external_review_id", "marketplace", "product_id", "asin",
    "title", "content", "customer_name", "customer_email", "rating",
    "sentiment", "severity", "category", "status", "ai_suggested_reply",
    "ai_analysis_details", "verified", "created_at", "imported_at", "dedup_key",
]


# =========================
# Schema SQL Definitions
# =========================
SCHEMA_SQL = """
-- Reviews table: canonical customer feedback
CREATE TABLE IF NOT EXISTS reviews (
    id VARCHAR PRIMARY KEY,
    external_review_id VARCHAR,
    marketplace VARCHAR NOT NULL CHECK (marketplace IN ('Amazon', 'Shopify', 'Walmart', 'Website', 'Mailbox')),
    product_id VARCHAR,
    asin VARCHAR,
    title VARCHAR NOT NULL,
    content VARCHAR NOT NULL,
    customer_name VARCHAR NOT NULL,
    customer_email VARCHAR,
    rating INTEGER CHECK (rating IS NULL OR (rating >= 1 AND rating <= 5)),
    sentiment VARCHAR NOT NULL CHECK (sentiment IN ('positive', 'negative', 'neutral')),
    severity VARCHAR NOT NULL CHECK (severity IN ('low', 'medium', 'high', 'critical')),
    category VARCHAR NOT NULL,
    status VARCHAR NOT NULL DEFAULT 'open' CHECK (status IN ('open', 'in_progress', 'resolved')),
    ai_suggested_reply VARCHAR,
    ai_analysis_details VARCHAR,
    verified BOOLEAN,
    created_at TIMESTAMP NOT NULL,
    imported_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    dedup_key VARCHAR UNIQUE
);

CREATE INDEX IF NOT EXISTS idx_reviews_marketplace ON reviews(marketplace);
CREATE INDEX IF NOT EXISTS idx_reviews_created_at ON reviews(created_at);
CREATE INDEX IF NOT EXISTS idx_reviews_product ON reviews(marketplace, product_id);

-- Products table: tracked marketplace products
CREATE TABLE IF NOT EXISTS products (
    id VARCHAR NOT NULL,
    platform VARCHAR NOT NULL,
    product_id VARCHAR NOT NULL,
    product_name VARCHAR,
    review_count INTEGER DEFAULT 0,
    last_imported TIMESTAMP,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (platform, product_id)
);

-- Processing runs table: audit trail of import batches
CREATE TABLE IF NOT EXISTS processing_runs (
    id INTEGER PRIMARY KEY,
    run_type VARCHAR NOT NULL,
    status VARCHAR DEFAULT 'pending',
    started_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    completed_at TIMESTAMP,
    config_json VARCHAR,
    stats_json VARCHAR,
    error_message VARCHAR,
    total_items INTEGER DEFAULT 0,
    processed_items INTEGER DEFAULT 0,
    failed_items INTEGER DEFAULT 0
);

CREATE SEQUENCE IF NOT EXISTS seq_runs_id START 1;

-- Reviews joined with product display names
CREATE OR REPLACE VIEW v_reviews_full AS
SELECT
    r.*,
    p.product_name
FROM reviews r
LEFT JOIN products p
    ON r.marketplace = p.platform AND r.product_id = p.product_id
"""
