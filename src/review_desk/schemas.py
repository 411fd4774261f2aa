"""
Boundary schemas for Review Desk (pydantic)

- IntermediateRecord: provider-agnostic row handed to the normalizer
- Per-provider payload schemas (Axesso, Apify, Walmart/SerpAPI, mailbox)
- Request/response models for the HTTP API
"""
import re
from datetime import datetime
from typing import Optional, List, Any, Dict

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

_NUMBER_RX = re.compile(r"^\s*(\d+(?:[.,]\d+)?)")
_EMAIL_RX = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _blank_to_none(value: Any) -> Any:
    """Turn NaN/empty cells into None and scalars into strings"""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    if isinstance(value, (bool, dict, list, datetime)):
        return value
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    return str(value)


def _leading_number(value: Any) -> Any:
    """'4.0 out of 5 stars' -> 4.0"""
    if isinstance(value, str):
        m = _NUMBER_RX.match(value)
        if not m:
            return None
        return float(m.group(1).replace(",", "."))
    return value


# =========================
# Intermediate Record
# =========================
class IntermediateRecord(BaseModel):
    """
    One review-shaped row from any source, before normalization

    Fields are deliberately loose: rating and created_at stay raw and the
    normalizer decides whether the record is usable.
    """
    model_config = ConfigDict(extra="ignore")

    marketplace: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    rating: Optional[Any] = None
    created_at: Optional[Any] = None
    external_review_id: Optional[str] = None
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    asin: Optional[str] = None
    verified: Optional[bool] = None
    row_number: Optional[int] = None

    @field_validator(
        "marketplace", "title", "content", "customer_name", "customer_email",
        "external_review_id", "product_id", "product_name", "asin",
        mode="before",
    )
    @classmethod
    def _text(cls, value):
        return _blank_to_none(value)

    @field_validator("verified", mode="before")
    @classmethod
    def _verified(cls, value):
        from .utils import parse_bool
        if value is None or isinstance(value, bool):
            return value
        return parse_bool(value)


# =========================
# Provider Schemas
# =========================
class AxessoReview(BaseModel):
    """Review item of the Axesso (RapidAPI) Amazon endpoints"""
    model_config = ConfigDict(extra="ignore")

    review_id: Optional[str] = Field(default=None, alias="reviewId")
    title: Optional[str] = None
    text: Optional[str] = None
    rating: Optional[float] = None
    user_name: Optional[str] = Field(default=None, alias="userName")
    date: Optional[str] = None
    url: Optional[str] = None

    @field_validator("review_id", "title", "text", "user_name", "date", "url", mode="before")
    @classmethod
    def _text(cls, value):
        return _blank_to_none(value)

    @field_validator("rating", mode="before")
    @classmethod
    def _rating(cls, value):
        return _leading_number(value)


class AxessoReviewsResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    product_title: Optional[str] = Field(default=None, alias="productTitle")
    reviews: List[Any] = Field(default_factory=list)


class ApifyReview(BaseModel):
    """Dataset item of the junglee Amazon reviews actor"""
    model_config = ConfigDict(extra="ignore")

    review_id: Optional[str] = Field(default=None, alias="reviewId")
    review_title: Optional[str] = Field(default=None, alias="reviewTitle")
    review_text: Optional[str] = Field(default=None, alias="reviewText")
    rating: Optional[float] = None
    reviewer_name: Optional[str] = Field(default=None, alias="reviewerName")
    review_date: Optional[str] = Field(default=None, alias="reviewDate")
    verified: Optional[bool] = None
    asin: Optional[str] = None

    @field_validator(
        "review_id", "review_title", "review_text", "reviewer_name",
        "review_date", "asin", mode="before",
    )
    @classmethod
    def _text(cls, value):
        return _blank_to_none(value)

    @field_validator("rating", mode="before")
    @classmethod
    def _rating(cls, value):
        return _leading_number(value)


class ApifyRun(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    status: str
    default_dataset_id: Optional[str] = Field(default=None, alias="defaultDatasetId")


class WalmartReview(BaseModel):
    """Review item of the SerpAPI walmart_product(_reviews) engines"""
    model_config = ConfigDict(extra="ignore")

    review_id: Optional[str] = None
    author: Optional[str] = None
    rating: Optional[float] = None
    title: Optional[str] = None
    review: Optional[str] = None
    text: Optional[str] = None
    date: Optional[str] = None

    @field_validator("review_id", "author", "title", "review", "text", "date", mode="before")
    @classmethod
    def _text(cls, value):
        return _blank_to_none(value)

    @field_validator("rating", mode="before")
    @classmethod
    def _rating(cls, value):
        return _leading_number(value)

    @property
    def body(self) -> Optional[str]:
        return self.review or self.text


class EmailSender(BaseModel):
    name: Optional[str] = None
    email: str

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        value = value.strip()
        if not _EMAIL_RX.match(value):
            raise ValueError(f"invalid email address: {value!r}")
        return value


class MailboxMessage(BaseModel):
    """Inbound email as delivered by the mailbox provider"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    sender: EmailSender = Field(alias="from")
    subject: str
    body: str
    received_at: datetime = Field(alias="receivedAt")
    read: bool = False
    thread_id: Optional[str] = Field(default=None, alias="threadId")
    in_reply_to: Optional[str] = Field(default=None, alias="inReplyTo")
    message_id: Optional[str] = Field(default=None, alias="messageId")


# =========================
# API Models
# =========================
class CamelModel(BaseModel):
    """Base for API payloads: snake_case in Python, camelCase on the wire"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ReviewOut(CamelModel):
    id: str
    marketplace: str
    title: str
    content: str
    customer_name: str
    customer_email: Optional[str] = None
    rating: Optional[int] = None
    sentiment: str
    severity: str
    category: str
    status: str
    ai_suggested_reply: Optional[str] = None
    ai_analysis_details: Optional[str] = None
    external_review_id: Optional[str] = None
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    asin: Optional[str] = None
    verified: Optional[bool] = None
    created_at: datetime
    imported_at: datetime


class ProductOut(CamelModel):
    id: str
    platform: str
    product_id: str
    product_name: Optional[str] = None
    review_count: int = 0
    last_imported: Optional[datetime] = None
    created_at: Optional[datetime] = None


class StatusUpdate(CamelModel):
    status: str


class ImportResultOut(CamelModel):
    imported: int = 0
    skipped: int = 0
    rejected: int = 0
    malformed: int = 0
    failed: int = 0
    product_name: Optional[str] = None
    errors: List[str] = Field(default_factory=list)


class MarketplaceImportRequest(CamelModel):
    marketplace: str
    product: str
    provider: Optional[str] = None
    full_sync: bool = False
    classify: bool = True


class MailboxImportRequest(CamelModel):
    messages: List[Dict[str, Any]]
    use_ai_filter: bool = False
    classify: bool = True


class AnalyzeRequest(CamelModel):
    content: str
    title: Optional[str] = None
    rating: Optional[int] = None


class ReplyRequest(CamelModel):
    content: str
    customer_name: str
    marketplace: str = "Website"
    sentiment: str = "neutral"
    severity: str = "medium"


class AnalysisOut(CamelModel):
    sentiment: str
    severity: str
    category: str
    reasoning: str = ""
    specific_issues: List[str] = Field(default_factory=list)
    positive_aspects: List[str] = Field(default_factory=list)
    key_phrases: List[str] = Field(default_factory=list)
    customer_emotion: str = ""
    urgency_level: str = ""
    recommended_actions: List[str] = Field(default_factory=list)
