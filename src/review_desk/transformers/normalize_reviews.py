# src/review_desk/transformers/normalize_reviews.py
# intermediate record -> canonical Review
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable

from .. import config
from ..database.models import Marketplace, Review, ReviewStatus
from ..schemas import IntermediateRecord
from ..utils import (
    ValidationError, clean_text, optional_text, parse_bool,
    parse_datetime, parse_rating, utcnow,
)
from .dedup import build_dedup_key

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("title", "content", "customer_name")


def normalize_record(
    record: IntermediateRecord,
    marketplace: str | Marketplace,
    now: datetime | None = None,
) -> Review:
    """
    Map one intermediate record onto a canonical Review.

    - marketplace is the target tag chosen by the caller (it wins over any
      marketplace the record itself carries)
    - no rating -> None (never 0); out-of-range ratings are clipped
    - no email -> None
    - no usable date -> created_at = import time; the dedup key then keeps
      an empty date slot so identical undated rows still collide
    - status always starts "open"; classification fields start at the
      safe defaults until the classifier fills them

    Raises:
        ValidationError: record lacks title, content or customer name, or
                         the marketplace tag is not one of the known ones
    """
    tag = Marketplace.parse(marketplace).value
    now = now or utcnow()

    missing = [name for name in REQUIRED_FIELDS if not clean_text(getattr(record, name))]
    if missing:
        raise ValidationError(f"missing required field(s): {', '.join(missing)}")

    title = clean_text(record.title)
    customer_name = clean_text(record.customer_name)
    reported_at = parse_datetime(record.created_at)

    external_id = optional_text(record.external_review_id)
    review = Review(
        marketplace=tag,
        title=title,
        content=clean_text(record.content),
        customer_name=customer_name,
        customer_email=optional_text(record.customer_email),
        rating=parse_rating(record.rating),
        sentiment=config.DEFAULT_SENTIMENT,
        severity=config.DEFAULT_SEVERITY,
        category=config.DEFAULT_CATEGORY,
        status=ReviewStatus.OPEN.value,
        external_review_id=external_id,
        product_id=optional_text(record.product_id),
        asin=optional_text(record.asin),
        verified=parse_bool(record.verified) if record.verified is not None else None,
        created_at=reported_at or now,
        imported_at=now,
    )
    review.product_name = optional_text(record.product_name)
    review.dedup_key = build_dedup_key(
        tag, external_id, customer_name, title, reported_at
    )
    return review


def normalize_records(
    records: Iterable[IntermediateRecord],
    marketplace: str | Marketplace,
    now: datetime | None = None,
) -> tuple[list[Review], int]:
    """
    Normalize a batch; invalid records are counted, never fatal.

    Returns:
        (reviews, rejected_count)
    """
    now = now or utcnow()
    reviews: list[Review] = []
    rejected = 0

    for i, record in enumerate(records):
        try:
            reviews.append(normalize_record(record, marketplace, now=now))
        except ValidationError as e:
            rejected += 1
            row = record.row_number if record.row_number is not None else i + 1
            logger.warning(f"Rejected row {row}: {e}")

    return reviews, rejected
