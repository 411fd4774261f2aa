"""
Deduplication Filter

Recognizes reviews that were already imported, either earlier in the same
batch or in the store.

Key rules:
- external id present -> "ext:<marketplace>:<external id>"
- otherwise           -> "fb:<sha1 of marketplace, customer, title, date>"
  where date is the reported creation time truncated to the second, or an
  empty slot when the source reported none.
"""
import hashlib
import json
import logging
from datetime import datetime
from typing import Optional, List, Tuple, Set

from ..database.models import Review

logger = logging.getLogger(__name__)


def build_dedup_key(
    marketplace: str,
    external_review_id: Optional[str],
    customer_name: str,
    title: str,
    created_at: Optional[datetime],
) -> str:
    """
    Compute the dedup key of a review

    Args:
        marketplace: Canonical marketplace value
        external_review_id: Stable id from the source, if any
        customer_name: Reviewer name (trimmed)
        title: Review title (trimmed)
        created_at: Reported creation time, None when the source gave none
    """
    external = (external_review_id or "").strip()
    if external:
        return f"ext:{marketplace}:{external}"

    date_slot = created_at.replace(microsecond=0).isoformat() if created_at else ""
    composite = json.dumps(
        [marketplace, (customer_name or "").strip(), (title or "").strip(), date_slot],
        ensure_ascii=False,
    )
    return "fb:" + hashlib.sha1(composite.encode("utf-8")).hexdigest()


class DedupFilter:
    """
    Batch-local and store-wide duplicate check

    Usage:
        dedup = DedupFilter(db)
        fresh, skipped = dedup.filter(reviews)

    Keys accepted by filter() are remembered, so calling it again on the
    same instance keeps rejecting them even before they reach the store.
    """

    def __init__(self, db_manager=None):
        self.db = db_manager
        self._seen: Set[str] = set()

    def is_duplicate(self, review: Review) -> bool:
        """Check one review against this batch and the store"""
        key = review.dedup_key
        if key in self._seen:
            return True
        return bool(self.db and self.db.existing_dedup_keys([key]))

    def mark(self, review: Review):
        self._seen.add(review.dedup_key)

    def filter(self, reviews: List[Review]) -> Tuple[List[Review], int]:
        """
        Drop duplicates from a normalized batch

        Returns:
            (unique reviews in input order, skipped count)
        """
        if not reviews:
            return [], 0

        stored = set()
        if self.db is not None:
            stored = self.db.existing_dedup_keys(r.dedup_key for r in reviews)

        unique = []
        skipped = 0
        for review in reviews:
            key = review.dedup_key
            if key in stored or key in self._seen:
                skipped += 1
                logger.debug(f"Duplicate skipped: {review.marketplace} / {review.title!r}")
                continue
            self._seen.add(key)
            unique.append(review)

        if skipped:
            logger.info(f"Dedup: {len(unique)} new, {skipped} duplicate(s) skipped")
        return unique, skipped
