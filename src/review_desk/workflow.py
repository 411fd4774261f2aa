"""
Review workflow
Status transitions on stored reviews plus the AI re-invocations that
update a stored review (reply drafting, re-analysis)
"""
import logging
from typing import List, Any, Dict

from .database.models import Review, ReviewStatus

logger = logging.getLogger(__name__)


def allowed_statuses() -> List[str]:
    return ReviewStatus.values()


def can_transition(current: Any, target: Any) -> bool:
    """
    Every state may move to every state; only the target's membership
    in the status set is checked
    """
    ReviewStatus.parse(current)
    ReviewStatus.parse(target)
    return True


class WorkflowService:
    """Drives status changes and reply updates against the review store"""

    def __init__(self, db_manager):
        self.db = db_manager

    def transition(self, review_id: str, status: Any) -> Review:
        """
        Move a review to a new status

        Args:
            review_id: Stored review id
            status: Target status (open, in_progress, resolved)

        Returns:
            The updated review as read back from the store

        Raises:
            ValidationError: Status outside the enumerated set (store untouched)
            NotFoundError: Unknown review id
        """
        target = ReviewStatus.parse(status)
        current = self.db.get_review(review_id)
        can_transition(current.status, target)

        if current.status == target.value:
            logger.debug(f"Review {review_id} already {target.value}")
            return current

        updated = self.db.update_review_status(review_id, target)
        logger.info(f"Review {review_id}: {current.status} -> {updated.status}")
        return updated

    def board(self, marketplace: str = None) -> Dict[str, List[Review]]:
        """Reviews grouped by status column, each column newest first"""
        columns: Dict[str, List[Review]] = {s: [] for s in allowed_statuses()}
        for review in self.db.list_reviews(marketplace=marketplace):
            columns[review.status].append(review)
        return columns

    def draft_reply(self, review_id: str, classifier) -> Review:
        """
        Draft a reply with the AI classifier and store it on the review

        Raises:
            NotFoundError: Unknown review id
            ExternalServiceError: Classifier unavailable or failing
        """
        review = self.db.get_review(review_id)
        reply = classifier.generate_reply(
            review.content,
            review.customer_name,
            review.marketplace,
            review.sentiment,
            review.severity,
        )
        logger.info(f"Drafted reply for review {review_id}")
        return self.db.update_review_reply(review_id, reply)

    def reanalyze(self, review_id: str, classifier) -> Review:
        """Re-run classification for a stored review and overwrite its labels"""
        review = self.db.get_review(review_id)
        analysis = classifier.analyze_review(
            review.content,
            customer_name=review.customer_name,
            marketplace=review.marketplace,
            title=review.title,
            rating=review.rating,
        )
        details = {
            k: v for k, v in analysis.items()
            if k not in ("sentiment", "severity", "category")
        }
        return self.db.update_review_classification(
            review_id,
            analysis["sentiment"],
            analysis["severity"],
            analysis["category"],
            details,
        )
