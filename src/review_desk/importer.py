"""
Import Pipeline
Coordinates parse/fetch -> normalize -> dedup -> classify -> store
for file uploads, marketplace APIs and the mailbox
"""
import logging
from collections import Counter
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional, List, Dict, Any, Iterable, Union

import duckdb

from . import config
from .classify import ReviewClassifier, analysis_details_json
from .collect import MarketplaceClient, get_marketplace_client
from .database.models import ProcessingStatus, Review
from .ingest import parse_upload, parse_file
from .mailbox import collect_mailbox_records
from .schemas import IntermediateRecord
from .transformers import DedupFilter, normalize_records
from .utils import (
    AuthenticationError, ExternalServiceError, ValidationError, create_progress_bar,
)

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    """
    Batch tally

    For every batch: imported + skipped + rejected + malformed + failed
    equals the number of units received. A unit is a parsed row for file
    imports and a fetched review for marketplace imports. For mailbox
    imports it is a thread, plus each message that failed validation,
    since several messages merge into one thread.
    """
    imported: int = 0
    skipped: int = 0
    rejected: int = 0
    malformed: int = 0
    failed: int = 0
    product_name: Optional[str] = None
    review_ids: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.imported + self.skipped + self.rejected + self.malformed + self.failed

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def validate_import_marketplace(marketplace: Optional[str]) -> str:
    """
    Check the marketplace selector of an upload

    Raises:
        ValidationError: Missing or not one of the importable marketplaces
    """
    if not marketplace or not str(marketplace).strip():
        raise ValidationError("Marketplace is required")
    for name in config.IMPORTABLE_MARKETPLACES:
        if name.lower() == str(marketplace).strip().lower():
            return name
    raise ValidationError(
        f"Invalid marketplace '{marketplace}'. Must be one of: {config.IMPORTABLE_MARKETPLACES}"
    )


# =========================
# Importer
# =========================
class ReviewImporter:
    """Runs import batches against one review store"""

    def __init__(
        self,
        db_manager,
        classifier: Optional[ReviewClassifier] = None,
        classify: Optional[bool] = None,
        draft_replies: Optional[bool] = None,
        show_progress: bool = False
    ):
        """
        Initialize importer

        Args:
            db_manager: DatabaseManager (schema already initialized)
            classifier: AI classifier (built from config if None)
            classify: Run AI analysis per review (config default)
            draft_replies: Also draft a suggested reply per review (config default)
            show_progress: Show a tqdm progress bar (CLI)
        """
        self.db = db_manager
        self.classify = config.IMPORT_CONFIG["classify"] if classify is None else classify
        self.draft_replies = (
            config.IMPORT_CONFIG["draft_replies"] if draft_replies is None else draft_replies
        )
        self.classifier = classifier
        if self.classify and self.classifier is None:
            self.classifier = ReviewClassifier()
        self.show_progress = show_progress

    # =========================
    # Entry Points
    # =========================
    def import_file(self, filename: str, raw: bytes, marketplace: str) -> ImportResult:
        """
        Import an uploaded CSV/JSON file

        Raises:
            ValidationError: Bad marketplace selector
            ImportFileError: Bad extension, too large or unparseable
        """
        marketplace = validate_import_marketplace(marketplace)
        parsed = parse_upload(filename, raw)
        return self.import_records(
            parsed.records,
            marketplace,
            malformed=parsed.malformed,
            run_type="file_import",
            run_config={"filename": filename, "marketplace": marketplace},
        )

    def import_path(self, path: Union[str, Path], marketplace: str) -> ImportResult:
        marketplace = validate_import_marketplace(marketplace)
        parsed = parse_file(path)
        return self.import_records(
            parsed.records,
            marketplace,
            malformed=parsed.malformed,
            run_type="file_import",
            run_config={"filename": str(path), "marketplace": marketplace},
        )

    def import_from_marketplace(
        self,
        marketplace: str,
        product: str,
        provider: Optional[str] = None,
        full_sync: bool = False,
        client: Optional[MarketplaceClient] = None
    ) -> ImportResult:
        """
        Fetch a product's reviews from a marketplace API and import them

        Raises:
            ValidationError: Marketplace without API adapter / bad product
            AuthenticationError: Provider credential missing or rejected
            MarketplaceAPIError: Provider failure (nothing is stored)
        """
        marketplace = validate_import_marketplace(marketplace)
        client = client or get_marketplace_client(marketplace, provider)
        fetched = client.fetch_reviews(product, full_sync=full_sync)

        result = self.import_records(
            fetched.records,
            marketplace,
            malformed=fetched.malformed,
            run_type="marketplace_import",
            run_config={
                "marketplace": marketplace,
                "provider": fetched.provider,
                "product": product,
                "full_sync": full_sync,
            },
            product=(fetched.product_id, fetched.product_name),
        )
        result.product_name = fetched.product_name
        return result

    def import_mailbox(
        self,
        raw_messages: List[Dict[str, Any]],
        use_ai_filter: bool = False
    ) -> ImportResult:
        """Import inbox messages as Mailbox reviews (one per thread)"""
        collected = collect_mailbox_records(
            raw_messages,
            classifier=self.classifier,
            use_ai_filter=use_ai_filter,
        )
        result = self.import_records(
            collected.records,
            "Mailbox",
            malformed=collected.malformed,
            run_type="mailbox_import",
            run_config={"messages": len(raw_messages), "use_ai_filter": use_ai_filter},
        )
        # Threads the AI gate turned away are not reviews; report them as skipped
        result.skipped += collected.ignored
        return result

    # =========================
    # Core Batch
    # =========================
    def import_records(
        self,
        records: List[IntermediateRecord],
        marketplace: str,
        malformed: int = 0,
        run_type: str = "file_import",
        run_config: Optional[Dict[str, Any]] = None,
        product: Optional[tuple] = None
    ) -> ImportResult:
        """
        Normalize, deduplicate, classify and store one batch

        Args:
            records: Intermediate records in source order
            marketplace: Target marketplace tag
            malformed: Rows the parser/adapter could not use
            run_type: Label for the processing_runs audit row
            run_config: Extra details for the audit row
            product: (product_id, product_name) the whole batch belongs to

        Returns:
            ImportResult with per-outcome counts
        """
        result = ImportResult(malformed=malformed)
        run_id = self.db.start_processing_run(
            run_type, run_config, total_items=len(records) + malformed
        )

        reviews, result.rejected = normalize_records(records, marketplace)
        unique, result.skipped = DedupFilter(self.db).filter(reviews)

        ai_enabled = self._ai_ready()
        pbar = create_progress_bar(len(unique), desc="Importing", enabled=self.show_progress)
        try:
            for review in unique:
                if ai_enabled:
                    ai_enabled = self._classify(review)

                try:
                    review_id = self.db.insert_review(review)
                except (duckdb.Error, ValidationError) as e:
                    result.failed += 1
                    result.errors.append(f"{review.title!r}: {e}")
                    logger.error(f"Failed to store review {review.title!r}: {e}")
                else:
                    if review_id is None:
                        result.skipped += 1
                    else:
                        result.imported += 1
                        result.review_ids.append(review_id)
                if pbar:
                    pbar.update(1)
        finally:
            if pbar:
                pbar.close()

        stored_ids = set(result.review_ids)
        self._track_products(
            marketplace,
            reviews,
            [r for r in unique if r.id in stored_ids],
            product,
        )

        status = ProcessingStatus.COMPLETED if not result.failed else ProcessingStatus.PARTIAL
        self.db.update_processing_run(
            run_id,
            status=status.value,
            processed_items=result.imported,
            failed_items=result.failed,
            stats_dict=result.to_dict(),
        )

        logger.info(
            f"Import ({marketplace}): {result.imported} imported, {result.skipped} skipped, "
            f"{result.rejected} rejected, {result.malformed} malformed, {result.failed} failed"
        )
        return result

    # =========================
    # Helpers
    # =========================
    def _ai_ready(self) -> bool:
        if not self.classify or self.classifier is None:
            return False
        if not self.classifier.is_configured():
            logger.warning("AI classification skipped: no API key configured; using defaults")
            return False
        return True

    def _classify(self, review: Review) -> bool:
        """
        Fill classification fields in place; failures keep the defaults

        Returns:
            False when the classifier should not be called again this batch
        """
        try:
            analysis = self.classifier.analyze_review(
                review.content,
                customer_name=review.customer_name,
                marketplace=review.marketplace,
                title=review.title,
                rating=review.rating,
            )
        except AuthenticationError as e:
            logger.warning(f"AI classification disabled for this batch: {e}")
            return False
        except ExternalServiceError as e:
            logger.warning(f"Classification failed for {review.title!r}, using defaults: {e}")
            return True

        review.sentiment = analysis["sentiment"]
        review.severity = analysis["severity"]
        review.category = analysis["category"]
        review.ai_analysis_details = analysis_details_json(analysis)

        if self.draft_replies:
            try:
                review.ai_suggested_reply = self.classifier.generate_reply(
                    review.content,
                    review.customer_name,
                    review.marketplace,
                    review.sentiment,
                    review.severity,
                )
            except AuthenticationError as e:
                logger.warning(f"AI classification disabled for this batch: {e}")
                return False
            except ExternalServiceError as e:
                logger.warning(f"Reply drafting failed for {review.title!r}: {e}")
        return True

    def _track_products(
        self,
        marketplace: str,
        referenced: Iterable[Review],
        stored: Iterable[Review],
        product: Optional[tuple]
    ):
        """Create or bump every product the batch referenced"""
        new_counts = Counter(r.product_id for r in stored if r.product_id)
        names: Dict[str, Optional[str]] = {}
        for review in referenced:
            if review.product_id and review.product_id not in names:
                names[review.product_id] = review.product_name
        if product and product[0]:
            names.setdefault(product[0], product[1])
            if product[1]:
                names[product[0]] = product[1]

        for product_id, name in names.items():
            self.db.upsert_product(
                marketplace,
                product_id,
                product_name=name,
                new_reviews=new_counts.get(product_id, 0),
            )
