"""
Integration tests for the import pipeline
Parse -> normalize -> dedup -> classify -> store, against an in-memory store
"""
import json
import pytest
from unittest.mock import MagicMock

from review_desk.collect import FetchResult
from review_desk.importer import ReviewImporter, validate_import_marketplace
from review_desk.schemas import IntermediateRecord
from review_desk.utils import (
    AuthenticationError, ClassifierError, ImportFileError, MarketplaceAPIError, ValidationError,
)


@pytest.fixture
def importer(db):
    return ReviewImporter(db, classify=False)


@pytest.mark.unit
class TestValidateImportMarketplace:

    @pytest.mark.parametrize("value,expected", [
        ("Website", "Website"),
        ("amazon", "Amazon"),
        (" Walmart ", "Walmart"),
    ])
    def test_accepted(self, value, expected):
        assert validate_import_marketplace(value) == expected

    @pytest.mark.parametrize("value", [None, "", "Mailbox", "Etsy"])
    def test_rejected(self, value):
        with pytest.raises(ValidationError):
            validate_import_marketplace(value)


@pytest.mark.integration
class TestFileImport:
    """File uploads through the whole pipeline"""

    def test_two_rows_different_titles(self, importer, two_row_csv):
        result = importer.import_file("reviews.csv", two_row_csv, "Website")

        assert result.imported == 2
        assert result.skipped == 0
        assert importer.db.count_reviews() == 2

    def test_reimport_skips_everything(self, importer, two_row_csv):
        importer.import_file("reviews.csv", two_row_csv, "Website")
        result = importer.import_file("reviews.csv", two_row_csv, "Website")

        assert result.imported == 0
        assert result.skipped == 2
        assert importer.db.count_reviews() == 2

    def test_same_rows_other_marketplace_are_new(self, importer, two_row_csv):
        importer.import_file("reviews.csv", two_row_csv, "Website")
        result = importer.import_file("reviews.csv", two_row_csv, "Shopify")
        assert result.imported == 2

    def test_counts_add_up(self, importer):
        raw = (
            b"Title,Content,Customer Name,Rating\n"
            b"T1,C1,Ann,5\n"
            b"T1,C1,Ann,5\n"
            b",C3,Bob,4\n"
            b"T4,C4,Cat,3,oops,extra\n"
            b"T5,C5,Dan,\n"
        )
        result = importer.import_file("reviews.csv", raw, "Website")

        assert result.imported == 2
        assert result.skipped == 1
        assert result.rejected == 1
        assert result.malformed == 1
        assert result.total == 5

    def test_missing_marketplace(self, importer, two_row_csv):
        with pytest.raises(ValidationError, match="Marketplace is required"):
            importer.import_file("reviews.csv", two_row_csv, None)

    def test_bad_extension(self, importer, two_row_csv):
        with pytest.raises(ImportFileError):
            importer.import_file("reviews.xls", two_row_csv, "Website")

    def test_stored_reviews_have_defaults(self, importer, two_row_csv):
        importer.import_file("reviews.csv", two_row_csv, "Website")
        for review in importer.db.list_reviews():
            assert review.status == "open"
            assert review.sentiment == "neutral"
            assert review.severity == "medium"
            assert review.category == "general"

    def test_json_import(self, importer, sample_json_reviews):
        raw = json.dumps(sample_json_reviews).encode()
        result = importer.import_file("reviews.json", raw, "Shopify")

        assert result.imported == 1
        assert result.rejected == 1
        assert result.malformed == 1

    def test_processing_run_recorded(self, importer, two_row_csv):
        importer.import_file("reviews.csv", two_row_csv, "Website")
        run = importer.db.get_last_run("file_import")

        assert run.status == "completed"
        assert run.processed_items == 2
        assert run.total_items == 2

    def test_import_path(self, importer, temp_dir, two_row_csv):
        path = temp_dir / "reviews.csv"
        path.write_bytes(two_row_csv)
        assert importer.import_path(path, "Website").imported == 2


@pytest.mark.integration
class TestClassification:
    """AI classification during import"""

    def test_classifier_fills_fields(self, db, stub_classifier, two_row_csv):
        importer = ReviewImporter(db, classifier=stub_classifier, classify=True)
        importer.import_file("reviews.csv", two_row_csv, "Website")

        review = db.list_reviews()[0]
        assert review.sentiment == "negative"
        assert review.severity == "high"
        assert review.category == "Product Quality"
        assert review.ai_suggested_reply.startswith("We're sorry")
        assert review.analysis_details["specific_issues"] == ["broken handle"]

    def test_classifier_failure_keeps_review(self, db, stub_classifier, two_row_csv):
        stub_classifier.analyze_review.side_effect = ClassifierError("timeout")
        importer = ReviewImporter(db, classifier=stub_classifier, classify=True)

        result = importer.import_file("reviews.csv", two_row_csv, "Website")

        assert result.imported == 2
        assert stub_classifier.analyze_review.call_count == 2
        assert {r.sentiment for r in db.list_reviews()} == {"neutral"}

    def test_auth_failure_disables_classifier(self, db, stub_classifier, two_row_csv):
        stub_classifier.analyze_review.side_effect = AuthenticationError("bad key")
        importer = ReviewImporter(db, classifier=stub_classifier, classify=True)

        result = importer.import_file("reviews.csv", two_row_csv, "Website")

        assert result.imported == 2
        assert stub_classifier.analyze_review.call_count == 1

    def test_reply_failure_keeps_analysis(self, db, stub_classifier, two_row_csv):
        stub_classifier.generate_reply.side_effect = ClassifierError("empty")
        importer = ReviewImporter(db, classifier=stub_classifier, classify=True)
        importer.import_file("reviews.csv", two_row_csv, "Website")

        review = db.list_reviews()[0]
        assert review.severity == "high"
        assert review.ai_suggested_reply is None

    def test_draft_replies_off(self, db, stub_classifier, two_row_csv):
        importer = ReviewImporter(db, classifier=stub_classifier, classify=True, draft_replies=False)
        importer.import_file("reviews.csv", two_row_csv, "Website")
        stub_classifier.generate_reply.assert_not_called()

    def test_unconfigured_classifier_skipped(self, db, stub_classifier, two_row_csv):
        stub_classifier.is_configured.return_value = False
        importer = ReviewImporter(db, classifier=stub_classifier, classify=True)

        result = importer.import_file("reviews.csv", two_row_csv, "Website")

        assert result.imported == 2
        stub_classifier.analyze_review.assert_not_called()

    def test_duplicates_not_classified(self, db, stub_classifier, two_row_csv):
        importer = ReviewImporter(db, classifier=stub_classifier, classify=True)
        importer.import_file("reviews.csv", two_row_csv, "Website")
        stub_classifier.analyze_review.reset_mock()

        importer.import_file("reviews.csv", two_row_csv, "Website")
        stub_classifier.analyze_review.assert_not_called()


@pytest.mark.integration
class TestMarketplaceImport:
    """Marketplace API imports with a mocked adapter"""

    def _client(self, records, name="Blender 3000"):
        client = MagicMock()
        client.fetch_reviews.return_value = FetchResult(
            provider="axesso",
            marketplace="Amazon",
            product_id="B0TEST0001",
            product_name=name,
            records=records,
            malformed=1,
        )
        return client

    def _records(self):
        return [
            IntermediateRecord(
                title="Loud", content="Very loud motor", customer_name="Ann",
                rating=2, external_review_id="R1", product_id="B0TEST0001",
                asin="B0TEST0001", verified=True, created_at="2024-02-01",
            ),
            IntermediateRecord(
                title="Great", content="Smoothies in seconds", customer_name="Ben",
                rating=5, external_review_id="R2", product_id="B0TEST0001",
                asin="B0TEST0001", created_at="2024-02-03",
            ),
        ]

    def test_import_and_product_tracking(self, importer):
        client = self._client(self._records())
        result = importer.import_from_marketplace("Amazon", "B0TEST0001", client=client)

        assert result.imported == 2
        assert result.malformed == 1
        assert result.product_name == "Blender 3000"

        product = importer.db.get_product("Amazon", "B0TEST0001")
        assert product.product_name == "Blender 3000"
        assert product.review_count == 2
        assert product.last_imported is not None

    def test_second_sync_dedups_by_external_id(self, importer):
        importer.import_from_marketplace("Amazon", "B0TEST0001", client=self._client(self._records()))
        records = self._records()
        records[0].title = "Edited title"
        result = importer.import_from_marketplace("Amazon", "B0TEST0001", client=self._client(records))

        assert result.imported == 0
        assert result.skipped == 2
        product = importer.db.get_product("Amazon", "B0TEST0001")
        assert product.review_count == 2

    def test_joined_product_name(self, importer):
        importer.import_from_marketplace("Amazon", "B0TEST0001", client=self._client(self._records()))
        review = importer.db.list_reviews()[0]
        assert review.display_product == "Blender 3000"

    def test_provider_failure_stores_nothing(self, importer):
        client = MagicMock()
        client.fetch_reviews.side_effect = MarketplaceAPIError("503 from provider")

        with pytest.raises(MarketplaceAPIError):
            importer.import_from_marketplace("Amazon", "B0TEST0001", client=client)
        assert importer.db.count_reviews() == 0

    def test_marketplace_without_adapter(self, importer):
        with pytest.raises(ValidationError, match="No marketplace API"):
            importer.import_from_marketplace("Shopify", "anything")


@pytest.mark.integration
class TestMailboxImport:
    """Inbox messages as Mailbox reviews"""

    def test_one_review_per_thread(self, importer, sample_messages):
        result = importer.import_mailbox(sample_messages)

        assert result.imported == 2
        reviews = {r.external_review_id: r for r in importer.db.list_reviews()}
        assert set(reviews) == {"m1", "m3"}
        assert reviews["m1"].marketplace == "Mailbox"
        assert reviews["m1"].title == "Damaged kettle"
        assert reviews["m3"].customer_name == "leo"

    def test_reimport_is_deduplicated(self, importer, sample_messages):
        importer.import_mailbox(sample_messages)
        result = importer.import_mailbox(sample_messages)
        assert result.imported == 0
        assert result.skipped == 2

    def test_invalid_message_counted(self, importer, sample_messages):
        sample_messages.append({"id": "bad", "from": {"email": "not-an-email"}})
        result = importer.import_mailbox(sample_messages)
        assert result.malformed == 1

    def test_counts_threads_not_messages(self, importer, sample_messages):
        sample_messages.append({"id": "bad", "from": {"email": "not-an-email"}})

        result = importer.import_mailbox(sample_messages)

        # two threads from three valid messages, plus the invalid one
        assert len(sample_messages) == 4
        assert result.total == 3

    def test_ai_filter_ignores_threads(self, db, stub_classifier, sample_messages):
        stub_classifier.classify_email.side_effect = [
            {"is_review_or_complaint": True, "confidence": 95, "reasoning": "complaint",
             "suggested_action": "import"},
            {"is_review_or_complaint": False, "confidence": 90, "reasoning": "newsletter",
             "suggested_action": "ignore"},
        ]
        importer = ReviewImporter(db, classifier=stub_classifier, classify=False)

        result = importer.import_mailbox(sample_messages, use_ai_filter=True)

        assert result.imported == 1
        assert result.skipped == 1
        product = db.get_product("Mailbox", "steel-kettle")
        assert product is not None
        assert product.review_count == 1
