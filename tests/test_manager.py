"""
Tests for the DuckDB review store
"""
import pytest
from datetime import datetime

from review_desk.database.models import Review, ProcessingStatus
from review_desk.transformers import build_dedup_key
from review_desk.utils import NotFoundError, ValidationError


def make_review(title="T1", marketplace="Website", external=None, product_id=None, **kwargs):
    created = kwargs.pop("created_at", datetime(2024, 1, 1))
    review = Review(
        marketplace=marketplace,
        title=title,
        content="Body",
        customer_name="Jane",
        external_review_id=external,
        product_id=product_id,
        created_at=created,
        **kwargs
    )
    review.dedup_key = build_dedup_key(marketplace, external, "Jane", title, created)
    return review


@pytest.mark.unit
class TestSchema:

    def test_tables_created(self, db):
        assert db.get_table_stats() == {"reviews": 0, "products": 0, "processing_runs": 0}

    def test_schema_idempotent(self, db):
        db.initialize_schema()
        assert db.count_reviews() == 0

    def test_file_database_persists(self, file_db):
        file_db.insert_review(make_review())
        assert file_db.count_reviews() == 1


@pytest.mark.unit
class TestReviews:

    def test_insert_and_get(self, db):
        review_id = db.insert_review(make_review(rating=4))

        stored = db.get_review(review_id)
        assert stored.title == "T1"
        assert stored.rating == 4
        assert stored.status == "open"

    def test_duplicate_key_returns_none(self, db):
        assert db.insert_review(make_review()) is not None
        assert db.insert_review(make_review()) is None
        assert db.count_reviews() == 1

    def test_invalid_enum_rejected(self, db):
        with pytest.raises(ValidationError):
            db.insert_review(make_review(sentiment="angry"))
        assert db.count_reviews() == 0

    def test_get_unknown(self, db):
        with pytest.raises(NotFoundError):
            db.get_review("missing")

    def test_list_newest_first(self, db):
        db.insert_review(make_review(title="old", created_at=datetime(2023, 5, 1)))
        db.insert_review(make_review(title="new", created_at=datetime(2024, 5, 1)))

        assert [r.title for r in db.list_reviews()] == ["new", "old"]

    def test_list_filters(self, db):
        db.insert_review(make_review(title="A", marketplace="Amazon"))
        db.insert_review(make_review(title="B", marketplace="Walmart", status="resolved"))

        assert [r.title for r in db.list_reviews(marketplace="Amazon")] == ["A"]
        assert [r.title for r in db.list_reviews(status="resolved")] == ["B"]

    def test_status_round_trip(self, db):
        review_id = db.insert_review(make_review())
        assert db.update_review_status(review_id, "resolved").status == "resolved"

    def test_status_update_unknown_id(self, db):
        with pytest.raises(NotFoundError):
            db.update_review_status("missing", "resolved")

    def test_existing_dedup_keys(self, db):
        review = make_review()
        db.insert_review(review)
        assert db.existing_dedup_keys([review.dedup_key, "fb:other"]) == {review.dedup_key}
        assert db.existing_dedup_keys([]) == set()

    def test_get_dedup_keys_by_marketplace(self, db):
        db.insert_review(make_review(marketplace="Amazon", external="R1"))
        db.insert_review(make_review(marketplace="Walmart", external="R1"))
        assert db.get_dedup_keys("Amazon") == {"ext:Amazon:R1"}
        assert len(db.get_dedup_keys()) == 2

    def test_classification_update(self, db):
        review_id = db.insert_review(make_review())
        updated = db.update_review_classification(
            review_id, "negative", "critical", "", {"reasoning": "Safety issue"}
        )
        assert updated.severity == "critical"
        assert updated.category == "general"
        assert updated.analysis_details == {"reasoning": "Safety issue"}


@pytest.mark.unit
class TestProducts:

    def test_first_reference_creates(self, db):
        product = db.upsert_product("Amazon", "B0TEST0001", "Blender", new_reviews=3)
        assert product.review_count == 3
        assert product.product_name == "Blender"

    def test_counts_accumulate(self, db):
        db.upsert_product("Amazon", "B0TEST0001", "Blender", new_reviews=3)
        product = db.upsert_product("Amazon", "B0TEST0001", None, new_reviews=2)

        assert product.review_count == 5
        assert product.product_name == "Blender"

    def test_name_defaults_to_id(self, db):
        assert db.upsert_product("Walmart", "12345").product_name == "12345"

    def test_review_view_joins_product_name(self, db):
        db.upsert_product("Amazon", "B0TEST0001", "Blender")
        review_id = db.insert_review(make_review(marketplace="Amazon", product_id="B0TEST0001"))
        assert db.get_review(review_id).product_name == "Blender"

    def test_products_df(self, db):
        db.upsert_product("Amazon", "B0TEST0001", "Blender")
        db.upsert_product("Walmart", "12345", "Toaster")
        assert len(db.get_products_df()) == 2
        assert db.get_products_df("Walmart")["product_name"].tolist() == ["Toaster"]


@pytest.mark.unit
class TestProcessingRuns:

    def test_run_lifecycle(self, db):
        run_id = db.start_processing_run("file_import", {"file": "a.csv"}, total_items=4)
        db.update_processing_run(
            run_id,
            status=ProcessingStatus.PARTIAL.value,
            processed_items=3,
            failed_items=1,
            stats_dict={"skipped": 0},
        )

        run = db.get_last_run("file_import")
        assert run.status == "partial"
        assert run.total_items == 4
        assert run.failed_items == 1
        assert run.completed_at is not None

    def test_no_runs(self, db):
        assert db.get_last_run() is None


@pytest.mark.unit
class TestExport:

    def test_export_to_csv(self, db, temp_dir):
        db.insert_review(make_review(title="Has, comma"))
        output = temp_dir / "out" / "reviews.csv"

        count = db.export_to_csv(output)

        assert count == 1
        text = output.read_text(encoding="utf-8")
        assert '"Has, comma"' in text
