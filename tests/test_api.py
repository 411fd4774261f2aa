"""
Integration tests for the HTTP API
Runs the FastAPI app against an in-memory store and a stubbed classifier
"""
import asyncio
import time

import httpx
import pytest
from fastapi.testclient import TestClient

from review_desk.api import app, get_classifier, get_db
from review_desk.utils import ClassifierError


@pytest.fixture
def client(db, stub_classifier):
    stub_classifier.is_configured.return_value = False
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_classifier] = lambda: stub_classifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def upload(client, raw, marketplace="Website", filename="reviews.csv"):
    data = {"marketplace": marketplace} if marketplace is not None else {}
    return client.post(
        "/api/import",
        files={"file": (filename, raw, "text/csv")},
        data=data,
    )


@pytest.mark.integration
class TestImportEndpoint:

    def test_import_then_reimport(self, client, two_row_csv):
        first = upload(client, two_row_csv)
        assert first.status_code == 200
        assert first.json()["imported"] == 2
        assert first.json()["skipped"] == 0

        second = upload(client, two_row_csv)
        assert second.json()["imported"] == 0
        assert second.json()["skipped"] == 2

    def test_missing_marketplace(self, client, two_row_csv):
        response = upload(client, two_row_csv, marketplace=None)
        assert response.status_code == 400
        assert "Marketplace is required" in response.json()["detail"]

    def test_invalid_marketplace(self, client, two_row_csv):
        assert upload(client, two_row_csv, marketplace="Etsy").status_code == 400

    def test_missing_file(self, client):
        response = client.post("/api/import", data={"marketplace": "Website"})
        assert response.status_code == 400

    def test_unsupported_file(self, client, two_row_csv):
        assert upload(client, two_row_csv, filename="reviews.txt").status_code == 400

    def test_template(self, client):
        response = client.get("/api/import/template")
        assert response.status_code == 200
        assert "review_import_template.csv" in response.headers["content-disposition"]
        assert response.text.startswith("Title,Content,Customer Name")


@pytest.mark.integration
class TestReviewEndpoints:

    def _seed(self, client, two_row_csv):
        upload(client, two_row_csv)
        return client.get("/api/reviews").json()

    def test_list_camel_case(self, client, two_row_csv):
        reviews = self._seed(client, two_row_csv)
        assert len(reviews) == 2
        assert {"customerName", "createdAt", "aiSuggestedReply"} <= set(reviews[0])
        assert reviews[0]["rating"] == 5

    def test_list_filters(self, client, two_row_csv):
        self._seed(client, two_row_csv)
        assert len(client.get("/api/reviews", params={"search": "t2"}).json()) == 1
        assert client.get("/api/reviews", params={"marketplace": "Amazon"}).json() == []

    def test_bad_date_range(self, client, two_row_csv):
        self._seed(client, two_row_csv)
        assert client.get("/api/reviews", params={"dateRange": "forever"}).status_code == 400

    def test_get_one(self, client, two_row_csv):
        review_id = self._seed(client, two_row_csv)[0]["id"]
        assert client.get(f"/api/reviews/{review_id}").json()["id"] == review_id

    def test_get_unknown(self, client):
        assert client.get("/api/reviews/nope").status_code == 404

    def test_status_update(self, client, two_row_csv):
        review_id = self._seed(client, two_row_csv)[0]["id"]

        response = client.patch(f"/api/reviews/{review_id}/status", json={"status": "resolved"})

        assert response.status_code == 200
        assert response.json()["status"] == "resolved"

    def test_invalid_status(self, client, two_row_csv):
        review_id = self._seed(client, two_row_csv)[0]["id"]

        response = client.patch(f"/api/reviews/{review_id}/status", json={"status": "done"})

        assert response.status_code == 400
        assert client.get(f"/api/reviews/{review_id}").json()["status"] == "open"

    def test_status_unknown_review(self, client):
        response = client.patch("/api/reviews/nope/status", json={"status": "resolved"})
        assert response.status_code == 404

    def test_draft_reply(self, client, two_row_csv):
        review_id = self._seed(client, two_row_csv)[0]["id"]
        response = client.post(f"/api/reviews/{review_id}/reply")
        assert response.json()["aiSuggestedReply"].startswith("We're sorry")

    def test_draft_reply_service_failure(self, client, two_row_csv, stub_classifier):
        review_id = self._seed(client, two_row_csv)[0]["id"]
        stub_classifier.generate_reply.side_effect = ClassifierError("model down")
        assert client.post(f"/api/reviews/{review_id}/reply").status_code == 502

    def test_reanalyze(self, client, two_row_csv):
        review_id = self._seed(client, two_row_csv)[0]["id"]

        response = client.post(f"/api/reviews/{review_id}/analyze")

        assert response.status_code == 200
        assert response.json()["severity"] == "high"
        assert client.get(f"/api/reviews/{review_id}").json()["category"] == "Product Quality"

    def test_reanalyze_unknown_review(self, client):
        assert client.post("/api/reviews/nope/analyze").status_code == 404

    def test_reanalyze_service_failure(self, client, two_row_csv, stub_classifier):
        review_id = self._seed(client, two_row_csv)[0]["id"]
        stub_classifier.analyze_review.side_effect = ClassifierError("model down")
        assert client.post(f"/api/reviews/{review_id}/analyze").status_code == 502

    def test_export(self, client, two_row_csv):
        self._seed(client, two_row_csv)
        response = client.get("/api/export", params={"search": "T1"})

        assert response.status_code == 200
        lines = response.text.splitlines()
        assert lines[0].startswith('"ID","Marketplace"')
        assert len(lines) == 2


@pytest.mark.integration
class TestOtherEndpoints:

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "ok"

    def test_analytics_overview(self, client, two_row_csv):
        upload(client, two_row_csv)
        stats = client.get("/api/analytics/overview").json()
        assert stats["total_reviews"] == 2
        assert stats["open_count"] == 2

    def test_analyze_review(self, client):
        response = client.post("/api/analyze-review", json={"content": "Handle snapped"})
        assert response.json()["severity"] == "high"
        assert response.json()["specificIssues"] == ["broken handle"]

    def test_generate_reply(self, client):
        response = client.post("/api/generate-reply", json={
            "content": "Handle snapped", "customerName": "Sam",
        })
        assert response.json() == {"reply": "We're sorry, a replacement is on its way."}

    def test_mailbox_threads(self, client, sample_messages):
        response = client.post("/api/mailbox/threads", json={"messages": sample_messages})
        threads = response.json()["threads"]
        assert [t["messageCount"] for t in threads] == [2, 1]
        assert threads[0]["subject"] == "Damaged kettle"

    def test_mailbox_import(self, client, sample_messages):
        response = client.post("/api/import/mailbox", json={"messages": sample_messages})
        assert response.json()["imported"] == 2

    def test_marketplace_without_api(self, client):
        response = client.post("/api/import/marketplace", json={
            "marketplace": "Shopify", "product": "abc",
        })
        assert response.status_code == 400

    def test_products(self, client, db):
        db.upsert_product("Amazon", "B0TEST0001", "Blender", new_reviews=2)
        products = client.get("/api/products").json()
        assert products[0]["productName"] == "Blender"
        assert products[0]["reviewCount"] == 2

    def test_integrations(self, client):
        body = client.get("/api/integrations").json()
        assert "Website" in body["marketplaces"]
        assert set(body) >= {"axesso", "apify", "walmart", "ai"}


@pytest.mark.integration
class TestConcurrentRequests:

    @pytest.mark.slow
    def test_health_answers_during_slow_import(self, db, stub_classifier, mock_analysis, two_row_csv):
        def slow_analysis(*args, **kwargs):
            time.sleep(1)
            return mock_analysis

        stub_classifier.analyze_review.side_effect = slow_analysis
        app.dependency_overrides[get_db] = lambda: db
        app.dependency_overrides[get_classifier] = lambda: stub_classifier

        async def scenario():
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
                upload_task = asyncio.create_task(http.post(
                    "/api/import",
                    files={"file": ("reviews.csv", two_row_csv, "text/csv")},
                    data={"marketplace": "Website"},
                ))
                await asyncio.sleep(0.1)
                started = time.monotonic()
                health = await http.get("/health")
                elapsed = time.monotonic() - started
                imported = await upload_task
            return health, elapsed, imported

        try:
            health, elapsed, imported = asyncio.run(scenario())
        finally:
            app.dependency_overrides.clear()

        assert health.status_code == 200
        assert elapsed < 0.6
        assert imported.json()["imported"] == 2
