"""
Pytest configuration and shared fixtures
"""
import pytest
import pandas as pd
from pathlib import Path
import tempfile
import shutil
import sys
from datetime import datetime
from unittest.mock import MagicMock

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from review_desk.database import DatabaseManager


# =========================
# Pytest Configuration
# =========================
def pytest_configure(config):
    """Configure pytest markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no API calls)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (several components, mocked APIs)"
    )
    config.addinivalue_line(
        "markers", "slow: Slow tests (large datasets)"
    )


# =========================
# Directory Fixtures
# =========================
@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files"""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path)


# =========================
# Database Fixtures
# =========================
@pytest.fixture
def db():
    """In-memory review store with schema"""
    manager = DatabaseManager(":memory:")
    manager.initialize_schema()
    yield manager
    manager.close()


@pytest.fixture
def file_db(temp_dir):
    """File-backed review store"""
    manager = DatabaseManager(temp_dir / "test.duckdb")
    manager.initialize_schema()
    yield manager
    manager.close()


# =========================
# Sample Data Fixtures
# =========================
@pytest.fixture
def two_row_csv():
    """Two rows sharing customer and date but not title"""
    return (
        "Title,Content,Customer Name,Customer Email,Rating,Created At\n"
        "T1,C1,Jane,j@x.com,5,2024-01-01\n"
        "T2,C2,Jane,j@x.com,5,2024-01-01\n"
    ).encode("utf-8")


@pytest.fixture
def sample_json_reviews():
    """JSON upload with one valid, one incomplete and one malformed item"""
    return [
        {
            "title": "Broke after a week",
            "content": "The handle snapped off.",
            "customerName": "Sam",
            "rating": 1,
            "createdAt": "2024-03-02T10:00:00Z",
        },
        {
            "title": "No author",
            "content": "Missing the customer name",
        },
        "not an object",
    ]


@pytest.fixture
def sample_reviews_df():
    """Review frame shaped like DatabaseManager.get_reviews_df()"""
    return pd.DataFrame({
        "id": ["r1", "r2", "r3", "r4"],
        "marketplace": ["Amazon", "Walmart", "Website", "Amazon"],
        "title": ["Great blender", "Late delivery", "Okay", "Leaking lid"],
        "content": ["Works well", "Box arrived a week late", "Fine", "Lid leaks everywhere"],
        "customer_name": ["Alice", "Bob", "Carol", "Dan"],
        "customer_email": ["a@x.com", None, None, "d@x.com"],
        "rating": [5.0, 2.0, None, 1.0],
        "sentiment": ["positive", "negative", "neutral", "negative"],
        "severity": ["low", "medium", "low", "critical"],
        "category": ["Praise & Satisfaction", "Shipping & Delivery", "general", "Product Quality"],
        "status": ["open", "in_progress", "resolved", "open"],
        "ai_suggested_reply": [None, "Sorry about the delay", None, None],
        "product_id": ["B0TEST0001", None, None, "B0TEST0002"],
        "product_name": ["Blender 3000", None, None, None],
        "created_at": pd.to_datetime([
            "2024-03-01", "2024-02-15", "2024-01-10", "2024-03-05",
        ]),
        "imported_at": pd.to_datetime(["2024-03-10"] * 4),
    })


@pytest.fixture
def sample_messages():
    """Mailbox provider messages: one two-message thread and a standalone email"""
    return [
        {
            "id": "m1",
            "from": {"name": "Priya", "email": "priya@example.com"},
            "subject": "Damaged kettle",
            "body": "My kettle arrived with a cracked base.",
            "receivedAt": "2024-04-01T09:00:00Z",
            "read": True,
            "threadId": "t-100",
        },
        {
            "id": "m2",
            "from": {"name": "Priya", "email": "priya@example.com"},
            "subject": "Re: Damaged kettle",
            "body": "Any update on a replacement?",
            "receivedAt": "2024-04-03T09:00:00Z",
            "read": False,
            "threadId": "t-100",
        },
        {
            "id": "m3",
            "from": {"email": "leo@example.com"},
            "subject": "Love the mugs",
            "body": "Bought four, all perfect.",
            "receivedAt": "2024-04-02T12:00:00Z",
        },
    ]


# =========================
# API Mock Fixtures
# =========================
@pytest.fixture
def mock_analysis():
    """Analysis as returned by ReviewClassifier.analyze_review"""
    return {
        "sentiment": "negative",
        "severity": "high",
        "category": "Product Quality",
        "reasoning": "Product failed quickly",
        "specific_issues": ["broken handle"],
        "positive_aspects": [],
        "key_phrases": ["snapped off"],
        "customer_emotion": "frustrated",
        "urgency_level": "high",
        "recommended_actions": ["Offer replacement"],
    }


@pytest.fixture
def stub_classifier(mock_analysis):
    """Configured classifier double"""
    classifier = MagicMock()
    classifier.is_configured.return_value = True
    classifier.analyze_review.return_value = mock_analysis
    classifier.generate_reply.return_value = "We're sorry, a replacement is on its way."
    classifier.classify_email.return_value = {
        "is_review_or_complaint": True,
        "confidence": 90,
        "reasoning": "Complaint about a product",
        "suggested_action": "import",
    }
    classifier.extract_product.return_value = {
        "product_name": "Steel Kettle",
        "product_id": "steel-kettle",
        "confidence": 80,
        "reasoning": "Mentions kettle",
    }
    return classifier


def make_chat_completion(content: str):
    """Object shaped like an OpenAI chat completion"""
    message = MagicMock()
    message.content = content
    choice = MagicMock()
    choice.message = message
    completion = MagicMock()
    completion.choices = [choice]
    return completion


@pytest.fixture
def chat_completion():
    return make_chat_completion


# =========================
# Environment Fixtures
# =========================
@pytest.fixture
def mock_env_vars(monkeypatch):
    """Mock environment variables"""
    monkeypatch.setenv("OPENROUTER_API_KEY", "test_openrouter_key_123")
    monkeypatch.setenv("AXESSO_API_KEY", "test_axesso_key_456")
    monkeypatch.setenv("APIFY_API_TOKEN", "test_apify_token_789")
    monkeypatch.setenv("SERPAPI_KEY", "test_serpapi_key_000")


@pytest.fixture
def fixed_now():
    return datetime(2024, 6, 1, 12, 0, 0)
