"""
Central configuration for Review Desk
Handles environment variables, paths, API settings and domain constants
"""
import os
import logging.config
from pathlib import Path
from typing import Optional, List
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# =========================
# Base Paths
# =========================
PROJECT_ROOT = Path(__file__).resolve().parents[2]
DATA_DIR = Path(os.getenv("REVIEW_DESK_DATA_DIR", PROJECT_ROOT / "data"))
EXPORT_DIR = DATA_DIR / "exports"
LOGS_DIR = PROJECT_ROOT / "logs"

DB_PATH = Path(os.getenv("REVIEW_DESK_DB", DATA_DIR / "review_desk.duckdb"))

# Ensure critical directories exist
for dir_path in [DATA_DIR, EXPORT_DIR, LOGS_DIR]:
    dir_path.mkdir(parents=True, exist_ok=True)

# =========================
# API Credentials
# =========================
# Missing keys are not fatal here: each client raises AuthenticationError
# when the operation that needs the key is attempted.
OPENROUTER_API_KEY = (
    os.getenv("OPENROUTER_API_KEY")
    or os.getenv("AI_INTEGRATIONS_OPENROUTER_API_KEY")
)
OPENROUTER_BASE_URL = (
    os.getenv("OPENROUTER_BASE_URL")
    or os.getenv("AI_INTEGRATIONS_OPENROUTER_BASE_URL")
    or "https://openrouter.ai/api/v1"
)
AXESSO_API_KEY = os.getenv("AXESSO_API_KEY")
APIFY_API_TOKEN = os.getenv("APIFY_API_TOKEN")
SERPAPI_KEY = os.getenv("SERPAPI_KEY") or os.getenv("SERPAPI_API_KEY")

# =========================
# AI Settings
# =========================
AI_CONFIG = {
    "api_key": OPENROUTER_API_KEY,
    "base_url": OPENROUTER_BASE_URL,
    "model": os.getenv("REVIEW_DESK_AI_MODEL", "x-ai/grok-4.1-fast"),
    "analyze_temperature": 0.3,
    "analyze_max_tokens": 500,
    "reply_temperature": 0.7,
    "reply_max_tokens": 300,
    "email_temperature": 0.2,
    "email_max_tokens": 300,
    "max_retries": 5,
    "retry_min_wait": 1,
    "retry_max_wait": 20,
    "app_title": "Review Desk",
    "app_referer": "https://github.com/review-desk/review-desk",
}

# =========================
# Marketplace Settings
# =========================
MARKETPLACE_CONFIG = {
    "timeout": 60,
    "max_retries": 5,
    "retry_min_wait": 1,
    "retry_max_wait": 20,
    "axesso_base_url": "https://axesso-axesso-amazon-data-service-v1.p.rapidapi.com",
    "axesso_host": "axesso-axesso-amazon-data-service-v1.p.rapidapi.com",
    "apify_base_url": "https://api.apify.com/v2",
    "apify_amazon_actor": "junglee~amazon-reviews-scraper",
    "apify_poll_seconds": 3,
    "apify_max_wait_seconds": 120,
    "apify_max_reviews": 100,
    "serpapi_url": "https://serpapi.com/search.json",
    "walmart_max_pages_full": 10,
    "walmart_max_pages_quick": 1,
}

# =========================
# Import Settings
# =========================
IMPORT_CONFIG = {
    "max_file_bytes": 10 * 1024 * 1024,
    "allowed_suffixes": [".csv", ".json"],
    "classify": True,
    "draft_replies": True,
}

# =========================
# Domain Constants
# =========================
MARKETPLACES: List[str] = ["Amazon", "Shopify", "Walmart", "Website", "Mailbox"]
IMPORTABLE_MARKETPLACES: List[str] = ["Amazon", "Shopify", "Walmart", "Website"]

SENTIMENTS: List[str] = ["positive", "negative", "neutral"]
SEVERITIES: List[str] = ["low", "medium", "high", "critical"]
STATUSES: List[str] = ["open", "in_progress", "resolved"]

DEFAULT_SENTIMENT = "neutral"
DEFAULT_SEVERITY = "medium"
DEFAULT_CATEGORY = "general"
DEFAULT_STATUS = "open"

REVIEW_CATEGORIES: List[str] = [
    "Product Quality",
    "Product Performance",
    "Shipping & Delivery",
    "Packaging",
    "Customer Service",
    "Value & Pricing",
    "Sizing & Fit",
    "Color & Appearance",
    "Setup & Instructions",
    "Compatibility",
    "Safety Concern",
    "Praise & Satisfaction",
]

MIN_RATING = 1
MAX_RATING = 5

CSV_TEMPLATE_COLUMNS: List[str] = [
    "Title", "Content", "Customer Name", "Customer Email", "Rating", "Created At"
]

EXPORT_COLUMNS: List[str] = [
    "ID", "Marketplace", "Title", "Content", "Customer Name", "Customer Email",
    "Rating", "Sentiment", "Category", "Severity", "Status", "Created At",
    "AI Suggested Reply",
]

# =========================
# Logging Configuration
# =========================
LOG_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        },
        "detailed": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": "INFO",
            "formatter": "standard",
            "stream": "ext://sys.stdout",
        },
        "file": {
            "class": "logging.FileHandler",
            "level": "DEBUG",
            "formatter": "detailed",
            "filename": str(LOGS_DIR / "review_desk.log"),
            "mode": "a",
        },
    },
    "loggers": {
        "review_desk": {
            "level": "DEBUG",
            "handlers": ["console", "file"],
            "propagate": False,
        }
    },
    "root": {"level": "INFO", "handlers": ["console", "file"]},
}


def setup_logging(debug: bool = False):
    """Apply LOG_CONFIG; called by entry points, never by library code"""
    logging.config.dictConfig(LOG_CONFIG)
    if debug:
        logging.getLogger("review_desk").handlers[0].setLevel(logging.DEBUG)


# =========================
# Helper Functions
# =========================
def get_export_path(filename: str, output_dir: Optional[Path] = None) -> Path:
    """
    Get standardized path for an export file

    Args:
        filename: Output filename
        output_dir: Optional custom output directory

    Returns:
        Path object for output file
    """
    if output_dir is None:
        output_dir = EXPORT_DIR

    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir / filename


def is_configured(key_name: str) -> bool:
    """Check whether a credential is present in the environment"""
    return bool(globals().get(key_name))


# =========================
# Environment Info
# =========================
def print_config_summary():
    """Print configuration summary for debugging"""
    print("=" * 60)
    print("Review Desk Configuration")
    print("=" * 60)
    print(f"Project Root: {PROJECT_ROOT}")
    print(f"Database: {DB_PATH}")
    print(f"Logs Directory: {LOGS_DIR}")
    print(f"\nOpenRouter Key: {'✓ Set' if OPENROUTER_API_KEY else '✗ Missing'}")
    print(f"Axesso Key: {'✓ Set' if AXESSO_API_KEY else '✗ Missing'}")
    print(f"Apify Token: {'✓ Set' if APIFY_API_TOKEN else '✗ Missing'}")
    print(f"SerpAPI Key: {'✓ Set' if SERPAPI_KEY else '✗ Missing'}")
    print(f"\nAI Model: {AI_CONFIG['model']}")
    print(f"Max Upload: {IMPORT_CONFIG['max_file_bytes'] // (1024 * 1024)}MB")
    print(f"Categories: {len(REVIEW_CATEGORIES)}")
    print("=" * 60)


if __name__ == "__main__":
    print_config_summary()
