"""
Unit tests for config module
Tests domain constants, paths, logging setup and helper functions
"""
import logging
import pytest

from review_desk import config


@pytest.fixture
def restore_config():
    """Reload config from the real environment after a test reloads it"""
    import importlib
    yield
    importlib.reload(config)


# =========================
# Configuration Tests
# =========================
@pytest.mark.unit
class TestConfigLoading:
    """Test configuration loading and environment variables"""

    def test_project_root_path(self):
        assert config.PROJECT_ROOT.exists()
        assert config.PROJECT_ROOT.is_dir()

    def test_directories_created(self):
        assert config.DATA_DIR.exists()
        assert config.EXPORT_DIR.exists()
        assert config.LOGS_DIR.exists()

    def test_missing_keys_are_not_fatal(self, restore_config, monkeypatch):
        import importlib
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        monkeypatch.delenv("AI_INTEGRATIONS_OPENROUTER_API_KEY", raising=False)
        monkeypatch.setattr("dotenv.load_dotenv", lambda *a, **k: False)

        reloaded = importlib.reload(config)
        assert reloaded.OPENROUTER_API_KEY is None

    def test_keys_loaded_from_env(self, restore_config, mock_env_vars):
        import importlib
        reloaded = importlib.reload(config)

        assert reloaded.OPENROUTER_API_KEY == "test_openrouter_key_123"
        assert reloaded.SERPAPI_KEY == "test_serpapi_key_000"
        assert reloaded.is_configured("AXESSO_API_KEY")

    def test_is_configured_unknown_key(self):
        assert config.is_configured("NOT_A_SETTING") is False


@pytest.mark.unit
class TestDomainConstants:
    """Closed value sets"""

    def test_marketplaces(self):
        assert config.MARKETPLACES == ["Amazon", "Shopify", "Walmart", "Website", "Mailbox"]
        assert "Mailbox" not in config.IMPORTABLE_MARKETPLACES

    def test_statuses(self):
        assert config.STATUSES == ["open", "in_progress", "resolved"]

    def test_categories(self):
        assert len(config.REVIEW_CATEGORIES) == 12
        assert len(set(config.REVIEW_CATEGORIES)) == 12
        assert config.DEFAULT_CATEGORY not in config.REVIEW_CATEGORIES

    def test_rating_bounds(self):
        assert (config.MIN_RATING, config.MAX_RATING) == (1, 5)

    def test_upload_limit(self):
        assert config.IMPORT_CONFIG["max_file_bytes"] == 10 * 1024 * 1024

    def test_template_columns(self):
        assert config.CSV_TEMPLATE_COLUMNS[:3] == ["Title", "Content", "Customer Name"]


@pytest.mark.unit
class TestHelpers:

    def test_get_export_path(self, temp_dir):
        path = config.get_export_path("out.csv", output_dir=temp_dir / "exports")
        assert path == temp_dir / "exports" / "out.csv"
        assert path.parent.exists()

    def test_default_export_dir(self):
        assert config.get_export_path("x.csv").parent == config.EXPORT_DIR

    def test_setup_logging(self):
        config.setup_logging(debug=True)
        logger = logging.getLogger("review_desk")
        assert logger.level == logging.DEBUG
        assert logger.handlers[0].level == logging.DEBUG

    def test_print_config_summary(self, capsys):
        config.print_config_summary()
        assert "Review Desk Configuration" in capsys.readouterr().out
