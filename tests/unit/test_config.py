"""
RFPFlow Unit Tests: Configuration and logging
"""

import io
import json
import logging
from datetime import date

import pytest

from core.config import (
    DatabaseConfig,
    LLMConfig,
    MailboxConfig,
    Settings,
    normalize_database_url,
)
from core.logging_config import JSONFormatter, setup_logging


@pytest.mark.unit
class TestConfig:
    def test_llm_defaults_target_local_ollama(self, monkeypatch):
        for name in ("LLM_BASE_URL", "LLM_MODEL", "LLM_API_KEY"):
            monkeypatch.delenv(name, raising=False)
        config = LLMConfig()
        assert config.base_url == "http://localhost:11434/v1"
        assert config.model == "llama3.2"
        assert config.temperature == 0.0

    def test_llm_env_overrides(self, monkeypatch):
        monkeypatch.setenv("LLM_MODEL", "qwen2.5")
        monkeypatch.setenv("LLM_TIMEOUT_SECONDS", "45")
        config = LLMConfig()
        assert config.model == "qwen2.5"
        assert config.timeout_seconds == 45.0

    @pytest.mark.parametrize("url,expected", [
        ("postgres://u:p@db/rfp", "postgresql+asyncpg://u:p@db/rfp"),
        ("postgresql://u:p@db/rfp", "postgresql+asyncpg://u:p@db/rfp"),
        ("postgresql+asyncpg://u:p@db/rfp", "postgresql+asyncpg://u:p@db/rfp"),
        ("sqlite+aiosqlite:///./x.db", "sqlite+aiosqlite:///./x.db"),
    ])
    def test_database_url_normalization(self, url, expected):
        assert normalize_database_url(url) == expected

    def test_database_url_from_env(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgres://u:p@db/rfp")
        assert DatabaseConfig().url == "postgresql+asyncpg://u:p@db/rfp"

    def test_search_since_uses_configured_start_date(self, monkeypatch):
        monkeypatch.setenv("EMAIL_POLL_START_DATE", "2025-01-02")
        assert MailboxConfig().search_since(date(2025, 3, 1)) == date(2025, 1, 2)

    def test_search_since_falls_back_on_bad_start_date(self, monkeypatch):
        monkeypatch.setenv("EMAIL_POLL_START_DATE", "last tuesday")
        monkeypatch.setenv("EMAIL_POLL_FALLBACK_DAYS", "3")
        assert MailboxConfig().search_since(date(2025, 3, 10)) == date(2025, 3, 7)

    def test_concurrency_is_at_least_one(self, monkeypatch):
        monkeypatch.setenv("EMAIL_POLL_CONCURRENCY", "0")
        assert MailboxConfig().concurrency == 1

    def test_mailbox_not_configured_without_credentials(self, monkeypatch):
        for name in ("IMAP_HOST", "IMAP_USER", "IMAP_PASSWORD"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings()
        assert not settings.mailbox.is_configured
        assert any("IMAP_HOST" in issue for issue in settings.validate())

    def test_cors_origins_from_env(self, monkeypatch):
        monkeypatch.setenv("CORS_ORIGINS", "http://localhost:5173, https://app.example.com")
        assert Settings().cors_origins == ["http://localhost:5173", "https://app.example.com"]


@pytest.mark.unit
class TestLogging:
    def test_json_formatter_includes_context_fields(self):
        record = logging.LogRecord("ingestion.pipeline", logging.INFO, __file__, 1, "Proposal %s", ("ingested",), None)
        record.rfp_id = 4
        record.vendor_id = 9
        data = json.loads(JSONFormatter().format(record))
        assert data["message"] == "Proposal ingested"
        assert data["level"] == "INFO"
        assert data["logger"] == "ingestion.pipeline"
        assert data["rfp_id"] == 4
        assert data["vendor_id"] == 9
        assert data["timestamp"].endswith("Z")

    def test_setup_logging_replaces_its_own_handler(self):
        stream = io.StringIO()
        root = setup_logging("DEBUG", "json", stream=stream)
        setup_logging("DEBUG", "json", stream=stream)
        ours = [h for h in root.handlers if getattr(h, "_rfpflow", False)]
        assert len(ours) == 1

        logging.getLogger("rfpflow.test").info("hello")
        assert json.loads(stream.getvalue().strip().splitlines()[-1])["message"] == "hello"
        setup_logging("INFO", "text")
