"""
RFPFlow Configuration
Environment-based configuration for the procurement service and mail poller
"""

import os
from datetime import date, datetime, timedelta
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import List, Optional


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


class Environment(str, Enum):
    """Deployment environment"""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


@dataclass
class LLMConfig:
    """Configuration for the extraction oracle (OpenAI-compatible endpoint)"""
    base_url: str = "http://localhost:11434/v1"   # Ollama's OpenAI-compatible API
    api_key: str = "ollama"
    model: str = "llama3.2"
    temperature: float = 0.0
    timeout_seconds: float = 120.0
    max_output_tokens: int = 4096

    def __post_init__(self):
        """Load from environment variables"""
        self.base_url = os.getenv("LLM_BASE_URL", self.base_url)
        self.api_key = os.getenv("LLM_API_KEY", self.api_key)
        self.model = os.getenv("LLM_MODEL", self.model)
        self.temperature = _env_float("LLM_TEMPERATURE", self.temperature)
        self.timeout_seconds = _env_float("LLM_TIMEOUT_SECONDS", self.timeout_seconds)
        self.max_output_tokens = _env_int("LLM_MAX_OUTPUT_TOKENS", self.max_output_tokens)


@dataclass
class DatabaseConfig:
    """Configuration for the durable store"""
    url: str = "sqlite+aiosqlite:///./rfpflow.db"
    echo: bool = False
    auto_create: bool = True

    def __post_init__(self):
        """Load from environment variables"""
        self.url = normalize_database_url(os.getenv("DATABASE_URL", self.url))
        self.echo = _env_bool("DB_ECHO", self.echo)
        self.auto_create = _env_bool("DB_AUTO_CREATE", self.auto_create)


def normalize_database_url(url: str) -> str:
    """Convert postgres:// style URLs to the asyncpg driver (Heroku/Render compatibility)"""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://") and "+asyncpg" not in url:
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


@dataclass
class MailboxConfig:
    """Configuration for the inbound IMAP mailbox and its poll schedule"""
    host: Optional[str] = None
    port: int = 993
    user: Optional[str] = None
    password: Optional[str] = None
    use_tls: bool = True
    folder: str = "INBOX"
    timeout_seconds: float = 30.0
    mark_seen: bool = True

    poll_interval_seconds: float = 60.0
    poll_start_date: Optional[str] = None
    fallback_days: int = 7
    concurrency: int = 1
    run_in_api: bool = False

    def __post_init__(self):
        """Load from environment variables"""
        self.host = os.getenv("IMAP_HOST", self.host)
        self.port = _env_int("IMAP_PORT", self.port)
        self.user = os.getenv("IMAP_USER", self.user)
        self.password = os.getenv("IMAP_PASSWORD", self.password)
        self.use_tls = _env_bool("IMAP_TLS", self.use_tls)
        self.folder = os.getenv("IMAP_FOLDER", self.folder)
        self.timeout_seconds = _env_float("IMAP_TIMEOUT_SECONDS", self.timeout_seconds)
        self.mark_seen = _env_bool("IMAP_MARK_SEEN", self.mark_seen)
        self.poll_interval_seconds = _env_float("EMAIL_POLL_INTERVAL_SECONDS", self.poll_interval_seconds)
        self.poll_start_date = os.getenv("EMAIL_POLL_START_DATE", self.poll_start_date)
        self.fallback_days = _env_int("EMAIL_POLL_FALLBACK_DAYS", self.fallback_days)
        self.concurrency = max(1, _env_int("EMAIL_POLL_CONCURRENCY", self.concurrency))
        self.run_in_api = _env_bool("EMAIL_POLL_IN_API", self.run_in_api)

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.user and self.password)

    def search_since(self, today: Optional[date] = None) -> date:
        """
        Lower bound for the unseen-message search.

        Uses EMAIL_POLL_START_DATE when it is set and parses as an ISO date,
        otherwise today minus the fallback window.
        """
        today = today or date.today()
        if self.poll_start_date:
            try:
                return datetime.fromisoformat(self.poll_start_date.strip()).date()
            except ValueError:
                pass
        return today - timedelta(days=self.fallback_days)


@dataclass
class ComparisonConfig:
    """Comparison scoring behaviour"""
    enforce_weights: bool = False

    def __post_init__(self):
        self.enforce_weights = _env_bool("COMPARISON_ENFORCE_WEIGHTS", self.enforce_weights)


@dataclass
class Settings:
    """Master configuration for RFPFlow"""
    environment: Environment = Environment.DEVELOPMENT

    llm: LLMConfig = field(default_factory=LLMConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    mailbox: MailboxConfig = field(default_factory=MailboxConfig)
    comparison: ComparisonConfig = field(default_factory=ComparisonConfig)

    # API settings
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"

    def __post_init__(self):
        """Load environment from env var"""
        env_str = os.getenv("RFPFLOW_ENV", "development")
        try:
            self.environment = Environment(env_str.lower())
        except ValueError:
            self.environment = Environment.DEVELOPMENT

        self.host = os.getenv("HOST", self.host)
        self.port = _env_int("PORT", self.port)
        origins = os.getenv("CORS_ORIGINS")
        if origins:
            self.cors_origins = [o.strip() for o in origins.split(",") if o.strip()]
        self.log_level = os.getenv("LOG_LEVEL", self.log_level).upper()
        self.log_format = os.getenv("LOG_FORMAT", self.log_format).lower()

    def validate(self) -> List[str]:
        """Validate configuration and return list of issues"""
        issues = []
        if not self.mailbox.is_configured:
            issues.append("IMAP_HOST/IMAP_USER/IMAP_PASSWORD not set; mailbox polling disabled")
        if self.environment == Environment.PRODUCTION and self.database.url.startswith("sqlite"):
            issues.append("DATABASE_URL points at SQLite in production")
        return issues


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
