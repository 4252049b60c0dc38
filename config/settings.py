"""
Settings Configuration
Pydantic-based settings for the curation and learning pipeline.
"""
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class YouTubeSettings(BaseSettings):
    """YouTube Data API v3 configuration"""
    api_key: Optional[str] = Field(default=None, description="YouTube Data API key")
    base_url: str = Field(default="https://www.googleapis.com/youtube/v3", description="API base URL")
    request_timeout: float = Field(default=15.0, description="Per-request timeout (seconds)")
    max_retries: int = Field(default=3, description="Attempts for transport errors")

    # Quota accounting
    daily_quota_limit: int = Field(default=10000, description="Daily quota units")
    search_cost: int = Field(default=100, description="Units per search.list call")
    details_cost: int = Field(default=1, description="Units per videos.list call")
    channel_cost: int = Field(default=1, description="Units per channels.list call")
    quota_safety_ratio: float = Field(default=0.95, description="Fraction of the limit treated as exhausted")
    quota_reset_timezone: str = Field(default="America/Los_Angeles", description="Provider quota reset timezone")

    model_config = SettingsConfigDict(env_prefix="YOUTUBE_", extra="ignore")


class LLMSettings(BaseSettings):
    """LLM configuration"""
    provider: str = Field(default="openai", description="LLM provider: openai, anthropic")
    model_name: Optional[str] = Field(default=None, description="Model name (provider default when empty)")
    temperature: float = Field(default=0.2, description="Sampling temperature")
    max_tokens: int = Field(default=800, description="Max completion tokens")
    timeout: float = Field(default=60.0, description="Request timeout (seconds)")

    # API Keys
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API Key")
    anthropic_api_key: Optional[str] = Field(default=None, description="Anthropic API Key")

    model_config = SettingsConfigDict(env_prefix="LLM_", extra="ignore", protected_namespaces=())


class CurationSettings(BaseSettings):
    """Candidate filtering, scoring and run pacing"""
    min_duration_seconds: int = Field(default=120, description="Cheap filter: minimum video length")
    min_quality_estimate: float = Field(default=7.0, description="Minimum classifier quality (1-10)")
    acceptance_threshold: float = Field(default=71.0, description="Final score needed to accept")
    results_per_search: int = Field(default=25, description="max_results per search call")
    max_searches: int = Field(default=10, description="Search calls per run")
    inter_call_delay_seconds: float = Field(default=2.0, description="Pause between source calls")
    queries: List[str] = Field(default_factory=list, description="Explicit search queries (JSON list)")
    taxonomy_path: Optional[str] = Field(default=None, description="Technique taxonomy JSON file")
    default_coverage_target: int = Field(default=50, description="Target active videos per technique")
    exclusive_runs: bool = Field(default=True, description="Hold the advisory run slot during a run")

    model_config = SettingsConfigDict(env_prefix="CURATION_", extra="ignore")


class RecoverySettings(BaseSettings):
    """Stuck-run recovery sweep"""
    stuck_threshold_hours: float = Field(default=2.0, description="Running longer than this is stuck")
    interval_minutes: float = Field(default=30.0, description="Sweep interval")
    history_days: int = Field(default=7, description="Window for recent recoveries in health checks")

    model_config = SettingsConfigDict(env_prefix="RECOVERY_", extra="ignore")


class NotificationSettings(BaseSettings):
    """Operator notifications"""
    channel: str = Field(default="jsonl", description="Notification channel: jsonl, resend, log")
    out_dir: str = Field(default="./data/notifications", description="jsonl channel output directory")
    admin_email: str = Field(default="admin@localhost", description="Operator recipient")
    from_address: str = Field(default="curation@localhost", description="Sender address")
    resend_api_key: Optional[str] = Field(default=None, description="Resend API key")
    resend_base_url: str = Field(default="https://api.resend.com", description="Resend API base URL")
    request_timeout: float = Field(default=10.0, description="Email request timeout (seconds)")

    model_config = SettingsConfigDict(env_prefix="NOTIFY_", extra="ignore")


class StorageSettings(BaseSettings):
    """Store adapter"""
    database_url: str = Field(
        default="sqlite:///data/curation.db", description="memory:// or an SQLAlchemy URL"
    )
    echo: bool = Field(default=False, description="Echo SQL statements")

    model_config = SettingsConfigDict(env_prefix="STORAGE_", extra="ignore")


class LearningSettings(BaseSettings):
    """Feedback loop, daily metrics and outcome evaluation"""
    feedback_window_days: int = Field(default=30, description="Trailing window for technique adjustments")
    outcome_batch_hours: int = Field(default=24, description="Batch evaluation lookback")
    outcome_batch_limit: int = Field(default=100, description="Max outcomes per batch")
    skip_rate_alert: float = Field(default=15.0, description="Daily skip rate alert (percent)")
    bad_rate_alert: float = Field(default=5.0, description="Daily bad rate alert (percent)")

    model_config = SettingsConfigDict(env_prefix="LEARNING_", extra="ignore")


class GeneralSettings(BaseSettings):
    """General settings"""
    log_level: str = Field(default="INFO", description="Root log level")
    log_file: Optional[str] = Field(default=None, description="Log file name under logs/")
    use_rich: bool = Field(default=True, description="Rich console logging")

    model_config = SettingsConfigDict(env_prefix="APP_", extra="ignore")


class Settings(BaseSettings):
    """Aggregate of all sub-settings"""

    youtube: YouTubeSettings = Field(default_factory=YouTubeSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    curation: CurationSettings = Field(default_factory=CurationSettings)
    recovery: RecoverySettings = Field(default_factory=RecoverySettings)
    notification: NotificationSettings = Field(default_factory=NotificationSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    learning: LearningSettings = Field(default_factory=LearningSettings)
    general: GeneralSettings = Field(default_factory=GeneralSettings)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """Load settings after applying a .env file (config/.env by default)."""
        if env_path is None:
            env_path = Path(__file__).parent / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            youtube=YouTubeSettings(),
            llm=LLMSettings(),
            curation=CurationSettings(),
            recovery=RecoverySettings(),
            notification=NotificationSettings(),
            storage=StorageSettings(),
            learning=LearningSettings(),
            general=GeneralSettings(),
        )


@lru_cache()
def get_settings() -> Settings:
    """Global settings singleton"""
    return Settings.load_from_env_file()


def get_youtube_settings() -> YouTubeSettings:
    return get_settings().youtube


def get_llm_settings() -> LLMSettings:
    return get_settings().llm


def get_curation_settings() -> CurationSettings:
    return get_settings().curation


def get_recovery_settings() -> RecoverySettings:
    return get_settings().recovery


def get_notification_settings() -> NotificationSettings:
    return get_settings().notification


def get_storage_settings() -> StorageSettings:
    return get_settings().storage


def get_learning_settings() -> LearningSettings:
    return get_settings().learning
