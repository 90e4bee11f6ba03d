from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Tenant settings
    TENANT_DOMAIN: str = "timebeacon.io"

    # Redis settings (in-memory stores are used when unset)
    REDIS_URL: str | None = None
    REDIS_KEY_PREFIX: str = "timebeacon"

    # Google activity source
    GOOGLE_ACCESS_TOKEN: str | None = None

    # =================================================================
    # SYNC SETTINGS
    # =================================================================
    SYNC_INTERVAL_SECONDS: float = 300.0  # 5 minutes
    SYNC_LOOKBACK_HOURS: int = 24
    SOURCE_FETCH_TIMEOUT_SECONDS: float = 30.0
    AUTO_SYNC_ON_STARTUP: bool = False

    SYNC_MIN_DURATION_MINUTES: int = 5
    SYNC_EXCLUDE_PATTERNS: list[str] = [
        "spam",
        "junk",
        "unsubscribe",
        "newsletter",
        "automated",
    ]
    SYNC_DISABLED_SOURCES: list[str] = []

    # =================================================================
    # REVIEW / BILLING SETTINGS
    # =================================================================
    REVIEW_AUTO_APPROVE: bool = False
    REVIEW_CONFIDENCE_THRESHOLD: float = 0.9
    REVIEW_REQUIRE_APPROVAL: bool = True
    BILLABLE_CONFIDENCE_THRESHOLD: float = 0.7

    DEFAULT_PROJECT: str = "General Work"
    DEFAULT_CLIENT: str = "Unassigned Client"
    INTERNAL_CLIENT: str = "Internal"

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def uses_redis(self) -> bool:
        return bool(self.REDIS_URL)

    def get_review_policy_config(self) -> dict:
        """Initial review policy values, adjusted for the environment."""
        config = {
            "auto_approve": self.REVIEW_AUTO_APPROVE,
            "confidence_threshold": self.REVIEW_CONFIDENCE_THRESHOLD,
            "require_approval": self.REVIEW_REQUIRE_APPROVAL,
        }

        if self.environment == "production":
            # Production always starts gated; auto-approve is opt-in at runtime
            config["require_approval"] = True

        return config

    def get_sync_settings_config(self) -> dict:
        return {
            "min_duration_minutes": self.SYNC_MIN_DURATION_MINUTES,
            "exclude_patterns": list(self.SYNC_EXCLUDE_PATTERNS),
            "disabled_sources": list(self.SYNC_DISABLED_SOURCES),
        }


settings = Settings()
