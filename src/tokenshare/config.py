"""Application configuration."""

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Loads and validates application settings from the environment."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    LOG_LEVEL: str = "INFO"

    # Reading suggestions
    AVERAGE_DAILY_USAGE_KWH: Decimal = Decimal("12")
    MINIMUM_SUGGESTED_INCREMENT_KWH: Decimal = Decimal("10")
    DEFAULT_READING_SUGGESTION_KWH: Decimal = Decimal("5000")

    # Cost analysis
    EMERGENCY_PENALTY_RATE: Decimal = Decimal("0.10")

    # Number of earlier readings used for consumption anomaly checks
    CONSUMPTION_HISTORY_LIMIT: int = 30

    # Nightly integrity audit
    INTEGRITY_AUDIT_HOUR: int = 2
    INTEGRITY_AUDIT_MINUTE: int = 0


settings = Settings()
