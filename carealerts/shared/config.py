"""
Configuration management for Care Alerts.
Loads from config/carealerts.yaml and environment variables.
"""

from pathlib import Path
from typing import Optional, Dict, Any
import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class DetectionConfig(BaseSettings):
    """Emotional signal thresholds."""
    window_days: int = Field(default=7)
    max_samples: int = Field(default=7)
    neutral_sentiment: float = Field(default=3.5)
    persistent_low_run: int = Field(default=3)
    prolonged_negative_count: int = Field(default=5)  # strictly more than this
    low_tier_max: int = Field(default=2)
    high_tier_min: int = Field(default=5)
    volatility_min_samples: int = Field(default=5)
    volatility_threshold: float = Field(default=1.5)
    trend_band: float = Field(default=0.5)
    high_severity_sentiment: float = Field(default=1.5)
    active_student_days: int = Field(default=30)  # alert generation scope

    model_config = SettingsConfigDict(env_prefix="DETECTION_", extra="ignore")


class AcademicConfig(BaseSettings):
    """Academic provider and threshold configuration."""
    provider: str = Field(default="mock", alias="ACADEMIC_PROVIDER")  # mock, store
    low_grade_threshold: float = Field(default=70.0)
    failing_grade_threshold: float = Field(default=60.0)
    missing_work_threshold: int = Field(default=3)
    missing_work_high_threshold: int = Field(default=5)
    low_participation_threshold: float = Field(default=50.0)
    neutral_grade: float = Field(default=85.0)
    neutral_participation_rate: float = Field(default=80.0)

    model_config = SettingsConfigDict(env_prefix="ACADEMIC_", extra="ignore", populate_by_name=True)

    @field_validator("provider")
    @classmethod
    def _check_provider(cls, value: str) -> str:
        if value not in ("mock", "store"):
            raise ValueError(f"Unknown academic provider: {value}")
        return value


class RosterConfig(BaseSettings):
    """At-risk roster build configuration."""
    # live, fallback-demo, empty
    data_availability: str = Field(default="fallback-demo", alias="ROSTER_DATA_AVAILABILITY")
    timeout_seconds: float = Field(default=10.0, alias="ROSTER_TIMEOUT_SECONDS")
    max_concurrency: int = Field(default=8)
    alert_window_days: int = Field(default=7)

    model_config = SettingsConfigDict(env_prefix="ROSTER_", extra="ignore", populate_by_name=True)


class NotificationConfig(BaseSettings):
    """Defaults applied when a user has no stored preference."""
    enable_in_app: bool = Field(default=True)
    enable_email_alerts: bool = Field(default=True)
    email_alert_frequency: str = Field(default="immediate")
    enable_push_alerts: bool = Field(default=False)
    enable_quiet_hours: bool = Field(default=False)
    quiet_hours_timezone: str = Field(default="UTC")
    email_sender: str = Field(default="care-alerts@localhost", alias="NOTIFICATION_EMAIL_SENDER")

    model_config = SettingsConfigDict(env_prefix="NOTIFICATION_", extra="ignore", populate_by_name=True)


class StoreConfig(BaseSettings):
    """SQLite store configuration."""
    db_path: Path = Field(default=Path("data/carealerts.sqlite"), alias="CARE_STORE_PATH")
    busy_timeout_seconds: float = Field(default=30.0)

    model_config = SettingsConfigDict(env_prefix="STORE_", extra="ignore", populate_by_name=True)


class ApiConfig(BaseSettings):
    """API server configuration."""
    host: str = Field(default="0.0.0.0", alias="API_HOST")
    port: int = Field(default=8000, alias="API_PORT")
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    model_config = SettingsConfigDict(env_prefix="API_", extra="ignore", populate_by_name=True)


class CareAlertsSettings(BaseSettings):
    """Main Care Alerts configuration."""
    env: str = Field(default="dev", alias="CAREALERTS_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: Optional[Path] = Field(default=Path("logs/carealerts.log"), alias="LOG_FILE")

    # Sub-configurations
    api: ApiConfig = Field(default_factory=ApiConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    academic: AcademicConfig = Field(default_factory=AcademicConfig)
    roster: RosterConfig = Field(default_factory=RosterConfig)
    notification: NotificationConfig = Field(default_factory=NotificationConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
        populate_by_name=True
    )

    @classmethod
    def load_from_yaml(cls, config_path: Optional[Path] = None) -> "CareAlertsSettings":
        """Load settings from YAML file and merge with environment variables."""
        if config_path is None:
            config_path = Path("config/carealerts.yaml")

        config_dict: Dict[str, Any] = {}

        if config_path.exists():
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_data = yaml.safe_load(f) or {}
                config_dict = yaml_data.get("carealerts", {})

        # Flatten notification.defaults.* if present
        if "notification" in config_dict and isinstance(config_dict["notification"], dict):
            notification_cfg = dict(config_dict["notification"])
            defaults = notification_cfg.pop("defaults", None)
            if isinstance(defaults, dict):
                notification_cfg.update(defaults)
            config_dict["notification"] = notification_cfg

        return cls(**config_dict)


# Global settings instance
_settings: Optional[CareAlertsSettings] = None


def get_settings() -> CareAlertsSettings:
    """Get or create global settings instance."""
    global _settings
    if _settings is None:
        _settings = CareAlertsSettings.load_from_yaml()
    return _settings


# Alias for convenience
settings = get_settings()
