"""Alert manager configuration.

Controls the auto-evaluation interval, history bound, and whether the
manager owns an anomaly detector. All settings can be overridden via
``ALERTS_*`` environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from alert_engine.anomaly.config import AnomalyConfig


class AlertConfig(BaseSettings):
    """Configuration for the alert manager."""

    model_config = SettingsConfigDict(
        env_prefix="ALERTS_",
        case_sensitive=False,
        extra="ignore",
    )

    enable_anomaly_detection: bool = Field(
        default=False,
        description="Create an AnomalyDetector and serve detect_anomalies()",
    )
    anomaly: AnomalyConfig | None = Field(
        default=None,
        description="Detector settings (defaults used when None)",
    )
    evaluation_interval_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Seconds between auto-evaluation ticks",
    )
    max_history_size: int = Field(
        default=1000,
        ge=1,
        description="Alert history entries retained (oldest evicted first)",
    )
