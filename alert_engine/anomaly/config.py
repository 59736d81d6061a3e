"""Anomaly detector configuration.

All settings can be overridden via ``ANOMALY_*`` environment variables
(e.g. ``ANOMALY_STD_DEV_THRESHOLD=2.5``).
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnomalyConfig(BaseSettings):
    """Thresholds and toggles for rolling statistical anomaly detection."""

    model_config = SettingsConfigDict(
        env_prefix="ANOMALY_",
        case_sensitive=False,
        extra="ignore",
    )

    sensitivity: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Minimum confidence to report an anomaly (higher = fewer reports)",
    )
    min_data_points: int = Field(
        default=20,
        ge=2,
        description="Samples required before any detection runs (cold start guard)",
    )
    std_dev_threshold: float = Field(
        default=3.0,
        gt=0.0,
        description="Standard deviations from the mean for spike/drop detection",
    )

    # ── Detector toggles ─────────────────────────────────────
    enable_spike: bool = True
    enable_drop: bool = True
    enable_trend_change: bool = True
    enable_outlier: bool = True

    # ── History and trend parameters ─────────────────────────
    max_history: int = Field(
        default=1000,
        ge=1,
        description="Samples retained per metric (oldest evicted first)",
    )
    trend_min_points: int = Field(
        default=50,
        ge=4,
        description="Samples required before trend-change detection runs",
    )
    trend_slope_threshold: float = Field(
        default=0.5,
        ge=0.0,
        description="Minimum abs(slope delta) between history halves",
    )
