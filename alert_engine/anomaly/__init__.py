"""Rolling statistical anomaly detection for metric streams.

Components:
- AnomalyConfig: Pydantic settings for sensitivity and thresholds
- AnomalyDetector: Per-metric sliding window with spike, drop, outlier
  and trend-change checks
- Anomaly / AnomalyType: Detection results
"""

from alert_engine.anomaly.config import AnomalyConfig
from alert_engine.anomaly.detector import AnomalyDetector
from alert_engine.anomaly.schemas import VALID_ANOMALY_TYPES, Anomaly, AnomalyType

__all__ = [
    "Anomaly",
    "AnomalyConfig",
    "AnomalyDetector",
    "AnomalyType",
    "VALID_ANOMALY_TYPES",
]
