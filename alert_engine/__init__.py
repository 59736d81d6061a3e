"""Alerting and anomaly-detection engine.

Turns metric snapshots into actionable alerts: duration-gated condition
evaluation, cooldown-gated rule lifecycle, multi-channel notification
fan-out, and rolling statistical anomaly detection.
"""

__version__ = "0.1.0"
