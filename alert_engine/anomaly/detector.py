"""Rolling statistical anomaly detection.

Each metric keeps a sliding window of raw samples. Every call to
``detect`` appends the sample, then runs four independent checks against
population statistics of the whole window:

- spike / drop: value beyond ``mean ± std_dev_threshold * std``
- outlier: z-score beyond ``1.5 * std_dev_threshold``
- trend change: least-squares slopes of the two window halves point in
  opposite directions and differ by more than the slope threshold

A single sample may produce several anomalies (a large spike is usually
also an outlier).
"""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass

import numpy as np

from alert_engine.anomaly.config import AnomalyConfig
from alert_engine.anomaly.schemas import Anomaly

logger = logging.getLogger(__name__)


# ── Pure helpers (stateless, no I/O) ─────────────────────────


@dataclass(frozen=True)
class WindowStats:
    """Population statistics of a sample window."""

    mean: float
    std_dev: float


def _window_stats(values: np.ndarray) -> WindowStats:
    """Population mean and standard deviation (ddof=0)."""
    return WindowStats(mean=float(values.mean()), std_dev=float(values.std()))


def _z_score(delta: float, std_dev: float) -> float:
    """Scale a distance from the mean by the standard deviation.

    A flat window has no spread, so any non-zero distance is infinitely
    unusual and a zero distance is not unusual at all.
    """
    if std_dev == 0:
        return math.inf if delta > 0 else (-math.inf if delta < 0 else 0.0)
    return delta / std_dev


def _slope(values: np.ndarray) -> float:
    """Least-squares slope of values against their index."""
    if len(values) < 2:
        return 0.0
    x = np.arange(len(values), dtype=np.float64)
    slope, _intercept = np.polyfit(x, values, 1)
    return float(slope)


# ── Detector ─────────────────────────────────────────────────


class AnomalyDetector:
    """Per-metric sliding-window anomaly detector.

    Args:
        config: Detector configuration (defaults created if None).
    """

    def __init__(self, config: AnomalyConfig | None = None) -> None:
        self._config = config or AnomalyConfig()
        self._history: dict[str, deque[float]] = {}

    def detect(self, metric: str, value: float, timestamp: float) -> list[Anomaly]:
        """Record a sample and return any anomalies it represents.

        Args:
            metric: Metric name.
            value: New sample.
            timestamp: Sample time, copied into returned anomalies.

        Returns:
            Zero or more anomalies. Always empty while the metric has
            fewer than ``min_data_points`` samples.
        """
        cfg = self._config
        history = self._history.get(metric)
        if history is None:
            history = deque(maxlen=cfg.max_history)
            self._history[metric] = history
        history.append(value)

        if len(history) < cfg.min_data_points:
            return []

        window = np.fromiter(history, dtype=np.float64, count=len(history))
        stats = _window_stats(window)
        anomalies: list[Anomaly] = []

        if cfg.enable_spike:
            spike = self._detect_spike(value, stats, timestamp)
            if spike is not None:
                anomalies.append(spike)

        if cfg.enable_drop:
            drop = self._detect_drop(value, stats, timestamp)
            if drop is not None:
                anomalies.append(drop)

        if cfg.enable_outlier:
            outlier = self._detect_outlier(value, stats, timestamp)
            if outlier is not None:
                anomalies.append(outlier)

        if cfg.enable_trend_change and len(history) >= cfg.trend_min_points:
            trend = self._detect_trend_change(window, stats, timestamp)
            if trend is not None:
                anomalies.append(trend)

        if anomalies:
            logger.debug(
                "Metric %s: %d anomalies at %s (%s)",
                metric, len(anomalies), timestamp,
                ", ".join(a.type for a in anomalies),
            )
        return anomalies

    def _detect_spike(
        self, value: float, stats: WindowStats, timestamp: float,
    ) -> Anomaly | None:
        threshold = self._config.std_dev_threshold
        # Positive-form comparison: a NaN in the window never reports
        if not value > stats.mean + threshold * stats.std_dev:
            return None

        deviation = _z_score(value - stats.mean, stats.std_dev)
        confidence = min(deviation / threshold, 1.0)
        if confidence < self._config.sensitivity:
            return None

        return Anomaly(
            type="spike",
            timestamp=timestamp,
            value=value,
            expected_value=stats.mean,
            deviation=deviation,
            confidence=confidence,
            description=(
                f"Value {value:.2f} is {deviation:.2f} standard deviations above mean"
            ),
        )

    def _detect_drop(
        self, value: float, stats: WindowStats, timestamp: float,
    ) -> Anomaly | None:
        threshold = self._config.std_dev_threshold
        if not value < stats.mean - threshold * stats.std_dev:
            return None

        deviation = _z_score(stats.mean - value, stats.std_dev)
        confidence = min(deviation / threshold, 1.0)
        if confidence < self._config.sensitivity:
            return None

        return Anomaly(
            type="drop",
            timestamp=timestamp,
            value=value,
            expected_value=stats.mean,
            deviation=deviation,
            confidence=confidence,
            description=(
                f"Value {value:.2f} is {deviation:.2f} standard deviations below mean"
            ),
        )

    def _detect_outlier(
        self, value: float, stats: WindowStats, timestamp: float,
    ) -> Anomaly | None:
        threshold = self._config.std_dev_threshold
        z = abs(_z_score(value - stats.mean, stats.std_dev))
        if not z > threshold * 1.5:
            return None

        confidence = min(z / (threshold * 2), 1.0)
        if confidence < self._config.sensitivity:
            return None

        return Anomaly(
            type="outlier",
            timestamp=timestamp,
            value=value,
            expected_value=stats.mean,
            deviation=z,
            confidence=confidence,
            description=f"Value {value:.2f} is an outlier with z-score {z:.2f}",
        )

    def _detect_trend_change(
        self, window: np.ndarray, stats: WindowStats, timestamp: float,
    ) -> Anomaly | None:
        mid = len(window) // 2
        first_slope = _slope(window[:mid])
        second_slope = _slope(window[mid:])

        slope_change = abs(second_slope - first_slope)
        if not slope_change > self._config.trend_slope_threshold:
            return None
        if np.sign(first_slope) == np.sign(second_slope):
            return None

        # Confidence is the configured sensitivity, not derived from the slopes
        return Anomaly(
            type="trend_change",
            timestamp=timestamp,
            value=float(window[-1]),
            expected_value=stats.mean,
            deviation=slope_change,
            confidence=self._config.sensitivity,
            description=(
                f"Trend changed from {first_slope:.3f} to {second_slope:.3f}"
            ),
        )

    def history_size(self, metric: str) -> int:
        """Number of samples currently retained for a metric."""
        history = self._history.get(metric)
        return len(history) if history is not None else 0

    def reset(self) -> None:
        """Forget all sample history."""
        self._history.clear()

    def reset_metric(self, metric: str) -> None:
        """Forget one metric's sample history."""
        self._history.pop(metric, None)

    def get_config(self) -> AnomalyConfig:
        """Return a copy of the effective configuration."""
        return self._config.model_copy()
