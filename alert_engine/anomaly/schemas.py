"""Schema definitions for detected anomalies.

Anomalies are ephemeral: ``AnomalyDetector.detect`` returns them and
keeps only the raw sample history.
"""

from dataclasses import dataclass
from typing import Any, Literal

AnomalyType = Literal["spike", "drop", "outlier", "trend_change"]

VALID_ANOMALY_TYPES: frozenset[str] = frozenset({
    "spike",
    "drop",
    "outlier",
    "trend_change",
})


@dataclass(frozen=True)
class Anomaly:
    """A statistically unusual sample.

    Attributes:
        type: Which check fired.
        timestamp: Sample timestamp as supplied by the caller.
        value: The sample value (latest value for trend changes).
        expected_value: Mean of the retained history.
        deviation: Z-score for spike/drop/outlier, slope delta for trend changes.
        confidence: Score in [0, 1].
        description: Human-readable summary.
    """

    type: str
    timestamp: float
    value: float
    expected_value: float
    deviation: float
    confidence: float
    description: str

    def __post_init__(self) -> None:
        if self.type not in VALID_ANOMALY_TYPES:
            raise ValueError(
                f"Invalid anomaly type {self.type!r}. "
                f"Must be one of: {sorted(VALID_ANOMALY_TYPES)}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "type": self.type,
            "timestamp": self.timestamp,
            "value": self.value,
            "expected_value": self.expected_value,
            "deviation": self.deviation,
            "confidence": self.confidence,
            "description": self.description,
        }
