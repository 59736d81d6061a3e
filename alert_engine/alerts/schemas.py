"""Schema definitions for alert rules, evaluation results and history.

Timestamps are epoch milliseconds supplied by the caller with each
evaluation context; durations (condition hold time, rule cooldown) are
milliseconds as well. Rules are the only mutable records: the manager
updates ``state`` and ``last_triggered`` when a rule fires.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Literal

AlertSeverity = Literal["critical", "warning", "info"]

VALID_SEVERITIES: frozenset[str] = frozenset({
    "critical",
    "warning",
    "info",
})

AlertState = Literal["pending", "active", "resolved", "silenced"]

VALID_STATES: frozenset[str] = frozenset({
    "pending",
    "active",
    "resolved",
    "silenced",
})

ComparisonOperator = Literal[">", ">=", "<", "<=", "=", "!="]

VALID_OPERATORS: frozenset[str] = frozenset({">", ">=", "<", "<=", "=", "!="})

Aggregation = Literal["sum", "average", "min", "max", "count", "last"]

VALID_AGGREGATIONS: frozenset[str] = frozenset({
    "sum",
    "average",
    "min",
    "max",
    "count",
    "last",
})

DEFAULT_COOLDOWN_MS = 300_000  # 5 minutes


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class AlertCondition:
    """A single threshold check against one metric.

    Operator and aggregation are deliberately not validated here: an
    unknown operator never matches and an unknown aggregation falls back
    to the last value, so a malformed condition cannot abort evaluation.

    Attributes:
        metric: Metric name looked up in the evaluation context.
        operator: Comparison applied as ``aggregated <op> threshold``.
        threshold: Value compared against.
        duration_ms: How long the comparison must hold continuously.
        aggregation: How the metric's recent values are reduced.
    """

    metric: str
    operator: str
    threshold: float
    duration_ms: float = 0
    aggregation: str = "average"

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "metric": self.metric,
            "operator": self.operator,
            "threshold": self.threshold,
            "duration_ms": self.duration_ms,
            "aggregation": self.aggregation,
        }


@dataclass
class AlertRule:
    """An alert rule owned by the AlertManager.

    Attributes:
        id: Unique rule identifier.
        name: Human-readable name used in alert messages.
        severity: Urgency level (critical, warning, info).
        conditions: Ordered conditions; all must be met to trigger.
        description: Free-form description.
        enabled: Disabled rules are skipped by evaluation.
        cooldown_ms: Quiet period after a trigger.
        tags: Free-form tags.
        labels: Free-form key/value labels.
        actions: Notification channel ids to dispatch to.
        state: Lifecycle state.
        last_triggered: Context timestamp of the last trigger.
        created_at: Wall-clock creation time.
        updated_at: Wall-clock time of the last update.
    """

    id: str
    name: str
    severity: str
    conditions: list[AlertCondition]
    description: str = ""
    enabled: bool = True
    cooldown_ms: float = DEFAULT_COOLDOWN_MS
    tags: list[str] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)
    actions: list[str] = field(default_factory=list)
    state: str = "pending"
    last_triggered: float | None = None
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    def __post_init__(self) -> None:
        if self.severity not in VALID_SEVERITIES:
            raise ValueError(
                f"Invalid severity {self.severity!r}. "
                f"Must be one of: {sorted(VALID_SEVERITIES)}"
            )
        if self.state not in VALID_STATES:
            raise ValueError(
                f"Invalid state {self.state!r}. "
                f"Must be one of: {sorted(VALID_STATES)}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "severity": self.severity,
            "conditions": [c.to_dict() for c in self.conditions],
            "enabled": self.enabled,
            "cooldown_ms": self.cooldown_ms,
            "tags": list(self.tags),
            "labels": dict(self.labels),
            "actions": list(self.actions),
            "state": self.state,
            "last_triggered": self.last_triggered,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class EvaluationContext:
    """A metric snapshot for one evaluation tick.

    Attributes:
        timestamp: Tick time in epoch milliseconds.
        metric_values: Recent values per metric name.
    """

    timestamp: float
    metric_values: dict[str, list[float]] = field(default_factory=dict)


@dataclass(frozen=True)
class ConditionResult:
    """Outcome of evaluating one condition."""

    condition: AlertCondition
    actual_value: float
    threshold: float
    met: bool
    duration_ms: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "condition": self.condition.to_dict(),
            "actual_value": self.actual_value,
            "threshold": self.threshold,
            "met": self.met,
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of evaluating one rule against one context."""

    rule_id: str
    triggered: bool
    conditions: list[ConditionResult]
    timestamp: float
    message: str | None = None


@dataclass(frozen=True)
class NotificationPayload:
    """What a channel receives for a triggered rule."""

    rule: AlertRule
    message: str
    timestamp: float
    severity: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        metadata = dict(self.metadata)
        conditions = metadata.get("conditions")
        if conditions is not None:
            metadata["conditions"] = [
                c.to_dict() if isinstance(c, ConditionResult) else c
                for c in conditions
            ]
        return {
            "rule": self.rule.to_dict(),
            "message": self.message,
            "timestamp": self.timestamp,
            "severity": self.severity,
            "metadata": metadata,
        }


@dataclass(frozen=True)
class NotificationResult:
    """What a channel reports back after a send."""

    channel_id: str
    success: bool
    timestamp: int = field(default_factory=now_ms)
    error: str | None = None


@dataclass(frozen=True)
class NotificationOutcome:
    """Per-channel delivery record kept in alert history."""

    channel_id: str
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class AlertHistoryEntry:
    """A triggered alert as recorded in the manager's bounded history."""

    rule_id: str
    timestamp: float
    triggered: bool
    message: str
    severity: str
    notification_results: list[NotificationOutcome] = field(default_factory=list)


@dataclass(frozen=True)
class AlertStats:
    """Snapshot of manager counters."""

    total_rules: int
    active_rules: int
    total_alerts: int
    alerts_by_severity: dict[str, int]
    channel_count: int
