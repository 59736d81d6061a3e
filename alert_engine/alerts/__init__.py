"""Rule-based alerting for metric snapshots.

Components:
- AlertCondition / AlertRule: Rule definitions (dataclasses)
- EvaluationContext / EvaluationResult: Per-tick input and output
- AlertConfig: Pydantic settings for the manager
- ConditionEvaluator: Duration-gated condition evaluation
- NotificationChannel / WebhookChannel / SlackChannel / EmailChannel /
  ConsoleChannel: Delivery channels, built via create_channel
- CircuitBreaker: Resilience wrapper for channels
- NotificationConfig / NotificationDispatcher: Fan-out to a rule's channels
- AlertManager: Registries, cooldowns, history and the evaluation loop
"""

from alert_engine.alerts.channels import (
    ChannelConfig,
    CircuitBreaker,
    ConsoleChannel,
    EmailChannel,
    NotificationChannel,
    SlackChannel,
    WebhookChannel,
    create_channel,
)
from alert_engine.alerts.config import AlertConfig
from alert_engine.alerts.dispatcher import NotificationConfig, NotificationDispatcher
from alert_engine.alerts.evaluator import ConditionEvaluator
from alert_engine.alerts.manager import AlertManager, RuleNotFoundError
from alert_engine.alerts.schemas import (
    VALID_SEVERITIES,
    AlertCondition,
    AlertHistoryEntry,
    AlertRule,
    AlertSeverity,
    AlertStats,
    ConditionResult,
    EvaluationContext,
    EvaluationResult,
    NotificationOutcome,
    NotificationPayload,
    NotificationResult,
)

__all__ = [
    "AlertCondition",
    "AlertConfig",
    "AlertHistoryEntry",
    "AlertManager",
    "AlertRule",
    "AlertSeverity",
    "AlertStats",
    "ChannelConfig",
    "CircuitBreaker",
    "ConditionEvaluator",
    "ConditionResult",
    "ConsoleChannel",
    "EmailChannel",
    "EvaluationContext",
    "EvaluationResult",
    "NotificationChannel",
    "NotificationConfig",
    "NotificationDispatcher",
    "NotificationOutcome",
    "NotificationPayload",
    "NotificationResult",
    "RuleNotFoundError",
    "SlackChannel",
    "VALID_SEVERITIES",
    "WebhookChannel",
    "create_channel",
]
