"""Alert manager orchestrating rule evaluation, cooldowns, dispatch and history.

The sole stateful orchestrator: owns the rule and channel registries,
the cooldown map and the bounded alert history. Condition logic is
delegated to ``ConditionEvaluator``, delivery to ``NotificationDispatcher``
and anomaly detection to ``AnomalyDetector``.

All time bookkeeping (cooldowns, ``last_triggered``, history) uses the
evaluation context's timestamp, so a replayed sequence of contexts
produces the same alerts.
"""

import asyncio
import dataclasses
import inspect
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from alert_engine.alerts.channels import (
    ChannelConfig,
    NotificationChannel,
    create_channel,
)
from alert_engine.alerts.config import AlertConfig
from alert_engine.alerts.dispatcher import (
    DEFAULT_MESSAGE,
    NotificationConfig,
    NotificationDispatcher,
)
from alert_engine.alerts.evaluator import ConditionEvaluator
from alert_engine.alerts.schemas import (
    VALID_SEVERITIES,
    AlertHistoryEntry,
    AlertRule,
    AlertStats,
    EvaluationContext,
    EvaluationResult,
    now_ms,
)
from alert_engine.anomaly.detector import AnomalyDetector
from alert_engine.anomaly.schemas import Anomaly
from alert_engine.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)

ContextProvider = Callable[[], EvaluationContext | Awaitable[EvaluationContext]]


class RuleNotFoundError(KeyError):
    """Raised when an operation names a rule id that is not registered."""


class AlertManager:
    """Registry and evaluation loop for alert rules.

    Rule lifecycle: ``pending`` → ``active`` on trigger. ``resolved`` and
    ``silenced`` are only reachable through ``update_rule``.

    Evaluation passes are serialized: a manual ``evaluate`` call and an
    auto-evaluation tick never run concurrently.

    Args:
        config: Manager configuration (defaults created if None).
        notification_config: Retry and circuit breaker settings.
        evaluator: Condition evaluator (created if None).
        dispatcher: Notification dispatcher (created if None).
    """

    def __init__(
        self,
        config: AlertConfig | None = None,
        notification_config: NotificationConfig | None = None,
        evaluator: ConditionEvaluator | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self._config = config or AlertConfig()
        self._notification_config = notification_config or NotificationConfig()
        self._evaluator = evaluator or ConditionEvaluator()
        self._dispatcher = dispatcher or NotificationDispatcher(self._notification_config)
        self._detector: AnomalyDetector | None = None
        if self._config.enable_anomaly_detection:
            self._detector = AnomalyDetector(self._config.anomaly)

        self._rules: dict[str, AlertRule] = {}
        self._channels: dict[str, NotificationChannel] = {}
        self._cooldowns: dict[str, float] = {}
        self._history: deque[AlertHistoryEntry] = deque(
            maxlen=self._config.max_history_size,
        )

        self._lock = asyncio.Lock()
        self._eval_task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None

    @property
    def config(self) -> AlertConfig:
        return self._config

    @property
    def anomaly_detector(self) -> AnomalyDetector | None:
        return self._detector

    # ── Rules ────────────────────────────────────────────────

    def add_rule(self, rule: AlertRule) -> None:
        """Register a rule, replacing any rule with the same id."""
        self._rules[rule.id] = rule
        logger.debug("Rule added", rule_id=rule.id, severity=rule.severity)

    def remove_rule(self, rule_id: str) -> None:
        """Remove a rule along with its hysteresis state and cooldown."""
        self._rules.pop(rule_id, None)
        self._evaluator.reset_rule(rule_id)
        self._cooldowns.pop(rule_id, None)
        logger.debug("Rule removed", rule_id=rule_id)

    def get_rule(self, rule_id: str) -> AlertRule | None:
        return self._rules.get(rule_id)

    def get_all_rules(self) -> list[AlertRule]:
        return list(self._rules.values())

    def update_rule(self, rule_id: str, **updates: Any) -> AlertRule:
        """Apply field updates to a registered rule.

        Args:
            rule_id: Rule to update.
            **updates: AlertRule fields to replace (``id`` cannot change).

        Returns:
            The updated rule.

        Raises:
            RuleNotFoundError: If no rule has this id.
            ValueError: If ``id`` is changed or a field value is invalid.
        """
        rule = self._rules.get(rule_id)
        if rule is None:
            raise RuleNotFoundError(f"Rule {rule_id} not found")

        if updates.get("id", rule_id) != rule_id:
            raise ValueError("Rule id cannot be changed by update_rule")
        updates.pop("id", None)
        updates.pop("updated_at", None)

        updated = dataclasses.replace(rule, **updates, updated_at=now_ms())
        self._rules[rule_id] = updated
        return updated

    # ── Channels ─────────────────────────────────────────────

    def add_channel(self, config: ChannelConfig | dict[str, Any]) -> NotificationChannel:
        """Build a channel from its config and register it.

        Raises:
            ValueError: If the channel type is not supported.
        """
        if not isinstance(config, ChannelConfig):
            config = ChannelConfig.model_validate(config)

        channel = create_channel(
            config,
            failure_threshold=self._notification_config.circuit_breaker_threshold,
            recovery_timeout=self._notification_config.circuit_breaker_recovery_seconds,
        )
        return self.register_channel(channel)

    def register_channel(self, channel: NotificationChannel) -> NotificationChannel:
        """Register an already-built channel (custom transports)."""
        self._channels[channel.channel_id] = channel
        logger.debug(
            "Channel registered",
            channel_id=channel.channel_id, channel_type=channel.channel_type,
        )
        return channel

    def remove_channel(self, channel_id: str) -> None:
        self._channels.pop(channel_id, None)

    def get_channel(self, channel_id: str) -> NotificationChannel | None:
        return self._channels.get(channel_id)

    def get_all_channels(self) -> list[NotificationChannel]:
        return list(self._channels.values())

    # ── Evaluation ───────────────────────────────────────────

    def is_in_cooldown(self, rule_id: str, timestamp: float) -> bool:
        """Whether a rule is still cooling down at the given time."""
        cooldown_end = self._cooldowns.get(rule_id)
        return cooldown_end is not None and timestamp < cooldown_end

    async def evaluate(self, context: EvaluationContext) -> list[EvaluationResult]:
        """Evaluate every eligible rule against a metric snapshot.

        Disabled rules and rules still in cooldown are skipped entirely
        (no result, hysteresis state untouched). Triggered rules are
        marked active, put in cooldown, dispatched and recorded.

        Args:
            context: Timestamped metric snapshot.

        Returns:
            Results for every rule actually evaluated, in registration order.
        """
        async with self._lock:
            metrics = get_metrics()
            results: list[EvaluationResult] = []

            for rule in list(self._rules.values()):
                if not rule.enabled:
                    metrics.record_skip("disabled")
                    continue

                if self.is_in_cooldown(rule.id, context.timestamp):
                    metrics.record_skip("cooldown")
                    continue

                try:
                    result = self._evaluator.evaluate(rule, context)
                except Exception as e:
                    logger.error(
                        "Rule evaluation failed", rule_id=rule.id, error=str(e),
                    )
                    continue

                results.append(result)
                metrics.record_evaluation(result.triggered)

                if result.triggered:
                    await self._handle_triggered(rule, result)

            return results

    async def _handle_triggered(self, rule: AlertRule, result: EvaluationResult) -> None:
        """Mark active, start cooldown, notify, then record history."""
        now = result.timestamp

        rule.last_triggered = now
        rule.state = "active"
        self._cooldowns[rule.id] = now + rule.cooldown_ms

        outcomes = await self._dispatcher.dispatch(rule, result, self._channels)

        self._history.append(
            AlertHistoryEntry(
                rule_id=rule.id,
                timestamp=now,
                triggered=True,
                message=result.message or DEFAULT_MESSAGE,
                severity=rule.severity,
                notification_results=outcomes,
            )
        )
        get_metrics().record_alert(rule.severity)

        logger.info(
            "Alert triggered",
            rule_id=rule.id,
            severity=rule.severity,
            notified=sum(1 for o in outcomes if o.success),
            failed=sum(1 for o in outcomes if not o.success),
        )

    def detect_anomalies(self, metric: str, value: float, timestamp: float) -> list[Anomaly]:
        """Feed one sample to the anomaly detector.

        Independent of rules and cooldowns. Returns an empty list when
        anomaly detection is disabled.
        """
        if self._detector is None:
            return []

        anomalies = self._detector.detect(metric, value, timestamp)
        for anomaly in anomalies:
            get_metrics().record_anomaly(anomaly.type)
        return anomalies

    # ── History and stats ────────────────────────────────────

    def _sorted_history(self, entries: list[AlertHistoryEntry]) -> list[AlertHistoryEntry]:
        # Reverse first so equal timestamps stay newest-first under the stable sort
        return sorted(reversed(entries), key=lambda h: h.timestamp, reverse=True)

    def get_history(self, limit: int | None = None) -> list[AlertHistoryEntry]:
        """Alert history, most recent first, optionally truncated."""
        ordered = self._sorted_history(list(self._history))
        return ordered[:limit] if limit is not None else ordered

    def get_history_for_rule(
        self, rule_id: str, limit: int | None = None,
    ) -> list[AlertHistoryEntry]:
        """One rule's alert history, most recent first, optionally truncated."""
        ordered = self._sorted_history([h for h in self._history if h.rule_id == rule_id])
        return ordered[:limit] if limit is not None else ordered

    def clear_history(self) -> None:
        self._history.clear()

    def get_stats(self) -> AlertStats:
        # Severity counts are per retained alert, not per registered rule
        by_severity = {severity: 0 for severity in sorted(VALID_SEVERITIES)}
        for entry in self._history:
            by_severity[entry.severity] = by_severity.get(entry.severity, 0) + 1

        return AlertStats(
            total_rules=len(self._rules),
            active_rules=sum(1 for r in self._rules.values() if r.enabled),
            total_alerts=len(self._history),
            alerts_by_severity=by_severity,
            channel_count=len(self._channels),
        )

    # ── Auto evaluation ──────────────────────────────────────

    @property
    def is_auto_evaluating(self) -> bool:
        return self._eval_task is not None and not self._eval_task.done()

    def start_auto_evaluation(self, get_context: ContextProvider) -> None:
        """Start evaluating every ``evaluation_interval_seconds``.

        Must be called from a running event loop. No-op if already
        running.

        Args:
            get_context: Sync or async callable returning the snapshot
                for each tick.
        """
        if self.is_auto_evaluating:
            return

        self._stop_event = asyncio.Event()
        self._eval_task = asyncio.create_task(
            self._evaluation_loop(get_context, self._stop_event),
            name="alert-auto-evaluation",
        )
        logger.info(
            "Auto evaluation started",
            interval_seconds=self._config.evaluation_interval_seconds,
        )

    async def stop_auto_evaluation(self) -> None:
        """Stop scheduling ticks. An in-flight tick runs to completion."""
        task = self._eval_task
        if task is None:
            return

        if self._stop_event is not None:
            self._stop_event.set()
        self._eval_task = None
        self._stop_event = None

        await task
        logger.info("Auto evaluation stopped")

    async def _evaluation_loop(
        self,
        get_context: ContextProvider,
        stop_event: asyncio.Event,
    ) -> None:
        loop = asyncio.get_running_loop()
        interval = self._config.evaluation_interval_seconds
        next_tick = loop.time() + interval

        while not stop_event.is_set():
            delay = next_tick - loop.time()
            if delay > 0:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=delay)
                    return
                except asyncio.TimeoutError:
                    pass
            else:
                await asyncio.sleep(0)
                if stop_event.is_set():
                    return

            await self._run_tick(get_context)

            # An overrunning tick drops the missed ticks instead of queueing them
            now = loop.time()
            next_tick = max(next_tick + interval, now)

    async def _run_tick(self, get_context: ContextProvider) -> None:
        try:
            context = get_context()
            if inspect.isawaitable(context):
                context = await context
            await self.evaluate(context)
        except Exception as e:
            logger.error("Auto evaluation tick failed", error=str(e))

    # ── Lifecycle ────────────────────────────────────────────

    def reset(self) -> None:
        """Clear rules, channels, history, cooldowns and detector state."""
        self._rules.clear()
        self._channels.clear()
        self._history.clear()
        self._cooldowns.clear()
        self._evaluator.reset()
        if self._detector is not None:
            self._detector.reset()

    async def dispose(self) -> None:
        """Stop auto evaluation, then reset."""
        await self.stop_auto_evaluation()
        self.reset()
