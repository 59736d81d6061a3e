"""Condition evaluation with duration-based hysteresis.

Aggregation and comparison are module-level pure helpers; the only state
is the per ``rule_id:metric`` streak tracked by ``ConditionEvaluator``.
A single false comparison resets the streak, so a condition with a
non-zero duration is met only after holding continuously that long.
"""

import logging
from dataclasses import dataclass

from alert_engine.alerts.schemas import (
    AlertCondition,
    AlertRule,
    ConditionResult,
    EvaluationContext,
    EvaluationResult,
    VALID_AGGREGATIONS,
    VALID_OPERATORS,
)

logger = logging.getLogger(__name__)


# ── Pure helpers (stateless, no I/O) ─────────────────────────


def aggregate_values(values: list[float], aggregation: str) -> float:
    """Reduce a metric's recent values to one number.

    Args:
        values: Recent samples, oldest first.
        aggregation: sum, average, min, max, count or last. Anything
            else is treated as last.

    Returns:
        Aggregated value (0.0 for an empty list).
    """
    if len(values) == 0:
        return 0.0

    if aggregation == "sum":
        return float(sum(values))
    if aggregation == "average":
        return sum(values) / len(values)
    if aggregation == "min":
        return float(min(values))
    if aggregation == "max":
        return float(max(values))
    if aggregation == "count":
        return float(len(values))
    return float(values[-1])


def compare_value(actual: float, operator: str, threshold: float) -> bool:
    """Apply a comparison operator. Unknown operators never match."""
    if operator == ">":
        return actual > threshold
    if operator == ">=":
        return actual >= threshold
    if operator == "<":
        return actual < threshold
    if operator == "<=":
        return actual <= threshold
    if operator == "=":
        return actual == threshold
    if operator == "!=":
        return actual != threshold
    return False


def build_message(rule: AlertRule, results: list[ConditionResult]) -> str:
    """Human-readable trigger message listing the met conditions."""
    parts = [f"Alert '{rule.name}' triggered:"]
    for result in results:
        if result.met:
            cond = result.condition
            parts.append(
                f"{cond.metric} {cond.operator} {cond.threshold} "
                f"(actual: {result.actual_value:.2f})"
            )
    return " ".join(parts)


# ── Evaluator ────────────────────────────────────────────────


@dataclass
class ConditionState:
    """Streak tracking for one (rule, metric) pair."""

    first_met_at: float = 0
    consecutive_met: bool = False


class ConditionEvaluator:
    """Evaluates rules against metric snapshots.

    Holds one ``ConditionState`` per ``rule_id:metric`` key, created on
    the first evaluation with data. Conditions of the same rule that
    target the same metric share a key and therefore a streak.
    """

    def __init__(self) -> None:
        self._states: dict[str, ConditionState] = {}

    def evaluate(self, rule: AlertRule, context: EvaluationContext) -> EvaluationResult:
        """Evaluate every condition of a rule, in order.

        The rule triggers iff it has at least one condition and all of
        them are met.

        Args:
            rule: Rule to evaluate.
            context: Metric snapshot for this tick.

        Returns:
            EvaluationResult with one ConditionResult per condition.
        """
        results = [
            self._evaluate_condition(rule.id, condition, context)
            for condition in rule.conditions
        ]
        triggered = bool(results) and all(r.met for r in results)

        return EvaluationResult(
            rule_id=rule.id,
            triggered=triggered,
            conditions=results,
            timestamp=context.timestamp,
            message=build_message(rule, results) if triggered else None,
        )

    def _evaluate_condition(
        self,
        rule_id: str,
        condition: AlertCondition,
        context: EvaluationContext,
    ) -> ConditionResult:
        values = context.metric_values.get(condition.metric)

        # Missing data never satisfies a condition and leaves state alone
        if values is None or len(values) == 0:
            return ConditionResult(
                condition=condition,
                actual_value=0.0,
                threshold=condition.threshold,
                met=False,
                duration_ms=0,
            )

        if condition.aggregation not in VALID_AGGREGATIONS:
            logger.warning(
                "Rule %s: unknown aggregation %r for %s, using last value",
                rule_id, condition.aggregation, condition.metric,
            )
        if condition.operator not in VALID_OPERATORS:
            logger.warning(
                "Rule %s: unknown operator %r for %s, condition cannot match",
                rule_id, condition.operator, condition.metric,
            )

        actual = aggregate_values(values, condition.aggregation)
        comparison_met = compare_value(actual, condition.operator, condition.threshold)

        key = f"{rule_id}:{condition.metric}"
        state = self._states.setdefault(key, ConditionState())

        if comparison_met:
            if not state.consecutive_met:
                state.first_met_at = context.timestamp
                state.consecutive_met = True
            duration = context.timestamp - state.first_met_at
            met = duration >= condition.duration_ms
        else:
            state.consecutive_met = False
            state.first_met_at = 0
            duration = 0
            met = False

        return ConditionResult(
            condition=condition,
            actual_value=actual,
            threshold=condition.threshold,
            met=met,
            duration_ms=duration,
        )

    def has_state(self, rule_id: str, metric: str) -> bool:
        """Whether a streak entry exists for a (rule, metric) pair."""
        return f"{rule_id}:{metric}" in self._states

    def reset_rule(self, rule_id: str) -> None:
        """Drop all streak state belonging to one rule."""
        prefix = f"{rule_id}:"
        for key in [k for k in self._states if k.startswith(prefix)]:
            del self._states[key]

    def reset(self) -> None:
        """Drop all streak state."""
        self._states.clear()
