"""Pytest fixtures for alert-engine tests."""

from typing import Any

import pytest

from alert_engine.alerts.channels import NotificationChannel
from alert_engine.alerts.schemas import (
    AlertCondition,
    AlertRule,
    EvaluationContext,
    NotificationPayload,
    NotificationResult,
)


class RecordingChannel(NotificationChannel):
    """In-memory channel that records payloads and returns a fixed outcome."""

    def __init__(
        self,
        channel_id: str,
        success: bool = True,
        raises: Exception | None = None,
        enabled: bool = True,
    ) -> None:
        super().__init__(channel_id, enabled=enabled)
        self.success = success
        self.raises = raises
        self.payloads: list[NotificationPayload] = []

    @property
    def channel_type(self) -> str:
        return "recording"

    async def send(self, payload: NotificationPayload) -> NotificationResult:
        self.payloads.append(payload)
        if self.raises is not None:
            raise self.raises
        return NotificationResult(channel_id=self.channel_id, success=self.success)


def make_rule(
    rule_id: str = "cpu-high",
    conditions: list[AlertCondition] | None = None,
    **kwargs: Any,
) -> AlertRule:
    """Build a rule with a single ``cpu > 80`` condition by default."""
    if conditions is None:
        conditions = [AlertCondition(metric="cpu", operator=">", threshold=80)]
    kwargs.setdefault("name", "High CPU")
    kwargs.setdefault("severity", "critical")
    return AlertRule(id=rule_id, conditions=conditions, **kwargs)


def ctx(timestamp: float, **metrics: list[float]) -> EvaluationContext:
    """Shorthand for an EvaluationContext."""
    return EvaluationContext(timestamp=timestamp, metric_values=dict(metrics))


@pytest.fixture
def cpu_rule() -> AlertRule:
    return make_rule()


@pytest.fixture
def recording_channel() -> RecordingChannel:
    return RecordingChannel("ops")
