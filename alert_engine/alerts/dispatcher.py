"""Notification dispatcher fanning one triggered rule out to its channels.

Channels are tried sequentially in the order the rule lists them.
Missing or disabled channels are skipped silently. A channel that fails,
or raises, is recorded as a failure and never stops delivery to the
remaining channels or evaluation of other rules.
"""

import asyncio
import logging
from collections.abc import Mapping

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from alert_engine.alerts.channels import NotificationChannel
from alert_engine.alerts.schemas import (
    AlertRule,
    EvaluationResult,
    NotificationOutcome,
    NotificationPayload,
    NotificationResult,
)
from alert_engine.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "Alert triggered"


class NotificationConfig(BaseSettings):
    """Configuration for notification dispatch."""

    model_config = SettingsConfigDict(
        env_prefix="NOTIFICATIONS_",
        case_sensitive=False,
        extra="ignore",
    )

    retry_max_attempts: int = Field(
        default=1,
        ge=1,
        le=10,
        description="Send attempts per channel per alert (1 = no retry)",
    )
    retry_delays: list[float] = Field(
        default=[1.0, 5.0, 30.0],
        description="Per-attempt delay in seconds before each retry",
    )
    circuit_breaker_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive failures before circuit opens",
    )
    circuit_breaker_recovery_seconds: float = Field(
        default=60.0,
        ge=0.0,
        description="Seconds before circuit breaker probes recovery",
    )


def build_payload(rule: AlertRule, result: EvaluationResult) -> NotificationPayload:
    """Assemble the payload channels receive for a triggered rule."""
    return NotificationPayload(
        rule=rule,
        message=result.message or DEFAULT_MESSAGE,
        timestamp=result.timestamp,
        severity=rule.severity,
        metadata={"conditions": list(result.conditions)},
    )


class NotificationDispatcher:
    """Delivers triggered rules to the channels named in their actions.

    Args:
        config: Retry settings (defaults created if None).
    """

    def __init__(self, config: NotificationConfig | None = None) -> None:
        self._config = config or NotificationConfig()

    async def dispatch(
        self,
        rule: AlertRule,
        result: EvaluationResult,
        channels: Mapping[str, NotificationChannel],
    ) -> list[NotificationOutcome]:
        """Send a triggered rule to each of its channels, in order.

        Args:
            rule: The triggered rule.
            result: Its evaluation result (message and condition details).
            channels: Registered channels keyed by id.

        Returns:
            One outcome per channel actually attempted.
        """
        payload = build_payload(rule, result)
        outcomes: list[NotificationOutcome] = []

        for channel_id in rule.actions:
            channel = channels.get(channel_id)
            if channel is None or not channel.enabled:
                continue

            send_result = await self._send_with_retry(channel, payload)
            outcomes.append(
                NotificationOutcome(
                    channel_id=channel_id,
                    success=send_result.success,
                    error=send_result.error,
                )
            )
            try:
                get_metrics().record_notification(
                    channel.channel_type, send_result.success,
                )
            except Exception as e:
                logger.debug("Failed to record notification metric: %s", e)

        self._record_delivery(rule, outcomes)
        return outcomes

    async def _send_with_retry(
        self,
        channel: NotificationChannel,
        payload: NotificationPayload,
    ) -> NotificationResult:
        """Attempt to send with configured retries.

        Args:
            channel: Target notification channel.
            payload: Payload to deliver.

        Returns:
            The successful result, or the last failure.
        """
        delays = self._config.retry_delays
        max_attempts = self._config.retry_max_attempts
        last = NotificationResult(channel_id=channel.channel_id, success=False)

        for attempt in range(max_attempts):
            try:
                last = await channel.send(payload)
                if last.success:
                    if attempt > 0:
                        logger.info(
                            "Rule %s delivered to %s on attempt %d",
                            payload.rule.id, channel.channel_id, attempt + 1,
                        )
                    return last
            except Exception as e:
                logger.warning(
                    "Channel %s send error (attempt %d): %s",
                    channel.channel_id, attempt + 1, e,
                )
                last = NotificationResult(
                    channel_id=channel.channel_id,
                    success=False,
                    error=str(e) or type(e).__name__,
                )

            if attempt < max_attempts - 1 and delays:
                delay = delays[attempt] if attempt < len(delays) else delays[-1]
                await asyncio.sleep(delay)

        if max_attempts > 1:
            logger.warning(
                "All %d attempts exhausted for rule %s on channel %s",
                max_attempts, payload.rule.id, channel.channel_id,
            )
        return last

    def _record_delivery(
        self,
        rule: AlertRule,
        outcomes: list[NotificationOutcome],
    ) -> None:
        """Log delivery results.

        Args:
            rule: Triggered rule.
            outcomes: Per-channel delivery outcomes.
        """
        successes = [o.channel_id for o in outcomes if o.success]
        failures = [o.channel_id for o in outcomes if not o.success]

        if failures and not successes:
            logger.error(
                "Rule %s (%s) failed ALL channels: %s",
                rule.id, rule.severity, failures,
            )
        elif failures:
            logger.warning(
                "Rule %s partial delivery: ok=%s failed=%s",
                rule.id, successes, failures,
            )
        elif successes:
            logger.debug(
                "Rule %s delivered to all channels: %s", rule.id, successes,
            )
