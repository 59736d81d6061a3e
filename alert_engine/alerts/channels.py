"""Notification channel implementations for alert delivery.

Provides an ABC for notification channels plus concrete implementations
for webhooks, Slack, email and the log. ``create_channel`` maps a
``ChannelConfig`` type tag to a concrete channel. A CircuitBreaker
decorator can wrap any channel to stop hammering an unhealthy endpoint.

Channels report failures through ``NotificationResult`` rather than
raising; the dispatcher still guards against channels that raise.
"""

import asyncio
import enum
import logging
import smtplib
import time
from abc import ABC, abstractmethod
from email.mime.text import MIMEText
from typing import Any

import httpx
from pydantic import BaseModel, Field

from alert_engine.alerts.schemas import NotificationPayload, NotificationResult

logger = logging.getLogger(__name__)


class ChannelConfig(BaseModel):
    """Declarative description of a notification channel.

    ``config`` holds type-specific settings, e.g. ``{"url": ...}`` for
    webhooks or ``{"to": ..., "smtp_host": ...}`` for email. Setting
    ``config["circuit_breaker"]`` to true wraps the channel in a
    CircuitBreaker.
    """

    id: str
    name: str = ""
    type: str
    enabled: bool = True
    config: dict[str, Any] = Field(default_factory=dict)


class NotificationChannel(ABC):
    """Abstract base for notification delivery channels."""

    def __init__(self, channel_id: str, name: str = "", enabled: bool = True) -> None:
        self._channel_id = channel_id
        self._name = name or channel_id
        self._enabled = enabled

    @property
    def channel_id(self) -> str:
        """Identifier rules reference in their ``actions``."""
        return self._channel_id

    @property
    def name(self) -> str:
        return self._name

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    @abstractmethod
    def channel_type(self) -> str:
        """Type tag (e.g. 'webhook', 'slack')."""

    @abstractmethod
    async def send(self, payload: NotificationPayload) -> NotificationResult:
        """Deliver a triggered alert through this channel.

        Args:
            payload: Rule, message and condition details.

        Returns:
            NotificationResult with success flag and optional error.
        """

    def _result(self, success: bool, error: str | None = None) -> NotificationResult:
        return NotificationResult(
            channel_id=self._channel_id, success=success, error=error,
        )


class WebhookChannel(NotificationChannel):
    """Delivers alerts as JSON POST to an arbitrary HTTP endpoint.

    Creates a new ``httpx.AsyncClient`` per call (short-lived, no pooling).
    """

    def __init__(
        self,
        channel_id: str,
        url: str | None,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
        name: str = "",
        enabled: bool = True,
    ) -> None:
        super().__init__(channel_id, name, enabled)
        self._url = url
        self._headers = headers or {}
        self._timeout = timeout

    @property
    def channel_type(self) -> str:
        return "webhook"

    def _build_payload(self, payload: NotificationPayload) -> dict:
        """Build the webhook JSON body from a notification payload."""
        body = payload.to_dict()
        body["rule_id"] = payload.rule.id
        body["rule_name"] = payload.rule.name
        return body

    async def send(self, payload: NotificationPayload) -> NotificationResult:
        if not self._url:
            return self._result(False, "Webhook URL not configured")

        body = self._build_payload(payload)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(
                    self._url,
                    json=body,
                    headers=self._headers,
                )
                if resp.is_success:
                    return self._result(True)
                logger.warning(
                    "Webhook %s returned %d for rule %s",
                    self._url, resp.status_code, payload.rule.id,
                )
                return self._result(False, f"HTTP {resp.status_code}")
        except httpx.TimeoutException:
            logger.warning(
                "Webhook %s timed out for rule %s", self._url, payload.rule.id,
            )
            return self._result(False, "timeout")
        except httpx.HTTPError as e:
            logger.warning(
                "Webhook %s failed for rule %s: %s", self._url, payload.rule.id, e,
            )
            return self._result(False, str(e))


class SlackChannel(NotificationChannel):
    """Delivers alerts to a Slack channel via incoming webhook.

    Formats alerts using Slack Block Kit for rich display.
    """

    def __init__(
        self,
        channel_id: str,
        webhook_url: str | None,
        channel: str | None = None,
        timeout: float = 10.0,
        name: str = "",
        enabled: bool = True,
    ) -> None:
        super().__init__(channel_id, name, enabled)
        self._webhook_url = webhook_url
        self._channel = channel
        self._timeout = timeout

    @property
    def channel_type(self) -> str:
        return "slack"

    def _format_message(self, payload: NotificationPayload) -> dict:
        """Build Slack Block Kit payload from a notification payload."""
        severity_emoji = {
            "critical": ":red_circle:",
            "warning": ":large_orange_circle:",
            "info": ":large_blue_circle:",
        }
        emoji = severity_emoji.get(payload.severity, ":white_circle:")

        blocks = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"{emoji} {payload.rule.name}",
                },
            },
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": payload.message,
                },
            },
            {
                "type": "context",
                "elements": [
                    {
                        "type": "mrkdwn",
                        "text": (
                            f"*Severity:* {payload.severity} | "
                            f"*Rule:* {payload.rule.id}"
                        ),
                    },
                ],
            },
        ]

        body: dict = {"blocks": blocks}
        if self._channel:
            body["channel"] = self._channel
        return body

    async def send(self, payload: NotificationPayload) -> NotificationResult:
        if not self._webhook_url:
            return self._result(False, "Slack webhook URL not configured")

        body = self._format_message(payload)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._webhook_url, json=body)
                if resp.is_success:
                    return self._result(True)
                logger.warning(
                    "Slack webhook returned %d for rule %s",
                    resp.status_code, payload.rule.id,
                )
                return self._result(False, f"HTTP {resp.status_code}")
        except httpx.TimeoutException:
            logger.warning("Slack webhook timed out for rule %s", payload.rule.id)
            return self._result(False, "timeout")
        except httpx.HTTPError as e:
            logger.warning("Slack webhook failed for rule %s: %s", payload.rule.id, e)
            return self._result(False, str(e))


class EmailChannel(NotificationChannel):
    """Delivers alerts as plain-text email over SMTP.

    smtplib is blocking, so the send runs in a worker thread.
    """

    def __init__(
        self,
        channel_id: str,
        to: str | list[str] | None,
        smtp_host: str = "localhost",
        smtp_port: int = 25,
        from_addr: str = "alerts@localhost",
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = False,
        timeout: float = 10.0,
        name: str = "",
        enabled: bool = True,
    ) -> None:
        super().__init__(channel_id, name, enabled)
        if isinstance(to, str):
            to = [to]
        self._to = to or []
        self._smtp_host = smtp_host
        self._smtp_port = smtp_port
        self._from_addr = from_addr
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._timeout = timeout

    @property
    def channel_type(self) -> str:
        return "email"

    def _build_message(self, payload: NotificationPayload) -> MIMEText:
        lines = [
            payload.message,
            "",
            f"Rule: {payload.rule.name} ({payload.rule.id})",
            f"Severity: {payload.severity}",
            f"Timestamp: {payload.timestamp}",
        ]
        msg = MIMEText("\n".join(lines), "plain")
        msg["Subject"] = f"[{payload.severity.upper()}] {payload.rule.name}"
        msg["From"] = self._from_addr
        msg["To"] = ", ".join(self._to)
        return msg

    def _deliver(self, msg: MIMEText) -> None:
        with smtplib.SMTP(self._smtp_host, self._smtp_port, timeout=self._timeout) as server:
            if self._use_tls:
                server.starttls()
            if self._username and self._password:
                server.login(self._username, self._password)
            server.send_message(msg)

    async def send(self, payload: NotificationPayload) -> NotificationResult:
        if not self._to:
            return self._result(False, "Email recipient not configured")

        msg = self._build_message(payload)
        try:
            await asyncio.to_thread(self._deliver, msg)
            return self._result(True)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(
                "Email to %s failed for rule %s: %s",
                self._to, payload.rule.id, e,
            )
            return self._result(False, str(e))


class ConsoleChannel(NotificationChannel):
    """Writes alerts to the log. Useful for development and as a fallback."""

    _LEVELS = {
        "critical": logging.CRITICAL,
        "warning": logging.WARNING,
        "info": logging.INFO,
    }

    @property
    def channel_type(self) -> str:
        return "console"

    async def send(self, payload: NotificationPayload) -> NotificationResult:
        level = self._LEVELS.get(payload.severity, logging.INFO)
        logger.log(
            level,
            "[ALERT %s] %s (rule=%s, timestamp=%s)",
            payload.severity.upper(), payload.message,
            payload.rule.name, payload.timestamp,
        )
        return self._result(True)


class CircuitState(enum.Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker(NotificationChannel):
    """Wraps a NotificationChannel with circuit breaker protection.

    State machine: CLOSED → OPEN → HALF_OPEN → CLOSED.

    - CLOSED: All requests pass through. Consecutive failures tracked.
    - OPEN: Requests rejected immediately. After recovery_timeout, moves
      to HALF_OPEN.
    - HALF_OPEN: Single probe request allowed. Success → CLOSED, failure → OPEN.
    """

    def __init__(
        self,
        channel: NotificationChannel,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
    ) -> None:
        super().__init__(channel.channel_id, channel.name, channel.enabled)
        self._channel = channel
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._last_failure_time: float = 0.0

    @property
    def channel_type(self) -> str:
        return self._channel.channel_type

    @property
    def enabled(self) -> bool:
        return self._channel.enabled

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def wrapped(self) -> NotificationChannel:
        return self._channel

    async def send(self, payload: NotificationPayload) -> NotificationResult:
        if self._state == CircuitState.OPEN:
            if time.monotonic() - self._last_failure_time >= self._recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                logger.info(
                    "Circuit breaker %s: OPEN → HALF_OPEN (recovery probe)",
                    self.channel_id,
                )
            else:
                logger.debug(
                    "Circuit breaker %s: OPEN, rejecting rule %s",
                    self.channel_id, payload.rule.id,
                )
                return self._result(False, "circuit open")

        try:
            result = await self._channel.send(payload)
        except Exception as e:
            result = self._result(False, str(e) or type(e).__name__)

        if result.success:
            if self._state == CircuitState.HALF_OPEN:
                logger.info(
                    "Circuit breaker %s: HALF_OPEN → CLOSED (probe succeeded)",
                    self.channel_id,
                )
            self._state = CircuitState.CLOSED
            self._consecutive_failures = 0
        else:
            self._consecutive_failures += 1
            self._last_failure_time = time.monotonic()

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                logger.warning(
                    "Circuit breaker %s: HALF_OPEN → OPEN (probe failed)",
                    self.channel_id,
                )
            elif self._consecutive_failures >= self._failure_threshold:
                self._state = CircuitState.OPEN
                logger.warning(
                    "Circuit breaker %s: CLOSED → OPEN after %d failures",
                    self.channel_id, self._consecutive_failures,
                )

        return result


def create_channel(
    config: ChannelConfig,
    failure_threshold: int = 5,
    recovery_timeout: float = 60.0,
) -> NotificationChannel:
    """Build a channel from its declarative config.

    Args:
        config: Channel id, type tag and type-specific settings.
        failure_threshold: Circuit breaker threshold, if one is requested.
        recovery_timeout: Circuit breaker recovery, if one is requested.

    Returns:
        Concrete channel, wrapped in a CircuitBreaker when
        ``config.config["circuit_breaker"]`` is truthy.

    Raises:
        ValueError: If the type tag is not supported.
    """
    opts = config.config
    common = {"name": config.name, "enabled": config.enabled}

    channel: NotificationChannel
    if config.type == "webhook":
        channel = WebhookChannel(
            config.id,
            url=opts.get("url"),
            headers=opts.get("headers"),
            timeout=opts.get("timeout", 10.0),
            **common,
        )
    elif config.type == "slack":
        channel = SlackChannel(
            config.id,
            webhook_url=opts.get("webhook_url"),
            channel=opts.get("channel"),
            timeout=opts.get("timeout", 10.0),
            **common,
        )
    elif config.type == "email":
        channel = EmailChannel(
            config.id,
            to=opts.get("to"),
            smtp_host=opts.get("smtp_host", "localhost"),
            smtp_port=opts.get("smtp_port", 25),
            from_addr=opts.get("from_addr", "alerts@localhost"),
            username=opts.get("username"),
            password=opts.get("password"),
            use_tls=opts.get("use_tls", False),
            timeout=opts.get("timeout", 10.0),
            **common,
        )
    elif config.type == "console":
        channel = ConsoleChannel(config.id, **common)
    else:
        raise ValueError(f"Unsupported channel type: {config.type!r}")

    if opts.get("circuit_breaker"):
        channel = CircuitBreaker(
            channel,
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
        )
    return channel
