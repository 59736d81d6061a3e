"""Tests for notification channels, circuit breaker, and channel factory."""

import logging
import smtplib
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from alert_engine.alerts.channels import (
    ChannelConfig,
    CircuitBreaker,
    CircuitState,
    ConsoleChannel,
    EmailChannel,
    SlackChannel,
    WebhookChannel,
    create_channel,
)
from alert_engine.alerts.schemas import NotificationPayload, NotificationResult

from conftest import RecordingChannel, make_rule


# ── Fixtures ────────────────────────────────────────────


@pytest.fixture
def payload():
    return NotificationPayload(
        rule=make_rule(),
        message="Alert 'High CPU' triggered: cpu > 80 (actual: 93.00)",
        timestamp=1_700_000_000_000,
        severity="critical",
        metadata={"conditions": []},
    )


def _mock_response(status_code: int = 200) -> httpx.Response:
    """Create a mock httpx.Response."""
    return httpx.Response(status_code=status_code, request=httpx.Request("POST", "http://test"))


def _patch_client(mock_client_cls, response=None, side_effect=None):
    mock_client = AsyncMock()
    if side_effect is not None:
        mock_client.post.side_effect = side_effect
    else:
        mock_client.post.return_value = response
    mock_client_cls.return_value.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client_cls.return_value.__aexit__ = AsyncMock(return_value=False)
    return mock_client


# ── WebhookChannel ──────────────────────────────────────


class TestWebhookChannel:
    """Tests for WebhookChannel."""

    @pytest.mark.asyncio
    async def test_successful_send(self, payload):
        channel = WebhookChannel("hook", url="https://example.com/webhook")

        with patch("alert_engine.alerts.channels.httpx.AsyncClient") as mock_client_cls:
            mock_client = _patch_client(mock_client_cls, _mock_response(200))
            result = await channel.send(payload)

        assert result.success is True
        assert result.channel_id == "hook"
        assert result.error is None
        body = mock_client.post.call_args.kwargs["json"]
        assert body["rule_id"] == "cpu-high"
        assert body["severity"] == "critical"
        assert body["message"].startswith("Alert 'High CPU'")

    @pytest.mark.asyncio
    async def test_failure_on_500(self, payload):
        channel = WebhookChannel("hook", url="https://example.com/webhook")

        with patch("alert_engine.alerts.channels.httpx.AsyncClient") as mock_client_cls:
            _patch_client(mock_client_cls, _mock_response(500))
            result = await channel.send(payload)

        assert result.success is False
        assert result.error == "HTTP 500"

    @pytest.mark.asyncio
    async def test_timeout_handling(self, payload):
        channel = WebhookChannel("hook", url="https://example.com/webhook", timeout=1.0)

        with patch("alert_engine.alerts.channels.httpx.AsyncClient") as mock_client_cls:
            _patch_client(mock_client_cls, side_effect=httpx.TimeoutException("timed out"))
            result = await channel.send(payload)

        assert result.success is False
        assert result.error == "timeout"

    @pytest.mark.asyncio
    async def test_connection_error(self, payload):
        channel = WebhookChannel("hook", url="https://example.com/webhook")

        with patch("alert_engine.alerts.channels.httpx.AsyncClient") as mock_client_cls:
            _patch_client(mock_client_cls, side_effect=httpx.ConnectError("refused"))
            result = await channel.send(payload)

        assert result.success is False
        assert "refused" in result.error

    @pytest.mark.asyncio
    async def test_missing_url(self, payload):
        channel = WebhookChannel("hook", url=None)
        result = await channel.send(payload)

        assert result.success is False
        assert result.error == "Webhook URL not configured"

    def test_channel_type(self):
        assert WebhookChannel("hook", url="http://x").channel_type == "webhook"


# ── SlackChannel ────────────────────────────────────────


class TestSlackChannel:
    """Tests for SlackChannel."""

    def test_block_kit_format(self, payload):
        channel = SlackChannel("slack", webhook_url="https://hooks.slack.com/x", channel="#alerts")
        body = channel._format_message(payload)

        assert body["channel"] == "#alerts"
        assert body["blocks"][0]["text"]["text"].startswith(":red_circle:")
        assert "High CPU" in body["blocks"][0]["text"]["text"]
        assert "cpu-high" in body["blocks"][2]["elements"][0]["text"]

    def test_no_channel_override(self, payload):
        channel = SlackChannel("slack", webhook_url="https://hooks.slack.com/x")
        assert "channel" not in channel._format_message(payload)

    @pytest.mark.asyncio
    async def test_successful_send(self, payload):
        channel = SlackChannel("slack", webhook_url="https://hooks.slack.com/x")

        with patch("alert_engine.alerts.channels.httpx.AsyncClient") as mock_client_cls:
            mock_client = _patch_client(mock_client_cls, _mock_response(200))
            result = await channel.send(payload)

        assert result.success is True
        mock_client.post.assert_called_once()

    @pytest.mark.asyncio
    async def test_failure_on_403(self, payload):
        channel = SlackChannel("slack", webhook_url="https://hooks.slack.com/x")

        with patch("alert_engine.alerts.channels.httpx.AsyncClient") as mock_client_cls:
            _patch_client(mock_client_cls, _mock_response(403))
            result = await channel.send(payload)

        assert result.success is False

    @pytest.mark.asyncio
    async def test_missing_webhook_url(self, payload):
        result = await SlackChannel("slack", webhook_url=None).send(payload)
        assert result.success is False


# ── EmailChannel ────────────────────────────────────────


class TestEmailChannel:
    """Tests for EmailChannel."""

    @pytest.mark.asyncio
    async def test_successful_send(self, payload):
        channel = EmailChannel("mail", to="oncall@example.com", smtp_host="smtp.test")

        with patch("alert_engine.alerts.channels.smtplib.SMTP") as mock_smtp:
            server = MagicMock()
            mock_smtp.return_value.__enter__.return_value = server
            result = await channel.send(payload)

        assert result.success is True
        mock_smtp.assert_called_once_with("smtp.test", 25, timeout=10.0)
        msg = server.send_message.call_args.args[0]
        assert msg["To"] == "oncall@example.com"
        assert msg["Subject"] == "[CRITICAL] High CPU"

    @pytest.mark.asyncio
    async def test_tls_and_login(self, payload):
        channel = EmailChannel(
            "mail", to=["a@example.com", "b@example.com"],
            username="user", password="secret", use_tls=True,
        )

        with patch("alert_engine.alerts.channels.smtplib.SMTP") as mock_smtp:
            server = MagicMock()
            mock_smtp.return_value.__enter__.return_value = server
            result = await channel.send(payload)

        assert result.success is True
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("user", "secret")
        msg = server.send_message.call_args.args[0]
        assert msg["To"] == "a@example.com, b@example.com"

    @pytest.mark.asyncio
    async def test_smtp_error(self, payload):
        channel = EmailChannel("mail", to="oncall@example.com")

        with patch("alert_engine.alerts.channels.smtplib.SMTP") as mock_smtp:
            mock_smtp.side_effect = smtplib.SMTPConnectError(421, "busy")
            result = await channel.send(payload)

        assert result.success is False
        assert result.error

    @pytest.mark.asyncio
    async def test_missing_recipient(self, payload):
        result = await EmailChannel("mail", to=None).send(payload)
        assert result.success is False
        assert result.error == "Email recipient not configured"


# ── ConsoleChannel ──────────────────────────────────────


class TestConsoleChannel:
    @pytest.mark.asyncio
    async def test_logs_at_severity_level(self, payload, caplog):
        channel = ConsoleChannel("console")

        with caplog.at_level(logging.INFO, logger="alert_engine.alerts.channels"):
            result = await channel.send(payload)

        assert result.success is True
        record = caplog.records[-1]
        assert record.levelno == logging.CRITICAL
        assert "[ALERT CRITICAL]" in record.getMessage()

    def test_name_defaults_to_id(self):
        assert ConsoleChannel("console").name == "console"


# ── CircuitBreaker ──────────────────────────────────────


class TestCircuitBreaker:
    """Tests for the CircuitBreaker wrapper."""

    @pytest.mark.asyncio
    async def test_closed_passes_through(self, payload):
        inner = RecordingChannel("ops")
        breaker = CircuitBreaker(inner, failure_threshold=2)

        result = await breaker.send(payload)

        assert result.success is True
        assert breaker.state == CircuitState.CLOSED
        assert len(inner.payloads) == 1

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, payload):
        inner = RecordingChannel("ops", success=False)
        breaker = CircuitBreaker(inner, failure_threshold=2, recovery_timeout=60)

        await breaker.send(payload)
        assert breaker.state == CircuitState.CLOSED
        await breaker.send(payload)
        assert breaker.state == CircuitState.OPEN

        result = await breaker.send(payload)
        assert result.success is False
        assert result.error == "circuit open"
        assert len(inner.payloads) == 2

    @pytest.mark.asyncio
    async def test_half_open_probe_success_closes(self, payload):
        inner = RecordingChannel("ops", success=False)
        breaker = CircuitBreaker(inner, failure_threshold=1, recovery_timeout=0)

        await breaker.send(payload)
        assert breaker.state == CircuitState.OPEN

        inner.success = True
        result = await breaker.send(payload)
        assert result.success is True
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_probe_failure_reopens(self, payload):
        inner = RecordingChannel("ops", success=False)
        breaker = CircuitBreaker(inner, failure_threshold=1, recovery_timeout=0)

        await breaker.send(payload)
        await breaker.send(payload)
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_exception_counts_as_failure(self, payload):
        inner = RecordingChannel("ops", raises=RuntimeError("boom"))
        breaker = CircuitBreaker(inner, failure_threshold=1)

        result = await breaker.send(payload)
        assert result.success is False
        assert result.error == "boom"
        assert breaker.state == CircuitState.OPEN

    def test_delegates_identity(self):
        inner = RecordingChannel("ops", enabled=False)
        breaker = CircuitBreaker(inner)
        assert breaker.channel_id == "ops"
        assert breaker.channel_type == "recording"
        assert breaker.enabled is False
        assert breaker.wrapped is inner


# ── create_channel ──────────────────────────────────────


class TestCreateChannel:
    def test_webhook(self):
        channel = create_channel(ChannelConfig(
            id="hook", name="Ops hook", type="webhook",
            config={"url": "https://example.com"},
        ))
        assert isinstance(channel, WebhookChannel)
        assert channel.channel_id == "hook"
        assert channel.name == "Ops hook"

    def test_slack(self):
        channel = create_channel(ChannelConfig(
            id="slack", type="slack", config={"webhook_url": "https://hooks.slack.com/x"},
        ))
        assert isinstance(channel, SlackChannel)

    def test_email(self):
        channel = create_channel(ChannelConfig(
            id="mail", type="email", config={"to": "a@example.com", "smtp_port": 587},
        ))
        assert isinstance(channel, EmailChannel)

    def test_console_disabled(self):
        channel = create_channel(ChannelConfig(id="c", type="console", enabled=False))
        assert isinstance(channel, ConsoleChannel)
        assert channel.enabled is False

    def test_circuit_breaker_wrapping(self):
        channel = create_channel(
            ChannelConfig(id="c", type="console", config={"circuit_breaker": True}),
            failure_threshold=3,
        )
        assert isinstance(channel, CircuitBreaker)
        assert isinstance(channel.wrapped, ConsoleChannel)

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="Unsupported channel type"):
            create_channel(ChannelConfig(id="pd", type="pagerduty"))


def test_result_defaults():
    result = NotificationResult(channel_id="x", success=True)
    assert result.error is None
    assert result.timestamp > 0
