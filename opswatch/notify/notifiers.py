"""Notifiers — log, webhook, Slack and email delivery of alerts."""

from __future__ import annotations

import abc
import time

import aiohttp
import structlog

from opswatch.alert.types import Alert, Severity
from opswatch.core.config import EmailConfig, SlackConfig, WebhookConfig
from opswatch.core.exceptions import DeliveryError

logger = structlog.get_logger(__name__)

WEBHOOK_SOURCE = "opswatch-alert-system"

# Slack attachment colours keyed by severity.
_SLACK_COLORS: dict[Severity, str] = {
    Severity.CRITICAL: "danger",   # red
    Severity.ERROR: "danger",      # red
    Severity.WARNING: "warning",   # amber
    Severity.INFO: "good",         # green
}
_SLACK_DEFAULT_COLOR = "#808080"   # grey

# Log level names keyed by severity.
_LOG_LEVELS: dict[Severity, str] = {
    Severity.CRITICAL: "error",
    Severity.ERROR: "error",
    Severity.WARNING: "warning",
    Severity.INFO: "info",
}


class Notifier(abc.ABC):
    """Base class for alert delivery channels.

    ``notify`` is a no-op while the notifier is disabled. Implementations
    must not mutate the alert and must raise ``DeliveryError`` when the
    channel rejects or cannot be reached.
    """

    def __init__(self, name: str, enabled: bool = True) -> None:
        self._name = name
        self._enabled = enabled

    @property
    def name(self) -> str:
        return self._name

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled

    async def notify(self, alert: Alert) -> None:
        """Deliver *alert* once."""
        if not self._enabled:
            return
        await self._deliver(alert)

    @abc.abstractmethod
    async def _deliver(self, alert: Alert) -> None:
        """Channel-specific delivery."""

    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


class _HttpNotifier(Notifier):
    """Shared aiohttp session handling for HTTP-based notifiers."""

    def __init__(self, name: str, timeout: float) -> None:
        super().__init__(name)
        self._timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            )
        return self._session

    async def _post(
        self,
        url: str,
        payload: dict[str, object],
        headers: dict[str, str] | None = None,
    ) -> tuple[int, str]:
        try:
            session = self._get_session()
            async with session.post(url, json=payload, headers=headers) as resp:
                return resp.status, await resp.text()
        except (aiohttp.ClientError, OSError, TimeoutError) as exc:
            raise DeliveryError(self._name, f"request failed: {exc}") from exc

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class LogNotifier(Notifier):
    """Writes alerts to the structured log. Always enabled; never fails."""

    def __init__(self) -> None:
        super().__init__("log")

    def set_enabled(self, enabled: bool) -> None:
        # The log channel cannot be switched off.
        return

    async def _deliver(self, alert: Alert) -> None:
        level = _LOG_LEVELS.get(alert.severity, "debug")
        fields: dict[str, object] = {
            "alert_id": alert.id,
            "type": alert.type.value,
            "severity": alert.severity.value,
            "title": alert.title,
            "description": alert.description,
            "source": alert.source,
            "value": alert.value,
            "threshold": alert.threshold,
            "status": alert.status.value,
            "starts_at": alert.starts_at,
        }
        for key, val in alert.labels.items():
            fields[f"label_{key}"] = val
        getattr(logger, level)("alert_notification", **fields)


class WebhookNotifier(_HttpNotifier):
    """POSTs ``{alert, timestamp, source}`` as JSON to a configured URL."""

    def __init__(self, config: WebhookConfig) -> None:
        super().__init__("webhook", config.timeout or 10.0)
        self._url = config.url
        self._headers = {"Content-Type": "application/json", **config.headers}

    async def _deliver(self, alert: Alert) -> None:
        if not self._url:
            return

        payload: dict[str, object] = {
            "alert": alert.model_dump(mode="json"),
            "timestamp": time.time(),
            "source": WEBHOOK_SOURCE,
        }
        status, body = await self._post(self._url, payload, headers=self._headers)
        if not 200 <= status < 300:
            logger.warning(
                "webhook_send_failed",
                url=self._url,
                alert_id=alert.id,
                status=status,
                body=body[:200],
            )
            raise DeliveryError(self._name, f"non-2xx status: {status}")

        logger.info("webhook_sent", url=self._url, alert_id=alert.id, status=status)


class SlackNotifier(_HttpNotifier):
    """Delivers alerts to a Slack incoming webhook with colour-coded attachments."""

    def __init__(self, config: SlackConfig) -> None:
        super().__init__("slack", config.timeout or 10.0)
        self._webhook_url = config.webhook_url.get_secret_value()
        self._channel = config.channel
        self._username = config.username or "Alert Bot"

    @staticmethod
    def color_for(severity: Severity) -> str:
        return _SLACK_COLORS.get(severity, _SLACK_DEFAULT_COLOR)

    def build_message(self, alert: Alert) -> dict[str, object]:
        fields: list[dict[str, object]] = [
            {"title": "Severity", "value": alert.severity.value, "short": True},
            {"title": "Type", "value": alert.type.value, "short": True},
            {"title": "Source", "value": alert.source, "short": True},
            {"title": "Status", "value": alert.status.value, "short": True},
        ]
        if alert.value != 0 or alert.threshold != 0:
            fields.append({
                "title": "Value / Threshold",
                "value": f"{alert.value:.2f} / {alert.threshold:.2f}",
                "short": True,
            })

        message: dict[str, object] = {
            "username": self._username,
            "text": f"\U0001f6a8 Alert: {alert.title}",
            "attachments": [{
                "color": self.color_for(alert.severity),
                "title": alert.title,
                "text": alert.description,
                "ts": int(alert.created_at),
                "fields": fields,
            }],
        }
        if self._channel:
            message["channel"] = self._channel
        return message

    async def _deliver(self, alert: Alert) -> None:
        if not self._webhook_url:
            return

        status, body = await self._post(self._webhook_url, self.build_message(alert))
        if status != 200:
            logger.warning(
                "slack_send_failed",
                alert_id=alert.id,
                status=status,
                body=body[:200],
            )
            raise DeliveryError(self._name, f"non-200 status: {status}")

        logger.info("slack_sent", alert_id=alert.id)


class EmailNotifier(Notifier):
    """Email channel. Logs the would-be message instead of speaking SMTP."""

    def __init__(self, config: EmailConfig) -> None:
        super().__init__("email")
        self._smtp_host = config.smtp_host
        self._smtp_port = config.smtp_port
        self._username = config.smtp_username
        self._password = config.smtp_password
        self._from = config.email_from
        self._to = list(config.email_to)

    @property
    def recipients(self) -> list[str]:
        return list(self._to)

    async def _deliver(self, alert: Alert) -> None:
        if not self._to:
            return

        # TODO: replace with an SMTP client once an outbound relay is provisioned.
        logger.info(
            "email_notification_stub",
            alert_id=alert.id,
            severity=alert.severity.value,
            title=alert.title,
            smtp_host=self._smtp_host,
            smtp_port=self._smtp_port,
            sender=self._from,
            recipients=self._to,
        )
