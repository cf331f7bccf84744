"""Notifier construction from configuration."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from opswatch.core.config import (
    EmailConfig,
    NotifiersConfig,
    SlackConfig,
    WebhookConfig,
)
from opswatch.core.exceptions import ConfigError
from opswatch.notify.notifiers import (
    EmailNotifier,
    LogNotifier,
    Notifier,
    SlackNotifier,
    WebhookNotifier,
)

logger = structlog.get_logger(__name__)


def create_notifier(kind: str, settings: Mapping[str, Any] | None = None) -> Notifier:
    """Build a single notifier by kind (``log``, ``webhook``, ``slack``, ``email``).

    *settings* are validated by the matching config model, so durations,
    ports and comma-separated recipient lists may be given as strings.

    Raises:
        ConfigError: Unknown kind or invalid settings.
    """
    data = dict(settings or {})
    try:
        match kind.strip().lower():
            case "log":
                return LogNotifier()
            case "webhook":
                return WebhookNotifier(WebhookConfig(**data))
            case "slack":
                return SlackNotifier(SlackConfig(**data))
            case "email":
                return EmailNotifier(EmailConfig(**data))
    except ValueError as exc:
        raise ConfigError(f"invalid {kind} notifier settings: {exc}") from exc
    raise ConfigError(f"unknown notifier type: {kind}")


def create_notifiers(config: NotifiersConfig) -> list[Notifier]:
    """Build the notifier set from config.

    The log notifier is always present. Webhook, Slack and email are added
    when their endpoint setting is non-empty.
    """
    notifiers: list[Notifier] = [LogNotifier()]

    if config.webhook.url:
        notifiers.append(WebhookNotifier(config.webhook))

    if config.slack.webhook_url.get_secret_value():
        notifiers.append(SlackNotifier(config.slack))

    if config.email.smtp_host:
        notifiers.append(EmailNotifier(config.email))

    logger.info("notifiers_configured", notifiers=[n.name for n in notifiers])
    return notifiers
