"""Alert delivery channels."""

from opswatch.notify.factory import create_notifier, create_notifiers
from opswatch.notify.notifiers import (
    EmailNotifier,
    LogNotifier,
    Notifier,
    SlackNotifier,
    WebhookNotifier,
)

__all__ = [
    "EmailNotifier",
    "LogNotifier",
    "Notifier",
    "SlackNotifier",
    "WebhookNotifier",
    "create_notifier",
    "create_notifiers",
]
