"""Tests for notifier factory wiring."""

from __future__ import annotations

import pytest
from pydantic import SecretStr

from opswatch.core.config import (
    EmailConfig,
    NotifiersConfig,
    SlackConfig,
    WebhookConfig,
)
from opswatch.core.exceptions import ConfigError
from opswatch.notify.factory import create_notifier, create_notifiers
from opswatch.notify.notifiers import (
    EmailNotifier,
    LogNotifier,
    SlackNotifier,
    WebhookNotifier,
)


class TestCreateNotifier:
    def test_log(self) -> None:
        assert isinstance(create_notifier("log"), LogNotifier)

    def test_case_insensitive(self) -> None:
        assert isinstance(create_notifier(" Webhook ", {"url": "https://h.test"}), WebhookNotifier)

    def test_slack(self) -> None:
        n = create_notifier("slack", {"webhook_url": "https://hooks.slack.test/x"})
        assert isinstance(n, SlackNotifier)

    def test_email_with_comma_recipients(self) -> None:
        n = create_notifier("email", {"smtp_host": "smtp.test", "email_to": "a@x.test,b@x.test"})
        assert isinstance(n, EmailNotifier)
        assert n.recipients == ["a@x.test", "b@x.test"]

    def test_unknown_kind(self) -> None:
        with pytest.raises(ConfigError, match="unknown notifier type: pager"):
            create_notifier("pager")

    def test_invalid_settings(self) -> None:
        with pytest.raises(ConfigError, match="invalid webhook notifier settings"):
            create_notifier("webhook", {"timeout": "never"})


class TestCreateNotifiers:
    def test_defaults_only_log(self) -> None:
        notifiers = create_notifiers(NotifiersConfig())
        assert [n.name for n in notifiers] == ["log"]

    def test_all_channels(self) -> None:
        cfg = NotifiersConfig(
            webhook=WebhookConfig(url="https://h.test"),
            slack=SlackConfig(webhook_url=SecretStr("https://hooks.slack.test/x")),
            email=EmailConfig(smtp_host="smtp.test", email_to=["ops@x.test"]),
        )
        assert [n.name for n in create_notifiers(cfg)] == ["log", "webhook", "slack", "email"]

    def test_slack_only(self) -> None:
        cfg = NotifiersConfig(slack=SlackConfig(webhook_url=SecretStr("https://hooks.slack.test/x")))
        assert [n.name for n in create_notifiers(cfg)] == ["log", "slack"]
