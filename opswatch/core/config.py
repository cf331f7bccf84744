"""Pydantic settings loaded from YAML configuration with ALERT_* env overrides.

Each section that can be tuned from the environment is a pydantic-settings
``BaseSettings`` with its own ``ALERT_*`` prefix; the YAML values are fed in
as init kwargs and the environment wins over them::

    ALERT_EVALUATION_INTERVAL=45s   → alerts.evaluation_interval
    ALERT_SLACK_WEBHOOK_URL=...     → notifiers.slack.webhook_url
    ALERT_SMTP_HOST=...             → notifiers.email.smtp_host
    ALERT_LOG_LEVEL=DEBUG           → logging.level
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Annotated, Any

import yaml
from pydantic import BaseModel, BeforeValidator, Field, SecretStr, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")

_UNIT_SECONDS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: object) -> float:
    """Convert a duration to seconds.

    Accepts numbers (already seconds), numeric strings, and Go-style
    duration strings such as ``"30s"``, ``"5m"``, ``"1h30m"`` or ``"250ms"``.

    Raises:
        ValueError: If the value cannot be parsed or is negative.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        text = value.strip()
        try:
            seconds = float(text)
        except ValueError:
            pos = 0
            seconds = 0.0
            for match in _DURATION_PART.finditer(text):
                if match.start() != pos:
                    break
                seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
                pos = match.end()
            if pos == 0 or pos != len(text):
                raise ValueError(f"invalid duration: {value!r}") from None
    else:
        raise ValueError(f"invalid duration: {value!r}")
    if seconds < 0:
        raise ValueError(f"negative duration: {value!r}")
    return seconds


Seconds = Annotated[float, BeforeValidator(parse_duration)]


class EnvSection(BaseSettings):
    """Settings section where ALERT_* environment variables beat init kwargs."""

    model_config = SettingsConfigDict(extra="ignore", env_ignore_empty=True)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, init_settings


class LoggingConfig(EnvSection):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="ALERT_LOG_")

    level: str = "INFO"
    format: str = "json"


class WebhookConfig(EnvSection):
    """Generic JSON webhook notifier."""

    model_config = SettingsConfigDict(env_prefix="ALERT_WEBHOOK_")

    url: str = ""
    timeout: Seconds = 10.0
    headers: dict[str, str] = {}


class SlackConfig(EnvSection):
    """Slack incoming-webhook notifier."""

    model_config = SettingsConfigDict(env_prefix="ALERT_SLACK_")

    webhook_url: SecretStr = SecretStr("")
    channel: str = ""
    username: str = "Alert Bot"
    timeout: Seconds = 10.0


class EmailConfig(EnvSection):
    """SMTP notifier settings."""

    model_config = SettingsConfigDict(env_prefix="ALERT_")

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: SecretStr = SecretStr("")
    email_from: str = ""
    email_to: Annotated[list[str], NoDecode] = []

    @field_validator("email_to", mode="before")
    @classmethod
    def _split_recipients(cls, v: object) -> object:
        if isinstance(v, str):
            return [addr.strip() for addr in v.split(",") if addr.strip()]
        return v


class NotifiersConfig(BaseModel):
    """Container for all notifier configurations."""

    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    slack: SlackConfig = Field(default_factory=SlackConfig)
    email: EmailConfig = Field(default_factory=EmailConfig)


class HealthConfig(BaseModel):
    """Health probe configuration."""

    endpoints: list[str] = ["http://localhost:8080/health"]
    db_timeout: Seconds = 5.0
    http_timeout: Seconds = 10.0
    recovery_timeout: Seconds = 30.0


class AlertsConfig(EnvSection):
    """Alert manager and composition-root configuration."""

    model_config = SettingsConfigDict(env_prefix="ALERT_")

    evaluation_interval: Seconds = 30.0
    health_check_interval: Seconds = 30.0
    enable_health_monitor: bool = True
    enable_notifications: bool = True
    enable_auto_recovery: bool = True
    store_backend: str = "memory"
    use_memory_store: bool = False
    database_url: str = ""
    resolved_retention: Seconds = 86400.0

    @model_validator(mode="after")
    def _force_memory_store(self) -> AlertsConfig:
        if self.use_memory_store:
            self.store_backend = "memory"
        return self


class ApiConfig(BaseModel):
    """Management HTTP server."""

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8081


class Settings(BaseModel):
    """Root settings container."""

    alerts: AlertsConfig = Field(default_factory=AlertsConfig)
    health: HealthConfig = HealthConfig()
    notifiers: NotifiersConfig = Field(default_factory=NotifiersConfig)
    api: ApiConfig = ApiConfig()
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def build_settings(data: dict[str, Any]) -> Settings:
    """Build Settings from raw YAML data, layering ALERT_* env vars on top."""
    notifiers = _section(data, "notifiers")
    return Settings(
        alerts=AlertsConfig(**_section(data, "alerts")),
        health=HealthConfig(**_section(data, "health")),
        notifiers=NotifiersConfig(
            webhook=WebhookConfig(**_section(notifiers, "webhook")),
            slack=SlackConfig(**_section(notifiers, "slack")),
            email=EmailConfig(**_section(notifiers, "email")),
        ),
        api=ApiConfig(**_section(data, "api")),
        logging=LoggingConfig(**_section(data, "logging")),
    )


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file, apply env overrides and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = build_settings(data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
