"""Environment-driven settings for the WhatsApp responder."""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

_REQUIRED = {
    "WA_TOKEN": "access_token",
    "PHONE_NUMBER_ID": "phone_number_id",
    "VERIFY_TOKEN": "verify_token",
    "OPERATOR_NUMBER": "operator_number",
}

_OPTIONAL = {
    "HOST": "host",
    "PORT": "port",
    "GRAPH_API_BASE": "api_base",
    "GRAPH_API_VERSION": "api_version",
    "APP_SECRET": "app_secret",
    "TEMPLATES_PATH": "templates_path",
    "INTENT_RULES_PATH": "intent_rules_path",
    "AUDIT_LOG_PATH": "audit_log_path",
    "REPLY_DELAY_MIN": "reply_delay_min",
    "REPLY_DELAY_MAX": "reply_delay_max",
    "RATE_LIMIT_WINDOW": "rate_limit_window",
    "HTTP_TIMEOUT": "http_timeout",
    "LOG_LEVEL": "log_level",
}


class ConfigError(Exception):
    """Raised when required configuration is missing or unreadable."""


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str = Field(min_length=1)
    phone_number_id: str = Field(min_length=1)
    verify_token: str = Field(min_length=1)
    operator_number: str = Field(min_length=1)

    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)
    api_base: str = "https://graph.facebook.com"
    api_version: str = "v24.0"
    app_secret: str | None = None
    templates_path: str = "config/templates.json"
    intent_rules_path: str = "config/intent-rules.json"
    audit_log_path: str | None = None
    reply_delay_min: float = Field(default=1.0, ge=0)
    reply_delay_max: float = Field(default=3.0, ge=0)
    rate_limit_window: float = Field(default=2.0, gt=0)
    http_timeout: float = Field(default=10.0, gt=0)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from environment variables.

        Raises ConfigError naming every missing required variable, or
        wrapping the validation error for malformed optional values.
        """
        env = os.environ if environ is None else environ
        missing = sorted(k for k in _REQUIRED if not env.get(k))
        if missing:
            raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

        values: dict[str, str] = {field: env[key] for key, field in _REQUIRED.items()}
        for key, field in _OPTIONAL.items():
            if env.get(key):
                values[field] = env[key]

        try:
            settings = cls.model_validate(values)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

        if settings.reply_delay_max < settings.reply_delay_min:
            raise ConfigError("REPLY_DELAY_MAX must not be lower than REPLY_DELAY_MIN")
        return settings
