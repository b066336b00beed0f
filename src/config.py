"""Relay configuration loaded once from the environment at startup."""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

DEFAULT_DIFY_API_URL = "https://api.dify.ai/v1/chat-messages"
DEFAULT_PORT = 3000

_REQUIRED_ENV = (
    "LINE_CHANNEL_ACCESS_TOKEN",
    "LINE_CHANNEL_SECRET",
    "DIFY_API_KEY",
)


class ConfigurationError(Exception):
    """Raised when required configuration is missing or malformed."""

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        self.missing = missing or []
        super().__init__(message)


class RelayConfig(BaseModel):
    """Immutable credentials and settings shared by the relay components."""

    model_config = ConfigDict(frozen=True)

    channel_secret: str = Field(min_length=1, repr=False)
    channel_access_token: str = Field(min_length=1, repr=False)
    dify_api_key: str = Field(min_length=1, repr=False)
    dify_api_url: str = DEFAULT_DIFY_API_URL
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    audit_log_path: str | None = None
    audit_log_max_bytes: int = Field(default=10_485_760, gt=0)
    audit_log_backup_count: int = Field(default=5, ge=1)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> RelayConfig:
        """Build the config from environment variables.

        Raises ConfigurationError naming every required variable that is
        missing or empty.
        """
        env = os.environ if environ is None else environ
        missing = [name for name in _REQUIRED_ENV if not env.get(name)]
        if missing:
            raise ConfigurationError(
                f"Missing env vars: {', '.join(missing)}", missing=missing,
            )

        try:
            port = int(env.get("PORT") or DEFAULT_PORT)
            max_bytes = int(env.get("AUDIT_LOG_MAX_BYTES") or 10_485_760)
            backup_count = int(env.get("AUDIT_LOG_BACKUP_COUNT") or 5)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid numeric setting: {exc}") from exc

        try:
            return cls(
                channel_secret=env["LINE_CHANNEL_SECRET"],
                channel_access_token=env["LINE_CHANNEL_ACCESS_TOKEN"],
                dify_api_key=env["DIFY_API_KEY"],
                dify_api_url=env.get("DIFY_API_URL") or DEFAULT_DIFY_API_URL,
                port=port,
                audit_log_path=env.get("AUDIT_LOG_PATH") or None,
                audit_log_max_bytes=max_bytes,
                audit_log_backup_count=backup_count,
            )
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc
