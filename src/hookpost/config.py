"""Client configuration.

Settings can be built directly, from an endpoint URL, or loaded from a YAML
file whose string values may reference environment variables using the
``${VARIABLE_NAME}`` syntax (useful for keeping the webhook token out of the
file itself).
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Final
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from hookpost.errors import HookpostError
from hookpost.utils.sanitization import sanitize_url

# Matches ${VARIABLE_NAME} where VARIABLE_NAME contains letters, digits and underscores
ENV_VAR_PATTERN: Final[re.Pattern[str]] = re.compile(r"\$\{([A-Z0-9_]+)\}")

DEFAULT_API_BASE: Final[str] = "https://discord.com/api"


def parse_endpoint(webhook_url: str) -> tuple[str, str]:
    """Extract the webhook id and token from an endpoint URL.

    The id and token are the last two non-empty ``/``-separated segments of
    the URL path.

    Raises:
        HookpostError: With ``kind=ErrorKind.CONFIGURATION`` when the path has
            fewer than two segments
    """
    segments = [segment for segment in urlparse(webhook_url.strip()).path.split("/") if segment]
    if len(segments) < 2:
        msg = f"Webhook URL must end with /<id>/<token>: {sanitize_url(webhook_url)}"
        raise HookpostError.configuration(msg)
    return segments[-2], segments[-1]


class WebhookSettings(BaseModel):
    """Settings for a single webhook endpoint."""

    model_config: ConfigDict = ConfigDict(  # pyright: ignore[reportIncompatibleVariableOverride]
        extra="forbid",
        validate_assignment=True,
        str_strip_whitespace=True,
        validate_default=True,
    )

    webhook_url: Annotated[
        str,
        Field(description="Webhook URL ending in /<id>/<token>"),
    ]
    api_base: Annotated[
        str,
        Field(description="Provider API root the webhook id and token are appended to"),
    ] = DEFAULT_API_BASE
    request_timeout: Annotated[
        float,
        Field(gt=0, description="Timeout for a single HTTP request in seconds"),
    ] = 10.0
    max_rate_limit_retries: Annotated[
        int,
        Field(ge=0, description="Maximum retries of one request after HTTP 429"),
    ] = 60
    default_retry_after: Annotated[
        float,
        Field(ge=0, description="Wait in seconds when a 429 carries no usable retry-after header"),
    ] = 3.0
    username: Annotated[
        str | None,
        Field(description="Display name used when a message sets none"),
    ] = None
    avatar_url: Annotated[
        str | None,
        Field(description="Avatar used when a message sets none"),
    ] = None

    @field_validator("webhook_url", "api_base")
    @classmethod
    def validate_http_url(cls, value: str) -> str:
        """Require an absolute http(s) URL."""
        parsed = urlparse(value)
        if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
            msg = "URL must be an absolute http(s) URL"
            raise ValueError(msg)
        return value.rstrip("/")

    @property
    def endpoint(self) -> tuple[str, str]:
        """The ``(webhook_id, token)`` pair of :attr:`webhook_url`."""
        return parse_endpoint(self.webhook_url)

    @property
    def base_url(self) -> str:
        """Address all requests for this webhook are issued against."""
        webhook_id, token = self.endpoint
        return f"{self.api_base}/webhooks/{webhook_id}/{token}"

    @classmethod
    def from_url(cls, webhook_url: str, **overrides: object) -> WebhookSettings:
        """Build settings for an endpoint URL, failing with a configuration error.

        Raises:
            HookpostError: With ``kind=ErrorKind.CONFIGURATION`` when the URL
                or any override is invalid
        """
        data: dict[str, object] = {"webhook_url": webhook_url, **overrides}
        settings = _validate_settings(data, source="client settings")
        _ = settings.endpoint
        return settings


def _format_validation_error(error: ValidationError, *, source: str) -> str:
    lines = [f"Configuration validation failed ({source}):", ""]
    for detail in error.errors(include_url=False):
        field_path = " → ".join(str(loc) for loc in detail["loc"])
        lines.append(f"  Field: {field_path}")
        lines.append(f"  Error: {detail['msg']}")
        lines.append("")
    return sanitize_url("\n".join(lines).rstrip())


def _validate_settings(data: Mapping[str, object], *, source: str) -> WebhookSettings:
    try:
        return WebhookSettings.model_validate(data)
    except ValidationError as e:
        raise HookpostError.configuration(_format_validation_error(e, source=source)) from e


def resolve_env_var(value: str) -> str:
    """Resolve ``${VARIABLE_NAME}`` references in a string value.

    Raises:
        HookpostError: With ``kind=ErrorKind.CONFIGURATION`` if a referenced
            variable is not set

    Examples:
        >>> os.environ["HOOK_TOKEN"] = "secret"
        >>> resolve_env_var("https://discord.com/api/webhooks/1/${HOOK_TOKEN}")
        'https://discord.com/api/webhooks/1/secret'
    """

    def replace_match(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            msg = f"Required environment variable '{var_name}' is not set."
            raise HookpostError.configuration(msg)
        return env_value

    return ENV_VAR_PATTERN.sub(replace_match, value)


def resolve_env_vars_in_dict(data: Mapping[str, object]) -> dict[str, object]:
    """Recursively resolve environment variables in nested mappings and lists."""
    result: dict[str, object] = {}
    for key, value in data.items():
        result[key] = _resolve(value)
    return result


def _resolve(value: object) -> object:
    if isinstance(value, str):
        return resolve_env_var(value)
    if isinstance(value, Mapping):
        return resolve_env_vars_in_dict(value)  # pyright: ignore[reportUnknownArgumentType]  # YAML boundary
    if isinstance(value, list):
        return [_resolve(item) for item in value]  # pyright: ignore[reportUnknownVariableType]  # YAML boundary
    return value


def load_settings(config_path: Path) -> WebhookSettings:
    """Load and validate webhook settings from a YAML file.

    The settings may sit at the top level of the document or under a
    ``webhook`` key.

    Args:
        config_path: Path to the YAML settings file

    Returns:
        Validated settings

    Raises:
        HookpostError: With ``kind=ErrorKind.CONFIGURATION`` if the file is
            missing, unreadable, malformed, references an unset environment
            variable, or fails validation

    Examples:
        >>> settings = load_settings(Path("hookpost.yaml"))
        >>> settings.max_rate_limit_retries
        60
    """
    if not config_path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise HookpostError.configuration(msg)

    try:
        with config_path.open("r", encoding="utf-8") as f:
            raw_data: object = yaml.safe_load(f)  # pyright: ignore[reportAny]  # YAML boundary
    except yaml.YAMLError as e:
        msg = f"Failed to parse YAML configuration file: {config_path}\nYAML parsing error: {e}"
        raise HookpostError.configuration(msg) from e
    except OSError as e:
        msg = f"Failed to read configuration file: {config_path}\nError: {e}"
        raise HookpostError.configuration(msg) from e

    if not isinstance(raw_data, dict):
        msg = (
            f"Invalid configuration file format: {config_path}\n"
            f"Expected YAML mapping at root level, got: {type(raw_data).__name__}"
        )
        raise HookpostError.configuration(msg)

    section: object = raw_data.get("webhook", raw_data)  # pyright: ignore[reportUnknownMemberType]  # YAML boundary
    if not isinstance(section, dict):
        msg = f"Invalid 'webhook' section in {config_path}: expected a mapping"
        raise HookpostError.configuration(msg)

    resolved = resolve_env_vars_in_dict(section)  # pyright: ignore[reportUnknownArgumentType]  # YAML boundary
    settings = _validate_settings(resolved, source=str(config_path))
    _ = settings.endpoint
    return settings
