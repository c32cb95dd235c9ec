"""Pre-flight validation of serialized webhook payloads.

The schema models below mirror the provider's documented limits. They are
used for checking only: the payload that goes over the wire is always the
caller's serialized mapping, never a re-dump of these models.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Annotated, Final

from pydantic import AfterValidator, AnyUrl, BaseModel, ConfigDict, Field, StrictBool, ValidationError

from hookpost.errors import HookpostError, ValidationIssue

MAX_CONTENT_LENGTH: Final[int] = 2000
MAX_EMBEDS: Final[int] = 10
MAX_EMBED_TITLE_LENGTH: Final[int] = 256
MAX_EMBED_DESCRIPTION_LENGTH: Final[int] = 4096
MAX_COLOR: Final[int] = 0xFFFFFF
MAX_AUTHOR_NAME_LENGTH: Final[int] = 256
MAX_FOOTER_TEXT_LENGTH: Final[int] = 2048
MAX_FIELDS: Final[int] = 25
MAX_FIELD_NAME_LENGTH: Final[int] = 256
MAX_FIELD_VALUE_LENGTH: Final[int] = 1024

CONTENT_OR_EMBED_REASON: Final[str] = "Message must have content or at least one non-empty embed."

# Date and time with optional seconds, fraction and UTC offset
_TIMESTAMP_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"[0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}(?::[0-9]{2}(?:\.[0-9]{1,6})?)?(?:Z|[+-][0-9]{2}:[0-9]{2})?"
)

# Embed keys that make an embed visible on its own
_VISIBLE_EMBED_KEYS: Final[tuple[str, ...]] = (
    "title",
    "description",
    "fields",
    "author",
    "footer",
    "image",
    "thumbnail",
)


def _check_timestamp(value: str) -> str:
    msg = "must be an ISO-8601 datetime string"
    if not _TIMESTAMP_PATTERN.fullmatch(value):
        raise ValueError(msg)
    try:
        _ = datetime.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(msg) from exc
    return value


Timestamp = Annotated[str, AfterValidator(_check_timestamp)]


class _Schema(BaseModel):
    model_config: ConfigDict = ConfigDict(extra="ignore")  # pyright: ignore[reportIncompatibleVariableOverride]


class AuthorSchema(_Schema):
    name: Annotated[str, Field(max_length=MAX_AUTHOR_NAME_LENGTH)]
    url: AnyUrl | None = None
    icon_url: AnyUrl | None = None


class FooterSchema(_Schema):
    text: Annotated[str, Field(max_length=MAX_FOOTER_TEXT_LENGTH)]
    icon_url: AnyUrl | None = None


class MediaSchema(_Schema):
    url: AnyUrl


class FieldSchema(_Schema):
    name: Annotated[str, Field(max_length=MAX_FIELD_NAME_LENGTH)]
    value: Annotated[str, Field(max_length=MAX_FIELD_VALUE_LENGTH)]
    inline: StrictBool | None = None


class EmbedSchema(_Schema):
    title: Annotated[str, Field(max_length=MAX_EMBED_TITLE_LENGTH)] | None = None
    description: Annotated[str, Field(max_length=MAX_EMBED_DESCRIPTION_LENGTH)] | None = None
    url: AnyUrl | None = None
    color: Annotated[int, Field(strict=True, ge=0, le=MAX_COLOR)] | None = None
    timestamp: Timestamp | None = None
    author: AuthorSchema | None = None
    footer: FooterSchema | None = None
    image: MediaSchema | None = None
    thumbnail: MediaSchema | None = None
    fields: Annotated[list[FieldSchema], Field(max_length=MAX_FIELDS)] | None = None


class MessageSchema(_Schema):
    content: Annotated[str, Field(max_length=MAX_CONTENT_LENGTH)] | None = None
    username: str | None = None
    avatar_url: AnyUrl | None = None
    tts: StrictBool | None = None
    embeds: Annotated[list[EmbedSchema], Field(max_length=MAX_EMBEDS)] | None = None
    thread_name: str | None = None
    flags: Annotated[int, Field(strict=True)] | None = None


def _format_location(location: Sequence[int | str]) -> str:
    return ".".join(str(part) for part in location)


def _has_visible_content(payload: Mapping[str, object]) -> bool:
    content = payload.get("content")
    if isinstance(content, str) and content.strip():
        return True

    embeds = payload.get("embeds")
    if not isinstance(embeds, Sequence) or isinstance(embeds, (str, bytes)):
        return False
    return any(
        isinstance(embed, Mapping) and any(embed.get(key) for key in _VISIBLE_EMBED_KEYS)  # pyright: ignore[reportUnknownMemberType]
        for embed in embeds  # pyright: ignore[reportUnknownVariableType]
    )


def validate_payload(payload: object) -> list[ValidationIssue]:
    """Check a serialized message payload against the provider's limits.

    Every violated constraint is reported, including the content-or-embed
    rule, which is evaluated even when individual fields already failed.

    Args:
        payload: Serialized message, as produced by ``Message.to_payload()``

    Returns:
        An empty list when the payload is valid, otherwise one issue per
        violated constraint
    """
    issues: list[ValidationIssue] = []
    try:
        _ = MessageSchema.model_validate(payload)
    except ValidationError as exc:
        issues.extend(
            ValidationIssue(path=_format_location(error["loc"]), reason=error["msg"])
            for error in exc.errors(include_url=False)
        )

    if isinstance(payload, Mapping) and not _has_visible_content(payload):  # pyright: ignore[reportUnknownArgumentType]
        issues.append(ValidationIssue(path="", reason=CONTENT_OR_EMBED_REASON))

    return issues


def ensure_valid(payload: object, *, index: int | None = None) -> None:
    """Raise a validation error if the payload violates any constraint.

    Args:
        payload: Serialized message payload
        index: Queue position of the message, used in the error message

    Raises:
        HookpostError: With ``kind=ErrorKind.VALIDATION`` and the issue list
    """
    issues = validate_payload(payload)
    if issues:
        raise HookpostError.validation(issues, index=index)
