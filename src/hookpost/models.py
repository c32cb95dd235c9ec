"""Message and embed data models.

These models only accumulate data and serialize it; length limits and URL
checks live in :mod:`hookpost.validation` so that an over-long message can
still be built, queued and inspected before it is rejected.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Self

from pydantic import BaseModel, ConfigDict, Field


class _PayloadModel(BaseModel):
    """Base for all payload models."""

    model_config: ConfigDict = ConfigDict(  # pyright: ignore[reportIncompatibleVariableOverride]
        extra="forbid",
        validate_assignment=True,
    )

    def to_payload(self) -> dict[str, object]:
        """Serialize to the JSON shape sent to the webhook, omitting unset values."""
        return self.model_dump(mode="json", exclude_none=True)


class EmbedAuthor(_PayloadModel):
    name: str
    url: str | None = None
    icon_url: str | None = None


class EmbedFooter(_PayloadModel):
    text: str
    icon_url: str | None = None


class EmbedMedia(_PayloadModel):
    """Image or thumbnail reference."""

    url: str


class EmbedField(_PayloadModel):
    name: str
    value: str
    inline: bool | None = None


class Embed(_PayloadModel):
    """Rich content block attached to a message."""

    title: str | None = None
    description: str | None = None
    url: str | None = None
    color: int | None = None
    timestamp: str | None = None
    author: EmbedAuthor | None = None
    footer: EmbedFooter | None = None
    image: EmbedMedia | None = None
    thumbnail: EmbedMedia | None = None
    fields: list[EmbedField] = Field(default_factory=list)

    def add_field(self, name: str, value: str, *, inline: bool | None = None) -> Self:
        self.fields.append(EmbedField(name=name, value=value, inline=inline))
        return self

    def stamp(self, moment: datetime | None = None) -> Self:
        """Set the timestamp, defaulting to the current UTC time."""
        self.timestamp = (moment or datetime.now(UTC)).isoformat()
        return self


class Message(_PayloadModel):
    """A webhook message.

    ``edit_target`` is a message id or message link. When set, delivering the
    message edits that earlier message instead of posting a new one; it is
    never part of the serialized payload.
    """

    content: str | None = None
    username: str | None = None
    avatar_url: str | None = None
    tts: bool | None = None
    embeds: list[Embed] = Field(default_factory=list)
    thread_name: str | None = None
    flags: int | None = None
    allowed_mentions: dict[str, object] | None = None
    edit_target: Annotated[str | None, Field(exclude=True)] = None

    def add_embed(self, embed: Embed) -> Self:
        self.embeds.append(embed)
        return self

    def to_payload(self) -> dict[str, object]:
        payload = super().to_payload()
        if not self.embeds:
            _ = payload.pop("embeds", None)
        return payload
