"""
Message schema of the event-collection API.

The six message kinds form a closed union discriminated on ``type``. Models
only enforce structural rules; the collection service owns the semantics of
traits, properties and context.
"""

from __future__ import annotations

import typing as t
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from trackling.exceptions import InvalidMessage

JsonMap = dict[str, t.Any]


def summarize_validation_error(*, error: ValidationError) -> str:
    """
    Flatten a pydantic validation error into a single line.

    Parameters
    ----------
    error : ValidationError
        Error raised while validating a message.

    Returns
    -------
    str
        ``location: message`` pairs joined by ``"; "``.
    """
    parts = []
    for detail in error.errors():
        location = ".".join(str(object=item) for item in detail["loc"])
        parts.append(f"{location}: {detail['msg']}" if location else detail["msg"])
    return "; ".join(parts)


class BaseMessage(BaseModel):
    """
    Fields shared by every message kind.

    Both the Python field names and the wire names (``userId``,
    ``anonymousId``) are accepted. Unknown keywords are kept and sent as
    top-level record fields.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str
    user_id: str | None = Field(default=None, alias="userId")
    anonymous_id: str | None = Field(default=None, alias="anonymousId")
    timestamp: datetime | None = None
    context: JsonMap | None = None
    integrations: JsonMap | None = None

    def __init__(self, /, **data: t.Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as error:
            raise InvalidMessage(
                f"Invalid {type(self).__name__} message: "
                f"{summarize_validation_error(error=error)}"
            ) from error

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _require_identity(self) -> t.Self:
        if not self.user_id and not self.anonymous_id:
            raise ValueError("a message needs a user_id or an anonymous_id")
        return self


class Identify(BaseMessage):
    """Tie a user to their traits."""

    type: t.Literal["identify"] = "identify"
    traits: JsonMap = Field(default_factory=dict)


class Track(BaseMessage):
    """Record an action the user performed."""

    type: t.Literal["track"] = "track"
    event: str = Field(min_length=1)
    properties: JsonMap = Field(default_factory=dict)


class Page(BaseMessage):
    """Record a web page view."""

    type: t.Literal["page"] = "page"
    name: str | None = None
    category: str | None = None
    properties: JsonMap = Field(default_factory=dict)


class Screen(BaseMessage):
    """Record a mobile screen view."""

    type: t.Literal["screen"] = "screen"
    name: str | None = None
    category: str | None = None
    properties: JsonMap = Field(default_factory=dict)


class Group(BaseMessage):
    """Associate a user with a group (company, organization, account)."""

    type: t.Literal["group"] = "group"
    group_id: str = Field(alias="groupId", min_length=1)
    traits: JsonMap = Field(default_factory=dict)


class Alias(BaseMessage):
    """Merge a previous identity into the current one."""

    type: t.Literal["alias"] = "alias"
    previous_id: str = Field(alias="previousId", min_length=1)
    traits: JsonMap = Field(default_factory=dict)


Message = t.Annotated[
    Identify | Track | Page | Screen | Group | Alias,
    Field(discriminator="type"),
]

message_adapter: TypeAdapter[Message] = TypeAdapter(Message)

MESSAGE_TYPES: tuple[type[BaseMessage], ...] = (Identify, Track, Page, Screen, Group, Alias)


@dataclass
class Batch:
    """
    Ordered group of messages sent together in one request.

    Parameters
    ----------
    messages : list[Message]
        Messages in insertion order.
    context : dict[str, typing.Any] | None
        Batch-level context merged by the service into every message.
    integrations : dict[str, typing.Any] | None
        Batch-level destination toggles.
    batch_id : str
        Local identifier for log correlation. Never sent on the wire.
    """

    messages: list[Message] = field(default_factory=list)
    context: JsonMap | None = None
    integrations: JsonMap | None = None
    batch_id: str = field(default_factory=lambda: str(object=uuid.uuid4()))

    def __len__(self) -> int:
        return len(self.messages)

    @property
    def is_empty(self) -> bool:
        return not self.messages
