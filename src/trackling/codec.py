"""
Wire codec for the event-collection API.

Records are plain JSON objects keyed by wire names. Batch documents wrap the
records under ``"batch"`` next to a batch-level ``"context"`` and a
``"sentAt"`` flush timestamp. All sizes are measured on the compact UTF-8
encoding produced by :func:`dumps`, which is also the request body.
"""

from __future__ import annotations

import json
import typing as t
from datetime import datetime, timezone

from pydantic import ValidationError

from trackling.exceptions import InvalidMessage
from trackling.models import (
    Batch,
    BaseMessage,
    JsonMap,
    Message,
    message_adapter,
    summarize_validation_error,
)

# "2024-01-01T00:00:00.000000+00:00": fixed width keeps size accounting exact.
_TIMESTAMP_PLACEHOLDER = datetime(year=2000, month=1, day=1, tzinfo=timezone.utc)


def format_timestamp(*, value: datetime) -> str:
    """
    Format a datetime as RFC 3339 in UTC with an explicit offset.

    Parameters
    ----------
    value : datetime
        Timestamp to format. Naive values are taken as UTC.

    Returns
    -------
    str
        Timestamp such as ``2024-05-01T12:30:00.000000+00:00``.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz=timezone.utc).isoformat(timespec="microseconds")


def dumps(document: t.Any) -> bytes:
    """
    Serialize a record or batch document to compact UTF-8 JSON.

    Raises
    ------
    InvalidMessage
        If the document holds values JSON cannot represent.
    """
    try:
        return json.dumps(
            obj=document,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        ).encode(encoding="utf-8")
    except (TypeError, ValueError) as error:
        raise InvalidMessage(f"Message is not JSON serializable: {error}") from error


def encode_message(message: BaseMessage) -> JsonMap:
    """
    Build the wire record of a message.

    Optional fields left unset are omitted rather than sent as ``null``.

    Parameters
    ----------
    message : BaseMessage
        Message to encode.

    Returns
    -------
    dict[str, typing.Any]
        Wire record, ``"type"`` first.
    """
    record: JsonMap = {"type": message.type}
    for name, info in type(message).model_fields.items():
        if name == "type":
            continue
        value = getattr(message, name)
        if value is None:
            continue
        if isinstance(value, datetime):
            value = format_timestamp(value=value)
        record[info.alias or name] = value
    if message.model_extra:
        for key, value in message.model_extra.items():
            record.setdefault(key, value)
    return record


def encode_batch(batch: Batch, *, sent_at: datetime | None = None) -> JsonMap:
    """
    Build the wire document of a batch.

    Parameters
    ----------
    batch : Batch
        Batch to encode.
    sent_at : datetime | None, optional
        Flush time. Defaults to now.

    Returns
    -------
    dict[str, typing.Any]
        Document with ``batch``, ``context``, ``sentAt`` and, when set,
        ``integrations`` keys.
    """
    return _envelope(
        records=[encode_message(message) for message in batch.messages],
        context=batch.context,
        integrations=batch.integrations,
        sent_at=sent_at or datetime.now(tz=timezone.utc),
    )


def _envelope(
    *,
    records: list[JsonMap],
    context: JsonMap | None,
    integrations: JsonMap | None,
    sent_at: datetime,
) -> JsonMap:
    document: JsonMap = {
        "batch": records,
        "context": context or {},
        "sentAt": format_timestamp(value=sent_at),
    }
    if integrations is not None:
        document["integrations"] = integrations
    return document


def message_size(message: BaseMessage) -> int:
    """Return the encoded size of a single record, in bytes."""
    return len(dumps(encode_message(message)))


def envelope_size(*, context: JsonMap | None = None, integrations: JsonMap | None = None) -> int:
    """
    Return the encoded size of a batch document holding no records.

    A document with ``n`` records of sizes ``s1..sn`` is exactly
    ``envelope_size + sum(s) + (n - 1)`` bytes long.
    """
    document = _envelope(
        records=[],
        context=context,
        integrations=integrations,
        sent_at=_TIMESTAMP_PLACEHOLDER,
    )
    return len(dumps(document))


def decode_message(record: t.Mapping[str, t.Any]) -> Message:
    """
    Parse a wire record back into a message.

    Parameters
    ----------
    record : Mapping[str, typing.Any]
        Record as produced by :func:`encode_message`.

    Returns
    -------
    Message
        The matching message variant.

    Raises
    ------
    InvalidMessage
        If the record has an unknown ``type`` or breaks a structural rule.
    """
    try:
        return message_adapter.validate_python(dict(record))
    except ValidationError as error:
        raise InvalidMessage(
            f"Invalid record: {summarize_validation_error(error=error)}"
        ) from error


def decode_error(body: bytes) -> str:
    """
    Extract a readable reason from an error response body.

    The service answers with JSON such as ``{"code": "invalid_request",
    "message": "..."}`` or ``{"error": "..."}``; anything else is returned as
    stripped text.

    Parameters
    ----------
    body : bytes
        Raw response body.

    Returns
    -------
    str
        Reason string for diagnostics.
    """
    text = body.decode(encoding="utf-8", errors="replace").strip()
    if not text:
        return "empty response body"
    try:
        payload = json.loads(s=text)
    except ValueError:
        return text
    if not isinstance(payload, dict):
        return text

    message = payload.get("message") or payload.get("error") or payload.get("error_description")
    if isinstance(message, dict):
        message = message.get("message")
    code = payload.get("code")
    if message and code:
        return f"{code}: {message}"
    if message:
        return str(object=message)
    if code:
        return str(object=code)
    return text
