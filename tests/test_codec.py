"""
Tests for the wire codec in trackling.codec.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from trackling import codec
from trackling.exceptions import InvalidMessage
from trackling.models import Alias, Batch, Group, Identify, Page, Screen, Track

SENT_AT = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_encode_track_record():
    """Test the record layout of a track message."""
    message = Track(user_id="u1", event="Signed Up", properties={"plan": "pro"})

    record = codec.encode_message(message)

    assert record == {
        "type": "track",
        "userId": "u1",
        "event": "Signed Up",
        "properties": {"plan": "pro"},
    }
    assert next(iter(record)) == "type"


@pytest.mark.parametrize(
    ("message", "expected_type", "expected_keys"),
    [
        (Identify(user_id="u1", traits={"a": 1}), "identify", {"userId", "traits"}),
        (Track(anonymous_id="a1", event="e"), "track", {"anonymousId", "event", "properties"}),
        (Page(user_id="u1", name="Home"), "page", {"userId", "name", "properties"}),
        (
            Screen(user_id="u1", name="Settings", category="Account"),
            "screen",
            {"userId", "name", "category", "properties"},
        ),
        (Group(user_id="u1", group_id="acme"), "group", {"userId", "groupId", "traits"}),
        (Alias(user_id="u1", previous_id="old"), "alias", {"userId", "previousId", "traits"}),
    ],
)
def test_encode_discriminator_and_wire_names(message, expected_type, expected_keys):
    """Test the lower-cased type discriminator and camelCase keys."""
    record = codec.encode_message(message)

    assert record["type"] == expected_type
    assert set(record) == {"type"} | expected_keys


def test_absent_optional_fields_are_omitted():
    """Test that unset optional fields are absent rather than null."""
    record = codec.encode_message(Track(user_id="u1", event="a"))

    assert "timestamp" not in record
    assert "context" not in record
    assert "integrations" not in record
    assert "anonymousId" not in record
    assert None not in record.values()


def test_timestamp_is_rfc3339_with_utc_offset():
    """Test timestamp formatting and conversion to UTC."""
    local = datetime(2024, 5, 1, 14, 30, 15, 250000, tzinfo=timezone(timedelta(hours=2)))
    message = Track(user_id="u1", event="a", timestamp=local)

    record = codec.encode_message(message)

    assert record["timestamp"] == "2024-05-01T12:30:15.250000+00:00"
    assert codec.format_timestamp(value=datetime(2024, 5, 1)) == "2024-05-01T00:00:00.000000+00:00"


def test_context_integrations_and_extras_are_flattened():
    """Test that per-message maps and extra fields reach the record."""
    message = Track(
        user_id="u1",
        event="a",
        context={"locale": "fr-FR"},
        integrations={"All": False, "Mixpanel": True},
        messageId="m-1",
    )

    record = codec.encode_message(message)

    assert record["context"] == {"locale": "fr-FR"}
    assert record["integrations"] == {"All": False, "Mixpanel": True}
    assert record["messageId"] == "m-1"


def test_encode_batch_document():
    """Test the batch envelope layout."""
    batch = Batch(
        messages=[Track(user_id="u1", event="a"), Identify(anonymous_id="a1")],
        context={"library": {"name": "trackling"}},
    )

    document = codec.encode_batch(batch, sent_at=SENT_AT)

    assert set(document) == {"batch", "context", "sentAt"}
    assert [record["type"] for record in document["batch"]] == ["track", "identify"]
    assert document["context"] == {"library": {"name": "trackling"}}
    assert document["sentAt"] == "2024-05-01T12:00:00.000000+00:00"


def test_encode_batch_defaults():
    """Test empty context, integrations and a generated flush time."""
    before = datetime.now(tz=timezone.utc)
    document = codec.encode_batch(
        Batch(messages=[Track(user_id="u1", event="a")], integrations={"All": True}),
    )

    assert document["context"] == {}
    assert document["integrations"] == {"All": True}
    assert datetime.fromisoformat(document["sentAt"]) >= before.replace(microsecond=0)


def test_batch_size_accounting_is_exact():
    """Test that envelope plus records plus separators equals the body length."""
    context = {"library": {"name": "trackling", "version": "0.1.0"}, "locale": "héllo"}
    messages = [
        Track(user_id="u1", event="a", properties={"emoji": "✓", "n": 1}),
        Page(anonymous_id="a1", name="Home"),
        Group(user_id="u1", group_id="acme", traits={"size": 12}),
    ]
    batch = Batch(messages=messages, context=context)

    body = codec.dumps(codec.encode_batch(batch, sent_at=SENT_AT))
    expected = (
        codec.envelope_size(context=context)
        + sum(codec.message_size(message) for message in messages)
        + len(messages)
        - 1
    )

    assert len(body) == expected


def test_dumps_is_compact_utf8():
    """Test compact separators and raw UTF-8 output."""
    assert codec.dumps({"a": [1, 2], "b": "é"}) == '{"a":[1,2],"b":"é"}'.encode()


@pytest.mark.parametrize("value", [object(), float("nan"), {1, 2}])
def test_dumps_rejects_non_json_values(value):
    """Test that values JSON cannot represent raise InvalidMessage."""
    message = Track(user_id="u1", event="a", properties={"bad": value})

    with pytest.raises(InvalidMessage, match="not JSON serializable"):
        codec.message_size(message)


@pytest.mark.parametrize(
    "message",
    [
        Identify(user_id="u1", traits={"email": "a@b.c", "age": 42}),
        Track(
            user_id="u1",
            anonymous_id="a1",
            event="Order Completed",
            timestamp=datetime(2024, 5, 1, 12, 30, 15, 123456, tzinfo=timezone.utc),
            properties={"total": 19.99, "items": [{"sku": "x", "qty": 2}], "coupon": None},
            context={"ip": "127.0.0.1"},
        ),
        Page(anonymous_id="a1", name="Pricing", category="Marketing", properties={"path": "/p"}),
        Screen(user_id="u1", name="Settings"),
        Group(user_id="u1", group_id="acme", traits={"plan": "enterprise"}),
        Alias(user_id="u1", previous_id="a1", integrations={"All": True}),
        Track(user_id="u1", event="a", messageId="m-1"),
    ],
)
def test_decode_reverses_encode(message):
    """Test that decoding an encoded record yields an equal message."""
    record = json.loads(s=codec.dumps(codec.encode_message(message)))

    decoded = codec.decode_message(record)

    assert type(decoded) is type(message)
    assert decoded == message
    assert decoded.user_id == message.user_id
    assert decoded.anonymous_id == message.anonymous_id
    assert decoded.timestamp == message.timestamp


def test_decode_preserves_required_fields():
    """Test identity, event name, timestamp and properties survive a round trip."""
    timestamp = datetime(2023, 12, 31, 23, 59, 59, 999999, tzinfo=timezone.utc)
    properties = {"big": 2**53, "float": 0.1, "unicode": "日本", "nested": {"ok": True}}
    message = Track(user_id="u1", event="a", timestamp=timestamp, properties=properties)

    decoded = codec.decode_message(codec.encode_message(message))

    assert decoded.user_id == "u1"
    assert decoded.event == "a"
    assert decoded.timestamp == timestamp
    assert decoded.properties == properties


def test_decode_rejects_unknown_type():
    """Test that an unknown discriminator raises InvalidMessage."""
    with pytest.raises(InvalidMessage, match="Invalid record"):
        codec.decode_message({"type": "purchase", "userId": "u1"})


def test_decode_rejects_missing_identity():
    """Test that decoded records obey the identity rule."""
    with pytest.raises(InvalidMessage):
        codec.decode_message({"type": "track", "event": "a"})


@pytest.mark.parametrize(
    ("body", "expected"),
    [
        (b'{"code":"invalid_request","message":"bad write key"}', "invalid_request: bad write key"),
        (b'{"message":"batch too large"}', "batch too large"),
        (b'{"error":"unauthorized"}', "unauthorized"),
        (b'{"error":{"message":"nested reason"}}', "nested reason"),
        (b'{"code":"rate_limited"}', "rate_limited"),
        (b'{"success":false}', '{"success":false}'),
        (b"[1, 2]", "[1, 2]"),
        (b"Bad Gateway\n", "Bad Gateway"),
        (b"", "empty response body"),
        (b"  ", "empty response body"),
    ],
)
def test_decode_error(body, expected):
    """Test extraction of a reason string from error bodies."""
    assert codec.decode_error(body) == expected
