# backend/tests/unit/test_domain.py
import pytest

from stepflow.config.strings import render_response
from stepflow.models.domain import format_timestamp, parse_timestamp
from stepflow.services.security_service import SecurityService


@pytest.mark.parametrize("value", [
    "2016-02-03T14:00:00-0800",
    "2016-02-03T14:00:00-08:00",
    "2016-02-03T22:00:00Z",
])
def test_parse_timestamp_accepts_offset_styles(value):
    assert parse_timestamp(value).timestamp() == parse_timestamp("2016-02-03T22:00:00+00:00").timestamp()


def test_parse_timestamp_rejects_garbage():
    with pytest.raises(ValueError):
        parse_timestamp("next tuesday")


def test_format_timestamp_keeps_own_offset():
    assert format_timestamp("2016-02-03T14:00:00-0800") == "Feb 3, 2:00pm"
    assert format_timestamp("2016-12-25T00:05:00+0100") == "Dec 25, 12:05am"


def test_render_response_exposes_slash_entities():
    text = render_response("upcoming/appointments", {"number/count": 2, "classes": "\nA, \nB"})
    assert text == "You have 2 upcoming class(es):\nA, \nB"


def test_render_response_unknown_key_and_missing_entity():
    assert render_response("custom/key", {}) is None
    assert render_response("confirmation", {}) == "You're booked for {type} on {datetime}. See you there! ✨"


def test_webhook_signature_roundtrip():
    body = b'{"event_type":"LogicInvocation"}'
    signature = SecurityService.sign_payload(body, "secret")
    assert SecurityService.verify_webhook_signature(body, signature, "secret")
    assert not SecurityService.verify_webhook_signature(body, signature, "other")
    assert not SecurityService.verify_webhook_signature(body, "", "secret")


@pytest.mark.parametrize("conversation_id,valid", [
    ("user-42:web", True),
    ("a" * 128, True),
    ("", False),
    ("a" * 129, False),
    ("bad id with spaces", False),
])
def test_conversation_id_hygiene(conversation_id, valid):
    assert SecurityService.is_valid_conversation_id(conversation_id) is valid
