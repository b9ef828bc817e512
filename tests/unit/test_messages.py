"""
Unit tests for the message envelope.
"""
import pytest

from inviteflow.protocol.messages import (
    GENERIC_ERROR,
    MessageType,
    OutboundType,
    error_message,
    message_type,
    outbound,
    parse_envelope,
)


@pytest.mark.unit
class TestParseEnvelope:
    """Test envelope validation."""

    def test_known_type_with_payload(self):
        env = parse_envelope({"type": "RSVP_ACCEPTED", "payload": {"eventId": "e", "guestId": "g"}})

        assert env.type is MessageType.RSVP_ACCEPTED
        assert env.payload == {"eventId": "e", "guestId": "g"}

    def test_unknown_type_keeps_raw_name(self):
        env = parse_envelope({"type": "SOMETHING_ELSE", "payload": {}})

        assert env.type is None
        assert env.raw_type == "SOMETHING_ELSE"

    def test_missing_payload_is_empty(self):
        assert parse_envelope({"type": "REQUEST_WISHES_REFRESH"}).payload == {}

    def test_legacy_data_body_is_merged(self):
        env = parse_envelope({
            "type": "RSVP_SUBMITTED",
            "data": {"eventId": "old", "rsvpData": {"a": 1}},
            "payload": {"eventId": "new"},
        })

        assert env.payload == {"eventId": "new", "rsvpData": {"a": 1}}

    @pytest.mark.parametrize("data", [
        None,
        "RSVP_ACCEPTED",
        ["RSVP_ACCEPTED"],
        {"payload": {}},
        {"type": 42},
        {"type": "RSVP_ACCEPTED", "payload": "not-an-object"},
    ])
    def test_non_envelopes(self, data):
        assert parse_envelope(data) is None

    def test_lower_case_template_ready_alias(self):
        assert message_type("template_ready") is MessageType.TEMPLATE_READY


@pytest.mark.unit
class TestOutbound:
    def test_outbound_shape(self):
        assert outbound(OutboundType.WISH_APPROVED, {"wish_id": "w"}) == {
            "type": "WISH_APPROVED",
            "payload": {"wish_id": "w"},
        }

    def test_error_message_is_generic(self):
        assert error_message() == {"type": "ERROR", "payload": {"error": GENERIC_ERROR}}
