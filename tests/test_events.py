"""Tests for inbound envelope decoding and outbound event helpers."""

import json

import pytest

from chatrelay.events import CLEAR, PANIC, chat_event, encode_event, parse_envelope, sentinel_event


class TestParseEnvelope:
    def test_valid_envelope(self):
        assert parse_envelope('{"session": "abc", "text": "hi"}') == ("abc", "hi")

    def test_accepts_bytes(self):
        assert parse_envelope(b'{"session": "abc", "text": "hi"}') == ("abc", "hi")

    def test_extra_fields_are_ignored(self):
        assert parse_envelope('{"session": "abc", "text": "hi", "x": 1}') == ("abc", "hi")

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "",
            "[1, 2]",
            '"just a string"',
            '{"session": "abc"}',
            '{"text": "hi"}',
            '{"session": "", "text": "hi"}',
            '{"session": "abc", "text": ""}',
            '{"session": 123, "text": "hi"}',
            '{"session": "abc", "text": null}',
            b"\xff\xfe",
            '{"session": "\\ud800", "text": "hi"}',
            '{"session": "abc", "text": "bad \\udc00 text"}',
        ],
    )
    def test_malformed_frames_are_rejected(self, raw):
        assert parse_envelope(raw) is None


def test_sentinels_carry_name_in_both_fields():
    assert sentinel_event(CLEAR) == {"usr_from": "CLEAR", "message": "CLEAR"}
    assert sentinel_event(PANIC) == {"usr_from": "PANIC", "message": "PANIC"}


def test_encode_event_uses_wire_field_names():
    encoded = encode_event(chat_event("bob", "hello"))
    assert json.loads(encoded) == {"usr_from": "bob", "message": "hello"}
