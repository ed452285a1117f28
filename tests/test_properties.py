from __future__ import annotations

from datetime import datetime, timedelta, timezone

from pstextract.extraction.properties import get_prop, get_text, to_text


def test_get_prop_respects_priority_order():
    props = {"Subject": "by name", "0037": "by tag"}
    assert get_prop(props, "37", "0037", "Subject") == "by tag"
    assert get_prop(props, "Subject", "0037") == "by name"


def test_get_prop_skips_none_but_keeps_empty_string():
    props = {"0c1a": None, "0042": ""}
    assert get_prop(props, "0c1a", "0042") == ""


def test_get_prop_missing_keys_and_odd_inputs():
    assert get_prop({}, "37") is None
    assert get_prop(None, "37") is None
    assert get_prop(["not", "a", "mapping"], "37") is None


def test_get_text_decodes_binary_as_utf8():
    props = {"1000": "héllo".encode("utf-8"), "3701": bytearray(b"abc")}
    assert get_text(props, "1000") == "héllo"
    assert get_text(props, "3701") == "abc"
    assert get_text(props, "nope") is None


def test_to_text_renders_datetimes_in_utc():
    naive = datetime(2024, 3, 1, 9, 30)
    assert to_text(naive) == "2024-03-01T09:30:00.000Z"
    aware = datetime(2024, 3, 1, 9, 30, 0, 123456, tzinfo=timezone.utc)
    assert to_text(aware) == "2024-03-01T09:30:00.123Z"
    shifted = datetime(2024, 3, 1, 11, 30, tzinfo=timezone(timedelta(hours=2)))
    assert to_text(shifted) == "2024-03-01T09:30:00.000Z"
    assert to_text(42) == "42"
