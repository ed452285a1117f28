from __future__ import annotations

from pstextract.chat.transcripts import (
    conversation_id,
    extract_chat_turns,
    infer_platform,
    is_chat_transcript,
    parse_chat_lines,
    to_chat_turns,
)
from pstextract.schemas.records import NormalizedRecord


def _rec(**kw) -> NormalizedRecord:
    base = {"source": "archive::Top/Inbox", "subject": "Chat", "from": "a@x.com", "to": "b@x.com", "date": "2024-01-01"}
    base.update(kw)
    return NormalizedRecord.model_validate(base)


def test_detection_by_message_class_source_and_indicators():
    assert is_chat_transcript(_rec(message_class="IPM.SkypeTeams.Message"))
    assert is_chat_transcript(_rec(source="p::Top/Conversation History"))
    assert is_chat_transcript(_rec(source="p::top/conversation-history/x"))
    assert is_chat_transcript(_rec(body="Join at https://TEAMS.microsoft.com/l/meetup"))
    assert is_chat_transcript(_rec(to="guest anonymous.invalid"))
    assert is_chat_transcript(_rec(subject="Conversation with Bob"))
    assert not is_chat_transcript(_rec(body="Quarterly numbers attached", message_class="IPM.Note"))


def test_two_turn_example():
    turns = parse_chat_lines("Alice [3:15 PM]: hello\nBob [3:16 PM]: hi there")
    assert [(t.sender, t.sender_email, t.time, t.text) for t in turns] == [
        ("Alice", None, "3:15 PM", "hello"),
        ("Bob", None, "3:16 PM", "hi there"),
    ]


def test_email_senders_entities_and_bare_times():
    body = "bob@corp.example.com 10:02am:&nbsp;ship it&#33;\ncarol@corp 10:03 AM: nope"
    turns = parse_chat_lines(body)
    assert [(t.sender, t.sender_email, t.time, t.text) for t in turns] == [
        (None, "bob@corp.example.com", "10:02am", "ship it!"),
    ]


def test_entity_surrogate_pairs_are_joined():
    turns = parse_chat_lines("Alice [3:15 PM]: nice &#55357;&#56832;\nBob [3:16 PM]: half &#55357; only")
    assert [t.text for t in turns] == ["nice \U0001F600", "half \ufffd only"]
    for t in turns:
        t.text.encode("utf-8")


def test_entities_wrap_to_sixteen_bits():
    turns = parse_chat_lines("Alice [3:15 PM]: &#65601;&#1114177;")
    assert turns[0].text == "AA"


def test_noise_senders_and_duration_lines_are_dropped():
    body = (
        "lowercase name [1:00 PM]: dropped\n"
        "Call ended [1:05 PM]: Duration: 5 minutes\n"
        + "X" * 41 + " [1:06 PM]: too long a name\n"
        "Dana [1:07 PM]: kept"
    )
    turns = parse_chat_lines(body)
    assert [(t.sender, t.text) for t in turns] == [("Dana", "kept")]


def test_turn_text_is_capped():
    turns = parse_chat_lines("Eve [9:00 AM]: " + "y" * 6000)
    assert len(turns[0].text) == 5000


def test_unparsed_body_yields_single_turn():
    rec = _rec(body="Conversation with Bob\n" + "z" * 12000)
    turns = to_chat_turns(rec)
    assert len(turns) == 1
    turn = turns[0]
    assert turn.is_parsed is False
    assert len(turn.text) == 10000
    dumped = turn.to_json_dict()
    assert "sender" not in dumped and "sender_email" not in dumped and "message_time" not in dumped


def test_blank_body_yields_nothing():
    assert to_chat_turns(_rec(body="   \n ")) == []


def test_parsed_turns_carry_record_metadata():
    rec = _rec(body="Alice [3:15 PM]: hello thread.skype")
    turns = to_chat_turns(rec)
    assert len(turns) == 1
    t = turns[0]
    assert t.source_file == "archive::Top/Inbox"
    assert t.outlook_date == "2024-01-01"
    assert t.platform == "teams"
    assert t.conversation_id == conversation_id(rec)
    dumped = t.to_json_dict()
    assert dumped["sender"] == "Alice" and dumped["sender_email"] is None


def test_conversation_id_is_stable_java_style_hash():
    rec = NormalizedRecord()
    # hash("|||") with 31-multiplier accumulation: 124 * (31**2 + 31 + 1)
    assert conversation_id(rec) == str(124 * 993)
    assert conversation_id(_rec()) == conversation_id(_rec())
    assert conversation_id(_rec(subject="other")) != conversation_id(_rec())
    big = conversation_id(_rec(subject="x" * 200))
    assert 0 <= int(big) < 2**32


def test_infer_platform():
    assert infer_platform(_rec(body="see teams.microsoft.com")) == "teams"
    assert infer_platform(_rec(body="Skype for Business meeting")) == "skype"
    assert infer_platform(_rec(body="duration: 3 minutes")) == "teams_or_skype"


def test_extract_chat_turns_only_uses_detected_records():
    recs = [
        _rec(body="Plain email", message_class="IPM.Note"),
        _rec(body="Alice [3:15 PM]: hi", message_class="IPM.SkypeTeams.Message"),
    ]
    turns = extract_chat_turns(recs)
    assert [t.sender for t in turns] == ["Alice"]
