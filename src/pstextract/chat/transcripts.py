from __future__ import annotations

import re
import struct
from dataclasses import dataclass
from typing import Iterable, List, Optional

from ..schemas.records import ChatTurn, NormalizedRecord

# "<sender> [3:15 PM]: " / "<sender> 3:15pm: "
TIME_BLOCK_RE = re.compile(r"(.+?)\s+(?:\[)?(\d{1,2}:\d{2}\s*(?:AM|PM))(?:\])?:\s*", re.IGNORECASE)
_CLASS_RE = re.compile(r"conversation|teams|skype", re.IGNORECASE)
_SOURCE_RE = re.compile(r"conversation-history|conversation history", re.IGNORECASE)
_TIME_RE = re.compile(r"\d{1,2}:\d{2}\s*(?:AM|PM)", re.IGNORECASE)
_NUMERIC_ENTITY_RE = re.compile(r"&#(\d{1,10});")
_DISPLAY_NAME_RE = re.compile(r"^[A-Z]")

CHAT_INDICATORS = (
    "teams.microsoft.com",
    "skype for business",
    "conversation with",
    "duration:",
    " minutes ",
    " anonymous.invalid",
    "thread.skype",
)

MAX_TURN_CHARS = 5000
MAX_UNPARSED_CHARS = 10000
MAX_DISPLAY_NAME_CHARS = 40


@dataclass
class ParsedLine:
    sender: Optional[str]
    sender_email: Optional[str]
    time: str
    text: str


def is_chat_transcript(record: NormalizedRecord) -> bool:
    if _CLASS_RE.search(record.message_class or ""):
        return True
    if _SOURCE_RE.search(record.source or ""):
        return True
    combined = f"{record.body} {record.subject} {record.to}".lower()
    return any(ind in combined for ind in CHAT_INDICATORS)


def _numeric_entity(m: re.Match) -> str:
    # entities are UTF-16 code units; pairs are joined in _normalize_entities
    return chr(int(m.group(1)) & 0xFFFF)


def _normalize_entities(body: str) -> str:
    text = body.replace("&nbsp;", " ").replace("\t", " ")
    text = _NUMERIC_ENTITY_RE.sub(_numeric_entity, text)
    # join surrogate pairs; a lone half becomes U+FFFD
    return text.encode("utf-16-le", "surrogatepass").decode("utf-16-le", "replace")


def _is_email(sender: str) -> bool:
    return "@" in sender and "." in sender.rsplit("@", 1)[-1]


def parse_chat_lines(body: str) -> List[ParsedLine]:
    """
    Split a transcript body into timestamped turns.

    All header matches are collected first; each turn then spans from the end
    of its header to the start of the next one.
    """
    if not body or not body.strip():
        return []
    text = _normalize_entities(body)
    # no time token, so no header can match
    if not _TIME_RE.search(text):
        return []
    headers = list(TIME_BLOCK_RE.finditer(text))

    lines: List[ParsedLine] = []
    for i, header in enumerate(headers):
        sender = header.group(1).strip()
        time_str = header.group(2).strip()
        nxt = headers[i + 1] if i + 1 < len(headers) else None
        end = nxt.start() if nxt else len(text)
        msg_text = text[header.end():end].strip()
        if nxt:
            next_sender = nxt.group(1).strip()
            if next_sender and msg_text.endswith(next_sender):
                msg_text = msg_text[: -len(next_sender)].strip()
        if not msg_text or "Duration:" in msg_text[:50]:
            continue
        is_email = _is_email(sender)
        if not is_email and (
            not sender or len(sender) > MAX_DISPLAY_NAME_CHARS or not _DISPLAY_NAME_RE.match(sender)
        ):
            continue
        lines.append(
            ParsedLine(
                sender=None if is_email else sender,
                sender_email=sender if is_email else None,
                time=time_str,
                text=msg_text[:MAX_TURN_CHARS],
            )
        )
    return lines


def infer_platform(record: NormalizedRecord) -> str:
    body = (record.body or "").lower()
    if "teams.microsoft.com" in body or "thread.skype" in body:
        return "teams"
    if "skype for business" in body:
        return "skype"
    return "teams_or_skype"


def conversation_id(record: NormalizedRecord) -> str:
    """
    31-multiplier rolling hash over UTF-16 code units, wrapped to 32 bits and
    rendered unsigned, so ids match other implementations of the same scheme.
    """
    raw = f"{record.subject}|{record.from_}|{record.to}|{record.date}"
    encoded = raw.encode("utf-16-le", errors="surrogatepass")
    h = 0
    for (unit,) in struct.iter_unpack("<H", encoded):
        h = (h * 31 + unit) & 0xFFFFFFFF
    return str(h)


def to_chat_turns(record: NormalizedRecord) -> List[ChatTurn]:
    body = record.body or ""
    conv_id = conversation_id(record)
    platform = infer_platform(record)
    parsed = parse_chat_lines(body)
    if not parsed:
        if not body.strip():
            return []
        return [
            ChatTurn(
                source_file=record.source,
                conversation_id=conv_id,
                subject=record.subject,
                outlook_date=record.date,
                platform=platform,
                text=body[:MAX_UNPARSED_CHARS],
                is_parsed=False,
            )
        ]
    return [
        ChatTurn(
            source_file=record.source,
            conversation_id=conv_id,
            subject=record.subject,
            outlook_date=record.date,
            platform=platform,
            sender=line.sender,
            sender_email=line.sender_email,
            message_time=line.time,
            text=line.text,
            is_parsed=True,
        )
        for line in parsed
    ]


def extract_chat_turns(records: Iterable[NormalizedRecord]) -> List[ChatTurn]:
    turns: List[ChatTurn] = []
    for rec in records:
        if is_chat_transcript(rec):
            turns.extend(to_chat_turns(rec))
    return turns
