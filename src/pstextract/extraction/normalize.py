from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..errors import BodyExtractionError
from ..schemas.records import NormalizedRecord
from .properties import get_text, iso_datetime, to_text

SUBJECT_KEYS = ("37", "0x37", "0037", "Subject")
FROM_KEYS = ("0c1a", "0C1A", "Sender name", "0042", "Sent representing name")
TO_KEYS = ("0e04", "Display to", "0c1f", "Sender e-mail address")
DATE_KEYS = ("0e06", "3007")
MESSAGE_ID_KEYS = ("1035", "Internet message identifier")
MESSAGE_CLASS_KEYS = ("001a", "Message class")
HEADER_KEYS = ("007d", "0078", "Transport message headers")

_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")
_HEADER_LINE_RE = re.compile(r"^([A-Za-z\-]+):\s*(.*)$")


def strip_html(html: str) -> str:
    if not html:
        return ""
    return _WS_RE.sub(" ", _TAG_RE.sub(" ", html)).strip()


def parse_headers(raw: Optional[str]) -> Dict[str, str]:
    """
    Parse a transport header block into lowercase keys.
    Repeated headers are joined with ", ". Continuation lines are ignored.
    """
    collected: Dict[str, List[str]] = {}
    if not raw:
        return {}
    for line in re.split(r"\r?\n", raw):
        if not line.strip():
            continue
        m = _HEADER_LINE_RE.match(line)
        if m:
            collected.setdefault(m.group(1).lower(), []).append(m.group(2).strip())
    return {k: ", ".join(v) for k, v in collected.items()}


def _safe(fn: Callable[[], Optional[str]]) -> str:
    try:
        return fn() or ""
    except Exception:
        return ""


def _attr_text(message: Any, name: str) -> Optional[str]:
    return to_text(getattr(message, name, None))


def _read_body(message: Any) -> str:
    body = _attr_text(message, "body")
    if body:
        return body
    return strip_html(_attr_text(message, "body_html") or "")


def _read_date(message: Any, props: Mapping[str, Any]) -> Optional[str]:
    value = getattr(message, "delivery_time", None) or getattr(message, "creation_time", None)
    if isinstance(value, datetime):
        return iso_datetime(value)
    if value:
        return to_text(value)
    return get_text(props, *DATE_KEYS)


def normalize_message(
    message: Any,
    props: Mapping[str, Any],
    container_name: str,
    folder_path: str,
) -> NormalizedRecord:
    """
    Build the canonical flat record for one message.

    Structured accessors on the message win; property aliases are the fallback.
    Any failing accessor degrades its field to "". Only an unreadable body
    raises (BodyExtractionError), which drops the whole record.
    """
    try:
        body = _read_body(message)
    except Exception as e:
        raise BodyExtractionError(f"body unreadable: {e}") from e

    subject = _safe(lambda: _attr_text(message, "subject") or get_text(props, *SUBJECT_KEYS))
    sender = _safe(lambda: get_text(props, *FROM_KEYS))
    to = _safe(lambda: get_text(props, *TO_KEYS))
    date = _safe(lambda: _read_date(message, props))
    headers = parse_headers(_safe(lambda: get_text(props, *HEADER_KEYS)))

    source = f"{container_name}::{folder_path}" if folder_path else container_name
    return NormalizedRecord(
        source=source,
        message_class=_safe(lambda: get_text(props, *MESSAGE_CLASS_KEYS)),
        from_=headers.get("from") or sender,
        to=headers.get("to") or to,
        cc=headers.get("cc", ""),
        subject=subject,
        date=date,
        message_id=_safe(lambda: get_text(props, *MESSAGE_ID_KEYS)),
        body=body,
    )
