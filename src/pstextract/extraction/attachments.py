from __future__ import annotations

import re
from typing import Any, Callable, List, Mapping, Optional

from ..schemas.records import AttachmentRecord
from .properties import get_prop

PAYLOAD_KEYS = ("3701", "0x3701", "Attachment binary data", "Attachment object", "data")
FILENAME_KEYS = (
    "3704",
    "3707",
    "0x3704",
    "Attachment (short) filename",
    "Attachment long filename",
    "filename",
    "3001",
    "Display name",
)

_ILLEGAL_CHARS_RE = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_TRAILING_DOTS_RE = re.compile(r"\.+$")
_EXTENSION_RE = re.compile(r"\.([a-z0-9]{2,6})$", re.IGNORECASE)
_FOLDER_CHARS_RE = re.compile(r"[^\w\-.]", re.ASCII)

WarnFn = Callable[[str, BaseException], None]


def sanitize_filename(name: Any) -> str:
    if not name or not str(name).strip():
        return "unnamed"
    cleaned = _ILLEGAL_CHARS_RE.sub("_", str(name)).strip()
    cleaned = _TRAILING_DOTS_RE.sub("", cleaned)
    return cleaned[:200] or "unnamed"


def sanitize_folder_name(display_name: Optional[str]) -> str:
    name = _FOLDER_CHARS_RE.sub("_", display_name or "Folder")[:80]
    # "." and ".." are not usable as directory names
    if not name.strip("."):
        name = name.replace(".", "_")
    return name


def sniff_extension(data: bytes) -> str:
    if not data or len(data) < 4:
        return ".bin"
    if data[:4] == b"%PDF":
        return ".pdf"
    if data[:2] == b"\xff\xd8":
        return ".jpg"
    if data[:4] == b"\x89PNG":
        return ".png"
    return ".bin"


def _payload_bytes(raw: Any) -> bytes:
    if isinstance(raw, str):
        return raw.encode("utf-8")
    return bytes(raw)


def _first_truthy(props: Mapping[str, Any], keys) -> Any:
    for key in keys:
        value = get_prop(props, key)
        if value:
            return value
    return None


def attachment_filename(props: Mapping[str, Any], index: int, data: bytes) -> str:
    base = _first_truthy(props, FILENAME_KEYS) or f"attachment_{index}"
    safe = sanitize_filename(base if isinstance(base, str) else "attachment")
    if _EXTENSION_RE.search(safe):
        return safe
    return f"{safe}{sniff_extension(data)}"


def extract_attachments(
    message: Any,
    folder_name: str,
    on_warning: Optional[WarnFn] = None,
    location: str = "",
) -> List[AttachmentRecord]:
    """
    Pull every retrievable attachment payload off ``message``.

    Failures are reported through ``on_warning`` and the affected attachment
    is skipped; this function itself does not raise.
    """
    warn = on_warning or (lambda ctx, err: None)
    out: List[AttachmentRecord] = []
    try:
        entries = list(message.attachment_entries() or [])
    except Exception as e:
        warn(f"Unable to read attachment entries for {location}", e)
        return out

    for index in range(len(entries)):
        try:
            att = message.get_attachment(index)
            if not att:
                continue
            raw = _first_truthy(att, PAYLOAD_KEYS)
            if not raw:
                continue
            data = _payload_bytes(raw)
            if not data:
                continue
            out.append(
                AttachmentRecord(
                    folder_path=folder_name,
                    name=attachment_filename(att, index, data),
                    data=data,
                )
            )
        except Exception as e:
            warn(f"Skipping attachment index={index} for {location}", e)
    return out
