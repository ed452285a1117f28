from __future__ import annotations

import io
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Protocol, Sequence


class MailboxEntry(Protocol):
    nid: Any


class MailboxMessage(Protocol):
    """
    Structured accessors may be missing or raise; callers treat both as "absent".
    """

    subject: Optional[str]
    body: Optional[str]
    body_html: Optional[str]
    delivery_time: Optional[datetime]
    creation_time: Optional[datetime]

    def properties(self) -> Mapping[str, Any]: ...

    def recipients(self) -> Sequence[Mapping[str, Any]]: ...

    def attachment_entries(self) -> Sequence[Any]: ...

    def get_attachment(self, index: int) -> Optional[Mapping[str, Any]]: ...


class MailboxFolder(Protocol):
    display_name: Optional[str]

    def subfolder_entries(self) -> Sequence[MailboxEntry]: ...

    def get_subfolder(self, nid: Any) -> Optional["MailboxFolder"]: ...

    def message_entries(self) -> Sequence[MailboxEntry]: ...

    def get_message(self, nid: Any) -> Optional[MailboxMessage]: ...


class MailboxContainer(Protocol):
    def root_folder(self) -> Optional[MailboxFolder]: ...


class MailboxReader(Protocol):
    def open(self, data: bytes) -> MailboxContainer: ...


# libpff property value types
_PT_STRING8 = 0x001E
_PT_UNICODE = 0x001F


@dataclass
class _Entry:
    nid: int


def _record_set_properties(item: Any) -> Dict[str, Any]:
    """
    Flatten libpff record sets into a tag-keyed mapping ("0037", "37", "0x37").
    """
    props: Dict[str, Any] = {}
    for rs_idx in range(getattr(item, "number_of_record_sets", 0) or 0):
        record_set = item.get_record_set(rs_idx)
        for e_idx in range(record_set.number_of_entries):
            entry = record_set.get_entry(e_idx)
            tag = entry.entry_type
            if tag is None:
                continue
            value: Any = entry.data
            if value is not None and entry.value_type == _PT_UNICODE:
                value = bytes(value).decode("utf-16-le", errors="replace").rstrip("\x00")
            elif value is not None and entry.value_type == _PT_STRING8:
                value = bytes(value).decode("utf-8", errors="replace").rstrip("\x00")
            for key in (f"{tag:04x}", f"{tag:x}", f"0x{tag:x}"):
                props.setdefault(key, value)
    return props


def _decode_body(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw).decode("utf-8", errors="replace")
    return str(raw)


class PffMessage:
    def __init__(self, item: Any) -> None:
        self._item = item

    @property
    def subject(self) -> Optional[str]:
        return self._item.subject

    @property
    def body(self) -> Optional[str]:
        return _decode_body(self._item.plain_text_body)

    @property
    def body_html(self) -> Optional[str]:
        return _decode_body(self._item.html_body)

    @property
    def delivery_time(self) -> Optional[datetime]:
        return self._item.delivery_time

    @property
    def creation_time(self) -> Optional[datetime]:
        return self._item.creation_time

    def properties(self) -> Mapping[str, Any]:
        props = _record_set_properties(self._item)
        headers = self._item.transport_headers
        if headers and "007d" not in props:
            props["007d"] = headers
        return props

    def recipients(self) -> Sequence[Mapping[str, Any]]:
        recipients = getattr(self._item, "recipients", None)
        if recipients is None:
            return []
        return [_record_set_properties(recipients.get_sub_item(i)) for i in range(recipients.number_of_sub_items)]

    def attachment_entries(self) -> Sequence[Any]:
        return [_Entry(nid=i) for i in range(self._item.number_of_attachments)]

    def get_attachment(self, index: int) -> Optional[Mapping[str, Any]]:
        att = self._item.get_attachment(index)
        if att is None:
            return None
        props = _record_set_properties(att)
        size = att.get_size()
        if size:
            props["3701"] = att.read_buffer(size)
        name = getattr(att, "name", None)
        if name:
            props.setdefault("3707", name)
        return props


class PffFolder:
    def __init__(self, item: Any) -> None:
        self._item = item

    @property
    def display_name(self) -> Optional[str]:
        return self._item.name

    def subfolder_entries(self) -> Sequence[_Entry]:
        return [_Entry(nid=i) for i in range(self._item.number_of_sub_folders)]

    def get_subfolder(self, nid: int) -> Optional["PffFolder"]:
        sub = self._item.get_sub_folder(nid)
        return PffFolder(sub) if sub is not None else None

    def message_entries(self) -> Sequence[_Entry]:
        return [_Entry(nid=i) for i in range(self._item.number_of_sub_messages)]

    def get_message(self, nid: int) -> Optional[PffMessage]:
        msg = self._item.get_sub_message(nid)
        return PffMessage(msg) if msg is not None else None


class PffContainer:
    def __init__(self, pff_file: Any) -> None:
        self._file = pff_file

    def root_folder(self) -> Optional[PffFolder]:
        root = self._file.get_root_folder()
        return PffFolder(root) if root is not None else None


class PffReader:
    """
    Mailbox reader backed by the libpff bindings (``pip install pstextract[pst]``).
    """

    def open(self, data: bytes) -> PffContainer:
        try:
            import pypff
        except Exception as e:
            raise RuntimeError("libpff-python is required to read PST files") from e

        pff_file = pypff.file()
        pff_file.open_file_object(io.BytesIO(data))
        return PffContainer(pff_file)


def default_reader() -> MailboxReader:
    return PffReader()
