from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Set, Tuple

from ..chat.transcripts import extract_chat_turns
from ..io.sink import OutputSink
from ..schemas.records import AttachmentRecord, ChatTurn, NormalizedRecord
from ..utils.json_utils import dumps_jsonl, json_line

MAX_TOKENS = 2500
EMAILS_DIR = "emails_jsonl"
TEAMS_PATH = "teams_messages/teams_messages.jsonl"
ATTACHMENTS_DIR = "attachments"

_LAST_EXT_RE = re.compile(r"(\.[^.]+)$")


def estimate_tokens(text: str) -> int:
    """Rough 4-bytes-per-token size estimate; not a real tokenizer."""
    return max(1, len(text.encode("utf-8")) // 4)


def record_tokens(record: NormalizedRecord) -> int:
    return estimate_tokens(json_line(record.to_json_dict()))


def batch_records(records: Iterable[NormalizedRecord], max_tokens: int = MAX_TOKENS) -> List[List[NormalizedRecord]]:
    """
    Greedy, order-preserving batching under ``max_tokens``.

    A record that alone exceeds the budget is emitted as its own batch and is
    never merged with neighbours.
    """
    batches: List[List[NormalizedRecord]] = []
    current: List[NormalizedRecord] = []
    current_tokens = 0
    for rec in records:
        t = record_tokens(rec)
        if t > max_tokens:
            if current:
                batches.append(current)
                current, current_tokens = [], 0
            batches.append([rec])
            continue
        if current_tokens + t > max_tokens and current:
            batches.append(current)
            current, current_tokens = [], 0
        current.append(rec)
        current_tokens += t
    if current:
        batches.append(current)
    return batches


def batch_filename(index: int) -> str:
    return f"{EMAILS_DIR}/mail_{index:04d}.jsonl"


def _with_suffix(name: str, n: int) -> str:
    if _LAST_EXT_RE.search(name):
        return _LAST_EXT_RE.sub(lambda m: f"_{n}{m.group(1)}", name)
    return f"{name}_{n}"


def resolve_attachment_paths(attachments: Iterable[AttachmentRecord]) -> List[Tuple[str, bytes]]:
    """
    Map attachments to unique relative paths; clashes get "_1", "_2", ...
    inserted before the extension.
    """
    seen: Set[str] = set()
    out: List[Tuple[str, bytes]] = []
    for att in attachments:
        base = f"{ATTACHMENTS_DIR}/{att.folder_path}"
        path = f"{base}/{att.name}"
        n = 0
        while path in seen:
            n += 1
            path = f"{base}/{_with_suffix(att.name, n)}"
        seen.add(path)
        out.append((path, att.data))
    return out


@dataclass
class PackageResult:
    batches: List[List[NormalizedRecord]] = field(default_factory=list)
    chat_turns: List[ChatTurn] = field(default_factory=list)
    attachment_files: List[Tuple[str, bytes]] = field(default_factory=list)

    @property
    def stats(self) -> dict:
        return {
            "emails": sum(len(b) for b in self.batches),
            "attachments": len(self.attachment_files),
            "teams_messages": len(self.chat_turns),
        }


def package(
    records: List[NormalizedRecord],
    attachments: List[AttachmentRecord],
    max_tokens: int = MAX_TOKENS,
    include_chat: bool = True,
) -> PackageResult:
    return PackageResult(
        batches=batch_records(records, max_tokens=max_tokens),
        chat_turns=extract_chat_turns(records) if include_chat else [],
        attachment_files=resolve_attachment_paths(attachments),
    )


def render_package(result: PackageResult, base_path: str) -> List[Tuple[str, bytes]]:
    """Every output file of a container as (relative path, payload) pairs."""
    prefix = f"{base_path}/" if base_path else ""
    files: List[Tuple[str, bytes]] = []
    for idx, batch in enumerate(result.batches):
        text = dumps_jsonl(r.to_json_dict() for r in batch)
        files.append((prefix + batch_filename(idx), text.encode("utf-8")))
    if result.chat_turns:
        text = dumps_jsonl(t.to_json_dict() for t in result.chat_turns)
        files.append((prefix + TEAMS_PATH, text.encode("utf-8")))
    for path, data in result.attachment_files:
        files.append((prefix + path, data))
    return files


def write_package(result: PackageResult, sink: OutputSink, base_path: str) -> None:
    """
    Write a container's output. Payloads are rendered before anything is
    written; if a write fails, the files already written are discarded.
    """
    files = render_package(result, base_path)
    written: List[str] = []
    try:
        for path, data in files:
            sink.write_bytes(path, data)
            written.append(path)
    except Exception:
        for path in reversed(written):
            sink.discard(path)
        raise
