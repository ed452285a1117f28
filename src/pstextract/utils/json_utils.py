from __future__ import annotations

import json
import os
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any, Dict, Iterable, Iterator


def json_line(obj: Dict[str, Any]) -> str:
    """
    Serialize one object the way it appears on a JSON Lines row (no trailing newline).
    Token estimates are computed from exactly this text.
    """
    return json.dumps(obj, ensure_ascii=False)


def dumps_jsonl(items: Iterable[Dict[str, Any]]) -> str:
    """
    Render an iterable of dicts as JSON Lines text, newline-terminated.
    """
    return "".join(json_line(item) + "\n" for item in items)


def dumps_json(obj: Dict[str, Any]) -> str:
    return json.dumps(obj, ensure_ascii=False, indent=2) + "\n"


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """
    Best-effort atomic write: write to temp file in same directory, then replace.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_dir = path.parent

    with NamedTemporaryFile("wb", dir=tmp_dir, delete=False) as tmp:
        tmp.write(data)
        tmp_path = Path(tmp.name)

    os.replace(tmp_path, path)


def read_jsonl(path: Path) -> Iterator[Dict[str, Any]]:
    """
    Stream JSON objects from a JSON Lines file.
    """
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            yield json.loads(line)
