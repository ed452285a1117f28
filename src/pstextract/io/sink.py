from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Protocol, Set

from ..errors import SinkError
from ..utils.json_utils import atomic_write_bytes


class OutputSink(Protocol):
    def write_text(self, relpath: str, text: str) -> None: ...

    def write_bytes(self, relpath: str, data: bytes) -> None: ...

    def discard(self, relpath: str) -> None: ...


class DirectorySink:
    """
    Writes each relative output path under ``root``. A path may be written
    only once per sink.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.written: Set[str] = set()

    def _resolve(self, relpath: str) -> Path:
        rel = PurePosixPath(relpath)
        if rel.is_absolute() or ".." in rel.parts:
            raise SinkError(f"Refusing to write outside output root: {relpath}")
        return self.root.joinpath(*rel.parts)

    def _target(self, relpath: str) -> Path:
        target = self._resolve(relpath)
        if relpath in self.written:
            raise SinkError(f"Output path written twice: {relpath}")
        self.written.add(relpath)
        return target

    def write_text(self, relpath: str, text: str) -> None:
        self.write_bytes(relpath, text.encode("utf-8"))

    def write_bytes(self, relpath: str, data: bytes) -> None:
        atomic_write_bytes(self._target(relpath), data)

    def discard(self, relpath: str) -> None:
        """Remove a written path, and any directories it leaves empty."""
        target = self._resolve(relpath)
        self.written.discard(relpath)
        target.unlink(missing_ok=True)
        parent = target.parent
        while parent != self.root and parent.is_dir() and not any(parent.iterdir()):
            parent.rmdir()
            parent = parent.parent
