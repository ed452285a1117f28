from __future__ import annotations

import re
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from rich.console import Console

from .config import load_config
from .errors import AllContainersFailedError
from .extraction.reader import MailboxReader, default_reader
from .extraction.walker import extract_container
from .io.sink import OutputSink
from .packaging.batcher import package, write_package
from .schemas.records import ContainerStats, FailedContainer, RunSummary
from .utils.json_utils import dumps_json

console = Console()

_PST_SUFFIX_RE = re.compile(r"\.pst$", re.IGNORECASE)


def container_name_for(path: Path | str) -> str:
    return _PST_SUFFIX_RE.sub("", Path(path).name) or "pst"


def run_stamp(now: Optional[datetime] = None) -> str:
    """UTC timestamp in compact form, e.g. 20250101T120000."""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y%m%dT%H%M%S")


def format_error_details(exc: BaseException) -> str:
    """
    Error type and message, the chain of causes, and the traceback.
    """
    parts = [f"{type(exc).__name__}: {exc}"]
    cause = exc.__cause__ or exc.__context__
    while cause is not None:
        parts.append(f"Cause: {type(cause).__name__}: {cause}")
        cause = cause.__cause__ or cause.__context__
    stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    parts.append(f"Stack:\n{stack.rstrip()}")
    return "\n".join(parts)


def process_container(
    path: Path,
    name: str,
    sink: OutputSink,
    base_path: str,
    reader: MailboxReader,
    cfg: Dict[str, Any],
) -> ContainerStats:
    data = Path(path).read_bytes()
    extraction = extract_container(reader, data, name, verbose=bool(cfg["logging"]["verbose"]))
    attachments = extraction.attachments if cfg["attachments"]["enabled"] else []
    result = package(
        extraction.records,
        attachments,
        max_tokens=int(cfg["batching"]["max_tokens"]),
        include_chat=bool(cfg["chat"]["enabled"]),
    )
    write_package(result, sink, base_path)
    if extraction.warnings:
        console.print(f"[yellow]{name}: {len(extraction.warnings)} warning(s) during extraction[/yellow]")
    return ContainerStats(name=name, **result.stats)


def run_extraction(
    paths: Iterable[Path | str],
    sink: OutputSink,
    reader: Optional[MailboxReader] = None,
    cfg: Optional[Dict[str, Any]] = None,
    stamp: Optional[str] = None,
) -> RunSummary:
    """
    Extract each container in turn into ``<prefix>_<stamp>/<container>/``.

    A failing container is recorded in the summary and the run moves on; if
    every container fails, AllContainersFailedError is raised and no summary
    is written.
    """
    cfg = cfg or load_config(None)
    reader = reader or default_reader()
    root_name = f"{cfg['io']['root_prefix']}_{stamp or run_stamp()}"
    paths = [Path(p) for p in paths]
    summary = RunSummary()
    used_names: Dict[str, int] = {}

    for idx, path in enumerate(paths, start=1):
        name = container_name_for(path)
        used_names[name] = used_names.get(name, 0) + 1
        if used_names[name] > 1:
            name = f"{name}_{used_names[name]}"
        console.print(f"[bold]Processing {idx}/{len(paths)}:[/bold] {path.name}")
        try:
            stats = process_container(path, name, sink, f"{root_name}/{name}", reader, cfg)
        except Exception as e:
            reason = str(e) or type(e).__name__
            summary.failed_files.append(FailedContainer(name=name, reason=reason, details=format_error_details(e)))
            console.print(f"[red]Failed file {path.name}:[/red] {reason}")
            continue
        summary.add_container(stats)

    if not summary.pst_files:
        raise AllContainersFailedError(summary.failed_files)

    sink.write_text(f"{root_name}/summary.json", dumps_json(summary.model_dump()))
    return summary
