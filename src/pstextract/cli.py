from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from rich.console import Console

from .chat.transcripts import extract_chat_turns
from .config import ConfigError, load_config
from .errors import AllContainersFailedError
from .io.sink import DirectorySink
from .packaging.batcher import EMAILS_DIR, TEAMS_PATH
from .run import run_extraction
from .schemas.records import NormalizedRecord
from .utils.json_utils import dumps_jsonl, read_jsonl

load_dotenv()  # automatically load variables from .env if present
console = Console()


def _load_config_or_exit(config_path: Optional[Path]) -> Dict[str, Any]:
    try:
        return load_config(config_path)
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(2)
    except ConfigError as e:
        console.print(f"[red]Config error:[/red] {e}")
        sys.exit(2)
    except Exception as e:  # unexpected
        console.print(f"[red]Unexpected error loading config:[/red] {e}")
        sys.exit(1)


def _config_path(arg: Optional[str]) -> Optional[Path]:
    if arg:
        return Path(arg)
    default = Path("config.yml")
    return default if default.exists() else None


def cmd_run(args: argparse.Namespace) -> int:
    cfg = _load_config_or_exit(_config_path(args.config))
    if args.verbose:
        cfg["logging"]["verbose"] = True

    out_dir = Path(args.output or cfg["io"]["output_dir"])
    missing = [p for p in args.files if not Path(p).is_file()]
    if missing:
        for p in missing:
            console.print(f"[red]Input not found:[/red] {p}")
        return 2

    sink = DirectorySink(out_dir)
    try:
        summary = run_extraction(args.files, sink, cfg=cfg)
    except AllContainersFailedError as e:
        console.print(f"[red]Extraction failed:[/red]\n{e}")
        return 1

    if summary.failed_files:
        failed = ", ".join(f.name for f in summary.failed_files)
        console.print(
            f"[yellow]Done with warnings:[/yellow] extracted {summary.total_emails} emails, "
            f"{summary.total_attachments} attachments. Failed files: {failed}"
        )
    else:
        console.print(
            f"[green]Done![/green] Extracted {summary.total_emails} emails, "
            f"{summary.total_attachments} attachments, {summary.total_teams} chat messages."
        )
    console.print(f"[bold]Output directory:[/bold] {out_dir}")
    return 0


def cmd_chat(args: argparse.Namespace) -> int:
    """Re-derive teams_messages.jsonl from an existing container output directory."""
    container_dir = Path(args.input)
    batch_files = sorted((container_dir / EMAILS_DIR).glob("mail_*.jsonl"))
    if not batch_files:
        console.print(f"[red]No email batches found under:[/red] {container_dir / EMAILS_DIR}")
        return 2
    try:
        records = [NormalizedRecord.model_validate(obj) for f in batch_files for obj in read_jsonl(f)]
    except Exception as e:
        console.print(f"[red]Failed to read email batches:[/red] {e}")
        return 1

    turns = extract_chat_turns(records)
    target = container_dir / TEAMS_PATH
    if not turns:
        console.print("[yellow]No chat transcripts detected.[/yellow]")
        return 0
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(dumps_jsonl(t.to_json_dict() for t in turns), encoding="utf-8")
    console.print(f"[bold]Chat messages:[/bold] {len(turns)} -> {target}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pstextract",
        description="Convert PST mailboxes into token-bounded JSONL batches.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_run = sub.add_parser("run", help="Extract one or more PST files")
    p_run.add_argument("files", nargs="+", help="PST files to extract")
    p_run.add_argument("--config", type=str, help="Path to config.yml")
    p_run.add_argument("--output", type=str, help="Override output directory")
    p_run.add_argument("--verbose", action="store_true", help="Print every extraction warning")
    p_run.set_defaults(func=cmd_run)

    p_chat = sub.add_parser("chat", help="Rebuild chat turns for an extracted container")
    p_chat.add_argument("--input", type=str, required=True, help="Container output directory")
    p_chat.set_defaults(func=cmd_chat)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return args.func(args)
    except SystemExit:
        raise
    except Exception as e:
        console.print(f"[red]Unexpected error:[/red] {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
