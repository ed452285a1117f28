from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Generic, List, Mapping, Optional, TypeVar

from rich.console import Console
from rich.markup import escape

from ..errors import ContainerError
from ..schemas.records import AttachmentRecord, ExtractionWarning, NormalizedRecord
from .attachments import extract_attachments, sanitize_folder_name
from .normalize import SUBJECT_KEYS, strip_html, normalize_message
from .properties import get_text, to_text
from .reader import MailboxFolder, MailboxReader

console = Console(stderr=True)

T = TypeVar("T")

ENRICH_FROM_KEYS = ("0c1a", "0C1A", "0x0c1a", "Sender name", "Sender entry name")
ENRICH_TO_KEYS = ("0e04", "0E04", "Display to", "0c1f", "0C1F")
RECIPIENT_ADDRESS_KEYS = ("3003", "0c1f", "Email address", "3001")
ENRICH_BODY_KEYS = ("1000", "0x1000", "Body", "Plain text message body")


@dataclass
class Step(Generic[T]):
    """Outcome of one traversal step: a value, or the warning that replaced it."""

    value: Optional[T] = None
    warning: Optional[ExtractionWarning] = None

    @property
    def ok(self) -> bool:
        return self.warning is None


@dataclass
class ContainerExtraction:
    records: List[NormalizedRecord] = field(default_factory=list)
    attachments: List[AttachmentRecord] = field(default_factory=list)
    warnings: List[ExtractionWarning] = field(default_factory=list)


def _error_message(err: BaseException) -> str:
    return str(err) or type(err).__name__


def _recipient_address(recipient: Any) -> str:
    for key in RECIPIENT_ADDRESS_KEYS:
        text = get_text(recipient, key)
        if text:
            return text
    return ""


def aggregate_recipients(recipients: Any) -> str:
    return "; ".join(_recipient_address(r) for r in recipients or [])


class FolderWalker:
    """
    Depth-first traversal of one container's folder tree.

    Results accumulate on ``self.result``; no failure below the container
    level escapes ``walk``.
    """

    def __init__(self, container_name: str, verbose: bool = False) -> None:
        self.container_name = container_name
        self.verbose = verbose
        self.result = ContainerExtraction()

    @property
    def records(self) -> List[NormalizedRecord]:
        return self.result.records

    @property
    def attachments(self) -> List[AttachmentRecord]:
        return self.result.attachments

    @property
    def warnings(self) -> List[ExtractionWarning]:
        return self.result.warnings

    def warn(self, context: str, err: BaseException) -> ExtractionWarning:
        warning = ExtractionWarning(context=context, message=_error_message(err))
        self.warnings.append(warning)
        if self.verbose:
            console.print(f"[yellow]{escape(self.container_name)}: {escape(context)}:[/yellow] {escape(warning.message)}")
        return warning

    def attempt(self, context: str, fn: Callable[[], T]) -> Step[T]:
        try:
            return Step(value=fn())
        except Exception as e:
            return Step(warning=self.warn(context, e))

    def walk(self, folder: MailboxFolder, path_prefix: str = "") -> None:
        name_step = self.attempt(
            f"Unable to read folder name under {path_prefix or '<root>'}",
            lambda: to_text(getattr(folder, "display_name", None)),
        )
        display = name_step.value or "Folder"
        full_path = f"{path_prefix}/{display}" if path_prefix else display
        folder_name = sanitize_folder_name(display)

        subfolders = self.attempt(
            f"Skipping subfolders for {full_path}", lambda: list(folder.subfolder_entries() or [])
        )
        for entry in subfolders.value or []:
            nid = getattr(entry, "nid", None)
            sub = self.attempt(
                f"Skipping subfolder nid={nid} in {full_path}", lambda: folder.get_subfolder(nid)
            )
            if sub.value is not None:
                self.walk(sub.value, full_path)

        contents = self.attempt(
            f"Skipping contents for {full_path}", lambda: list(folder.message_entries() or [])
        )
        for entry in contents.value or []:
            self._process_message(folder, getattr(entry, "nid", None), full_path, folder_name)

    def _process_message(self, folder: MailboxFolder, nid: Any, full_path: str, folder_name: str) -> None:
        location = f"nid={nid} in {full_path}"
        msg = self.attempt(f"Skipping message {location}", lambda: folder.get_message(nid))
        if msg.value is None:
            return
        message = msg.value

        props_step = self.attempt(
            f"Unable to read properties for {location}", lambda: dict(message.properties() or {})
        )
        props: Mapping[str, Any] = props_step.value or {}

        record = self.attempt(
            f"Skipping message record {location}",
            lambda: normalize_message(message, props, self.container_name, full_path),
        )
        if record.value is None:
            return
        rec = record.value
        self._enrich(rec, message, props, location)
        self.records.append(rec)

        self.attachments.extend(extract_attachments(message, folder_name, on_warning=self.warn, location=location))

    def _enrich(self, rec: NormalizedRecord, message: Any, props: Mapping[str, Any], location: str) -> None:
        if not rec.from_:
            self.attempt(
                f"Unable to fill sender for {location}",
                lambda: setattr(rec, "from_", get_text(props, *ENRICH_FROM_KEYS) or ""),
            )
        if not rec.to:
            self.attempt(f"Unable to fill recipients for {location}", lambda: self._enrich_to(rec, message, props, location))
        if not rec.subject:
            self.attempt(
                f"Unable to fill subject for {location}",
                lambda: setattr(rec, "subject", get_text(props, *SUBJECT_KEYS) or ""),
            )
        if not rec.body:
            self.attempt(f"Unable to fill body for {location}", lambda: self._enrich_body(rec, message, props, location))

    def _enrich_to(self, rec: NormalizedRecord, message: Any, props: Mapping[str, Any], location: str) -> None:
        direct = get_text(props, *ENRICH_TO_KEYS)
        if direct:
            rec.to = direct
            return
        recipients = self.attempt(
            f"Unable to read recipients for {location}", lambda: list(message.recipients() or [])
        )
        rec.to = aggregate_recipients(recipients.value)

    def _enrich_body(self, rec: NormalizedRecord, message: Any, props: Mapping[str, Any], location: str) -> None:
        html = self.attempt(
            f"Unable to read bodyHTML for {location}",
            lambda: strip_html(to_text(getattr(message, "body_html", None)) or ""),
        )
        rec.body = get_text(props, *ENRICH_BODY_KEYS) or html.value or ""


def extract_container(
    reader: MailboxReader,
    data: bytes,
    container_name: str,
    verbose: bool = False,
) -> ContainerExtraction:
    """
    Walk a whole container. Raises ContainerError when there is nothing to walk,
    or when nothing was recovered and warnings explain why.
    """
    container = reader.open(data)
    root = container.root_folder()
    if root is None:
        raise ContainerError("No root folder")

    walker = FolderWalker(container_name, verbose=verbose)
    walker.walk(root, "")
    if not walker.records and walker.warnings:
        raise ContainerError(f"Unable to parse PST entries ({walker.warnings[0]})")
    return walker.result
