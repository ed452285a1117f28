from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class NormalizedRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # "<container>::<folder path>"
    source: str = ""
    message_class: str = ""
    from_: str = Field(default="", alias="from")
    to: str = ""
    cc: str = ""
    subject: str = ""
    date: str = ""
    message_id: str = ""
    body: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _never_null(cls, v: Any) -> str:
        if v is None:
            return ""
        return v if isinstance(v, str) else str(v)

    def to_json_dict(self) -> Dict[str, str]:
        return self.model_dump(by_alias=True)


class AttachmentRecord(BaseModel):
    folder_path: str
    name: str
    data: bytes


Platform = Literal["teams", "skype", "teams_or_skype"]


class ChatTurn(BaseModel):
    source_file: str = ""
    conversation_id: str
    subject: str = ""
    outlook_date: str = ""
    platform: Platform
    sender: Optional[str] = None
    sender_email: Optional[str] = None
    message_time: Optional[str] = None
    text: str
    is_parsed: bool

    def to_json_dict(self) -> Dict[str, Any]:
        """
        Parsed turns keep both sender keys (one of them null); unparsed turns
        carry no sender or time keys at all.
        """
        data = self.model_dump()
        if not self.is_parsed:
            for key in ("sender", "sender_email", "message_time"):
                data.pop(key, None)
        return data


class ExtractionWarning(BaseModel):
    context: str
    message: str

    def __str__(self) -> str:
        return f"{self.context}: {self.message}"


class ContainerStats(BaseModel):
    name: str
    emails: int
    attachments: int
    teams_messages: int


class FailedContainer(BaseModel):
    name: str
    reason: str
    details: str


class RunSummary(BaseModel):
    pst_files: List[ContainerStats] = Field(default_factory=list)
    failed_files: List[FailedContainer] = Field(default_factory=list)
    total_emails: int = 0
    total_attachments: int = 0
    total_teams: int = 0

    def add_container(self, stats: ContainerStats) -> None:
        self.pst_files.append(stats)
        self.total_emails += stats.emails
        self.total_attachments += stats.attachments
        self.total_teams += stats.teams_messages
