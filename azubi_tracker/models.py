from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from azubi_tracker.constants import DEFAULT_TOTAL_HOURS, XP_PER_LEVEL


class TaskCategory(str, Enum):
    """Where a task took place."""

    WORKPLACE = "Betrieb"
    SCHOOL = "Berufsschule"
    OTHER = "Sonstiges"

    @property
    def label(self) -> str:
        if self is TaskCategory.WORKPLACE:
            return "Betrieb"
        if self is TaskCategory.SCHOOL:
            return "Berufsschule"
        return "Sonstiges"

    @property
    def label_en(self) -> str:
        if self is TaskCategory.WORKPLACE:
            return "Workplace"
        if self is TaskCategory.SCHOOL:
            return "School"
        return "Other"


class ReportStyle(str, Enum):
    """Tone requested for the generated weekly report."""

    FORMAL = "Formal"
    CONCISE = "Concise"
    DETAILED = "Detailed"

    @property
    def label(self) -> str:
        if self is ReportStyle.FORMAL:
            return "Förmlich"
        if self is ReportStyle.CONCISE:
            return "Knapp"
        return "Ausführlich"


class TaskRecord(BaseModel):
    """A single apprentice task stored in session state."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    text: str
    completed: bool = False
    category: TaskCategory = TaskCategory.WORKPLACE
    due_date: Optional[date] = None
    completed_at: Optional[datetime] = None


class ReportContent(BaseModel):
    """The four fields of a weekly report (Berichtsheft) page."""

    workplace_activities: str = ""
    instruction: str = ""
    school_topics: str = ""
    total_hours: str = DEFAULT_TOTAL_HOURS

    def is_empty(self) -> bool:
        return not self.workplace_activities.strip()


class ProgressState(BaseModel):
    """Experience points and the set of weekly reports marked as done."""

    xp: int = Field(default=0, ge=0)
    completed_reports: List[str] = Field(default_factory=list)

    @field_validator("completed_reports", mode="before")
    @classmethod
    def _drop_duplicates(cls, value: object) -> object:
        if not isinstance(value, list):
            return []
        cleaned: list[str] = []
        for item in value:
            text = str(item).strip()
            if text and text not in cleaned:
                cleaned.append(text)
        return cleaned

    @property
    def level(self) -> int:
        return self.xp // XP_PER_LEVEL + 1


class StoredFile(BaseModel):
    """File metadata as persisted locally or in the remote files table."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    mime_type: str = "application/octet-stream"
    size: int = Field(default=0, ge=0)
    uploaded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    content_base64: Optional[str] = None


class HydratedFile(BaseModel):
    """A stored file resolved for display and download in the current session."""

    id: str
    name: str
    mime_type: str
    size: int
    uploaded_at: datetime
    url: str = ""
    data: Optional[bytes] = None
    is_persisted: bool = False

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image")


class UserProfile(BaseModel):
    """Authenticated user; ``id`` is only set for remote accounts."""

    id: Optional[str] = None
    name: str
    email: str
    access_token: Optional[str] = None

    @property
    def is_local(self) -> bool:
        return not self.id or self.id.startswith("local-")

    @property
    def first_name(self) -> str:
        return self.name.split(" ")[0] if self.name.strip() else "Azubi"


class UserData(BaseModel):
    """Everything persisted for one user."""

    tasks: List[TaskRecord] = Field(default_factory=list)
    files: List[StoredFile] = Field(default_factory=list)
    progress: ProgressState = Field(default_factory=ProgressState)


class Flashcard(BaseModel):
    """Question/answer pair for the knowledge quiz."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    question: str
    answer: str
    category: str = ""


class ChatMessage(BaseModel):
    """Message in the AI mentor conversation."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    role: Literal["user", "model"]
    text: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    is_streaming: bool = False


__all__ = [
    "ChatMessage",
    "Flashcard",
    "HydratedFile",
    "ProgressState",
    "ReportContent",
    "ReportStyle",
    "StoredFile",
    "TaskCategory",
    "TaskRecord",
    "UserData",
    "UserProfile",
]
