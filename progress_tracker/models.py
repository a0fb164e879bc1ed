"""Data models for the Student Progress Tracker application."""

from enum import Enum
from typing import Optional, Dict, List

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


class Status(str, Enum):
    """Coarse progress status derived from completed chapters."""
    COMPLETED = "Completed"
    IN_PROGRESS = "In Progress"
    NO_PROGRESS = "No Progress"


class Channel(str, Enum):
    """Notification transport selected for a dispatch call."""
    EMAIL = "email"
    WHATSAPP = "whatsapp"


class ThresholdConfig(BaseModel):
    """Chapter-count cut-offs; `no_progress <= in_progress` is assumed."""
    no_progress: int = 4
    in_progress: int = 10


class SessionDates(BaseModel):
    """Online Contact Session dates set by the operator for the report."""
    ocs1: str = ""
    ocs2: str = ""
    ocs3: str = ""


class StudentRecord(BaseModel):
    """Normalized student progress record."""
    id: str
    name: str = "N/A"
    email: str = "N/A"
    phone: str = ""
    completed_chapters: int = 0
    total_chapters: int = 0
    marks: int = 0
    max_marks: int = 0
    skipped: int = 0
    ocs1: str = "N/A"
    ocs2: str = "N/A"
    ocs3: Optional[str] = None
    status: Status


class StudentRecordInput(BaseModel):
    """Operator-submitted record for the add/edit path (no id, no status)."""
    name: str = ""
    email: str = ""
    phone: str = ""
    completed_chapters: int = Field(0, ge=0)
    total_chapters: int = Field(0, ge=0)
    marks: int = Field(0, ge=0)
    max_marks: int = Field(0, ge=0)
    skipped: int = Field(0, ge=0)
    ocs1: str = "N/A"
    ocs2: str = "N/A"
    ocs3: Optional[str] = ""

    @model_validator(mode="after")
    def require_name_or_email(self) -> "StudentRecordInput":
        if not self.name.strip() and not self.email.strip():
            raise ValueError("A student needs a name or an email")
        return self


class NotificationPayload(BaseModel):
    """Channel-agnostic projection of a record plus the session dates.

    Accepts the camelCase names posted by the browser front end.
    """
    model_config = ConfigDict(populate_by_name=True)

    name: str
    email: str = "N/A"
    phone: Optional[str] = None
    status: str
    chapter_completion: str = Field(alias="chapterCompletion")
    total_chapters: int = Field(0, alias="totalChapters")
    marks_obtained: int = Field(0, alias="marksObtained")
    max_marks: int = Field(0, alias="maxMarks")
    skipped_questions: int = Field(0, alias="skippedQuestions")
    ocs1_status: str = Field("N/A", alias="ocs1Status")
    ocs2_status: str = Field("N/A", alias="ocs2Status")
    ocs1_date: Optional[str] = Field(None, alias="ocs1Date")
    ocs2_date: Optional[str] = Field(None, alias="ocs2Date")


class RecipientOutcome(BaseModel):
    """Result of a single per-recipient send."""
    recipient: str
    name: str
    ok: bool
    error: Optional[str] = None
    fatal: bool = False


class DispatchResult(BaseModel):
    """Aggregated outcome of one dispatch call."""
    ok: bool
    message: str
    channel: Optional[Channel] = None
    outcomes: List[RecipientOutcome] = []
    skipped: int = 0

    @computed_field
    @property
    def sent(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.ok)

    @computed_field
    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.ok)


class UploadResponse(BaseModel):
    """Response from file upload endpoint."""
    success: bool
    message: str
    file_name: str
    results: List[StudentRecord]
    summary: Dict[str, int]


class RosterResponse(BaseModel):
    """Snapshot of the current operator session."""
    file_name: Optional[str]
    results: List[StudentRecord]
    summary: Dict[str, int]
    thresholds: ThresholdConfig
    session_dates: SessionDates
    selected_ids: List[str]
    has_ocs3: bool


class SendRequest(BaseModel):
    """Dispatch request against the session roster."""
    channel: Channel
    ids: Optional[List[str]] = None


class LegacySendRequest(BaseModel):
    """Body of the `/send-mails` and `/send-whatsapp` endpoints."""
    candidates: List[NotificationPayload] = []
