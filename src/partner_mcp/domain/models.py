from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---- MCP envelope -----------------------------------------------------------

class ContentBlock(BaseModel):
    """One block of a tool result. Non-text blocks keep their extra fields."""
    model_config = ConfigDict(extra="allow")

    type: str = "text"
    text: Optional[str] = None


class ToolResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    content: List[ContentBlock] = Field(default_factory=list)
    is_error: bool = Field(default=False, alias="isError")

    def texts(self) -> List[str]:
        """Non-empty text payloads in block order."""
        return [b.text for b in self.content if b.type == "text" and b.text]


class ToolInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=dict, alias="inputSchema")

    @field_validator("description", mode="before")
    @classmethod
    def _none_description(cls, v: Any) -> Any:
        return "" if v is None else v


# ---- Tasks ------------------------------------------------------------------

class TaskStatus(str, Enum):
    INCOMPLETE = "incomplete"
    COMPLETED = "completed"
    CANCELED = "canceled"


_STATUS_ALIASES = {
    "incomplete": TaskStatus.INCOMPLETE,
    "open": TaskStatus.INCOMPLETE,
    "completed": TaskStatus.COMPLETED,
    "complete": TaskStatus.COMPLETED,
    "done": TaskStatus.COMPLETED,
    "canceled": TaskStatus.CANCELED,
    "cancelled": TaskStatus.CANCELED,
}


def normalize_status(value: Any) -> TaskStatus:
    """Map loose status spellings onto the three lifecycle states; unknown means incomplete."""
    if isinstance(value, TaskStatus):
        return value
    if isinstance(value, str):
        return _STATUS_ALIASES.get(value.strip().lower(), TaskStatus.INCOMPLETE)
    return TaskStatus.INCOMPLETE


def lenient_date(value: Any) -> Optional[date]:
    """ISO date (or the date part of an ISO datetime); anything else reads as no date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def lenient_tags(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [t.strip() for t in value.split(",") if t.strip()]
    if isinstance(value, (list, tuple)):
        return [str(t).strip() for t in value if t is not None and str(t).strip()]
    return []


class ChecklistItem(BaseModel):
    title: str
    status: TaskStatus = TaskStatus.INCOMPLETE

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v: Any) -> TaskStatus:
        return normalize_status(v)


class Task(BaseModel):
    uuid: str = ""
    title: str = Field(min_length=1)
    status: TaskStatus = TaskStatus.INCOMPLETE
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    deadline: Optional[date] = None
    start_date: Optional[date] = None
    project_title: Optional[str] = None
    area_title: Optional[str] = None
    checklist_items: List[ChecklistItem] = Field(default_factory=list)

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v: Any) -> TaskStatus:
        return normalize_status(v)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v: Any) -> List[str]:
        return lenient_tags(v)

    @field_validator("deadline", "start_date", mode="before")
    @classmethod
    def _dates(cls, v: Any) -> Optional[date]:
        return lenient_date(v)

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be blank")
        return v


class Project(BaseModel):
    model_config = ConfigDict(extra="ignore")

    uuid: str = ""
    title: str = Field(min_length=1)
    status: TaskStatus = TaskStatus.INCOMPLETE
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    deadline: Optional[date] = None
    area_title: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v: Any) -> TaskStatus:
        return normalize_status(v)

    @field_validator("uuid", mode="before")
    @classmethod
    def _none_uuid(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v: Any) -> List[str]:
        return lenient_tags(v)

    @field_validator("deadline", mode="before")
    @classmethod
    def _deadline(cls, v: Any) -> Optional[date]:
        return lenient_date(v)


class Area(BaseModel):
    model_config = ConfigDict(extra="ignore")

    uuid: str = ""
    title: str = Field(min_length=1)

    @field_validator("uuid", mode="before")
    @classmethod
    def _none_uuid(cls, v: Any) -> Any:
        return "" if v is None else v


# ---- Calendar ---------------------------------------------------------------

class CalendarEvent(BaseModel):
    id: str = ""
    title: str
    start: datetime
    end: Optional[datetime] = None
    all_day: bool = False
    location: Optional[str] = None
    notes: Optional[str] = None
    calendar: Optional[str] = None

    @field_validator("start", "end")
    @classmethod
    def _local_wall_clock(cls, v: Optional[datetime]) -> Optional[datetime]:
        # naive values are taken as local time; aware values are converted to it
        if v is None:
            return v
        return v.astimezone()
