"""Pydantic models shared by the tools, the session manager and the API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# ── Tool outcome vocabulary ─────────────────────────────────────────
CREATED = "created"
ADDED = "added"
NEEDS_INFO = "needs_info"
UNAVAILABLE = "unavailable"
ERROR = "error"

OutcomeStatus = Literal["created", "added", "needs_info", "unavailable", "error"]

# ── Tool names ──────────────────────────────────────────────────────
CREATE_APPOINTMENT = "create_appointment"
ADD_SHOP_HOLIDAY = "add_shop_holiday"
ADD_STAFF_HOLIDAY = "add_staff_holiday"
CREATE_ANNOUNCEMENT = "create_announcement"

ALL_TOOL_NAMES = (CREATE_APPOINTMENT, ADD_SHOP_HOLIDAY, ADD_STAFF_HOLIDAY, CREATE_ANNOUNCEMENT)
HOLIDAY_TOOLS = (ADD_SHOP_HOLIDAY, ADD_STAFF_HOLIDAY)


# ── Tool arguments ──────────────────────────────────────────────────


class ToolArgs(BaseModel):
    """Base for tool argument schemas.

    The model sees camelCase keys (``rawText``, ``staffName``); handlers
    read the snake_case attributes.  Unknown keys are dropped.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ── Directory snapshot records ──────────────────────────────────────


class Staff(BaseModel):
    id: str
    name: str
    is_active: bool = True


class Service(BaseModel):
    id: str
    name: str
    duration: int = 30
    is_active: bool = True


class Customer(BaseModel):
    id: str
    name: str
    email: str | None = None
    phone: str | None = None
    is_active: bool = True


class Option(BaseModel):
    """A disambiguation candidate offered back to the administrator."""

    id: str
    name: str
    email: str | None = None

    @classmethod
    def of(cls, record: Any) -> Option:
        return cls(id=record.id, name=record.name, email=getattr(record, "email", None))


# ── Tool outcomes ───────────────────────────────────────────────────


class ToolOutcome(BaseModel):
    """Structured result of one tool execution.

    Outcomes are serialized into the transcript (``ToolMessage`` content)
    and onto the persisted assistant reply, so every field must be JSON
    friendly.  ``None`` fields and empty lists are dropped on dump.
    """

    status: OutcomeStatus
    reason: str | None = None
    missing: list[str] = Field(default_factory=list)
    options: list[Option] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        data = self.model_dump(mode="json", exclude_none=True)
        return {key: value for key, value in data.items() if value != []}


class AppointmentOutcome(ToolOutcome):
    appointment_id: str | None = None
    start_date_time: str | None = None
    staff_id: str | None = None
    staff_name: str | None = None
    service_id: str | None = None
    service_name: str | None = None
    customer_type: Literal["registered", "guest"] | None = None
    customer_name: str | None = None


class HolidayOutcome(ToolOutcome):
    scope: Literal["shop", "staff"]
    start: str | None = None
    end: str | None = None
    added: int = 0
    staff_ids: list[str] = Field(default_factory=list)
    staff_names: list[str] = Field(default_factory=list)
    unmatched: list[str] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        data = super().to_payload()
        if not self.added:
            data.pop("added", None)
        return data


class AnnouncementOutcome(ToolOutcome):
    announcement_id: str | None = None
    title: str | None = None
    kind: str | None = None
    start: str | None = None
    end: str | None = None


# ── Conversation ────────────────────────────────────────────────────


class ChatActions(BaseModel):
    appointments_changed: bool = False
    holidays_changed: bool = False
    announcements_changed: bool = False

    def merged(self, other: ChatActions) -> ChatActions:
        return ChatActions(
            appointments_changed=self.appointments_changed or other.appointments_changed,
            holidays_changed=self.holidays_changed or other.holidays_changed,
            announcements_changed=self.announcements_changed or other.announcements_changed,
        )


class ChatResult(BaseModel):
    session_id: str
    reply: str
    actions: ChatActions = Field(default_factory=ChatActions)


class ChatSession(BaseModel):
    id: str
    admin_user_id: str
    local_id: str
    summary: str = ""
    # user/assistant messages ever appended; unlike the stored rows, never trimmed
    message_count: int = 0
    created_at: datetime
    last_message_at: datetime


class ChatMessage(BaseModel):
    id: int
    session_id: str
    role: Literal["user", "assistant", "tool"]
    content: str
    tool_name: str | None = None
    tool_payload: Any = None
    created_at: datetime


class BusinessFact(BaseModel):
    key: str
    value: str
    local_id: str
    updated_at: datetime


class SessionTranscript(BaseModel):
    session_id: str
    summary: str = ""
    messages: list[ChatMessage] = Field(default_factory=list)
