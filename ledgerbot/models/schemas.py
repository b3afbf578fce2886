from datetime import datetime
from enum import Enum
from typing import Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field

PendingStatus = Literal["awaiting_context", "awaiting_validation", "awaiting_category_reply"]
AttachmentKind = Literal["image", "document", "audio"]


# ── Directory cache ──────────────────────────────────────────────


class GroupSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    group_id: str
    name: str


class GroupRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    group_id: str
    name: str
    participant_phones: frozenset[str] = frozenset()

    def summary(self) -> GroupSummary:
        return GroupSummary(group_id=self.group_id, name=self.name)


class DirectorySnapshot(BaseModel):
    """Immutable picture of every group and roster at one point in time."""

    model_config = ConfigDict(frozen=True)

    groups: Mapping[str, GroupRecord] = {}
    index: Mapping[str, frozenset[str]] = {}
    published_at: datetime | None = None


# ── Gateway payloads ─────────────────────────────────────────────


class Participant(BaseModel):
    phone: str


class GatewayGroup(BaseModel):
    group_id: str
    name: str
    participants: list[Participant] = []


class Button(BaseModel):
    id: str
    label: str


class ListOption(BaseModel):
    id: str
    title: str
    description: str = ""


class OptionList(BaseModel):
    title: str
    button_label: str = "Ver opções"
    options: list[ListOption]


# ── AI analysis ──────────────────────────────────────────────────


class ExpenseAnalysis(BaseModel):
    value: float
    description: str
    category_name: str = Field(alias="categoryName")

    model_config = ConfigDict(populate_by_name=True)


# ── Persistence ──────────────────────────────────────────────────


class Category(BaseModel):
    id: int | None = None
    name: str


class User(BaseModel):
    id: int | None = None
    email: str
    phone: str | None = None


class Profile(BaseModel):
    id: int | None = None
    user_id: int
    name: str


class Subscription(BaseModel):
    id: int | None = None
    user_id: int
    status: Literal["active", "pending", "cancelled", "inactive"] = "pending"
    expires_at: datetime | None = None


class MonitoredGroup(BaseModel):
    id: int | None = None
    group_id: str
    name: str
    profile_id: int
    is_active: bool = True


class MonitoringOutcome(str, Enum):
    CREATED = "created"
    REACTIVATED = "reactivated"
    ALREADY_ACTIVE = "already_active"


class PendingExpense(BaseModel):
    id: int | None = None
    value: float | None = None
    description: str | None = None
    suggested_category_id: int | None = None
    source_message_id: str
    source_group_id: str
    participant_phone: str | None = None
    attachment_url: str | None = None
    attachment_mimetype: str | None = None
    profile_id: int | None = None
    status: PendingStatus = "awaiting_validation"
    created_at: datetime = Field(default_factory=datetime.now)
    expires_at: datetime


class Expense(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int | None = None
    value: float
    description: str | None = None
    date: datetime
    category_id: int
    source_message_id: str | None = None
    profile_id: int | None = None


# ── HTTP requests / responses ────────────────────────────────────


class MonitorGroupRequest(BaseModel):
    group_id: str
    profile_id: int
    user_id: int


class MonitorGroupResponse(BaseModel):
    outcome: MonitoringOutcome
    group: MonitoredGroup
