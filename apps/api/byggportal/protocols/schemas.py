"""
Protocols Module Pydantic Schemas

API request/response schemas for protocols and their child collections.
"""

from datetime import date, datetime, time
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from byggportal.projects.schemas import UserBrief
from byggportal.protocols.models import (
    ActionItemPriority,
    ActionItemStatus,
    AttendeeRole,
    LinkDirection,
    LinkType,
    MeetingType,
    ProtocolStatus,
)


# =============================================================================
# Protocol Schemas
# =============================================================================


class ProtocolCreate(BaseModel):
    """Schema for creating a protocol. New protocols start as drafts."""

    title: str = Field(min_length=1, max_length=300)
    meeting_type: MeetingType = MeetingType.BYGGMOTE
    meeting_date: date
    start_time: time | None = None
    end_time: time | None = None
    location: str | None = None
    previous_protocol_id: UUID | None = None


class ProtocolUpdate(BaseModel):
    """Editable protocol fields. Status changes go through finalize/archive."""

    title: str | None = Field(default=None, min_length=1, max_length=300)
    meeting_type: MeetingType | None = None
    meeting_date: date | None = None
    start_time: time | None = None
    end_time: time | None = None
    location: str | None = None
    notes: str | None = None
    ai_summary: str | None = None


class ProtocolResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: UUID
    protocol_number: int
    title: str
    meeting_type: MeetingType
    status: ProtocolStatus
    meeting_date: date
    start_time: time | None = None
    end_time: time | None = None
    location: str | None = None
    notes: str | None = None
    ai_summary: str | None = None
    previous_protocol_id: UUID | None = None
    created_by: UUID | None = None
    created_at: datetime
    updated_at: datetime


class ProtocolStats(BaseModel):
    total: int = 0
    draft: int = 0
    finalized: int = 0
    archived: int = 0
    pending_actions: int = 0


# =============================================================================
# Attendee Schemas
# =============================================================================


class AttendeeCreate(BaseModel):
    user_id: UUID | None = None
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr | None = None
    company: str | None = None
    role: AttendeeRole = AttendeeRole.ATTENDEE
    attended: bool = True


class AttendeeUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: EmailStr | None = None
    company: str | None = None
    role: AttendeeRole | None = None
    attended: bool | None = None


class AttendeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    protocol_id: UUID
    user_id: UUID | None = None
    name: str
    email: str | None = None
    company: str | None = None
    role: AttendeeRole
    attended: bool
    created_at: datetime


# =============================================================================
# Agenda Schemas
# =============================================================================


class AgendaItemCreate(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    order_index: int | None = Field(default=None, ge=0)
    description: str | None = None
    duration_minutes: int | None = Field(default=None, ge=0)
    presenter_id: UUID | None = None
    notes: str | None = None


class AgendaItemUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=300)
    order_index: int | None = Field(default=None, ge=0)
    description: str | None = None
    duration_minutes: int | None = Field(default=None, ge=0)
    presenter_id: UUID | None = None
    notes: str | None = None


class AgendaReorderItem(BaseModel):
    id: UUID
    order_index: int = Field(ge=0)


class AgendaReorderRequest(BaseModel):
    items: list[AgendaReorderItem]


class AgendaItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    protocol_id: UUID
    order_index: int
    title: str
    description: str | None = None
    duration_minutes: int | None = None
    presenter_id: UUID | None = None
    notes: str | None = None
    created_at: datetime


# =============================================================================
# Decision Schemas
# =============================================================================


class DecisionCreate(BaseModel):
    description: str = Field(min_length=1)
    decided_by: str | None = None


class DecisionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    protocol_id: UUID
    decision_number: int
    description: str
    decided_by: str | None = None
    created_at: datetime


# =============================================================================
# Action Item Schemas
# =============================================================================


class ActionItemCreate(BaseModel):
    description: str = Field(min_length=1)
    assigned_to: UUID | None = None
    assigned_to_name: str | None = None
    deadline: date | None = None
    priority: ActionItemPriority = ActionItemPriority.MEDIUM


class ActionItemUpdate(BaseModel):
    description: str | None = Field(default=None, min_length=1)
    assigned_to: UUID | None = None
    assigned_to_name: str | None = None
    deadline: date | None = None
    priority: ActionItemPriority | None = None
    status: ActionItemStatus | None = None
    notes: str | None = None


class ActionItemBulkCreate(BaseModel):
    items: list[ActionItemCreate] = Field(min_length=1)


class ActionItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    protocol_id: UUID
    action_number: int
    description: str
    assigned_to: UUID | None = None
    assigned_to_name: str | None = None
    deadline: date | None = None
    priority: ActionItemPriority
    status: ActionItemStatus
    completed_at: datetime | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime


class ProtocolBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: UUID
    protocol_number: int
    title: str


class PendingActionItem(ActionItemResponse):
    """An open action item together with the protocol it belongs to."""

    protocol: ProtocolBrief


# =============================================================================
# Link & Attachment Schemas
# =============================================================================


class LinkCreate(BaseModel):
    link_type: LinkType
    linked_item_id: UUID
    link_direction: LinkDirection = LinkDirection.REFERENCED


class LinkResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    protocol_id: UUID
    link_type: LinkType
    linked_item_id: UUID
    link_direction: LinkDirection
    created_by: UUID | None = None
    created_at: datetime


class AttachmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    protocol_id: UUID
    file_name: str
    file_path: str
    file_size: int | None = None
    file_type: str | None = None
    uploaded_by: UUID | None = None
    created_at: datetime


class AttachmentUrlResponse(BaseModel):
    url: str


# =============================================================================
# Detail
# =============================================================================


class ProtocolDetail(ProtocolResponse):
    """A protocol with every child collection and its completion."""

    creator: UserBrief | None = None
    attendees: list[AttendeeResponse] = []
    agenda_items: list[AgendaItemResponse] = []
    decisions: list[DecisionResponse] = []
    action_items: list[ActionItemResponse] = []
    attachments: list[AttachmentResponse] = []
    links: list[LinkResponse] = []
    previous_protocol: ProtocolBrief | None = None
    completion_percentage: int = 0


# =============================================================================
# Template Schemas
# =============================================================================


class TemplateAgendaItemCreate(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    description: str | None = None
    duration_minutes: int | None = Field(default=None, ge=0)


class TemplateAttendeeRoleCreate(BaseModel):
    role_name: str = Field(min_length=1, max_length=255)
    company_placeholder: str | None = None
    role: AttendeeRole = AttendeeRole.ATTENDEE


class TemplateCreate(BaseModel):
    """A user template. Agenda items are numbered in the given order."""

    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    meeting_type: MeetingType = MeetingType.BYGGMOTE
    default_location: str | None = None
    default_start_time: time | None = None
    default_end_time: time | None = None
    agenda_items: list[TemplateAgendaItemCreate] = []
    attendee_roles: list[TemplateAttendeeRoleCreate] = []


class TemplateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    meeting_type: MeetingType | None = None
    default_location: str | None = None
    default_start_time: time | None = None
    default_end_time: time | None = None


class TemplateFromProtocol(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None


class TemplateAgendaItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_index: int
    title: str
    description: str | None = None
    duration_minutes: int | None = None


class TemplateAttendeeRoleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    role_name: str
    company_placeholder: str | None = None
    role: AttendeeRole


class TemplateActionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    description: str
    priority: ActionItemPriority
    default_role: str | None = None
    default_days_until_deadline: int | None = None


class TemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID | None = None
    name: str
    description: str | None = None
    meeting_type: MeetingType
    is_system: bool
    default_location: str | None = None
    default_start_time: time | None = None
    default_end_time: time | None = None
    default_notes: str | None = None
    created_at: datetime
    updated_at: datetime


class TemplateListItem(TemplateResponse):
    agenda_item_count: int = 0
    attendee_role_count: int = 0


class TemplateDetail(TemplateResponse):
    agenda_items: list[TemplateAgendaItemResponse] = []
    attendee_roles: list[TemplateAttendeeRoleResponse] = []
    actions: list[TemplateActionResponse] = []


class TemplatePrefill(BaseModel):
    """Values a new protocol is filled with when a template is applied."""

    meeting_type: MeetingType
    location: str | None = None
    start_time: time | None = None
    end_time: time | None = None
    agenda_items: list[TemplateAgendaItemCreate] = []
    attendee_roles: list[TemplateAttendeeRoleCreate] = []
