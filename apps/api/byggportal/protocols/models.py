"""
Protocols Module Database Models

Meeting protocols and the collections they own: attendees, agenda items,
decisions, action items, attachments and links to other project items.
"""

import uuid
from datetime import date, datetime, time
from enum import StrEnum

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from byggportal.auth.models import User
from byggportal.core.database import Base, enum_type


# =============================================================================
# Enums
# =============================================================================


class MeetingType(StrEnum):
    """Kind of meeting a protocol records."""

    BYGGMOTE = "byggmote"  # Byggmöte
    PROJEKTMOTE = "projektmote"  # Projektmöte
    SAMORDNINGSMOTE = "samordningsmote"  # Samordningsmöte
    STARTMOTE = "startmote"  # Startmöte
    SLUTMOTE = "slutmote"  # Slutmöte
    BESIKTNING = "besiktning"  # Besiktning
    OTHER = "other"


class ProtocolStatus(StrEnum):
    """Lifecycle: draft -> finalized -> archived."""

    DRAFT = "draft"
    FINALIZED = "finalized"
    ARCHIVED = "archived"


class AttendeeRole(StrEnum):
    ORGANIZER = "organizer"  # Mötesledare
    RECORDER = "recorder"  # Sekreterare
    ATTENDEE = "attendee"
    ABSENT_NOTIFIED = "absent_notified"  # Anmält förhinder


class ActionItemStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ActionItemPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class LinkType(StrEnum):
    """Project items a protocol can point at."""

    ISSUE = "issue"
    DEVIATION = "deviation"
    RFI = "rfi"
    CHECKLIST = "checklist"
    DOCUMENT = "document"


class LinkDirection(StrEnum):
    REFERENCED = "referenced"  # Discussed in the meeting
    CREATED_FROM = "created_from"  # Raised because of the meeting


# =============================================================================
# Protocol
# =============================================================================


class Protocol(Base):
    """
    Minutes of a project meeting.

    Numbered per project. Content can only change while the protocol is a
    draft; finalizing locks it.
    """

    __tablename__ = "protocols"
    __table_args__ = (
        UniqueConstraint("project_id", "protocol_number", name="uq_protocol_number"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    protocol_number: Mapped[int] = mapped_column(Integer)

    title: Mapped[str] = mapped_column(String(300))
    meeting_type: Mapped[MeetingType] = mapped_column(
        enum_type(MeetingType, "meeting_type"),
        default=MeetingType.BYGGMOTE,
    )
    status: Mapped[ProtocolStatus] = mapped_column(
        enum_type(ProtocolStatus, "protocol_status"),
        default=ProtocolStatus.DRAFT,
    )

    # Scheduling
    meeting_date: Mapped[date] = mapped_column(Date)
    start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    end_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    location: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Content
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Meeting chaining
    previous_protocol_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("protocols.id", ondelete="SET NULL"), nullable=True
    )

    created_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("profiles.id"), nullable=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    creator: Mapped["User | None"] = relationship(foreign_keys=[created_by])
    previous_protocol: Mapped["Protocol | None"] = relationship(
        "Protocol",
        remote_side="Protocol.id",
        foreign_keys=[previous_protocol_id],
    )
    attendees: Mapped[list["ProtocolAttendee"]] = relationship(
        back_populates="protocol",
        cascade="all, delete-orphan",
        order_by="ProtocolAttendee.created_at",
    )
    agenda_items: Mapped[list["ProtocolAgendaItem"]] = relationship(
        back_populates="protocol",
        cascade="all, delete-orphan",
        order_by="ProtocolAgendaItem.order_index",
    )
    decisions: Mapped[list["ProtocolDecision"]] = relationship(
        back_populates="protocol",
        cascade="all, delete-orphan",
        order_by="ProtocolDecision.decision_number",
    )
    action_items: Mapped[list["ProtocolActionItem"]] = relationship(
        back_populates="protocol",
        cascade="all, delete-orphan",
        order_by="ProtocolActionItem.action_number",
    )
    attachments: Mapped[list["ProtocolAttachment"]] = relationship(
        back_populates="protocol",
        cascade="all, delete-orphan",
        order_by="ProtocolAttachment.created_at.desc()",
    )
    links: Mapped[list["ProtocolLink"]] = relationship(
        back_populates="protocol",
        cascade="all, delete-orphan",
        order_by="ProtocolLink.created_at.desc()",
    )

    @property
    def is_draft(self) -> bool:
        return self.status == ProtocolStatus.DRAFT


# =============================================================================
# Protocol Children
# =============================================================================


class ProtocolAttendee(Base):
    """A person invited to or present at the meeting."""

    __tablename__ = "protocol_attendees"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    protocol_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("protocols.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("profiles.id"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    company: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[AttendeeRole] = mapped_column(
        enum_type(AttendeeRole, "attendee_role"),
        default=AttendeeRole.ATTENDEE,
    )
    attended: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    protocol: Mapped["Protocol"] = relationship(back_populates="attendees")


class ProtocolAgendaItem(Base):
    """An agenda point, in explicit order."""

    __tablename__ = "protocol_agenda_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    protocol_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("protocols.id", ondelete="CASCADE"), index=True
    )
    order_index: Mapped[int] = mapped_column(Integer, default=0)
    title: Mapped[str] = mapped_column(String(300))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    presenter_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("profiles.id"), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    protocol: Mapped["Protocol"] = relationship(back_populates="agenda_items")


class ProtocolDecision(Base):
    """A numbered decision taken in the meeting."""

    __tablename__ = "protocol_decisions"
    __table_args__ = (
        UniqueConstraint("protocol_id", "decision_number", name="uq_decision_number"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    protocol_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("protocols.id", ondelete="CASCADE"), index=True
    )
    decision_number: Mapped[int] = mapped_column(Integer)
    description: Mapped[str] = mapped_column(Text)
    decided_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    protocol: Mapped["Protocol"] = relationship(back_populates="decisions")


class ProtocolActionItem(Base):
    """A numbered follow-up task. Status stays editable after finalization."""

    __tablename__ = "protocol_action_items"
    __table_args__ = (
        UniqueConstraint("protocol_id", "action_number", name="uq_action_number"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    protocol_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("protocols.id", ondelete="CASCADE"), index=True
    )
    action_number: Mapped[int] = mapped_column(Integer)
    description: Mapped[str] = mapped_column(Text)
    assigned_to: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("profiles.id"), nullable=True, index=True
    )
    assigned_to_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    deadline: Mapped[date | None] = mapped_column(Date, nullable=True)
    priority: Mapped[ActionItemPriority] = mapped_column(
        enum_type(ActionItemPriority, "action_item_priority"),
        default=ActionItemPriority.MEDIUM,
    )
    status: Mapped[ActionItemStatus] = mapped_column(
        enum_type(ActionItemStatus, "action_item_status"),
        default=ActionItemStatus.PENDING,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    protocol: Mapped["Protocol"] = relationship(back_populates="action_items")


class ProtocolAttachment(Base):
    """A file stored in object storage and attached to a protocol."""

    __tablename__ = "protocol_attachments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    protocol_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("protocols.id", ondelete="CASCADE"), index=True
    )
    file_name: Mapped[str] = mapped_column(String(500))
    file_path: Mapped[str] = mapped_column(String(1000))
    file_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    file_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    uploaded_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("profiles.id"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    protocol: Mapped["Protocol"] = relationship(back_populates="attachments")


class ProtocolLink(Base):
    """A reference from a protocol to another project item."""

    __tablename__ = "protocol_links"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    protocol_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("protocols.id", ondelete="CASCADE"), index=True
    )
    link_type: Mapped[LinkType] = mapped_column(enum_type(LinkType, "protocol_link_type"))
    linked_item_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    link_direction: Mapped[LinkDirection] = mapped_column(
        enum_type(LinkDirection, "protocol_link_direction"),
        default=LinkDirection.REFERENCED,
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("profiles.id"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    protocol: Mapped["Protocol"] = relationship(back_populates="links")


# =============================================================================
# Protocol Templates
# =============================================================================


class ProtocolTemplate(Base):
    """
    Reusable starting point for new protocols.

    System templates have no owner and are visible to everyone. User
    templates are only visible to, and editable by, their owner.
    """

    __tablename__ = "protocol_templates"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("profiles.id", ondelete="CASCADE"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    meeting_type: Mapped[MeetingType] = mapped_column(
        enum_type(MeetingType, "meeting_type"),
        default=MeetingType.BYGGMOTE,
    )
    is_system: Mapped[bool] = mapped_column(Boolean, default=False)

    # Prefill values
    default_location: Mapped[str | None] = mapped_column(String(500), nullable=True)
    default_start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    default_end_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    default_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    agenda_items: Mapped[list["ProtocolTemplateAgendaItem"]] = relationship(
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="ProtocolTemplateAgendaItem.order_index",
    )
    attendee_roles: Mapped[list["ProtocolTemplateAttendeeRole"]] = relationship(
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="ProtocolTemplateAttendeeRole.created_at",
    )
    actions: Mapped[list["ProtocolTemplateAction"]] = relationship(
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="ProtocolTemplateAction.created_at",
    )


class ProtocolTemplateAgendaItem(Base):
    __tablename__ = "protocol_template_agenda_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    template_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("protocol_templates.id", ondelete="CASCADE"), index=True
    )
    order_index: Mapped[int] = mapped_column(Integer, default=0)
    title: Mapped[str] = mapped_column(String(300))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    template: Mapped["ProtocolTemplate"] = relationship(back_populates="agenda_items")


class ProtocolTemplateAttendeeRole(Base):
    """A seat to fill when the template is applied, e.g. one per company."""

    __tablename__ = "protocol_template_attendee_roles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    template_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("protocol_templates.id", ondelete="CASCADE"), index=True
    )
    role_name: Mapped[str] = mapped_column(String(255))
    company_placeholder: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[AttendeeRole] = mapped_column(
        enum_type(AttendeeRole, "attendee_role"),
        default=AttendeeRole.ATTENDEE,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    template: Mapped["ProtocolTemplate"] = relationship(back_populates="attendee_roles")


class ProtocolTemplateAction(Base):
    """A recurring action item carried by a template."""

    __tablename__ = "protocol_template_actions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    template_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("protocol_templates.id", ondelete="CASCADE"), index=True
    )
    description: Mapped[str] = mapped_column(Text)
    priority: Mapped[ActionItemPriority] = mapped_column(
        enum_type(ActionItemPriority, "action_item_priority"),
        default=ActionItemPriority.MEDIUM,
    )
    default_role: Mapped[str | None] = mapped_column(String(255), nullable=True)
    default_days_until_deadline: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    template: Mapped["ProtocolTemplate"] = relationship(back_populates="actions")
