"""Protocols module - meeting protocols, their lifecycle and templates."""

from byggportal.protocols.models import (
    ActionItemPriority,
    ActionItemStatus,
    AttendeeRole,
    LinkDirection,
    LinkType,
    MeetingType,
    Protocol,
    ProtocolActionItem,
    ProtocolAgendaItem,
    ProtocolAttachment,
    ProtocolAttendee,
    ProtocolDecision,
    ProtocolLink,
    ProtocolStatus,
    ProtocolTemplate,
    ProtocolTemplateAction,
    ProtocolTemplateAgendaItem,
    ProtocolTemplateAttendeeRole,
)

__all__ = [
    "ActionItemPriority",
    "ActionItemStatus",
    "AttendeeRole",
    "LinkDirection",
    "LinkType",
    "MeetingType",
    "Protocol",
    "ProtocolActionItem",
    "ProtocolAgendaItem",
    "ProtocolAttachment",
    "ProtocolAttendee",
    "ProtocolDecision",
    "ProtocolLink",
    "ProtocolStatus",
    "ProtocolTemplate",
    "ProtocolTemplateAction",
    "ProtocolTemplateAgendaItem",
    "ProtocolTemplateAttendeeRole",
]
