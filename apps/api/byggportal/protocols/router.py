"""
Protocols API Router

Endpoints for meeting protocols and their agenda, attendees, decisions,
action items, links and attachments, and reusable protocol templates.
"""

from enum import StrEnum
from uuid import UUID

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from byggportal.auth.dependencies import AuthenticatedUser, get_current_user
from byggportal.core.database import get_db
from byggportal.core.errors import InvalidOperationError
from byggportal.protocols.models import MeetingType, Protocol, ProtocolStatus
from byggportal.protocols.schemas import (
    ActionItemBulkCreate,
    ActionItemCreate,
    ActionItemResponse,
    ActionItemUpdate,
    AgendaItemCreate,
    AgendaItemResponse,
    AgendaItemUpdate,
    AgendaReorderRequest,
    AttachmentResponse,
    AttachmentUrlResponse,
    AttendeeCreate,
    AttendeeResponse,
    AttendeeUpdate,
    DecisionCreate,
    DecisionResponse,
    LinkCreate,
    LinkResponse,
    PendingActionItem,
    ProtocolCreate,
    ProtocolDetail,
    ProtocolResponse,
    ProtocolStats,
    ProtocolUpdate,
    TemplateCreate,
    TemplateDetail,
    TemplateFromProtocol,
    TemplateListItem,
    TemplatePrefill,
    TemplateResponse,
    TemplateUpdate,
)
from byggportal.protocols.services import (
    AttachmentService,
    ProtocolContentService,
    ProtocolService,
    ProtocolTemplateService,
    protocol_completion,
)

router = APIRouter(tags=["protocols"])
templates_router = APIRouter(prefix="/protocol-templates", tags=["protocol-templates"])


def parse_filter(enum_cls: type[StrEnum], value: str | None) -> StrEnum | None:
    """Turn a query value into an enum member; "all" and empty mean no filter."""
    if value is None or value == "" or value == "all":
        return None
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidOperationError(f"Ogiltigt filter: {value}")


def to_detail(protocol: Protocol) -> ProtocolDetail:
    detail = ProtocolDetail.model_validate(protocol)
    return detail.model_copy(update={"completion_percentage": protocol_completion(protocol)})


# =============================================================================
# Project Protocols
# =============================================================================


@router.get("/projects/{project_id}/protocols", response_model=list[ProtocolResponse])
async def list_protocols(
    project_id: UUID,
    status_filter: str | None = Query(default=None, alias="status"),
    meeting_type: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> list[ProtocolResponse]:
    """List protocols of a project, latest meeting first."""
    return await ProtocolService(db).list_protocols(
        project_id,
        current_user.id,
        status=parse_filter(ProtocolStatus, status_filter),
        meeting_type=parse_filter(MeetingType, meeting_type),
    )


@router.post(
    "/projects/{project_id}/protocols",
    response_model=ProtocolResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_protocol(
    project_id: UUID,
    data: ProtocolCreate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> ProtocolResponse:
    """Create a draft protocol."""
    protocol = await ProtocolService(db).create_protocol(project_id, data, current_user.id)
    await db.commit()
    return protocol


@router.get("/projects/{project_id}/protocols/stats", response_model=ProtocolStats)
async def get_protocol_stats(
    project_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> ProtocolStats:
    """Protocol counts per status and open action items."""
    return await ProtocolService(db).get_stats(project_id, current_user.id)


@router.get("/protocols/my-actions", response_model=list[PendingActionItem])
async def list_my_pending_actions(
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> list[PendingActionItem]:
    """Open action items assigned to the current user."""
    return await ProtocolService(db).get_user_pending_action_items(current_user.id)


# =============================================================================
# Protocol
# =============================================================================


@router.get("/protocols/{protocol_id}", response_model=ProtocolDetail)
async def get_protocol(
    protocol_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> ProtocolDetail:
    """Get a protocol with all its content and completion percentage."""
    protocol = await ProtocolService(db).get_protocol(protocol_id, current_user.id)
    return to_detail(protocol)


@router.patch("/protocols/{protocol_id}", response_model=ProtocolResponse)
async def update_protocol(
    protocol_id: UUID,
    data: ProtocolUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> ProtocolResponse:
    """Update a draft protocol."""
    protocol = await ProtocolService(db).update_protocol(protocol_id, data, current_user.id)
    await db.commit()
    return protocol


@router.delete("/protocols/{protocol_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_protocol(
    protocol_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
    """Delete a draft protocol, then its stored attachments."""
    file_paths = await ProtocolService(db).delete_protocol(protocol_id, current_user.id)
    await db.commit()
    await AttachmentService(db).remove_files(file_paths)


@router.post("/protocols/{protocol_id}/finalize", response_model=ProtocolResponse)
async def finalize_protocol(
    protocol_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> ProtocolResponse:
    """Finalize a draft. Irreversible."""
    protocol = await ProtocolService(db).finalize_protocol(protocol_id, current_user.id)
    await db.commit()
    return protocol


@router.post("/protocols/{protocol_id}/archive", response_model=ProtocolResponse)
async def archive_protocol(
    protocol_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> ProtocolResponse:
    """Archive a finalized protocol."""
    protocol = await ProtocolService(db).archive_protocol(protocol_id, current_user.id)
    await db.commit()
    return protocol


# =============================================================================
# Attendees
# =============================================================================


@router.post(
    "/protocols/{protocol_id}/attendees",
    response_model=AttendeeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_attendee(
    protocol_id: UUID,
    data: AttendeeCreate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> AttendeeResponse:
    attendee = await ProtocolContentService(db).add_attendee(protocol_id, data, current_user.id)
    await db.commit()
    return attendee


@router.post(
    "/protocols/{protocol_id}/attendees/bulk",
    response_model=list[AttendeeResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_attendees(
    protocol_id: UUID,
    data: list[AttendeeCreate],
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> list[AttendeeResponse]:
    """Add several attendees at once, e.g. all project members."""
    attendees = await ProtocolContentService(db).add_attendees(protocol_id, data, current_user.id)
    await db.commit()
    return attendees


@router.patch("/protocols/attendees/{attendee_id}", response_model=AttendeeResponse)
async def update_attendee(
    attendee_id: UUID,
    data: AttendeeUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> AttendeeResponse:
    attendee = await ProtocolContentService(db).update_attendee(attendee_id, data, current_user.id)
    await db.commit()
    return attendee


@router.delete("/protocols/attendees/{attendee_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_attendee(
    attendee_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
    await ProtocolContentService(db).remove_attendee(attendee_id, current_user.id)
    await db.commit()


# =============================================================================
# Agenda
# =============================================================================


@router.post(
    "/protocols/{protocol_id}/agenda",
    response_model=AgendaItemResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_agenda_item(
    protocol_id: UUID,
    data: AgendaItemCreate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> AgendaItemResponse:
    item = await ProtocolContentService(db).add_agenda_item(protocol_id, data, current_user.id)
    await db.commit()
    return item


@router.put("/protocols/{protocol_id}/agenda/order", response_model=list[AgendaItemResponse])
async def reorder_agenda_items(
    protocol_id: UUID,
    data: AgendaReorderRequest,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> list[AgendaItemResponse]:
    """Set new order indexes for agenda items."""
    items = await ProtocolContentService(db).reorder_agenda_items(
        protocol_id, data.items, current_user.id
    )
    await db.commit()
    return items


@router.patch("/protocols/agenda/{item_id}", response_model=AgendaItemResponse)
async def update_agenda_item(
    item_id: UUID,
    data: AgendaItemUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> AgendaItemResponse:
    item = await ProtocolContentService(db).update_agenda_item(item_id, data, current_user.id)
    await db.commit()
    return item


@router.delete("/protocols/agenda/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_agenda_item(
    item_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
    await ProtocolContentService(db).delete_agenda_item(item_id, current_user.id)
    await db.commit()


# =============================================================================
# Decisions
# =============================================================================


@router.post(
    "/protocols/{protocol_id}/decisions",
    response_model=DecisionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_decision(
    protocol_id: UUID,
    data: DecisionCreate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> DecisionResponse:
    """Record a decision with the next decision number."""
    decision = await ProtocolContentService(db).add_decision(protocol_id, data, current_user.id)
    await db.commit()
    return decision


@router.delete("/protocols/decisions/{decision_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_decision(
    decision_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
    await ProtocolContentService(db).delete_decision(decision_id, current_user.id)
    await db.commit()


# =============================================================================
# Action Items
# =============================================================================


@router.post(
    "/protocols/{protocol_id}/actions",
    response_model=ActionItemResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_action_item(
    protocol_id: UUID,
    data: ActionItemCreate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> ActionItemResponse:
    action = await ProtocolContentService(db).add_action_item(protocol_id, data, current_user.id)
    await db.commit()
    return action


@router.post(
    "/protocols/{protocol_id}/actions/bulk",
    response_model=list[ActionItemResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_action_items(
    protocol_id: UUID,
    data: ActionItemBulkCreate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> list[ActionItemResponse]:
    """Add several action items, e.g. the ones suggested by the AI."""
    actions = await ProtocolContentService(db).add_action_items(
        protocol_id, data.items, current_user.id
    )
    await db.commit()
    return actions


@router.patch("/protocols/actions/{action_id}", response_model=ActionItemResponse)
async def update_action_item(
    action_id: UUID,
    data: ActionItemUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> ActionItemResponse:
    action = await ProtocolContentService(db).update_action_item(action_id, data, current_user.id)
    await db.commit()
    return action


@router.delete("/protocols/actions/{action_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_action_item(
    action_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
    await ProtocolContentService(db).delete_action_item(action_id, current_user.id)
    await db.commit()


# =============================================================================
# Links
# =============================================================================


@router.post(
    "/protocols/{protocol_id}/links",
    response_model=LinkResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_link(
    protocol_id: UUID,
    data: LinkCreate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> LinkResponse:
    link = await ProtocolContentService(db).add_link(protocol_id, data, current_user.id)
    await db.commit()
    return link


@router.delete("/protocols/links/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_link(
    link_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
    await ProtocolContentService(db).remove_link(link_id, current_user.id)
    await db.commit()


# =============================================================================
# Attachments
# =============================================================================


@router.get("/protocols/{protocol_id}/attachments", response_model=list[AttachmentResponse])
async def list_attachments(
    protocol_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> list[AttachmentResponse]:
    return await AttachmentService(db).list_attachments(protocol_id, current_user.id)


@router.post(
    "/protocols/{protocol_id}/attachments",
    response_model=AttachmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_attachment(
    protocol_id: UUID,
    file: UploadFile = File(..., description="File to attach to the protocol"),
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> AttachmentResponse:
    """Upload a file and attach it to a draft protocol."""
    content = await file.read()
    attachment = await AttachmentService(db).add_attachment(
        protocol_id,
        file.filename or "bilaga",
        content,
        file.content_type,
        current_user.id,
    )
    await db.commit()
    return attachment


@router.delete(
    "/protocols/attachments/{attachment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_attachment(
    attachment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
    await AttachmentService(db).delete_attachment(attachment_id, current_user.id)
    await db.commit()


@router.get(
    "/protocols/attachments/{attachment_id}/url",
    response_model=AttachmentUrlResponse,
)
async def get_attachment_url(
    attachment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> AttachmentUrlResponse:
    """Signed, time-limited download link."""
    url = await AttachmentService(db).get_attachment_url(attachment_id, current_user.id)
    return AttachmentUrlResponse(url=url)


# =============================================================================
# Templates
# =============================================================================


@templates_router.get("", response_model=list[TemplateListItem])
async def list_templates(
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> list[TemplateListItem]:
    """System templates and the caller's own templates."""
    rows = await ProtocolTemplateService(db).list_templates(current_user.id)
    return [
        TemplateListItem.model_validate(template).model_copy(
            update={"agenda_item_count": agenda_count, "attendee_role_count": role_count}
        )
        for template, agenda_count, role_count in rows
    ]


@templates_router.post("", response_model=TemplateDetail, status_code=status.HTTP_201_CREATED)
async def create_template(
    data: TemplateCreate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> TemplateDetail:
    template = await ProtocolTemplateService(db).create_template(data, current_user.id)
    await db.commit()
    return template


@templates_router.get("/{template_id}", response_model=TemplateDetail)
async def get_template(
    template_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> TemplateDetail:
    return await ProtocolTemplateService(db).get_template(template_id, current_user.id)


@templates_router.patch("/{template_id}", response_model=TemplateResponse)
async def update_template(
    template_id: UUID,
    data: TemplateUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> TemplateResponse:
    """Update one of the caller's own templates."""
    template = await ProtocolTemplateService(db).update_template(
        template_id, data, current_user.id
    )
    await db.commit()
    return template


@templates_router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    template_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
    await ProtocolTemplateService(db).delete_template(template_id, current_user.id)
    await db.commit()


@templates_router.get("/{template_id}/apply", response_model=TemplatePrefill)
async def apply_template(
    template_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> TemplatePrefill:
    """Values to prefill a new protocol with."""
    return await ProtocolTemplateService(db).apply_template(template_id, current_user.id)


@router.post(
    "/protocols/{protocol_id}/save-as-template",
    response_model=TemplateDetail,
    status_code=status.HTTP_201_CREATED,
)
async def save_protocol_as_template(
    protocol_id: UUID,
    data: TemplateFromProtocol,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> TemplateDetail:
    """Save the agenda and attendee setup of a protocol as a new template."""
    template = await ProtocolTemplateService(db).save_protocol_as_template(
        protocol_id, data, current_user.id
    )
    await db.commit()
    return template
