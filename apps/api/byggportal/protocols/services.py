"""
Protocols Module Services

Protocol lifecycle (draft -> finalized -> archived), the child collections a
protocol owns, attachments in object storage and project statistics.

Any active member may read protocols; owners, admins and members may write
them. Content is only mutable while a protocol is a draft. Action items are
the exception: their follow-up fields stay editable after finalization.
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from byggportal.core.config import settings
from byggportal.core.errors import (
    BackendError,
    ExternalServiceError,
    InvalidOperationError,
    NotFoundError,
    PermissionDeniedError,
    ProtocolLockedError,
)
from byggportal.core.storage import StorageClient, build_object_path, storage_client
from byggportal.projects.models import MemberStatus, ProjectMember
from byggportal.projects.services import ProjectAccessService
from byggportal.protocols.completion import completion_percentage
from byggportal.protocols.models import (
    ActionItemStatus,
    AttendeeRole,
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
from byggportal.protocols.schemas import (
    ActionItemCreate,
    ActionItemUpdate,
    AgendaItemCreate,
    AgendaItemUpdate,
    AgendaReorderItem,
    AttendeeCreate,
    AttendeeUpdate,
    DecisionCreate,
    LinkCreate,
    ProtocolCreate,
    ProtocolStats,
    ProtocolUpdate,
    TemplateAgendaItemCreate,
    TemplateAttendeeRoleCreate,
    TemplateCreate,
    TemplateFromProtocol,
    TemplatePrefill,
    TemplateUpdate,
)

logger = logging.getLogger(__name__)

OPEN_ACTION_STATUSES = (ActionItemStatus.PENDING, ActionItemStatus.IN_PROGRESS)

# Action item fields that may still change once the protocol is finalized
FOLLOW_UP_FIELDS = {"status", "notes", "assigned_to", "assigned_to_name", "deadline", "priority"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def protocol_completion(protocol: Protocol) -> int:
    """Completion percentage of a protocol with its collections loaded."""
    return completion_percentage(
        attendee_count=len(protocol.attendees),
        agenda_count=len(protocol.agenda_items),
        notes=protocol.notes,
        decision_count=len(protocol.decisions),
        action_count=len(protocol.action_items),
    )


def _require_draft(protocol: Protocol) -> None:
    if protocol.status != ProtocolStatus.DRAFT:
        raise ProtocolLockedError()


class ProtocolService:
    """Protocol CRUD and lifecycle transitions."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.access = ProjectAccessService(db)

    # -------------------------------------------------------------------------
    # Guards
    # -------------------------------------------------------------------------

    async def require_read(self, project_id: UUID, user_id: UUID) -> ProjectMember:
        return await self.access.require_permission(
            project_id, user_id, "protocols", "read",
            "Du har inte tillgång till detta projekt",
        )

    async def require_write(self, project_id: UUID, user_id: UUID) -> ProjectMember:
        return await self.access.require_permission(
            project_id, user_id, "protocols", "update",
            "Du har inte behörighet att redigera protokoll",
        )

    async def get_protocol_or_404(self, protocol_id: UUID) -> Protocol:
        protocol = await self.db.get(Protocol, protocol_id)
        if protocol is None:
            raise NotFoundError("Protokollet hittades inte")
        return protocol

    async def get_for_read(self, protocol_id: UUID, user_id: UUID) -> Protocol:
        protocol = await self.get_protocol_or_404(protocol_id)
        await self.require_read(protocol.project_id, user_id)
        return protocol

    async def get_draft_for_write(self, protocol_id: UUID, user_id: UUID) -> Protocol:
        """Load a protocol the caller may edit, failing when it is locked."""
        protocol = await self.get_protocol_or_404(protocol_id)
        await self.require_write(protocol.project_id, user_id)
        _require_draft(protocol)
        return protocol

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def list_protocols(
        self,
        project_id: UUID,
        user_id: UUID,
        status: ProtocolStatus | None = None,
        meeting_type: MeetingType | None = None,
    ) -> list[Protocol]:
        """Protocols of a project, latest meeting first."""
        await self.require_read(project_id, user_id)

        query = (
            select(Protocol)
            .where(Protocol.project_id == project_id)
            .order_by(Protocol.meeting_date.desc(), Protocol.protocol_number.desc())
        )
        if status is not None:
            query = query.where(Protocol.status == status)
        if meeting_type is not None:
            query = query.where(Protocol.meeting_type == meeting_type)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_protocol(self, protocol_id: UUID, user_id: UUID) -> Protocol:
        """Get a protocol with all child collections loaded."""
        protocol = await self.get_for_read(protocol_id, user_id)

        result = await self.db.execute(
            select(Protocol)
            .where(Protocol.id == protocol.id)
            .options(
                selectinload(Protocol.creator),
                selectinload(Protocol.previous_protocol),
                selectinload(Protocol.attendees),
                selectinload(Protocol.agenda_items),
                selectinload(Protocol.decisions),
                selectinload(Protocol.action_items),
                selectinload(Protocol.attachments),
                selectinload(Protocol.links),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def get_stats(self, project_id: UUID, user_id: UUID) -> ProtocolStats:
        await self.require_read(project_id, user_id)

        result = await self.db.execute(
            select(Protocol.status, func.count(Protocol.id))
            .where(Protocol.project_id == project_id)
            .group_by(Protocol.status)
        )
        by_status = {row_status: count for row_status, count in result.all()}

        pending = await self.db.execute(
            select(func.count(ProtocolActionItem.id))
            .join(Protocol, Protocol.id == ProtocolActionItem.protocol_id)
            .where(Protocol.project_id == project_id)
            .where(ProtocolActionItem.status.in_(OPEN_ACTION_STATUSES))
        )

        return ProtocolStats(
            total=sum(by_status.values()),
            draft=by_status.get(ProtocolStatus.DRAFT, 0),
            finalized=by_status.get(ProtocolStatus.FINALIZED, 0),
            archived=by_status.get(ProtocolStatus.ARCHIVED, 0),
            pending_actions=pending.scalar_one(),
        )

    async def list_open_action_items(
        self,
        project_id: UUID,
        user_id: UUID,
        limit: int = 10,
    ) -> list[ProtocolActionItem]:
        """Open action items across the project's protocols, earliest deadline first."""
        await self.require_read(project_id, user_id)

        result = await self.db.execute(
            select(ProtocolActionItem)
            .join(Protocol, Protocol.id == ProtocolActionItem.protocol_id)
            .where(Protocol.project_id == project_id)
            .where(ProtocolActionItem.status.in_(OPEN_ACTION_STATUSES))
            .order_by(
                ProtocolActionItem.deadline.asc().nulls_last(),
                ProtocolActionItem.created_at.asc(),
            )
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_user_pending_action_items(self, user_id: UUID) -> list[ProtocolActionItem]:
        """
        Open action items assigned to the user, earliest deadline first.

        Only items in projects the user is still an active member of.
        """
        result = await self.db.execute(
            select(ProtocolActionItem)
            .join(Protocol, Protocol.id == ProtocolActionItem.protocol_id)
            .join(
                ProjectMember,
                (ProjectMember.project_id == Protocol.project_id)
                & (ProjectMember.user_id == user_id),
            )
            .where(ProjectMember.status == MemberStatus.ACTIVE)
            .where(ProtocolActionItem.assigned_to == user_id)
            .where(ProtocolActionItem.status.in_(OPEN_ACTION_STATUSES))
            .options(selectinload(ProtocolActionItem.protocol))
            .order_by(
                ProtocolActionItem.deadline.asc().nulls_last(),
                ProtocolActionItem.created_at.asc(),
            )
        )
        return list(result.scalars().all())

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def _next_protocol_number(self, project_id: UUID) -> int:
        result = await self.db.execute(
            select(Protocol.protocol_number)
            .where(Protocol.project_id == project_id)
            .order_by(Protocol.protocol_number.desc())
            .limit(1)
        )
        last_number = result.scalar_one_or_none()
        return (last_number + 1) if last_number else 1

    async def create_protocol(
        self,
        project_id: UUID,
        data: ProtocolCreate,
        user_id: UUID,
    ) -> Protocol:
        """Create a draft protocol with the next number in the project."""
        await self.access.require_permission(
            project_id, user_id, "protocols", "create",
            "Du har inte behörighet att skapa protokoll",
        )

        if data.previous_protocol_id is not None:
            previous = await self.db.get(Protocol, data.previous_protocol_id)
            if previous is None or previous.project_id != project_id:
                raise NotFoundError("Föregående protokoll hittades inte i detta projekt")

        protocol = Protocol(
            project_id=project_id,
            protocol_number=await self._next_protocol_number(project_id),
            status=ProtocolStatus.DRAFT,
            created_by=user_id,
            **data.model_dump(),
        )
        self.db.add(protocol)
        await self.db.flush()

        logger.info(f"Protocol {protocol.protocol_number} created in project {project_id}")
        return protocol

    async def update_protocol(
        self,
        protocol_id: UUID,
        data: ProtocolUpdate,
        user_id: UUID,
    ) -> Protocol:
        protocol = await self.get_draft_for_write(protocol_id, user_id)

        for field, value in data.model_dump(exclude_unset=True).items():
            if field in ("title", "meeting_type", "meeting_date") and value is None:
                continue
            setattr(protocol, field, value)
        protocol.updated_at = utcnow()

        await self.db.flush()
        return protocol

    async def set_ai_summary(self, protocol_id: UUID, summary: str, user_id: UUID) -> Protocol:
        protocol = await self.get_draft_for_write(protocol_id, user_id)
        protocol.ai_summary = summary
        protocol.updated_at = utcnow()
        await self.db.flush()
        return protocol

    async def delete_protocol(self, protocol_id: UUID, user_id: UUID) -> list[str]:
        """
        Delete a draft protocol and its children.

        Returns the storage paths of its attachments. Remove those objects
        only after the deletion is committed.
        """
        protocol = await self.get_protocol_or_404(protocol_id)
        await self.access.require_permission(
            protocol.project_id, user_id, "protocols", "delete",
            "Du har inte behörighet att ta bort protokoll",
        )
        _require_draft(protocol)

        result = await self.db.execute(
            select(ProtocolAttachment.file_path)
            .where(ProtocolAttachment.protocol_id == protocol.id)
        )
        file_paths = list(result.scalars().all())

        await self.db.delete(protocol)
        await self.db.flush()

        logger.info(f"Protocol {protocol_id} deleted by {user_id}")
        return file_paths

    async def finalize_protocol(self, protocol_id: UUID, user_id: UUID) -> Protocol:
        """Lock a draft. There is no way back to draft."""
        protocol = await self.get_protocol_or_404(protocol_id)
        await self.require_write(protocol.project_id, user_id)
        if protocol.status != ProtocolStatus.DRAFT:
            raise ProtocolLockedError("Protokollet är redan färdigställt")

        protocol.status = ProtocolStatus.FINALIZED
        protocol.updated_at = utcnow()
        await self.db.flush()

        logger.info(f"Protocol {protocol_id} finalized by {user_id}")
        return protocol

    async def archive_protocol(self, protocol_id: UUID, user_id: UUID) -> Protocol:
        """Move a finalized protocol to the archive."""
        protocol = await self.get_protocol_or_404(protocol_id)
        await self.require_write(protocol.project_id, user_id)
        if protocol.status != ProtocolStatus.FINALIZED:
            raise InvalidOperationError("Endast färdigställda protokoll kan arkiveras")

        protocol.status = ProtocolStatus.ARCHIVED
        protocol.updated_at = utcnow()
        await self.db.flush()

        logger.info(f"Protocol {protocol_id} archived by {user_id}")
        return protocol


class ProtocolContentService:
    """Attendees, agenda items, decisions, action items and links."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.protocols = ProtocolService(db)

    async def _get_child(self, model, child_id: UUID, message: str):
        child = await self.db.get(model, child_id)
        if child is None:
            raise NotFoundError(message)
        return child

    async def _draft_child(self, model, child_id: UUID, user_id: UUID, message: str):
        """Load a child whose protocol the caller may edit."""
        child = await self._get_child(model, child_id, message)
        await self.protocols.get_draft_for_write(child.protocol_id, user_id)
        return child

    # =========================================================================
    # Attendees
    # =========================================================================

    async def add_attendee(
        self,
        protocol_id: UUID,
        data: AttendeeCreate,
        user_id: UUID,
    ) -> ProtocolAttendee:
        await self.protocols.get_draft_for_write(protocol_id, user_id)
        attendee = ProtocolAttendee(protocol_id=protocol_id, **data.model_dump())
        self.db.add(attendee)
        await self.db.flush()
        return attendee

    async def add_attendees(
        self,
        protocol_id: UUID,
        items: list[AttendeeCreate],
        user_id: UUID,
    ) -> list[ProtocolAttendee]:
        await self.protocols.get_draft_for_write(protocol_id, user_id)
        attendees = [
            ProtocolAttendee(protocol_id=protocol_id, **item.model_dump()) for item in items
        ]
        self.db.add_all(attendees)
        await self.db.flush()
        return attendees

    async def update_attendee(
        self,
        attendee_id: UUID,
        data: AttendeeUpdate,
        user_id: UUID,
    ) -> ProtocolAttendee:
        attendee = await self._draft_child(
            ProtocolAttendee, attendee_id, user_id, "Deltagaren hittades inte"
        )
        for field, value in data.model_dump(exclude_unset=True).items():
            if field in ("name", "role", "attended") and value is None:
                continue
            setattr(attendee, field, value)
        await self.db.flush()
        return attendee

    async def remove_attendee(self, attendee_id: UUID, user_id: UUID) -> None:
        attendee = await self._draft_child(
            ProtocolAttendee, attendee_id, user_id, "Deltagaren hittades inte"
        )
        await self.db.delete(attendee)
        await self.db.flush()

    # =========================================================================
    # Agenda
    # =========================================================================

    async def add_agenda_item(
        self,
        protocol_id: UUID,
        data: AgendaItemCreate,
        user_id: UUID,
    ) -> ProtocolAgendaItem:
        """Append an agenda item; without an explicit index it goes last."""
        await self.protocols.get_draft_for_write(protocol_id, user_id)

        order_index = data.order_index
        if order_index is None:
            result = await self.db.execute(
                select(ProtocolAgendaItem.order_index)
                .where(ProtocolAgendaItem.protocol_id == protocol_id)
                .order_by(ProtocolAgendaItem.order_index.desc())
                .limit(1)
            )
            last_index = result.scalar_one_or_none()
            order_index = (last_index + 1) if last_index is not None else 0

        item = ProtocolAgendaItem(
            protocol_id=protocol_id,
            **data.model_dump(exclude={"order_index"}),
            order_index=order_index,
        )
        self.db.add(item)
        await self.db.flush()
        return item

    async def update_agenda_item(
        self,
        item_id: UUID,
        data: AgendaItemUpdate,
        user_id: UUID,
    ) -> ProtocolAgendaItem:
        item = await self._draft_child(
            ProtocolAgendaItem, item_id, user_id, "Dagordningspunkten hittades inte"
        )
        for field, value in data.model_dump(exclude_unset=True).items():
            if field in ("title", "order_index") and value is None:
                continue
            setattr(item, field, value)
        await self.db.flush()
        return item

    async def delete_agenda_item(self, item_id: UUID, user_id: UUID) -> None:
        item = await self._draft_child(
            ProtocolAgendaItem, item_id, user_id, "Dagordningspunkten hittades inte"
        )
        await self.db.delete(item)
        await self.db.flush()

    async def reorder_agenda_items(
        self,
        protocol_id: UUID,
        items: list[AgendaReorderItem],
        user_id: UUID,
    ) -> list[ProtocolAgendaItem]:
        await self.protocols.get_draft_for_write(protocol_id, user_id)

        result = await self.db.execute(
            select(ProtocolAgendaItem).where(ProtocolAgendaItem.protocol_id == protocol_id)
        )
        by_id = {item.id: item for item in result.scalars().all()}

        for entry in items:
            item = by_id.get(entry.id)
            if item is None:
                raise NotFoundError("Dagordningspunkten hittades inte i detta protokoll")
            item.order_index = entry.order_index

        await self.db.flush()
        return sorted(by_id.values(), key=lambda i: i.order_index)

    # =========================================================================
    # Decisions
    # =========================================================================

    async def _next_number(self, column, protocol_id: UUID) -> int:
        result = await self.db.execute(
            select(column)
            .where(column.class_.protocol_id == protocol_id)
            .order_by(column.desc())
            .limit(1)
        )
        last_number = result.scalar_one_or_none()
        return (last_number + 1) if last_number else 1

    async def add_decision(
        self,
        protocol_id: UUID,
        data: DecisionCreate,
        user_id: UUID,
    ) -> ProtocolDecision:
        await self.protocols.get_draft_for_write(protocol_id, user_id)

        decision = ProtocolDecision(
            protocol_id=protocol_id,
            decision_number=await self._next_number(
                ProtocolDecision.decision_number, protocol_id
            ),
            **data.model_dump(),
        )
        self.db.add(decision)
        await self.db.flush()
        return decision

    async def delete_decision(self, decision_id: UUID, user_id: UUID) -> None:
        decision = await self._draft_child(
            ProtocolDecision, decision_id, user_id, "Beslutet hittades inte"
        )
        await self.db.delete(decision)
        await self.db.flush()

    # =========================================================================
    # Action Items
    # =========================================================================

    async def add_action_item(
        self,
        protocol_id: UUID,
        data: ActionItemCreate,
        user_id: UUID,
    ) -> ProtocolActionItem:
        items = await self.add_action_items(protocol_id, [data], user_id)
        return items[0]

    async def add_action_items(
        self,
        protocol_id: UUID,
        items: list[ActionItemCreate],
        user_id: UUID,
    ) -> list[ProtocolActionItem]:
        """Add action items with consecutive numbers, in the given order."""
        await self.protocols.get_draft_for_write(protocol_id, user_id)

        first_number = await self._next_number(ProtocolActionItem.action_number, protocol_id)
        actions = [
            ProtocolActionItem(
                protocol_id=protocol_id,
                action_number=first_number + offset,
                status=ActionItemStatus.PENDING,
                **item.model_dump(),
            )
            for offset, item in enumerate(items)
        ]
        self.db.add_all(actions)
        await self.db.flush()
        return actions

    async def update_action_item(
        self,
        action_id: UUID,
        data: ActionItemUpdate,
        user_id: UUID,
    ) -> ProtocolActionItem:
        """
        Update an action item.

        Moving to completed stamps completed_at; any other status clears it.
        Finalized protocols only accept follow-up fields.
        """
        action = await self._get_child(
            ProtocolActionItem, action_id, "Åtgärdspunkten hittades inte"
        )
        protocol = await self.protocols.get_protocol_or_404(action.protocol_id)
        await self.protocols.require_write(protocol.project_id, user_id)

        updates = data.model_dump(exclude_unset=True)
        if protocol.status == ProtocolStatus.ARCHIVED:
            raise ProtocolLockedError()
        if protocol.status == ProtocolStatus.FINALIZED and set(updates) - FOLLOW_UP_FIELDS:
            raise ProtocolLockedError()

        for field, value in updates.items():
            if field in ("description", "priority", "status") and value is None:
                continue
            setattr(action, field, value)

        if updates.get("status") is not None:
            if updates["status"] == ActionItemStatus.COMPLETED:
                action.completed_at = utcnow()
            else:
                action.completed_at = None

        action.updated_at = utcnow()
        await self.db.flush()
        return action

    async def delete_action_item(self, action_id: UUID, user_id: UUID) -> None:
        action = await self._draft_child(
            ProtocolActionItem, action_id, user_id, "Åtgärdspunkten hittades inte"
        )
        await self.db.delete(action)
        await self.db.flush()

    # =========================================================================
    # Links
    # =========================================================================

    async def add_link(self, protocol_id: UUID, data: LinkCreate, user_id: UUID) -> ProtocolLink:
        await self.protocols.get_draft_for_write(protocol_id, user_id)
        link = ProtocolLink(protocol_id=protocol_id, created_by=user_id, **data.model_dump())
        self.db.add(link)
        await self.db.flush()
        return link

    async def remove_link(self, link_id: UUID, user_id: UUID) -> None:
        link = await self._draft_child(ProtocolLink, link_id, user_id, "Länken hittades inte")
        await self.db.delete(link)
        await self.db.flush()


class AttachmentService:
    """Protocol attachments, stored in object storage."""

    def __init__(self, db: AsyncSession, storage: StorageClient | None = None):
        self.db = db
        self.storage = storage or storage_client
        self.protocols = ProtocolService(db)
        self.bucket = settings.attachments_bucket

    async def list_attachments(self, protocol_id: UUID, user_id: UUID) -> list[ProtocolAttachment]:
        await self.protocols.get_for_read(protocol_id, user_id)
        result = await self.db.execute(
            select(ProtocolAttachment)
            .where(ProtocolAttachment.protocol_id == protocol_id)
            .order_by(ProtocolAttachment.created_at.desc())
        )
        return list(result.scalars().all())

    async def add_attachment(
        self,
        protocol_id: UUID,
        file_name: str,
        content: bytes,
        content_type: str | None,
        user_id: UUID,
    ) -> ProtocolAttachment:
        """
        Upload a file and record it.

        The object is uploaded first; if the row cannot be written the
        object is removed again.
        """
        protocol = await self.protocols.get_draft_for_write(protocol_id, user_id)

        path = build_object_path(
            str(protocol.project_id), file_name, subfolder=f"protocols/{protocol_id}"
        )
        await self.storage.upload(self.bucket, path, content, content_type)

        attachment = ProtocolAttachment(
            protocol_id=protocol_id,
            file_name=file_name,
            file_path=path,
            file_size=len(content),
            file_type=content_type,
            uploaded_by=user_id,
        )
        try:
            self.db.add(attachment)
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.exception(f"Error creating attachment record for {path}: {e}")
            await self.db.rollback()
            try:
                await self.storage.delete(self.bucket, path)
            except ExternalServiceError as cleanup_error:
                logger.error(f"Could not clean up uploaded file {path}: {cleanup_error.message}")
            raise BackendError("Kunde inte spara bilagan") from e

        return attachment

    async def delete_attachment(self, attachment_id: UUID, user_id: UUID) -> None:
        attachment = await self.db.get(ProtocolAttachment, attachment_id)
        if attachment is None:
            raise NotFoundError("Bilagan hittades inte")
        await self.protocols.get_draft_for_write(attachment.protocol_id, user_id)

        await self.storage.delete(self.bucket, attachment.file_path)
        await self.db.delete(attachment)
        await self.db.flush()

    async def get_attachment_url(self, attachment_id: UUID, user_id: UUID) -> str:
        """Signed download URL, valid for a limited time."""
        attachment = await self.db.get(ProtocolAttachment, attachment_id)
        if attachment is None:
            raise NotFoundError("Bilagan hittades inte")
        await self.protocols.get_for_read(attachment.protocol_id, user_id)

        return await self.storage.create_signed_url(self.bucket, attachment.file_path)

    async def remove_files(self, paths: list[str]) -> None:
        """Best-effort removal of stored objects whose rows are already gone."""
        for path in paths:
            try:
                await self.storage.delete(self.bucket, path)
            except ExternalServiceError as e:
                logger.error(f"Could not delete stored file {path}: {e.message}")


# Words that mark an action item as recurring when a protocol is saved as a template
RECURRING_ACTION_WORDS = ("standard", "rutin", "alltid")


class ProtocolTemplateService:
    """
    System templates plus each user's own templates.

    System templates are read-only. A user template belongs to the user
    who created it and is invisible to everyone else.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    def _visible_to(self, user_id: UUID):
        return or_(ProtocolTemplate.is_system.is_(True), ProtocolTemplate.user_id == user_id)

    async def list_templates(
        self, user_id: UUID
    ) -> list[tuple[ProtocolTemplate, int, int]]:
        """Visible templates, system first, then by name, with agenda and role counts."""
        result = await self.db.execute(
            select(ProtocolTemplate)
            .where(self._visible_to(user_id))
            .order_by(ProtocolTemplate.is_system.desc(), ProtocolTemplate.name)
        )
        templates = list(result.scalars().all())
        if not templates:
            return []

        ids = [t.id for t in templates]
        agenda = await self.db.execute(
            select(ProtocolTemplateAgendaItem.template_id, func.count(ProtocolTemplateAgendaItem.id))
            .where(ProtocolTemplateAgendaItem.template_id.in_(ids))
            .group_by(ProtocolTemplateAgendaItem.template_id)
        )
        agenda_counts = dict(agenda.all())
        roles = await self.db.execute(
            select(ProtocolTemplateAttendeeRole.template_id, func.count(ProtocolTemplateAttendeeRole.id))
            .where(ProtocolTemplateAttendeeRole.template_id.in_(ids))
            .group_by(ProtocolTemplateAttendeeRole.template_id)
        )
        role_counts = dict(roles.all())

        return [
            (t, agenda_counts.get(t.id, 0), role_counts.get(t.id, 0))
            for t in templates
        ]

    async def get_template(self, template_id: UUID, user_id: UUID) -> ProtocolTemplate:
        """A visible template with agenda items in order, its roles and actions."""
        result = await self.db.execute(
            select(ProtocolTemplate)
            .where(ProtocolTemplate.id == template_id)
            .where(self._visible_to(user_id))
            .options(
                selectinload(ProtocolTemplate.agenda_items),
                selectinload(ProtocolTemplate.attendee_roles),
                selectinload(ProtocolTemplate.actions),
            )
            .execution_options(populate_existing=True)
        )
        template = result.scalar_one_or_none()
        if template is None:
            raise NotFoundError("Mall hittades inte")
        return template

    async def _get_own(self, template_id: UUID, user_id: UUID, message: str) -> ProtocolTemplate:
        template = await self.db.get(ProtocolTemplate, template_id)
        if template is None or template.is_system or template.user_id != user_id:
            raise PermissionDeniedError(message)
        return template

    async def create_template(self, data: TemplateCreate, user_id: UUID) -> ProtocolTemplate:
        template = ProtocolTemplate(
            user_id=user_id,
            is_system=False,
            **data.model_dump(exclude={"agenda_items", "attendee_roles"}),
        )
        template.agenda_items = [
            ProtocolTemplateAgendaItem(order_index=index + 1, **item.model_dump())
            for index, item in enumerate(data.agenda_items)
        ]
        template.attendee_roles = [
            ProtocolTemplateAttendeeRole(**role.model_dump()) for role in data.attendee_roles
        ]
        self.db.add(template)
        await self.db.flush()

        logger.info(f"Protocol template {template.id} created by {user_id}")
        return await self.get_template(template.id, user_id)

    async def save_protocol_as_template(
        self,
        protocol_id: UUID,
        data: TemplateFromProtocol,
        user_id: UUID,
    ) -> ProtocolTemplate:
        """
        Create a template from an existing protocol.

        Copies the agenda, turns attendees into one role per company and
        attendee role, and keeps only action items that read as recurring.
        Decisions belong to their meeting and are not copied.
        """
        protocol = await ProtocolService(self.db).get_protocol(protocol_id, user_id)

        template = ProtocolTemplate(
            user_id=user_id,
            name=data.name,
            description=data.description,
            meeting_type=protocol.meeting_type,
            is_system=False,
            default_location=protocol.location,
            default_start_time=protocol.start_time,
            default_end_time=protocol.end_time,
        )
        template.agenda_items = [
            ProtocolTemplateAgendaItem(
                order_index=item.order_index,
                title=item.title,
                description=item.description,
                duration_minutes=item.duration_minutes,
            )
            for item in protocol.agenda_items
        ]

        roles: dict[tuple[str, AttendeeRole], ProtocolTemplateAttendeeRole] = {}
        for attendee in protocol.attendees:
            key = (attendee.company or "Okänt", attendee.role)
            if key not in roles:
                roles[key] = ProtocolTemplateAttendeeRole(
                    role_name=attendee.company or "Deltagare",
                    company_placeholder=attendee.company,
                    role=attendee.role,
                )
        template.attendee_roles = list(roles.values())

        template.actions = [
            ProtocolTemplateAction(description=item.description, priority=item.priority)
            for item in protocol.action_items
            if any(word in item.description.lower() for word in RECURRING_ACTION_WORDS)
        ]

        self.db.add(template)
        await self.db.flush()

        logger.info(f"Protocol {protocol_id} saved as template {template.id}")
        return await self.get_template(template.id, user_id)

    async def update_template(
        self,
        template_id: UUID,
        data: TemplateUpdate,
        user_id: UUID,
    ) -> ProtocolTemplate:
        template = await self._get_own(template_id, user_id, "Kan inte redigera denna mall")

        for field, value in data.model_dump(exclude_unset=True).items():
            if field in ("name", "meeting_type") and value is None:
                continue
            setattr(template, field, value)
        template.updated_at = utcnow()

        await self.db.flush()
        return template

    async def delete_template(self, template_id: UUID, user_id: UUID) -> None:
        template = await self._get_own(template_id, user_id, "Kan inte ta bort denna mall")
        await self.db.delete(template)
        await self.db.flush()

    async def apply_template(self, template_id: UUID, user_id: UUID) -> TemplatePrefill:
        """Values to prefill a new protocol with."""
        template = await self.get_template(template_id, user_id)
        return TemplatePrefill(
            meeting_type=template.meeting_type,
            location=template.default_location,
            start_time=template.default_start_time,
            end_time=template.default_end_time,
            agenda_items=[
                TemplateAgendaItemCreate(
                    title=item.title,
                    description=item.description,
                    duration_minutes=item.duration_minutes,
                )
                for item in template.agenda_items
            ],
            attendee_roles=[
                TemplateAttendeeRoleCreate(
                    role_name=role.role_name,
                    company_placeholder=role.company_placeholder,
                    role=role.role,
                )
                for role in template.attendee_roles
            ],
        )
