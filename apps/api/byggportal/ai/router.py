"""
AI API Router

Endpoints for AI-powered features: protocol summaries, action extraction and
agenda suggestions.

Model calls can take several seconds, so each endpoint reads what it needs,
ends the read transaction and only then calls the model.
"""

from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from byggportal.ai.service import ExtractedAction, SuggestedAgendaItem, ai_service
from byggportal.auth.dependencies import AuthenticatedUser, get_current_user
from byggportal.core.database import get_db
from byggportal.core.errors import InvalidOperationError, NotFoundError
from byggportal.projects.services import MemberService
from byggportal.protocols.models import MeetingType
from byggportal.protocols.services import ProtocolService

router = APIRouter(prefix="/ai", tags=["ai"])


# --- Request/Response Models ---


class ProtocolSummaryResponse(BaseModel):
    """Summary of a protocol, already saved on the protocol."""
    protocol_id: UUID
    summary: str
    key_points: list[str]
    extracted_actions: list[ExtractedAction] = []


class ExtractActionsRequest(BaseModel):
    """Free text to extract action items from."""
    text: str = Field(min_length=1)


class ExtractActionsResponse(BaseModel):
    actions: list[ExtractedAction]
    notes: str | None = None


class SuggestAgendaRequest(BaseModel):
    meeting_type: MeetingType = MeetingType.BYGGMOTE
    previous_protocol_id: UUID | None = None


class SuggestAgendaResponse(BaseModel):
    suggestions: list[SuggestedAgendaItem]
    explanation: str | None = None


# --- Endpoints ---


@router.post("/protocols/{protocol_id}/summary", response_model=ProtocolSummaryResponse)
async def summarize_protocol(
    protocol_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> ProtocolSummaryResponse:
    """
    Generate an AI summary of a draft protocol and store it.

    Uses the notes, agenda items and decisions of the protocol as input.
    The protocol is checked again before saving, so a protocol finalized
    in the meantime keeps its summary unchanged.
    """
    service = ProtocolService(db)
    await service.get_draft_for_write(protocol_id, user.id)
    protocol = await service.get_protocol(protocol_id, user.id)

    has_notes = bool(protocol.notes and protocol.notes.strip())
    if not has_notes and not protocol.agenda_items:
        raise InvalidOperationError("Anteckningar eller dagordningspunkter krävs")

    notes = protocol.notes
    agenda_items = [
        {"order_index": item.order_index, "title": item.title, "notes": item.notes}
        for item in protocol.agenda_items
    ]
    decisions = [
        {"decision_number": d.decision_number, "description": d.description}
        for d in protocol.decisions
    ]
    await db.commit()

    result = await ai_service.summarize_protocol(
        notes=notes,
        agenda_items=agenda_items,
        decisions=decisions,
    )

    await service.set_ai_summary(protocol_id, result.summary, user.id)
    await db.commit()

    return ProtocolSummaryResponse(
        protocol_id=protocol_id,
        summary=result.summary,
        key_points=result.key_points,
        extracted_actions=result.extracted_actions,
    )


@router.post("/projects/{project_id}/extract-actions", response_model=ExtractActionsResponse)
async def extract_actions(
    project_id: UUID,
    request: ExtractActionsRequest,
    db: AsyncSession = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> ExtractActionsResponse:
    """Extract action items from text, matched against the project's members."""
    members = [
        {
            "name": m.user.full_name if m.user else None,
            "email": m.user.email if m.user else None,
            "company": m.user.company if m.user else None,
        }
        for m in await MemberService(db).list_members(project_id, user.id)
    ]
    await db.commit()

    result = await ai_service.extract_actions(request.text, members=members)
    return ExtractActionsResponse(actions=result.actions, notes=result.notes)


@router.post("/projects/{project_id}/suggest-agenda", response_model=SuggestAgendaResponse)
async def suggest_agenda(
    project_id: UUID,
    request: SuggestAgendaRequest,
    db: AsyncSession = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> SuggestAgendaResponse:
    """
    Suggest an agenda for the next meeting.

    Based on the meeting type, the open action items of the project and,
    when given, the previous protocol.
    """
    service = ProtocolService(db)
    pending_actions = [
        {
            "description": a.description,
            "assigned_to_name": a.assigned_to_name,
            "deadline": a.deadline.isoformat() if a.deadline else None,
        }
        for a in await service.list_open_action_items(project_id, user.id)
    ]

    previous = None
    if request.previous_protocol_id is not None:
        protocol = await service.get_protocol(request.previous_protocol_id, user.id)
        if protocol.project_id != project_id:
            raise NotFoundError("Föregående protokoll hittades inte i detta projekt")
        previous = {
            "title": protocol.title,
            "meeting_type": protocol.meeting_type.value,
            "notes": protocol.notes,
            "agenda_items": [item.title for item in protocol.agenda_items],
            "decisions": [d.description for d in protocol.decisions],
        }
    await db.commit()

    result = await ai_service.suggest_agenda(
        request.meeting_type.value,
        previous_protocol=previous,
        pending_actions=pending_actions,
    )
    return SuggestAgendaResponse(suggestions=result.suggestions, explanation=result.explanation)
