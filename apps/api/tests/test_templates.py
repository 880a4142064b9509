"""
Tests for protocol templates.
"""

from datetime import date, time
from uuid import uuid4

import pytest

from byggportal.core.errors import NotFoundError, PermissionDeniedError
from byggportal.protocols.models import (
    ActionItemPriority,
    AttendeeRole,
    MeetingType,
    ProtocolTemplate,
    ProtocolTemplateAgendaItem,
)
from byggportal.protocols.schemas import (
    ActionItemCreate,
    AgendaItemCreate,
    AttendeeCreate,
    ProtocolCreate,
    TemplateAgendaItemCreate,
    TemplateAttendeeRoleCreate,
    TemplateCreate,
    TemplateFromProtocol,
    TemplateUpdate,
)
from byggportal.protocols.services import (
    ProtocolContentService,
    ProtocolService,
    ProtocolTemplateService,
)


@pytest.fixture
async def system_template(db) -> ProtocolTemplate:
    template = ProtocolTemplate(
        name="Byggmöte",
        meeting_type=MeetingType.BYGGMOTE,
        is_system=True,
        agenda_items=[
            ProtocolTemplateAgendaItem(order_index=2, title="Tidplan"),
            ProtocolTemplateAgendaItem(order_index=1, title="Mötets öppnande"),
        ],
    )
    db.add(template)
    await db.flush()
    return template


def new_template(name: str = "Mitt möte", **kwargs) -> TemplateCreate:
    return TemplateCreate(name=name, **kwargs)


class TestListAndGet:
    """Tests for which templates a user sees."""

    async def test_system_first_then_own(self, db, owner, make_user, system_template) -> None:
        """Test that system templates come first and others' templates are hidden."""
        service = ProtocolTemplateService(db)
        other = await make_user()
        await service.create_template(new_template("Annans mall"), other.id)
        await service.create_template(new_template("Ö-möte"), owner.id)
        await service.create_template(
            new_template("A-möte", agenda_items=[TemplateAgendaItemCreate(title="Punkt")]),
            owner.id,
        )

        rows = await service.list_templates(owner.id)

        assert [t.name for t, _, _ in rows] == ["Byggmöte", "A-möte", "Ö-möte"]
        assert [agenda for _, agenda, _ in rows] == [2, 1, 0]

    async def test_get_sorts_agenda(self, db, owner, system_template) -> None:
        """Test that agenda items come back in order."""
        template = await ProtocolTemplateService(db).get_template(system_template.id, owner.id)
        assert [item.title for item in template.agenda_items] == ["Mötets öppnande", "Tidplan"]

    async def test_other_users_template_is_hidden(self, db, owner, make_user) -> None:
        """Test that a user template is not visible to anyone else."""
        other = await make_user()
        template = await ProtocolTemplateService(db).create_template(new_template(), other.id)
        with pytest.raises(NotFoundError, match="Mall hittades inte"):
            await ProtocolTemplateService(db).get_template(template.id, owner.id)


class TestCreateAndEdit:
    """Tests for creating, updating and deleting templates."""

    async def test_create_numbers_agenda(self, db, owner) -> None:
        """Test that agenda items are numbered from 1 in the given order."""
        template = await ProtocolTemplateService(db).create_template(
            new_template(
                meeting_type=MeetingType.SAMORDNINGSMOTE,
                default_start_time=time(9, 0),
                agenda_items=[
                    TemplateAgendaItemCreate(title="Öppnande"),
                    TemplateAgendaItemCreate(title="Tidplan", duration_minutes=15),
                ],
                attendee_roles=[TemplateAttendeeRoleCreate(role_name="Beställare")],
            ),
            owner.id,
        )

        assert template.user_id == owner.id
        assert template.is_system is False
        assert template.meeting_type == MeetingType.SAMORDNINGSMOTE
        assert [(i.order_index, i.title) for i in template.agenda_items] == [
            (1, "Öppnande"),
            (2, "Tidplan"),
        ]
        assert template.attendee_roles[0].role == AttendeeRole.ATTENDEE

    async def test_update_own(self, db, owner) -> None:
        """Test that the owner can rename their template."""
        service = ProtocolTemplateService(db)
        template = await service.create_template(new_template(), owner.id)

        updated = await service.update_template(
            template.id, TemplateUpdate(name="Veckomöte", default_location="Bod 2"), owner.id
        )
        assert updated.name == "Veckomöte"
        assert updated.default_location == "Bod 2"

    async def test_system_template_is_read_only(self, db, owner, system_template) -> None:
        """Test that system templates can be neither edited nor deleted."""
        service = ProtocolTemplateService(db)
        with pytest.raises(PermissionDeniedError, match="Kan inte redigera denna mall"):
            await service.update_template(system_template.id, TemplateUpdate(name="X"), owner.id)
        with pytest.raises(PermissionDeniedError, match="Kan inte ta bort denna mall"):
            await service.delete_template(system_template.id, owner.id)

    async def test_other_users_template_is_read_only(self, db, owner, make_user) -> None:
        """Test that only the owner may delete a user template."""
        other = await make_user()
        service = ProtocolTemplateService(db)
        template = await service.create_template(new_template(), other.id)
        with pytest.raises(PermissionDeniedError):
            await service.delete_template(template.id, owner.id)

    async def test_delete_own(self, db, owner) -> None:
        service = ProtocolTemplateService(db)
        template = await service.create_template(
            new_template(agenda_items=[TemplateAgendaItemCreate(title="Punkt")]), owner.id
        )
        await service.delete_template(template.id, owner.id)
        assert await service.list_templates(owner.id) == []


class TestSaveProtocolAsTemplate:
    """Tests for turning a protocol into a template."""

    @pytest.fixture
    async def protocol(self, db, project, owner):
        protocol = await ProtocolService(db).create_protocol(
            project.id,
            ProtocolCreate(
                title="Byggmöte 4",
                meeting_type=MeetingType.BYGGMOTE,
                meeting_date=date(2026, 3, 12),
                start_time=time(13, 0),
                location="Platskontoret",
            ),
            owner.id,
        )
        content = ProtocolContentService(db)
        await content.add_agenda_item(protocol.id, AgendaItemCreate(title="Tidplan"), owner.id)
        await content.add_agenda_item(protocol.id, AgendaItemCreate(title="Ekonomi"), owner.id)
        await content.add_attendees(
            protocol.id,
            [
                AttendeeCreate(name="Per", company="Bygg AB"),
                AttendeeCreate(name="Eva", company="Bygg AB"),
                AttendeeCreate(name="Ola", company="Bygg AB", role=AttendeeRole.ORGANIZER),
                AttendeeCreate(name="Kim"),
            ],
            owner.id,
        )
        await content.add_action_items(
            protocol.id,
            [
                ActionItemCreate(description="Beställ fönster"),
                ActionItemCreate(
                    description="Skyddsrond enligt rutin", priority=ActionItemPriority.HIGH
                ),
            ],
            owner.id,
        )
        return protocol

    async def test_copies_setup(self, db, owner, protocol) -> None:
        """Test that agenda, grouped roles and recurring actions are copied."""
        template = await ProtocolTemplateService(db).save_protocol_as_template(
            protocol.id, TemplateFromProtocol(name="Byggmöte-mall"), owner.id
        )

        assert template.user_id == owner.id
        assert template.meeting_type == MeetingType.BYGGMOTE
        assert template.default_location == "Platskontoret"
        assert template.default_start_time == time(13, 0)
        assert [item.title for item in template.agenda_items] == ["Tidplan", "Ekonomi"]
        assert sorted((r.role_name, r.role) for r in template.attendee_roles) == [
            ("Bygg AB", AttendeeRole.ATTENDEE),
            ("Bygg AB", AttendeeRole.ORGANIZER),
            ("Deltagare", AttendeeRole.ATTENDEE),
        ]
        assert [(a.description, a.priority) for a in template.actions] == [
            ("Skyddsrond enligt rutin", ActionItemPriority.HIGH)
        ]

    async def test_requires_project_access(self, db, protocol, make_user) -> None:
        """Test that outsiders cannot copy a protocol."""
        outsider = await make_user()
        with pytest.raises(PermissionDeniedError):
            await ProtocolTemplateService(db).save_protocol_as_template(
                protocol.id, TemplateFromProtocol(name="Stulen"), outsider.id
            )


class TestApplyTemplate:
    """Tests for prefilling a protocol from a template."""

    async def test_prefill(self, db, owner, system_template) -> None:
        """Test the prefill values of a template."""
        prefill = await ProtocolTemplateService(db).apply_template(system_template.id, owner.id)
        assert prefill.meeting_type == MeetingType.BYGGMOTE
        assert [item.title for item in prefill.agenda_items] == ["Mötets öppnande", "Tidplan"]
        assert prefill.attendee_roles == []

    async def test_unknown_template(self, db, owner) -> None:
        with pytest.raises(NotFoundError, match="Mall hittades inte"):
            await ProtocolTemplateService(db).apply_template(uuid4(), owner.id)
